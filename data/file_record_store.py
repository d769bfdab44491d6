from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from config.app_config import AppConfig
from config.constants import ShadowsocksConstants
from core.exceptions import (
    DuplicateCredential,
    Forbidden,
    FirewallError,
    InconsistentDocuments,
    PartialWrite,
    NotFound,
    PersistenceError,
    ValidationError
)
from core.firewall import FirewallReconciler
from core.logging_config import LoggerMixin, log_performance
from core.port_allocator import next_free_port
from core.protocol import AccountType, LocalDocuments
from core.types import (
    Client,
    ConsistencyReport,
    DEFAULT_ALTER_ID,
    Identity,
    JSONDocument,
    Port
)
from data.document_store import DocumentPair

class FileRecordStore(LoggerMixin, ABC):
    """
    Credentials of a locally hosted protocol, kept in a configuration document
    (``inbounds``) and a roster document (``clients``).

    Every mutation reads both documents, changes them in memory and rewrites
    both in full while holding the pair's exclusive lock. Existence and
    uniqueness checks run before anything is touched.
    """

    account_type: AccountType

    def __init__(self, documents: LocalDocuments) -> None:
        self.documents = DocumentPair(documents)

    @property
    def protocol(self) -> str:
        return self.account_type.protocol

    # Layout hooks -----------------------------------------------------

    @abstractmethod
    def identity_of(self, client: Client) -> Identity:
        """The field that uniquely identifies a credential of this protocol."""

    @abstractmethod
    def _inbound_identities(self, config_document: JSONDocument) -> List[Optional[Identity]]:
        """Identity of each credential entry in the configuration document, in order."""

    @abstractmethod
    def _add_inbound(self, config_document: JSONDocument, client: Client) -> Client:
        """Add the inbound entry for ``client`` and return it with its port assigned."""

    @abstractmethod
    def _replace_inbound(self, config_document: JSONDocument, index: int, client: Client) -> None:
        pass

    @abstractmethod
    def _remove_inbound(self, config_document: JSONDocument, index: int) -> Any:
        """Remove the entry at ``index`` and return it."""

    def _after_failed_create(self, stored: Client) -> None:
        pass

    def _after_delete(self, removed_inbound: Any, deleted: Client) -> None:
        pass

    # Helpers ----------------------------------------------------------

    def _roster(self, users_document: JSONDocument) -> List[JSONDocument]:
        roster = self.documents.list_field(users_document, "clients", self.documents.users_path)
        for entry in roster:
            if not isinstance(entry, dict):
                raise PersistenceError(self.documents.users_path, "every client entry must be a JSON object")
            try:
                Client.from_dict(entry)
            except (TypeError, ValueError) as e:
                raise PersistenceError(self.documents.users_path, f"malformed client entry: {e}")
        return roster

    def _inbounds(self, config_document: JSONDocument) -> List[JSONDocument]:
        inbounds = self.documents.list_field(config_document, "inbounds", self.documents.config_path)
        for inbound in inbounds:
            if not isinstance(inbound, dict):
                raise PersistenceError(self.documents.config_path, "every inbound must be a JSON object")
        return inbounds

    def _require_identity(self, client: Client) -> Identity:
        identity = self.identity_of(client)
        if not identity:
            raise ValidationError("identity", "", f"{self.protocol} credentials need a non-empty identity")
        return identity

    def _locate(self, config_document: JSONDocument, roster: List[JSONDocument], identity: Identity) -> Tuple[int, int]:
        """Find ``identity`` in both documents; raise if it is in neither or only one."""
        inbound_ids = self._inbound_identities(config_document)
        roster_ids = [self.identity_of(Client.from_dict(entry)) for entry in roster]
        inbound_index = inbound_ids.index(identity) if identity in inbound_ids else -1
        roster_index = roster_ids.index(identity) if identity in roster_ids else -1

        if inbound_index < 0 and roster_index < 0:
            raise NotFound(self.protocol, identity)
        if inbound_index < 0:
            raise InconsistentDocuments(self.documents.config_path, identity, "configuration document")
        if roster_index < 0:
            raise InconsistentDocuments(self.documents.users_path, identity, "roster document")
        return inbound_index, roster_index

    # Operations -------------------------------------------------------

    @log_performance
    def create(self, client: Client) -> Client:
        """Add a credential to both documents. Returns the stored record."""
        identity = self._require_identity(client)
        with self.documents.exclusive():
            config_document, users_document = self.documents.load()
            roster = self._roster(users_document)
            known = set(self._inbound_identities(config_document))
            known.update(self.identity_of(Client.from_dict(entry)) for entry in roster)
            if identity in known:
                raise DuplicateCredential(self.protocol, identity)

            stored = self._add_inbound(config_document, client)
            roster.append(stored.to_dict())
            try:
                self.documents.save(config_document, users_document)
            except PartialWrite:
                # the new listener is already in the configuration document
                self.logger.error("Credential half-created, resources kept", protocol=self.protocol, port=stored.port)
                raise
            except PersistenceError:
                self._after_failed_create(stored)
                raise

        self.logger.info("Credential created", protocol=self.protocol, username=stored.username, port=stored.port)
        return stored

    @log_performance
    def edit(self, client: Client) -> Client:
        """Replace a credential's settings, keeping its port. Returns the previous record."""
        identity = self._require_identity(client)
        with self.documents.exclusive():
            config_document, users_document = self.documents.load()
            roster = self._roster(users_document)
            inbound_index, roster_index = self._locate(config_document, roster, identity)

            previous = Client.from_dict(roster[roster_index])
            updated = replace(client, port=previous.port, alter_id=DEFAULT_ALTER_ID)
            self._replace_inbound(config_document, inbound_index, updated)
            roster[roster_index] = updated.to_dict()
            self.documents.save(config_document, users_document)

        self.logger.info("Credential edited", protocol=self.protocol, username=updated.username, port=updated.port)
        return previous

    @log_performance
    def delete(self, identity: Identity, device_id: str) -> Client:
        """
        Remove a credential from both documents. Returns the deleted record.

        The caller must present the device id stored with the credential;
        a mismatch is refused with Forbidden and nothing is changed.

        Resources such as firewall rules are released after both documents
        are written. If that fails, FirewallError is raised although the
        credential is already gone, so a retry reports NotFound.
        """
        if not identity:
            raise ValidationError("identity", "", f"{self.protocol} credentials need a non-empty identity")
        with self.documents.exclusive():
            config_document, users_document = self.documents.load()
            roster = self._roster(users_document)
            inbound_index, roster_index = self._locate(config_document, roster, identity)

            deleted = Client.from_dict(roster[roster_index])
            if deleted.device_id != (device_id or ""):
                self.logger.warning("Deletion refused, device binding mismatch", protocol=self.protocol)
                raise Forbidden(self.protocol, identity)

            removed_inbound = self._remove_inbound(config_document, inbound_index)
            del roster[roster_index]
            try:
                self.documents.save(config_document, users_document)
            except PartialWrite:
                # the listener is already gone from the configuration document
                self._after_delete(removed_inbound, deleted)
                raise
            self._after_delete(removed_inbound, deleted)

        self.logger.info("Credential deleted", protocol=self.protocol, username=deleted.username, port=deleted.port)
        return deleted

    def list_clients(self) -> List[Client]:
        """All credentials in roster order. Reports, but tolerates, an inconsistent pair."""
        with self.documents.shared():
            config_document, users_document = self.documents.load()
            roster = self._roster(users_document)
            report = self._compare(config_document, roster)
        if not report.consistent:
            self.logger.warning("Configuration and roster documents disagree", **report.to_dict())
        return [Client.from_dict(entry) for entry in roster]

    def get(self, identity: Identity) -> Client:
        for client in self.list_clients():
            if self.identity_of(client) == identity:
                return client
        raise NotFound(self.protocol, identity)

    def check_consistency(self) -> ConsistencyReport:
        """Compare both documents without changing either."""
        with self.documents.shared():
            config_document, users_document = self.documents.load()
            report = self._compare(config_document, self._roster(users_document))
        if not report.consistent:
            self.logger.warning("Configuration and roster documents disagree", **report.to_dict())
        return report

    def _compare(self, config_document: JSONDocument, roster: List[JSONDocument]) -> ConsistencyReport:
        inbound_ids = [i for i in self._inbound_identities(config_document) if i]
        roster_ids = [self.identity_of(Client.from_dict(entry)) for entry in roster]
        return ConsistencyReport(
            protocol=self.protocol,
            inbound_count=len(inbound_ids),
            roster_count=len(roster_ids),
            missing_from_roster=[i for i in inbound_ids if i not in roster_ids],
            missing_from_config=[i for i in roster_ids if i not in inbound_ids],
        )

class VmessStore(FileRecordStore):
    """
    One shared inbound listener whose ``settings.clients`` list holds an
    ``{"id", "alterId"}`` entry per credential. Every credential uses the
    listener's port.
    """

    account_type = AccountType.VMESS

    def __init__(self, documents: LocalDocuments, shared_port: Port) -> None:
        super().__init__(documents)
        self.shared_port = shared_port

    def identity_of(self, client: Client) -> Identity:
        return client.id

    def _clients(self, config_document: JSONDocument) -> List[JSONDocument]:
        inbounds = self._inbounds(config_document)
        if not inbounds:
            raise PersistenceError(self.documents.config_path, "no vmess inbound is configured")
        settings = inbounds[0].get("settings")
        if settings is None:
            settings = {}
            inbounds[0]["settings"] = settings
        if not isinstance(settings, dict):
            raise PersistenceError(self.documents.config_path, "inbound 'settings' must be a JSON object")
        return self.documents.list_field(settings, "clients", self.documents.config_path)

    @staticmethod
    def _entry(client: Client) -> Dict[str, Any]:
        return {"id": client.id, "alterId": DEFAULT_ALTER_ID}

    def _inbound_identities(self, config_document: JSONDocument) -> List[Optional[Identity]]:
        return [entry.get("id") if isinstance(entry, dict) else None for entry in self._clients(config_document)]

    def _add_inbound(self, config_document: JSONDocument, client: Client) -> Client:
        self._clients(config_document).append(self._entry(client))
        return replace(client, port=self.shared_port, alter_id=DEFAULT_ALTER_ID)

    def _replace_inbound(self, config_document: JSONDocument, index: int, client: Client) -> None:
        self._clients(config_document)[index] = self._entry(client)

    def _remove_inbound(self, config_document: JSONDocument, index: int) -> Any:
        return self._clients(config_document).pop(index)

class ShadowsocksStore(FileRecordStore):
    """
    One dedicated inbound listener per credential, each on its own port taken
    from the reserved range. Ports are opened in the firewall before the
    documents are written and closed after the credential is removed.
    """

    account_type = AccountType.SHADOWSOCKS

    def __init__(self, documents: LocalDocuments, firewall: FirewallReconciler, port_base: Port) -> None:
        super().__init__(documents)
        self.firewall = firewall
        self.port_base = port_base

    def identity_of(self, client: Client) -> Identity:
        return client.password

    @staticmethod
    def _build_inbound(port: Port, password: str) -> Dict[str, Any]:
        return {
            "port": port,
            "listen": ShadowsocksConstants.LISTEN,
            "protocol": "shadowsocks",
            "settings": {
                "method": ShadowsocksConstants.METHOD,
                "password": password,
                "network": ShadowsocksConstants.NETWORK,
                "level": ShadowsocksConstants.LEVEL,
                "ota": False,
            },
        }

    def _inbound_identities(self, config_document: JSONDocument) -> List[Optional[Identity]]:
        identities = []
        for inbound in self._inbounds(config_document):
            settings = inbound.get("settings")
            identities.append(settings.get("password") if isinstance(settings, dict) else None)
        return identities

    def occupied_ports(self, config_document: JSONDocument) -> List[Port]:
        return [
            inbound["port"] for inbound in self._inbounds(config_document)
            if isinstance(inbound.get("port"), int)
        ]

    def _add_inbound(self, config_document: JSONDocument, client: Client) -> Client:
        port = next_free_port(self.occupied_ports(config_document), self.port_base)
        self.firewall.open_port(port)
        self._inbounds(config_document).append(self._build_inbound(port, client.password))
        return replace(client, port=port, alter_id=DEFAULT_ALTER_ID)

    def _replace_inbound(self, config_document: JSONDocument, index: int, client: Client) -> None:
        inbounds = self._inbounds(config_document)
        port = inbounds[index].get("port", client.port)
        inbounds[index] = self._build_inbound(port, client.password)

    def _remove_inbound(self, config_document: JSONDocument, index: int) -> Any:
        return self._inbounds(config_document).pop(index)

    def _after_failed_create(self, stored: Client) -> None:
        try:
            self.firewall.close_port(stored.port)
        except FirewallError as e:
            self.logger.error("Failed to close port after aborted create", port=stored.port, error=str(e))

    def _after_delete(self, removed_inbound: Any, deleted: Client) -> None:
        port = removed_inbound.get("port") if isinstance(removed_inbound, dict) else None
        port = port if isinstance(port, int) else deleted.port
        try:
            self.firewall.close_port(port)
        except FirewallError as e:
            self.logger.error("Credential removed but its port is still open", port=port, error=e.reason)
            raise FirewallError(port, "close", f"credential already removed from the configuration document; {e.reason}")

def create_file_store(account_type: AccountType, config: AppConfig, firewall: FirewallReconciler) -> FileRecordStore:
    """Build the record store for a locally hosted account type."""
    documents = account_type.backend(config)
    if account_type is AccountType.VMESS:
        return VmessStore(documents, config.panel.v2ray_port)
    if account_type is AccountType.SHADOWSOCKS:
        return ShadowsocksStore(documents, firewall, config.storage.port_base)
    raise ValidationError("type", account_type.protocol, "not a locally hosted account type")
