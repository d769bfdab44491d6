from typing import Any, Dict, List, Optional
from config.app_config import AppConfig
from core.exceptions import ValidationError
from core.firewall import FirewallReconciler, create_firewall
from core.logging_config import LoggerMixin
from core.notifier import GotifyNotifier
from core.protocol import AccountType, parse_account_type
from core.types import Client, DescriptorSettings
from core.uri_codec import DescriptorCodec
from data.file_record_store import FileRecordStore, create_file_store
from data.sstp_client import SSTPClient, parse_expiry

class AccountService(LoggerMixin):
    """
    Entry point for provisioning requests. Resolves the backend for an
    account type, runs the operation there and reports the outcome.
    """

    def __init__(
        self,
        config: AppConfig,
        firewall: Optional[FirewallReconciler] = None,
        notifier: Optional[GotifyNotifier] = None,
        sstp_client: Optional[SSTPClient] = None,
    ):
        self.config = config
        self.firewall = firewall or create_firewall(config.firewall)
        self.notifier = notifier or GotifyNotifier(config.notification)
        self.sstp_client = sstp_client or SSTPClient(AccountType.SSTP.backend(config))
        self.codec = DescriptorCodec(DescriptorSettings(
            web_host=config.panel.web_host,
            region=config.panel.web_host_region,
            v2ray_port=config.panel.v2ray_port,
        ))
        self._stores: Dict[AccountType, FileRecordStore] = {}

    def store_for(self, account_type: AccountType) -> FileRecordStore:
        if account_type not in self._stores:
            self._stores[account_type] = create_file_store(account_type, self.config, self.firewall)
        return self._stores[account_type]

    def _notify(self, title: str, message: str) -> None:
        # delivery problems are logged by the notifier and never reach the caller
        self.notifier.send(title, message)

    @staticmethod
    def _client_from_payload(payload: Dict[str, Any]) -> Client:
        try:
            client = Client.from_dict(payload)
        except (TypeError, ValueError) as e:
            raise ValidationError("body", "", f"malformed account fields: {e}")
        # ports are assigned by the store, never by the caller
        client.port = 0
        return client

    @staticmethod
    def _require(payload: Dict[str, Any], field: str) -> str:
        value = str(payload.get(field) or "").strip()
        if not value:
            raise ValidationError(field, "", f"'{field}' is required")
        return value

    def create_account(self, tag, payload: Dict[str, Any]) -> Dict[str, Any]:
        account_type = parse_account_type(tag)
        if account_type is AccountType.SSTP:
            username = self._require(payload, "username")
            password = self._require(payload, "password")
            expire = parse_expiry(self._require(payload, "expireDate"))
            user = self.sstp_client.create_user(username, str(payload.get("note") or ""), password, expire)
            self._notify("Account created", f"sstp account '{username}' created, expires {user.expires}")
            return user.to_dict()

        client = self._client_from_payload(payload)
        stored = self.store_for(account_type).create(client)
        self._notify(
            "Account created",
            f"{account_type.protocol} account '{stored.username}' created, expires {stored.expire_date}",
        )
        return stored.to_dict()

    def edit_account(self, tag, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Apply new settings to a local credential. Returns the previous record."""
        account_type = parse_account_type(tag)
        if not account_type.is_local:
            raise ValidationError("type", account_type.protocol, "editing is not supported for this account type")
        client = self._client_from_payload(payload)
        previous = self.store_for(account_type).edit(client)
        self._notify(
            "Account edited",
            f"{account_type.protocol} account '{previous.username}' edited, "
            f"expiry {previous.expire_date} -> {client.expire_date}",
        )
        return previous.to_dict()

    def delete_account(self, tag, identity: str, device_id: str = "") -> Dict[str, Any]:
        account_type = parse_account_type(tag)
        if account_type is AccountType.SSTP:
            name = self.sstp_client.delete_user(identity)
            self._notify("Account deleted", f"sstp account '{name}' deleted")
            return {"name": name}

        deleted = self.store_for(account_type).delete(identity, device_id)
        self._notify("Account deleted", f"{account_type.protocol} account '{deleted.username}' deleted")
        return deleted.to_dict()

    def list_accounts(self, tag) -> List[Dict[str, Any]]:
        account_type = parse_account_type(tag)
        if account_type is AccountType.SSTP:
            return [user.to_dict() for user in self.sstp_client.enum_users()]
        return [client.to_dict() for client in self.store_for(account_type).list_clients()]

    def account_uri(self, tag, identity: str, locked: bool = False) -> str:
        """Render the share descriptor of a stored credential."""
        account_type = parse_account_type(tag)
        if not account_type.is_local:
            raise ValidationError("type", account_type.protocol, "no share descriptor exists for this account type")
        client = self.store_for(account_type).get(identity)
        return self.codec.render(account_type, client, locked=locked)

    def check_consistency(self, tag=None) -> List[Dict[str, Any]]:
        """Report mismatches between configuration and roster documents."""
        if tag is not None:
            account_types = [parse_account_type(tag)]
        else:
            account_types = [t for t in AccountType if t.is_local]
        reports = []
        for account_type in account_types:
            if not account_type.is_local:
                raise ValidationError("type", account_type.protocol, "remote accounts have no local documents")
            reports.append(self.store_for(account_type).check_consistency().to_dict())
        return reports
