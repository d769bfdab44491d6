"""
Account types and the backend parameters each one resolves to.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union
from config.app_config import AppConfig
from config.constants import DocumentFiles
from core.exceptions import InvalidProtocol


@dataclass(frozen=True)
class LocalDocuments:
    """A configuration document and its roster document on local disk."""
    config_path: str
    users_path: str


@dataclass(frozen=True)
class RemoteEndpoint:
    """Connection parameters of the remote VPN administration service."""
    url: str
    admin_password: str
    hub: str
    timeout: float
    verify_tls: bool = True


Backend = Union[LocalDocuments, RemoteEndpoint]


class AccountType(Enum):
    """VPN protocols a credential can be provisioned for."""
    VMESS = 1
    SHADOWSOCKS = 2
    SSTP = 3

    def __str__(self) -> str:
        return str(self.value)

    @property
    def protocol(self) -> str:
        return self.name.lower()

    @property
    def is_local(self) -> bool:
        return self is not AccountType.SSTP

    def filenames(self) -> Tuple[str, str]:
        """Configuration and roster file names of a locally hosted protocol."""
        if self is AccountType.VMESS:
            return DocumentFiles.VMESS_CONFIG, DocumentFiles.VMESS_USERS
        if self is AccountType.SHADOWSOCKS:
            return DocumentFiles.SHADOWSOCKS_CONFIG, DocumentFiles.SHADOWSOCKS_USERS
        raise InvalidProtocol(self.protocol)

    def backend(self, config: AppConfig) -> Backend:
        """Resolve where records of this account type are stored."""
        if self is AccountType.SSTP:
            return RemoteEndpoint(
                url=config.sstp.server_url,
                admin_password=config.sstp.admin_password,
                hub=config.sstp.hub,
                timeout=config.sstp.timeout,
                verify_tls=config.sstp.verify_tls,
            )
        config_name, users_name = self.filenames()
        # prefixes are joined verbatim, the way the daemons' install scripts lay them out
        return LocalDocuments(
            config_path=config.storage.config_file_prefix + config_name,
            users_path=config.storage.user_file_prefix + users_name,
        )


def parse_account_type(tag) -> AccountType:
    """
    Convert a request tag to an AccountType.

    Accepts the numeric tag ("1", "2", "3" or an int) or the protocol name.
    """
    if isinstance(tag, AccountType):
        return tag
    text = str(tag).strip() if tag is not None else ""
    if text.isdigit():
        try:
            return AccountType(int(text))
        except ValueError:
            raise InvalidProtocol(text)
    try:
        return AccountType[text.upper()]
    except KeyError:
        raise InvalidProtocol(text)
