"""
Type definitions for the credential provisioner.
Provides type safety and better IDE support.
"""

from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field

Identity = str
DeviceId = str
FilePath = str
Port = int

DEFAULT_ALTER_ID = 1

JSONDocument = Dict[str, Any]


@dataclass
class Client:
    """
    A provisioned credential as stored in a roster document.

    The identity field depends on the protocol: ``id`` for vmess,
    ``password`` for shadowsocks and ``username`` for sstp.
    """
    id: str = ""
    alter_id: int = DEFAULT_ALTER_ID
    username: str = ""
    device_id: DeviceId = ""
    start_date: str = ""
    expire_date: str = ""
    password: str = ""
    port: Port = 0

    def to_dict(self) -> JSONDocument:
        """Serialize with the roster document's key names and order."""
        return {
            "id": self.id,
            "alterId": self.alter_id,
            "username": self.username,
            "deviceId": self.device_id,
            "startDate": self.start_date,
            "expireDate": self.expire_date,
            "password": self.password,
            "port": self.port,
        }

    @classmethod
    def from_dict(cls, data: JSONDocument) -> "Client":
        return cls(
            id=str(data.get("id") or ""),
            alter_id=int(data.get("alterId", DEFAULT_ALTER_ID)),
            username=str(data.get("username") or ""),
            device_id=str(data.get("deviceId") or ""),
            start_date=str(data.get("startDate") or ""),
            expire_date=str(data.get("expireDate") or ""),
            password=str(data.get("password") or ""),
            port=int(data.get("port") or 0),
        )


@dataclass
class SSTPUser:
    """A user record held by the remote VPN administration service."""
    name: str
    note: str = ""
    expires: str = ""
    expires_set: bool = False

    def to_dict(self) -> JSONDocument:
        return {
            "name": self.name,
            "note": self.note,
            "expires": self.expires,
            "expiresSet": self.expires_set,
        }


@dataclass
class ConsistencyReport:
    """Result of comparing a configuration document with its roster document."""
    protocol: str
    inbound_count: int
    roster_count: int
    missing_from_roster: List[Identity] = field(default_factory=list)
    missing_from_config: List[Identity] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return (
            self.inbound_count == self.roster_count
            and not self.missing_from_roster
            and not self.missing_from_config
        )

    def to_dict(self) -> JSONDocument:
        return {
            "protocol": self.protocol,
            "consistent": self.consistent,
            "inboundCount": self.inbound_count,
            "rosterCount": self.roster_count,
            "missingFromRoster": self.missing_from_roster,
            "missingFromConfig": self.missing_from_config,
        }


@dataclass
class DescriptorSettings:
    """Server facts rendered into every share descriptor."""
    web_host: str
    region: str
    v2ray_port: Port

    @property
    def subdomain(self) -> str:
        return self.web_host.split(".")[0]


ClientList = List[Client]
OptionalClient = Optional[Client]
