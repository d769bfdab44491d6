"""
Share descriptors (connection URIs) for the locally hosted protocols.

Client apps import these strings directly, so every byte of the output is part
of a compatibility contract: key order, JSON spacing, base64 alphabet and the
escaping of the display label must stay as they are.
"""

import base64
import binascii
import json
from collections import OrderedDict
from typing import Any, Dict
from urllib.parse import quote_plus, unquote_plus
from config.constants import DescriptorConstants, ShadowsocksConstants
from core.exceptions import MissingDeviceBinding, ValidationError
from core.protocol import AccountType
from core.types import Client, DescriptorSettings

_HTML_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def _compact_json(payload: Dict[str, Any]) -> str:
    # no whitespace, raw UTF-8, HTML-sensitive characters escaped as client apps expect
    text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    for raw, escaped in _HTML_ESCAPES:
        text = text.replace(raw, escaped)
    return text


def _b64(data: str) -> str:
    return base64.b64encode(data.encode("utf-8")).decode("ascii")


def _b64decode(data: str, field: str) -> str:
    try:
        return base64.b64decode(data, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValidationError(field, data[:16], f"not valid base64: {e}")


def lock_uri(plain_uri: str) -> str:
    """Wrap a plain descriptor so that it only imports on the bound device."""
    return DescriptorConstants.LOCKED_PREFIX + _b64(plain_uri)


def unlock_uri(locked_uri: str) -> str:
    """Recover the plain descriptor wrapped by :func:`lock_uri`."""
    if not locked_uri.startswith(DescriptorConstants.LOCKED_PREFIX):
        raise ValidationError("uri", locked_uri[:24], "not a locked descriptor")
    return _b64decode(locked_uri[len(DescriptorConstants.LOCKED_PREFIX):], "uri")


def decode_vmess_uri(uri: str) -> Dict[str, Any]:
    """Decode a ``vmess://`` descriptor into its connection parameters."""
    if not uri.startswith(DescriptorConstants.VMESS_PREFIX):
        raise ValidationError("uri", uri[:24], "not a vmess descriptor")
    body = _b64decode(uri[len(DescriptorConstants.VMESS_PREFIX):], "uri")
    try:
        return json.loads(body)
    except ValueError as e:
        raise ValidationError("uri", body[:24], f"malformed vmess payload: {e}")


def decode_shadowsocks_uri(uri: str) -> Dict[str, Any]:
    """Decode an ``ss://`` descriptor into method, password, host, port and label."""
    if not uri.startswith(DescriptorConstants.SHADOWSOCKS_PREFIX):
        raise ValidationError("uri", uri[:24], "not a shadowsocks descriptor")
    body = uri[len(DescriptorConstants.SHADOWSOCKS_PREFIX):]
    body, _, label = body.partition("#")
    userinfo, sep, address = body.rpartition("@")
    host, _, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValidationError("uri", uri[:24], "malformed shadowsocks address")
    method, sep, password = _b64decode(userinfo, "uri").partition(":")
    if not sep:
        raise ValidationError("uri", uri[:24], "malformed shadowsocks credentials")
    return {
        "method": method,
        "password": password,
        "host": host,
        "port": int(port),
        "label": unquote_plus(label),
    }


class DescriptorCodec:
    """Renders stored credentials as plain or device-locked share descriptors."""

    def __init__(self, settings: DescriptorSettings):
        self.settings = settings

    def label(self, expire_date: str, identity: str) -> str:
        return "valid before ({}) {}-{}-{}".format(
            expire_date,
            self.settings.subdomain,
            self.settings.region,
            identity[-4:],
        )

    @staticmethod
    def _locked_label(label: str, device_id: str) -> str:
        return f"{label} [locked:{device_id}]"

    @staticmethod
    def _require_device(client: Client, identity: str) -> None:
        if not client.device_id:
            raise MissingDeviceBinding(identity)

    def _vmess_payload(self, client: Client, label: str, device_id: str = "") -> Dict[str, Any]:
        payload = OrderedDict()
        payload["add"] = self.settings.web_host
        payload["aid"] = DescriptorConstants.VMESS_ALTER_ID
        payload["alpn"] = ""
        if device_id:
            payload["deviceID"] = device_id
        payload["fp"] = ""
        payload["host"] = DescriptorConstants.VMESS_HOST_HEADER
        if client.id:
            payload["id"] = client.id
        payload["net"] = DescriptorConstants.VMESS_NETWORK
        payload["path"] = DescriptorConstants.VMESS_PATH
        payload["port"] = str(self.settings.v2ray_port)
        payload["ps"] = label
        payload["scy"] = DescriptorConstants.VMESS_SECURITY
        payload["sni"] = ""
        payload["tls"] = ""
        payload["type"] = DescriptorConstants.VMESS_HEADER_TYPE
        payload["v"] = DescriptorConstants.VMESS_VERSION
        return payload

    def vmess_uri(self, client: Client) -> str:
        if not client.id:
            raise ValidationError("id", "", "id is required for a vmess descriptor")
        label = self.label(client.expire_date, client.id)
        return DescriptorConstants.VMESS_PREFIX + _b64(_compact_json(self._vmess_payload(client, label)))

    def vmess_locked_uri(self, client: Client) -> str:
        self._require_device(client, client.id)
        if not client.id:
            raise ValidationError("id", "", "id is required for a vmess descriptor")
        label = self._locked_label(self.label(client.expire_date, client.id), client.device_id)
        payload = self._vmess_payload(client, label, device_id=client.device_id)
        return lock_uri(DescriptorConstants.VMESS_PREFIX + _b64(_compact_json(payload)))

    def _shadowsocks(self, client: Client, label: str) -> str:
        if not client.password:
            raise ValidationError("password", "", "password is required for a shadowsocks descriptor")
        credentials = _b64(f"{ShadowsocksConstants.METHOD}:{client.password}")
        return "{}{}@{}:{}#{}".format(
            DescriptorConstants.SHADOWSOCKS_PREFIX,
            credentials,
            self.settings.web_host,
            client.port,
            quote_plus(label),
        )

    def shadowsocks_uri(self, client: Client) -> str:
        return self._shadowsocks(client, self.label(client.expire_date, client.password))

    def shadowsocks_locked_uri(self, client: Client) -> str:
        self._require_device(client, client.password)
        label = self._locked_label(self.label(client.expire_date, client.password), client.device_id)
        return lock_uri(self._shadowsocks(client, label))

    def render(self, account_type: AccountType, client: Client, locked: bool = False) -> str:
        """Render the descriptor for ``client`` according to its account type."""
        if account_type is AccountType.VMESS:
            return self.vmess_locked_uri(client) if locked else self.vmess_uri(client)
        if account_type is AccountType.SHADOWSOCKS:
            return self.shadowsocks_locked_uri(client) if locked else self.shadowsocks_uri(client)
        raise ValidationError("type", account_type.protocol, "no share descriptor exists for this account type")
