"""
JSON-RPC client for the SSTP server's administration API.

Users of this protocol live entirely in the remote service; nothing is kept
locally. Every call carries a fresh request id and the response must echo it,
otherwise it is rejected. Nothing is retried here.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from config.constants import SSTPConstants
from core.exceptions import (
    CorrelationMismatch,
    RemoteRejected,
    RemoteUnavailable,
    ValidationError
)
from core.logging_config import LoggerMixin, log_performance
from core.protocol import RemoteEndpoint
from core.types import SSTPUser


def format_rfc3339(moment: datetime) -> str:
    """Format like the server expects: second precision, ``Z`` for UTC. Naive values are UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def parse_expiry(value: str) -> datetime:
    """Parse an ISO date or date-time given by a caller."""
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        raise ValidationError("expireDate", str(value), "must be an ISO 8601 date or date-time")


def normalize_expiry(value: str) -> str:
    """Reduce an RFC 3339 timestamp to its date part; pass anything else through."""
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except (AttributeError, ValueError):
        return value


class SSTPClient(LoggerMixin):
    def __init__(self, endpoint: RemoteEndpoint) -> None:
        self.endpoint = endpoint

    def _call(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        request_id = str(uuid.uuid4())
        envelope = {
            "jsonrpc": SSTPConstants.JSONRPC_VERSION,
            "id": request_id,
            "method": method,
            "params": params,
        }
        headers = {
            "Content-Type": "application/json",
            SSTPConstants.ADMIN_PASSWORD_HEADER: self.endpoint.admin_password,
        }

        self.logger.debug("Calling remote method", method=method, request_id=request_id)
        try:
            response = requests.post(
                self.endpoint.url,
                json=envelope,
                headers=headers,
                timeout=self.endpoint.timeout,
                verify=self.endpoint.verify_tls,
            )
        except requests.RequestException as e:
            self.logger.error("Remote call failed", method=method, error=str(e))
            raise RemoteUnavailable(method, str(e))

        try:
            body = response.json()
        except ValueError:
            self.logger.error("Remote response is not JSON", method=method, status_code=response.status_code)
            raise RemoteUnavailable(method, f"undecodable response (HTTP {response.status_code})")
        if not isinstance(body, dict):
            raise RemoteUnavailable(method, "response envelope is not a JSON object")

        if body.get("id") != request_id:
            self.logger.error(
                "Remote response id mismatch",
                method=method,
                request_id=request_id,
                response_id=body.get("id"),
            )
            raise CorrelationMismatch(method, request_id, body.get("id"))

        error = body.get("error")
        if error:
            code: Optional[int] = None
            message = str(error)
            if isinstance(error, dict):
                code = error.get("code")
                message = str(error.get("message", ""))
            self.logger.warning("Remote call rejected", method=method, code=code, message=message)
            raise RemoteRejected(method, code, message)

        if not response.ok:
            raise RemoteUnavailable(method, f"HTTP {response.status_code}")

        result = body.get("result")
        if result is None:
            return {}
        if not isinstance(result, dict):
            raise RemoteUnavailable(method, "'result' is not a JSON object")
        return result

    @log_performance
    def create_user(self, name: str, note: str, password: str, expire: datetime) -> SSTPUser:
        """Create a password-authenticated user limited to one device and 10 Mbps each way."""
        params = {
            "HubName_str": self.endpoint.hub,
            "Name_str": name,
            "Note_utf": note,
            "ExpireTime_dt": format_rfc3339(expire),
            "AuthType_u32": SSTPConstants.AUTH_TYPE_PASSWORD,
            "Auth_Password_str": password,
            "UsePolicy_bool": True,
            "policy:Access_bool": True,
            "policy:CheckMac_bool": True,
            "policy:CheckIP_bool": True,
            "policy:MaxMac_u32": SSTPConstants.MAX_MAC,
            "policy:MaxIP_u32": SSTPConstants.MAX_IP,
            "policy:MaxUpload_u32": SSTPConstants.MAX_UPLOAD_BPS,
            "policy:MaxDownload_u32": SSTPConstants.MAX_DOWNLOAD_BPS,
        }
        result = self._call("CreateUser", params)
        self.logger.info("Remote user created", hub=self.endpoint.hub, username=name)
        expires = result.get("ExpireTime_dt") or params["ExpireTime_dt"]
        return SSTPUser(
            name=result.get("Name_str", name),
            note=result.get("Note_utf", note),
            expires=normalize_expiry(expires),
            expires_set=True,
        )

    @log_performance
    def delete_user(self, name: str) -> str:
        params = {"HubName_str": self.endpoint.hub, "Name_str": name}
        result = self._call("DeleteUser", params)
        self.logger.info("Remote user deleted", hub=self.endpoint.hub, username=name)
        return result.get("Name_str", name)

    @log_performance
    def enum_users(self) -> List[SSTPUser]:
        """List the hub's users with expiry dates reduced to YYYY-MM-DD."""
        result = self._call("EnumUser", {"HubName_str": self.endpoint.hub})
        entries = result.get("UserList") or []
        if not isinstance(entries, list):
            raise RemoteUnavailable("EnumUser", "'UserList' is not a JSON array")
        users = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise RemoteUnavailable("EnumUser", "user entry is not a JSON object")
            users.append(SSTPUser(
                name=str(entry.get("Name_str", "")),
                note=str(entry.get("Note_utf", "")),
                expires=normalize_expiry(str(entry.get("Expires_dt", ""))),
                expires_set=bool(entry.get("IsExpiresFilled_bool", False)),
            ))
        return users
