"""
Wire-format constants for share descriptors and proxy documents.
Third-party client apps parse these values; they must not change.
"""

class DescriptorConstants:
    """Immutable descriptor prefixes and fixed connection parameters."""

    VMESS_PREFIX = "vmess://"
    SHADOWSOCKS_PREFIX = "ss://"
    LOCKED_PREFIX = "v2box://locked="

    VMESS_ALTER_ID = "1"
    VMESS_HOST_HEADER = "www.youtube.com"
    VMESS_NETWORK = "tcp"
    VMESS_PATH = "/"
    VMESS_SECURITY = "none"
    VMESS_HEADER_TYPE = "http"
    VMESS_VERSION = "2"

class ShadowsocksConstants:
    """Settings written into every dedicated shadowsocks inbound."""

    METHOD = "aes-128-gcm"
    LISTEN = "0.0.0.0"
    NETWORK = "tcp,udp"
    LEVEL = 1

class DocumentFiles:
    """File names of the configuration/roster document pairs."""

    VMESS_CONFIG = "vmess.json"
    VMESS_USERS = "vmess_users.json"
    SHADOWSOCKS_CONFIG = "shadowsocks.json"
    SHADOWSOCKS_USERS = "shadowsocks_users.json"

    CONFIG_INDENT = 2
    USERS_INDENT = 1

class SSTPConstants:
    """JSON-RPC envelope and usage policy applied to every remote user."""

    JSONRPC_VERSION = "2.0"
    ADMIN_PASSWORD_HEADER = "X-VPNADMIN-PASSWORD"
    AUTH_TYPE_PASSWORD = 1
    MAX_MAC = 1
    MAX_IP = 1
    MAX_UPLOAD_BPS = 10000000
    MAX_DOWNLOAD_BPS = 10000000
