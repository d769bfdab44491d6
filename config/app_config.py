"""
Centralized application configuration management.
Provides type-safe configuration with environment variable support.
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse
from dotenv import load_dotenv
from core.exceptions import ConfigurationError

DEFAULT_ENV_FILE = "/etc/tunnel-provisioner/.env"

def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")

@dataclass
class PanelConfig:
    """Facts about this server that end up inside share descriptors."""
    web_host: str = "127.0.0.1"
    web_host_region: str = "127.0.0.1"
    v2ray_port: int = 443

@dataclass
class StorageConfig:
    """Where the configuration and roster documents live."""
    config_file_prefix: str = "/usr/local/etc/v2ray/"
    user_file_prefix: str = "/usr/local/etc/v2ray/"
    port_base: int = 10000

@dataclass
class SSTPConfig:
    """Remote VPN administration service settings."""
    server_url: str = "https://localhost:992/api"
    admin_password: str = ""
    hub: str = "default"
    timeout: float = 10.0
    verify_tls: bool = True

@dataclass
class FirewallConfig:
    """Firewall reconciliation settings."""
    enabled: bool = True
    command: str = "ufw"

@dataclass
class NotificationConfig:
    """Push notification settings."""
    server: str = ""
    app_token: str = ""
    timeout: float = 10.0
    priority: int = 5

    @property
    def enabled(self) -> bool:
        return bool(self.server and self.app_token)

@dataclass
class ServerConfig:
    """HTTP API server settings."""
    host: str = "127.0.0.1"
    port: int = 8888

@dataclass
class MonitoringConfig:
    """Logging settings."""
    log_level: str = "INFO"

@dataclass
class AppConfig:
    """Main application configuration."""
    panel: PanelConfig = field(default_factory=PanelConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    sstp: SSTPConfig = field(default_factory=SSTPConfig)
    firewall: FirewallConfig = field(default_factory=FirewallConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'AppConfig':
        """Load configuration from environment variables."""
        if env_file and os.path.exists(env_file):
            load_dotenv(env_file)

        try:
            return cls(
                panel=PanelConfig(
                    web_host=os.getenv("WEB_HOST", "127.0.0.1"),
                    web_host_region=os.getenv("WEB_HOST_REGION", "127.0.0.1"),
                    v2ray_port=int(os.getenv("V2RAY_PORT", "443"))
                ),
                storage=StorageConfig(
                    config_file_prefix=os.getenv("CONFIG_FILE_PREFIX", "/usr/local/etc/v2ray/"),
                    user_file_prefix=os.getenv("USER_FILE_PREFIX", "/usr/local/etc/v2ray/"),
                    port_base=int(os.getenv("PORT_BASE", "10000"))
                ),
                sstp=SSTPConfig(
                    server_url=os.getenv("SSTP_SERVER_URL", "https://localhost:992/api"),
                    admin_password=os.getenv("SSTP_ADMIN_PASSWORD", ""),
                    hub=os.getenv("SSTP_HUB", "default"),
                    timeout=float(os.getenv("SSTP_TIMEOUT", "10")),
                    verify_tls=_env_bool("SSTP_VERIFY_TLS", "true")
                ),
                firewall=FirewallConfig(
                    enabled=_env_bool("FIREWALL_ENABLED", "true"),
                    command=os.getenv("FIREWALL_COMMAND", "ufw")
                ),
                notification=NotificationConfig(
                    server=os.getenv("GOTIFY_SERVER", ""),
                    app_token=os.getenv("GOTIFY_APP_TOKEN", ""),
                    timeout=float(os.getenv("GOTIFY_TIMEOUT", "10")),
                    priority=int(os.getenv("GOTIFY_PRIORITY", "5"))
                ),
                server=ServerConfig(
                    host=os.getenv("SERVER_HOST", "127.0.0.1"),
                    port=int(os.getenv("API_PORT", "8888"))
                ),
                monitoring=MonitoringConfig(
                    log_level=os.getenv("LOG_LEVEL", "INFO")
                )
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric configuration value: {e}")

    def validate(self) -> None:
        """Validate configuration settings."""
        if not self.panel.web_host:
            raise ConfigurationError("WEB_HOST is required")
        if not (1 <= self.panel.v2ray_port <= 65535):
            raise ConfigurationError("V2RAY_PORT must be between 1 and 65535")
        if not (1024 <= self.storage.port_base <= 65535):
            raise ConfigurationError("PORT_BASE must be between 1024 and 65535")
        if urlparse(self.sstp.server_url).scheme not in ("http", "https"):
            raise ConfigurationError("SSTP_SERVER_URL must be an http(s) URL")
        if self.sstp.timeout <= 0:
            raise ConfigurationError("SSTP_TIMEOUT must be positive")

# Global configuration instance
_config: Optional[AppConfig] = None

def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env(os.getenv("PROVISIONER_ENV_FILE", DEFAULT_ENV_FILE))
        _config.validate()
    return _config

def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
