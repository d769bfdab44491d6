import subprocess
from abc import ABC, abstractmethod
from typing import List
from config.app_config import FirewallConfig
from core.exceptions import FirewallError
from core.logging_config import LoggerMixin
from core.types import Port

TRANSPORTS = ("tcp", "udp")

class FirewallReconciler(ABC):
    """
    Defines the contract for opening and closing the ports of dedicated
    inbound listeners. Each call covers both stream and datagram traffic.
    Failures must be raised as FirewallError, never ignored.
    """

    @abstractmethod
    def open_port(self, port: Port) -> None:
        pass

    @abstractmethod
    def close_port(self, port: Port) -> None:
        pass

    @staticmethod
    def validate_port(port: Port, operation: str) -> None:
        if not isinstance(port, int) or not (1 <= port <= 65535):
            raise FirewallError(port, operation, "port number must be between 1 and 65535")

class UfwFirewall(FirewallReconciler, LoggerMixin):
    def __init__(self, command: str = "ufw"):
        self.command = command

    def open_port(self, port: Port) -> None:
        self.validate_port(port, "open")
        for transport in TRANSPORTS:
            self._run([self.command, "allow", f"{port}/{transport}"], port, "open")
        self.logger.info("Port allowed", port=port, transports=list(TRANSPORTS))

    def close_port(self, port: Port) -> None:
        self.validate_port(port, "close")
        for transport in TRANSPORTS:
            self._run([self.command, "delete", "allow", f"{port}/{transport}"], port, "close")
        self.logger.info("Port rules deleted", port=port, transports=list(TRANSPORTS))

    def _run(self, command: List[str], port: Port, operation: str) -> None:
        try:
            subprocess.run(command, check=True, capture_output=True, text=True)
        except subprocess.CalledProcessError as e:
            stderr_text = (e.stderr or "").strip() or f"exit status {e.returncode}"
            self.logger.error("Firewall command failed", command=" ".join(command), error=stderr_text)
            raise FirewallError(port, operation, stderr_text)
        except OSError as e:
            self.logger.error("Firewall command could not be started", command=" ".join(command), error=str(e))
            raise FirewallError(port, operation, str(e))

class NullFirewall(FirewallReconciler, LoggerMixin):
    """Used when firewall reconciliation is disabled; still validates port numbers."""

    def open_port(self, port: Port) -> None:
        self.validate_port(port, "open")
        self.logger.debug("Firewall disabled, not opening port", port=port)

    def close_port(self, port: Port) -> None:
        self.validate_port(port, "close")
        self.logger.debug("Firewall disabled, not closing port", port=port)

def create_firewall(config: FirewallConfig) -> FirewallReconciler:
    if config.enabled:
        return UfwFirewall(config.command)
    return NullFirewall()
