"""
Custom exception classes for the credential provisioner.
Provides specific error handling and better debugging.
"""

from typing import Optional


class ProvisioningError(Exception):
    """Base exception for provisioning operations."""
    pass


class InvalidProtocol(ProvisioningError):
    """Raised when a protocol tag does not name a supported account type."""

    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"Unknown account type '{tag}'")


class DuplicateCredential(ProvisioningError):
    """Raised when the identity field of a new credential is already in use."""

    def __init__(self, protocol: str, identity: str):
        self.protocol = protocol
        self.identity = identity
        super().__init__(f"A {protocol} credential with this identity already exists")


class NotFound(ProvisioningError):
    """Raised when no credential matches the given identity field."""

    def __init__(self, protocol: str, identity: str):
        self.protocol = protocol
        self.identity = identity
        super().__init__(f"No {protocol} credential matches the given identity")


class Forbidden(ProvisioningError):
    """Raised when the device binding supplied for a deletion does not match."""

    def __init__(self, protocol: str, identity: str):
        self.protocol = protocol
        self.identity = identity
        super().__init__(f"Device binding mismatch for {protocol} credential")


class PersistenceError(ProvisioningError):
    """
    Raised when a configuration or roster document cannot be read, decoded,
    encoded or written. After a mutation the final on-disk state is unknown;
    callers should re-read before retrying.
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Document '{path}': {reason}")


class InconsistentDocuments(PersistenceError):
    """Raised when the configuration and roster documents disagree about a credential."""

    def __init__(self, path: str, identity: str, missing_from: str):
        self.identity = identity
        self.missing_from = missing_from
        super().__init__(path, f"credential present in one document but missing from the {missing_from}")


class PartialWrite(PersistenceError):
    """
    Raised when the configuration document was replaced but the roster
    document was not. The pair is left inconsistent on disk.
    """

    def __init__(self, path: str, committed: str, reason: str):
        self.committed = committed
        super().__init__(path, f"{reason}; '{committed}' was already replaced")


class FirewallError(ProvisioningError):
    """Raised when a firewall rule cannot be added or removed."""

    def __init__(self, port: int, operation: str, reason: str):
        self.port = port
        self.operation = operation
        self.reason = reason
        super().__init__(f"Firewall {operation} for port {port} failed: {reason}")


class RemoteStoreError(ProvisioningError):
    """Base class for failures talking to the remote VPN administration service."""

    def __init__(self, method: str, reason: str):
        self.method = method
        self.reason = reason
        super().__init__(f"Remote call '{method}' failed: {reason}")


class RemoteUnavailable(RemoteStoreError):
    """Raised on transport failures or undecodable responses."""
    pass


class CorrelationMismatch(RemoteStoreError):
    """Raised when a response echoes a different request id than the one sent."""

    def __init__(self, method: str, expected: str, received: Optional[str]):
        self.expected = expected
        self.received = received
        super().__init__(method, f"expected response id '{expected}', got '{received}'")


class RemoteRejected(RemoteStoreError):
    """Raised when the remote service answers with a JSON-RPC error object."""

    def __init__(self, method: str, code: Optional[int], message: str):
        self.code = code
        super().__init__(method, f"error {code}: {message}")


class MissingDeviceBinding(ProvisioningError):
    """Raised when a locked descriptor is requested for a credential without a device id."""

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__("Unable to generate a locked descriptor without a device id")


class ValidationError(ProvisioningError):
    """Raised when input validation fails."""

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Validation failed for {field}: {reason}")


class ConfigurationError(ProvisioningError):
    """Raised when configuration is invalid or missing."""
    pass
