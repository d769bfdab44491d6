# Core module exports
from .types import *
from .exceptions import *

__all__ = [
    'Client',
    'SSTPUser',
    'ConsistencyReport',
    'DescriptorSettings',
    'ProvisioningError',
    'InvalidProtocol',
    'DuplicateCredential',
    'NotFound',
    'Forbidden',
    'PersistenceError',
    'InconsistentDocuments',
    'PartialWrite',
    'FirewallError',
    'RemoteStoreError',
    'RemoteUnavailable',
    'CorrelationMismatch',
    'RemoteRejected',
    'MissingDeviceBinding',
    'ValidationError',
    'ConfigurationError'
]
