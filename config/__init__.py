# Configuration module exports
from .app_config import AppConfig, get_config, set_config
from .constants import DescriptorConstants, ShadowsocksConstants, DocumentFiles, SSTPConstants

__all__ = [
    'AppConfig',
    'get_config',
    'set_config',
    'DescriptorConstants',
    'ShadowsocksConstants',
    'DocumentFiles',
    'SSTPConstants'
]
