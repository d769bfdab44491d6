# Data module exports
from .document_store import DocumentPair
from .file_record_store import FileRecordStore, VmessStore, ShadowsocksStore, create_file_store
from .sstp_client import SSTPClient

__all__ = [
    'DocumentPair',
    'FileRecordStore',
    'VmessStore',
    'ShadowsocksStore',
    'create_file_store',
    'SSTPClient'
]
