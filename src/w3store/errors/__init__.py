"""
Exception hierarchy for w3store.

Every error raised by the package derives from W3StoreError.
"""

from w3store.errors.base import W3StoreError
from w3store.errors.storage import (
    ArchiveFormatError,
    ContentNotFoundError,
    CredentialsError,
    FileSizeLimitError,
    GatewayDownloadError,
    InvalidIdentifierError,
    NotSupportedError,
    RemoteStoreError,
    SessionFinalizingError,
    StorageError,
    StoreFailureError,
    StoreTimeoutError,
)

__all__ = [
    "W3StoreError",
    "StorageError",
    "InvalidIdentifierError",
    "ContentNotFoundError",
    "StoreFailureError",
    "RemoteStoreError",
    "StoreTimeoutError",
    "SessionFinalizingError",
    "ArchiveFormatError",
    "CredentialsError",
    "NotSupportedError",
    "GatewayDownloadError",
    "FileSizeLimitError",
]
