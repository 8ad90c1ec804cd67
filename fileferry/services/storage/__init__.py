"""File storage and transfer services supporting local and S3 backends."""

from .exceptions import (
    AccessError,
    BlockedError,
    ConfigurationError,
    ContentReadError,
    CorruptedError,
    DeclaredLengthExceededError,
    IncompleteUploadError,
    InvalidQueryError,
    InvalidRangeError,
    NotFoundError,
    SignatureError,
    StorageIOError,
    TooLargeError,
    TransferError,
    UnsupportedOperationError,
)
from .factory import StorageSettings
from .interfaces import ByteRange, DownloadHandle, StoredFile, UploadHandle
from .service import StorageService, signed_file_path
from .signing import UrlSigner

__all__ = [
    'AccessError',
    'BlockedError',
    'ConfigurationError',
    'ContentReadError',
    'CorruptedError',
    'DeclaredLengthExceededError',
    'IncompleteUploadError',
    'InvalidQueryError',
    'InvalidRangeError',
    'NotFoundError',
    'SignatureError',
    'StorageIOError',
    'TooLargeError',
    'TransferError',
    'UnsupportedOperationError',
    'StorageSettings',
    'ByteRange',
    'DownloadHandle',
    'StoredFile',
    'UploadHandle',
    'StorageService',
    'signed_file_path',
    'UrlSigner',
]
