"""Storage service facade over exactly one backend and one transfer mode."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional, Union
from uuid import UUID, uuid4

from .exceptions import (
    DeclaredLengthExceededError,
    IncompleteUploadError,
    StorageIOError,
    TooLargeError,
    TransferError,
    UnsupportedOperationError,
)
from .factory import (
    BACKEND_LOCAL,
    BACKEND_S3,
    MODE_PROXY,
    MODE_SIGNED,
    StorageSettings,
    build_local_backend,
    build_s3_backend,
    build_signer,
)
from .interfaces import DownloadHandle, StoredFile, UploadHandle
from .local import LocalStorageBackend
from .s3 import S3StorageBackend
from .signing import UrlSigner

logger = logging.getLogger(__name__)

SIGNED_FILES_PATH = '/files'


def signed_file_path(file_id: UUID) -> str:
    return f"{SIGNED_FILES_PATH}/{file_id}"


def _exact_length(content: Iterable[bytes], declared: int) -> Iterator[bytes]:
    """Pass ``content`` through, failing once it is longer or shorter than ``declared``."""
    received = 0
    for chunk in content:
        received += len(chunk)
        if received > declared:
            raise DeclaredLengthExceededError(received, declared)
        yield chunk
    if received < declared:
        raise IncompleteUploadError(received, declared)


class StorageService:
    """Facade to hide storage backend details from the HTTP layer.

    The backend kind and transfer mode are fixed at construction. Every
    operation either returns a value or raises a ``TransferError``; backend
    failures of any other type are wrapped as ``StorageIOError``.
    """

    def __init__(self, settings: StorageSettings, *, backend: Optional[Union[LocalStorageBackend, S3StorageBackend]] = None,
                 signer: Optional[UrlSigner] = None):
        self.settings = settings.validate()
        self.kind = settings.backend
        self.mode = settings.transfer_mode
        if backend is not None:
            self.backend = backend
        elif self.kind == BACKEND_S3:
            self.backend = build_s3_backend(settings)
        else:
            self.backend = build_local_backend(settings)
        self.signer = signer
        if self.signer is None and self.signs_locally:
            self.signer = build_signer(settings)

    def __str__(self) -> str:
        name = 'S3' if self.kind == BACKEND_S3 else 'Local Storage'
        return f"{name} ({self.mode})"

    @property
    def max_upload_size(self) -> int:
        return self.settings.max_upload_size

    @property
    def signs_locally(self) -> bool:
        """True when this server issues and verifies its own transfer URLs."""
        return self.mode == MODE_SIGNED and self.kind == BACKEND_LOCAL

    def _require_mode(self, mode: str) -> None:
        if self.mode != mode:
            raise UnsupportedOperationError()

    def check_upload_size(self, size: int) -> None:
        if size > self.max_upload_size:
            raise TooLargeError(size, self.max_upload_size)

    # --- Proxy model ---

    def write(self, name: str, content: Iterable[bytes], size: int) -> UUID:
        """Stream an upload of declared ``size`` into the backend."""
        self._require_mode(MODE_PROXY)
        self.check_upload_size(size)
        content = _exact_length(content, size)
        try:
            if self.kind == BACKEND_S3:
                file_id = self.backend.write(name, content, length=size)
            else:
                file_id = self.backend.write(name, content)
        except TransferError:
            raise
        except OSError as exc:
            raise StorageIOError() from exc
        logger.info(f"Stored file {file_id} ({size} bytes) in {self}")
        return file_id

    def read(self, file_id: UUID, range_request=None) -> StoredFile:
        self._require_mode(MODE_PROXY)
        return self._read(file_id, range_request)

    def _read(self, file_id: UUID, range_request=None) -> StoredFile:
        try:
            return self.backend.read(file_id, range_request)
        except TransferError:
            raise
        except OSError as exc:
            raise StorageIOError() from exc

    def read_name(self, file_id: UUID) -> str:
        stored = self.read(file_id)
        stored.close()
        return stored.name

    # --- Issuance model ---

    def request_upload(self, size: int, base_url: Optional[str] = None) -> UploadHandle:
        """Mint an identifier and a time-boxed URL to upload ``size`` bytes to it."""
        self._require_mode(MODE_SIGNED)
        self.check_upload_size(size)
        file_id = uuid4()
        ttl = self.settings.signed_url_ttl_seconds
        if self.kind == BACKEND_S3:
            url = self.backend.presign_upload_url(file_id, ttl, content_length=size)
        else:
            url = self.signer.sign(signed_file_path(file_id), {'size': str(size)}, ttl=ttl, base_url=base_url,
                                  method='PUT')
        logger.info(f"Issued upload URL for {file_id} ({size} bytes) via {self}")
        return UploadHandle(url=url, uuid=file_id)

    def request_download(self, file_id: UUID, type_hint: Optional[str] = None, ext_hint: Optional[str] = None,
                         base_url: Optional[str] = None) -> DownloadHandle:
        """Issue a time-boxed URL to download ``file_id``.

        The hints only shape the eventual response headers.
        """
        # Import here to avoid circular imports
        from fileferry.utils.hints import attachment_disposition

        self._require_mode(MODE_SIGNED)
        ttl = self.settings.signed_url_ttl_seconds
        if self.kind == BACKEND_S3:
            disposition = attachment_disposition(f"{file_id}{ext_hint}") if ext_hint else None
            url = self.backend.presign_download_url(
                file_id, ttl,
                response_content_type=type_hint,
                response_content_disposition=disposition,
            )
        else:
            params = {}
            if type_hint:
                params['type_hint'] = type_hint
            if ext_hint:
                params['ext_hint'] = str(ext_hint)
            url = self.signer.sign(signed_file_path(file_id), params, ttl=ttl, base_url=base_url, method='GET')
        return DownloadHandle(url=url)

    def _require_local_signing(self) -> None:
        if not self.signs_locally:
            raise UnsupportedOperationError()

    def verify_signed_request(self, path: str, args, method: str = 'GET') -> None:
        """Raise ``SignatureError`` unless ``args`` sign ``method`` on ``path``.

        Upload URLs are signed for PUT and download URLs for GET, so neither
        verifies as the other.
        """
        self._require_local_signing()
        self.signer.require_valid(path, args, method)

    def accept_signed_upload(self, file_id: UUID, name: str, content: Iterable[bytes], size: int) -> UUID:
        """Store the body of a verified signed PUT under its pre-minted identifier."""
        self._require_local_signing()
        self.check_upload_size(size)
        try:
            self.backend.write(name, _exact_length(content, size), file_id=file_id)
        except TransferError:
            raise
        except OSError as exc:
            raise StorageIOError() from exc
        logger.info(f"Stored signed upload {file_id} ({size} bytes)")
        return file_id

    def open_signed_download(self, file_id: UUID, range_request=None) -> StoredFile:
        self._require_local_signing()
        return self._read(file_id, range_request)

