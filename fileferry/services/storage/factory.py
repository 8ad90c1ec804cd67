"""Factory for configuring file storage backends from settings."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigurationError
from .local import LocalStorageBackend
from .s3 import S3StorageBackend
from .signing import DEFAULT_TTL_SECONDS, UrlSigner

logger = logging.getLogger(__name__)

BACKEND_LOCAL = 'local'
BACKEND_S3 = 's3'
BACKENDS = (BACKEND_LOCAL, BACKEND_S3)

MODE_PROXY = 'proxy'
MODE_SIGNED = 'signed'
TRANSFER_MODES = (MODE_PROXY, MODE_SIGNED)


@dataclass(frozen=True)
class StorageSettings:
    backend: str = BACKEND_LOCAL
    transfer_mode: str = MODE_PROXY
    local_root: str = 'files'
    max_upload_size: int = 100 * 1024 * 1024
    signed_url_ttl_seconds: int = DEFAULT_TTL_SECONDS
    signing_secret: Optional[str] = None
    public_base_url: str = ''
    s3_bucket_name: Optional[str] = None
    s3_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    s3_session_token: Optional[str] = None
    s3_use_path_style: bool = False
    s3_verify_ssl: bool = True

    def validate(self) -> 'StorageSettings':
        if self.backend not in BACKENDS:
            raise ConfigurationError(f"Unknown storage backend: {self.backend}. Available: {list(BACKENDS)}")
        if self.transfer_mode not in TRANSFER_MODES:
            raise ConfigurationError(
                f"Unknown transfer mode: {self.transfer_mode}. Available: {list(TRANSFER_MODES)}"
            )
        if self.backend == BACKEND_S3 and not self.s3_bucket_name:
            raise ConfigurationError('FILE_STORAGE_BACKEND=s3 but S3_BUCKET_NAME is not configured')
        if self.max_upload_size < 0:
            raise ConfigurationError('MAX_UPLOAD_SIZE must not be negative')
        if self.signed_url_ttl_seconds <= 0:
            raise ConfigurationError('SIGNED_URL_TTL_SECONDS must be positive')
        return self


def build_local_backend(settings: StorageSettings) -> LocalStorageBackend:
    return LocalStorageBackend(settings.local_root)


def build_s3_backend(settings: StorageSettings) -> S3StorageBackend:
    return S3StorageBackend(
        bucket=settings.s3_bucket_name,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
        access_key_id=settings.s3_access_key_id,
        secret_access_key=settings.s3_secret_access_key,
        session_token=settings.s3_session_token,
        use_path_style=settings.s3_use_path_style,
        verify_ssl=settings.s3_verify_ssl,
    )


def build_signer(settings: StorageSettings) -> UrlSigner:
    secret = settings.signing_secret
    if not secret:
        logger.warning('SIGNING_SECRET not set, generated a random one; signed URLs will not survive a restart')
        secret = secrets.token_urlsafe(32)
    return UrlSigner(secret, base_url=settings.public_base_url, default_ttl=settings.signed_url_ttl_seconds)
