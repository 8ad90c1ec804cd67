"""
Application configuration loaded from the environment.
"""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional

from dotenv import load_dotenv

from fileferry.services.storage.exceptions import ConfigurationError
from fileferry.services.storage.factory import StorageSettings


@dataclass(frozen=True)
class AppSettings:
    storage: StorageSettings
    blocked_ips: FrozenSet[str] = field(default_factory=frozenset)
    proxy_fix_x_for: int = 1
    cors_allow_origin: str = '*'
    rate_limits: str = '1000 per hour'
    log_level: str = 'INFO'
    host: str = '127.0.0.1'
    port: int = 8080

    def is_blocked(self, ip: Optional[str]) -> bool:
        return bool(ip) and ip in self.blocked_ips


def _get(env: Mapping[str, str], key: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(key, default)
    if value is None:
        return None
    value = value.split(' #')[0].strip()
    return value or default


def _get_bool(env: Mapping[str, str], key: str, default: str) -> bool:
    return (_get(env, key, default) or default).lower() == 'true'


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    value = _get(env, key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got '{value}'") from exc


def load_settings(environ: Optional[Mapping[str, str]] = None) -> AppSettings:
    """
    Build application settings from environment variables.

    Args:
        environ: Mapping to read instead of ``os.environ``; when omitted, a
            ``.env`` file in the working directory is loaded first

    Returns:
        AppSettings: Validated, immutable settings

    Raises:
        ConfigurationError: If a value is missing or malformed
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    storage = StorageSettings(
        backend=(_get(environ, 'FILE_STORAGE_BACKEND', 'local') or 'local').lower(),
        transfer_mode=(_get(environ, 'FILE_TRANSFER_MODE', 'proxy') or 'proxy').lower(),
        local_root=_get(environ, 'FILE_STORAGE_DIR', 'files'),
        max_upload_size=_get_int(environ, 'MAX_UPLOAD_SIZE', 100 * 1024 * 1024),
        signed_url_ttl_seconds=_get_int(environ, 'SIGNED_URL_TTL_SECONDS', 1800),
        signing_secret=_get(environ, 'SIGNING_SECRET'),
        public_base_url=_get(environ, 'PUBLIC_BASE_URL', '') or '',
        s3_bucket_name=_get(environ, 'S3_BUCKET_NAME'),
        s3_region=_get(environ, 'S3_REGION'),
        s3_endpoint_url=_get(environ, 'S3_ENDPOINT_URL'),
        s3_access_key_id=_get(environ, 'S3_ACCESS_KEY_ID'),
        s3_secret_access_key=_get(environ, 'S3_SECRET_ACCESS_KEY'),
        s3_session_token=_get(environ, 'S3_SESSION_TOKEN'),
        s3_use_path_style=_get_bool(environ, 'S3_USE_PATH_STYLE', 'false'),
        s3_verify_ssl=_get_bool(environ, 'S3_VERIFY_SSL', 'true'),
    ).validate()

    blocked = _get(environ, 'BLOCKED_IPS', '') or ''

    return AppSettings(
        storage=storage,
        blocked_ips=frozenset(ip.strip() for ip in blocked.split(',') if ip.strip()),
        proxy_fix_x_for=_get_int(environ, 'PROXY_FIX_X_FOR', 1),
        cors_allow_origin=_get(environ, 'CORS_ALLOW_ORIGIN', '*'),
        rate_limits=_get(environ, 'RATE_LIMITS', '1000 per hour'),
        log_level=(_get(environ, 'LOG_LEVEL', 'INFO') or 'INFO').upper(),
        host=_get(environ, 'HOST', '127.0.0.1'),
        port=_get_int(environ, 'PORT', 8080),
    )
