"""
HMAC-signed URLs for this server's own transfer endpoints.

Used when the storage backend cannot issue signed URLs itself. A URL is
authorized by two query parameters:

- ``expires``: Unix timestamp after which the URL is rejected
- ``signature``: HMAC-SHA256 over the method, the path and every other query parameter

The HTTP method is part of the signed message, so an upload (PUT) URL cannot
be replayed as a download (GET) URL. Changing the method, the path, any
parameter, or the expiry invalidates the signature.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from typing import Callable, Iterable, Mapping, Optional, Tuple, Union
from urllib.parse import urlencode

from .exceptions import SignatureError

logger = logging.getLogger(__name__)

EXPIRES_PARAM = 'expires'
SIGNATURE_PARAM = 'signature'
DEFAULT_TTL_SECONDS = 30 * 60

QueryParams = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def _items(params: Optional[QueryParams]):
    if params is None:
        return []
    if hasattr(params, 'getlist'):  # werkzeug MultiDict keeps repeated keys
        items = params.items(multi=True)
    elif hasattr(params, 'items'):
        items = params.items()
    else:
        items = params
    return [(str(k), str(v)) for k, v in items]


class UrlSigner:
    """Signs and verifies URLs with a process-wide shared secret."""

    def __init__(self, secret: Union[str, bytes], base_url: str = '', default_ttl: int = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError('UrlSigner requires a non-empty secret')
        self._secret = secret.encode('utf-8') if isinstance(secret, str) else bytes(secret)
        self.base_url = (base_url or '').rstrip('/')
        self.default_ttl = int(default_ttl)
        self._clock = clock

    @staticmethod
    def canonical_message(method: str, path: str, params: Iterable[Tuple[str, str]]) -> bytes:
        """Method, path and sorted query string, excluding the signature itself."""
        unsigned = sorted((k, v) for k, v in params if k != SIGNATURE_PARAM)
        return f"{method.upper()} {path}?{urlencode(unsigned)}".encode('utf-8')

    def _compute(self, method: str, path: str, params: Iterable[Tuple[str, str]]) -> str:
        mac = hmac.new(self._secret, self.canonical_message(method, path, params), hashlib.sha256).digest()
        return _b64url(mac)

    def sign(self, path: str, params: Optional[QueryParams] = None, ttl: Optional[int] = None,
             base_url: Optional[str] = None, method: str = 'GET') -> str:
        """
        Build a signed URL for ``path``.

        Args:
            path: Absolute URL path, e.g. ``/files/<uuid>``
            params: Extra query parameters covered by the signature
            ttl: Seconds until the URL expires (defaults to ``default_ttl``)
            base_url: Overrides the configured scheme and host prefix
            method: The only HTTP method the URL is valid for

        Returns:
            str: The full URL including ``expires`` and ``signature``
        """
        if not path.startswith('/'):
            path = f"/{path}"
        ttl = self.default_ttl if ttl is None else int(ttl)
        items = [(k, v) for k, v in _items(params) if k not in (EXPIRES_PARAM, SIGNATURE_PARAM)]
        items.append((EXPIRES_PARAM, str(int(self._clock()) + ttl)))
        signature = self._compute(method, path, items)
        query = urlencode(sorted(items) + [(SIGNATURE_PARAM, signature)])
        prefix = (base_url if base_url is not None else self.base_url).rstrip('/')
        return f"{prefix}{path}?{query}"

    def verify(self, path: str, params: Optional[QueryParams], method: str = 'GET') -> bool:
        """Return True only if ``params`` carry a valid, unexpired signature for ``method`` on ``path``."""
        items = _items(params)
        signatures = [v for k, v in items if k == SIGNATURE_PARAM]
        expiries = [v for k, v in items if k == EXPIRES_PARAM]
        if len(signatures) != 1 or len(expiries) != 1:
            logger.warning(f"Rejected signed URL for {path}: missing or repeated signature parameters")
            return False

        try:
            expires = int(expiries[0])
        except ValueError:
            logger.warning(f"Rejected signed URL for {path}: malformed expiry")
            return False

        expected = self._compute(method, path, items)
        if not hmac.compare_digest(expected.encode('ascii'), signatures[0].encode('utf-8')):
            logger.warning(f"Rejected signed URL for {path}: signature mismatch for {method}")
            return False

        if self._clock() > expires:
            logger.warning(f"Rejected signed URL for {path}: expired at {expires}")
            return False

        return True

    def require_valid(self, path: str, params: Optional[QueryParams], method: str = 'GET') -> None:
        if not self.verify(path, params, method):
            raise SignatureError()
