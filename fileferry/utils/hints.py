"""Parsing of the optional ``type_hint`` / ``ext_hint`` download parameters."""

import re
from email.utils import encode_rfc2231
from typing import Mapping, Optional, Tuple

from werkzeug.http import parse_options_header

from fileferry.services.storage.exceptions import InvalidQueryError
from .extensions import FileExtension, parse_optional_extension

_TOKEN = r"[A-Za-z0-9!#$&^_.+-]+"
_MIME_RE = re.compile(rf"^{_TOKEN}/{_TOKEN}$")


def parse_type_hint(value: Optional[str]) -> Optional[str]:
    """Validate a MIME type hint such as ``text/plain; charset=utf-8``."""
    if value is None:
        return None
    mimetype, _ = parse_options_header(value)
    if not mimetype or not _MIME_RE.match(mimetype):
        raise InvalidQueryError(f"'{value}' is not a valid MIME type")
    return value.strip()


def parse_hints(args: Mapping[str, str]) -> Tuple[Optional[str], Optional[FileExtension]]:
    """Extract and validate both hints from request query arguments."""
    type_hint = parse_type_hint(args.get('type_hint'))
    ext_hint = parse_optional_extension(args.get('ext_hint'))
    return type_hint, ext_hint


def attachment_disposition(filename: str) -> str:
    """Build a Content-Disposition value, RFC 2231 encoding non-ASCII names."""
    safe_name = filename.replace('"', '').replace('\\', '')
    try:
        safe_name.encode('ascii')
        return f'attachment; filename="{safe_name}"'
    except UnicodeEncodeError:
        return f"attachment; filename*={encode_rfc2231(safe_name, charset='utf-8')}"
