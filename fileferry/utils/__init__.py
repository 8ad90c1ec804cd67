"""
Utility functions package for FileFerry.

This package contains:
- File extension validation
- Download hint parsing
"""

from .extensions import (
    MAX_EXTENSION_LENGTH,
    ExtensionError,
    FileExtension,
    parse_extension,
)

from .hints import (
    attachment_disposition,
    parse_hints,
    parse_type_hint,
)

__all__ = [
    # Extensions
    'MAX_EXTENSION_LENGTH',
    'ExtensionError',
    'FileExtension',
    'parse_extension',
    # Hints
    'attachment_disposition',
    'parse_hints',
    'parse_type_hint',
]
