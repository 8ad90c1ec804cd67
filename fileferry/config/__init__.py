"""Configuration for the FileFerry application."""

from .app_config import AppSettings, load_settings
from .version import get_version

__all__ = ['AppSettings', 'load_settings', 'get_version']
