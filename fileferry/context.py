"""Per-process application state shared read-only by all request handlers."""

from dataclasses import dataclass

from flask import current_app

from fileferry.config.app_config import AppSettings
from fileferry.services.storage.service import StorageService

EXTENSION_KEY = 'fileferry'


@dataclass(frozen=True)
class TransferContext:
    settings: AppSettings
    storage: StorageService


def get_context() -> TransferContext:
    return current_app.extensions[EXTENSION_KEY]
