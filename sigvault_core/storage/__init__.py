# sigvault_core/storage/__init__.py

from .models import KeyMetadata, KeyRecord
from .provider import StorageProvider
from .providers.memory_provider import InMemoryStorage
from .providers.sqlite_provider import SQLiteStorage
from sigvault_core.constants import DEFAULT_DB_PATH
from sigvault_core.errors import InvalidInput
import os


def load_storage_provider(config: dict | None = None) -> StorageProvider:
    """
    Factory resolver for selecting the runtime storage backend.

        - sqlite (default)
        - memory
    """
    config = config or {}
    provider = config.get("provider") or os.getenv("SIGVAULT_STORAGE_PROVIDER", "sqlite")

    if provider == "memory":
        return InMemoryStorage()

    if provider == "sqlite":
        db_path = config.get("sqlite_path") or os.getenv("SIGVAULT_DB_PATH", DEFAULT_DB_PATH)
        return SQLiteStorage(str(db_path))

    raise InvalidInput(f"Unknown storage provider: {provider}")


__all__ = [
    "KeyMetadata",
    "KeyRecord",
    "StorageProvider",
    "InMemoryStorage",
    "SQLiteStorage",
    "load_storage_provider",
]
