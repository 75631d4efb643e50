# trustchain_core/storage/__init__.py

from .provider import StorageProvider
from .providers.memory_provider import InMemoryStorage
from .providers.fs_provider import DirectoryStorage
from .store import Store
from trustchain_core.constants import DEFAULT_HOME, ENV_HOME, ENV_STORAGE_PROVIDER
import os


def load_storage_provider(config: dict | None = None) -> StorageProvider:
    """
    Factory resolver for selecting the claim storage backend.

        - fs (default): directory tree under TRUSTCHAIN_HOME
        - memory
    """
    config = config or {}
    provider = config.get("provider") or os.getenv(ENV_STORAGE_PROVIDER, "fs")

    if provider == "memory":
        return InMemoryStorage()

    if provider == "fs":
        root = config.get("home") or os.getenv(ENV_HOME, DEFAULT_HOME)
        return DirectoryStorage(root)

    raise ValueError(f"Unknown storage provider: {provider}")


__all__ = [
    "StorageProvider",
    "InMemoryStorage",
    "DirectoryStorage",
    "Store",
    "load_storage_provider",
]
