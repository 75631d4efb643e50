# trustchain_core/context.py

from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Optional

from .constants import DEFAULT_KEYS_DIR, ENV_KEYS_DIR
from .errors import NotFound, ValidationFailed
from .keystore import KeyStore
from .resolver import KeyResolver
from .storage import Store, StorageProvider, load_storage_provider
from .storage.store import read_context


@dataclass
class Context:
    """
    Everything one invocation needs, built once and passed to every action:
    the claim store for the selected operator, the key store, and the
    current account selection.
    """
    store: Store
    keystore: KeyStore
    account: Optional[str] = None

    @property
    def resolver(self) -> KeyResolver:
        return KeyResolver(self.keystore)

    @property
    def operator(self) -> str:
        return self.store.operator

    def account_name(self, name: Optional[str] = None) -> str:
        """Explicit account, else the selected one."""
        name = name or self.account or self.store.current_account
        if not name:
            raise ValidationFailed("an account is required")
        return name

    @classmethod
    def load(
        cls,
        config: dict | None = None,
        operator: Optional[str] = None,
        account: Optional[str] = None,
        provider: Optional[StorageProvider] = None,
    ) -> "Context":
        config = config or {}
        provider = provider or load_storage_provider(config)
        keys_dir = config.get("keys_dir") or os.getenv(ENV_KEYS_DIR, DEFAULT_KEYS_DIR)

        if not operator:
            operator = read_context(provider).get("operator")
        if not operator:
            raise NotFound("no operator is selected")

        store = Store(provider, operator)
        return cls(store=store, keystore=KeyStore(keys_dir), account=account)
