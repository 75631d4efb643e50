# trustchain_core/storage/provider.py
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

Key = Sequence[str]


class StorageProvider(ABC):
    """
    Byte-record backend addressed by a path of name segments, e.g.
    ``("acme", "accounts", "A", "A.jwt")``. Writes must replace records
    atomically: a reader sees either the old or the new record, never a
    partial one.
    """

    @abstractmethod
    def read(self, key: Key) -> Optional[bytes]: ...

    @abstractmethod
    def write(self, key: Key, data: bytes) -> None: ...

    @abstractmethod
    def delete(self, key: Key) -> bool: ...

    @abstractmethod
    def delete_tree(self, key: Key) -> None: ...

    @abstractmethod
    def list(self, key: Key) -> List[str]:
        """Names of the direct children of ``key`` (records and containers)."""

    def exists(self, key: Key) -> bool:
        return self.read(key) is not None
