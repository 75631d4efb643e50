from __future__ import annotations
import os, shutil
from typing import List, Optional

from trustchain_core.errors import ValidationFailed
from trustchain_core.logger import get_logger
from trustchain_core.storage.provider import Key, StorageProvider
from trustchain_core.utils import write_atomic

log = get_logger("trustchain.storage.fs")


class DirectoryStorage(StorageProvider):
    """Records are files under ``root``; key segments are path components."""

    def __init__(self, root: str):
        self.root = os.path.abspath(os.path.expanduser(root))
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key: Key) -> str:
        for part in key:
            if not part or part in (".", "..") or "/" in part or os.sep in part:
                raise ValidationFailed(f"invalid name {part!r}")
        return os.path.join(self.root, *key)

    def read(self, key: Key) -> Optional[bytes]:
        path = self._path(key)
        if not os.path.isfile(path):
            return None
        with open(path, "rb") as f:
            return f.read()

    def write(self, key: Key, data: bytes) -> None:
        path = self._path(key)
        write_atomic(path, data, mode=0o644)
        log.debug(f"wrote {path}")

    def delete(self, key: Key) -> bool:
        path = self._path(key)
        if not os.path.isfile(path):
            return False
        os.unlink(path)
        log.debug(f"deleted {path}")
        return True

    def delete_tree(self, key: Key) -> None:
        path = self._path(key)
        if os.path.isdir(path):
            shutil.rmtree(path)
            log.debug(f"deleted tree {path}")

    def list(self, key: Key) -> List[str]:
        path = self._path(key) if key else self.root
        if not os.path.isdir(path):
            return []
        return sorted(n for n in os.listdir(path) if not n.startswith("."))
