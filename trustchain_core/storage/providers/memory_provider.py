from typing import Dict, List, Optional, Tuple
from trustchain_core.storage.provider import Key, StorageProvider


class InMemoryStorage(StorageProvider):
    def __init__(self):
        self.records: Dict[Tuple[str, ...], bytes] = {}

    def read(self, key: Key) -> Optional[bytes]:
        return self.records.get(tuple(key))

    def write(self, key: Key, data: bytes) -> None:
        self.records[tuple(key)] = bytes(data)

    def delete(self, key: Key) -> bool:
        return self.records.pop(tuple(key), None) is not None

    def delete_tree(self, key: Key) -> None:
        prefix = tuple(key)
        for k in [k for k in self.records if k[: len(prefix)] == prefix]:
            del self.records[k]

    def list(self, key: Key) -> List[str]:
        prefix = tuple(key)
        return sorted({k[len(prefix)] for k in self.records if len(k) > len(prefix) and k[: len(prefix)] == prefix})
