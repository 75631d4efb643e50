"""
trustchain_core.revocations
---------------------------
Time-indexed revocation state. Each entry maps a target public key (or ``*``
for every target) to a cutoff in epoch seconds; anything issued at or before
the cutoff is revoked.
"""

from __future__ import annotations
from typing import Dict, Iterator, Optional

from .constants import WILDCARD_TARGET
from .utils import TimeLike, now_unix, to_unix


class RevocationList:
    def __init__(self, entries: Optional[Dict[str, int]] = None):
        self._entries: Dict[str, int] = {k: int(v) for k, v in (entries or {}).items()}

    def revoke(self, target: str, at: Optional[TimeLike] = None) -> int:
        """
        Record a cutoff for ``target``. Without ``at`` the cutoff is the wall
        clock at call time. An existing cutoff is overwritten unconditionally.
        """
        cutoff = now_unix() if at is None else to_unix(at)
        self._entries[target] = cutoff
        return cutoff

    def clear(self, target: str) -> None:
        self._entries.pop(target, None)

    def is_revoked_at(self, target: str, issued_at: TimeLike) -> bool:
        t = to_unix(issued_at)
        for key in (target, WILDCARD_TARGET):
            cutoff = self._entries.get(key)
            if cutoff is not None and t <= cutoff:
                return True
        return False

    def cutoff(self, target: str) -> Optional[int]:
        return self._entries.get(target)

    def to_dict(self) -> Dict[str, int]:
        return dict(sorted(self._entries.items()))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, int]]) -> "RevocationList":
        return cls(data)

    def __contains__(self, target: str) -> bool:
        return target in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other) -> bool:
        return isinstance(other, RevocationList) and self._entries == other._entries

    def __repr__(self) -> str:
        return f"RevocationList({self.to_dict()!r})"
