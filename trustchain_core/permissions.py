# trustchain_core/permissions.py

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from .errors import ValidationFailed
from .utils import parse_duration


class Direction(str, Enum):
    PUB = "pub"
    SUB = "sub"


class Mode(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


def _canonical(items: Iterable[str]) -> List[str]:
    return sorted({s.strip() for s in items if s and s.strip()})


@dataclass
class Permission:
    """Allow/deny subject patterns for one direction. Kept sorted and unique."""
    allow: List[str] = field(default_factory=list)
    deny: List[str] = field(default_factory=list)

    def _get(self, mode: Mode) -> List[str]:
        return self.allow if mode is Mode.ALLOW else self.deny

    def _set(self, mode: Mode, values: List[str]) -> None:
        if mode is Mode.ALLOW:
            self.allow = values
        else:
            self.deny = values

    def add(self, mode: Mode, *patterns: str) -> None:
        self._set(mode, _canonical([*self._get(mode), *patterns]))

    def remove(self, mode: Mode, *patterns: str) -> None:
        drop = {p.strip() for p in patterns}
        self._set(mode, [p for p in self._get(mode) if p not in drop])

    def is_empty(self) -> bool:
        return not self.allow and not self.deny

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.allow:
            d["allow"] = list(self.allow)
        if self.deny:
            d["deny"] = list(self.deny)
        return d

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Permission":
        data = data or {}
        return cls(allow=_canonical(data.get("allow", [])), deny=_canonical(data.get("deny", [])))


@dataclass
class ResponsePermission:
    """Permission to publish to reply subjects. 0 means unlimited / unbounded."""
    max_msgs: int = 0
    expires: int = 0  # milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {"max": self.max_msgs, "ttl": self.expires}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResponsePermission":
        return cls(max_msgs=int(data.get("max", 0)), expires=int(data.get("ttl", 0)))


@dataclass
class PermissionSet:
    pub: Permission = field(default_factory=Permission)
    sub: Permission = field(default_factory=Permission)
    resp: Optional[ResponsePermission] = None

    def _direction(self, direction: Direction) -> Permission:
        return self.pub if Direction(direction) is Direction.PUB else self.sub

    def add(self, direction: Direction, mode: Mode, *patterns: str) -> None:
        """Idempotent; patterns are not checked against the subject grammar."""
        self._direction(direction).add(Mode(mode), *patterns)

    def add_pubsub(self, mode: Mode, *patterns: str) -> None:
        self.add(Direction.PUB, mode, *patterns)
        self.add(Direction.SUB, mode, *patterns)

    def remove(self, direction: Direction, mode: Mode, *patterns: str) -> None:
        self._direction(direction).remove(Mode(mode), *patterns)

    def remove_pubsub(self, mode: Mode, *patterns: str) -> None:
        self.remove(Direction.PUB, mode, *patterns)
        self.remove(Direction.SUB, mode, *patterns)

    def set_response(self, max_msgs: int = 0, ttl: int = 0) -> None:
        if max_msgs < 0 or ttl < 0:
            raise ValidationFailed("response permission limits must not be negative")
        self.resp = ResponsePermission(max_msgs=max_msgs, expires=ttl)

    def remove_response(self) -> None:
        self.resp = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if not self.pub.is_empty():
            d["pub"] = self.pub.to_dict()
        if not self.sub.is_empty():
            d["sub"] = self.sub.to_dict()
        if self.resp is not None:
            d["resp"] = self.resp.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PermissionSet":
        data = data or {}
        resp = data.get("resp")
        return cls(
            pub=Permission.from_dict(data.get("pub")),
            sub=Permission.from_dict(data.get("sub")),
            resp=ResponsePermission.from_dict(resp) if resp is not None else None,
        )


@dataclass
class PermissionEdit:
    """
    A complete permission mutation collected before anything is signed.
    ``*_pubsub`` lists expand into independent pub and sub edits.
    ``response_ttl`` is milliseconds, or a duration string such as ``250ms``.
    """
    allow_pub: List[str] = field(default_factory=list)
    allow_sub: List[str] = field(default_factory=list)
    allow_pubsub: List[str] = field(default_factory=list)
    deny_pub: List[str] = field(default_factory=list)
    deny_sub: List[str] = field(default_factory=list)
    deny_pubsub: List[str] = field(default_factory=list)
    remove: List[str] = field(default_factory=list)
    response_max: Optional[int] = None
    response_ttl: Optional[Union[int, str]] = None
    remove_response: bool = False

    def validate(self) -> None:
        setting = self.response_max is not None or self.response_ttl is not None
        if setting and self.remove_response:
            raise ValidationFailed("response permissions cannot be set and removed in the same edit")
        for v in (self.response_max, self.ttl_ms()):
            if v is not None and v < 0:
                raise ValidationFailed("response permission limits must not be negative")

    def ttl_ms(self) -> Optional[int]:
        if isinstance(self.response_ttl, str):
            return parse_duration(self.response_ttl)
        return self.response_ttl

    def apply(self, perms: PermissionSet) -> None:
        self.validate()
        if self.remove:
            for mode in Mode:
                perms.remove_pubsub(mode, *self.remove)
        perms.add(Direction.PUB, Mode.ALLOW, *self.allow_pub)
        perms.add(Direction.SUB, Mode.ALLOW, *self.allow_sub)
        perms.add_pubsub(Mode.ALLOW, *self.allow_pubsub)
        perms.add(Direction.PUB, Mode.DENY, *self.deny_pub)
        perms.add(Direction.SUB, Mode.DENY, *self.deny_sub)
        perms.add_pubsub(Mode.DENY, *self.deny_pubsub)

        if self.remove_response:
            perms.remove_response()
        elif self.response_max is not None or self.response_ttl is not None:
            current = perms.resp or ResponsePermission()
            perms.set_response(
                max_msgs=current.max_msgs if self.response_max is None else self.response_max,
                ttl=current.expires if self.response_ttl is None else self.ttl_ms(),
            )
