"""
trustchain_core.utils
---------------------
Lightweight helpers for base64url/base32 coding, timestamping, canonical JSON
serialization and the time expressions accepted by edit/revoke operations.
These functions keep all claim signing deterministic.
"""

from __future__ import annotations
import base64, hashlib, json, math, os, random, re, tempfile, time
from datetime import datetime, timezone
from fractions import Fraction
from typing import Any, Dict, Optional, Union

from .errors import ValidationFailed

TimeLike = Union[int, float, datetime]


def b64e(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode("ascii").rstrip("=")


def b64d(s: str) -> bytes:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("ascii"))


def b32e(b: bytes) -> str:
    return base64.b32encode(b).decode("ascii").rstrip("=")


def b32d(s: str) -> bytes:
    pad = "=" * (-len(s) % 8)
    return base64.b32decode((s + pad).encode("ascii"))


def now_unix() -> int:
    return int(time.time())


def to_unix(t: Optional[TimeLike]) -> Optional[int]:
    if t is None:
        return None
    if isinstance(t, datetime):
        if t.tzinfo is None:
            t = t.replace(tzinfo=timezone.utc)
        return int(t.timestamp())
    return int(t)


def canonical_json(obj: Dict[str, Any]) -> bytes:
    # Deterministic, minimal JSON for signing
    return json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode("utf-8")


def claim_hash(obj: Dict[str, Any]) -> str:
    """Base32 SHA-256 of the canonical form, used as the claim id (jti)."""
    return b32e(hashlib.sha256(canonical_json(obj)).digest())


# ---------------------------------------------------------------------------
# Time expressions
# ---------------------------------------------------------------------------

_UNITS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 7 * 86400,
    "M": 30 * 86400,
    "y": 365 * 86400,
}
_RELATIVE = re.compile(r"^([+-]?)(\d+)([smhdwMy])$")
_GO_DURATION = re.compile(r"(\d+(?:\.\d+)?)(ms|us|µs|ns|s|m|h)")
# nanoseconds per unit
_GO_UNITS = {"ns": 1, "us": 10**3, "µs": 10**3, "ms": 10**6, "s": 10**9, "m": 60 * 10**9, "h": 3600 * 10**9}


def parse_time_expr(expr: Optional[str], now: Optional[int] = None) -> Optional[int]:
    """
    Parse a point in time given as:

    - ``""`` / ``None``  -> None (unspecified)
    - ``"0"``            -> 0 (no limit)
    - digits             -> unix seconds
    - ``YYYY-MM-DD``     -> midnight UTC of that date
    - ``[+-]N<unit>``    -> relative to now; unit one of s m h d w M y
    """
    if expr is None:
        return None
    expr = expr.strip()
    if expr == "":
        return None
    if expr.isdigit():
        return int(expr)
    base = now_unix() if now is None else now
    m = _RELATIVE.match(expr)
    if m:
        sign, count, unit = m.groups()
        delta = int(count) * _UNITS[unit]
        return base - delta if sign == "-" else base + delta
    try:
        d = datetime.strptime(expr, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        raise ValidationFailed(f"invalid time expression {expr!r}")
    return int(d.timestamp())


def parse_duration(expr: Optional[str]) -> int:
    """
    Parse a duration such as ``5s``, ``250ms`` or ``1h30m`` into milliseconds.
    A non-zero duration never parses to 0; sub-millisecond remainders round up.
    """
    if not expr:
        return 0
    expr = expr.strip()
    if expr == "0":
        return 0
    pos, total = 0, Fraction(0)
    for m in _GO_DURATION.finditer(expr):
        if m.start() != pos:
            break
        total += Fraction(m.group(1)) * _GO_UNITS[m.group(2)]
        pos = m.end()
    if pos != len(expr) or pos == 0:
        raise ValidationFailed(f"invalid duration {expr!r}")
    return math.ceil(total / 10**6)


_ADJECTIVES = ["amber", "brisk", "calm", "dusty", "eager", "fuzzy", "gentle", "hollow", "icy", "jolly"]
_NOUNS = ["badger", "comet", "delta", "ember", "falcon", "glacier", "harbor", "island", "juniper", "kestrel"]


def random_name() -> str:
    return f"{random.choice(_ADJECTIVES)}_{random.choice(_NOUNS)}"


def write_atomic(path: str, data: bytes, mode: int = 0o644) -> None:
    """
    Write ``data`` next to ``path`` and rename it into place. The temp file is
    created with ``mode`` so private material is never readable by others.
    """
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    try:
        os.fchmod(fd, mode)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
