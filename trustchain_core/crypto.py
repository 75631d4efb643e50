"""
trustchain_core.crypto
----------------------
Role-tagged Ed25519 key pairs.

A public key is the base32 text of ``role byte | raw key | crc16`` so the
first letter names its role (``O`` operator, ``A`` account, ``U`` user,
``C`` cluster). A seed is ``S`` followed by the role letter and the raw
private seed, with the same checksum. Key material never leaves the
KeyPair unless KeyStore is asked to persist it.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ed25519

from .errors import KeyMismatch, NoSigningKey, ValidationFailed
from .utils import b32d, b32e


class Role(Enum):
    OPERATOR = ("operator", 14 << 3)
    ACCOUNT = ("account", 0)
    USER = ("user", 20 << 3)
    CLUSTER = ("cluster", 2 << 3)

    def __init__(self, label: str, prefix_byte: int):
        self.label = label
        self.prefix_byte = prefix_byte

    @classmethod
    def from_byte(cls, b: int) -> "Role":
        for r in cls:
            if r.prefix_byte == b:
                return r
        raise ValidationFailed("unknown key role")

    def __str__(self) -> str:
        return self.label


_SEED_BYTE = 18 << 3


def crc16(data: bytes) -> int:
    """CRC-16/XMODEM."""
    crc = 0
    for b in data:
        crc ^= b << 8
        for _ in range(8):
            crc = ((crc << 1) ^ 0x1021) if crc & 0x8000 else (crc << 1)
            crc &= 0xFFFF
    return crc


def _with_crc(raw: bytes) -> bytes:
    return raw + crc16(raw).to_bytes(2, "little")


def _check_crc(raw: bytes) -> bytes:
    if len(raw) < 3:
        raise ValidationFailed("invalid key encoding")
    body, crc = raw[:-2], int.from_bytes(raw[-2:], "little")
    if crc16(body) != crc:
        raise ValidationFailed("invalid key checksum")
    return body


def encode_public(role: Role, raw: bytes) -> str:
    return b32e(_with_crc(bytes([role.prefix_byte]) + raw))


def encode_seed(role: Role, raw: bytes) -> str:
    b1 = _SEED_BYTE | (role.prefix_byte >> 5)
    b2 = (role.prefix_byte & 31) << 3
    return b32e(_with_crc(bytes([b1, b2]) + raw))


def decode_public(text: str) -> Tuple[Role, bytes]:
    try:
        body = _check_crc(b32d(text.strip()))
    except ValueError:
        raise ValidationFailed("invalid key encoding")
    if len(body) != 33:
        raise ValidationFailed("invalid public key length")
    return Role.from_byte(body[0]), body[1:]


def decode_seed(text: str) -> Tuple[Role, bytes]:
    try:
        body = _check_crc(b32d(text.strip()))
    except ValueError:
        raise ValidationFailed("invalid key encoding")
    if len(body) != 34 or (body[0] & 0xF8) != _SEED_BYTE:
        raise ValidationFailed("invalid seed")
    prefix = ((body[0] & 7) << 5) | ((body[1] & 0xF8) >> 3)
    return Role.from_byte(prefix), body[2:]


def is_seed(text: str) -> bool:
    return text.strip().startswith("S") and len(text.strip()) == 58


def is_public_key(text: str, role: Optional[Role] = None) -> bool:
    try:
        r, _ = decode_public(text)
    except ValidationFailed:
        return False
    return role is None or r is role


# --------- Ed25519 (sign/verify) ----------
def ed25519_verify(pub_raw: bytes, sig: bytes, data: bytes) -> bool:
    try:
        ed25519.Ed25519PublicKey.from_public_bytes(pub_raw).verify(sig, data)
        return True
    except (InvalidSignature, ValueError):
        return False


@dataclass(frozen=True)
class KeyPair:
    role: Role
    public_key: str
    seed: Optional[str] = None

    @classmethod
    def generate(cls, role: Role) -> "KeyPair":
        sk = ed25519.Ed25519PrivateKey.generate()
        return cls._from_private(role, sk)

    @classmethod
    def from_seed(cls, seed: str) -> "KeyPair":
        role, raw = decode_seed(seed)
        return cls._from_private(role, ed25519.Ed25519PrivateKey.from_private_bytes(raw))

    @classmethod
    def from_public(cls, public_key: str) -> "KeyPair":
        role, _ = decode_public(public_key)
        return cls(role=role, public_key=public_key.strip())

    @classmethod
    def _from_private(cls, role: Role, sk: ed25519.Ed25519PrivateKey) -> "KeyPair":
        raw_seed = sk.private_bytes_raw()
        raw_pub = sk.public_key().public_bytes_raw()
        return cls(role=role, public_key=encode_public(role, raw_pub), seed=encode_seed(role, raw_seed))

    @property
    def has_private(self) -> bool:
        return self.seed is not None

    def expect(self, role: Role) -> "KeyPair":
        if self.role is not role:
            raise KeyMismatch(f"expected an {role} key but got an {self.role} key")
        return self

    def private_key(self) -> ed25519.Ed25519PrivateKey:
        if self.seed is None:
            raise NoSigningKey(f"private key for {self.public_key} is not available")
        _, raw = decode_seed(self.seed)
        return ed25519.Ed25519PrivateKey.from_private_bytes(raw)

    def ed25519_public_key(self) -> ed25519.Ed25519PublicKey:
        _, raw = decode_public(self.public_key)
        return ed25519.Ed25519PublicKey.from_public_bytes(raw)

    def sign(self, data: bytes) -> bytes:
        return self.private_key().sign(data)

    def verify(self, data: bytes, sig: bytes) -> bool:
        _, raw = decode_public(self.public_key)
        return ed25519_verify(raw, sig, data)

    def public_only(self) -> "KeyPair":
        return KeyPair(role=self.role, public_key=self.public_key)

    def __repr__(self) -> str:
        # never render the seed
        return f"KeyPair(role={self.role}, public_key={self.public_key!r}, private={self.has_private})"
