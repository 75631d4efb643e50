"""
trustchain_core.resolver
------------------------
Resolves the key pair an operation needs for a given role.

Sources, in order:

1. an explicit value: a seed, a public key, or a path to a file holding one
2. the key store, looked up by the context entity's public key
3. a freshly generated pair, when the operation allows it

Generated pairs are returned only; storing them is the caller's decision.
"""

from __future__ import annotations
import os
from typing import Optional

from .crypto import KeyPair, Role, is_public_key, is_seed
from .errors import KeyMismatch, KeyNotFound, NoSigningKey, ValidationFailed
from .keystore import KeyStore
from .logger import get_logger

log = get_logger("trustchain.resolver")


class KeyResolver:
    def __init__(self, keystore: KeyStore):
        self.keystore = keystore

    def _read_reference(self, explicit: str) -> str:
        value = explicit.strip()
        if is_seed(value) or is_public_key(value):
            return value
        path = os.path.expanduser(value)
        if not os.path.isfile(path):
            raise KeyNotFound(f"key {explicit!r} was not found")
        with open(path, "r", encoding="ascii") as f:
            for line in f:
                line = line.strip()
                if is_seed(line) or is_public_key(line):
                    return line
        raise KeyNotFound(f"{explicit!r} does not contain a key")

    def load(self, explicit: str, require_private: bool = True, role: Optional[Role] = None) -> KeyPair:
        value = self._read_reference(explicit)
        if is_seed(value):
            try:
                kp = KeyPair.from_seed(value)
            except ValidationFailed:
                raise KeyNotFound("the supplied seed is not valid")
        else:
            kp = KeyPair.from_public(value)
        if role is not None:
            kp.expect(role)
        if kp.has_private:
            return kp
        stored = self.keystore.get_key(kp.public_key)
        if stored is not None:
            return stored
        if require_private:
            raise NoSigningKey(f"private key for {kp.public_key} is not in the key store")
        return kp

    def resolve(
        self,
        role: Role,
        explicit: Optional[str] = None,
        require_private: bool = True,
        allow_generate: bool = False,
        public_key: Optional[str] = None,
    ) -> KeyPair:
        """
        Resolve a key pair of ``role``.

        :param explicit: seed, public key or path given by the caller
        :param public_key: the context entity's public key, used for the key store lookup
        :param allow_generate: generate a fresh pair when nothing else is available
        """
        if explicit:
            return self.load(explicit, require_private=require_private, role=role)

        if public_key:
            if not is_public_key(public_key, role):
                raise KeyMismatch(f"{public_key!r} is not an {role} public key")
            kp = self.keystore.get_key(public_key)
            if kp is not None:
                log.debug(f"resolved {role} key {public_key} from key store")
                return kp

        if allow_generate:
            kp = KeyPair.generate(role)
            log.debug(f"generated {role} key {kp.public_key}")
            return kp

        if public_key:
            if require_private:
                raise NoSigningKey(f"private key for {role} {public_key} is not available")
            return KeyPair.from_public(public_key)
        raise KeyNotFound(f"no {role} key was specified")
