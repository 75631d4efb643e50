"""
trustchain_core.keystore
------------------------
Directory-backed seed storage. Each role has its own directory holding one
``<public key>.nk`` file per stored seed. Directories are created ``0700``
and seed files ``0600`` from the moment they exist.
"""

from __future__ import annotations
import os
from typing import List, Optional

from .constants import CREDS_EXT, PUB_EXT, SEED_EXT
from .crypto import KeyPair, Role, decode_public
from .errors import NoSigningKey, ValidationFailed
from .logger import get_logger
from .utils import write_atomic

log = get_logger("trustchain.keystore")


class KeyStore:
    def __init__(self, root: str):
        self.root = os.path.abspath(os.path.expanduser(root))

    def _role_dir(self, role: Role) -> str:
        return os.path.join(self.root, role.label)

    def _seed_path(self, public_key: str) -> str:
        role, _ = decode_public(public_key)
        return os.path.join(self._role_dir(role), public_key + SEED_EXT)

    def _ensure_dir(self, path: str) -> None:
        os.makedirs(path, mode=0o700, exist_ok=True)
        os.chmod(path, 0o700)

    def store(self, kp: KeyPair) -> str:
        if not kp.has_private:
            raise NoSigningKey(f"cannot store {kp.public_key}: private key is not available")
        path = self._seed_path(kp.public_key)
        self._ensure_dir(os.path.dirname(path))
        write_atomic(path, kp.seed.encode("ascii"), mode=0o600)
        log.info(f"stored {kp.role} key {kp.public_key}")
        return path

    def get_seed(self, public_key: str) -> Optional[str]:
        try:
            path = self._seed_path(public_key)
        except ValidationFailed:
            return None
        if not os.path.isfile(path):
            return None
        with open(path, "r", encoding="ascii") as f:
            return f.read().strip()

    def get_key(self, public_key: str) -> Optional[KeyPair]:
        seed = self.get_seed(public_key)
        if seed is None:
            return None
        kp = KeyPair.from_seed(seed)
        if kp.public_key != public_key:
            raise ValidationFailed(f"key file for {public_key} holds a different key")
        return kp

    def has_private(self, public_key: str) -> bool:
        return self.get_seed(public_key) is not None

    def remove(self, public_key: str) -> bool:
        path = self._seed_path(public_key)
        if not os.path.isfile(path):
            return False
        os.unlink(path)
        log.info(f"removed key {public_key}")
        return True

    def list(self, role: Role) -> List[str]:
        d = self._role_dir(role)
        if not os.path.isdir(d):
            return []
        return sorted(n[: -len(SEED_EXT)] for n in os.listdir(d) if n.endswith(SEED_EXT))

    def export_public(self, public_key: str, dest_dir: str) -> str:
        """Write a shareable public-key-only record."""
        decode_public(public_key)
        path = os.path.join(dest_dir, public_key + PUB_EXT)
        write_atomic(path, public_key.encode("ascii") + b"\n", mode=0o644)
        return path

    # ------------------------------------------------------------------
    # user credentials bundles
    # ------------------------------------------------------------------
    def creds_path(self, account: str, user: str) -> str:
        return os.path.join(self.root, "creds", account, user + CREDS_EXT)

    def store_user_creds(self, account: str, user: str, data: bytes) -> str:
        path = self.creds_path(account, user)
        self._ensure_dir(os.path.dirname(path))
        write_atomic(path, data, mode=0o600)
        log.info(f"stored creds for user {user!r} in account {account!r}")
        return path
