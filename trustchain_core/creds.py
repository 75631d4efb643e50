"""
trustchain_core.creds
---------------------
User credentials bundle: the signed user token and the user's seed in one
file a client can connect with. The bundle is a convenience artifact and is
always written owner-only.
"""

from __future__ import annotations
import re
from typing import Tuple

from .crypto import KeyPair, Role
from .errors import KeyMismatch, ValidationFailed

_TEMPLATE = """-----BEGIN USER JWT-----
{token}
------END USER JWT------

************************* IMPORTANT *************************
Private seeds give access to this identity. Keep this file private.

-----BEGIN USER SEED-----
{seed}
------END USER SEED------

*************************************************************
"""

_BLOCK = re.compile(r"-{3,}BEGIN USER (JWT|SEED)-{3,}\s*\n(.+?)\n\s*-{3,}END USER \1-{3,}", re.S)


def generate_creds(token: str, kp: KeyPair) -> bytes:
    if kp.role is not Role.USER:
        raise KeyMismatch("credentials can only be generated for user keys")
    if not kp.has_private:
        raise ValidationFailed("user private key is not available")
    return _TEMPLATE.format(token=token.strip(), seed=kp.seed).encode("ascii")


def parse_creds(data: bytes) -> Tuple[str, KeyPair]:
    blocks = {kind: body.strip() for kind, body in _BLOCK.findall(data.decode("ascii"))}
    if "JWT" not in blocks or "SEED" not in blocks:
        raise ValidationFailed("credentials file is missing the token or the seed")
    return blocks["JWT"], KeyPair.from_seed(blocks["SEED"])
