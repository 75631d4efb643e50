"""
trustchain_core.tokens
----------------------
Signing and verification of claims.

A claim draft is signed into a compact JWS (``EdDSA``) whose issuer is the
signer's public key. The claim id (``jti``) is the hash of the canonical
payload, so re-signing unchanged content with a new ``iat`` yields a fresh
token. Verification checks the signature against the embedded issuer and,
in ``verify_token``, that the issuer is the one the caller expected.
"""

from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Iterable, Optional, Set, Union

import jwt

from .claims import AccountClaim, ActivationClaim, Claim, OperatorClaim, UserClaim
from .constants import TOKEN_ALGORITHM, TOKEN_TYPE
from .crypto import KeyPair
from .errors import IssuerMismatch, KeyMismatch, NoSigningKey, SignatureInvalid, ValidationFailed
from .logger import get_logger
from .utils import canonical_json, claim_hash, now_unix

log = get_logger("trustchain.tokens")

_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
}


@dataclass
class SignedClaim:
    token: str
    claim: Claim

    @property
    def name(self) -> str:
        return self.claim.name


def sign_claim(claim: Claim, signer: KeyPair, issuer_account: str = "", now: Optional[int] = None) -> SignedClaim:
    """
    Sign ``claim`` with ``signer``. The claim's subject must already be set
    to the entity's own key; the signer must be of the parent role.
    """
    if not claim.subject:
        raise ValidationFailed(f"{claim.type.value} claim has no subject")
    if not signer.has_private:
        raise NoSigningKey(f"private key for {signer.public_key} is required to sign")
    if signer.role is not claim.ISSUER_ROLE:
        raise KeyMismatch(
            f"{claim.type.value} claims must be signed by an {claim.ISSUER_ROLE} key, "
            f"not an {signer.role} key"
        )
    claim.validate()

    if isinstance(claim, (UserClaim, ActivationClaim)):
        claim.issuer_account = issuer_account if issuer_account != signer.public_key else ""

    claim.issuer = signer.public_key
    claim.issued_at = now_unix() if now is None else now
    claim.jti = ""
    payload = claim.to_payload()
    claim.jti = claim_hash(payload)
    payload["jti"] = claim.jti

    token = jwt.encode(
        json.loads(canonical_json(payload)),
        signer.private_key(),
        algorithm=TOKEN_ALGORITHM,
        headers={"typ": TOKEN_TYPE},
    )
    log.debug(f"signed {claim.type.value} claim {claim.name!r} ({claim.subject}) with {signer.public_key}")
    return SignedClaim(token=token, claim=claim)


def decode_token(token: str) -> Claim:
    """Decode ``token`` and check its signature against the embedded issuer."""
    token = token.strip()
    try:
        header = jwt.get_unverified_header(token)
        unverified = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        raise SignatureInvalid("token is malformed")
    if header.get("alg") != TOKEN_ALGORITHM:
        raise SignatureInvalid(f"unsupported token algorithm {header.get('alg')!r}")
    try:
        issuer = KeyPair.from_public(unverified.get("iss") or "")
    except ValidationFailed:
        raise SignatureInvalid("token issuer is not a valid public key")

    try:
        payload = jwt.decode(
            token,
            issuer.ed25519_public_key(),
            algorithms=[TOKEN_ALGORITHM],
            options=_DECODE_OPTIONS,
        )
    except jwt.InvalidSignatureError:
        raise SignatureInvalid("token signature is invalid")
    except jwt.InvalidTokenError as e:
        raise SignatureInvalid(f"token is invalid: {e}")

    jti = payload.pop("jti", "")
    if jti != claim_hash(payload):
        raise SignatureInvalid("token claim hash does not match its content")
    payload["jti"] = jti

    claim = Claim.from_payload(payload)
    if issuer.role is not claim.ISSUER_ROLE:
        raise IssuerMismatch(
            f"{claim.type.value} claim issued by an {issuer.role} key, expected an {claim.ISSUER_ROLE} key"
        )
    return claim


def verify_token(token: str, expected_issuer: Union[str, Iterable[str]]) -> Claim:
    """
    Decode ``token`` and require its issuer to be ``expected_issuer`` (or one
    of them when several keys are acceptable, e.g. a parent and its signing keys).
    """
    claim = decode_token(token)
    expected: Set[str] = {expected_issuer} if isinstance(expected_issuer, str) else set(expected_issuer)
    if claim.issuer not in expected:
        raise IssuerMismatch(f"{claim.type.value} claim {claim.name!r} was not issued by the expected key")
    return claim


def parent_issuers(parent: Claim) -> Set[str]:
    """Keys allowed to sign children of ``parent``."""
    keys = {parent.subject}
    if isinstance(parent, (OperatorClaim, AccountClaim)):
        keys.update(parent.signing_keys)
    return keys


def verify_child(token: str, parent: Claim) -> Claim:
    """Verify ``token`` against the parent entity it is stored under."""
    claim = verify_token(token, parent_issuers(parent))
    if isinstance(claim, (UserClaim, ActivationClaim)) and claim.issuer != parent.subject:
        if claim.issuer_account != parent.subject:
            raise IssuerMismatch(f"{claim.type.value} claim {claim.name!r} names a different issuer account")
    return claim


def verify_operator(token: str, expected_subject: Optional[str] = None) -> OperatorClaim:
    """Operators are self-signed, or signed by one of their own signing keys."""
    claim = decode_token(token)
    if not isinstance(claim, OperatorClaim):
        raise ValidationFailed(f"expected an operator claim but got an {claim.type.value} claim")
    if claim.issuer not in parent_issuers(claim):
        raise IssuerMismatch(f"operator claim {claim.name!r} is not self-signed")
    if expected_subject is not None and claim.subject != expected_subject:
        raise IssuerMismatch(f"operator claim {claim.name!r} is for a different operator")
    return claim