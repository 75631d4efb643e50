"""
trustchain_core.storage.store
-----------------------------
Claim persistence for one operator. Records are nested under their parent:

    <operator>/<operator>.jwt
    <operator>/accounts/<account>/<account>.jwt
    <operator>/accounts/<account>/users/<user>.jwt

Every write re-verifies the token against the stored parent before it lands,
and replaces the previous record atomically through the provider.
"""

from __future__ import annotations
import json
from typing import Dict, List, Optional, Union

from trustchain_core.claims import AccountClaim, ClaimType, OperatorClaim, UserClaim, expect_claim
from trustchain_core.constants import ACCOUNTS_DIR, CONTEXT_FILE, TOKEN_EXT, USERS_DIR
from trustchain_core.errors import AlreadyExists, Conflict, IssuerMismatch, NotFound, ValidationFailed
from trustchain_core.logger import get_logger
from trustchain_core.storage.provider import StorageProvider
from trustchain_core.tokens import SignedClaim, decode_token, parent_issuers, verify_child, verify_operator

log = get_logger("trustchain.store")

TokenLike = Union[str, SignedClaim]


def read_context(provider: StorageProvider) -> Dict[str, str]:
    """The persisted operator/account selection; empty when none was saved."""
    raw = provider.read((CONTEXT_FILE,))
    if raw is None:
        return {}
    try:
        ctx = json.loads(raw.decode("utf-8"))
    except ValueError:
        raise ValidationFailed("context file is corrupt")
    if not isinstance(ctx, dict):
        raise ValidationFailed("context file is corrupt")
    return ctx


class Store:
    def __init__(self, provider: StorageProvider, operator: str):
        if not operator:
            raise ValidationFailed("operator name is required")
        self.provider = provider
        self.operator = operator

    # ------------------------------------------------------------------
    # layout
    # ------------------------------------------------------------------
    def _key(self, type: ClaimType, name: str, account: Optional[str] = None) -> tuple:
        type = ClaimType(type)
        if not name:
            raise ValidationFailed(f"{type.value} name is required")
        if type is ClaimType.OPERATOR:
            if name != self.operator:
                raise NotFound(f"operator {name!r} is not in this store")
            return (self.operator, name + TOKEN_EXT)
        if type is ClaimType.ACCOUNT:
            return (self.operator, ACCOUNTS_DIR, name, name + TOKEN_EXT)
        if type is ClaimType.USER:
            if not account:
                raise ValidationFailed("account name is required for users")
            return (self.operator, ACCOUNTS_DIR, account, USERS_DIR, name + TOKEN_EXT)
        raise ValidationFailed(f"{type.value} claims are not stored")

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def has(self, type: ClaimType, name: str, account: Optional[str] = None) -> bool:
        return self.provider.exists(self._key(type, name, account))

    def get(self, type: ClaimType, name: str, account: Optional[str] = None) -> SignedClaim:
        raw = self.provider.read(self._key(type, name, account))
        if raw is None:
            where = f" in account {account!r}" if account and ClaimType(type) is ClaimType.USER else ""
            raise NotFound(f"{ClaimType(type).value} {name!r} does not exist{where}")
        token = raw.decode("utf-8").strip()
        return SignedClaim(token=token, claim=decode_token(token))

    def list(self, type: ClaimType, account: Optional[str] = None) -> List[str]:
        type = ClaimType(type)
        if type is ClaimType.OPERATOR:
            return [self.operator] if self.provider.exists(self._key(type, self.operator)) else []
        if type is ClaimType.ACCOUNT:
            names = self.provider.list((self.operator, ACCOUNTS_DIR))
            return [n for n in names if self.provider.exists(self._key(type, n))]
        if type is ClaimType.USER:
            if not account:
                raise ValidationFailed("account name is required for users")
            files = self.provider.list((self.operator, ACCOUNTS_DIR, account, USERS_DIR))
            return [f[: -len(TOKEN_EXT)] for f in files if f.endswith(TOKEN_EXT)]
        raise ValidationFailed(f"{type.value} claims are not stored")

    def read_operator(self) -> OperatorClaim:
        return expect_claim(self.get(ClaimType.OPERATOR, self.operator).claim, OperatorClaim)

    def read_account(self, name: str) -> AccountClaim:
        return expect_claim(self.get(ClaimType.ACCOUNT, name).claim, AccountClaim)

    def read_user(self, account: str, name: str) -> UserClaim:
        return expect_claim(self.get(ClaimType.USER, name, account).claim, UserClaim)

    def find_account(self, public_key: str) -> Optional[str]:
        """Name of the account whose subject or signing key is ``public_key``."""
        for name in self.list(ClaimType.ACCOUNT):
            ac = self.read_account(name)
            if public_key in parent_issuers(ac):
                return name
        return None

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
    def _check_chain(self, signed: SignedClaim, account: Optional[str]) -> Optional[str]:
        c = signed.claim
        if isinstance(c, OperatorClaim):
            verify_operator(signed.token)
            if c.name != self.operator:
                raise ValidationFailed(f"operator {c.name!r} does not belong in store {self.operator!r}")
            return None
        if isinstance(c, AccountClaim):
            verify_child(signed.token, self.read_operator())
            return None
        if isinstance(c, UserClaim):
            if account is None:
                account = self.find_account(c.issuer_account or c.issuer)
                if account is None:
                    raise IssuerMismatch(f"no account in this store issued user {c.name!r}")
            verify_child(signed.token, self.read_account(account))
            return account
        raise ValidationFailed(f"{c.type.value} claims are not stored")

    def put(self, signed: TokenLike, account: Optional[str] = None, expected_jti: Optional[str] = None) -> SignedClaim:
        """
        Verify and persist ``signed``, replacing any previous record.

        When ``expected_jti`` is given the current record must still carry that
        claim id, otherwise ``Conflict`` is raised and nothing is written.
        """
        if isinstance(signed, str):
            signed = SignedClaim(token=signed.strip(), claim=decode_token(signed))
        account = self._check_chain(signed, account)
        key = self._key(signed.claim.type, signed.claim.name, account)

        if expected_jti is not None:
            current = self.provider.read(key)
            current_jti = decode_token(current.decode("utf-8")).jti if current is not None else ""
            if current_jti != expected_jti:
                raise Conflict(f"{signed.claim.type.value} {signed.claim.name!r} was modified concurrently")

        self.provider.write(key, signed.token.encode("utf-8"))
        log.info(f"stored {signed.claim.type.value} {signed.claim.name!r}")
        return signed

    def add(self, signed: TokenLike, account: Optional[str] = None) -> SignedClaim:
        if isinstance(signed, str):
            signed = SignedClaim(token=signed.strip(), claim=decode_token(signed))
        c = signed.claim
        if isinstance(c, UserClaim) and account is None:
            account = self.find_account(c.issuer_account or c.issuer)
            if account is None:
                raise IssuerMismatch(f"no account in this store issued user {c.name!r}")
        if isinstance(c, (OperatorClaim, AccountClaim, UserClaim)) and self.has(c.type, c.name, account):
            raise AlreadyExists(f"{c.type.value} {c.name!r} already exists")
        return self.put(signed, account=account)

    def delete(self, type: ClaimType, name: str, account: Optional[str] = None) -> None:
        type = ClaimType(type)
        key = self._key(type, name, account)
        if not self.provider.exists(key):
            raise NotFound(f"{type.value} {name!r} does not exist")
        if type is ClaimType.ACCOUNT:
            self.provider.delete_tree((self.operator, ACCOUNTS_DIR, name))
        elif type is ClaimType.OPERATOR:
            self.provider.delete_tree((self.operator,))
        else:
            self.provider.delete(key)
        log.info(f"deleted {type.value} {name!r}")

    # ------------------------------------------------------------------
    # current context
    # ------------------------------------------------------------------
    def read_context(self) -> Dict[str, str]:
        return read_context(self.provider)

    def select(self, account: Optional[str] = None) -> None:
        ctx = {"operator": self.operator}
        if account:
            if not self.has(ClaimType.ACCOUNT, account):
                raise NotFound(f"account {account!r} does not exist")
            ctx["account"] = account
        self.provider.write((CONTEXT_FILE,), json.dumps(ctx, sort_keys=True).encode("utf-8"))
        log.debug(f"selected operator {self.operator!r} account {account!r}")

    @property
    def current_account(self) -> Optional[str]:
        ctx = self.read_context()
        if ctx.get("operator", self.operator) != self.operator:
            return None
        account = ctx.get("account")
        if account and self.has(ClaimType.ACCOUNT, account):
            return account
        names = self.list(ClaimType.ACCOUNT)
        return names[0] if len(names) == 1 else None
