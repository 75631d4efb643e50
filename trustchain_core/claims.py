"""
trustchain_core.claims
----------------------
Claim model: a closed tagged union {operator, account, user, activation}
with an explicit ``type`` discriminant carried in every token.

Every claim names its own public key as ``subject`` and the signer as
``issuer``. The role each of these must have is fixed per claim type:

    operator    <- operator   (self-signed or an operator signing key)
    account     <- operator
    user        <- account
    activation  <- account    (subject is the importing account)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type

from .constants import CLAIM_VERSION
from .crypto import Role, is_public_key
from .errors import AlreadyExists, NotFound, ValidationFailed
from .permissions import PermissionSet
from .revocations import RevocationList
from .utils import TimeLike, now_unix


class ClaimType(str, Enum):
    OPERATOR = "operator"
    ACCOUNT = "account"
    USER = "user"
    ACTIVATION = "activation"


class ExportType(str, Enum):
    STREAM = "stream"
    SERVICE = "service"


class ResponseType(str, Enum):
    SINGLETON = "Singleton"
    STREAM = "Stream"
    CHUNKED = "Chunked"


def _tags(values) -> List[str]:
    return sorted({v.strip().lower() for v in values if v and v.strip()})


@dataclass
class Claim:
    TYPE: ClassVar[ClaimType]
    SUBJECT_ROLE: ClassVar[Role]
    ISSUER_ROLE: ClassVar[Role]

    subject: str = ""
    name: str = ""
    issuer: str = ""
    issued_at: int = 0
    not_before: int = 0
    expires: int = 0
    tags: List[str] = field(default_factory=list)
    jti: str = ""

    @property
    def type(self) -> ClaimType:
        return self.TYPE

    def add_tags(self, *tags: str) -> None:
        self.tags = _tags([*self.tags, *tags])

    def remove_tags(self, *tags: str) -> None:
        drop = {t.strip().lower() for t in tags}
        self.tags = [t for t in self.tags if t not in drop]

    def is_expired(self, now: Optional[int] = None) -> bool:
        now = now_unix() if now is None else now
        return self.expires != 0 and self.expires < now

    def is_not_yet_valid(self, now: Optional[int] = None) -> bool:
        now = now_unix() if now is None else now
        return self.not_before != 0 and self.not_before > now

    def validate(self) -> None:
        if not self.subject:
            raise ValidationFailed(f"{self.TYPE.value} claim has no subject")
        if not is_public_key(self.subject, self.SUBJECT_ROLE):
            raise ValidationFailed(f"{self.TYPE.value} subject must be an {self.SUBJECT_ROLE} public key")
        if self.not_before and self.expires and self.not_before > self.expires:
            raise ValidationFailed("start date is after the expiry date")
        if self.not_before < 0 or self.expires < 0:
            raise ValidationFailed("validity dates must not be negative")

    # ------------------------------------------------------------------
    # payload coding
    # ------------------------------------------------------------------
    def _body(self) -> Dict[str, Any]:
        return {}

    def _load_body(self, body: Dict[str, Any]) -> None:
        pass

    def to_payload(self) -> Dict[str, Any]:
        body = {"type": self.TYPE.value, "version": CLAIM_VERSION}
        if self.tags:
            body["tags"] = list(self.tags)
        body.update(self._body())
        payload: Dict[str, Any] = {
            "iat": self.issued_at,
            "iss": self.issuer,
            "name": self.name,
            "sub": self.subject,
            "tc": body,
        }
        if self.jti:
            payload["jti"] = self.jti
        if self.not_before:
            payload["nbf"] = self.not_before
        if self.expires:
            payload["exp"] = self.expires
        return payload

    @staticmethod
    def from_payload(payload: Dict[str, Any]) -> "Claim":
        body = payload.get("tc") or {}
        try:
            cls = CLAIM_TYPES[ClaimType(body.get("type"))]
        except ValueError:
            raise ValidationFailed(f"unknown claim type {body.get('type')!r}")
        c = cls(
            subject=payload.get("sub", ""),
            name=payload.get("name", ""),
            issuer=payload.get("iss", ""),
            issued_at=int(payload.get("iat", 0)),
            not_before=int(payload.get("nbf", 0)),
            expires=int(payload.get("exp", 0)),
            tags=_tags(body.get("tags", [])),
            jti=payload.get("jti", ""),
        )
        c._load_body(body)
        return c


@dataclass
class OperatorClaim(Claim):
    TYPE: ClassVar[ClaimType] = ClaimType.OPERATOR
    SUBJECT_ROLE: ClassVar[Role] = Role.OPERATOR
    ISSUER_ROLE: ClassVar[Role] = Role.OPERATOR

    signing_keys: List[str] = field(default_factory=list)
    account_server_url: str = ""
    operator_service_urls: List[str] = field(default_factory=list)

    def validate(self) -> None:
        super().validate()
        for k in self.signing_keys:
            if not is_public_key(k, Role.OPERATOR):
                raise ValidationFailed(f"{k!r} is not an operator public key")

    def _body(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.signing_keys:
            d["signing_keys"] = sorted(set(self.signing_keys))
        if self.account_server_url:
            d["account_server_url"] = self.account_server_url
        if self.operator_service_urls:
            d["operator_service_urls"] = list(self.operator_service_urls)
        return d

    def _load_body(self, body: Dict[str, Any]) -> None:
        self.signing_keys = list(body.get("signing_keys", []))
        self.account_server_url = body.get("account_server_url", "")
        self.operator_service_urls = list(body.get("operator_service_urls", []))


@dataclass
class Export:
    subject: str
    type: ExportType = ExportType.STREAM
    name: str = ""
    token_req: bool = False
    response_type: Optional[ResponseType] = None
    description: str = ""
    revocations: RevocationList = field(default_factory=RevocationList)

    def __post_init__(self):
        self.type = ExportType(self.type)
        if self.response_type is not None:
            self.response_type = ResponseType(self.response_type)
        if not self.name:
            self.name = self.subject

    @property
    def is_service(self) -> bool:
        return self.type is ExportType.SERVICE

    def revoke(self, target: str, at: Optional[TimeLike] = None) -> int:
        return self.revocations.revoke(target, at)

    def clear_revocation(self, target: str) -> None:
        self.revocations.clear(target)

    def is_revoked_at(self, target: str, issued_at: TimeLike) -> bool:
        return self.revocations.is_revoked_at(target, issued_at)

    def validate(self) -> None:
        s = self.subject.strip()
        if not s:
            raise ValidationFailed("export subject is required")
        if any(c.isspace() for c in self.subject):
            raise ValidationFailed(f"export subject {self.subject!r} contains whitespace")
        if self.response_type is not None and not self.is_service:
            raise ValidationFailed("response type is only valid for service exports")

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "subject": self.subject, "type": self.type.value}
        if self.token_req:
            d["token_req"] = True
        if self.is_service:
            d["response_type"] = (self.response_type or ResponseType.SINGLETON).value
        if self.description:
            d["description"] = self.description
        if len(self.revocations):
            d["revocations"] = self.revocations.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Export":
        return cls(
            subject=data["subject"],
            type=ExportType(data.get("type", "stream")),
            name=data.get("name", ""),
            token_req=bool(data.get("token_req", False)),
            response_type=data.get("response_type"),
            description=data.get("description", ""),
            revocations=RevocationList.from_dict(data.get("revocations")),
        )


@dataclass
class AccountClaim(Claim):
    TYPE: ClassVar[ClaimType] = ClaimType.ACCOUNT
    SUBJECT_ROLE: ClassVar[Role] = Role.ACCOUNT
    ISSUER_ROLE: ClassVar[Role] = Role.OPERATOR

    description: str = ""
    exports: List[Export] = field(default_factory=list)
    signing_keys: List[str] = field(default_factory=list)
    revocations: RevocationList = field(default_factory=RevocationList)

    def find_exports(self, subject: str, type: Optional[ExportType] = None) -> List[Export]:
        return [
            e for e in self.exports
            if e.subject == subject and (type is None or e.type is ExportType(type))
        ]

    def get_export(self, subject: str, type: Optional[ExportType] = None) -> Export:
        found = self.find_exports(subject, type)
        if not found:
            kind = f"{ExportType(type).value} " if type is not None else ""
            raise NotFound(f"{kind}export {subject!r} is not in account {self.name!r}")
        return found[0]

    def add_export(self, export: Export) -> None:
        export.validate()
        if self.find_exports(export.subject, export.type):
            raise AlreadyExists(f"{export.type.value} export {export.subject!r} already exists")
        self.exports.append(export)
        self.exports.sort(key=lambda e: (e.subject, e.type.value))

    def revoke_user(self, user_key: str, at: Optional[TimeLike] = None) -> int:
        return self.revocations.revoke(user_key, at)

    def clear_user_revocation(self, user_key: str) -> None:
        self.revocations.clear(user_key)

    def is_user_revoked_at(self, user_key: str, issued_at: TimeLike) -> bool:
        return self.revocations.is_revoked_at(user_key, issued_at)

    def validate(self) -> None:
        super().validate()
        seen = set()
        for e in self.exports:
            e.validate()
            key = (e.subject, e.type)
            if key in seen:
                raise ValidationFailed(f"duplicate {e.type.value} export {e.subject!r}")
            seen.add(key)
        for k in self.signing_keys:
            if not is_public_key(k, Role.ACCOUNT):
                raise ValidationFailed(f"{k!r} is not an account public key")

    def _body(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.description:
            d["description"] = self.description
        if self.exports:
            d["exports"] = [e.to_dict() for e in self.exports]
        if self.signing_keys:
            d["signing_keys"] = sorted(set(self.signing_keys))
        if len(self.revocations):
            d["revocations"] = self.revocations.to_dict()
        return d

    def _load_body(self, body: Dict[str, Any]) -> None:
        self.description = body.get("description", "")
        self.exports = [Export.from_dict(e) for e in body.get("exports", [])]
        self.signing_keys = list(body.get("signing_keys", []))
        self.revocations = RevocationList.from_dict(body.get("revocations"))


@dataclass
class UserClaim(Claim):
    TYPE: ClassVar[ClaimType] = ClaimType.USER
    SUBJECT_ROLE: ClassVar[Role] = Role.USER
    ISSUER_ROLE: ClassVar[Role] = Role.ACCOUNT

    permissions: PermissionSet = field(default_factory=PermissionSet)
    src: List[str] = field(default_factory=list)
    issuer_account: str = ""

    def add_src(self, *networks: str) -> None:
        self.src = sorted({n.strip() for n in [*self.src, *networks] if n and n.strip()})

    def _body(self) -> Dict[str, Any]:
        d: Dict[str, Any] = dict(self.permissions.to_dict())
        if self.src:
            d["src"] = list(self.src)
        if self.issuer_account:
            d["issuer_account"] = self.issuer_account
        return d

    def _load_body(self, body: Dict[str, Any]) -> None:
        self.permissions = PermissionSet.from_dict(body)
        self.src = list(body.get("src", []))
        self.issuer_account = body.get("issuer_account", "")


@dataclass
class ActivationClaim(Claim):
    TYPE: ClassVar[ClaimType] = ClaimType.ACTIVATION
    SUBJECT_ROLE: ClassVar[Role] = Role.ACCOUNT
    ISSUER_ROLE: ClassVar[Role] = Role.ACCOUNT

    import_subject: str = ""
    import_type: ExportType = ExportType.STREAM
    issuer_account: str = ""

    def validate(self) -> None:
        super().validate()
        if not self.import_subject:
            raise ValidationFailed("activation has no import subject")

    def _body(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "subject": self.import_subject,
            "kind": ExportType(self.import_type).value,
        }
        if self.issuer_account:
            d["issuer_account"] = self.issuer_account
        return d

    def _load_body(self, body: Dict[str, Any]) -> None:
        self.import_subject = body.get("subject", "")
        self.import_type = ExportType(body.get("kind", "stream"))
        self.issuer_account = body.get("issuer_account", "")


CLAIM_TYPES: Dict[ClaimType, Type[Claim]] = {
    ClaimType.OPERATOR: OperatorClaim,
    ClaimType.ACCOUNT: AccountClaim,
    ClaimType.USER: UserClaim,
    ClaimType.ACTIVATION: ActivationClaim,
}


def expect_claim(claim: Claim, cls: Type[Claim]) -> Claim:
    """Fail fast when an edit is handed a claim of the wrong type."""
    if not isinstance(claim, cls):
        raise ValidationFailed(f"expected an {cls.TYPE.value} claim but got an {claim.type.value} claim")
    return claim
