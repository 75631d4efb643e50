"""
trustchain_core.params
----------------------
Mutation value objects. Each one is filled in completely (from flags or a
prompt front end) before an action runs, validated, then applied to a claim
draft in one step.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

from .claims import Claim, ExportType, ResponseType
from .errors import ValidationFailed
from .permissions import PermissionEdit
from .utils import parse_time_expr


@dataclass
class TimeParams:
    start: Optional[str] = None
    expiry: Optional[str] = None

    def validate(self) -> None:
        start, expiry = parse_time_expr(self.start), parse_time_expr(self.expiry)
        if start and expiry and start > expiry:
            raise ValidationFailed("start date is after the expiry date")

    def apply(self, claim: Claim) -> None:
        start = parse_time_expr(self.start)
        if start is not None:
            claim.not_before = start
        expiry = parse_time_expr(self.expiry)
        if expiry is not None:
            claim.expires = expiry


@dataclass
class TagParams:
    add: List[str] = field(default_factory=list)
    remove: List[str] = field(default_factory=list)

    def apply(self, claim: Claim) -> None:
        claim.remove_tags(*self.remove)
        claim.add_tags(*self.add)


@dataclass
class AddOperatorParams:
    name: str
    key: Optional[str] = None
    account_server_url: str = ""
    service_urls: List[str] = field(default_factory=list)
    time: TimeParams = field(default_factory=TimeParams)
    tags: List[str] = field(default_factory=list)


@dataclass
class AddAccountParams:
    name: str
    key: Optional[str] = None
    signer: Optional[str] = None
    description: str = ""
    time: TimeParams = field(default_factory=TimeParams)
    tags: List[str] = field(default_factory=list)


@dataclass
class EditAccountParams:
    name: Optional[str] = None
    signer: Optional[str] = None
    description: Optional[str] = None
    tags: TagParams = field(default_factory=TagParams)
    add_signing_keys: List[str] = field(default_factory=list)
    rm_signing_keys: List[str] = field(default_factory=list)
    time: TimeParams = field(default_factory=TimeParams)


@dataclass
class AddUserParams:
    name: str
    account: Optional[str] = None
    key: Optional[str] = None
    signer: Optional[str] = None
    permissions: PermissionEdit = field(default_factory=PermissionEdit)
    src: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    time: TimeParams = field(default_factory=TimeParams)

    def validate(self) -> None:
        if not self.name:
            raise ValidationFailed("user name is required")
        self.permissions.validate()
        self.time.validate()


@dataclass
class EditUserParams:
    name: str
    account: Optional[str] = None
    signer: Optional[str] = None
    permissions: PermissionEdit = field(default_factory=PermissionEdit)
    src: List[str] = field(default_factory=list)
    rm_src: List[str] = field(default_factory=list)
    tags: TagParams = field(default_factory=TagParams)
    time: TimeParams = field(default_factory=TimeParams)


@dataclass
class ExportParams:
    subject: str
    account: Optional[str] = None
    service: bool = False
    name: str = ""
    private: bool = False
    response_type: Optional[ResponseType] = None
    description: str = ""
    signer: Optional[str] = None

    @property
    def type(self) -> ExportType:
        return ExportType.SERVICE if self.service else ExportType.STREAM

    def validate(self) -> None:
        if not self.subject:
            raise ValidationFailed("export subject is required")
        if self.response_type is not None and not self.service:
            raise ValidationFailed("response type can only be set on service exports")


@dataclass
class EditExportParams:
    subject: str
    account: Optional[str] = None
    service: Optional[bool] = None
    name: Optional[str] = None
    private: Optional[bool] = None
    response_type: Optional[ResponseType] = None
    description: Optional[str] = None
    signer: Optional[str] = None


@dataclass
class RevokeActivationParams:
    """``target`` is the importing account's public key or ``*`` for every account."""
    subject: str
    target: str
    account: Optional[str] = None
    service: bool = False
    at: Optional[str] = None
    signer: Optional[str] = None

    @property
    def type(self) -> ExportType:
        return ExportType.SERVICE if self.service else ExportType.STREAM

    def cutoff(self) -> Optional[int]:
        # an omitted or zero cutoff means "now"
        return parse_time_expr(self.at) or None


@dataclass
class RevokeUserParams:
    """Revoke by user name or by public key (``*`` revokes every user)."""
    name: Optional[str] = None
    user_key: Optional[str] = None
    account: Optional[str] = None
    at: Optional[str] = None
    signer: Optional[str] = None

    def cutoff(self) -> Optional[int]:
        return parse_time_expr(self.at) or None


@dataclass
class ActivationParams:
    subject: str
    target: str
    account: Optional[str] = None
    service: bool = False
    time: TimeParams = field(default_factory=TimeParams)
    signer: Optional[str] = None

    @property
    def type(self) -> ExportType:
        return ExportType.SERVICE if self.service else ExportType.STREAM
