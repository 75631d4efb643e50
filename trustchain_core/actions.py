"""
trustchain_core.actions
-----------------------
The operations a front end drives. Each action takes the invocation
``Context`` and a complete params object, and runs one
read -> validate -> mutate -> sign -> write cycle:

- validation errors abort before anything is signed or written
- the signed claim is written once, atomically
- secondary artifacts (stored keys, creds files) that fail afterwards are
  reported as warnings in the returned ``Report``, not rolled back
"""

from __future__ import annotations
import copy
from typing import Any, Callable, Dict, Iterable, List, Optional, Type

from .claims import (
    AccountClaim,
    ActivationClaim,
    Claim,
    ClaimType,
    Export,
    ExportType,
    OperatorClaim,
    UserClaim,
    expect_claim,
)
from .constants import WILDCARD_TARGET
from .context import Context
from .creds import generate_creds
from .crypto import KeyPair, Role, is_public_key
from .errors import (
    AlreadyExists,
    KeyMismatch,
    NoSigningKey,
    NotFound,
    TrustChainError,
    ValidationFailed,
)
from .keystore import KeyStore
from .logger import get_logger
from .params import (
    ActivationParams,
    AddAccountParams,
    AddOperatorParams,
    AddUserParams,
    EditAccountParams,
    EditExportParams,
    EditUserParams,
    ExportParams,
    RevokeActivationParams,
    RevokeUserParams,
)
from .report import Report
from .resolver import KeyResolver
from .storage import Store, StorageProvider
from .subjects import is_contained_in
from .tokens import SignedClaim, parent_issuers, sign_claim, verify_child, verify_operator
from .utils import random_name

log = get_logger("trustchain.actions")


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def _entity_name(name: str) -> str:
    if name == "*":
        return random_name()
    if not name:
        raise ValidationFailed("a name is required")
    return name


def _signer_for(resolver: KeyResolver, role: Role, parent: Claim, explicit: Optional[str]) -> KeyPair:
    """Explicit signer, else the parent's own key, else any stored signing key."""
    if explicit:
        kp = resolver.resolve(role, explicit=explicit)
        if kp.public_key not in parent_issuers(parent):
            raise KeyMismatch(f"{kp.public_key} is not a signing key of {parent.type.value} {parent.name!r}")
        return kp
    try:
        return resolver.resolve(role, public_key=parent.subject)
    except NoSigningKey:
        signing_keys = getattr(parent, "signing_keys", [])
        for pk in signing_keys:
            kp = resolver.keystore.get_key(pk)
            if kp is not None:
                return kp
        raise NoSigningKey(f"no private key is available to sign for {parent.type.value} {parent.name!r}")


def _store_key(keystore: KeyStore, kp: KeyPair, report: Report, label: str) -> None:
    try:
        path = keystore.store(kp)
    except (OSError, TrustChainError) as e:
        report.warn(f"unable to store {label} key {kp.public_key}: {e}")
    else:
        report.ok(f"stored {label} key {kp.public_key} in {path}")


def _resign(
    ctx: Context,
    current: SignedClaim,
    cls: Type[Claim],
    signer: KeyPair,
    mutate: Callable[[Any], None],
    account: Optional[str] = None,
    issuer_account: str = "",
) -> SignedClaim:
    claim = expect_claim(copy.deepcopy(current.claim), cls)
    mutate(claim)
    signed = sign_claim(claim, signer, issuer_account=issuer_account)
    ctx.store.put(signed, account=account, expected_jti=current.claim.jti)
    log.info(f"re-signed {claim.type.value} {claim.name!r} with {signer.public_key}")
    return signed


def _issuer_account(signer: KeyPair, account: AccountClaim) -> str:
    return account.subject if signer.public_key != account.subject else ""


# ---------------------------------------------------------------------------
# add
# ---------------------------------------------------------------------------

def add_operator(provider: StorageProvider, keystore: KeyStore, params: AddOperatorParams) -> Report:
    name = _entity_name(params.name)
    store = Store(provider, name)
    if store.has(ClaimType.OPERATOR, name):
        raise AlreadyExists(f"operator {name!r} already exists")
    params.time.validate()

    kp = KeyResolver(keystore).resolve(Role.OPERATOR, explicit=params.key, allow_generate=True)
    generated = params.key is None

    oc = OperatorClaim(subject=kp.public_key, name=name)
    oc.account_server_url = params.account_server_url
    oc.operator_service_urls = list(params.service_urls)
    oc.add_tags(*params.tags)
    params.time.apply(oc)
    signed = sign_claim(oc, kp)
    store.add(signed)

    r = Report(label=f"add operator {name}", token=signed.token)
    if generated or not keystore.has_private(kp.public_key):
        _store_key(keystore, kp, r, "operator")
    store.select()
    r.ok(f"added operator {name!r}")
    return r


def add_account(ctx: Context, params: AddAccountParams) -> Report:
    name = _entity_name(params.name)
    if ctx.store.has(ClaimType.ACCOUNT, name):
        raise AlreadyExists(f"account {name!r} already exists")
    params.time.validate()

    resolver = ctx.resolver
    oc = ctx.store.read_operator()
    signer = _signer_for(resolver, Role.OPERATOR, oc, params.signer)
    kp = resolver.resolve(Role.ACCOUNT, explicit=params.key, require_private=False, allow_generate=True)
    generated = params.key is None

    ac = AccountClaim(subject=kp.public_key, name=name, description=params.description)
    ac.add_tags(*params.tags)
    params.time.apply(ac)
    signed = sign_claim(ac, signer)
    ctx.store.add(signed)

    r = Report(label=f"add account {name}", token=signed.token)
    if kp.has_private and (generated or not ctx.keystore.has_private(kp.public_key)):
        _store_key(ctx.keystore, kp, r, "account")
    r.ok(f"added account {name!r}")
    return r


def add_user(ctx: Context, params: AddUserParams) -> Report:
    params.validate()
    account = ctx.account_name(params.account)
    name = _entity_name(params.name)
    if ctx.store.has(ClaimType.USER, name, account):
        raise AlreadyExists(f"user {name!r} already exists in account {account!r}")

    resolver = ctx.resolver
    ac = ctx.store.read_account(account)
    signer = _signer_for(resolver, Role.ACCOUNT, ac, params.signer)
    kp = resolver.resolve(Role.USER, explicit=params.key, require_private=False, allow_generate=True)
    generated = params.key is None

    uc = UserClaim(subject=kp.public_key, name=name)
    params.permissions.apply(uc.permissions)
    uc.add_src(*params.src)
    uc.add_tags(*params.tags)
    params.time.apply(uc)
    signed = sign_claim(uc, signer, issuer_account=_issuer_account(signer, ac))
    ctx.store.add(signed, account=account)

    r = Report(label=f"add user {name}", token=signed.token)
    if kp.has_private:
        if generated or not ctx.keystore.has_private(kp.public_key):
            _store_key(ctx.keystore, kp, r, "user")
        try:
            path = ctx.keystore.store_user_creds(account, name, generate_creds(signed.token, kp))
        except (OSError, TrustChainError) as e:
            r.warn(f"unable to save creds: {e}")
        else:
            r.data["creds"] = path
            r.ok(f"generated user creds file {path!r}")
    else:
        r.ok("skipped generating creds file - user private key is not available")
    r.ok(f"added user {name!r} to account {account!r}")
    return r


def add_export(ctx: Context, params: ExportParams) -> Report:
    params.validate()
    account = ctx.account_name(params.account)
    current = ctx.store.get(ClaimType.ACCOUNT, account)
    ac = expect_claim(current.claim, AccountClaim)
    if ac.find_exports(params.subject, params.type):
        raise AlreadyExists(f"{params.type.value} export {params.subject!r} already exists in account {account!r}")

    export = Export(
        subject=params.subject,
        type=params.type,
        name=params.name,
        token_req=params.private,
        response_type=params.response_type,
        description=params.description,
    )
    export.validate()
    signer = _signer_for(ctx.resolver, Role.OPERATOR, ctx.store.read_operator(), params.signer)
    signed = _resign(ctx, current, AccountClaim, signer, lambda c: c.add_export(export))

    r = Report(label=f"add export {params.subject}", token=signed.token)
    visibility = "private" if params.private else "public"
    r.ok(f"added {visibility} {params.type.value} export {export.name!r}")
    return r


# ---------------------------------------------------------------------------
# edit
# ---------------------------------------------------------------------------

def edit_account(ctx: Context, params: EditAccountParams) -> Report:
    account = ctx.account_name(params.name)
    params.time.validate()
    for k in params.add_signing_keys:
        if not is_public_key(k, Role.ACCOUNT):
            raise ValidationFailed(f"{k!r} is not an account public key")
    current = ctx.store.get(ClaimType.ACCOUNT, account)
    signer = _signer_for(ctx.resolver, Role.OPERATOR, ctx.store.read_operator(), params.signer)

    def mutate(ac: AccountClaim) -> None:
        params.tags.apply(ac)
        params.time.apply(ac)
        if params.description is not None:
            ac.description = params.description
        keys = [k for k in ac.signing_keys if k not in set(params.rm_signing_keys)]
        ac.signing_keys = sorted(set(keys) | set(params.add_signing_keys))

    signed = _resign(ctx, current, AccountClaim, signer, mutate)
    return Report(label=f"edit account {account}", token=signed.token).ok(f"edited account {account!r}")


def edit_user(ctx: Context, params: EditUserParams) -> Report:
    account = ctx.account_name(params.account)
    params.permissions.validate()
    params.time.validate()
    current = ctx.store.get(ClaimType.USER, params.name, account)
    ac = ctx.store.read_account(account)
    signer = _signer_for(ctx.resolver, Role.ACCOUNT, ac, params.signer)

    def mutate(uc: UserClaim) -> None:
        params.permissions.apply(uc.permissions)
        uc.src = [s for s in uc.src if s not in set(params.rm_src)]
        uc.add_src(*params.src)
        params.tags.apply(uc)
        params.time.apply(uc)

    signed = _resign(
        ctx, current, UserClaim, signer, mutate,
        account=account, issuer_account=_issuer_account(signer, ac),
    )
    r = Report(label=f"edit user {params.name}", token=signed.token)
    if params.permissions.remove_response:
        r.ok("removed response permissions")
    elif signed.claim.permissions.resp is not None:
        resp = signed.claim.permissions.resp
        r.ok(f"set max responses to {resp.max_msgs} and response ttl to {resp.expires}ms")
    r.ok(f"edited user {params.name!r}")
    return r


def edit_export(ctx: Context, params: EditExportParams) -> Report:
    account = ctx.account_name(params.account)
    current = ctx.store.get(ClaimType.ACCOUNT, account)
    ac = expect_claim(current.claim, AccountClaim)
    type = None if params.service is None else (ExportType.SERVICE if params.service else ExportType.STREAM)
    matches = ac.find_exports(params.subject, type)
    if not matches:
        raise NotFound(f"export {params.subject!r} is not in account {account!r}")
    if len(matches) > 1:
        raise ValidationFailed(f"subject {params.subject!r} is exported as both a stream and a service")
    target = matches[0]
    if params.response_type is not None and not target.is_service:
        raise ValidationFailed("response type can only be set on service exports")
    signer = _signer_for(ctx.resolver, Role.OPERATOR, ctx.store.read_operator(), params.signer)

    def mutate(c: AccountClaim) -> None:
        e = c.get_export(target.subject, target.type)
        if params.name is not None:
            e.name = params.name
        if params.private is not None:
            e.token_req = params.private
        if params.response_type is not None:
            e.response_type = params.response_type
        if params.description is not None:
            e.description = params.description
        e.validate()

    signed = _resign(ctx, current, AccountClaim, signer, mutate)
    return Report(label=f"edit export {params.subject}", token=signed.token).ok(
        f"edited {target.type.value} export {params.subject!r}"
    )


# ---------------------------------------------------------------------------
# revocations
# ---------------------------------------------------------------------------

def _select_exports(ac: AccountClaim, subject: str, type) -> List[Export]:
    exact = ac.find_exports(subject, type)
    if exact:
        return exact
    found = [e for e in ac.exports if e.type is type and is_contained_in(subject, e.subject)]
    if not found:
        raise NotFound(f"no {type.value} export in account {ac.name!r} matches {subject!r}")
    return found[:1]


def _check_target(target: str, role: Role) -> None:
    if target != WILDCARD_TARGET and not is_public_key(target, role):
        raise ValidationFailed(f"{target!r} is not an {role} public key or {WILDCARD_TARGET!r}")


def revoke_activation(ctx: Context, params: RevokeActivationParams) -> Report:
    _check_target(params.target, Role.ACCOUNT)
    cutoff = params.cutoff()
    account = ctx.account_name(params.account)
    current = ctx.store.get(ClaimType.ACCOUNT, account)
    selected = _select_exports(expect_claim(current.claim, AccountClaim), params.subject, params.type)
    signer = _signer_for(ctx.resolver, Role.OPERATOR, ctx.store.read_operator(), params.signer)
    applied: Dict[str, int] = {}

    def mutate(ac: AccountClaim) -> None:
        for e in selected:
            applied[e.subject] = ac.get_export(e.subject, e.type).revoke(params.target, cutoff)

    signed = _resign(ctx, current, AccountClaim, signer, mutate)
    r = Report(label=f"revoke activation {params.subject}", token=signed.token)
    for subject, at in applied.items():
        who = "all accounts" if params.target == WILDCARD_TARGET else params.target
        r.ok(f"revoked activations of {params.type.value} export {subject!r} for {who} issued at or before {at}")
    return r


def clear_activation_revocation(ctx: Context, params: RevokeActivationParams) -> Report:
    _check_target(params.target, Role.ACCOUNT)
    account = ctx.account_name(params.account)
    current = ctx.store.get(ClaimType.ACCOUNT, account)
    selected = _select_exports(expect_claim(current.claim, AccountClaim), params.subject, params.type)
    signer = _signer_for(ctx.resolver, Role.OPERATOR, ctx.store.read_operator(), params.signer)

    def mutate(ac: AccountClaim) -> None:
        for e in selected:
            ac.get_export(e.subject, e.type).clear_revocation(params.target)

    signed = _resign(ctx, current, AccountClaim, signer, mutate)
    return Report(label=f"clear activation revocation {params.subject}", token=signed.token).ok(
        f"cleared activation revocation of {params.subject!r} for {params.target}"
    )


def _user_key(ctx: Context, account: str, params: RevokeUserParams) -> str:
    if params.user_key:
        _check_target(params.user_key, Role.USER)
        return params.user_key
    if not params.name:
        raise ValidationFailed("a user name or public key is required")
    return ctx.store.read_user(account, params.name).subject


def revoke_user(ctx: Context, params: RevokeUserParams) -> Report:
    cutoff = params.cutoff()
    account = ctx.account_name(params.account)
    target = _user_key(ctx, account, params)
    current = ctx.store.get(ClaimType.ACCOUNT, account)
    signer = _signer_for(ctx.resolver, Role.OPERATOR, ctx.store.read_operator(), params.signer)
    applied = {}

    def mutate(ac: AccountClaim) -> None:
        applied["at"] = ac.revoke_user(target, cutoff)

    signed = _resign(ctx, current, AccountClaim, signer, mutate)
    return Report(label=f"revoke user {params.name or target}", token=signed.token).ok(
        f"revoked user {params.name or target!r} for credentials issued at or before {applied['at']}"
    )


def clear_user_revocation(ctx: Context, params: RevokeUserParams) -> Report:
    account = ctx.account_name(params.account)
    target = _user_key(ctx, account, params)
    current = ctx.store.get(ClaimType.ACCOUNT, account)
    signer = _signer_for(ctx.resolver, Role.OPERATOR, ctx.store.read_operator(), params.signer)
    signed = _resign(ctx, current, AccountClaim, signer, lambda ac: ac.clear_user_revocation(target))
    return Report(label=f"clear user revocation {params.name or target}", token=signed.token).ok(
        f"cleared revocation for user {params.name or target!r}"
    )


# ---------------------------------------------------------------------------
# activations
# ---------------------------------------------------------------------------

def generate_activation(ctx: Context, params: ActivationParams) -> Report:
    _check_target(params.target, Role.ACCOUNT)
    if params.target == WILDCARD_TARGET:
        raise ValidationFailed("an activation is issued to a single account")
    params.time.validate()
    account = ctx.account_name(params.account)
    ac = ctx.store.read_account(account)
    export = _select_exports(ac, params.subject, params.type)[0]
    if not export.token_req:
        raise ValidationFailed(f"export {export.subject!r} is public and does not require an activation")
    signer = _signer_for(ctx.resolver, Role.ACCOUNT, ac, params.signer)

    act = ActivationClaim(subject=params.target, name=params.subject)
    act.import_subject = params.subject
    act.import_type = params.type
    params.time.apply(act)
    signed = sign_claim(act, signer, issuer_account=_issuer_account(signer, ac))
    r = Report(label=f"generate activation {params.subject}", token=signed.token)
    r.ok(f"generated {params.type.value} activation for account {params.target}")
    return r


def verify_activation(ac: AccountClaim, token: str) -> ActivationClaim:
    """Check an activation token against the exporting account and its revocations."""
    act = expect_claim(verify_child(token, ac), ActivationClaim)
    export = _select_exports(ac, act.import_subject, act.import_type)[0]
    if export.is_revoked_at(act.subject, act.issued_at):
        raise ValidationFailed(f"activation for {act.subject} on {export.subject!r} has been revoked")
    return act


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------

def delete_account(ctx: Context, name: str, remove_keys: bool = False) -> Report:
    ac = ctx.store.read_account(name)
    users = [ctx.store.read_user(name, u).subject for u in ctx.store.list(ClaimType.USER, name)]
    ctx.store.delete(ClaimType.ACCOUNT, name)
    r = Report(label=f"delete account {name}").ok(f"deleted account {name!r}")
    if remove_keys:
        for pk in [ac.subject, *ac.signing_keys, *users]:
            try:
                if ctx.keystore.remove(pk):
                    r.ok(f"removed key {pk}")
            except OSError as e:
                r.warn(f"unable to remove key {pk}: {e}")
    return r


def delete_user(ctx: Context, name: str, account: Optional[str] = None, remove_keys: bool = False) -> Report:
    account = ctx.account_name(account)
    uc = ctx.store.read_user(account, name)
    ctx.store.delete(ClaimType.USER, name, account)
    r = Report(label=f"delete user {name}").ok(f"deleted user {name!r} from account {account!r}")
    if remove_keys:
        try:
            if ctx.keystore.remove(uc.subject):
                r.ok(f"removed key {uc.subject}")
        except OSError as e:
            r.warn(f"unable to remove key {uc.subject}: {e}")
    return r


# ---------------------------------------------------------------------------
# read-only
# ---------------------------------------------------------------------------

def describe(ctx: Context, type: ClaimType, name: Optional[str] = None, account: Optional[str] = None) -> Dict[str, Any]:
    type = ClaimType(type)
    if type is ClaimType.OPERATOR:
        signed = ctx.store.get(type, name or ctx.operator)
    elif type is ClaimType.ACCOUNT:
        signed = ctx.store.get(type, ctx.account_name(name))
    else:
        if not name:
            raise ValidationFailed("user name is required")
        signed = ctx.store.get(type, name, ctx.account_name(account))
    out = signed.claim.to_payload()
    out["token"] = signed.token
    return out


def validate(ctx: Context, accounts: Optional[Iterable[str]] = None) -> Report:
    """
    Verify the whole chain: the operator is self-signed, every account is
    signed by the operator, every user by its account and not revoked.
    Problems are collected per entity rather than stopping at the first.
    """
    r = Report(label="validate")
    try:
        op_signed = ctx.store.get(ClaimType.OPERATOR, ctx.operator)
        oc = verify_operator(op_signed.token)
    except TrustChainError as e:
        return r.error(f"operator {ctx.operator!r}: {e}")
    _validity(r, oc)
    r.ok(f"operator {oc.name!r} is self-signed")

    names = list(accounts) if accounts is not None else ctx.store.list(ClaimType.ACCOUNT)
    for name in names:
        try:
            signed = ctx.store.get(ClaimType.ACCOUNT, name)
            ac = expect_claim(verify_child(signed.token, oc), AccountClaim)
            ac.validate()
        except TrustChainError as e:
            r.error(f"account {name!r}: {e}")
            continue
        _validity(r, ac)
        r.ok(f"account {name!r} is signed by operator {oc.name!r}")
        for user in ctx.store.list(ClaimType.USER, name):
            try:
                us = ctx.store.get(ClaimType.USER, user, name)
                uc = expect_claim(verify_child(us.token, ac), UserClaim)
                uc.validate()
            except TrustChainError as e:
                r.error(f"user {user!r} in account {name!r}: {e}")
                continue
            _validity(r, uc)
            if ac.is_user_revoked_at(uc.subject, uc.issued_at):
                r.warn(f"user {user!r} in account {name!r} is revoked")
            else:
                r.ok(f"user {user!r} is signed by account {name!r}")
    return r


def _validity(r: Report, c: Claim) -> None:
    if c.is_expired():
        r.warn(f"{c.type.value} {c.name!r} has expired")
    if c.is_not_yet_valid():
        r.warn(f"{c.type.value} {c.name!r} is not valid yet")
