import json
import logging
import os
import stat
from datetime import datetime, timezone

import pytest

from trustchain_core.actions import (
    add_account,
    add_export,
    add_user,
    clear_activation_revocation,
    clear_user_revocation,
    delete_account,
    delete_user,
    describe,
    edit_account,
    edit_export,
    edit_user,
    generate_activation,
    revoke_activation,
    revoke_user,
    validate,
    verify_activation,
)
from trustchain_core.claims import ClaimType, ExportType, ResponseType
from trustchain_core.crypto import KeyPair, Role
from trustchain_core.errors import AlreadyExists, KeyMismatch, NoSigningKey, NotFound, ValidationFailed
from trustchain_core.logger import JsonLineFormatter
from trustchain_core.params import (
    ActivationParams,
    AddAccountParams,
    AddUserParams,
    EditAccountParams,
    EditExportParams,
    EditUserParams,
    ExportParams,
    RevokeActivationParams,
    RevokeUserParams,
    TagParams,
    TimeParams,
)
from trustchain_core.permissions import PermissionEdit, ResponsePermission


def unix(s):
    return datetime.fromtimestamp(s, tz=timezone.utc)


def account_key():
    return KeyPair.generate(Role.ACCOUNT).public_key


def test_add_account_twice(ctx):
    add_account(ctx, AddAccountParams(name="A"))
    with pytest.raises(AlreadyExists):
        add_account(ctx, AddAccountParams(name="A"))
    assert ctx.store.list(ClaimType.ACCOUNT) == ["A"]


def test_add_account_stores_generated_key(ctx):
    r = add_account(ctx, AddAccountParams(name="A", tags=["Blue"]))
    ac = ctx.store.read_account("A")
    assert ctx.keystore.has_private(ac.subject)
    assert ac.tags == ["blue"]
    assert r.has_no_errors()
    assert r.token


def test_add_account_with_public_key_only(ctx):
    pub = account_key()
    r = add_account(ctx, AddAccountParams(name="A", key=pub))
    assert ctx.store.read_account("A").subject == pub
    assert not ctx.keystore.has_private(pub)
    assert r.warnings() == []


def test_add_account_without_operator_key(ctx):
    ctx.keystore.remove(ctx.store.read_operator().subject)
    with pytest.raises(NoSigningKey):
        add_account(ctx, AddAccountParams(name="A"))
    assert ctx.store.list(ClaimType.ACCOUNT) == []


def test_add_user_writes_creds(ctx, account_a):
    r = add_user(ctx, AddUserParams(
        name="u",
        account="A",
        permissions=PermissionEdit(allow_pubsub=["foo.>"], deny_pub=["foo.secret"], response_max=1),
    ))
    uc = ctx.store.read_user("A", "u")
    assert uc.issuer == account_a.subject
    assert uc.permissions.pub.allow == ["foo.>"]
    assert uc.permissions.sub.allow == ["foo.>"]
    assert uc.permissions.pub.deny == ["foo.secret"]
    assert uc.permissions.resp == ResponsePermission(max_msgs=1, expires=0)
    path = r.data["creds"]
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600


def test_add_user_response_ttl_duration(ctx, account_a):
    r = add_user(ctx, AddUserParams(
        name="u",
        account="A",
        permissions=PermissionEdit(response_max=1, response_ttl="250ms"),
    ))
    assert ctx.store.read_user("A", "u").permissions.resp == ResponsePermission(max_msgs=1, expires=250)
    assert r.has_no_errors()

    edit_user(ctx, EditUserParams(name="u", account="A", permissions=PermissionEdit(response_ttl="1h")))
    assert ctx.store.read_user("A", "u").permissions.resp == ResponsePermission(max_msgs=1, expires=3_600_000)


def test_add_user_creds_failure_is_a_warning(ctx, account_a, monkeypatch):
    def boom(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(ctx.keystore, "store_user_creds", boom)
    r = add_user(ctx, AddUserParams(name="u", account="A"))
    assert any("unable to save creds" in w for w in r.warnings())
    assert ctx.store.read_user("A", "u").name == "u"


def test_add_user_public_key_skips_creds(ctx, account_a):
    pub = KeyPair.generate(Role.USER).public_key
    r = add_user(ctx, AddUserParams(name="u", account="A", key=pub))
    assert "creds" not in r.data
    assert ctx.store.read_user("A", "u").subject == pub


def test_add_user_wrong_key_role(ctx, account_a):
    with pytest.raises(KeyMismatch):
        add_user(ctx, AddUserParams(name="u", account="A", key=account_key()))
    assert ctx.store.list(ClaimType.USER, "A") == []


def test_edit_user_permissions_and_response(ctx, account_a):
    add_user(ctx, AddUserParams(name="u", account="A", permissions=PermissionEdit(allow_pub=["a"])))
    edit_user(ctx, EditUserParams(
        name="u",
        account="A",
        permissions=PermissionEdit(allow_pub=["a", "b"], response_max=5, response_ttl=2),
        tags=TagParams(add=["x"]),
    ))
    uc = ctx.store.read_user("A", "u")
    assert uc.permissions.pub.allow == ["a", "b"]
    assert uc.permissions.resp == ResponsePermission(max_msgs=5, expires=2)
    assert uc.tags == ["x"]

    edit_user(ctx, EditUserParams(name="u", account="A", permissions=PermissionEdit(remove_response=True)))
    assert ctx.store.read_user("A", "u").permissions.resp is None


def test_edit_user_conflicting_response_has_no_side_effects(ctx, account_a):
    add_user(ctx, AddUserParams(name="u", account="A"))
    before = ctx.store.get(ClaimType.USER, "u", "A").token
    with pytest.raises(ValidationFailed):
        edit_user(ctx, EditUserParams(
            name="u",
            account="A",
            permissions=PermissionEdit(allow_pub=["x"], response_max=1, remove_response=True),
        ))
    assert ctx.store.get(ClaimType.USER, "u", "A").token == before


def test_edit_account(ctx, account_a):
    sk = account_key()
    edit_account(ctx, EditAccountParams(
        name="A",
        description="team a",
        add_signing_keys=[sk],
        time=TimeParams(expiry="2099-01-01"),
    ))
    ac = ctx.store.read_account("A")
    assert ac.description == "team a"
    assert ac.signing_keys == [sk]
    assert ac.expires == int(datetime(2099, 1, 1, tzinfo=timezone.utc).timestamp())


def test_edit_account_bad_dates(ctx, account_a):
    with pytest.raises(ValidationFailed):
        edit_account(ctx, EditAccountParams(name="A", time=TimeParams(start="2099-01-02", expiry="2099-01-01")))


def test_exports(ctx, account_a):
    add_export(ctx, ExportParams(account="A", subject="foo.>"))
    add_export(ctx, ExportParams(account="A", subject="bar", service=True, private=True))
    with pytest.raises(AlreadyExists):
        add_export(ctx, ExportParams(account="A", subject="bar", service=True))
    with pytest.raises(ValidationFailed):
        add_export(ctx, ExportParams(account="A", subject="baz", response_type=ResponseType.STREAM))

    edit_export(ctx, EditExportParams(account="A", subject="bar", response_type=ResponseType.STREAM))
    ac = ctx.store.read_account("A")
    bar = ac.get_export("bar", ExportType.SERVICE)
    assert bar.token_req
    assert bar.response_type is ResponseType.STREAM
    with pytest.raises(NotFound):
        edit_export(ctx, EditExportParams(account="A", subject="nope"))


def test_revoke_activation(ctx, account_a):
    add_export(ctx, ExportParams(account="A", subject="foo.>"))
    add_export(ctx, ExportParams(account="A", subject="bar", service=True, private=True))
    add_export(ctx, ExportParams(account="A", subject="public", service=True))

    pub = account_key()
    revoke_activation(ctx, RevokeActivationParams(account="A", subject="foo.bar", target=pub))
    revoke_activation(ctx, RevokeActivationParams(account="A", subject="bar", target=pub, service=True))
    revoke_activation(ctx, RevokeActivationParams(account="A", subject="public", target=pub, service=True))

    ac = ctx.store.read_account("A")
    assert len(ac.exports) == 3
    for exp in ac.exports:
        assert exp.is_revoked_at(pub, unix(0))


def test_revoke_activation_at(ctx, account_a):
    add_export(ctx, ExportParams(account="A", subject="foo.>"))
    add_export(ctx, ExportParams(account="A", subject="bar", service=True))

    pub = account_key()
    revoke_activation(ctx, RevokeActivationParams(account="A", subject="foo.bar", target=pub, at="1000"))
    revoke_activation(ctx, RevokeActivationParams(account="A", subject="bar", target=pub, service=True, at="1000"))

    ac = ctx.store.read_account("A")
    assert len(ac.exports) == 2
    for exp in ac.exports:
        assert exp.is_revoked_at(pub, unix(999))
        assert not exp.is_revoked_at(pub, unix(1001))


def test_revoke_activation_only_touches_selected_account(ctx, account_a):
    add_account(ctx, AddAccountParams(name="B"))
    for name in ("A", "B"):
        add_export(ctx, ExportParams(account=name, subject="foo.>"))
        add_export(ctx, ExportParams(account=name, subject="bar", service=True))

    pub = account_key()
    revoke_activation(ctx, RevokeActivationParams(account="B", subject="foo.>", target=pub, at="1000"))

    for exp in ctx.store.read_account("A").exports:
        assert len(exp.revocations) == 0
    for exp in ctx.store.read_account("B").exports:
        if exp.subject != "foo.>":
            assert len(exp.revocations) == 0
            continue
        assert len(exp.revocations) == 1
        assert exp.is_revoked_at(pub, unix(999))
        assert not exp.is_revoked_at(pub, unix(1001))


def test_revoke_activation_wildcard_and_clear(ctx, account_a):
    add_export(ctx, ExportParams(account="A", subject="svc", service=True))
    pub = account_key()
    revoke_activation(ctx, RevokeActivationParams(account="A", subject="svc", target="*", service=True, at="500"))
    exp = ctx.store.read_account("A").get_export("svc", ExportType.SERVICE)
    assert exp.is_revoked_at(pub, 500)
    assert exp.is_revoked_at(account_key(), 1)

    clear_activation_revocation(ctx, RevokeActivationParams(account="A", subject="svc", target="*", service=True))
    exp = ctx.store.read_account("A").get_export("svc", ExportType.SERVICE)
    assert not exp.is_revoked_at(pub, 1)


def test_revoke_activation_validation(ctx, account_a):
    add_export(ctx, ExportParams(account="A", subject="foo"))
    with pytest.raises(ValidationFailed):
        revoke_activation(ctx, RevokeActivationParams(account="A", subject="foo", target="not-a-key"))
    with pytest.raises(NotFound):
        revoke_activation(ctx, RevokeActivationParams(account="A", subject="foo", target=account_key(), service=True))


def test_activation_tokens(ctx, account_a):
    add_export(ctx, ExportParams(account="A", subject="svc.>", service=True, private=True))
    target = account_key()
    r = generate_activation(ctx, ActivationParams(account="A", subject="svc.>", target=target, service=True))
    act = verify_activation(ctx.store.read_account("A"), r.token)
    assert act.subject == target

    revoke_activation(ctx, RevokeActivationParams(account="A", subject="svc.>", target=target, service=True))
    with pytest.raises(ValidationFailed):
        verify_activation(ctx.store.read_account("A"), r.token)


def test_activation_requires_private_export(ctx, account_a):
    add_export(ctx, ExportParams(account="A", subject="open"))
    with pytest.raises(ValidationFailed):
        generate_activation(ctx, ActivationParams(account="A", subject="open", target=account_key()))


def test_revoke_user(ctx, account_a):
    add_user(ctx, AddUserParams(name="u", account="A"))
    uc = ctx.store.read_user("A", "u")
    revoke_user(ctx, RevokeUserParams(name="u", account="A"))
    ac = ctx.store.read_account("A")
    assert ac.is_user_revoked_at(uc.subject, uc.issued_at)
    assert any("revoked" in w for w in validate(ctx).warnings())

    clear_user_revocation(ctx, RevokeUserParams(name="u", account="A"))
    assert not ctx.store.read_account("A").is_user_revoked_at(uc.subject, uc.issued_at)


def test_validate_clean_chain(ctx, account_a):
    add_user(ctx, AddUserParams(name="u", account="A"))
    r = validate(ctx)
    assert r.has_no_errors()
    assert r.warnings() == []


def test_validate_reports_foreign_user(ctx, account_a):
    add_account(ctx, AddAccountParams(name="B"))
    add_user(ctx, AddUserParams(name="u", account="B"))
    token = ctx.store.get(ClaimType.USER, "u", "B").token
    # plant B's user under A, bypassing the store's own check
    ctx.store.provider.write(("O", "accounts", "A", "users", "u.jwt"), token.encode())
    r = validate(ctx)
    assert any("'u'" in e and "'A'" in e for e in r.errors())


def test_describe(ctx, account_a):
    d = describe(ctx, ClaimType.ACCOUNT, "A")
    assert d["name"] == "A"
    assert d["tc"]["type"] == "account"
    assert d["iss"] == ctx.store.read_operator().subject


def test_delete(ctx, account_a):
    add_user(ctx, AddUserParams(name="u", account="A"))
    uc = ctx.store.read_user("A", "u")
    delete_user(ctx, "u", account="A", remove_keys=True)
    assert not ctx.keystore.has_private(uc.subject)
    with pytest.raises(NotFound):
        ctx.store.read_user("A", "u")
    delete_account(ctx, "A")
    assert ctx.store.list(ClaimType.ACCOUNT) == []


def test_writes_are_logged_without_seeds(ctx, account_a, caplog):
    caplog.set_level("INFO", logger="trustchain")
    add_user(ctx, AddUserParams(name="u", account="A"))
    uc = ctx.store.read_user("A", "u")
    seed = ctx.keystore.get_seed(uc.subject)
    assert any("stored user 'u'" in m for m in caplog.messages)
    assert all(seed not in m for m in caplog.messages)


def test_json_log_lines():
    record = logging.LogRecord("trustchain.test", logging.INFO, __file__, 1, 'said "hi" to %s', ("A",), None)
    line = json.loads(JsonLineFormatter().format(record))
    assert line["msg"] == 'said "hi" to A'
    assert line["level"] == "INFO"
    assert line["ts"].endswith("Z")
