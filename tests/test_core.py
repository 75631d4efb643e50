import os
import stat

import pytest

from trustchain_core.creds import generate_creds, parse_creds
from trustchain_core.crypto import KeyPair, Role, is_public_key, is_seed
from trustchain_core.errors import KeyMismatch, KeyNotFound, NoSigningKey, ValidationFailed
from trustchain_core.resolver import KeyResolver


def test_key_prefixes():
    for role, letter in [(Role.OPERATOR, "O"), (Role.ACCOUNT, "A"), (Role.USER, "U"), (Role.CLUSTER, "C")]:
        kp = KeyPair.generate(role)
        assert kp.public_key.startswith(letter)
        assert kp.seed.startswith("S" + letter)
        assert is_public_key(kp.public_key, role)
        assert is_seed(kp.seed)


def test_seed_roundtrip_and_sign_verify():
    kp = KeyPair.generate(Role.ACCOUNT)
    loaded = KeyPair.from_seed(kp.seed)
    assert loaded == kp
    sig = loaded.sign(b"hello")
    assert kp.public_only().verify(b"hello", sig)
    assert not kp.public_only().verify(b"hullo", sig)


def test_public_only_cannot_sign():
    kp = KeyPair.generate(Role.USER).public_only()
    assert not kp.has_private
    with pytest.raises(NoSigningKey):
        kp.sign(b"data")


def test_checksum_detects_corruption():
    pk = KeyPair.generate(Role.OPERATOR).public_key
    bad = pk[:10] + ("A" if pk[10] != "A" else "B") + pk[11:]
    with pytest.raises(ValidationFailed):
        KeyPair.from_public(bad)


def test_repr_hides_seed():
    kp = KeyPair.generate(Role.USER)
    assert kp.seed not in repr(kp)


def test_keystore_owner_only(keystore):
    kp = KeyPair.generate(Role.ACCOUNT)
    path = keystore.store(kp)
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert stat.S_IMODE(os.stat(os.path.dirname(path)).st_mode) == 0o700
    assert keystore.get_key(kp.public_key) == kp
    assert keystore.list(Role.ACCOUNT) == [kp.public_key]
    assert keystore.remove(kp.public_key)
    assert keystore.get_key(kp.public_key) is None


def test_keystore_export_public(keystore, tmp_path):
    kp = KeyPair.generate(Role.USER)
    path = keystore.export_public(kp.public_key, str(tmp_path / "shared"))
    with open(path) as f:
        assert f.read().strip() == kp.public_key


def test_resolve_explicit_seed_checks_role(keystore):
    r = KeyResolver(keystore)
    user = KeyPair.generate(Role.USER)
    with pytest.raises(KeyMismatch):
        r.resolve(Role.ACCOUNT, explicit=user.seed)
    assert r.resolve(Role.USER, explicit=user.seed) == user


def test_resolve_explicit_path(keystore, tmp_path):
    kp = KeyPair.generate(Role.OPERATOR)
    p = tmp_path / "op.nk"
    p.write_text(kp.seed + "\n")
    assert KeyResolver(keystore).resolve(Role.OPERATOR, explicit=str(p)) == kp


def test_resolve_missing_path(keystore, tmp_path):
    with pytest.raises(KeyNotFound):
        KeyResolver(keystore).resolve(Role.OPERATOR, explicit=str(tmp_path / "missing.nk"))


def test_resolve_file_without_key(keystore, tmp_path):
    p = tmp_path / "notes.txt"
    p.write_text("no keys in here\n")
    with pytest.raises(KeyNotFound):
        KeyResolver(keystore).resolve(Role.OPERATOR, explicit=str(p))


def test_resolve_public_key_without_seed(keystore):
    r = KeyResolver(keystore)
    pub = KeyPair.generate(Role.ACCOUNT).public_key
    with pytest.raises(NoSigningKey):
        r.resolve(Role.ACCOUNT, explicit=pub)
    kp = r.resolve(Role.ACCOUNT, explicit=pub, require_private=False)
    assert kp.public_key == pub and not kp.has_private


def test_resolve_from_keystore(keystore):
    kp = KeyPair.generate(Role.ACCOUNT)
    keystore.store(kp)
    r = KeyResolver(keystore)
    assert r.resolve(Role.ACCOUNT, public_key=kp.public_key) == kp


def test_resolve_context_key_missing(keystore):
    r = KeyResolver(keystore)
    pub = KeyPair.generate(Role.ACCOUNT).public_key
    with pytest.raises(NoSigningKey):
        r.resolve(Role.ACCOUNT, public_key=pub)
    with pytest.raises(KeyNotFound):
        r.resolve(Role.ACCOUNT)


def test_generated_keys_are_not_persisted(keystore):
    kp = KeyResolver(keystore).resolve(Role.USER, allow_generate=True)
    assert kp.has_private
    assert keystore.list(Role.USER) == []


def test_creds_roundtrip():
    kp = KeyPair.generate(Role.USER)
    token, loaded = parse_creds(generate_creds("aaa.bbb.ccc", kp))
    assert token == "aaa.bbb.ccc"
    assert loaded == kp


def test_creds_require_user_key():
    with pytest.raises(KeyMismatch):
        generate_creds("aaa.bbb.ccc", KeyPair.generate(Role.ACCOUNT))
