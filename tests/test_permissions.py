# tests/test_permissions.py

import pytest

from trustchain_core.errors import ValidationFailed
from trustchain_core.permissions import Direction, Mode, PermissionEdit, PermissionSet, ResponsePermission


def test_add_is_idempotent_and_sorted():
    ps = PermissionSet()
    ps.add(Direction.PUB, Mode.ALLOW, "foo.>", "bar", "baz.*")
    ps.add(Direction.PUB, Mode.ALLOW, "bar", "foo.>")
    assert ps.pub.allow == ["bar", "baz.*", "foo.>"]
    assert ps.sub.allow == []
    assert ps.pub.deny == []


def test_add_accepts_string_direction_and_mode():
    ps = PermissionSet()
    ps.add("sub", "deny", "secret.>")
    assert ps.sub.deny == ["secret.>"]


def test_patterns_are_not_grammar_checked():
    ps = PermissionSet()
    ps.add(Direction.SUB, Mode.ALLOW, "not..a..subject")
    assert ps.sub.allow == ["not..a..subject"]


def test_pubsub_matches_separate_flags():
    combined = PermissionSet()
    combined.add_pubsub(Mode.ALLOW, "a", "b.>")

    separate = PermissionSet()
    separate.add(Direction.PUB, Mode.ALLOW, "a", "b.>")
    separate.add(Direction.SUB, Mode.ALLOW, "a", "b.>")

    assert combined == separate


def test_remove():
    ps = PermissionSet()
    ps.add_pubsub(Mode.DENY, "x", "y")
    ps.remove(Direction.PUB, Mode.DENY, "x", "missing")
    assert ps.pub.deny == ["y"]
    assert ps.sub.deny == ["x", "y"]


def test_response_overwrite_and_remove():
    ps = PermissionSet()
    ps.set_response(5, 10)
    ps.set_response(1)
    assert ps.resp == ResponsePermission(max_msgs=1, expires=0)
    ps.remove_response()
    assert ps.resp is None


def test_dict_roundtrip():
    ps = PermissionSet()
    ps.add(Direction.PUB, Mode.ALLOW, "a")
    ps.add(Direction.SUB, Mode.DENY, "b")
    ps.set_response(2, 30)
    assert PermissionSet.from_dict(ps.to_dict()) == ps
    assert PermissionSet().to_dict() == {}


def test_edit_applies_all_lists():
    ps = PermissionSet()
    PermissionEdit(
        allow_pub=["p"],
        allow_sub=["s"],
        allow_pubsub=["ps"],
        deny_pubsub=["d"],
        response_max=3,
    ).apply(ps)
    assert ps.pub.allow == ["p", "ps"]
    assert ps.sub.allow == ["ps", "s"]
    assert ps.pub.deny == ps.sub.deny == ["d"]
    assert ps.resp == ResponsePermission(max_msgs=3, expires=0)


def test_edit_keeps_unchanged_response_field():
    ps = PermissionSet()
    ps.set_response(4, 60)
    PermissionEdit(response_ttl=5).apply(ps)
    assert ps.resp == ResponsePermission(max_msgs=4, expires=5)


def test_edit_rejects_set_and_remove_response():
    ps = PermissionSet()
    edit = PermissionEdit(allow_pub=["a"], response_max=1, remove_response=True)
    with pytest.raises(ValidationFailed):
        edit.apply(ps)
    assert ps.pub.allow == []


def test_response_ttl_from_duration_string():
    ps = PermissionSet()
    PermissionEdit(response_max=1, response_ttl="250ms").apply(ps)
    assert ps.resp == ResponsePermission(max_msgs=1, expires=250)
    assert PermissionSet.from_dict(ps.to_dict()).resp == ps.resp

    PermissionEdit(response_ttl="1us").apply(ps)
    assert ps.resp == ResponsePermission(max_msgs=1, expires=1)


def test_response_ttl_bad_duration_changes_nothing():
    ps = PermissionSet()
    with pytest.raises(ValidationFailed):
        PermissionEdit(allow_pub=["a"], response_ttl="soon").apply(ps)
    assert ps.pub.allow == []
    assert ps.resp is None
