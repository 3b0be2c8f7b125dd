"""
Tests for authentication and password reset codes
"""
from datetime import datetime, timedelta, timezone

import pytest

import auth
import db
import store


def _register(password="secret1"):
    return auth.register_member("Ana", "Ana@Example.com", " 9876543210 ", password)


def test_hash_and_verify():
    h = auth.hash_password("pässwörd", rounds=4)
    assert auth.verify_password("pässwörd", h)
    assert not auth.verify_password("password", h)


def test_long_passwords_truncate_at_72_bytes():
    h = auth.hash_password("a" * 80, rounds=4)
    assert auth.verify_password("a" * 72 + "different", h)


def test_default_admin_and_forced_change():
    assert auth.login("admin", "admin123")
    assert not auth.login("admin", "wrong")
    assert not auth.login("nobody", "admin123")
    assert db.is_force_password_change()

    auth.change_password("admin", "newpass1")
    assert auth.login("admin", "newpass1")
    assert not db.is_force_password_change()


def test_register_normalises_and_logs_in():
    user_id = _register()
    user = auth.member_login("ana@example.com", "secret1")
    assert user["id"] == user_id
    assert user["phone"] == "9876543210"
    assert auth.member_login("ana@example.com", "nope") is None


def test_register_rejects_short_password():
    with pytest.raises(ValueError, match="at least 6"):
        _register("abc")
    assert store.get_user_by_email("ana@example.com") is None


def test_member_password_change_needs_current_password():
    user_id = _register()
    assert not auth.change_member_password(user_id, "wrong", "another1")
    assert auth.change_member_password(user_id, "secret1", "another1")
    assert auth.member_login("ana@example.com", "another1")


def test_reset_code_for_unknown_email():
    assert auth.issue_reset_code("ghost@example.com") is None


def test_reset_code_lifecycle():
    _register()
    now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    code = auth.issue_reset_code("ana@example.com", now=now)
    assert len(code) == 6 and code.isdigit()

    ok, msg = auth.reset_password("ana@example.com", "000000" if code != "000000" else "111111",
                                  "brandnew", now=now)
    assert not ok and "Invalid" in msg

    ok, _ = auth.reset_password("ana@example.com", code, "brandnew", now=now + timedelta(minutes=5))
    assert ok
    assert auth.member_login("ana@example.com", "brandnew")

    # single use
    ok, _ = auth.reset_password("ana@example.com", code, "again123", now=now + timedelta(minutes=6))
    assert not ok


def test_reset_code_expires():
    _register()
    now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    code = auth.issue_reset_code("ana@example.com", now=now)

    ok, msg = auth.reset_password("ana@example.com", code, "brandnew", now=now + timedelta(minutes=11))
    assert not ok and "expired" in msg
    assert db.fetch_one("SELECT * FROM password_resets WHERE email = ?", ("ana@example.com",)) is None


def test_new_code_replaces_previous():
    _register()
    now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    auth.issue_reset_code("ana@example.com", now=now)
    auth.issue_reset_code("ana@example.com", now=now)
    assert db.fetch_one("SELECT COUNT(*) AS c FROM password_resets")["c"] == 1


def test_reset_rejects_short_password():
    _register()
    code = auth.issue_reset_code("ana@example.com")
    ok, msg = auth.reset_password("ana@example.com", code, "abc")
    assert not ok and "at least 6" in msg
