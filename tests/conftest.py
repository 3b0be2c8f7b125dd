"""
Pytest configuration and fixtures for testing
"""
from datetime import datetime, timedelta, timezone

import pytest

import auth
import db
import store

# Fixed sweep instant used by the engine tests (midday UTC)
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def test_db(tmp_path, monkeypatch):
    """
    Fixture that points the app at a fresh SQLite file for each test.

    - Creates all tables and the default admin
    - Removes the file with tmp_path when the test completes
    """
    monkeypatch.setattr(db, "DB_FILE", tmp_path / "test_gym.db")
    db.init_db(auth.hash_password("admin123", rounds=4))
    yield tmp_path / "test_gym.db"


class FakeSender:
    """Records every call; optionally fails or raises."""

    def __init__(self, result=True, raises=False):
        self.result = result
        self.raises = raises
        self.sent = []
        self.admin_notices = []

    def send(self, recipient, user_name, membership, days_remaining, is_expired):
        self.sent.append((recipient, user_name, membership.id, days_remaining, is_expired))
        if self.raises:
            raise RuntimeError("channel down")
        return self.result

    def send_admin_notice(self, user_name, user_email, membership, days_remaining, is_expired):
        self.admin_notices.append((user_name, membership.id, is_expired))
        return self.result


@pytest.fixture
def email_sender():
    return FakeSender()


@pytest.fixture
def whatsapp_sender():
    return FakeSender()


@pytest.fixture
def make_member():
    counter = {"n": 0}

    def _make(end_offset_days, phone="+919876543210", plan_type="Monthly", today=None):
        counter["n"] += 1
        today = today or NOW.date()
        user_id = store.create_user(
            f"Member {counter['n']}", f"member{counter['n']}@example.com", phone, "x"
        )
        end = today + timedelta(days=end_offset_days)
        membership_id = store.create_membership(
            user_id, plan_type, (end - timedelta(days=30)).isoformat(), end.isoformat(), 1500.0
        )
        return user_id, membership_id

    return _make
