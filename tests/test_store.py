"""
Tests for the membership store
"""
import pytest

import db
import store
from models import MembershipStatus, NotificationType


def _user(email="ana@example.com", phone=None):
    return store.create_user("Ana", email, phone, "hash")


def test_duplicate_email_is_a_conflict():
    _user()
    with pytest.raises(store.ConflictError):
        _user()


def test_new_membership_demotes_current_active():
    user_id = _user()
    first = store.create_membership(user_id, "Monthly", "2026-01-01", "2026-02-01", 1500.0)
    second = store.create_membership(user_id, "Quarterly", "2026-02-01", "2026-05-01", 4000.0)

    assert store.get_membership(first).status is MembershipStatus.EXPIRED
    assert store.get_membership(second).status is MembershipStatus.ACTIVE
    assert store.get_active_membership(user_id).id == second
    assert [m.id for m in store.list_active_memberships()] == [second]
    assert len(store.membership_history(user_id)) == 2


def test_membership_for_unknown_user():
    with pytest.raises(store.NotFoundError):
        store.create_membership(999, "Monthly", "2026-01-01", "2026-02-01", 1500.0)


def test_expired_membership_is_never_reactivated():
    user_id = _user()
    first = store.create_membership(user_id, "Monthly", "2026-01-01", "2026-02-01", 1500.0)
    store.create_membership(user_id, "Monthly", "2026-02-01", "2026-03-01", 1500.0)

    with pytest.raises(store.ConflictError):
        store.update_membership(first, status=MembershipStatus.ACTIVE)

    other_id = _user("bo@example.com")
    only = store.create_membership(other_id, "Monthly", "2026-01-01", "2026-02-01", 1500.0)
    store.set_membership_status(only, MembershipStatus.EXPIRED)
    with pytest.raises(store.ConflictError):
        store.update_membership(only, status=MembershipStatus.ACTIVE)
    assert store.get_membership(only).status is MembershipStatus.EXPIRED

    # keeping the current status is fine
    store.update_membership(only, status=MembershipStatus.EXPIRED, amount=1000.0)
    assert store.get_membership(only).amount == 1000.0


def test_membership_dates_must_be_iso():
    user_id = _user()
    with pytest.raises(ValueError, match="end_date"):
        store.create_membership(user_id, "Monthly", "2026-02-12", "2026/03/12", 1500.0)
    assert store.membership_history(user_id) == []

    membership_id = store.create_membership(user_id, "Monthly", "2026-02-12", "2026-03-12", 1500.0)
    with pytest.raises(ValueError, match="start_date"):
        store.update_membership(membership_id, start_date="12.02.2026")
    assert store.get_membership(membership_id).start_date == "2026-02-12"


def test_admin_status_override():
    user_id = _user()
    membership_id = store.create_membership(user_id, "Monthly", "2026-01-01", "2026-02-01", 1500.0)
    store.update_membership(membership_id, status=MembershipStatus.EXPIRED, amount=1200.0)

    m = store.get_membership(membership_id)
    assert m.status is MembershipStatus.EXPIRED
    assert m.amount == 1200.0
    assert store.list_active_memberships() == []


def test_active_memberships_carry_user_contact():
    user_id = _user(phone="+919800000000")
    store.create_membership(user_id, "Monthly", "2026-01-01", "2026-02-01", 1500.0)

    [m] = store.list_active_memberships()
    assert (m.user_name, m.user_email, m.user_phone) == ("Ana", "ana@example.com", "+919800000000")


def test_insert_notification_dedups_on_membership_and_type():
    user_id = _user()
    membership_id = store.create_membership(user_id, "Monthly", "2026-01-01", "2026-02-01", 1500.0)

    first = store.insert_notification(user_id, membership_id, "5 days", NotificationType.WARNING_5DAY)
    again = store.insert_notification(user_id, membership_id, "5 days", NotificationType.WARNING_5DAY)
    other = store.insert_notification(user_id, membership_id, "2 days", NotificationType.WARNING_2DAY)

    assert first is not None and first.type is NotificationType.WARNING_5DAY
    assert again is None
    assert other is not None
    assert store.notification_exists(membership_id, NotificationType.WARNING_5DAY)
    assert not store.notification_exists(membership_id, NotificationType.EXPIRED)
    assert store.notification_types_for(membership_id) == {
        NotificationType.WARNING_5DAY, NotificationType.WARNING_2DAY
    }


def test_read_marking():
    user_id = _user()
    other_id = _user("bo@example.com")
    membership_id = store.create_membership(user_id, "Monthly", "2026-01-01", "2026-02-01", 1500.0)
    n1 = store.insert_notification(user_id, membership_id, "a", NotificationType.WARNING_5DAY)
    store.insert_notification(user_id, membership_id, "b", NotificationType.WARNING_2DAY)

    assert store.unread_count(user_id) == 2
    store.mark_notification_read(n1.id, user_id)
    assert store.unread_count(user_id) == 1

    with pytest.raises(store.NotFoundError):
        store.mark_notification_read(n1.id, other_id)

    assert store.mark_all_read(user_id) == 2
    assert store.unread_count(user_id) == 0
    assert all(n.is_read for n in store.user_notifications(user_id))


def test_delete_user_cascades():
    user_id = _user()
    membership_id = store.create_membership(user_id, "Monthly", "2026-01-01", "2026-02-01", 1500.0)
    store.insert_notification(user_id, membership_id, "a", NotificationType.EXPIRED)

    store.delete_user(user_id)

    assert db.fetch_one("SELECT COUNT(*) AS c FROM memberships")["c"] == 0
    assert db.fetch_one("SELECT COUNT(*) AS c FROM notifications")["c"] == 0
    with pytest.raises(store.NotFoundError):
        store.delete_user(user_id)


def test_update_user_checks_email_uniqueness():
    user_id = _user()
    _user("bo@example.com")

    with pytest.raises(store.ConflictError):
        store.update_user(user_id, email="bo@example.com")

    store.update_user(user_id, name="Ana Maria", phone="")
    row = store.get_user(user_id)
    assert row["name"] == "Ana Maria"
    assert row["phone"] is None


def test_list_members_shows_current_membership_only():
    user_id = _user()
    store.create_membership(user_id, "Monthly", "2026-01-01", "2026-02-01", 1500.0)
    current = store.create_membership(user_id, "Yearly", "2026-02-01", "2027-02-01", 12000.0)
    _user("bo@example.com")

    rows = {r["email"]: r for r in store.list_members()}
    assert rows["ana@example.com"]["membership_id"] == current
    assert rows["bo@example.com"]["membership_id"] is None


def test_dashboard_stats():
    user_id = _user()
    store.create_membership(user_id, "Monthly", "2026-03-01", "2026-03-12", 1500.0)
    # overdue but not yet swept: still counts as active
    late_id = _user("bo@example.com")
    store.create_membership(late_id, "Monthly", "2026-02-01", "2026-03-01", 1000.0)

    stats = store.dashboard_stats("2026-03-10", "2026-03-17", "2000-01-01")
    assert stats == {
        "total_members": 2,
        "active_memberships": 2,
        "expiring_memberships": 1,
        "total_revenue": 2500.0,
        "recent_notifications": 0,
    }
