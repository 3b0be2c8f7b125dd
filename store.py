"""
store.py
Membership store: users, memberships and notifications.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date

import db
from models import Membership, MembershipStatus, Notification, NotificationType

logger = logging.getLogger(__name__)


class StoreError(Exception):
    pass


class NotFoundError(StoreError):
    pass


class ConflictError(StoreError):
    pass


# ---------- Users ----------

def create_user(name: str, email: str, phone: str | None, password_hash: str) -> int:
    try:
        return db.execute(
            "INSERT INTO users(name, email, phone, password_hash, created_at) VALUES(?,?,?,?,?)",
            (name, email, phone, password_hash, db.utc_now_iso()),
        )
    except sqlite3.IntegrityError as e:
        raise ConflictError(f"Email already registered: {email}") from e


def get_user(user_id: int) -> sqlite3.Row:
    row = db.fetch_one(
        "SELECT id, name, email, phone, created_at FROM users WHERE id = ?", (user_id,)
    )
    if not row:
        raise NotFoundError(f"Member {user_id} not found")
    return row


def get_user_by_email(email: str):
    return db.fetch_one("SELECT * FROM users WHERE email = ?", (email,))


def list_members() -> list[sqlite3.Row]:
    """Every user with their current (active) membership, if any."""
    return db.fetch_all(
        """
        SELECT u.id, u.name, u.email, u.phone, u.created_at,
               m.id AS membership_id, m.plan_type, m.start_date, m.end_date, m.status, m.amount
        FROM users u
        LEFT JOIN memberships m ON m.user_id = u.id AND m.status = 'active'
        ORDER BY u.created_at DESC, u.id DESC
        """
    )


def update_user(user_id: int, name: str | None = None, email: str | None = None,
                phone: str | None = None, password_hash: str | None = None) -> None:
    get_user(user_id)

    updates = []
    params: list = []
    if name:
        updates.append("name = ?")
        params.append(name)
    if email:
        other = db.fetch_one("SELECT id FROM users WHERE email = ? AND id != ?", (email, user_id))
        if other:
            raise ConflictError(f"Email already in use: {email}")
        updates.append("email = ?")
        params.append(email)
    if phone is not None:
        updates.append("phone = ?")
        params.append(phone or None)
    if password_hash:
        updates.append("password_hash = ?")
        params.append(password_hash)

    if not updates:
        return
    params.append(user_id)
    db.execute(f"UPDATE users SET {', '.join(updates)} WHERE id = ?", tuple(params))


def delete_user(user_id: int) -> None:
    # memberships and notifications go with it (ON DELETE CASCADE)
    if db.execute_rowcount("DELETE FROM users WHERE id = ?", (user_id,)) == 0:
        raise NotFoundError(f"Member {user_id} not found")
    logger.info("Deleted member %s", user_id)


# ---------- Memberships ----------

def _check_date(field: str, value: str) -> None:
    try:
        date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{field} must be a YYYY-MM-DD date, got {value!r}") from e


def create_membership(user_id: int, plan_type: str, start_date: str, end_date: str, amount: float) -> int:
    """
    Create a new active membership, demoting the user's current active one first.
    Both writes happen in one transaction so a user never has two active memberships.
    """
    _check_date("start_date", start_date)
    _check_date("end_date", end_date)
    get_user(user_id)
    with db.get_conn() as conn:
        conn.execute(
            "UPDATE memberships SET status = ? WHERE user_id = ? AND status = ?",
            (MembershipStatus.EXPIRED.value, user_id, MembershipStatus.ACTIVE.value),
        )
        cur = conn.execute(
            """
            INSERT INTO memberships(user_id, plan_type, start_date, end_date, status, amount, created_at)
            VALUES(?,?,?,?,?,?,?)
            """,
            (user_id, plan_type, start_date, end_date, MembershipStatus.ACTIVE.value, amount, db.utc_now_iso()),
        )
        membership_id = cur.lastrowid
    logger.info("Created %s membership %s for member %s", plan_type, membership_id, user_id)
    return membership_id


def get_membership(membership_id: int) -> Membership:
    row = db.fetch_one("SELECT * FROM memberships WHERE id = ?", (membership_id,))
    if not row:
        raise NotFoundError(f"Membership {membership_id} not found")
    return Membership.from_row(row)


def update_membership(membership_id: int, plan_type: str | None = None, start_date: str | None = None,
                      end_date: str | None = None, amount: float | None = None,
                      status: MembershipStatus | None = None) -> None:
    """
    Admin edit. Status may only stay as it is or move active -> expired;
    an expired membership is never made active again (renew instead).
    """
    current = get_membership(membership_id)

    updates = []
    params: list = []
    for column, value in (("plan_type", plan_type), ("start_date", start_date),
                          ("end_date", end_date), ("amount", amount)):
        if value is not None:
            if column.endswith("_date"):
                _check_date(column, value)
            updates.append(f"{column} = ?")
            params.append(value)
    if status is not None:
        status = MembershipStatus(status)
        if status is MembershipStatus.ACTIVE and current.status is MembershipStatus.EXPIRED:
            raise ConflictError(f"Membership {membership_id} has expired and cannot be reactivated")
        updates.append("status = ?")
        params.append(status.value)

    if not updates:
        return
    params.append(membership_id)
    db.execute(f"UPDATE memberships SET {', '.join(updates)} WHERE id = ?", tuple(params))


def list_memberships() -> list[sqlite3.Row]:
    return db.fetch_all(
        """
        SELECT m.*, u.name AS user_name, u.email AS user_email
        FROM memberships m
        JOIN users u ON u.id = m.user_id
        ORDER BY m.end_date ASC
        """
    )


def get_active_membership(user_id: int) -> Membership | None:
    row = db.fetch_one(
        "SELECT * FROM memberships WHERE user_id = ? AND status = 'active' ORDER BY end_date DESC LIMIT 1",
        (user_id,),
    )
    return Membership.from_row(row) if row else None


def membership_history(user_id: int) -> list[sqlite3.Row]:
    return db.fetch_all(
        "SELECT * FROM memberships WHERE user_id = ? ORDER BY created_at DESC, id DESC", (user_id,)
    )


def list_active_memberships() -> list[Membership]:
    rows = db.fetch_all(
        """
        SELECT m.*, u.name AS user_name, u.email AS user_email, u.phone AS user_phone
        FROM memberships m
        JOIN users u ON u.id = m.user_id
        WHERE m.status = 'active'
        """
    )
    return [Membership.from_row(r) for r in rows]


def set_membership_status(membership_id: int, status: MembershipStatus) -> None:
    with db.get_conn() as conn:
        _set_status(conn, membership_id, status)


# ---------- Notifications ----------

def notification_exists(membership_id: int, type_: NotificationType) -> bool:
    row = db.fetch_one(
        "SELECT id FROM notifications WHERE membership_id = ? AND type = ?",
        (membership_id, NotificationType(type_).value),
    )
    return row is not None


def notification_types_for(membership_id: int) -> set[NotificationType]:
    rows = db.fetch_all("SELECT type FROM notifications WHERE membership_id = ?", (membership_id,))
    return {NotificationType(r["type"]) for r in rows}


def _insert_notification(conn, user_id, membership_id, message, type_, created_at):
    cur = conn.execute(
        """
        INSERT INTO notifications(user_id, membership_id, message, type, is_read, created_at)
        VALUES(?,?,?,?,0,?)
        ON CONFLICT(membership_id, type) DO NOTHING
        """,
        (user_id, membership_id, message, type_.value, created_at),
    )
    return cur.lastrowid if cur.rowcount else None


def _set_status(conn, membership_id, status):
    conn.execute(
        "UPDATE memberships SET status = ? WHERE id = ?",
        (MembershipStatus(status).value, membership_id),
    )


def insert_notification(user_id: int, membership_id: int | None, message: str,
                        type_: NotificationType) -> Notification | None:
    """
    Insert a notification row. Returns None when a row for (membership_id, type)
    already exists, i.e. the membership was already notified for that state.
    """
    type_ = NotificationType(type_)
    created_at = db.utc_now_iso()
    with db.get_conn() as conn:
        notification_id = _insert_notification(conn, user_id, membership_id, message, type_, created_at)
    if notification_id is None:
        return None
    return Notification(
        id=notification_id,
        user_id=user_id,
        membership_id=membership_id,
        message=message,
        type=type_,
        is_read=False,
        created_at=created_at,
    )


def record_expiry(user_id: int, membership_id: int, message: str) -> Notification | None:
    """
    Write the `expired` notification and flip the membership to expired in one
    transaction. If either write fails neither is kept, so the next sweep sees
    the membership exactly as before. Returns None when it was already recorded.
    """
    created_at = db.utc_now_iso()
    with db.get_conn() as conn:
        notification_id = _insert_notification(
            conn, user_id, membership_id, message, NotificationType.EXPIRED, created_at
        )
        if notification_id is None:
            return None
        _set_status(conn, membership_id, MembershipStatus.EXPIRED)
    return Notification(
        id=notification_id,
        user_id=user_id,
        membership_id=membership_id,
        message=message,
        type=NotificationType.EXPIRED,
        is_read=False,
        created_at=created_at,
    )


def list_notifications(limit: int = 100) -> list[sqlite3.Row]:
    return db.fetch_all(
        """
        SELECT n.*, u.name AS user_name, u.email AS user_email
        FROM notifications n
        JOIN users u ON u.id = n.user_id
        ORDER BY n.created_at DESC, n.id DESC
        LIMIT ?
        """,
        (limit,),
    )


def user_notifications(user_id: int, limit: int = 50) -> list[Notification]:
    rows = db.fetch_all(
        "SELECT * FROM notifications WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
        (user_id, limit),
    )
    return [Notification.from_row(r) for r in rows]


def unread_count(user_id: int) -> int:
    return db.fetch_one(
        "SELECT COUNT(*) AS c FROM notifications WHERE user_id = ? AND is_read = 0", (user_id,)
    )["c"]


def mark_notification_read(notification_id: int, user_id: int) -> None:
    changed = db.execute_rowcount(
        "UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?",
        (notification_id, user_id),
    )
    if changed == 0:
        raise NotFoundError(f"Notification {notification_id} not found")


def mark_all_read(user_id: int) -> int:
    return db.execute_rowcount("UPDATE notifications SET is_read = 1 WHERE user_id = ?", (user_id,))


# ---------- Dashboard ----------

def dashboard_stats(today: str, in_7: str, week_ago: str) -> dict:
    return {
        "total_members": db.fetch_one("SELECT COUNT(*) AS c FROM users")["c"],
        "active_memberships": db.fetch_one(
            "SELECT COUNT(*) AS c FROM memberships WHERE status = 'active'"
        )["c"],
        "expiring_memberships": db.fetch_one(
            "SELECT COUNT(*) AS c FROM memberships WHERE status = 'active' AND end_date BETWEEN ? AND ?",
            (today, in_7),
        )["c"],
        "total_revenue": float(db.fetch_one("SELECT COALESCE(SUM(amount), 0) AS s FROM memberships")["s"]),
        "recent_notifications": db.fetch_one(
            "SELECT COUNT(*) AS c FROM notifications WHERE created_at >= ?", (week_ago,)
        )["c"],
    }
