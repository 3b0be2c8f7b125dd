"""
models.py
Lightweight domain helpers (plans, enums, dataclasses).
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from enum import Enum

# Plan durations in months (used for end_date auto-calculation)
PLAN_MONTHS = {
    "Monthly": 1,
    "Quarterly": 3,
    "Half-Yearly": 6,
    "Yearly": 12,
}


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class NotificationType(str, Enum):
    WARNING_5DAY = "warning_5day"
    WARNING_2DAY = "warning_2day"
    EXPIRED = "expired"


class Classification(str, Enum):
    """Expiry-urgency bucket of a membership at a given instant."""

    NONE = "none"
    WARNING_5DAY = "warning_5day"
    WARNING_2DAY = "warning_2day"
    EXPIRED = "expired"

    @property
    def notification_type(self) -> NotificationType | None:
        if self is Classification.NONE:
            return None
        return NotificationType(self.value)


# Ordering of notification states; a sweep never writes a state below one already recorded
NOTIFICATION_RANK = {
    NotificationType.WARNING_5DAY: 1,
    NotificationType.WARNING_2DAY: 2,
    NotificationType.EXPIRED: 3,
}


@dataclass(frozen=True)
class Membership:
    id: int | None
    user_id: int
    plan_type: str
    start_date: str
    end_date: str
    status: MembershipStatus
    amount: float
    created_at: str
    # Joined from users for the sweep
    user_name: str | None = None
    user_email: str | None = None
    user_phone: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Membership":
        keys = row.keys()
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            plan_type=row["plan_type"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            status=MembershipStatus(row["status"]),
            amount=float(row["amount"]),
            created_at=row["created_at"],
            user_name=row["user_name"] if "user_name" in keys else None,
            user_email=row["user_email"] if "user_email" in keys else None,
            user_phone=row["user_phone"] if "user_phone" in keys else None,
        )


@dataclass(frozen=True)
class Notification:
    id: int | None
    user_id: int
    membership_id: int | None
    message: str
    type: NotificationType
    is_read: bool
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Notification":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            membership_id=row["membership_id"],
            message=row["message"],
            type=NotificationType(row["type"]),
            is_read=bool(row["is_read"]),
            created_at=row["created_at"],
        )
