"""
notifications.py
Membership-expiry notifications: classifier + sweep.

A sweep walks every active membership, works out how close it is to expiry and
records at most one notification per (membership, state). The notifications
table is the dedup ledger, so sweeps can run at any cadence, overlap, or be
triggered by hand without double-alerting a member.
"""

from __future__ import annotations

import logging
import math
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, time, timezone

import store
from delivery import EmailSender, WhatsAppSender
from models import (
    NOTIFICATION_RANK,
    Classification,
    Membership,
    NotificationType,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def days_remaining(end_date: str | date, now: datetime | None = None) -> int:
    """ceil((end_date - now) / 1 day), with end_date taken as midnight UTC."""
    if isinstance(end_date, str):
        end_date = date.fromisoformat(end_date)
    now = now or _utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    end = datetime.combine(end_date, time.min, tzinfo=timezone.utc)
    return math.ceil((end - now).total_seconds() / SECONDS_PER_DAY)


def classify_days(days: int) -> Classification:
    if days <= 0:
        return Classification.EXPIRED
    if 4 <= days <= 6:
        return Classification.WARNING_5DAY
    if 1 <= days <= 3:
        return Classification.WARNING_2DAY
    return Classification.NONE


def classify(end_date: str | date, now: datetime | None = None) -> tuple[int, Classification]:
    days = days_remaining(end_date, now)
    return days, classify_days(days)


def notification_state(membership_id: int) -> NotificationType | None:
    """Furthest notification state recorded for a membership (None = silent)."""
    recorded = store.notification_types_for(membership_id)
    if not recorded:
        return None
    return max(recorded, key=NOTIFICATION_RANK.__getitem__)


def compose_message(membership: Membership, classification: Classification, days: int) -> str:
    if classification is Classification.EXPIRED:
        return f"❌ Your {membership.plan_type} membership has EXPIRED! Please renew to continue."
    return f"⚠️ Your {membership.plan_type} membership expires in {days} day(s)!"


def _safe_send(channel: str, fn, *args) -> bool:
    try:
        return bool(fn(*args))
    except Exception:
        logger.exception("%s delivery raised", channel)
        return False


def _process(membership: Membership, now: datetime) -> tuple[Classification, int] | None:
    """
    Record the notification for one membership if it is due.
    Returns (classification, days) when a new notification was written.
    """
    days, classification = classify(membership.end_date, now)
    ntype = classification.notification_type
    if ntype is None:
        return None

    if store.notification_exists(membership.id, ntype):
        return None

    state = notification_state(membership.id)
    if state is not None and NOTIFICATION_RANK[state] > NOTIFICATION_RANK[ntype]:
        # never step back to an earlier warning
        return None

    message = compose_message(membership, classification, days)
    if classification is Classification.EXPIRED:
        recorded = store.record_expiry(membership.user_id, membership.id, message)
    else:
        recorded = store.insert_notification(membership.user_id, membership.id, message, ntype)
    if recorded is None:
        # another sweep recorded it first
        return None

    if classification is Classification.EXPIRED:
        logger.info("Membership %s marked as expired", membership.id)

    return classification, days


def run_sweep(now: datetime | None = None, email_sender=None, whatsapp_sender=None) -> int:
    """
    One pass over all active memberships.

    Returns the number of memberships that got a new notification. Delivery
    outcomes do not affect the count. A membership whose stored dates cannot be
    read is logged and skipped. A store error aborts the pass and returns 0;
    anything not yet processed is picked up by the next sweep.
    """
    now = now or _utc_now()
    email_sender = email_sender or EmailSender()
    whatsapp_sender = whatsapp_sender or WhatsAppSender()

    count = 0
    try:
        with ThreadPoolExecutor(max_workers=4, thread_name_prefix="delivery") as pool:
            for membership in store.list_active_memberships():
                try:
                    result = _process(membership, now)
                except ValueError:
                    logger.exception("Skipping membership %s with unreadable end date %r",
                                     membership.id, membership.end_date)
                    continue
                if result is None:
                    continue
                classification, days = result
                count += 1

                is_expired = classification is Classification.EXPIRED
                shown_days = 0 if is_expired else days
                name = membership.user_name or ""
                pool.submit(_safe_send, "email", email_sender.send,
                            membership.user_email, name, membership, shown_days, is_expired)
                pool.submit(_safe_send, "admin email", email_sender.send_admin_notice,
                            name, membership.user_email, membership, shown_days, is_expired)
                if membership.user_phone:
                    pool.submit(_safe_send, "whatsapp", whatsapp_sender.send,
                                membership.user_phone, name, membership, shown_days, is_expired)

                label = "EXPIRED" if is_expired else f"{days} day(s) left"
                logger.info("Notified %s (membership %s): %s", name, membership.id, label)
    except sqlite3.Error:
        logger.exception("Expiry sweep aborted by store error")
        return 0
    except Exception:
        logger.exception("Expiry sweep failed")
        return 0

    return count
