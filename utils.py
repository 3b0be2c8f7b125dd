"""
utils.py
Validation, dates, exports, sample data.
"""

from __future__ import annotations

import re
from datetime import date, timedelta

import pandas as pd

import auth
import db
import store
from models import PLAN_MONTHS

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def today_iso() -> str:
    return date.today().isoformat()


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def add_months(start: date, months: int) -> date:
    """
    Add months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    # last day of target month
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    day = min(start.day, last_day.day)
    return date(y, m, day)


def calc_end_date(start_date_iso: str, plan_type: str) -> str:
    start = parse_iso(start_date_iso)
    months = PLAN_MONTHS.get(plan_type, 1)
    end = add_months(start, months)
    return end.isoformat()


def validate_member_inputs(name: str, email: str, password: str | None = None) -> list[str]:
    errors: list[str] = []
    if not name.strip():
        errors.append("Name is required.")
    if not EMAIL_RE.match(email.strip()):
        errors.append("A valid email is required.")
    if password is not None and len(password) < auth.MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {auth.MIN_PASSWORD_LENGTH} characters.")
    return errors


def validate_membership_inputs(plan_type: str, amount, start_date: str, end_date: str) -> list[str]:
    errors: list[str] = []
    if not plan_type.strip():
        errors.append("Plan type is required.")
    try:
        if float(amount) <= 0:
            errors.append("Amount must be > 0.")
    except (TypeError, ValueError):
        errors.append("Amount must be numeric.")
    try:
        sd = parse_iso(start_date)
        ed = parse_iso(end_date)
        if ed <= sd:
            errors.append("End date must be after start date.")
    except (TypeError, ValueError):
        errors.append("Start/end dates must be valid ISO dates (YYYY-MM-DD).")
    return errors


def rows_to_csv_bytes(rows) -> bytes:
    df = pd.DataFrame([dict(r) for r in rows])
    return df.to_csv(index=False).encode("utf-8")


def revenue_summary_by_month() -> pd.DataFrame:
    rows = db.fetch_all(
        """
        SELECT strftime('%Y-%m', start_date) AS month, SUM(amount) AS revenue
        FROM memberships
        GROUP BY strftime('%Y-%m', start_date)
        ORDER BY month DESC
        """
    )
    df = pd.DataFrame([dict(r) for r in rows])
    if df.empty:
        return pd.DataFrame(columns=["month", "revenue"])
    return df


def insert_sample_data() -> None:
    """
    Insert 3 members with memberships at different points of their lifecycle
    (safe to run multiple times: emails are suffixed to stay unique).
    """
    today = date.today()
    suffix = db.fetch_one("SELECT COALESCE(MAX(id), 0) + 1 AS n FROM users")["n"]
    password_hash = auth.hash_password("member123")

    samples = [
        # expires in 5 days -> 5-day warning on next sweep
        ("Ahmed Hassan", "+919876500001", "Monthly", today - timedelta(days=25), today + timedelta(days=5), 1500.0),
        # long plan -> nothing to do
        ("Mona Ali", "+919876500002", "Quarterly", today - timedelta(days=10), None, 4000.0),
        # ended two days ago but still active -> expired on next sweep
        ("Omar Samy", None, "Monthly", today - timedelta(days=32), today - timedelta(days=2), 1500.0),
    ]
    for i, (name, phone, plan, start, end, amount) in enumerate(samples, start=1):
        email = f"sample{suffix}.{i}@example.com"
        user_id = store.create_user(name, email, phone, password_hash)
        end_iso = end.isoformat() if end else calc_end_date(start.isoformat(), plan)
        store.create_membership(user_id, plan, start.isoformat(), end_iso, amount)
