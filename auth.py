"""
auth.py
Authentication utilities (bcrypt hashing, verify, login, change password, reset codes).

This avoids passlib's bcrypt backend auto-detection issues on some Python 3.13 Windows setups.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt

import config
import db
import store

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (stored in SQLite).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    return bcrypt.checkpw(secret, stored)


# ---------- Admin ----------

def get_admin_by_username(username: str):
    return db.fetch_one("SELECT * FROM admin_users WHERE username = ?", (username,))


def login(username: str, password: str) -> bool:
    admin = get_admin_by_username(username)
    if not admin:
        return False
    return verify_password(password, admin["password_hash"])


def change_password(username: str, new_password: str) -> None:
    new_hash = hash_password(new_password)
    db.execute(
        "UPDATE admin_users SET password_hash = ? WHERE username = ?",
        (new_hash, username),
    )
    db.clear_force_password_change()


# ---------- Members ----------

def member_login(email: str, password: str):
    """Returns the member row on success, None otherwise."""
    user = store.get_user_by_email(email.strip().lower())
    if not user or not verify_password(password, user["password_hash"]):
        return None
    return user


def register_member(name: str, email: str, phone: str | None, password: str) -> int:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    return store.create_user(name.strip(), email.strip().lower(), (phone or "").strip() or None,
                             hash_password(password))


def change_member_password(user_id: int, current_password: str, new_password: str) -> bool:
    row = db.fetch_one("SELECT password_hash FROM users WHERE id = ?", (user_id,))
    if not row or not verify_password(current_password, row["password_hash"]):
        return False
    store.update_user(user_id, password_hash=hash_password(new_password))
    return True


# ---------- Password reset codes ----------

def _now() -> datetime:
    return datetime.now(timezone.utc)


def issue_reset_code(email: str, now: datetime | None = None) -> str | None:
    """
    Create a 6-digit reset code for a member, valid for RESET_CODE_TTL_MINUTES.
    Returns None for unknown emails (callers must not reveal which).
    """
    email = email.strip().lower()
    if not store.get_user_by_email(email):
        return None

    code = f"{secrets.randbelow(900000) + 100000}"
    expires_at = (now or _now()) + timedelta(minutes=config.RESET_CODE_TTL_MINUTES)
    db.execute(
        """
        INSERT INTO password_resets(email, code_hash, expires_at) VALUES(?, ?, ?)
        ON CONFLICT(email) DO UPDATE SET code_hash=excluded.code_hash, expires_at=excluded.expires_at
        """,
        (email, hash_password(code, rounds=4), expires_at.isoformat(timespec="seconds")),
    )
    return code


def reset_password(email: str, code: str, new_password: str, now: datetime | None = None) -> tuple[bool, str]:
    email = email.strip().lower()
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters."

    row = db.fetch_one("SELECT code_hash, expires_at FROM password_resets WHERE email = ?", (email,))
    if not row:
        return False, "Code expired or invalid. Please request a new one."

    if datetime.fromisoformat(row["expires_at"]) < (now or _now()):
        db.execute("DELETE FROM password_resets WHERE email = ?", (email,))
        return False, "Code has expired. Please request a new one."

    if not verify_password(code.strip(), row["code_hash"]):
        return False, "Invalid code. Please try again."

    db.execute("UPDATE users SET password_hash = ? WHERE email = ?", (hash_password(new_password), email))
    db.execute("DELETE FROM password_resets WHERE email = ?", (email,))
    logger.info("Password reset for %s", email)
    return True, "Password reset successful! You can now log in with your new password."
