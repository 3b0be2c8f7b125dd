"""
delivery.py
Delivery channels for membership alerts: email (SMTP) and WhatsApp (Cloud API).

Every send returns True/False and never raises; a failed delivery is logged and
left at that.
"""

from __future__ import annotations

import logging
import re
import smtplib
from email.message import EmailMessage

import requests

import config
from models import Membership

logger = logging.getLogger(__name__)

WHATSAPP_API_URL = "https://graph.facebook.com/v20.0/{phone_id}/messages"


def _urgency(days_remaining: int, is_expired: bool) -> tuple[str, str]:
    """(subject prefix, highlight colour) for a member alert."""
    if is_expired:
        return "❌ Your Gym Membership Has Expired", "#e53e3e"
    if days_remaining <= 1:
        return f"⚠️ URGENT: Your Gym Membership Expires in {days_remaining} day(s)!", "#e53e3e"
    if days_remaining <= 3:
        return f"🔔 Reminder: Gym Membership Expires in {days_remaining} days", "#ed8936"
    return f"📅 Heads Up: Gym Membership Expires in {days_remaining} days", "#667eea"


class EmailSender:
    def __init__(self, server: str | None = None, port: int | None = None, user: str | None = None,
                 password: str | None = None, sender: str | None = None, admin_email: str | None = None):
        self.server = server or config.SMTP_SERVER
        self.port = port or config.SMTP_PORT
        self.user = user if user is not None else config.SMTP_USER
        self.password = password if password is not None else config.SMTP_PASSWORD
        self.sender = sender or config.EMAIL_FROM or self.user
        self.admin_email = admin_email if admin_email is not None else config.ADMIN_EMAIL

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)

    def _deliver(self, to: str, subject: str, text: str, html: str | None = None) -> bool:
        if not self.configured:
            logger.warning("Email not configured - skipping email to %s", to)
            return False
        if not to:
            return False

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        if html:
            message.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.server, self.port, timeout=20) as server:
                server.starttls()
                server.login(self.user, self.password)
                server.send_message(message)
            logger.info("Email sent to %s: %s", to, subject)
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", to, e)
            return False

    def send(self, recipient: str, user_name: str, membership: Membership,
             days_remaining: int, is_expired: bool) -> bool:
        subject, colour = _urgency(days_remaining, is_expired)
        if is_expired:
            status_line = f"your {membership.plan_type} membership has expired"
        else:
            status_line = f"your {membership.plan_type} membership expires in {days_remaining} day(s)"

        text = (
            f"Hello {user_name}!\n\n"
            f"This is a reminder that {status_line}.\n\n"
            f"Plan: {membership.plan_type}\n"
            f"Expiry: {membership.end_date}\n\n"
            "Please renew your membership to continue enjoying our facilities!\n\n"
            "---\nThis is an automated reminder from GymPro."
        )
        html = f"""
        <div style="max-width: 600px; margin: 0 auto; font-family: 'Segoe UI', Arial, sans-serif;">
            <h1 style="color: #667eea;">🏋️ GymPro</h1>
            <h2>Hello {user_name}! 👋</h2>
            <p>This is a <strong>reminder</strong> that
               <strong style="color: {colour};">{status_line}</strong>.</p>
            <table>
                <tr><td>Plan:</td><td><b>{membership.plan_type}</b></td></tr>
                <tr><td>Expiry:</td><td><b>{membership.end_date}</b></td></tr>
            </table>
            <p>Please renew your membership to continue enjoying our facilities!</p>
            <p style="color: #999; font-size: 12px;">This is an automated reminder from GymPro.</p>
        </div>
        """
        return self._deliver(recipient, subject, text, html)

    def send_admin_notice(self, user_name: str, user_email: str, membership: Membership,
                          days_remaining: int, is_expired: bool) -> bool:
        if not self.admin_email:
            return False
        left = "expired" if is_expired else f"{days_remaining} day(s) left"
        subject = f"📋 Membership Expiring: {user_name} - {left}"
        text = (
            "A member's subscription needs attention.\n\n"
            f"Member: {user_name}\n"
            f"Email: {user_email}\n"
            f"Plan: {membership.plan_type}\n"
            f"Expiry date: {membership.end_date}\n"
            f"Status: {left}\n\n"
            "Consider reaching out to the member to discuss renewal options."
        )
        return self._deliver(self.admin_email, subject, text)

    def send_reset_code(self, recipient: str, user_name: str, code: str, ttl_minutes: int) -> bool:
        text = (
            f"Hello {user_name or 'member'}!\n\n"
            f"Your GymPro password reset code is: {code}\n\n"
            f"This code expires in {ttl_minutes} minutes. "
            "If you didn't request this, please ignore this email."
        )
        return self._deliver(recipient, "🔐 GymPro Password Reset Code", text)


def normalize_phone(phone: str | None, default_cc: str | None = None) -> str:
    """Digits-only E.164 number (no '+'); prepends the default country code when missing."""
    raw = (phone or "").strip()
    digits = re.sub(r"\D", "", raw)
    if not digits:
        return ""
    if raw.startswith("+"):
        return digits
    cc = default_cc or config.WHATSAPP_DEFAULT_COUNTRY_CODE
    if digits.startswith("0"):
        return cc + digits.lstrip("0")
    if digits.startswith(cc) and len(digits) > 10:
        return digits
    return cc + digits


def whatsapp_text(user_name: str, membership: Membership, days_remaining: int, is_expired: bool) -> str:
    if is_expired:
        return (f"❌ Hi {user_name}! Your {membership.plan_type} gym membership has EXPIRED. "
                "Please renew to continue your fitness journey! 💪")
    if days_remaining <= 2:
        return (f"⚠️ URGENT: Hi {user_name}! Your {membership.plan_type} membership expires in just "
                f"{days_remaining} day(s)! Renew now to avoid interruption. 🏋️")
    return (f"📅 Reminder: Hi {user_name}! Your {membership.plan_type} membership expires in "
            f"{days_remaining} days ({membership.end_date}). Visit us to renew! 💪")


class WhatsAppSender:
    def __init__(self, token: str | None = None, phone_number_id: str | None = None,
                 default_cc: str | None = None, session: requests.Session | None = None):
        self.token = token if token is not None else config.WHATSAPP_TOKEN
        self.phone_number_id = phone_number_id if phone_number_id is not None else config.WHATSAPP_PHONE_NUMBER_ID
        self.default_cc = default_cc or config.WHATSAPP_DEFAULT_COUNTRY_CODE
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.token and self.phone_number_id)

    def send_text(self, phone: str | None, text: str) -> bool:
        if not self.configured:
            logger.warning("WhatsApp not configured - skipping message")
            return False
        to = normalize_phone(phone, self.default_cc)
        if not to:
            logger.warning("No valid phone number - skipping WhatsApp")
            return False

        url = WHATSAPP_API_URL.format(phone_id=self.phone_number_id)
        headers = {"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"}
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
        try:
            r = self.session.post(url, headers=headers, json=payload, timeout=20)
        except requests.RequestException as e:
            logger.error("WhatsApp request to %s failed: %s", to, e)
            return False
        if not 200 <= r.status_code < 300:
            logger.error("WhatsApp to %s rejected: %s %s", to, r.status_code, r.text)
            return False
        logger.info("WhatsApp sent to %s", to)
        return True

    def send(self, recipient: str | None, user_name: str, membership: Membership,
             days_remaining: int, is_expired: bool) -> bool:
        return self.send_text(recipient, whatsapp_text(user_name, membership, days_remaining, is_expired))
