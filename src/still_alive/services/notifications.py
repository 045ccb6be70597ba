from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol, runtime_checkable

from twilio.rest import Client

from ..config import Settings, settings as default_settings
from ..models import MAX_LAST_WORDS_LENGTH
from ..phone import mask_phone
from ..utils_time import fmt_datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    ok: bool
    error: str | None = None


@runtime_checkable
class EmailSender(Protocol):
    def send_email(self, to: str, subject: str, body: str) -> SendResult: ...


@runtime_checkable
class SmsSender(Protocol):
    def send_sms(self, to: str, body: str) -> SendResult: ...


class SmtpEmailSender:
    def __init__(self, config: Settings = default_settings):
        self.host = config.smtp_host
        self.port = config.smtp_port
        self.user = config.smtp_user
        self.password = config.smtp_pass
        self.sender = config.smtp_from or config.smtp_user

    @property
    def configured(self) -> bool:
        return all([self.host, self.port, self.user, self.password, self.sender])

    def send_email(self, to: str, subject: str, body: str) -> SendResult:
        if not self.configured:
            logger.error("SMTP settings missing; cannot send email")
            return SendResult(ok=False, error="Email not configured")

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.set_content(body)

        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=20) as server:
                    server.login(self.user, self.password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=20) as server:
                    server.starttls()
                    server.login(self.user, self.password)
                    server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", to, exc)
            return SendResult(ok=False, error=_describe_smtp_error(exc))

        logger.info("Email sent to %s", to)
        return SendResult(ok=True)


def _describe_smtp_error(exc: Exception) -> str:
    parts = [type(exc).__name__]
    code = getattr(exc, "smtp_code", None)
    if code is not None:
        parts.append(f"responseCode={code}")
    parts.append(str(exc))
    return "Email send failed: " + " | ".join(p for p in parts if p)


class TwilioSmsSender:
    def __init__(self, config: Settings = default_settings):
        self.from_number = config.twilio_from_number
        self._client = None
        if config.twilio_account_sid and config.twilio_auth_token:
            self._client = Client(config.twilio_account_sid, config.twilio_auth_token)

    def send_sms(self, to: str, body: str) -> SendResult:
        if self._client is None or not self.from_number:
            logger.error("Twilio settings missing; cannot send SMS")
            return SendResult(ok=False, error="Twilio not configured")
        try:
            msg = self._client.messages.create(to=to, from_=self.from_number, body=body)
        except Exception as exc:
            logger.error("Failed to send SMS to %s: %s", mask_phone(to), exc)
            return SendResult(ok=False, error="Failed to send SMS")
        logger.info("SMS sent to %s, SID: %s", mask_phone(to), msg.sid)
        return SendResult(ok=True)


# Message templates


def pre_alert_email(base_url: str) -> tuple[str, str]:
    subject = "Wake up! You're about to be marked as MIA!"
    body = (
        "Hey! You have 1 hour left to check in on Still Alive? to avoid alerting your contacts.\n\n"
        f"Check in here: {base_url}/dashboard\n"
    )
    return subject, body


def emergency_email(user_name: str | None, threshold_hrs: int, last_check_in, base_url: str) -> tuple[str, str]:
    name = user_name or "Your friend"
    subject = f"[Still Alive?] Emergency Alert: {name} may be MIA"
    body = (
        f"You're receiving this because {name} added you as an emergency contact on Still Alive?.\n\n"
        f"{name} hasn't checked in for {threshold_hrs} hours.\n"
        f"Last check-in: {fmt_datetime(last_check_in)}\n\n"
        "Suggested actions:\n"
        "1) Try calling/texting them.\n"
        "2) If you can, check on them in person.\n"
        "3) If you believe this is an emergency, contact local emergency services.\n\n"
        f"If they're fine, remind them to check in here: {base_url}/dashboard\n"
    )
    return subject, body


def emergency_sms(user_name: str | None, threshold_hrs: int, last_check_in) -> str:
    name = user_name or "Your friend"
    return (
        f"[Still Alive?] {name} hasn't checked in for {threshold_hrs} hours "
        f"(last check-in {fmt_datetime(last_check_in)}). Please try to reach them."
    )


def last_words_email(user_name: str | None, threshold_hrs: int, message: str) -> tuple[str, str]:
    name = user_name or "User"
    subject = f"Last Message from {name} (Maybe -- Or They Just Forgot to Check In)"
    body = (
        f"This is a pre-written message from {name} on Still Alive?.\n\n"
        f"It's being sent because they haven't checked in for {threshold_hrs} hours.\n\n"
        f"Their message:\n\n{message}\n\n"
        "-- Sent automatically by Still Alive?\n"
    )
    return subject, body


def emergency_test_email(
    user_name: str | None, threshold_hrs: int, last_check_in, base_url: str
) -> tuple[str, str]:
    name = user_name or "Your friend"
    last_text = fmt_datetime(last_check_in) if last_check_in else "N/A"
    subject = f"[TEST] [Still Alive?] Emergency Alert: {name} may be MIA"
    body = (
        f"This is a TEST email sent by {name} via Still Alive?.\n\n"
        f"Configured MIA threshold: {threshold_hrs} hours\n"
        f"Last check-in: {last_text}\n\n"
        f"Dashboard: {base_url}/dashboard\n\n"
        f"If this were real, you'd be receiving this because {name} hasn't checked in "
        f"for {threshold_hrs} hours.\n"
    )
    return subject, body


def last_words_test_email(
    user_name: str | None, threshold_hrs: int, message: str, base_url: str
) -> tuple[str, str]:
    name = user_name or "User"
    subject = f"[TEST] Last Message from {name} (Still Alive?)"
    body = (
        'This is a TEST email preview of your "Silly Last Words".\n\n'
        f"Delivery threshold (configured): {threshold_hrs} hours\n"
        f"Dashboard: {base_url}/dashboard\n\n"
        f"Your message:\n\n{message[:MAX_LAST_WORDS_LENGTH]}\n\n"
        "-- Sent automatically by Still Alive? (test mode)\n"
    )
    return subject, body


def contact_confirmation_email(user_name: str | None, confirm_url: str, hours: int) -> tuple[str, str]:
    name = user_name or "A friend"
    subject = f"[Still Alive?] {name} added you as an emergency contact"
    body = (
        f"{name} added you as an emergency contact on Still Alive?.\n\n"
        "If they miss their check-in deadline, you'll be notified.\n\n"
        f"Confirm here (link valid for {hours}h): {confirm_url}\n"
    )
    return subject, body
