"""User-facing settings and check-in operations behind the HTTP API."""

from __future__ import annotations

import re
import secrets
from datetime import datetime, timedelta

from ..config import settings
from ..models import (
    DEFAULT_EMERGENCY_MULTIPLIER,
    DEFAULT_LAST_WORDS_THRESHOLD_HRS,
    MAX_CONTACTS,
    MAX_LAST_WORDS_LENGTH,
    CheckIn,
    EmergencyContact,
)
from ..phone import is_valid_e164
from ..repositories import (
    CheckinRepository,
    ContactRepository,
    LastWordsRepository,
    SettingsRepository,
    UserRepository,
)
from ..utils_time import add_hours, ensure_utc, same_utc_day, utcnow
from .notifications import emergency_test_email, last_words_test_email
from .phases import (
    ALLOWED_EMERGENCY_MULTIPLIERS,
    ALLOWED_LAST_WORDS_THRESHOLDS,
    ALLOWED_MIA_THRESHOLDS,
    resolve_mia_threshold,
)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_CHECKIN_GAP = timedelta(hours=1)
STREAK_WINDOW = timedelta(hours=24)


class AccountError(Exception):
    pass


class ValidationError(AccountError):
    pass


class NotFoundError(AccountError):
    pass


class ConflictError(AccountError):
    pass


class TooSoonError(AccountError):
    pass


class ExpiredError(AccountError):
    pass


def is_valid_email(email: str) -> bool:
    return len(email) <= 320 and bool(EMAIL_RE.match(email))


def _require_user(session, user_id: int):
    user = UserRepository(session).get_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def next_streak(last: CheckIn | None, now: datetime) -> int:
    if last is None:
        return 1
    if now - ensure_utc(last.check_in_time) > STREAK_WINDOW:
        return 1
    if same_utc_day(last.check_in_time, now):
        return last.streak_count
    return last.streak_count + 1


def record_checkin(session, user_id: int, now: datetime | None = None) -> CheckIn:
    _require_user(session, user_id)
    now = now or utcnow()
    checkins = CheckinRepository(session)
    last = checkins.latest_for_user(user_id)
    if last and now - ensure_utc(last.check_in_time) < MIN_CHECKIN_GAP:
        raise TooSoonError("You already checked in within the last hour. Try again later.")
    return checkins.create_checkin(user_id, now, next_streak(last, now))


def set_mia_threshold(session, user_id: int, hours: int):
    _require_user(session, user_id)
    if hours not in ALLOWED_MIA_THRESHOLDS:
        raise ValidationError("Invalid threshold")
    return SettingsRepository(session).set_threshold(user_id, hours)


def set_emergency_mode(session, user_id: int, enabled: bool, multiplier: int, now: datetime | None = None):
    """Suspend alerts for ``threshold * multiplier`` hours, or lift the suspension."""
    _require_user(session, user_id)
    repo = SettingsRepository(session)
    if not enabled:
        return repo.set_emergency_mode(user_id, False, None, DEFAULT_EMERGENCY_MULTIPLIER)
    if multiplier not in ALLOWED_EMERGENCY_MULTIPLIERS:
        raise ValidationError("Invalid multiplier")
    threshold = resolve_mia_threshold(repo.get_or_create(user_id).mia_threshold_hrs)
    end_time = add_hours(now or utcnow(), threshold * multiplier)
    return repo.set_emergency_mode(user_id, True, end_time, multiplier)


def save_last_words(session, user_id: int, message: str | None, delivery_threshold: int | None):
    _require_user(session, user_id)
    if message is not None and len(message) > MAX_LAST_WORDS_LENGTH:
        raise ValidationError(f"Max length is {MAX_LAST_WORDS_LENGTH} characters")
    if delivery_threshold is not None and delivery_threshold not in ALLOWED_LAST_WORDS_THRESHOLDS:
        raise ValidationError("Invalid threshold")
    return LastWordsRepository(session).upsert(user_id, message, delivery_threshold)


def clear_last_words(session, user_id: int):
    _require_user(session, user_id)
    LastWordsRepository(session).clear_message(user_id)


def _clean_contact_fields(name: str, email: str, phone: str | None):
    name = (name or "").strip()
    email = (email or "").strip().lower()
    phone = (phone or "").strip() or None
    if not name or not is_valid_email(email):
        raise ValidationError("Please enter a valid email address.")
    if phone is not None and not is_valid_e164(phone):
        raise ValidationError("Phone number must be in E.164 format, e.g. +14155550123.")
    return name, email, phone


def add_contact(session, user_id: int, name: str, email: str, phone: str | None = None) -> EmergencyContact:
    _require_user(session, user_id)
    name, email, phone = _clean_contact_fields(name, email, phone)
    contacts = ContactRepository(session)
    if contacts.count_for_user(user_id) >= MAX_CONTACTS:
        raise ValidationError(f"You can only add up to {MAX_CONTACTS} emergency contacts.")
    if contacts.get_by_email(user_id, email):
        raise ConflictError("This email address is already added.")
    token = secrets.token_hex(24)
    expires = add_hours(utcnow(), settings.contact_confirmation_hours)
    return contacts.create_contact(user_id, name, email, phone, token, expires)


def update_contact(
    session, user_id: int, contact_id: int, name: str, email: str, phone: str | None = None
) -> EmergencyContact:
    name, email, phone = _clean_contact_fields(name, email, phone)
    contacts = ContactRepository(session)
    contact = contacts.get_for_user(user_id, contact_id)
    if not contact:
        raise NotFoundError("Not found")
    if email != contact.email and contacts.get_by_email(user_id, email):
        raise ConflictError("This email address is already added.")
    contact.name = name
    contact.email = email
    contact.phone = phone
    session.flush()
    return contact


def remove_contact(session, user_id: int, contact_id: int):
    contacts = ContactRepository(session)
    if not contacts.get_for_user(user_id, contact_id):
        raise NotFoundError("Not found")
    contacts.delete_contact(contact_id)


def confirm_contact(session, token: str, now: datetime | None = None) -> EmergencyContact:
    if not token:
        raise ValidationError("Missing token.")
    contacts = ContactRepository(session)
    contact = contacts.get_by_token(token)
    if not contact:
        raise NotFoundError("This confirmation link is invalid.")
    if contact.is_confirmed:
        return contact
    now = now or utcnow()
    if contact.confirmation_expires and ensure_utc(contact.confirmation_expires) < now:
        raise ExpiredError("This confirmation link has expired.")
    contacts.mark_confirmed(contact.id)
    session.refresh(contact)
    return contact


def _send_test_to_contacts(session, user_id: int, email_sender, subject: str, body: str) -> dict:
    contacts = ContactRepository(session).list_for_user(user_id)[:MAX_CONTACTS]
    if not contacts:
        raise ValidationError("No emergency contacts to notify.")
    results = []
    for contact in contacts:
        res = email_sender.send_email(contact.email, subject, body)
        results.append(
            {"id": contact.id, "email": contact.email, "ok": res.ok, "error": None if res.ok else res.error}
        )
    sent = sum(1 for r in results if r["ok"])
    return {"ok": True, "sent": sent, "failed": len(results) - sent, "results": results}


def send_test_alert(session, user_id: int, email_sender, base_url: str | None = None) -> dict:
    """Send a ``[TEST]`` emergency alert to the user's contacts.

    Nothing is written to the sweep ledgers; this only exercises delivery.
    """
    user = _require_user(session, user_id)
    user_settings = SettingsRepository(session).get(user_id)
    threshold = resolve_mia_threshold(user_settings.mia_threshold_hrs if user_settings else None)
    last = CheckinRepository(session).latest_for_user(user_id)
    subject, body = emergency_test_email(
        user.name,
        threshold,
        last.check_in_time if last else None,
        base_url or settings.app_base_url,
    )
    return _send_test_to_contacts(session, user_id, email_sender, subject, body)


def send_test_last_words(session, user_id: int, email_sender, base_url: str | None = None) -> dict:
    user = _require_user(session, user_id)
    row = LastWordsRepository(session).get(user_id)
    message = ((row.message if row else None) or "").strip()
    if not message:
        raise ValidationError("No last words message saved yet.")
    subject, body = last_words_test_email(
        user.name,
        row.delivery_threshold or DEFAULT_LAST_WORDS_THRESHOLD_HRS,
        message,
        base_url or settings.app_base_url,
    )
    return _send_test_to_contacts(session, user_id, email_sender, subject, body)
