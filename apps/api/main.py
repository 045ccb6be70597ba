from __future__ import annotations

from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from still_alive.config import settings
from still_alive.db import get_session
from still_alive.models import DEFAULT_EMERGENCY_MULTIPLIER, DEFAULT_LAST_WORDS_THRESHOLD_HRS
from still_alive.phone import mask_phone
from still_alive.repositories import (
    CheckinRepository,
    ContactRepository,
    LastWordsRepository,
    SettingsRepository,
    UserRepository,
)
from still_alive.services import account
from still_alive.services.notifications import SmtpEmailSender, contact_confirmation_email
from still_alive.services.phases import resolve_mia_threshold
from still_alive.services.tasks import mia_sweep

app = FastAPI()

ERROR_STATUS = {
    account.ValidationError: 400,
    account.NotFoundError: 404,
    account.ConflictError: 409,
    account.ExpiredError: 410,
    account.TooSoonError: 429,
}


def get_email_sender():
    return SmtpEmailSender()


def _raise_http(exc: account.AccountError):
    status = ERROR_STATUS.get(type(exc), 400)
    raise HTTPException(status_code=status, detail=str(exc)) from exc


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


class ProfileIn(BaseModel):
    email: str
    name: str | None = None


class ThresholdIn(BaseModel):
    mia_threshold_hrs: int


class EmergencyModeIn(BaseModel):
    enabled: bool = False
    multiplier: int = DEFAULT_EMERGENCY_MULTIPLIER


class LastWordsIn(BaseModel):
    message: str | None = None
    delivery_threshold: int | None = None


class ContactIn(BaseModel):
    name: str
    email: str
    phone: str | None = Field(default=None)


def _contact_out(contact) -> dict:
    return {
        "id": contact.id,
        "name": contact.name,
        "email": contact.email,
        "phone": mask_phone(contact.phone) if contact.phone else None,
        "is_confirmed": contact.is_confirmed,
    }


def _settings_out(row) -> dict:
    if row is None:
        return {
            "mia_threshold_hrs": resolve_mia_threshold(None),
            "emergency_mode_enabled": False,
            "emergency_mode_end_time": None,
            "emergency_mode_multiplier": DEFAULT_EMERGENCY_MULTIPLIER,
        }
    return {
        "mia_threshold_hrs": row.mia_threshold_hrs,
        "emergency_mode_enabled": row.emergency_mode_enabled,
        "emergency_mode_end_time": _iso(row.emergency_mode_end_time),
        "emergency_mode_multiplier": row.emergency_mode_multiplier,
    }


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.put("/users/{user_id}")
def upsert_user(user_id: int, body: ProfileIn, session=Depends(get_session)):
    user = UserRepository(session).upsert_profile(user_id, body.email, body.name)
    return {"id": user.id, "email": user.email, "name": user.name}


@app.post("/users/{user_id}/checkins")
def create_checkin(user_id: int, session=Depends(get_session)):
    try:
        checkin = account.record_checkin(session, user_id)
    except account.AccountError as exc:
        _raise_http(exc)
    recent = CheckinRepository(session).recent_for_user(user_id)
    return {
        "checkin": {
            "id": checkin.id,
            "check_in_time": _iso(checkin.check_in_time),
            "streak_count": checkin.streak_count,
        },
        "current_streak": checkin.streak_count,
        "recent": [
            {"id": r.id, "check_in_time": _iso(r.check_in_time), "streak_count": r.streak_count}
            for r in recent
        ],
    }


@app.get("/users/{user_id}/mia-threshold")
def get_threshold(user_id: int, session=Depends(get_session)):
    return {"mia_threshold_hrs": _settings_out(SettingsRepository(session).get(user_id))["mia_threshold_hrs"]}


@app.put("/users/{user_id}/mia-threshold")
def put_threshold(user_id: int, body: ThresholdIn, session=Depends(get_session)):
    try:
        row = account.set_mia_threshold(session, user_id, body.mia_threshold_hrs)
    except account.AccountError as exc:
        _raise_http(exc)
    return {"mia_threshold_hrs": row.mia_threshold_hrs}


@app.get("/users/{user_id}/emergency-mode")
def get_emergency_mode(user_id: int, session=Depends(get_session)):
    return _settings_out(SettingsRepository(session).get(user_id))


@app.put("/users/{user_id}/emergency-mode")
def put_emergency_mode(user_id: int, body: EmergencyModeIn, session=Depends(get_session)):
    try:
        row = account.set_emergency_mode(session, user_id, body.enabled, body.multiplier)
    except account.AccountError as exc:
        _raise_http(exc)
    return _settings_out(row)


@app.get("/users/{user_id}/last-words")
def get_last_words(user_id: int, session=Depends(get_session)):
    row = LastWordsRepository(session).get(user_id)
    return {
        "message": row.message if row else None,
        "delivery_threshold": row.delivery_threshold if row else DEFAULT_LAST_WORDS_THRESHOLD_HRS,
    }


@app.put("/users/{user_id}/last-words")
def put_last_words(user_id: int, body: LastWordsIn, session=Depends(get_session)):
    try:
        row = account.save_last_words(session, user_id, body.message, body.delivery_threshold)
    except account.AccountError as exc:
        _raise_http(exc)
    return {"ok": True, "delivery_threshold": row.delivery_threshold}


@app.delete("/users/{user_id}/last-words")
def delete_last_words(user_id: int, session=Depends(get_session)):
    try:
        account.clear_last_words(session, user_id)
    except account.AccountError as exc:
        _raise_http(exc)
    return {"ok": True}


@app.post("/users/{user_id}/last-words/test-send")
def send_last_words_test(user_id: int, session=Depends(get_session), email_sender=Depends(get_email_sender)):
    try:
        return account.send_test_last_words(session, user_id, email_sender)
    except account.AccountError as exc:
        _raise_http(exc)


@app.get("/users/{user_id}/contacts")
def list_contacts(user_id: int, session=Depends(get_session)):
    return {"contacts": [_contact_out(c) for c in ContactRepository(session).list_for_user(user_id)]}


@app.post("/users/{user_id}/contacts")
def create_contact(
    user_id: int,
    body: ContactIn,
    session=Depends(get_session),
    email_sender=Depends(get_email_sender),
):
    try:
        contact = account.add_contact(session, user_id, body.name, body.email, body.phone)
    except account.AccountError as exc:
        _raise_http(exc)
    user = UserRepository(session).get_by_id(user_id)
    confirm_url = f"{settings.app_base_url}/confirm-contact?token={contact.confirmation_token}"
    subject, text = contact_confirmation_email(user.name, confirm_url, settings.contact_confirmation_hours)
    result = email_sender.send_email(contact.email, subject, text)
    return {"contact": _contact_out(contact), "confirmation_sent": result.ok}


@app.post("/users/{user_id}/contacts/test-alert")
def send_contacts_test_alert(user_id: int, session=Depends(get_session), email_sender=Depends(get_email_sender)):
    try:
        return account.send_test_alert(session, user_id, email_sender)
    except account.AccountError as exc:
        _raise_http(exc)


@app.patch("/users/{user_id}/contacts/{contact_id}")
def patch_contact(user_id: int, contact_id: int, body: ContactIn, session=Depends(get_session)):
    try:
        contact = account.update_contact(session, user_id, contact_id, body.name, body.email, body.phone)
    except account.AccountError as exc:
        _raise_http(exc)
    return {"contact": _contact_out(contact)}


@app.delete("/users/{user_id}/contacts/{contact_id}")
def delete_contact(user_id: int, contact_id: int, session=Depends(get_session)):
    try:
        account.remove_contact(session, user_id, contact_id)
    except account.AccountError as exc:
        _raise_http(exc)
    return {"ok": True}


@app.post("/contacts/confirm")
def confirm_contact(token: str = "", session=Depends(get_session)):
    try:
        contact = account.confirm_contact(session, token)
    except account.AccountError as exc:
        _raise_http(exc)
    return {"contact": _contact_out(contact)}


@app.post("/internal/mia-sweep", status_code=202)
def trigger_mia_sweep():
    result = mia_sweep.delay()
    return {"task_id": result.id}
