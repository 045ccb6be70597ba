from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError

from .models import (
    AlertDelivery,
    AlertType,
    CheckIn,
    DEFAULT_EMERGENCY_MULTIPLIER,
    DEFAULT_LAST_WORDS_THRESHOLD_HRS,
    EmergencyContact,
    LastWords,
    MiaNotificationState,
    User,
    UserSettings,
)


class UserRepository:
    def __init__(self, session):
        self.session = session

    def get_by_id(self, user_id: int) -> User | None:
        return self.session.execute(select(User).where(User.id == user_id)).scalar_one_or_none()

    def list_ids(self) -> list[int]:
        return self.session.execute(select(User.id).order_by(User.id)).scalars().all()

    def upsert_profile(self, user_id: int, email: str, name: str | None) -> User:
        user = self.get_by_id(user_id)
        if user is None:
            user = User(id=user_id, email=email, name=name)
            self.session.add(user)
        else:
            user.email = email
            user.name = name
        self.session.flush()
        return user


class SettingsRepository:
    def __init__(self, session):
        self.session = session

    def get(self, user_id: int) -> UserSettings | None:
        return self.session.execute(
            select(UserSettings).where(UserSettings.user_id == user_id)
        ).scalar_one_or_none()

    def get_or_create(self, user_id: int) -> UserSettings:
        existing = self.get(user_id)
        if existing:
            return existing
        row = UserSettings(user_id=user_id)
        self.session.add(row)
        self.session.flush()
        return row

    def set_threshold(self, user_id: int, hours: int) -> UserSettings:
        row = self.get_or_create(user_id)
        row.mia_threshold_hrs = hours
        self.session.flush()
        return row

    def set_emergency_mode(
        self, user_id: int, enabled: bool, end_time: datetime | None, multiplier: int
    ) -> UserSettings:
        row = self.get_or_create(user_id)
        row.emergency_mode_enabled = enabled
        row.emergency_mode_end_time = end_time
        row.emergency_mode_multiplier = multiplier
        self.session.flush()
        return row

    def disable_emergency_mode(self, user_id: int):
        self.session.execute(
            update(UserSettings)
            .where(UserSettings.user_id == user_id)
            .values(
                emergency_mode_enabled=False,
                emergency_mode_end_time=None,
                emergency_mode_multiplier=DEFAULT_EMERGENCY_MULTIPLIER,
            )
        )


class CheckinRepository:
    def __init__(self, session):
        self.session = session

    def create_checkin(self, user_id: int, check_in_time: datetime, streak_count: int) -> CheckIn:
        checkin = CheckIn(user_id=user_id, check_in_time=check_in_time, streak_count=streak_count)
        self.session.add(checkin)
        self.session.flush()
        return checkin

    def latest_for_user(self, user_id: int) -> CheckIn | None:
        return (
            self.session.execute(
                select(CheckIn)
                .where(CheckIn.user_id == user_id)
                .order_by(CheckIn.check_in_time.desc(), CheckIn.id.desc())
            )
            .scalars()
            .first()
        )

    def recent_for_user(self, user_id: int, limit: int = 3) -> list[CheckIn]:
        return (
            self.session.execute(
                select(CheckIn)
                .where(CheckIn.user_id == user_id)
                .order_by(CheckIn.check_in_time.desc(), CheckIn.id.desc())
                .limit(limit)
            )
            .scalars()
            .all()
        )


class ContactRepository:
    def __init__(self, session):
        self.session = session

    def list_for_user(self, user_id: int, confirmed_only: bool = False) -> list[EmergencyContact]:
        query = select(EmergencyContact).where(EmergencyContact.user_id == user_id)
        if confirmed_only:
            query = query.where(EmergencyContact.is_confirmed.is_(True))
        return self.session.execute(query.order_by(EmergencyContact.id)).scalars().all()

    def count_for_user(self, user_id: int) -> int:
        return self.session.execute(
            select(func.count()).select_from(EmergencyContact).where(EmergencyContact.user_id == user_id)
        ).scalar_one()

    def get_for_user(self, user_id: int, contact_id: int) -> EmergencyContact | None:
        return self.session.execute(
            select(EmergencyContact).where(
                EmergencyContact.id == contact_id, EmergencyContact.user_id == user_id
            )
        ).scalar_one_or_none()

    def get_by_email(self, user_id: int, email: str) -> EmergencyContact | None:
        return self.session.execute(
            select(EmergencyContact).where(
                EmergencyContact.user_id == user_id, EmergencyContact.email == email
            )
        ).scalar_one_or_none()

    def get_by_token(self, token: str) -> EmergencyContact | None:
        return self.session.execute(
            select(EmergencyContact).where(EmergencyContact.confirmation_token == token)
        ).scalar_one_or_none()

    def create_contact(
        self,
        user_id: int,
        name: str,
        email: str,
        phone: str | None,
        token: str,
        expires: datetime,
    ) -> EmergencyContact:
        contact = EmergencyContact(
            user_id=user_id,
            name=name,
            email=email,
            phone=phone,
            is_confirmed=False,
            confirmation_token=token,
            confirmation_expires=expires,
        )
        self.session.add(contact)
        self.session.flush()
        return contact

    def mark_confirmed(self, contact_id: int):
        self.session.execute(
            update(EmergencyContact)
            .where(EmergencyContact.id == contact_id)
            .values(is_confirmed=True, confirmation_token=None, confirmation_expires=None)
        )

    def delete_contact(self, contact_id: int):
        self.session.execute(delete(EmergencyContact).where(EmergencyContact.id == contact_id))


class LastWordsRepository:
    def __init__(self, session):
        self.session = session

    def get(self, user_id: int) -> LastWords | None:
        return self.session.execute(
            select(LastWords).where(LastWords.user_id == user_id)
        ).scalar_one_or_none()

    def upsert(
        self, user_id: int, message: str | None = None, delivery_threshold: int | None = None
    ) -> LastWords:
        """Create or update; ``None`` arguments leave the stored value untouched."""
        row = self.get(user_id)
        if row is None:
            row = LastWords(
                user_id=user_id,
                message=message,
                delivery_threshold=delivery_threshold or DEFAULT_LAST_WORDS_THRESHOLD_HRS,
            )
            self.session.add(row)
        else:
            if message is not None:
                row.message = message
            if delivery_threshold is not None:
                row.delivery_threshold = delivery_threshold
        self.session.flush()
        return row

    def clear_message(self, user_id: int):
        row = self.upsert(user_id)
        row.message = None
        self.session.flush()


class MiaNotificationRepository:
    def __init__(self, session):
        self.session = session

    def get(self, user_id: int) -> MiaNotificationState | None:
        return self.session.execute(
            select(MiaNotificationState).where(MiaNotificationState.user_id == user_id)
        ).scalar_one_or_none()

    def _mark(self, user_id: int, **values):
        result = self.session.execute(
            update(MiaNotificationState)
            .where(MiaNotificationState.user_id == user_id)
            .values(**values)
        )
        if result.rowcount:
            return
        try:
            self.session.execute(insert(MiaNotificationState).values(user_id=user_id, **values))
        except IntegrityError:
            # Another sweep created the row first.
            self.session.rollback()
            self.session.execute(
                update(MiaNotificationState)
                .where(MiaNotificationState.user_id == user_id)
                .values(**values)
            )

    def mark_pre_alert(self, user_id: int, checkin_id: int):
        self._mark(user_id, pre_alert_for_checkin_id=checkin_id)

    def mark_emergency(self, user_id: int, checkin_id: int):
        self._mark(user_id, emergency_for_checkin_id=checkin_id)

    def mark_last_words(self, user_id: int, checkin_id: int):
        self._mark(user_id, last_words_for_checkin_id=checkin_id)


class AlertDeliveryRepository:
    def __init__(self, session):
        self.session = session

    def get(self, checkin_id: int, contact_id: int, type_: AlertType) -> AlertDelivery | None:
        return self.session.execute(
            select(AlertDelivery).where(
                AlertDelivery.checkin_id == checkin_id,
                AlertDelivery.contact_id == contact_id,
                AlertDelivery.type == type_,
            )
        ).scalar_one_or_none()

    def record(
        self,
        user_id: int,
        checkin_id: int,
        contact_id: int,
        type_: AlertType,
        ok: bool,
        error: str | None,
    ):
        values = {"ok": ok, "error": None if ok else error}
        key = (
            AlertDelivery.checkin_id == checkin_id,
            AlertDelivery.contact_id == contact_id,
            AlertDelivery.type == type_,
        )
        result = self.session.execute(update(AlertDelivery).where(*key).values(**values))
        if result.rowcount:
            return
        try:
            self.session.execute(
                insert(AlertDelivery).values(
                    user_id=user_id,
                    checkin_id=checkin_id,
                    contact_id=contact_id,
                    type=type_,
                    **values,
                )
            )
        except IntegrityError:
            self.session.rollback()
            self.session.execute(update(AlertDelivery).where(*key).values(**values))

    def ok_by_contact(self, checkin_id: int, type_: AlertType) -> dict[int, bool]:
        rows = self.session.execute(
            select(AlertDelivery.contact_id, AlertDelivery.ok).where(
                AlertDelivery.checkin_id == checkin_id, AlertDelivery.type == type_
            )
        ).all()
        return {contact_id: ok for contact_id, ok in rows}
