from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from still_alive.config import AlertChannel
from still_alive.models import Base, CheckIn, EmergencyContact, LastWords, User, UserSettings
from still_alive.services.mia_alerts import MiaAlertSweep
from still_alive.services.notifications import SendResult

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


class RecordingSender:
    """Email and SMS sender that records every call; ``fail`` holds addresses to fail."""

    def __init__(self):
        self.sent = []
        self.fail = set()

    def _result(self, to):
        if to in self.fail:
            return SendResult(ok=False, error="smtp down")
        return SendResult(ok=True)

    def send_email(self, to, subject, body):
        self.sent.append(("email", to, subject, body))
        return self._result(to)

    def send_sms(self, to, body):
        self.sent.append(("sms", to, None, body))
        return self._result(to)

    def to(self, address):
        return [s for s in self.sent if s[1] == address]


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self):
        return self.now

    def at(self, hours: float):
        self.now = T0 + timedelta(hours=hours)
        return self


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    @contextmanager
    def scope():
        session = Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    yield scope
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture()
def sender():
    return RecordingSender()


@pytest.fixture()
def clock():
    return Clock(T0)


@pytest.fixture()
def make_sweep(session_factory, sender, clock):
    def factory(channel=AlertChannel.EMAIL):
        return MiaAlertSweep(
            session_factory=session_factory,
            email_sender=sender,
            sms_sender=sender,
            channel=channel,
            base_url="https://still-alive.test",
            clock=clock,
        )

    return factory


@pytest.fixture()
def seed(db):
    """Create a user with settings, contacts, last words and one check-in at T0."""

    def create(
        user_id=1,
        threshold=24,
        contacts=("a@example.com",),
        phones=None,
        confirmed=True,
        last_words="Water my plants.",
        last_words_threshold=48,
        checkin_at=T0,
    ):
        db.add(User(id=user_id, name="Sam", email=f"user{user_id}@example.com"))
        db.add(UserSettings(user_id=user_id, mia_threshold_hrs=threshold))
        for i, email in enumerate(contacts):
            db.add(
                EmergencyContact(
                    user_id=user_id,
                    name=f"Contact {i}",
                    email=email,
                    phone=phones[i] if phones else None,
                    is_confirmed=confirmed,
                )
            )
        if last_words is not None:
            db.add(
                LastWords(
                    user_id=user_id, message=last_words, delivery_threshold=last_words_threshold
                )
            )
        checkin = None
        if checkin_at is not None:
            checkin = CheckIn(user_id=user_id, check_in_time=checkin_at, streak_count=1)
            db.add(checkin)
        db.commit()
        return checkin

    return create
