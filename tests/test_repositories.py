from types import SimpleNamespace

from sqlalchemy import Update

from still_alive.models import AlertDelivery, AlertType, MiaNotificationState, User
from still_alive.repositories import AlertDeliveryRepository, MiaNotificationRepository


class RacedSession:
    """Session whose first UPDATE matches nothing, as if a concurrent sweep
    inserted the row between our UPDATE and INSERT."""

    def __init__(self, session):
        self._session = session
        self._raced = False

    def execute(self, statement, *args, **kwargs):
        if not self._raced and isinstance(statement, Update):
            self._raced = True
            return SimpleNamespace(rowcount=0)
        return self._session.execute(statement, *args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._session, name)


def test_mark_creates_ledger_lazily(db):
    db.add(User(id=1, name="Sam", email="sam@example.com"))
    db.commit()

    repo = MiaNotificationRepository(db)
    repo.mark_pre_alert(1, 5)
    repo.mark_emergency(1, 5)
    db.commit()

    state = repo.get(1)
    assert (state.pre_alert_for_checkin_id, state.emergency_for_checkin_id) == (5, 5)
    assert state.last_words_for_checkin_id is None


def test_mark_falls_back_to_update_when_row_appears(db, session_factory):
    db.add(User(id=1, name="Sam", email="sam@example.com"))
    db.add(MiaNotificationState(user_id=1, pre_alert_for_checkin_id=5))
    db.commit()

    with session_factory() as session:
        MiaNotificationRepository(RacedSession(session)).mark_emergency(1, 9)

    with session_factory() as session:
        state = MiaNotificationRepository(session).get(1)
        assert state.pre_alert_for_checkin_id == 5
        assert state.emergency_for_checkin_id == 9
        assert state.last_words_for_checkin_id is None


def test_record_falls_back_to_update_when_row_appears(db, session_factory):
    db.add(
        AlertDelivery(
            user_id=1,
            checkin_id=7,
            contact_id=3,
            type=AlertType.EMERGENCY_EMAIL,
            ok=False,
            error="smtp down",
        )
    )
    db.commit()

    with session_factory() as session:
        AlertDeliveryRepository(RacedSession(session)).record(
            1, 7, 3, AlertType.EMERGENCY_EMAIL, True, None
        )

    with session_factory() as session:
        repo = AlertDeliveryRepository(session)
        assert repo.ok_by_contact(7, AlertType.EMERGENCY_EMAIL) == {3: True}
        assert repo.get(7, 3, AlertType.EMERGENCY_EMAIL).error is None


def test_record_keeps_failure_detail(db):
    repo = AlertDeliveryRepository(db)
    repo.record(1, 7, 3, AlertType.EMERGENCY_SMS, False, "Twilio not configured")
    db.commit()

    row = repo.get(7, 3, AlertType.EMERGENCY_SMS)
    assert row.ok is False
    assert row.error == "Twilio not configured"
