"""Pure decision logic for the MIA sweep.

Nothing here touches the database or the network: callers pass in the rows
they have read and get back a phase or a yes/no answer, which keeps every
rule testable with plain objects.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from ..models import DEFAULT_LAST_WORDS_THRESHOLD_HRS, DEFAULT_MIA_THRESHOLD_HRS
from ..utils_time import add_hours, ensure_utc

logger = logging.getLogger(__name__)

ALLOWED_MIA_THRESHOLDS = frozenset({12, 24, 36, 48})
ALLOWED_LAST_WORDS_THRESHOLDS = frozenset({36, 48, 72})
ALLOWED_EMERGENCY_MULTIPLIERS = frozenset({2, 3, 4})


class MiaPhase(str, enum.Enum):
    SAFE = "SAFE"
    PRE_ALERT_DUE = "PRE_ALERT_DUE"
    EMERGENCY_DUE = "EMERGENCY_DUE"
    LAST_WORDS_DUE = "LAST_WORDS_DUE"


class EmergencyModeStatus(str, enum.Enum):
    OFF = "OFF"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class MiaDeadlines:
    pre_alert_at: datetime
    alert_at: datetime


def resolve_mia_threshold(value: int | None) -> int:
    if value is None:
        return DEFAULT_MIA_THRESHOLD_HRS
    if value not in ALLOWED_MIA_THRESHOLDS:
        logger.warning("MIA threshold %r out of range, using %s", value, DEFAULT_MIA_THRESHOLD_HRS)
        return DEFAULT_MIA_THRESHOLD_HRS
    return value


def resolve_last_words_threshold(value: int | None) -> int:
    if value is None:
        return DEFAULT_LAST_WORDS_THRESHOLD_HRS
    if value not in ALLOWED_LAST_WORDS_THRESHOLDS:
        logger.warning(
            "Last words threshold %r out of range, using %s", value, DEFAULT_LAST_WORDS_THRESHOLD_HRS
        )
        return DEFAULT_LAST_WORDS_THRESHOLD_HRS
    return value


def emergency_mode_status(settings, now: datetime) -> EmergencyModeStatus:
    """``settings`` may be ``None`` for users who never saved any."""
    if settings is None or not settings.emergency_mode_enabled:
        return EmergencyModeStatus.OFF
    end = settings.emergency_mode_end_time
    if end is not None and ensure_utc(end) > now:
        return EmergencyModeStatus.ACTIVE
    return EmergencyModeStatus.EXPIRED


def compute_deadlines(check_in_time: datetime, threshold_hrs: int) -> MiaDeadlines:
    start = ensure_utc(check_in_time)
    return MiaDeadlines(
        pre_alert_at=add_hours(start, threshold_hrs - 1),
        alert_at=add_hours(start, threshold_hrs),
    )


def compute_phase(now: datetime, check_in_time: datetime | None, threshold_hrs: int) -> MiaPhase:
    if check_in_time is None:
        return MiaPhase.SAFE
    deadlines = compute_deadlines(check_in_time, threshold_hrs)
    if now < deadlines.pre_alert_at:
        return MiaPhase.SAFE
    if now < deadlines.alert_at:
        return MiaPhase.PRE_ALERT_DUE
    return MiaPhase.EMERGENCY_DUE


def last_words_at(check_in_time: datetime, threshold_hrs: int) -> datetime:
    return add_hours(ensure_utc(check_in_time), threshold_hrs)


def advance_to_last_words(
    now: datetime, checkin, state, last_words_threshold_hrs: int
) -> MiaPhase:
    """Re-evaluate an EMERGENCY_DUE user once the emergency pass is over.

    Returns LAST_WORDS_DUE only when ``state`` shows the emergency alert
    completed for this very check-in and the last-words deadline has passed.
    """
    if state is None or state.emergency_for_checkin_id != checkin.id:
        return MiaPhase.EMERGENCY_DUE
    if now < last_words_at(checkin.check_in_time, last_words_threshold_hrs):
        return MiaPhase.EMERGENCY_DUE
    return MiaPhase.LAST_WORDS_DUE


def already_handled(state, field: str, checkin_id: int) -> bool:
    return state is not None and getattr(state, field) == checkin_id


def all_contacts_delivered(contact_ids: Iterable[int], delivered: Mapping[int, bool]) -> bool:
    """True when every contact has a successful delivery row.

    An empty contact list never counts as delivered.
    """
    ids = list(contact_ids)
    return bool(ids) and all(delivered.get(contact_id, False) for contact_id in ids)
