from datetime import timedelta
from types import SimpleNamespace

from still_alive.services.phases import (
    EmergencyModeStatus,
    MiaPhase,
    advance_to_last_words,
    all_contacts_delivered,
    compute_deadlines,
    compute_phase,
    emergency_mode_status,
    resolve_last_words_threshold,
    resolve_mia_threshold,
)

from conftest import T0


def test_phase_windows_for_default_threshold():
    assert compute_phase(T0 + timedelta(hours=22, minutes=59), T0, 24) == MiaPhase.SAFE
    assert compute_phase(T0 + timedelta(hours=23), T0, 24) == MiaPhase.PRE_ALERT_DUE
    assert compute_phase(T0 + timedelta(hours=23, minutes=59), T0, 24) == MiaPhase.PRE_ALERT_DUE
    assert compute_phase(T0 + timedelta(hours=24), T0, 24) == MiaPhase.EMERGENCY_DUE


def test_no_checkin_is_always_safe():
    assert compute_phase(T0 + timedelta(days=365), None, 24) == MiaPhase.SAFE


def test_deadlines():
    deadlines = compute_deadlines(T0, 12)
    assert deadlines.pre_alert_at == T0 + timedelta(hours=11)
    assert deadlines.alert_at == T0 + timedelta(hours=12)


def test_naive_checkin_time_is_treated_as_utc():
    naive = T0.replace(tzinfo=None)
    assert compute_phase(T0 + timedelta(hours=24), naive, 24) == MiaPhase.EMERGENCY_DUE


def test_out_of_range_thresholds_fall_back_to_defaults():
    assert resolve_mia_threshold(999) == 24
    assert resolve_mia_threshold(None) == 24
    assert resolve_mia_threshold(36) == 36
    assert resolve_last_words_threshold(5) == 48
    assert resolve_last_words_threshold(72) == 72


def test_emergency_mode_status():
    now = T0
    assert emergency_mode_status(None, now) == EmergencyModeStatus.OFF
    off = SimpleNamespace(emergency_mode_enabled=False, emergency_mode_end_time=None)
    assert emergency_mode_status(off, now) == EmergencyModeStatus.OFF
    active = SimpleNamespace(emergency_mode_enabled=True, emergency_mode_end_time=now + timedelta(hours=1))
    assert emergency_mode_status(active, now) == EmergencyModeStatus.ACTIVE
    elapsed = SimpleNamespace(emergency_mode_enabled=True, emergency_mode_end_time=now - timedelta(seconds=1))
    assert emergency_mode_status(elapsed, now) == EmergencyModeStatus.EXPIRED
    no_end = SimpleNamespace(emergency_mode_enabled=True, emergency_mode_end_time=None)
    assert emergency_mode_status(no_end, now) == EmergencyModeStatus.EXPIRED


def test_last_words_needs_emergency_for_same_checkin():
    checkin = SimpleNamespace(id=7, check_in_time=T0)
    late = T0 + timedelta(hours=80)
    assert advance_to_last_words(late, checkin, None, 48) == MiaPhase.EMERGENCY_DUE
    other = SimpleNamespace(emergency_for_checkin_id=6)
    assert advance_to_last_words(late, checkin, other, 48) == MiaPhase.EMERGENCY_DUE
    done = SimpleNamespace(emergency_for_checkin_id=7)
    assert advance_to_last_words(late, checkin, done, 48) == MiaPhase.LAST_WORDS_DUE
    assert advance_to_last_words(T0 + timedelta(hours=47), checkin, done, 48) == MiaPhase.EMERGENCY_DUE


def test_all_contacts_delivered():
    assert all_contacts_delivered([1, 2, 3], {1: True, 2: True, 3: True})
    assert not all_contacts_delivered([1, 2, 3], {1: True, 2: True, 3: False})
    assert not all_contacts_delivered([1, 2, 3], {1: True, 2: True})
    assert not all_contacts_delivered([], {})
    # Rows for contacts that were since removed do not matter.
    assert all_contacts_delivered([1], {1: True, 9: False})
