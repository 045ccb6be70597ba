"""The MIA alert sweep.

For every user the sweep works out how long they have been silent, then
sends whichever of the three notifications (pre-alert to the user, emergency
alert to contacts, last words) is newly due. Each send is followed by a
committed ledger write, so re-running the sweep never repeats a successful
delivery and a failed one is retried on the next pass.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from ..config import AlertChannel, settings
from ..db import session_scope
from ..models import AlertType
from ..phone import mask_phone
from ..repositories import (
    AlertDeliveryRepository,
    CheckinRepository,
    ContactRepository,
    LastWordsRepository,
    MiaNotificationRepository,
    SettingsRepository,
    UserRepository,
)
from ..utils_time import utcnow
from .notifications import (
    EmailSender,
    SmsSender,
    SmtpEmailSender,
    TwilioSmsSender,
    emergency_email,
    emergency_sms,
    last_words_email,
    pre_alert_email,
)
from .phases import (
    EmergencyModeStatus,
    MiaPhase,
    advance_to_last_words,
    all_contacts_delivered,
    already_handled,
    compute_phase,
    emergency_mode_status,
    resolve_last_words_threshold,
    resolve_mia_threshold,
)

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    users_scanned: int = 0
    users_failed: int = 0
    pre_alerts_sent: int = 0
    emergency_deliveries: int = 0
    failed_deliveries: int = 0
    last_words_sent: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class MiaAlertSweep:
    def __init__(
        self,
        session_factory=session_scope,
        email_sender: EmailSender | None = None,
        sms_sender: SmsSender | None = None,
        channel: AlertChannel = settings.alert_channel,
        base_url: str = settings.app_base_url,
        clock=utcnow,
    ):
        self.session_factory = session_factory
        self.email_sender = email_sender or SmtpEmailSender()
        self.sms_sender = sms_sender or TwilioSmsSender()
        self.channel = channel
        self.base_url = base_url
        self.clock = clock

    def run(self) -> SweepReport:
        report = SweepReport()
        with self.session_factory() as session:
            user_ids = UserRepository(session).list_ids()

        for user_id in user_ids:
            report.users_scanned += 1
            try:
                with self.session_factory() as session:
                    self._process_user(session, user_id, report)
            except Exception:
                report.users_failed += 1
                logger.exception("MIA sweep failed for user %s", user_id)

        logger.info("MIA sweep complete: %s", report.as_dict())
        return report

    def _process_user(self, session, user_id: int, report: SweepReport):
        user = UserRepository(session).get_by_id(user_id)
        if not user:
            return
        now = self.clock()

        settings_repo = SettingsRepository(session)
        user_settings = settings_repo.get(user_id)
        status = emergency_mode_status(user_settings, now)
        if status == EmergencyModeStatus.ACTIVE:
            logger.debug("User %s in emergency mode, alerts suspended", user_id)
            return
        if status == EmergencyModeStatus.EXPIRED:
            settings_repo.disable_emergency_mode(user_id)
            session.commit()
            logger.info("Emergency mode expired for user %s, disabled", user_id)

        checkin = CheckinRepository(session).latest_for_user(user_id)
        if checkin is None:
            return

        threshold = resolve_mia_threshold(user_settings.mia_threshold_hrs if user_settings else None)
        phase = compute_phase(now, checkin.check_in_time, threshold)

        if phase == MiaPhase.PRE_ALERT_DUE:
            self._dispatch_pre_alert(session, user, checkin, report)
        elif phase == MiaPhase.EMERGENCY_DUE:
            self._dispatch_emergency(session, user, checkin, threshold, report)
            self._follow_up_last_words(session, user, checkin, now, report)

    def _dispatch_pre_alert(self, session, user, checkin, report: SweepReport):
        ledger = MiaNotificationRepository(session)
        if already_handled(ledger.get(user.id), "pre_alert_for_checkin_id", checkin.id):
            return
        if not user.email:
            logger.debug("User %s has no email, pre-alert skipped", user.id)
            return

        subject, body = pre_alert_email(self.base_url)
        result = self.email_sender.send_email(user.email, subject, body)
        if not result.ok:
            logger.warning("Pre-alert to user %s failed: %s", user.id, result.error)
            return
        ledger.mark_pre_alert(user.id, checkin.id)
        session.commit()
        report.pre_alerts_sent += 1

    def _eligible_contacts(self, session, user_id: int):
        contacts = ContactRepository(session)
        if self.channel == AlertChannel.SMS:
            return [c for c in contacts.list_for_user(user_id, confirmed_only=True) if c.phone]
        return contacts.list_for_user(user_id)

    def _send_emergency(self, user, contact, checkin, threshold: int):
        if self.channel == AlertChannel.SMS:
            body = emergency_sms(user.name, threshold, checkin.check_in_time)
            return self.sms_sender.send_sms(contact.phone, body)
        subject, body = emergency_email(user.name, threshold, checkin.check_in_time, self.base_url)
        return self.email_sender.send_email(contact.email, subject, body)

    def _dispatch_emergency(self, session, user, checkin, threshold: int, report: SweepReport):
        ledger = MiaNotificationRepository(session)
        if already_handled(ledger.get(user.id), "emergency_for_checkin_id", checkin.id):
            return

        contacts = self._eligible_contacts(session, user.id)
        if not contacts:
            logger.debug("User %s has no eligible contacts, emergency alert deferred", user.id)
            return

        alert_type = (
            AlertType.EMERGENCY_SMS if self.channel == AlertChannel.SMS else AlertType.EMERGENCY_EMAIL
        )
        deliveries = AlertDeliveryRepository(session)
        for contact in contacts:
            existing = deliveries.get(checkin.id, contact.id, alert_type)
            if existing is not None and existing.ok:
                continue

            result = self._send_emergency(user, contact, checkin, threshold)
            deliveries.record(user.id, checkin.id, contact.id, alert_type, result.ok, result.error)
            session.commit()
            if result.ok:
                report.emergency_deliveries += 1
            else:
                report.failed_deliveries += 1
                target = mask_phone(contact.phone) if alert_type == AlertType.EMERGENCY_SMS else contact.email
                logger.warning(
                    "Emergency alert for user %s to contact %s (%s) failed: %s",
                    user.id,
                    contact.id,
                    target,
                    result.error,
                )

        delivered = deliveries.ok_by_contact(checkin.id, alert_type)
        if all_contacts_delivered([c.id for c in contacts], delivered):
            ledger.mark_emergency(user.id, checkin.id)
            session.commit()
            logger.info("Emergency alert complete for user %s, check-in %s", user.id, checkin.id)

    def _follow_up_last_words(self, session, user, checkin, now, report: SweepReport):
        state = MiaNotificationRepository(session).get(user.id)
        if already_handled(state, "last_words_for_checkin_id", checkin.id):
            return
        if not already_handled(state, "emergency_for_checkin_id", checkin.id):
            return

        last_words = LastWordsRepository(session).get(user.id)
        if last_words is None or not (last_words.message or "").strip():
            return
        lw_threshold = resolve_last_words_threshold(last_words.delivery_threshold)
        if advance_to_last_words(now, checkin, state, lw_threshold) != MiaPhase.LAST_WORDS_DUE:
            return

        self._dispatch_last_words(session, user, checkin, lw_threshold, last_words.message, report)

    def _dispatch_last_words(self, session, user, checkin, lw_threshold: int, message: str, report):
        ledger = MiaNotificationRepository(session)
        deliveries = AlertDeliveryRepository(session)
        existing = deliveries.get(checkin.id, user.id, AlertType.LAST_WORDS_EMAIL)
        if existing is None or not existing.ok:
            if not user.email:
                logger.debug("User %s has no email, last words skipped", user.id)
                return
            # Delivered to the user's own inbox, not to the contacts.
            subject, body = last_words_email(user.name, lw_threshold, message)
            result = self.email_sender.send_email(user.email, subject, body)
            deliveries.record(
                user.id, checkin.id, user.id, AlertType.LAST_WORDS_EMAIL, result.ok, result.error
            )
            session.commit()
            if not result.ok:
                report.failed_deliveries += 1
                logger.warning("Last words for user %s failed: %s", user.id, result.error)
                return
            report.last_words_sent += 1

        ledger.mark_last_words(user.id, checkin.id)
        session.commit()
