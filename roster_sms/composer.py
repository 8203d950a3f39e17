"""
Composer service: the operator-facing send actions.

Every action checks the admin allow-list and the passcode session first.
"""

from __future__ import annotations

from typing import List, Optional, Union

from roster_sms.attendance import AttendanceLedger
from roster_sms.audience import Audience, Recipient, resolve_audience
from roster_sms.auth import AccessControl
from roster_sms.events import EventInfo, EventLog
from roster_sms.models import RunSummary, SendAttempt
from roster_sms.phone import to_dialing
from roster_sms.roster import RosterStore
from roster_sms.runtime import get_logger
from roster_sms.sender import Outgoing, SendController
from roster_sms.sms_log import SmsLog
from roster_sms.templates import TEST_MESSAGE, Template, build_context, list_templates, render

logger = get_logger(__name__)


def resend_logged_failures(sms_log: SmsLog, controller: SendController) -> RunSummary:
    """Re-send every logged attempt with HTTP code >= 400 or status FAILED."""
    failed = sms_log.failures()
    logger.info("🔁 Retrying %s failed send(s)", len(failed))
    summary, _ = controller.send_batch([Outgoing(f.to, f.body) for f in failed])
    return summary


def send_test(controller: SendController, number: Optional[str]) -> SendAttempt:
    """Send the fixed test message to the operator's own number."""
    if not number:
        raise ValueError("Set ADMIN_TEST_NUMBER to send a test message.")
    controller.ensure_ready()
    return controller.send_one(to_dialing(number), TEST_MESSAGE)


class Composer:
    def __init__(
        self,
        access: AccessControl,
        roster: RosterStore,
        ledger: Optional[AttendanceLedger],
        event_log: EventLog,
        controller: SendController,
        sms_log: SmsLog,
        *,
        test_number: Optional[str] = None,
    ):
        self.access = access
        self.roster = roster
        self.ledger = ledger
        self.event_log = event_log
        self.controller = controller
        self.sms_log = sms_log
        self.test_number = test_number

    def _recipients(self, event_id: Optional[str], selector: Union[str, Audience]) -> List[Recipient]:
        audience = Audience.parse(selector)
        if audience is Audience.ATTENDEES and self.ledger is None:
            return []
        return resolve_audience(self.roster, self.ledger, event_id, audience)

    # ── read-only ────────────────────────────────────

    def templates(self, user: str) -> List[Template]:
        self.access.require(user)
        return list_templates()

    def events(self, user: str) -> List[EventInfo]:
        self.access.require(user)
        return self.event_log.events()

    def audience_count(self, user: str, event_id: Optional[str], selector: Union[str, Audience]) -> int:
        self.access.require(user)
        return len(self._recipients(event_id, selector))

    def preview(self, user: str, body: str, event_id: Optional[str] = None) -> str:
        self.access.require(user)
        return render(body, build_context(self.event_log.get(event_id)))

    # ── sending ──────────────────────────────────────

    def send(self, user: str, event_id: Optional[str], selector: Union[str, Audience], body: str) -> RunSummary:
        """Render ``body`` per recipient (first name included) and send to the audience."""
        self.access.require(user)
        event = self.event_log.get(event_id)
        recipients = self._recipients(event_id, selector)
        items = [Outgoing(r.phone, render(body, build_context(event, r.first_name))) for r in recipients]
        logger.info("📨 Composer send by %s: %s recipient(s), audience=%s event=%s", user, len(items), selector, event_id)
        summary, _ = self.controller.send_batch(items)
        logger.info("Composer summary: %s", summary.as_dict())
        return summary

    def send_test_to_self(self, user: str) -> SendAttempt:
        self.access.require(user)
        return send_test(self.controller, self.test_number)

    def resend_failures(self, user: str) -> RunSummary:
        self.access.require(user)
        return resend_logged_failures(self.sms_log, self.controller)
