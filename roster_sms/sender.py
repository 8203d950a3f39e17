"""
🚀 Outbound Send Controller
────────────────────────────
- Dry-run mode (logged, no vendor call)
- Fixed pacing delay between attempts
- Vendor error 21610 → roster opt-in forced to "No" before the next send
- Exactly one SMS Log row per attempt
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Set, Tuple

import gspread.exceptions

from roster_sms.models import FailureKind, OptIn, Person, RunSummary, SendAttempt, SendOutcome
from roster_sms.phone import to_bare
from roster_sms.roster import RosterStore
from roster_sms.runtime import get_logger
from roster_sms.sms_log import SmsLog
from roster_sms.twilio_client import TwilioClient, TwilioTransportError, VendorResponse

log = get_logger("sender")

OPT_OUT_ERROR_CODE = 21610
NETWORK_ERROR = "NETWORK_ERROR"
JSON_PARSE_ERROR = "JSON_PARSE_ERROR"


@dataclass(frozen=True)
class Outgoing:
    to: str  # dialing form
    body: str
    person: Optional[Person] = None


# ──────────────────────────────────────────────────────────────────────────────
# Classification (pure)
# ──────────────────────────────────────────────────────────────────────────────
def classify(to: str, body: str, response: VendorResponse) -> SendAttempt:
    """Map a vendor answer onto an attempt outcome."""
    data = response.data or {}
    if response.ok:
        return SendAttempt(
            to=to,
            body=body,
            outcome=SendOutcome.SENT,
            sid=str(data.get("sid") or ""),
            http_status=response.status_code,
        )

    code = data.get("code") or response.status_code
    message = str(data.get("message") or data.get("error_message") or "Unknown error")
    try:
        opted_out = int(code) == OPT_OUT_ERROR_CODE
    except (TypeError, ValueError):
        opted_out = False
    return SendAttempt(
        to=to,
        body=body,
        outcome=SendOutcome.OPTED_OUT if opted_out else SendOutcome.FAILED,
        http_status=response.status_code,
        error_code=str(code),
        error_message=message,
        failure=FailureKind.VENDOR,
    )


def transport_failure(to: str, body: str, exc: TwilioTransportError) -> SendAttempt:
    malformed = exc.kind == TwilioTransportError.MALFORMED
    return SendAttempt(
        to=to,
        body=body,
        outcome=SendOutcome.FAILED,
        http_status=exc.status_code or 0,
        error_code=JSON_PARSE_ERROR if malformed else NETWORK_ERROR,
        error_message=str(exc),
        failure=FailureKind.MALFORMED if malformed else FailureKind.NETWORK,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Controller
# ──────────────────────────────────────────────────────────────────────────────
class SendController:
    def __init__(
        self,
        client: TwilioClient,
        sms_log: SmsLog,
        roster: Optional[RosterStore] = None,
        *,
        dry_run: bool = False,
        rate_delay_ms: int = 150,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.sms_log = sms_log
        self.roster = roster
        self.dry_run = dry_run
        self.rate_delay_ms = rate_delay_ms
        self._sleep = sleep
        self.opted_out: Set[str] = set()

    def ensure_ready(self) -> None:
        """Raise TwilioConfigError unless sends can actually go out."""
        if not self.dry_run:
            self.client.validate()

    def start_run(self) -> None:
        """Forget numbers that unsubscribed during a previous run."""
        self.opted_out.clear()

    def _attempt(self, to: str, body: str) -> SendAttempt:
        if self.dry_run:
            log.info("[DRY RUN] → %s: %s", to, body[:60])
            return SendAttempt(to=to, body=body, outcome=SendOutcome.DRYRUN)
        try:
            return classify(to, body, self.client.post(to, body))
        except TwilioTransportError as exc:
            log.warning("Transport failure for %s: %s", to, exc)
            return transport_failure(to, body, exc)

    def _record(self, attempt: SendAttempt) -> None:
        try:
            self.sms_log.log_attempt(attempt, from_number=self.client.from_number)
        except gspread.exceptions.APIError:
            log.exception("LOG FAIL for %s", attempt.to)

    def _apply_opt_out(self, to: str) -> None:
        self.opted_out.add(to_bare(to))
        if self.roster is not None:
            self.roster.update_opt_in_by_phone(to, OptIn.NO, all_matches=True)

    def send_one(self, to: str, body: str, person: Optional[Person] = None) -> SendAttempt:
        """Send, log, and apply roster effects for a single recipient. No pacing."""
        attempt = self._attempt(to, body)
        self._record(attempt)

        if attempt.outcome == SendOutcome.OPTED_OUT:
            log.warning("📵 %s unsubscribed (21610); opt-in set to No", to)
            self._apply_opt_out(to)
        elif attempt.outcome == SendOutcome.SENT:
            log.info("📤 Sent → %s sid=%s", to, attempt.sid)
        elif attempt.outcome == SendOutcome.FAILED:
            log.error("❌ Send to %s failed [%s] %s", to, attempt.error_code, attempt.error_message)

        if person is not None and self.roster is not None:
            self.roster.record_send_status(person, attempt)
        return attempt

    def pace(self) -> None:
        if self.rate_delay_ms > 0:
            self._sleep(self.rate_delay_ms / 1000.0)

    def send_batch(self, items: Sequence[Outgoing]) -> Tuple[RunSummary, List[SendAttempt]]:
        """
        Send to every item in order.

        Numbers that came back as unsubscribed earlier in the batch are
        skipped; the pacing delay runs after each attempt except the last.
        """
        self.ensure_ready()
        self.start_run()
        summary = RunSummary()
        attempts: List[SendAttempt] = []
        last = len(items) - 1
        for i, item in enumerate(items):
            if to_bare(item.to) in self.opted_out:
                log.info("Skipping %s (unsubscribed earlier in this batch)", item.to)
                summary.skipped += 1
                continue
            attempt = self.send_one(item.to, item.body, item.person)
            summary.count(attempt)
            attempts.append(attempt)
            if i < last:
                self.pace()
        return summary, attempts
