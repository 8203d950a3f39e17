"""
🔁 Roster sync job

Form responses → roster (non-destructive merge or insert) → attendance.
Every handled response row is marked ``Processed = YES`` so a rerun never
applies it twice.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Callable, Dict, Optional, Sequence

from roster_sms.attendance import AttendanceLedger
from roster_sms.cursor import RunLock
from roster_sms.matcher import RecordIndex, identity_key
from roster_sms.models import OptIn, Person, SendAttempt, SendOutcome
from roster_sms.phone import to_dialing
from roster_sms.reconcile import MergeResult, incoming_from_response, insert, merge
from roster_sms.roster import RosterStore
from roster_sms.runtime import get_logger
from roster_sms.schema import RESPONSE_TABLE, ROSTER_REQUIRED, SheetSchema
from roster_sms.sender import SendController
from roster_sms.sheets import Worksheet
from roster_sms.templates import welcome_message
from roster_sms.twilio_client import TwilioConfigError

log = get_logger("sync")

PROCESSED_VALUE = "YES"


@dataclass
class SyncSummary:
    sheets: int = 0
    rows_seen: int = 0
    already_processed: int = 0
    no_key: int = 0
    inserted: int = 0
    updated: int = 0
    welcomed: int = 0
    welcome_skipped: int = 0
    attendance_recorded: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def _processed_column(ws: Worksheet, schema: SheetSchema) -> int:
    col = schema.column("processed")
    if col is None:
        col = ws.add_column(RESPONSE_TABLE.field_name("processed"))
        schema.add("processed", col)
        log.info("🆕 Added Processed column to %s", ws.title)
    return col


def _send_welcome(
    controller: Optional[SendController], person: Person, summary: SyncSummary
) -> Optional[SendAttempt]:
    phone = (person.phone or "").strip()
    if not phone:
        return None
    if controller is None:
        summary.welcome_skipped += 1
        return None
    try:
        controller.ensure_ready()
    except TwilioConfigError as exc:
        log.warning("Welcome SMS to %s skipped: %s", phone, exc)
        summary.welcome_skipped += 1
        return None
    attempt = controller.send_one(to_dialing(phone), welcome_message())
    summary.welcomed += 1
    return attempt


def sync_sheet(
    ws: Worksheet,
    roster: RosterStore,
    index: RecordIndex,
    ledger: Optional[AttendanceLedger],
    controller: Optional[SendController],
    today: str,
    summary: SyncSummary,
) -> None:
    values = ws.get_all_values()
    if not values:
        log.info("Response sheet %s is empty", ws.title)
        return
    schema = SheetSchema(ws.title, values[0], RESPONSE_TABLE)
    processed_col = _processed_column(ws, schema)
    summary.sheets += 1

    for offset, raw in enumerate(values[1:]):
        row = offset + 2
        summary.rows_seen += 1
        if schema.get(raw, "processed").strip().lower() == "yes":
            summary.already_processed += 1
            continue

        incoming = incoming_from_response(raw, schema)
        if identity_key(incoming) is None:
            log.warning("%s row %s has no campus email, email or phone; marking processed", ws.title, row)
            summary.no_key += 1
            ws.update_cell(row, processed_col + 1, PROCESSED_VALUE)
            continue

        existing = index.lookup(incoming)
        result: MergeResult
        if existing is not None:
            result = merge(existing, incoming)
            saved = roster.update(result.person)
            index.replace(existing, saved)
            summary.updated += 1
        else:
            result = insert(incoming, today)
            saved = roster.insert(result.person)
            index.add(saved)
            summary.inserted += 1

        if result.opted_in_now:
            attempt = _send_welcome(controller, saved, summary)
            if attempt is not None and attempt.outcome == SendOutcome.OPTED_OUT:
                # The sheet already says No; later rows must merge against that.
                unsubscribed = replace(saved, opt_in=OptIn.NO.value)
                index.replace(saved, unsubscribed)
                saved = unsubscribed

        event_id = schema.get(raw, "event_id").strip()
        campus = (saved.campus_email or "").strip().lower()
        if ledger is not None and event_id and campus:
            if ledger.record(event_id, campus):
                summary.attendance_recorded += 1
        elif event_id:
            log.debug("Attendance skipped for %s row %s (no campus email or no ledger)", ws.title, row)

        ws.update_cell(row, processed_col + 1, PROCESSED_VALUE)


def sync_student_database(
    roster: RosterStore,
    responses: Sequence[Worksheet],
    ledger: Optional[AttendanceLedger],
    controller: Optional[SendController],
    lock: RunLock,
    *,
    today: Callable[[], str],
) -> SyncSummary:
    """Process every unprocessed response row of every response sheet."""
    summary = SyncSummary()
    with lock.held():
        index = RecordIndex(roster.load())
        roster.schema.require(ROSTER_REQUIRED)
        log.info("🔁 Sync start: %s roster rows, %s response sheet(s)", len(roster.people), len(responses))
        day = today()
        for ws in responses:
            sync_sheet(ws, roster, index, ledger, controller, day, summary)
        log.info("✅ Sync done: %s", summary.as_dict())
    return summary
