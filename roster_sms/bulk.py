"""
📣 Bulk send job
- Walks the roster from the stored cursor, at most ``batch_size`` rows per run
- Skips rows without a phone or without an affirmative opt-in
- Per-row "Message" column overrides the default message
- Saves the cursor when rows remain, resets it after a full pass
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from roster_sms.cursor import BatchCursor, RunLock
from roster_sms.models import RunSummary, is_opted_in
from roster_sms.phone import to_bare, to_dialing
from roster_sms.roster import RosterStore
from roster_sms.runtime import get_logger
from roster_sms.sender import SendController

log = get_logger("bulk")


@dataclass
class BulkResult:
    processed: int = 0
    has_more: bool = False
    next_cursor: int = 1
    summary: RunSummary = field(default_factory=RunSummary)

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"processed": self.processed}
        out.update(self.summary.as_dict())
        out.update({"has_more": self.has_more, "next_cursor": self.next_cursor})
        return out


def process_batch(
    roster: RosterStore,
    controller: SendController,
    start: int,
    *,
    batch_size: int,
    default_message: str,
) -> BulkResult:
    """One batch from data offset ``start``; writes each row's outcome before the next."""
    people = roster.load()
    roster.ensure_tracking_columns()
    total = len(people)
    result = BulkResult(next_cursor=start)
    position = max(start, 1)

    while position <= total and result.processed < batch_size:
        person = people[position - 1]
        position += 1
        result.processed += 1

        phone = (person.phone or "").strip()
        if not phone:
            log.info("Row %s: skipping - no phone number", person.row)
            result.summary.skipped += 1
            continue
        if not is_opted_in(person.opt_in):
            log.info("Row %s: skipping %s - not opted in (value: %s)", person.row, phone, person.opt_in)
            result.summary.skipped += 1
            continue
        if to_bare(phone) in controller.opted_out:
            log.info("Row %s: skipping %s - unsubscribed earlier in this batch", person.row, phone)
            result.summary.skipped += 1
            continue

        body = roster.message_for(person) or default_message
        attempt = controller.send_one(to_dialing(phone), body, person)
        result.summary.count(attempt)

        if result.processed < batch_size and position <= total:
            controller.pace()

    result.has_more = position <= total
    result.next_cursor = position
    return result


def run_bulk_send(
    roster: RosterStore,
    controller: SendController,
    cursor: BatchCursor,
    lock: RunLock,
    *,
    batch_size: int = 50,
    default_message: str,
) -> BulkResult:
    """Run one resumable batch under the bulk-send lock."""
    with lock.held():
        controller.ensure_ready()
        controller.start_run()
        start = cursor.get()
        log.info("=== BULK SMS SEND START === cursor=%s batch_size=%s", start, batch_size)

        result = process_batch(
            roster,
            controller,
            start,
            batch_size=batch_size,
            default_message=default_message,
        )

        if result.has_more:
            cursor.advance(result.next_cursor)
            log.info("More rows to process. Next cursor: %s", result.next_cursor)
        else:
            cursor.reset()
            log.info("All rows processed. Cursor reset.")

        s = result.summary
        log.info(
            "=== BATCH COMPLETE === processed=%s sent=%s skipped=%s failed=%s opted_out=%s",
            result.processed,
            s.sent,
            s.skipped,
            s.failed,
            s.opted_out,
        )
        return result
