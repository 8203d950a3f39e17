"""
Attendance ledger.

One fact per (event id, campus email). Duplicates are rejected by a linear
scan of the sheet before every append, and a new row only gets its Event ID
and Campus Email cells written so formula columns stay intact.
"""

from __future__ import annotations

from typing import List

from roster_sms.models import AttendanceFact
from roster_sms.runtime import get_logger
from roster_sms.schema import ATTENDANCE_REQUIRED, ATTENDANCE_TABLE, SheetSchema
from roster_sms.sheets import Worksheet

logger = get_logger(__name__)


class AttendanceLedger:
    def __init__(self, ws: Worksheet):
        self.ws = ws

    def _read(self):
        values = self.ws.get_all_values()
        schema = SheetSchema(self.ws.title, values[0] if values else [], ATTENDANCE_TABLE)
        schema.require(ATTENDANCE_REQUIRED)
        return schema, values[1:]

    def facts(self) -> List[AttendanceFact]:
        schema, rows = self._read()
        found = []
        for raw in rows:
            event_id = schema.get(raw, "event_id").strip()
            identity = schema.get(raw, "campus_email").strip().lower()
            if event_id and identity:
                found.append(AttendanceFact(event_id, identity))
        return found

    def _contains(self, schema: SheetSchema, rows, event_id: str, identity: str) -> bool:
        for raw in rows:
            if (
                schema.get(raw, "event_id").strip() == event_id
                and schema.get(raw, "campus_email").strip().lower() == identity
            ):
                return True
        return False

    def has(self, event_id: str, identity: str) -> bool:
        """Exact event id (after trim), case-insensitive identity."""
        event_id = (event_id or "").strip()
        identity = (identity or "").strip().lower()
        if not event_id or not identity:
            return False
        return self._contains(*self._read(), event_id, identity)

    def record(self, event_id: str, identity: str) -> bool:
        """Append the fact when absent; True only when a row was written."""
        event_id = (event_id or "").strip()
        identity = (identity or "").strip().lower()
        if not event_id or not identity:
            logger.debug("Attendance skipped: missing event id or campus email")
            return False
        schema, rows = self._read()
        if self._contains(schema, rows, event_id, identity):
            logger.debug("Attendance already recorded for %s @ %s", identity, event_id)
            return False
        row = self.ws.append_cells(
            {
                schema.column("event_id"): event_id,
                schema.column("campus_email"): identity,
            }
        )
        logger.info("✅ Attendance row %s: %s @ %s", row, identity, event_id)
        return True

    def attendees(self, event_id: str) -> List[str]:
        """Distinct identities with a fact for ``event_id``, in sheet order."""
        event_id = (event_id or "").strip()
        seen: List[str] = []
        for fact in self.facts():
            if fact.event_id == event_id and fact.identity not in seen:
                seen.append(fact.identity)
        return seen
