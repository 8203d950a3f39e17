"""Typed read/write access to the roster ("Student Database") sheet."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from roster_sms.models import OptIn, Person, SendAttempt
from roster_sms.phone import same_number
from roster_sms.runtime import get_logger
from roster_sms.schema import (
    ROSTER_PERSON_KEYS,
    ROSTER_REQUIRED,
    ROSTER_TABLE,
    ROSTER_TRACKING,
    SheetSchema,
)
from roster_sms.sheets import Worksheet

logger = get_logger(__name__)


def local_timestamp(tz: str, now: Optional[datetime] = None) -> str:
    moment = (now or datetime.now(ZoneInfo(tz))).astimezone(ZoneInfo(tz))
    return moment.strftime("%Y-%m-%d %H:%M:%S")


class RosterStore:
    """
    Roster rows as ``Person`` records.

    ``load`` reads the sheet once and parses the header row; every write
    afterwards goes straight to the sheet so each row's outcome is stored
    before the next one is handled.
    """

    def __init__(
        self,
        ws: Worksheet,
        *,
        timezone: str = "America/New_York",
        required: Sequence[str] = ROSTER_REQUIRED,
    ):
        self.ws = ws
        self.required = tuple(required)
        self.timezone = timezone
        self.schema: Optional[SheetSchema] = None
        self._raw: Dict[int, List[str]] = {}
        self._people: List[Person] = []

    # ── reading ──────────────────────────────────────

    def load(self) -> List[Person]:
        values = self.ws.get_all_values()
        headers = values[0] if values else []
        self.schema = SheetSchema(self.ws.title, headers, ROSTER_TABLE).require(self.required)
        mapped = self.schema.mapped_columns()
        self._raw = {}
        self._people = []
        for offset, raw in enumerate(values[1:]):
            row = offset + 2
            self._raw[row] = list(raw)
            fields = {key: self.schema.get(raw, key) for key in ROSTER_PERSON_KEYS}
            extra = {
                self.schema.headers[i]: raw[i]
                for i in range(min(len(raw), self.schema.width))
                if i not in mapped and self.schema.headers[i].strip()
            }
            self._people.append(Person(**fields, extra=extra, row=row))
        return list(self._people)

    @property
    def people(self) -> List[Person]:
        if self.schema is None:
            self.load()
        return list(self._people)

    def message_for(self, person: Person) -> str:
        """Per-row custom message from the optional "Message" column."""
        raw = self._raw.get(person.row or 0, [])
        return self.schema.get(raw, "message").strip() if self.schema else ""

    def find_by_phone(self, phone: str) -> List[Person]:
        return [p for p in self.people if same_number(p.phone, phone)]

    # ── writing ──────────────────────────────────────

    def _row_values(self, person: Person) -> List[str]:
        if self.schema is None:
            self.load()
        values = list(self._raw.get(person.row or 0, []))
        values += [""] * (self.schema.width - len(values))
        for key in ROSTER_PERSON_KEYS:
            col = self.schema.column(key)
            if col is not None:
                values[col] = person.value(key)
        for header, value in person.extra.items():
            if header in self.schema.headers:
                values[self.schema.headers.index(header)] = "" if value is None else str(value)
        return values

    def _remember(self, person: Person, values: List[str]) -> None:
        self._raw[person.row] = values
        for i, existing in enumerate(self._people):
            if existing.row == person.row:
                self._people[i] = person
                return
        self._people.append(person)

    def update(self, person: Person) -> Person:
        if person.row is None:
            raise ValueError("Cannot update a roster person without a row number")
        if self.schema is None:
            self.load()
        values = self._row_values(person)
        self.ws.update_row(person.row, values)
        self._remember(person, values)
        return person

    def insert(self, person: Person) -> Person:
        if self.schema is None:
            self.load()
        values = self._row_values(person.with_row(0))
        row = self.ws.append_row(values)
        stored = person.with_row(row)
        self._remember(stored, values)
        logger.info("➕ Roster row %s added (%s)", row, stored.campus_email or stored.email or stored.phone)
        return stored

    def _set_cell(self, row: int, key: str, value: str) -> None:
        if self.schema is None:
            self.load()
        col = self.schema.column(key)
        if col is None:
            return
        self.ws.update_cell(row, col + 1, value)
        raw = self._raw.setdefault(row, [])
        raw += [""] * (col + 1 - len(raw))
        raw[col] = value

    def set_opt_in(self, person: Person, value: OptIn) -> Person:
        if self.schema is None:
            self.load()
        self._set_cell(person.row, "opt_in", value.value)
        updated = replace(person, opt_in=value.value)
        self._remember(updated, self._raw[person.row])
        return updated

    def update_opt_in_by_phone(self, phone: str, value: OptIn, *, all_matches: bool = True) -> int:
        """Set opt-in on rows whose phone matches; returns how many rows changed."""
        self.load()
        changed = 0
        for person in self.find_by_phone(phone):
            self.set_opt_in(person, value)
            changed += 1
            if not all_matches:
                break
        if changed:
            logger.info("📵 Opt-in set to %s on %s roster row(s) for %s", value.value, changed, phone)
        return changed

    # ── send tracking ────────────────────────────────

    def ensure_tracking_columns(self) -> None:
        """Append any missing send-tracking column at the end of the header row."""
        if self.schema is None:
            self.load()
        for key in ROSTER_TRACKING:
            if not self.schema.has(key):
                idx = self.ws.add_column(ROSTER_TABLE.field_name(key))
                self.schema.add(key, idx)
                logger.info("🆕 Added roster column %s", ROSTER_TABLE.field_name(key))

    def record_send_status(self, person: Person, attempt: SendAttempt) -> None:
        if person.row is None:
            return
        self.ensure_tracking_columns()
        self._set_cell(person.row, "last_sent_at", local_timestamp(self.timezone, attempt.timestamp))
        self._set_cell(person.row, "send_status", attempt.outcome.value)
        self._set_cell(person.row, "last_error_code", attempt.error_code)
        self._set_cell(person.row, "last_error", attempt.error_message)
