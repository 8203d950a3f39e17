from __future__ import annotations

"""
Central sheet schema definitions and helpers.

Every sheet the service touches is described once here as a table of logical
keys → header names (plus legacy aliases). Headers are matched trimmed and
case-insensitively, in any column order, so a renamed or reordered column in
the live spreadsheet does not require code changes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


class SchemaError(ValueError):
    """A required column is missing from a sheet header row."""

    def __init__(self, sheet: str, missing: Sequence[str]):
        self.sheet = sheet
        self.missing = tuple(missing)
        super().__init__(f"Sheet '{sheet}' is missing required column(s): {', '.join(self.missing)}")


def normalize_header(value: Any) -> str:
    return str(value if value is not None else "").strip().lower()


# ---------------------------------------------------------------------------
# Core data containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldDefinition:
    """
    Represents a sheet column.

    Args:
        default: Canonical header text (used when the column has to be created).
        aliases: Other header texts accepted when reading, in priority order.
    """

    default: str
    aliases: Tuple[str, ...] = field(default_factory=tuple)

    def candidates(self) -> Tuple[str, ...]:
        seen: set[str] = set()
        unique: list[str] = []
        for name in (self.default,) + self.aliases:
            key = normalize_header(name)
            if key and key not in seen:
                unique.append(key)
                seen.add(key)
        return tuple(unique)


@dataclass(frozen=True)
class TableDefinition:
    """
    Sheet metadata.

    Args:
        default: Human-readable sheet (tab) name.
        fields: Mapping of logical keys → FieldDefinition.
        header_row: 1-based row holding the headers.
    """

    default: str
    fields: Dict[str, FieldDefinition] = field(default_factory=dict)
    header_row: int = 1

    def field_name(self, key: str) -> str:
        return self.fields[key].default

    def field_names(self) -> Dict[str, str]:
        return {key: f.default for key, f in self.fields.items()}


# ---------------------------------------------------------------------------
# Table definitions
# ---------------------------------------------------------------------------

ROSTER_TABLE = TableDefinition(
    "Student Database",
    {
        "join_date": FieldDefinition("Join Date", ("Timestamp",)),
        "name": FieldDefinition("Student Name", ("Name", "Full Name", "Full Name (First & Last)")),
        "role": FieldDefinition("Role"),
        "panther_id": FieldDefinition("Panther ID", ("Student ID",)),
        "discord": FieldDefinition("Discord"),
        "email": FieldDefinition("Email", ("Personal Email",)),
        "campus_email": FieldDefinition("Campus Email", ("School Email",)),
        "phone": FieldDefinition("Phone #", ("Phone", "Phone Number", "Mobile")),
        "opt_in": FieldDefinition("SMS Opt-In", ("Opt In", "SMS Opt In", "opt_in")),
        "message": FieldDefinition("Message"),
        "last_sent_at": FieldDefinition("Last Sent At"),
        "send_status": FieldDefinition("Send Status"),
        "last_error_code": FieldDefinition("Last Error Code"),
        "last_error": FieldDefinition("Last Error"),
    },
)

# Columns the reconciler reads and writes on every roster row.
ROSTER_PERSON_KEYS: Tuple[str, ...] = (
    "join_date",
    "name",
    "role",
    "panther_id",
    "discord",
    "email",
    "campus_email",
    "phone",
    "opt_in",
)
ROSTER_REQUIRED: Tuple[str, ...] = ("campus_email", "email", "phone", "opt_in")
# Sending and inbound keyword handling only need these.
ROSTER_SEND_REQUIRED: Tuple[str, ...] = ("phone", "opt_in")
ROSTER_TRACKING: Tuple[str, ...] = ("last_sent_at", "send_status", "last_error_code", "last_error")

RESPONSE_TABLE = TableDefinition(
    "Raw Attendance Data",
    {
        "join_date": FieldDefinition("Timestamp"),
        "name": FieldDefinition("Full Name (First & Last)", ("Full Name", "Student Name", "Name")),
        "role": FieldDefinition("Role"),
        "panther_id": FieldDefinition("Panther ID", ("Student ID",)),
        "discord": FieldDefinition("Discord"),
        "email": FieldDefinition("Email", ("Personal Email",)),
        "campus_email": FieldDefinition("Campus Email", ("School Email",)),
        "phone": FieldDefinition("Phone Number", ("Phone #", "Phone")),
        "opt_in": FieldDefinition("SMS Opt-In", ("Opt In", "SMS Opt In")),
        "event_id": FieldDefinition(
            "Event ID Attended (Pre-Filled)",
            ("EventID", "Event Id", "Event ID", "Event", "Workshop", "Workshop/Event"),
        ),
        "processed": FieldDefinition("Processed"),
    },
)

ATTENDANCE_TABLE = TableDefinition(
    "Attendance",
    {
        "event_id": FieldDefinition("Event ID", ("EventID", "Event Id")),
        "campus_email": FieldDefinition("Campus Email", ("School Email",)),
    },
)
ATTENDANCE_REQUIRED: Tuple[str, ...] = ("event_id", "campus_email")

SMS_LOG_TABLE = TableDefinition(
    "SMS Log",
    {
        "timestamp": FieldDefinition("Timestamp"),
        "direction": FieldDefinition("Direction"),
        "to": FieldDefinition("To"),
        "from": FieldDefinition("From"),
        "body": FieldDefinition("Body"),
        "status": FieldDefinition("Status"),
        "sid": FieldDefinition("MessageSid", ("Twilio SID", "SID")),
        "http_code": FieldDefinition("HTTP Code"),
        "error_code": FieldDefinition("Error Code"),
        "error": FieldDefinition("Error"),
    },
)

EVENT_LOG_TABLE = TableDefinition(
    "Event Log",
    {
        "event_id": FieldDefinition("Event ID", ("EventID", "Event Id")),
        "date": FieldDefinition("Date (MM/DD/20YY HH:MM AM/PM)", ("Date", "Event Date")),
        "location": FieldDefinition("Location"),
        "title": FieldDefinition("Public Event Title", ("Event Title", "Title")),
    },
    header_row=3,
)
EVENT_LOG_REQUIRED: Tuple[str, ...] = ("event_id",)


# ---------------------------------------------------------------------------
# Parsed header row
# ---------------------------------------------------------------------------


class SheetSchema:
    """
    Header row parsed once per run.

    Maps each logical key to the 0-based column indexes whose header matches
    one of the key's candidates, ordered by candidate priority.
    """

    def __init__(self, sheet: str, headers: Sequence[Any], table: TableDefinition):
        self.sheet = sheet
        self.table = table
        self.headers: List[str] = [str(h if h is not None else "") for h in headers]
        by_header: Dict[str, List[int]] = {}
        for idx, header in enumerate(self.headers):
            by_header.setdefault(normalize_header(header), []).append(idx)
        self._columns: Dict[str, List[int]] = {}
        for key, definition in table.fields.items():
            found: List[int] = []
            for candidate in definition.candidates():
                found.extend(i for i in by_header.get(candidate, []) if i not in found)
            if found:
                self._columns[key] = found

    @property
    def width(self) -> int:
        return len(self.headers)

    def has(self, key: str) -> bool:
        return key in self._columns

    def column(self, key: str) -> Optional[int]:
        cols = self._columns.get(key)
        return cols[0] if cols else None

    def missing(self, keys: Iterable[str]) -> List[str]:
        return [self.table.field_name(k) for k in keys if not self.has(k)]

    def require(self, keys: Iterable[str]) -> "SheetSchema":
        missing = self.missing(keys)
        if missing:
            raise SchemaError(self.sheet, missing)
        return self

    def mapped_columns(self) -> set[int]:
        return {i for cols in self._columns.values() for i in cols}

    def get(self, row: Sequence[Any], key: str) -> str:
        """First non-empty value across the key's matching columns."""
        for idx in self._columns.get(key, []):
            if idx < len(row):
                value = row[idx]
                if value is not None and str(value).strip() != "":
                    return str(value)
        return ""

    def add(self, key: str, index: int) -> None:
        """Register a column appended after parsing."""
        while len(self.headers) < index:
            self.headers.append("")
        if len(self.headers) == index:
            self.headers.append(self.table.field_name(key))
        else:
            self.headers[index] = self.table.field_name(key)
        self._columns[key] = [index]

    def blank_row(self) -> List[str]:
        return [""] * self.width
