"""
Event Log lookups.

The Event Log sheet keeps a title block above the table, so its header row
is row 3 and data starts on row 4.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional
from zoneinfo import ZoneInfo

from roster_sms.runtime import get_logger
from roster_sms.schema import EVENT_LOG_REQUIRED, EVENT_LOG_TABLE, SchemaError, SheetSchema
from roster_sms.sheets import Worksheet

logger = get_logger(__name__)

DEFAULT_EVENT_TITLE = "our event"

_DATE_FORMATS = (
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
)


@dataclass(frozen=True)
class EventInfo:
    event_id: str
    title: str = DEFAULT_EVENT_TITLE
    date: str = ""
    location: str = ""
    raw_date: str = ""

    def as_dict(self) -> dict:
        return {
            "id": self.event_id,
            "title": self.title,
            "date": self.date,
            "location": self.location,
            "raw_date": self.raw_date,
        }


def _parse_date(value: str) -> Optional[datetime]:
    text = value.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_event_date(value: Any, tz: str = "America/New_York") -> str:
    """``Fri, Jul 18 @ 6:00 PM`` in ``tz``; unparseable input comes back unchanged."""
    if value is None or str(value).strip() == "":
        return ""
    zone = ZoneInfo(tz)
    moment = value if isinstance(value, datetime) else _parse_date(str(value))
    if moment is None:
        return str(value)
    moment = moment.replace(tzinfo=zone) if moment.tzinfo is None else moment.astimezone(zone)
    hour = moment.hour % 12 or 12
    return f"{moment:%a}, {moment:%b} {moment.day} @ {hour}:{moment:%M} {moment:%p}"


class EventLog:
    def __init__(
        self,
        ws: Optional[Worksheet],
        *,
        timezone: str = "America/New_York",
        header_row: int = EVENT_LOG_TABLE.header_row,
    ):
        self.ws = ws
        self.timezone = timezone
        self.header_row = header_row

    def _rows(self):
        if self.ws is None:
            return None, []
        values = self.ws.get_all_values()
        if len(values) < self.header_row:
            return None, []
        schema = SheetSchema(self.ws.title, values[self.header_row - 1], EVENT_LOG_TABLE)
        try:
            schema.require(EVENT_LOG_REQUIRED)
        except SchemaError:
            logger.warning("Event Log has no Event ID header on row %s", self.header_row)
            return None, []
        return schema, values[self.header_row:]

    def _info(self, schema: SheetSchema, raw) -> EventInfo:
        raw_date = schema.get(raw, "date").strip()
        return EventInfo(
            event_id=schema.get(raw, "event_id").strip(),
            title=schema.get(raw, "title").strip() or DEFAULT_EVENT_TITLE,
            date=format_event_date(raw_date, self.timezone),
            location=schema.get(raw, "location").strip(),
            raw_date=raw_date,
        )

    def events(self) -> List[EventInfo]:
        schema, rows = self._rows()
        if schema is None:
            return []
        return [self._info(schema, raw) for raw in rows if schema.get(raw, "event_id").strip()]

    def get(self, event_id: Optional[str]) -> EventInfo:
        """Event details for ``event_id``; unknown ids get the default title and no date."""
        wanted = (event_id or "").strip()
        if wanted:
            schema, rows = self._rows()
            if schema is not None:
                for raw in rows:
                    if schema.get(raw, "event_id").strip() == wanted:
                        return self._info(schema, raw)
        return EventInfo(event_id=wanted)
