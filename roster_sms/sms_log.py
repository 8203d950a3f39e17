"""Append-only SMS Log sheet: one row per outbound attempt or inbound webhook."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from roster_sms.models import SendAttempt, SendOutcome
from roster_sms.roster import local_timestamp
from roster_sms.runtime import get_logger
from roster_sms.schema import SMS_LOG_TABLE, SheetSchema
from roster_sms.sheets import Worksheet

logger = get_logger(__name__)

DRY_RUN_PREFIX = "[DRY RUN] "
SMS_LOG_HEADERS = list(SMS_LOG_TABLE.field_names().values())


@dataclass(frozen=True)
class FailedSend:
    row: int
    to: str
    body: str


def _as_int(value: Any) -> int:
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return 0


class SmsLog:
    def __init__(self, ws: Worksheet, *, timezone: str = "America/New_York"):
        self.ws = ws
        self.timezone = timezone

    def _schema(self) -> SheetSchema:
        values = self.ws.get_all_values()
        if not values:
            self.ws.append_row(SMS_LOG_HEADERS)
            values = [SMS_LOG_HEADERS]
        schema = SheetSchema(self.ws.title, values[0], SMS_LOG_TABLE)
        for key in SMS_LOG_TABLE.fields:
            if not schema.has(key):
                schema.add(key, self.ws.add_column(SMS_LOG_TABLE.field_name(key)))
        return schema

    def _append(self, fields: Dict[str, Any]) -> int:
        schema = self._schema()
        row = schema.blank_row()
        for key, value in fields.items():
            col = schema.column(key)
            if col is not None:
                row[col] = "" if value is None else str(value)
        return self.ws.append_row(row)

    def log_attempt(self, attempt: SendAttempt, *, from_number: str = "") -> int:
        body = attempt.body
        if attempt.outcome == SendOutcome.DRYRUN:
            body = DRY_RUN_PREFIX + body
        return self._append(
            {
                "timestamp": local_timestamp(self.timezone, attempt.timestamp),
                "direction": "OUT",
                "to": attempt.to,
                "from": from_number,
                "body": body,
                "status": attempt.outcome.value,
                "sid": attempt.sid,
                "http_code": attempt.http_status,
                "error_code": attempt.error_code,
                "error": attempt.error_message,
            }
        )

    def log_inbound(self, from_number: str, body: str, status: str = "", sid: str = "", to: str = "") -> int:
        return self._append(
            {
                "timestamp": local_timestamp(self.timezone),
                "direction": "IN",
                "to": to,
                "from": from_number,
                "body": body,
                "status": status,
                "sid": sid,
            }
        )

    def failures(self) -> List[FailedSend]:
        """Outbound rows with HTTP code >= 400 or status FAILED, oldest first. Unsubscribed numbers are left out."""
        values = self.ws.get_all_values()
        if len(values) <= 1:
            return []
        schema = SheetSchema(self.ws.title, values[0], SMS_LOG_TABLE)
        out: List[FailedSend] = []
        for offset, raw in enumerate(values[1:]):
            if schema.get(raw, "direction").strip().upper() == "IN":
                continue
            to = schema.get(raw, "to").strip()
            body = schema.get(raw, "body")
            if not to or not body.strip():
                continue
            code = _as_int(schema.get(raw, "http_code"))
            status = schema.get(raw, "status").strip().lower()
            if status == SendOutcome.OPTED_OUT.value.lower():
                continue
            if code >= 400 or status == "failed":
                out.append(FailedSend(offset + 2, to, body))
        return out
