from __future__ import annotations

"""
Typed records shared by the reconciler, the attendance ledger and the sender.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from roster_sms.runtime import utc_now


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class OptIn(str, Enum):
    YES = "Yes"
    NO = "No"
    UNKNOWN = "?"


class SendOutcome(str, Enum):
    SENT = "SENT"
    FAILED = "FAILED"
    OPTED_OUT = "OPTED_OUT"
    DRYRUN = "DRYRUN"


class FailureKind(str, Enum):
    NONE = ""
    NETWORK = "network"
    MALFORMED = "malformed"
    VENDOR = "vendor"


_AFFIRMATIVE = {"YES", "TRUE", "1", "Y", "✓", "CHECKED"}


def is_opted_in(value: Any) -> bool:
    """Recognizes yes, true, 1, y, ✓ and checked in any case."""
    if value is None or value is False:
        return False
    if value is True:
        return True
    return str(value).strip().upper() in _AFFIRMATIVE


def is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


# ---------------------------------------------------------------------------
# Person
# ---------------------------------------------------------------------------


@dataclass
class Person:
    """One student/member row of the roster."""

    name: str = ""
    campus_email: str = ""
    email: str = ""
    phone: str = ""
    opt_in: str = ""
    join_date: str = ""
    role: str = ""
    panther_id: str = ""
    discord: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)
    row: Optional[int] = None

    @property
    def first_name(self) -> str:
        n = (self.name or "").strip()
        return n.split()[0] if n else ""

    @property
    def is_opted_in(self) -> bool:
        return self.opt_in == OptIn.YES.value

    def value(self, key: str) -> str:
        return str(getattr(self, key) or "")

    def with_row(self, row: int) -> "Person":
        return replace(self, row=row)

    @classmethod
    def field_names(cls) -> tuple:
        return tuple(f.name for f in fields(cls) if f.name not in ("extra", "row"))


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttendanceFact:
    event_id: str
    identity: str
    created_at: datetime = field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Send attempts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SendAttempt:
    to: str
    body: str
    outcome: SendOutcome
    sid: str = ""
    http_status: int = 0
    error_code: str = ""
    error_message: str = ""
    failure: FailureKind = FailureKind.NONE
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def ok(self) -> bool:
        return self.outcome in (SendOutcome.SENT, SendOutcome.DRYRUN)


@dataclass
class RunSummary:
    """Batch-level counters reported after every run."""

    attempted: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    opted_out: int = 0

    def count(self, attempt: SendAttempt) -> None:
        self.attempted += 1
        if attempt.outcome == SendOutcome.OPTED_OUT:
            self.opted_out += 1
        elif attempt.outcome == SendOutcome.FAILED:
            self.failed += 1
        else:
            self.sent += 1

    def as_dict(self) -> Dict[str, int]:
        return {
            "attempted": self.attempted,
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
            "opted_out": self.opted_out,
        }
