"""
Field reconciliation between a form submission and the stored roster row.

Non-destructive: a blank incoming value never clears a stored one, the join
date is written once at insert and never again, and opt-in only moves to
``Yes`` on an affirmative checkbox.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional, Sequence
from zoneinfo import ZoneInfo

from roster_sms.models import OptIn, Person, is_blank
from roster_sms.phone import to_bare
from roster_sms.schema import ROSTER_PERSON_KEYS, SheetSchema


@dataclass(frozen=True)
class MergeResult:
    person: Person
    opted_in_now: bool = False


def today_string(tz: str, now: Optional[datetime] = None) -> str:
    """Join-date form ``M/D/YYYY`` in the configured timezone."""
    moment = (now or datetime.now(ZoneInfo(tz))).astimezone(ZoneInfo(tz))
    return f"{moment.month}/{moment.day}/{moment.year}"


def normalize_field(key: str, value: Any) -> str:
    """Normalize one incoming form value for the roster column ``key``."""
    if is_blank(value):
        # Blank opt-in stays blank so it never overwrites a stored answer.
        return ""
    v = str(value)
    if key in ("email", "campus_email"):
        return v.strip().lower()
    if key == "phone":
        return to_bare(v)
    if key == "opt_in":
        # Any non-empty checkbox value means they opted in.
        return OptIn.YES.value
    return v


def incoming_from_response(row: Sequence[Any], schema: SheetSchema) -> Person:
    """Build the incoming person from one form response row."""
    values = {key: normalize_field(key, schema.get(row, key)) for key in ROSTER_PERSON_KEYS}
    return Person(**values)


def merge(existing: Person, incoming: Person) -> MergeResult:
    """
    Overlay ``incoming`` onto ``existing``.

    Every non-empty incoming field wins except the join date; an empty
    incoming field keeps the stored value. ``opted_in_now`` is True only for
    a genuine transition into ``Yes``.
    """
    updates = {}
    for key in Person.field_names():
        if key == "join_date":
            continue
        value = incoming.value(key)
        if not is_blank(value):
            updates[key] = value

    extra = dict(existing.extra)
    extra.update({k: v for k, v in incoming.extra.items() if not is_blank(v)})

    incoming_yes = incoming.opt_in == OptIn.YES.value
    if incoming_yes:
        updates["opt_in"] = OptIn.YES.value

    merged = replace(existing, extra=extra, **updates)
    was_yes = (existing.opt_in or "").strip().lower() == "yes"
    return MergeResult(merged, opted_in_now=incoming_yes and not was_yes)


def insert(incoming: Person, today: str) -> MergeResult:
    """New roster person from a submission that matched nothing."""
    incoming_yes = incoming.opt_in == OptIn.YES.value
    person = replace(
        incoming,
        extra=dict(incoming.extra),
        join_date=incoming.join_date or today,
        opt_in=OptIn.YES.value if incoming_yes else (incoming.opt_in or OptIn.UNKNOWN.value),
        row=None,
    )
    return MergeResult(person, opted_in_now=incoming_yes)
