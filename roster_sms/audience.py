"""Audience resolution for broadcasts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from roster_sms.attendance import AttendanceLedger
from roster_sms.matcher import identity_key
from roster_sms.models import AttendanceFact, Person
from roster_sms.phone import to_dialing
from roster_sms.roster import RosterStore


class Audience(str, Enum):
    ATTENDEES = "attendees"
    ALL_OPTED_IN = "alloptedin"

    @classmethod
    def parse(cls, value: Union[str, "Audience"]) -> "Audience":
        if isinstance(value, Audience):
            return value
        key = str(value or "").strip().lower().replace("_", "").replace("-", "")
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown audience selector: {value!r}")


@dataclass(frozen=True)
class Recipient:
    identity: str
    phone: str  # dialing form
    first_name: str
    person: Person


def _eligible(person: Person) -> bool:
    return person.is_opted_in and bool(person.phone.strip())


def _recipient(identity: str, person: Person) -> Recipient:
    return Recipient(identity, to_dialing(person.phone), person.first_name, person)


def resolve(
    event_id: Optional[str],
    selector: Union[str, Audience],
    people: Iterable[Person],
    facts: Iterable[AttendanceFact],
) -> List[Recipient]:
    """
    Recipients for ``selector``.

    ``attendees`` collects the distinct campus emails with a fact for
    ``event_id``; ``alloptedin`` takes every roster person. Either way, people
    without an affirmative opt-in or a phone are dropped without error.
    """
    audience = Audience.parse(selector)
    people = list(people)
    out: List[Recipient] = []

    if audience is Audience.ATTENDEES:
        wanted = (event_id or "").strip()
        by_campus: Dict[str, Person] = {}
        for person in people:
            key = person.campus_email.strip().lower()
            if key and key not in by_campus:
                by_campus[key] = person
        seen = set()
        for fact in facts:
            if fact.event_id.strip() != wanted or fact.identity in seen:
                continue
            seen.add(fact.identity)
            person = by_campus.get(fact.identity)
            if person is not None and _eligible(person):
                out.append(_recipient(fact.identity, person))
        return out

    seen = set()
    for person in people:
        if not _eligible(person):
            continue
        found = identity_key(person)
        identity = found[1] if found else to_dialing(person.phone)
        if identity in seen:
            continue
        seen.add(identity)
        out.append(_recipient(identity, person))
    return out


def resolve_audience(
    roster: RosterStore,
    ledger: AttendanceLedger,
    event_id: Optional[str],
    selector: Union[str, Audience],
) -> List[Recipient]:
    audience = Audience.parse(selector)
    facts = ledger.facts() if audience is Audience.ATTENDEES else []
    return resolve(event_id, audience, roster.load(), facts)
