"""
Record matching.

A person is identified by exactly one key, taken in priority order:
campus email, then personal email, then phone (bare digits). The first
non-empty key decides; lower-priority keys are never consulted once a
higher one is present.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from roster_sms.models import Person
from roster_sms.phone import to_bare


IDENTITY_PRIORITY: Tuple[str, ...] = ("campus_email", "email", "phone")


def normalize_identity(name: str, value: str) -> str:
    if name == "phone":
        return to_bare(value)
    return (value or "").strip().lower()


def identity_key(person: Person) -> Optional[Tuple[str, str]]:
    """First ``(key name, normalized value)`` with a non-empty value, else None."""
    for name in IDENTITY_PRIORITY:
        value = normalize_identity(name, person.value(name))
        if value:
            return name, value
    return None


def index_key(name: str, value: str) -> str:
    return f"{name}::{(value or '').lower()}"


class RecordIndex:
    """
    In-memory index of stored persons, built once per pass.

    Each stored person is indexed under its own identity key; an incoming
    submission matches only when its identity key is the same key. Entries
    added mid-pass are visible to later lookups in the same pass.
    """

    def __init__(self, people: Iterable[Person] = ()):
        self._by_key: Dict[str, Person] = {}
        for person in people:
            self.add(person)

    def __len__(self) -> int:
        return len({id(p) for p in self._by_key.values()})

    def add(self, person: Person) -> None:
        found = identity_key(person)
        if found is None:
            return
        key = index_key(*found)
        # First stored row wins when the sheet already holds duplicates.
        if key not in self._by_key:
            self._by_key[key] = person

    def replace(self, old: Person, new: Person) -> None:
        """Point every key of ``old`` at ``new`` and index ``new`` under its own key."""
        for key, person in list(self._by_key.items()):
            if person is old:
                self._by_key[key] = new
        self.add(new)

    def lookup(self, incoming: Person) -> Optional[Person]:
        found = identity_key(incoming)
        if found is None:
            return None
        return self._by_key.get(index_key(*found))
