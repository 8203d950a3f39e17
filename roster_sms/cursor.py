"""Resumable batch cursor and single-run locks, both kept in the key/value store."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from roster_sms.kv import KeyValueStore
from roster_sms.runtime import get_logger

logger = get_logger(__name__)

DEFAULT_CURSOR = 1


class RunLockBusy(RuntimeError):
    """Another run of the same job currently holds the lock."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Another '{name}' run is in progress")


class BatchCursor:
    """
    Offset of the next data row to process (1 = first row after the header).

    Stored as a string integer; non-decreasing within a pass and reset only by
    an operator or at the end of a full pass.
    """

    def __init__(self, kv: KeyValueStore, key: str = "BULK_SMS_CURSOR"):
        self.kv = kv
        self.key = key

    def get(self) -> int:
        raw = self.kv.get(self.key)
        if raw is None or str(raw).strip() == "":
            return DEFAULT_CURSOR
        try:
            value = int(str(raw).strip())
        except ValueError:
            logger.warning("Ignoring unreadable cursor %r under %s", raw, self.key)
            return DEFAULT_CURSOR
        return max(value, DEFAULT_CURSOR)

    def advance(self, position: int) -> int:
        current = self.get()
        if position < current:
            raise ValueError(f"Cursor cannot move backwards ({current} -> {position})")
        self.kv.set(self.key, str(position))
        return position

    def reset(self) -> None:
        self.kv.delete(self.key)
        logger.info("🔄 Cursor %s reset", self.key)


class RunLock:
    """Lease-style lock: SET NX EX with a per-holder token."""

    def __init__(self, kv: KeyValueStore, name: str, ttl: int = 300):
        self.kv = kv
        self.name = name
        self.key = f"roster_sms:lock:{name}"
        self.ttl = ttl
        self.token: Optional[str] = None

    def acquire(self) -> bool:
        token = str(uuid.uuid4())
        if self.kv.set_nx(self.key, token, self.ttl):
            self.token = token
            return True
        return False

    def release(self) -> None:
        if self.token is None:
            return
        if not self.kv.delete_if(self.key, self.token):
            logger.warning("Lock %s expired before release", self.key)
        self.token = None

    @contextmanager
    def held(self) -> Iterator["RunLock"]:
        if not self.acquire():
            raise RunLockBusy(self.name)
        try:
            yield self
        finally:
            self.release()
