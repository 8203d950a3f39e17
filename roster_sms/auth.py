"""
Admin allow-list and passcode sessions for the composer actions.

The passcode is configured as the SHA-256 hex of its NFC-normalized, trimmed
plaintext. A successful check opens a session for that caller that stays
valid for ``session_ttl_hours`` (12 h by default).
"""

from __future__ import annotations

import hashlib
import json
import re
import time
import unicodedata
from typing import Callable, Optional

from roster_sms.config import Settings
from roster_sms.kv import KeyValueStore
from roster_sms.runtime import get_logger

logger = get_logger(__name__)

_SPLIT = re.compile(r"[\s,;]+")


class NotAuthorized(PermissionError):
    def __init__(self, message: str = "Not authorized (admin check failed)."):
        super().__init__(message)


class PasscodeRequired(PermissionError):
    def __init__(self, message: str = "Passcode required."):
        super().__init__(message)


def sha256_hex(text: Optional[str]) -> str:
    clean = unicodedata.normalize("NFC", str(text or "")).strip()
    return hashlib.sha256(clean.encode("utf-8")).hexdigest()


class AccessControl:
    def __init__(self, settings: Settings, kv: KeyValueStore, *, clock: Callable[[], float] = time.time):
        self.admin_emails = (settings.admin_emails or "").strip().lower()
        self.required_hash = (settings.passcode_sha256 or "").strip().lower()
        self.ttl_sec = int(settings.session_ttl_hours) * 60 * 60
        self.kv = kv
        self._clock = clock

    # ── admin allow-list ─────────────────────────────

    def is_admin(self, email: Optional[str]) -> bool:
        raw = self.admin_emails
        if not raw:
            return False  # default deny
        if raw == "*":
            return True
        me = (email or "").strip().lower()
        if not me:
            return False
        return me in [part for part in _SPLIT.split(raw) if part]

    def require_admin(self, email: Optional[str]) -> None:
        if not self.is_admin(email):
            raise NotAuthorized()

    # ── passcode sessions ────────────────────────────

    def _session_key(self, user: str) -> str:
        return f"roster_sms:auth:{(user or '').strip().lower()}"

    def needs_passcode(self, user: Optional[str]) -> bool:
        if not self.required_hash:
            return False
        raw = self.kv.get(self._session_key(user or ""))
        if not raw:
            return True
        try:
            session = json.loads(raw)
        except ValueError:
            return True
        fresh = (self._clock() - float(session.get("time", 0))) < self.ttl_sec
        return not (str(session.get("hash", "")).lower() == self.required_hash and fresh)

    def check_passcode(self, user: Optional[str], candidate: Optional[str]) -> bool:
        if not self.required_hash:
            logger.info("Passcode check with no passcode configured")
            return False
        ok = sha256_hex(candidate) == self.required_hash
        if ok:
            session = json.dumps({"hash": self.required_hash, "time": self._clock()})
            self.kv.set(self._session_key(user or ""), session, ttl=self.ttl_sec)
        else:
            logger.warning("Invalid passcode for %s", user)
        return ok

    def reset_session(self, user: Optional[str]) -> None:
        self.kv.delete(self._session_key(user or ""))

    def require_passcode(self, user: Optional[str]) -> None:
        if self.needs_passcode(user):
            raise PasscodeRequired()

    def require(self, user: Optional[str]) -> None:
        """Admin allow-list first, then a fresh passcode session."""
        self.require_admin(user)
        self.require_passcode(user)
