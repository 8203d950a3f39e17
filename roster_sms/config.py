from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

# -----------------------------
# .env Loader
# -----------------------------
from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
ENV_PATH = os.path.join(BASE_DIR, "..", ".env")

DEFAULT_RATE_DELAY_MS = 150
DEFAULT_MESSAGE = "Hello! This is a message from our system."


# -----------------------------
# Env helpers
# -----------------------------
def env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "on")


def env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


def env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key)
    return v if (v and str(v).strip() != "") else default


def env_list(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    v = env_str(key)
    if not v:
        return default
    return tuple(part.strip() for part in v.split(",") if part.strip())


def rate_delay_from(raw: Optional[str]) -> int:
    """Parse the inter-send delay; anything negative or non-numeric falls back to the default."""
    try:
        n = int(float(str(raw).strip()))
    except (TypeError, ValueError):
        return DEFAULT_RATE_DELAY_MS
    return n if n >= 0 else DEFAULT_RATE_DELAY_MS


# -----------------------------
# Settings Object
# -----------------------------
@dataclass(frozen=True)
class Settings:
    # Twilio
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_messaging_service_sid: Optional[str] = None
    twilio_from_number: Optional[str] = None
    twilio_api_base: str = "https://api.twilio.com/2010-04-01"
    http_timeout_sec: float = 15.0

    # Sending controls
    dry_run: bool = False
    rate_delay_ms: int = DEFAULT_RATE_DELAY_MS
    batch_size: int = 50
    default_message: str = DEFAULT_MESSAGE
    admin_test_number: Optional[str] = None

    # Access control
    admin_emails: str = ""
    passcode_sha256: str = ""
    session_ttl_hours: int = 12

    # Spreadsheet
    spreadsheet_id: Optional[str] = None
    service_account_base64: Optional[str] = None
    service_account_json: Optional[str] = None
    service_account_path: str = "./service_account.json"
    force_in_memory: bool = False
    roster_sheet: str = "Student Database"
    attendance_sheet: str = "Attendance"
    response_sheets: Tuple[str, ...] = ("Raw Attendance Data",)
    sms_log_sheet: str = "SMS Log"
    event_log_sheet: str = "Event Log"
    event_log_header_row: int = 3
    timezone: str = "America/New_York"

    # Key/value store
    redis_url: Optional[str] = None
    redis_tls: bool = True
    upstash_rest_url: Optional[str] = None
    upstash_rest_token: Optional[str] = None
    cursor_key: str = "BULK_SMS_CURSOR"
    lock_ttl_sec: int = 300

    # HTTP app
    webhook_token: Optional[str] = None
    cron_token: Optional[str] = None

    @classmethod
    def from_env(cls, *, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv(dotenv_path=ENV_PATH, override=False)
        return cls(
            twilio_account_sid=env_str("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=env_str("TWILIO_AUTH_TOKEN"),
            twilio_messaging_service_sid=env_str("TWILIO_MESSAGING_SERVICE_SID"),
            twilio_from_number=env_str("TWILIO_FROM_NUMBER"),
            twilio_api_base=env_str("TWILIO_API_BASE", "https://api.twilio.com/2010-04-01"),
            http_timeout_sec=float(env_int("TWILIO_HTTP_TIMEOUT_SEC", 15)),
            dry_run=env_bool("SMS_DRY_RUN", False),
            rate_delay_ms=rate_delay_from(env_str("SMS_RATE_DELAY_MS", str(DEFAULT_RATE_DELAY_MS))),
            batch_size=max(1, env_int("BULK_SMS_BATCH_SIZE", 50)),
            default_message=env_str("BULK_SMS_DEFAULT_MESSAGE", DEFAULT_MESSAGE),
            admin_test_number=env_str("ADMIN_TEST_NUMBER"),
            admin_emails=env_str("SMS_ADMIN_EMAILS", "") or "",
            passcode_sha256=(env_str("SMS_PANEL_PASS_SHA256", "") or "").strip().lower(),
            session_ttl_hours=env_int("SMS_SESSION_TTL_HOURS", 12),
            spreadsheet_id=env_str("GOOGLE_SHEETS_SPREADSHEET_ID"),
            service_account_base64=env_str("SERVICE_ACCOUNT_BASE64"),
            service_account_json=env_str("SERVICE_ACCOUNT_JSON"),
            service_account_path=env_str("GOOGLE_SERVICE_ACCOUNT_PATH", "./service_account.json"),
            force_in_memory=env_bool("ROSTER_FORCE_IN_MEMORY", False),
            roster_sheet=env_str("ROSTER_SHEET", "Student Database"),
            attendance_sheet=env_str("ATTENDANCE_SHEET", "Attendance"),
            response_sheets=env_list("RESPONSE_SHEETS", ("Raw Attendance Data",)),
            sms_log_sheet=env_str("SMS_LOG_SHEET", "SMS Log"),
            event_log_sheet=env_str("EVENT_LOG_SHEET", "Event Log"),
            event_log_header_row=env_int("EVENT_LOG_HEADER_ROW", 3),
            timezone=env_str("ROSTER_TIMEZONE", "America/New_York"),
            redis_url=env_str("REDIS_URL") or env_str("UPSTASH_REDIS_URL"),
            redis_tls=env_bool("REDIS_TLS", True),
            upstash_rest_url=env_str("UPSTASH_REDIS_REST_URL"),
            upstash_rest_token=env_str("UPSTASH_REDIS_REST_TOKEN"),
            cursor_key=env_str("BULK_SMS_CURSOR_KEY", "BULK_SMS_CURSOR"),
            lock_ttl_sec=env_int("RUN_LOCK_TTL_SEC", 300),
            webhook_token=env_str("WEBHOOK_TOKEN"),
            cron_token=env_str("CRON_TOKEN"),
        )


@lru_cache(maxsize=1)
def settings() -> Settings:
    """Process-wide settings, read once at startup."""
    return Settings.from_env()
