from __future__ import annotations

"""
Process-wide service wiring.

Everything the HTTP app and the CLI need is built once from ``Settings`` and
cached; ``reset_state`` drops the cache together with the in-memory sheets
and key/value data (tests call it between cases).
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Sequence

import gspread

from roster_sms import kv as kv_module
from roster_sms import sheets as sheets_module
from roster_sms.attendance import AttendanceLedger
from roster_sms.auth import AccessControl
from roster_sms.composer import Composer
from roster_sms.config import Settings, settings as load_settings
from roster_sms.cursor import BatchCursor, RunLock
from roster_sms.events import EventLog
from roster_sms.kv import KeyValueStore
from roster_sms.reconcile import today_string
from roster_sms.roster import RosterStore
from roster_sms.runtime import configure_logging, get_logger, log_core_env
from roster_sms.schema import (
    ATTENDANCE_TABLE,
    ROSTER_SEND_REQUIRED,
    ROSTER_TABLE,
    ROSTER_TRACKING,
)
from roster_sms.sender import SendController
from roster_sms.sheets import SheetConnector, Worksheet
from roster_sms.sms_log import SMS_LOG_HEADERS, SmsLog
from roster_sms.twilio_client import TwilioClient

logger = get_logger(__name__)

ROSTER_HEADERS = [name for key, name in ROSTER_TABLE.field_names().items() if key not in ROSTER_TRACKING]


@dataclass
class Services:
    settings: Settings
    connector: SheetConnector
    kv: KeyValueStore
    twilio: TwilioClient
    sms_log: SmsLog
    roster: RosterStore
    ledger: Optional[AttendanceLedger]
    event_log: EventLog
    responses: List[Worksheet]
    controller: SendController
    cursor: BatchCursor
    bulk_lock: RunLock
    sync_lock: RunLock
    access: AccessControl
    composer: Composer = field(init=False)

    def __post_init__(self) -> None:
        self.composer = Composer(
            self.access,
            self.roster,
            self.ledger,
            self.event_log,
            self.controller,
            self.sms_log,
            test_number=self.settings.admin_test_number,
        )

    def today(self) -> str:
        return today_string(self.settings.timezone)


def _seeded(connector: SheetConnector, title: str, headers: Sequence[str]) -> Worksheet:
    """Live sheets must already exist; in-memory ones start with a header row."""
    return connector.worksheet(title, create_with=headers if connector.in_memory else None)


def _optional(connector: SheetConnector, title: str, headers: Sequence[str] = ()) -> Optional[Worksheet]:
    try:
        return _seeded(connector, title, headers)
    except gspread.exceptions.WorksheetNotFound:
        logger.warning("Sheet %s not found; continuing without it", title)
        return None


def build_services(cfg: Settings) -> Services:
    connector = SheetConnector(cfg)
    store = KeyValueStore(cfg)
    twilio = TwilioClient(cfg)

    sms_log = SmsLog(connector.worksheet(cfg.sms_log_sheet, create_with=SMS_LOG_HEADERS), timezone=cfg.timezone)
    roster_ws = _seeded(connector, cfg.roster_sheet, ROSTER_HEADERS)
    # Shared by sync, sends and inbound keyword handling.
    roster = RosterStore(roster_ws, timezone=cfg.timezone, required=ROSTER_SEND_REQUIRED)

    attendance_ws = _optional(connector, cfg.attendance_sheet, list(ATTENDANCE_TABLE.field_names().values()))
    ledger = AttendanceLedger(attendance_ws) if attendance_ws is not None else None
    event_log = EventLog(
        _optional(connector, cfg.event_log_sheet),
        timezone=cfg.timezone,
        header_row=cfg.event_log_header_row,
    )
    responses = [ws for ws in (_optional(connector, title) for title in cfg.response_sheets) if ws is not None]

    controller = SendController(
        twilio,
        sms_log,
        roster,
        dry_run=cfg.dry_run,
        rate_delay_ms=cfg.rate_delay_ms,
    )
    return Services(
        settings=cfg,
        connector=connector,
        kv=store,
        twilio=twilio,
        sms_log=sms_log,
        roster=roster,
        ledger=ledger,
        event_log=event_log,
        responses=responses,
        controller=controller,
        cursor=BatchCursor(store, cfg.cursor_key),
        bulk_lock=RunLock(store, "bulk-send", cfg.lock_ttl_sec),
        sync_lock=RunLock(store, "sync", cfg.lock_ttl_sec),
        access=AccessControl(cfg, store),
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    configure_logging()
    cfg = load_settings()
    log_core_env(cfg)
    services = build_services(cfg)
    logger.info(
        "🧩 Services ready (sheets=%s, kv=%s, dry_run=%s)",
        "memory" if services.connector.in_memory else "gspread",
        services.kv.backend,
        cfg.dry_run,
    )
    return services


def reset_state() -> None:
    """Forget cached settings and services, and clear in-memory sheets and keys."""
    get_services.cache_clear()
    load_settings.cache_clear()
    sheets_module.reset_state()
    kv_module.reset_state()
