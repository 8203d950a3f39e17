"""
roster-sms: run the jobs once from a shell or a cron entry.

Exit codes: 0 ok, 1 another run holds the lock, 2 configuration error.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, Optional, Sequence

from roster_sms.auth import sha256_hex
from roster_sms.bulk import run_bulk_send
from roster_sms.composer import resend_logged_failures, send_test
from roster_sms.cursor import RunLockBusy
from roster_sms.runtime import get_logger
from roster_sms.schema import SchemaError
from roster_sms.services import Services, get_services
from roster_sms.sync import sync_student_database
from roster_sms.twilio_client import TwilioConfigError

log = get_logger("cli")


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="roster-sms", description="Roster sync and SMS jobs (cron-friendly).")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("sync", help="Merge form responses into the roster and record attendance.")
    bulk = sub.add_parser("bulk-send", help="Send one resumable batch to opted-in roster rows.")
    bulk.add_argument("--batch-size", type=int, default=None, help="Rows per run (default BULK_SMS_BATCH_SIZE).")
    sub.add_parser("reset-cursor", help="Start the next bulk send from the first roster row.")
    sub.add_parser("resend-failures", help="Re-send every failed attempt in the SMS Log.")
    sub.add_parser("send-test", help="Send the test message to ADMIN_TEST_NUMBER.")
    hp = sub.add_parser("hash-passcode", help="Print the SHA-256 value for SMS_PANEL_PASS_SHA256.")
    hp.add_argument("passcode")
    return p.parse_args(argv)


def _run(args: argparse.Namespace, services: Services) -> Dict[str, Any]:
    cfg = services.settings
    if args.command == "sync":
        summary = sync_student_database(
            services.roster,
            services.responses,
            services.ledger,
            services.controller,
            services.sync_lock,
            today=services.today,
        )
        return summary.as_dict()
    if args.command == "bulk-send":
        result = run_bulk_send(
            services.roster,
            services.controller,
            services.cursor,
            services.bulk_lock,
            batch_size=args.batch_size or cfg.batch_size,
            default_message=cfg.default_message,
        )
        return result.as_dict()
    if args.command == "reset-cursor":
        services.cursor.reset()
        return {"cursor": services.cursor.get()}
    if args.command == "resend-failures":
        return resend_logged_failures(services.sms_log, services.controller).as_dict()
    if args.command == "send-test":
        attempt = send_test(services.controller, cfg.admin_test_number)
        return {"to": attempt.to, "status": attempt.outcome.value, "sid": attempt.sid, "error": attempt.error_message}
    raise ValueError(f"Unknown command {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)

    if args.command == "hash-passcode":
        print(sha256_hex(args.passcode))
        return 0

    try:
        result = _run(args, get_services())
    except RunLockBusy as exc:
        log.warning("⏳ %s", exc)
        return 1
    except (TwilioConfigError, SchemaError, ValueError) as exc:
        log.error("🚨 %s", exc)
        return 2

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
