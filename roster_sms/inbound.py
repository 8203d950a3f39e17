"""
📥 Inbound SMS webhook
- Logs every payload to the SMS Log first, unparseable bodies included
- Delivery-status callbacks (MessageStatus present) get an empty reply
- STOP-class keywords set opt-in to No, START sets it to Yes (all matching rows)
- PING replies PONG; HELP and everything else get an empty reply
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from xml.sax.saxutils import escape

import gspread
from fastapi import APIRouter, Header, HTTPException, Query, Request, Response

from roster_sms.models import OptIn
from roster_sms.roster import RosterStore
from roster_sms.runtime import get_logger
from roster_sms.schema import SchemaError
from roster_sms.services import get_services
from roster_sms.sms_log import SmsLog

router = APIRouter()
log = get_logger("inbound")

STOP_WORDS = frozenset({"STOP", "STOPALL", "UNSUBSCRIBE", "CANCEL", "END", "QUIT"})
START_WORDS = frozenset({"START"})
MALFORMED_STATUS = "MALFORMED"


# === AUTHENTICATION ===
def _is_authorized(expected: Optional[str], header_token: Optional[str], query_token: Optional[str]) -> bool:
    """Check if request is authorized via header or query token."""
    if not expected:
        return True  # auth disabled
    return (header_token == expected) or (query_token == expected)


def twiml(message: Optional[str] = None) -> str:
    if not message:
        return "<Response/>"
    return f"<Response><Message>{escape(message)}</Message></Response>"


async def _parse_body(request: Request) -> Dict[str, Any]:
    """Parse request body supporting both JSON and form data."""
    content_type = (request.headers.get("content-type") or "").lower()
    if "application/json" in content_type:
        body = await request.json()
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return {k: (v if isinstance(v, str) else str(v)) for k, v in dict(form).items()}


def _log_inbound(sms_log: SmsLog, from_number: str, body: str, **fields: str) -> None:
    try:
        sms_log.log_inbound(from_number, body, **fields)
    except gspread.exceptions.APIError:
        log.exception("Failed to log inbound payload from %s", from_number)


def handle_inbound(params: Dict[str, Any], roster: RosterStore, sms_log: SmsLog) -> str:
    """Apply one inbound payload and return the reply text ('' for no reply)."""
    from_number = str(params.get("From") or "").strip()
    body = str(params.get("Body") or "")
    status = str(params.get("MessageStatus") or "").strip()
    sid = str(params.get("MessageSid") or params.get("SmsSid") or "").strip()
    to = str(params.get("To") or "").strip()

    _log_inbound(sms_log, from_number, body, status=status, sid=sid, to=to)

    if status:
        log.info("Delivery status %s for %s (sid=%s)", status, to or from_number, sid)
        return ""

    command = body.strip().upper()
    if command in STOP_WORDS or command in START_WORDS:
        value = OptIn.NO if command in STOP_WORDS else OptIn.YES
        try:
            changed = roster.update_opt_in_by_phone(from_number, value, all_matches=True)
        except SchemaError as exc:
            log.error("%s from %s not applied: %s", command, from_number, exc)
            return ""
        if not changed:
            log.warning("%s from %s matched no roster row", command, from_number)
        return ""
    if command == "PING":
        return "PONG"
    if command == "HELP":
        log.info("HELP from %s", from_number)
    return ""


@router.post("/sms/inbound")
async def inbound_handler(
    request: Request,
    x_webhook_token: Optional[str] = Header(None),
    token: Optional[str] = Query(None),
):
    services = get_services()
    if not _is_authorized(services.settings.webhook_token, x_webhook_token, token):
        raise HTTPException(status_code=401, detail="Invalid token")

    raw = await request.body()
    try:
        params = await _parse_body(request)
    except ValueError as exc:
        text = raw.decode("utf-8", errors="replace")
        log.warning("Unreadable inbound payload (%s): %s", exc, text[:200])
        _log_inbound(services.sms_log, "", text, status=MALFORMED_STATUS)
        return Response(content=twiml(), media_type="application/xml")

    log.info("📥 Inbound payload: %s", params)
    reply = handle_inbound(params, services.roster, services.sms_log)
    return Response(content=twiml(reply), media_type="application/xml")
