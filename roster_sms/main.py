from __future__ import annotations

"""
Roster SMS service (FastAPI)
- Twilio inbound webhook (router in roster_sms.inbound)
- Cron-token protected jobs: roster sync, bulk send, cursor reset, failure retry
- Composer endpoints gated by the admin allow-list and a passcode session
"""

import asyncio
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from roster_sms.auth import NotAuthorized, PasscodeRequired
from roster_sms.bulk import run_bulk_send
from roster_sms.composer import resend_logged_failures
from roster_sms.cursor import RunLockBusy
from roster_sms.inbound import router as inbound_router
from roster_sms.runtime import get_logger, iso_now
from roster_sms.schema import SchemaError
from roster_sms.services import get_services
from roster_sms.sync import sync_student_database
from roster_sms.twilio_client import TwilioConfigError

log = get_logger("main")

app = FastAPI(title="Roster SMS", version="1.0.0")
app.include_router(inbound_router)


# ─────────────────────────── Error mapping ─────────────────────────
def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": str(exc)})


@app.exception_handler(RunLockBusy)
async def _lock_busy(_: Request, exc: RunLockBusy):
    log.warning("⏳ %s", exc)
    return _error(409, exc)


@app.exception_handler(TwilioConfigError)
async def _twilio_config(_: Request, exc: TwilioConfigError):
    log.error("🚨 Twilio not configured: %s", exc)
    return _error(400, exc)


@app.exception_handler(SchemaError)
async def _schema(_: Request, exc: SchemaError):
    log.error("🚨 %s", exc)
    return _error(400, exc)


@app.exception_handler(NotAuthorized)
@app.exception_handler(PasscodeRequired)
async def _forbidden(_: Request, exc: PermissionError):
    return _error(403, exc)


# ─────────────────────────── Auth helpers ───────────────────────────
def _extract_token(request: Request, qp_token: Optional[str], h_cron: Optional[str]) -> str:
    if qp_token:
        return qp_token
    if h_cron:
        return h_cron
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth.split(" ", 1)[1]
    return ""


def _require_token(request: Request, qp_token: Optional[str], h_cron: Optional[str]) -> None:
    expected = get_services().settings.cron_token
    if not expected:
        return
    if _extract_token(request, qp_token, h_cron) != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")


# ─────────────────────────── Health ────────────────────────────────
@app.get("/ping")
async def ping():
    return {"ok": True, "pong": True, "time": iso_now()}


@app.get("/health")
async def health():
    services = get_services()
    return {
        "ok": True,
        "timestamp": iso_now(),
        "sheets": "memory" if services.connector.in_memory else "gspread",
        "kv": services.kv.backend,
        "twilio_configured": services.twilio.configured,
        "dry_run": services.settings.dry_run,
    }


# ─────────────────────────── Jobs ──────────────────────────────────
@app.post("/jobs/sync")
async def sync_endpoint(
    request: Request,
    x_cron_token: Optional[str] = Header(None),
    token: Optional[str] = Query(None),
):
    _require_token(request, token, x_cron_token)
    services = get_services()
    summary = await asyncio.to_thread(
        sync_student_database,
        services.roster,
        services.responses,
        services.ledger,
        services.controller,
        services.sync_lock,
        today=services.today,
    )
    return {"ok": True, **summary.as_dict()}


@app.post("/jobs/bulk-send")
async def bulk_send_endpoint(
    request: Request,
    x_cron_token: Optional[str] = Header(None),
    token: Optional[str] = Query(None),
    batch_size: Optional[int] = Query(None, ge=1),
):
    _require_token(request, token, x_cron_token)
    services = get_services()
    result = await asyncio.to_thread(
        run_bulk_send,
        services.roster,
        services.controller,
        services.cursor,
        services.bulk_lock,
        batch_size=batch_size or services.settings.batch_size,
        default_message=services.settings.default_message,
    )
    return {"ok": True, **result.as_dict()}


@app.post("/jobs/reset-cursor")
async def reset_cursor_endpoint(
    request: Request,
    x_cron_token: Optional[str] = Header(None),
    token: Optional[str] = Query(None),
):
    _require_token(request, token, x_cron_token)
    services = get_services()
    services.cursor.reset()
    return {"ok": True, "cursor": services.cursor.get()}


@app.post("/jobs/retry-failures")
async def retry_failures_endpoint(
    request: Request,
    x_cron_token: Optional[str] = Header(None),
    token: Optional[str] = Query(None),
):
    _require_token(request, token, x_cron_token)
    services = get_services()
    summary = await asyncio.to_thread(resend_logged_failures, services.sms_log, services.controller)
    return {"ok": True, **summary.as_dict()}


# ─────────────────────────── Composer ──────────────────────────────
class PasscodeRequest(BaseModel):
    passcode: str = ""


class PreviewRequest(BaseModel):
    body: str
    event_id: Optional[str] = None


class SendRequest(BaseModel):
    body: str
    event_id: Optional[str] = None
    audience: str = "attendees"


def _bad_request(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(exc))


@app.get("/composer/session")
async def composer_session(x_admin_email: Optional[str] = Header(None)):
    access = get_services().access
    access.require_admin(x_admin_email)
    return {"ok": True, "needs_passcode": access.needs_passcode(x_admin_email)}


@app.post("/composer/passcode")
async def composer_passcode(payload: PasscodeRequest, x_admin_email: Optional[str] = Header(None)):
    access = get_services().access
    access.require_admin(x_admin_email)
    if not access.check_passcode(x_admin_email, payload.passcode):
        raise HTTPException(status_code=403, detail="Invalid passcode")
    return {"ok": True}


@app.post("/composer/logout")
async def composer_logout(x_admin_email: Optional[str] = Header(None)):
    access = get_services().access
    access.require_admin(x_admin_email)
    access.reset_session(x_admin_email)
    return {"ok": True}


@app.get("/composer/templates")
async def composer_templates(x_admin_email: Optional[str] = Header(None)):
    templates = get_services().composer.templates(x_admin_email)
    return {"ok": True, "templates": [t.as_dict() for t in templates]}


@app.get("/composer/events")
async def composer_events(x_admin_email: Optional[str] = Header(None)):
    events = get_services().composer.events(x_admin_email)
    return {"ok": True, "events": [e.as_dict() for e in events]}


@app.get("/composer/audience")
async def composer_audience(
    x_admin_email: Optional[str] = Header(None),
    event_id: Optional[str] = Query(None),
    audience: str = Query("attendees"),
):
    try:
        count = get_services().composer.audience_count(x_admin_email, event_id, audience)
    except ValueError as exc:
        raise _bad_request(exc)
    return {"ok": True, "count": count}


@app.post("/composer/preview")
async def composer_preview(payload: PreviewRequest, x_admin_email: Optional[str] = Header(None)):
    text = get_services().composer.preview(x_admin_email, payload.body, payload.event_id)
    return {"ok": True, "preview": text}


@app.post("/composer/send")
async def composer_send(payload: SendRequest, x_admin_email: Optional[str] = Header(None)):
    composer = get_services().composer
    try:
        summary = await asyncio.to_thread(
            composer.send, x_admin_email, payload.event_id, payload.audience, payload.body
        )
    except ValueError as exc:
        raise _bad_request(exc)
    return {"ok": True, **summary.as_dict()}


@app.post("/composer/test")
async def composer_test(x_admin_email: Optional[str] = Header(None)):
    composer = get_services().composer
    try:
        attempt = await asyncio.to_thread(composer.send_test_to_self, x_admin_email)
    except ValueError as exc:
        raise _bad_request(exc)
    result: Dict[str, Any] = {
        "ok": attempt.ok,
        "to": attempt.to,
        "status": attempt.outcome.value,
        "sid": attempt.sid,
        "error_code": attempt.error_code,
        "error": attempt.error_message,
    }
    return result


@app.post("/composer/resend-failures")
async def composer_resend_failures(x_admin_email: Optional[str] = Header(None)):
    summary = await asyncio.to_thread(get_services().composer.resend_failures, x_admin_email)
    return {"ok": True, **summary.as_dict()}
