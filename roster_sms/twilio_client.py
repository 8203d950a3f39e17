# roster_sms/twilio_client.py
"""
📡 Twilio transport
- POST {api_base}/Accounts/{sid}/Messages.json with Basic auth
- MessagingServiceSid is preferred over From when both are configured
- Never interprets vendor errors; the send controller classifies responses
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from roster_sms.config import Settings
from roster_sms.runtime import get_logger

logger = get_logger("twilio_client")

BODY_LIMIT = 1600


# =========================
# Errors
# =========================


class TwilioConfigError(RuntimeError):
    """Credentials or sender identity missing; raised before any send."""


class TwilioTransportError(RuntimeError):
    """Carries HTTP metadata for a request that produced no usable vendor answer."""

    NETWORK = "network"
    MALFORMED = "malformed"

    def __init__(
        self,
        message: str,
        *,
        kind: str = NETWORK,
        status_code: Optional[int] = None,
        body: Any = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.body = body
        self.payload = payload

    def __str__(self) -> str:  # pragma: no cover - string formatting helper
        base = super().__str__()
        if self.body in (None, "", b""):
            return base
        body_repr = str(self.body).strip()
        if not body_repr or body_repr in base:
            return base
        return f"{base} | body={body_repr}"


@dataclass(frozen=True)
class VendorResponse:
    status_code: int
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


# =========================
# Client
# =========================


class TwilioClient:
    def __init__(self, settings: Settings, *, http: Optional[httpx.Client] = None):
        self.account_sid = (settings.twilio_account_sid or "").strip()
        self.auth_token = (settings.twilio_auth_token or "").strip()
        self.messaging_service_sid = (settings.twilio_messaging_service_sid or "").strip()
        self.from_number = (settings.twilio_from_number or "").strip()
        self.api_base = settings.twilio_api_base.rstrip("/")
        self.timeout = settings.http_timeout_sec
        self._http = http

    @property
    def url(self) -> str:
        return f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"

    @property
    def configured(self) -> bool:
        try:
            self.validate()
        except TwilioConfigError:
            return False
        return True

    def validate(self) -> None:
        problems = []
        if not self.account_sid or not self.auth_token:
            problems.append("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN are required")
        if not self.messaging_service_sid and not self.from_number:
            problems.append("TWILIO_MESSAGING_SERVICE_SID or TWILIO_FROM_NUMBER is required")
        if problems:
            raise TwilioConfigError("Twilio not configured: " + "; ".join(problems))

    def build_payload(self, to: str, body: str) -> Dict[str, str]:
        data = {"To": to, "Body": body}
        if self.messaging_service_sid:
            data["MessagingServiceSid"] = self.messaging_service_sid
        else:
            data["From"] = self.from_number
        return data

    def post(self, to: str, body: str) -> VendorResponse:
        """
        One vendor round-trip.

        Returns the status code and parsed JSON whatever the status; raises
        ``TwilioTransportError`` when the request fails in transit or the
        answer is not JSON.
        """
        self.validate()
        data = self.build_payload(to, body)
        if len(body) > BODY_LIMIT:
            logger.warning("Body for %s is %s chars (limit %s); vendor may reject it", to, len(body), BODY_LIMIT)
        try:
            if self._http is not None:
                resp = self._http.post(self.url, data=data, auth=(self.account_sid, self.auth_token), timeout=self.timeout)
            else:
                resp = httpx.post(self.url, data=data, auth=(self.account_sid, self.auth_token), timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise TwilioTransportError(f"Twilio request failed: {exc}", payload=data) from exc

        if resp.status_code >= 400:
            logger.error("Twilio %s error body: %s", resp.status_code, resp.text[:500])
        try:
            parsed = resp.json()
        except ValueError as exc:
            raise TwilioTransportError(
                f"Failed to parse Twilio response: {resp.text[:200]}",
                kind=TwilioTransportError.MALFORMED,
                status_code=resp.status_code,
                body=resp.text[:200],
                payload=data,
            ) from exc
        if not isinstance(parsed, dict):
            raise TwilioTransportError(
                "Unexpected Twilio response shape",
                kind=TwilioTransportError.MALFORMED,
                status_code=resp.status_code,
                body=parsed,
                payload=data,
            )
        return VendorResponse(resp.status_code, parsed)
