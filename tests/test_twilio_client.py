from urllib.parse import parse_qs

import httpx
import pytest

from roster_sms.config import Settings
from roster_sms.twilio_client import TwilioClient, TwilioConfigError, TwilioTransportError


def test_validate_requires_credentials_and_sender():
    with pytest.raises(TwilioConfigError) as exc:
        TwilioClient(Settings(twilio_account_sid="AC123")).validate()

    assert "TWILIO_AUTH_TOKEN" in str(exc.value)
    assert "TWILIO_FROM_NUMBER" in str(exc.value)
    assert TwilioClient(Settings()).configured is False


def test_post_prefers_messaging_service(make_client):
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["form"] = parse_qs(request.content.decode())
        captured["auth"] = request.headers.get("authorization", "")
        return httpx.Response(201, json={"sid": "SM1", "status": "queued"})

    settings = Settings(
        twilio_account_sid="AC123",
        twilio_auth_token="token",
        twilio_messaging_service_sid="MG1",
        twilio_from_number="+15550000000",
    )
    resp = make_client(handler, settings).post("+18165550123", "hello")

    assert resp.ok
    assert resp.data["sid"] == "SM1"
    assert captured["url"].endswith("/Accounts/AC123/Messages.json")
    assert captured["form"]["MessagingServiceSid"] == ["MG1"]
    assert "From" not in captured["form"]
    assert captured["form"]["To"] == ["+18165550123"]
    assert captured["auth"].startswith("Basic ")


def test_post_uses_from_number_without_service(make_client):
    captured = {}

    def handler(request):
        captured["form"] = parse_qs(request.content.decode())
        return httpx.Response(201, json={"sid": "SM2"})

    make_client(handler).post("+18165550123", "hello")
    assert captured["form"]["From"] == ["+15550000000"]


def test_vendor_error_is_returned_not_raised(make_client):
    client = make_client(lambda request: httpx.Response(400, json={"code": 21211, "message": "Invalid 'To'"}))
    resp = client.post("+1816", "hello")
    assert resp.status_code == 400
    assert resp.data["code"] == 21211


def test_network_failure_raises_transport_error(make_client):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TwilioTransportError) as exc:
        make_client(handler).post("+18165550123", "hello")
    assert exc.value.kind == TwilioTransportError.NETWORK


def test_non_json_answer_raises_malformed(make_client):
    client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(TwilioTransportError) as exc:
        client.post("+18165550123", "hello")
    assert exc.value.kind == TwilioTransportError.MALFORMED
    assert exc.value.status_code == 200
