import os
import sys

# Ensure project root is in sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import httpx
import pytest

from roster_sms.config import Settings
from roster_sms.services import reset_state
from roster_sms.sheets import InMemoryWorksheet
from roster_sms.sms_log import SmsLog
from roster_sms.twilio_client import TwilioClient

ROSTER_HEADERS = ["Join Date", "Student Name", "Campus Email", "Email", "Phone #", "SMS Opt-In", "Message"]


@pytest.fixture(autouse=True)
def _reset_state():
    for key in [
        "GOOGLE_SHEETS_SPREADSHEET_ID",
        "REDIS_URL",
        "UPSTASH_REDIS_URL",
        "UPSTASH_REDIS_REST_URL",
        "UPSTASH_REDIS_REST_TOKEN",
        "TWILIO_ACCOUNT_SID",
        "TWILIO_AUTH_TOKEN",
        "TWILIO_MESSAGING_SERVICE_SID",
        "TWILIO_FROM_NUMBER",
        "SMS_DRY_RUN",
        "CRON_TOKEN",
        "WEBHOOK_TOKEN",
        "SMS_ADMIN_EMAILS",
        "SMS_PANEL_PASS_SHA256",
        "ADMIN_TEST_NUMBER",
    ]:
        os.environ.pop(key, None)
    os.environ["ROSTER_FORCE_IN_MEMORY"] = "1"
    reset_state()
    yield
    reset_state()


@pytest.fixture
def twilio_settings():
    return Settings(
        twilio_account_sid="AC123",
        twilio_auth_token="token",
        twilio_from_number="+15550000000",
        force_in_memory=True,
    )


@pytest.fixture
def make_client(twilio_settings):
    """TwilioClient whose HTTP calls go to ``handler(request) -> httpx.Response``."""

    def _make(handler, settings=None):
        http = httpx.Client(transport=httpx.MockTransport(handler))
        return TwilioClient(settings or twilio_settings, http=http)

    return _make


@pytest.fixture
def roster_ws():
    return InMemoryWorksheet(
        "Student Database",
        [
            ROSTER_HEADERS,
            ["1/5/2024", "Ana Lopez", "ana@student.edu", "ana@gmail.com", "8165550123", "Yes", ""],
            ["1/6/2024", "Ben Ode", "ben@student.edu", "", "(816) 555-0199", "Yes", ""],
            ["1/7/2024", "Cy Park", "cy@student.edu", "", "8165550111", "?", ""],
        ],
    )


@pytest.fixture
def sms_log():
    return SmsLog(InMemoryWorksheet("SMS Log"))
