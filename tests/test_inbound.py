from fastapi.testclient import TestClient

from roster_sms.inbound import handle_inbound, twiml
from roster_sms.main import app
from roster_sms.models import OptIn
from roster_sms.roster import RosterStore
from roster_sms.services import reset_state
from roster_sms.sheets import InMemoryWorksheet, memory_worksheet
from roster_sms.sms_log import SmsLog

client = TestClient(app)

ROWS = [
    ["Student Name", "Campus Email", "Email", "Phone #", "SMS Opt-In"],
    ["Ana", "ana@student.edu", "", "8165550123", "Yes"],
    ["Ana (dup)", "ana2@student.edu", "", "+1 816-555-0123", "Yes"],
    ["Ben", "ben@student.edu", "", "8165550199", "No"],
]


def _stores():
    ws = InMemoryWorksheet("Student Database", ROWS)
    return ws, RosterStore(ws), SmsLog(InMemoryWorksheet("SMS Log"))


def test_stop_opts_out_every_matching_row():
    ws, roster, log = _stores()

    reply = handle_inbound({"From": "+18165550123", "Body": " stop "}, roster, log)

    assert reply == ""
    assert [row[4] for row in ws.get_all_values()[1:]] == ["No", "No", "No"]
    assert log.ws.get_all_values()[1][1] == "IN"


def test_start_opts_back_in():
    ws, roster, log = _stores()
    handle_inbound({"From": "8165550199", "Body": "START"}, roster, log)
    assert ws.get_all_values()[3][4] == "Yes"


def test_first_match_only_update():
    ws, roster, _ = _stores()

    assert roster.update_opt_in_by_phone("+18165550123", OptIn.NO, all_matches=False) == 1
    assert [row[4] for row in ws.get_all_values()[1:3]] == ["No", "Yes"]


def test_status_callback_ping_help_and_unknown_sender():
    ws, roster, log = _stores()

    assert handle_inbound({"From": "+18165550123", "Body": "STOP", "MessageStatus": "delivered"}, roster, log) == ""
    assert ws.get_all_values()[1][4] == "Yes"

    assert handle_inbound({"From": "+18165550123", "Body": "ping"}, roster, log) == "PONG"
    assert handle_inbound({"From": "+18165550123", "Body": "HELP"}, roster, log) == ""
    assert handle_inbound({"From": "+19995550000", "Body": "STOP"}, roster, log) == ""
    assert len(log.ws.get_all_values()) == 5


def test_twiml_escapes_message():
    assert twiml() == "<Response/>"
    assert twiml("a < b & c") == "<Response><Message>a &lt; b &amp; c</Message></Response>"


def test_webhook_endpoint_applies_stop():
    ws = memory_worksheet("Student Database", ROWS)

    response = client.post("/sms/inbound", data={"From": "+18165550123", "Body": "stop", "MessageSid": "SM1"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert response.text == "<Response/>"
    assert ws.get_all_values()[1][4] == "No"


def test_webhook_endpoint_ping_reply():
    memory_worksheet("Student Database", ROWS)
    response = client.post("/sms/inbound", data={"From": "+18165550123", "Body": "PING"})
    assert response.text == "<Response><Message>PONG</Message></Response>"


def test_webhook_token_required_when_configured(monkeypatch):
    monkeypatch.setenv("WEBHOOK_TOKEN", "hook-secret")
    reset_state()
    memory_worksheet("Student Database", ROWS)

    denied = client.post("/sms/inbound", data={"From": "+18165550123", "Body": "PING"})
    assert denied.status_code == 401

    allowed = client.post(
        "/sms/inbound",
        data={"From": "+18165550123", "Body": "PING"},
        headers={"X-Webhook-Token": "hook-secret"},
    )
    assert allowed.status_code == 200

    by_query = client.post("/sms/inbound?token=hook-secret", data={"From": "+18165550123", "Body": "PING"})
    assert by_query.status_code == 200


def test_roster_without_opt_in_column_still_replies_empty():
    ws = InMemoryWorksheet("Student Database", [["Student Name", "Campus Email"], ["Ana", "ana@student.edu"]])
    log = SmsLog(InMemoryWorksheet("SMS Log"))

    assert handle_inbound({"From": "+18165550123", "Body": "STOP"}, RosterStore(ws), log) == ""
    assert log.ws.get_all_values()[1][4] == "STOP"


def test_webhook_endpoint_twiml_when_roster_columns_missing():
    memory_worksheet("Student Database", [["Student Name"], ["Ana"]])

    response = client.post("/sms/inbound", data={"From": "+18165550123", "Body": "stop"})

    assert response.status_code == 200
    assert response.text == "<Response/>"


def test_unreadable_json_body_is_logged_before_replying():
    memory_worksheet("Student Database", ROWS)

    response = client.post(
        "/sms/inbound",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 200
    assert response.text == "<Response/>"
    rows = memory_worksheet("SMS Log").get_all_values()
    assert len(rows) == 2
    assert rows[1][1] == "IN"
    assert rows[1][4] == "{not json"
    assert rows[1][5] == "MALFORMED"
