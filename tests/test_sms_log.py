from roster_sms.models import SendAttempt, SendOutcome
from roster_sms.sheets import InMemoryWorksheet
from roster_sms.sms_log import SMS_LOG_HEADERS, SmsLog


def test_headers_written_once_and_missing_columns_added():
    ws = InMemoryWorksheet("SMS Log", [["Timestamp", "To", "Body"]])
    log = SmsLog(ws)

    log.log_attempt(SendAttempt(to="+18165550001", body="hello", outcome=SendOutcome.SENT, sid="SM1", http_status=201))
    log.log_attempt(SendAttempt(to="+18165550002", body="again", outcome=SendOutcome.SENT, sid="SM2", http_status=201))

    values = ws.get_all_values()
    assert values[0][:3] == ["Timestamp", "To", "Body"]
    assert set(SMS_LOG_HEADERS) <= set(values[0])
    assert len(values) == 3
    assert values[2][values[0].index("MessageSid")] == "SM2"


def test_failures_lists_outbound_errors_only():
    log = SmsLog(InMemoryWorksheet("SMS Log"))
    log.log_attempt(SendAttempt(to="+1001", body="ok", outcome=SendOutcome.SENT, http_status=201))
    log.log_attempt(
        SendAttempt(to="+1002", body="bad number", outcome=SendOutcome.FAILED, http_status=400, error_code="21211")
    )
    log.log_attempt(SendAttempt(to="+1003", body="timeout", outcome=SendOutcome.FAILED, error_code="NETWORK_ERROR"))
    log.log_attempt(
        SendAttempt(to="+1004", body="unsub", outcome=SendOutcome.OPTED_OUT, http_status=400, error_code="21610")
    )
    log.log_inbound("+1005", "STOP", status="failed")

    failed = log.failures()

    assert [(f.row, f.to, f.body) for f in failed] == [(3, "+1002", "bad number"), (4, "+1003", "timeout")]


def test_inbound_row():
    ws = InMemoryWorksheet("SMS Log")
    SmsLog(ws).log_inbound("+18165550123", "STOP", sid="SM9", to="+15550000000")
    row = dict(zip(ws.get_all_values()[0], ws.get_all_values()[1]))
    assert row["Direction"] == "IN"
    assert row["From"] == "+18165550123"
    assert row["Body"] == "STOP"
    assert row["MessageSid"] == "SM9"
