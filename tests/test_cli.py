import json

from roster_sms import cli
from roster_sms.auth import sha256_hex
from roster_sms.sheets import memory_worksheet


def test_hash_passcode(capsys):
    assert cli.main(["hash-passcode", " open sesame "]) == 0
    assert capsys.readouterr().out.strip() == sha256_hex("open sesame")


def test_bulk_send_without_twilio_exits_with_config_error():
    memory_worksheet(
        "Student Database",
        [["Student Name", "Phone #", "SMS Opt-In"], ["Ana", "8165550123", "Yes"]],
    )
    assert cli.main(["bulk-send"]) == 2


def test_bulk_send_dry_run_prints_summary(monkeypatch, capsys):
    monkeypatch.setenv("SMS_DRY_RUN", "1")
    monkeypatch.setenv("SMS_RATE_DELAY_MS", "0")
    memory_worksheet(
        "Student Database",
        [["Student Name", "Phone #", "SMS Opt-In"], ["Ana", "8165550123", "Yes"], ["Ben", "", "Yes"]],
    )

    assert cli.main(["bulk-send", "--batch-size", "10"]) == 0

    out = json.loads(capsys.readouterr().out)
    assert out["sent"] == 1
    assert out["skipped"] == 1
    assert out["has_more"] is False


def test_send_test_without_number_is_a_config_error(monkeypatch):
    monkeypatch.setenv("SMS_DRY_RUN", "1")
    assert cli.main(["send-test"]) == 2
