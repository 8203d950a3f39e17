import pytest

from roster_sms.bulk import run_bulk_send
from roster_sms.config import Settings
from roster_sms.cursor import BatchCursor, RunLock, RunLockBusy
from roster_sms.kv import KeyValueStore, MemoryBackend
from roster_sms.roster import RosterStore
from roster_sms.schema import ROSTER_SEND_REQUIRED
from roster_sms.sender import SendController
from roster_sms.sheets import InMemoryWorksheet
from roster_sms.twilio_client import TwilioClient, TwilioConfigError


@pytest.fixture
def setup(sms_log):
    ws = InMemoryWorksheet(
        "Student Database",
        [
            ["Student Name", "Phone #", "SMS Opt-In", "Message"],
            ["Ana", "8165550101", "Yes", ""],
            ["No Phone", "", "Yes", ""],
            ["Maybe", "8165550103", "?", ""],
            ["Dee", "8165550104", "yes", "Custom note"],
            ["Eve", "8165550105", "Yes", ""],
        ],
    )
    kv = KeyValueStore(Settings(force_in_memory=True), memory=MemoryBackend())
    roster = RosterStore(ws, required=ROSTER_SEND_REQUIRED)
    controller = SendController(TwilioClient(Settings()), sms_log, roster, dry_run=True, rate_delay_ms=0)
    return {
        "ws": ws,
        "roster": roster,
        "controller": controller,
        "cursor": BatchCursor(kv),
        "lock": RunLock(kv, "bulk-send"),
        "kv": kv,
        "log": sms_log,
    }


def _run(s, batch_size=3):
    return run_bulk_send(
        s["roster"],
        s["controller"],
        s["cursor"],
        s["lock"],
        batch_size=batch_size,
        default_message="Default hello",
    )


def test_batches_resume_from_cursor_and_reset_after_full_pass(setup):
    first = _run(setup)
    assert first.processed == 3
    assert first.summary.sent == 1
    assert first.summary.skipped == 2
    assert first.has_more is True
    assert setup["cursor"].get() == 4

    second = _run(setup)
    assert second.processed == 2
    assert second.summary.sent == 2
    assert second.has_more is False
    assert setup["cursor"].get() == 1

    bodies = [row[4] for row in setup["log"].ws.get_all_values()[1:]]
    assert bodies == ["[DRY RUN] Default hello", "[DRY RUN] Custom note", "[DRY RUN] Default hello"]


def test_send_status_columns_track_each_row(setup):
    _run(setup, batch_size=50)
    values = setup["ws"].get_all_values()
    status = values[0].index("Send Status")
    assert [row[status] for row in values[1:]] == ["DRYRUN", "", "", "DRYRUN", "DRYRUN"]


def test_lock_busy_raises_without_sending(setup):
    other = RunLock(setup["kv"], "bulk-send")
    assert other.acquire()
    with pytest.raises(RunLockBusy):
        _run(setup)
    assert setup["log"].ws.get_all_values() == []


def test_missing_twilio_config_stops_before_the_batch(setup):
    setup["controller"].dry_run = False
    with pytest.raises(TwilioConfigError):
        _run(setup)
    assert setup["cursor"].get() == 1
    assert setup["kv"].get(setup["lock"].key) is None
