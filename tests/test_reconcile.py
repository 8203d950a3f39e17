from datetime import datetime, timezone

from roster_sms.models import Person
from roster_sms.reconcile import incoming_from_response, insert, merge, today_string
from roster_sms.schema import RESPONSE_TABLE, SheetSchema


def test_blank_incoming_never_clears_stored_values():
    existing = Person(name="Ana Lopez", campus_email="ana@student.edu", phone="8165550123", opt_in="Yes", row=2)
    incoming = Person(campus_email="ana@student.edu", name="", phone="", opt_in="")

    result = merge(existing, incoming)

    assert result.person.name == "Ana Lopez"
    assert result.person.phone == "8165550123"
    assert result.person.opt_in == "Yes"
    assert result.person.row == 2
    assert result.opted_in_now is False


def test_join_date_is_never_overwritten():
    existing = Person(campus_email="ana@student.edu", join_date="1/5/2024", row=2)
    incoming = Person(campus_email="ana@student.edu", join_date="3/3/2025 10:00:00")

    assert merge(existing, incoming).person.join_date == "1/5/2024"


def test_merge_is_not_commutative():
    a = Person(campus_email="x@student.edu", role="Member", discord="old#1")
    b = Person(campus_email="x@student.edu", role="Officer")

    assert merge(a, b).person.role == "Officer"
    assert merge(b, a).person.role == "Member"
    assert merge(b, a).person.discord == "old#1"


def test_opt_in_transition_flags_welcome_only_once():
    stored = Person(campus_email="ana@student.edu", opt_in="?", row=2)
    first = merge(stored, Person(campus_email="ana@student.edu", opt_in="Yes"))
    assert first.person.opt_in == "Yes"
    assert first.opted_in_now is True

    again = merge(first.person, Person(campus_email="ana@student.edu", opt_in="Yes"))
    assert again.opted_in_now is False


def test_insert_defaults():
    fresh = insert(Person(campus_email="new@student.edu"), "7/18/2025")
    assert fresh.person.opt_in == "?"
    assert fresh.person.join_date == "7/18/2025"
    assert fresh.person.row is None
    assert fresh.opted_in_now is False

    opted = insert(Person(phone="8165550123", opt_in="Yes"), "7/18/2025")
    assert opted.person.opt_in == "Yes"
    assert opted.opted_in_now is True


def test_incoming_from_response_normalizes_fields():
    headers = ["Timestamp", "Full Name (First & Last)", "Campus Email", "Phone Number", "SMS Opt-In", "Event ID"]
    schema = SheetSchema("Raw Attendance Data", headers, RESPONSE_TABLE)
    row = ["", "Ana Lopez", " ANA@Student.EDU ", "+1 (816) 555-0123", "I agree to receive texts", "EVT-1"]

    person = incoming_from_response(row, schema)

    assert person.name == "Ana Lopez"
    assert person.campus_email == "ana@student.edu"
    assert person.phone == "8165550123"
    assert person.opt_in == "Yes"
    assert person.join_date == ""


def test_today_string_uses_configured_timezone():
    # 03:30 UTC on July 19 is still July 18 in New York.
    now = datetime(2025, 7, 19, 3, 30, tzinfo=timezone.utc)
    assert today_string("America/New_York", now) == "7/18/2025"
