import pytest

from roster_sms.models import Person, SendAttempt, SendOutcome
from roster_sms.roster import RosterStore
from roster_sms.schema import ROSTER_TABLE, SchemaError, SheetSchema
from roster_sms.sheets import InMemoryWorksheet


def test_headers_match_trimmed_case_insensitive_and_aliases():
    schema = SheetSchema("Student Database", ["  phone ", "CAMPUS EMAIL", "Full Name", "SMS Opt-In"], ROSTER_TABLE)
    assert schema.column("phone") == 0
    assert schema.column("campus_email") == 1
    assert schema.column("name") == 2
    assert schema.missing(["email", "opt_in"]) == ["Email"]


def test_first_non_empty_alias_column_wins():
    schema = SheetSchema("Student Database", ["Phone #", "Phone"], ROSTER_TABLE)
    assert schema.get(["", "8165550123"], "phone") == "8165550123"
    assert schema.get(["8165550000", "8165550123"], "phone") == "8165550000"


def test_require_names_missing_columns():
    with pytest.raises(SchemaError) as exc:
        SheetSchema("Student Database", ["Student Name"], ROSTER_TABLE).require(["phone", "opt_in"])
    assert exc.value.missing == ("Phone #", "SMS Opt-In")
    assert "Student Database" in str(exc.value)


def test_roster_keeps_unmapped_columns_on_write():
    ws = InMemoryWorksheet(
        "Student Database",
        [
            ["Favorite Color", "Campus Email", "Email", "Phone #", "SMS Opt-In"],
            ["blue", "ana@student.edu", "", "8165550123", "?"],
        ],
    )
    roster = RosterStore(ws)
    ana = roster.load()[0]
    assert ana.extra == {"Favorite Color": "blue"}

    ana.email = "ana@gmail.com"
    roster.update(ana)

    assert ws.get_all_values()[1] == ["blue", "ana@student.edu", "ana@gmail.com", "8165550123", "?"]


def test_send_status_on_a_store_that_was_never_loaded():
    ws = InMemoryWorksheet(
        "Student Database",
        [["Campus Email", "Email", "Phone #", "SMS Opt-In"], ["ana@student.edu", "", "8165550123", "Yes"]],
    )
    roster = RosterStore(ws)

    roster.record_send_status(
        Person(phone="8165550123", row=2),
        SendAttempt(to="+18165550123", body="hi", outcome=SendOutcome.SENT),
    )

    values = ws.get_all_values()
    assert values[0][-4:] == ["Last Sent At", "Send Status", "Last Error Code", "Last Error"]
    assert values[1][:4] == ["ana@student.edu", "", "8165550123", "Yes"]
    assert values[1][5] == "SENT"
