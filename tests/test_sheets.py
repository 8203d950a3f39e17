import base64
import json

import pytest

from roster_sms import sheets
from roster_sms.config import Settings
from roster_sms.sheets import GspreadWorksheet, InMemoryWorksheet, SheetConnector, memory_worksheet


class FakeGspreadSheet:
    """Records the gspread calls GspreadWorksheet makes."""

    def __init__(self, rows, row_count=3, col_count=3):
        self.title = "Fake"
        self.rows = [list(r) for r in rows]
        self.row_count = row_count
        self.col_count = col_count
        self.calls = []

    def get_all_values(self):
        return [list(r) for r in self.rows]

    def row_values(self, row):
        return list(self.rows[row - 1])

    def update(self, range_name=None, values=None, value_input_option=None):
        self.calls.append(("update", range_name, values, value_input_option))

    def update_cell(self, row, col, value):
        self.calls.append(("update_cell", row, col, value))

    def add_rows(self, n):
        self.calls.append(("add_rows", n))
        self.row_count += n

    def add_cols(self, n):
        self.calls.append(("add_cols", n))
        self.col_count += n


def test_gspread_append_row_grows_sheet_and_writes_a1_range():
    fake = FakeGspreadSheet([["A", "B"], ["1", "2"], ["3", "4"]])
    ws = GspreadWorksheet(fake)

    assert ws.append_row(["5", None]) == 4
    assert fake.calls[0] == ("add_rows", 100)
    assert fake.calls[1] == ("update", "A4:B4", [["5", ""]], "USER_ENTERED")


def test_gspread_add_column_extends_columns():
    fake = FakeGspreadSheet([["A", "B", "C"]])
    ws = GspreadWorksheet(fake)

    assert ws.add_column("Processed") == 3
    assert fake.calls == [("add_cols", 1), ("update_cell", 1, 4, "Processed")]


def test_in_memory_append_cells_only_touches_given_columns():
    ws = InMemoryWorksheet("Attendance", [["Event ID", "Formula", "Campus Email"]])
    row = ws.append_cells({0: "EVT-1", 2: "a@student.edu"})
    assert row == 2
    assert ws.get_all_values()[1] == ["EVT-1", "", "a@student.edu"]


def test_memory_connector_seeds_headers_once():
    connector = SheetConnector(Settings(force_in_memory=True))
    ws = connector.worksheet("SMS Log", create_with=["Timestamp", "Body"])
    ws.append_row(["now", "hi"])

    again = SheetConnector(Settings(force_in_memory=True)).worksheet("SMS Log", create_with=["Timestamp", "Body"])
    assert again.get_all_values() == [["Timestamp", "Body"], ["now", "hi"]]
    assert memory_worksheet("SMS Log") is again


def test_build_credentials_from_base64(monkeypatch):
    info = {"type": "service_account", "client_email": "bot@example.iam.gserviceaccount.com"}
    captured = {}

    def fake_from_info(data, scopes=None):
        captured["info"] = data
        captured["scopes"] = scopes
        return "creds"

    monkeypatch.setattr(sheets.service_account.Credentials, "from_service_account_info", fake_from_info)
    encoded = base64.b64encode(json.dumps(info).encode()).decode()

    assert sheets.build_credentials(Settings(service_account_base64=encoded)) == "creds"
    assert captured["info"] == info
    assert captured["scopes"] == sheets.SCOPES


def test_build_credentials_missing_file():
    with pytest.raises(FileNotFoundError):
        sheets.build_credentials(Settings(service_account_path="/nonexistent/key.json"))
