"""Header-keyed Google Sheets access with an in-memory fallback."""

from __future__ import annotations

import base64
import json
import os
from typing import Any, Dict, List, Optional, Sequence

import gspread
import gspread.exceptions
from gspread.utils import rowcol_to_a1
from google.oauth2 import service_account

from roster_sms.config import Settings
from roster_sms.runtime import get_logger, retry

logger = get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


# ============================================================
# WORKSHEETS
# ============================================================


class Worksheet:
    """
    Minimal worksheet surface used by the stores.

    Rows and columns passed to the mutating methods are 1-based, like the
    spreadsheet UI; ``get_all_values`` returns a plain list of rows.
    """

    title: str = ""

    def get_all_values(self) -> List[List[str]]:
        raise NotImplementedError

    def update_row(self, row: int, values: Sequence[Any]) -> None:
        raise NotImplementedError

    def update_cell(self, row: int, col: int, value: Any) -> None:
        raise NotImplementedError

    def append_row(self, values: Sequence[Any]) -> int:
        raise NotImplementedError

    def append_cells(self, cells: Dict[int, Any]) -> int:
        """Write only the given columns of a new last row; other cells are left untouched."""
        raise NotImplementedError

    def add_column(self, header: str, header_row: int = 1) -> int:
        """Append a header at the end of ``header_row``; returns its 0-based index."""
        raise NotImplementedError


class InMemoryWorksheet(Worksheet):
    """Minimal worksheet drop-in replacement used for local runs and tests."""

    def __init__(self, title: str, rows: Optional[Sequence[Sequence[Any]]] = None):
        self.title = title
        self._rows: List[List[str]] = [[_cell(v) for v in r] for r in (rows or [])]

    def _ensure(self, row: int, width: int = 0) -> List[str]:
        while len(self._rows) < row:
            self._rows.append([])
        target = self._rows[row - 1]
        while len(target) < width:
            target.append("")
        return target

    def get_all_values(self) -> List[List[str]]:
        width = max((len(r) for r in self._rows), default=0)
        return [list(r) + [""] * (width - len(r)) for r in self._rows]

    def update_row(self, row: int, values: Sequence[Any]) -> None:
        target = self._ensure(row, len(values))
        for i, v in enumerate(values):
            target[i] = _cell(v)

    def update_cell(self, row: int, col: int, value: Any) -> None:
        target = self._ensure(row, col)
        target[col - 1] = _cell(value)

    def append_row(self, values: Sequence[Any]) -> int:
        self._rows.append([_cell(v) for v in values])
        return len(self._rows)

    def append_cells(self, cells: Dict[int, Any]) -> int:
        self._rows.append([])
        row = len(self._rows)
        for idx, value in cells.items():
            self.update_cell(row, idx + 1, value)
        return row

    def add_column(self, header: str, header_row: int = 1) -> int:
        target = self._ensure(header_row)
        width = max((len(r) for r in self._rows), default=0)
        while len(target) < width:
            target.append("")
        target.append(header)
        return len(target) - 1


class GspreadWorksheet(Worksheet):
    """gspread-backed worksheet; every API call goes through ``retry``."""

    def __init__(self, ws: "gspread.Worksheet"):
        self._ws = ws
        self.title = ws.title

    def _call(self, fn, *args, **kwargs):
        return retry(
            lambda: fn(*args, **kwargs),
            retries=3,
            base_delay=1.0,
            exceptions=(gspread.exceptions.APIError,),
            logger=logger,
        )

    def get_all_values(self) -> List[List[str]]:
        return self._call(self._ws.get_all_values)

    def update_row(self, row: int, values: Sequence[Any]) -> None:
        if not values:
            return
        start = rowcol_to_a1(row, 1)
        end = rowcol_to_a1(row, len(values))
        self._call(
            self._ws.update,
            range_name=f"{start}:{end}",
            values=[[_cell(v) for v in values]],
            value_input_option="USER_ENTERED",
        )

    def update_cell(self, row: int, col: int, value: Any) -> None:
        self._call(self._ws.update_cell, row, col, _cell(value))

    def append_row(self, values: Sequence[Any]) -> int:
        row = len(self.get_all_values()) + 1
        self._grow_rows(row)
        self.update_row(row, values)
        return row

    def append_cells(self, cells: Dict[int, Any]) -> int:
        row = len(self.get_all_values()) + 1
        self._grow_rows(row)
        for idx, value in sorted(cells.items()):
            self.update_cell(row, idx + 1, value)
        return row

    def add_column(self, header: str, header_row: int = 1) -> int:
        headers = self._call(self._ws.row_values, header_row)
        col = len(headers) + 1
        if self._ws.col_count < col:
            self._call(self._ws.add_cols, col - self._ws.col_count)
        self.update_cell(header_row, col, header)
        return col - 1

    def _grow_rows(self, row: int) -> None:
        if self._ws.row_count < row:
            self._call(self._ws.add_rows, max(row - self._ws.row_count, 100))


# ============================================================
# CONNECTOR
# ============================================================

# In-memory workbooks survive across connectors for the life of the process.
_MEMORY_BOOKS: Dict[str, Dict[str, InMemoryWorksheet]] = {}


def memory_worksheet(
    title: str,
    rows: Optional[Sequence[Sequence[Any]]] = None,
    *,
    book: str = "memory",
) -> InMemoryWorksheet:
    """Return (or seed) a process-wide in-memory worksheet."""
    sheets = _MEMORY_BOOKS.setdefault(book, {})
    if rows is not None or title not in sheets:
        sheets[title] = InMemoryWorksheet(title, rows)
    return sheets[title]


def build_credentials(settings: Settings) -> service_account.Credentials:
    """Service-account credentials from base64 JSON, raw JSON, or a key file path."""
    if settings.service_account_base64:
        try:
            info = json.loads(base64.b64decode(settings.service_account_base64).decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as exc:
            raise ValueError(f"Invalid SERVICE_ACCOUNT_BASE64: {exc}") from exc
        return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
    if settings.service_account_json:
        try:
            info = json.loads(settings.service_account_json)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid SERVICE_ACCOUNT_JSON format: {exc}") from exc
        return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
    path = settings.service_account_path
    if not os.path.exists(path):
        raise FileNotFoundError(
            f"Service account file not found: {path}. "
            "Either set SERVICE_ACCOUNT_JSON / SERVICE_ACCOUNT_BASE64 or provide a valid file path."
        )
    return service_account.Credentials.from_service_account_file(path, scopes=SCOPES)


class SheetConnector:
    """Lazy gspread connector with in-memory fallback."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._spreadsheet = None
        self._sheets: Dict[str, Worksheet] = {}

    @property
    def in_memory(self) -> bool:
        return self.settings.force_in_memory or not self.settings.spreadsheet_id

    def _open(self):
        if self._spreadsheet is None:
            client = gspread.authorize(build_credentials(self.settings))
            self._spreadsheet = retry(
                lambda: client.open_by_key(self.settings.spreadsheet_id),
                exceptions=(gspread.exceptions.APIError,),
                logger=logger,
            )
            logger.info("📗 Opened spreadsheet %s", self.settings.spreadsheet_id)
        return self._spreadsheet

    def worksheet(self, title: str, *, create_with: Optional[Sequence[str]] = None) -> Worksheet:
        """
        Return the worksheet named ``title``.

        When ``create_with`` is given, a missing sheet is created with that
        header row; otherwise a missing sheet raises ``gspread.WorksheetNotFound``.
        """
        if title in self._sheets:
            return self._sheets[title]

        if self.in_memory:
            if not self.settings.force_in_memory:
                logger.warning("No spreadsheet configured; using in-memory sheet for %s", title)
            ws = memory_worksheet(title)
            if create_with and not ws.get_all_values():
                ws.append_row(list(create_with))
            self._sheets[title] = ws
            return ws

        book = self._open()
        try:
            handle = book.worksheet(title)
        except gspread.exceptions.WorksheetNotFound:
            if create_with is None:
                raise
            logger.info("🆕 Creating sheet %s", title)
            handle = book.add_worksheet(title=title, rows=1000, cols=max(len(create_with), 1))
            handle.update(range_name="A1", values=[list(create_with)])
        ws = GspreadWorksheet(handle)
        self._sheets[title] = ws
        return ws


def reset_state() -> None:
    _MEMORY_BOOKS.clear()
    logger.info("🧹 In-memory sheets cleared.")
