"""Decode and build .xlsx workbooks with openpyxl."""

from __future__ import annotations

import datetime as dt
import logging
import zipfile
from collections.abc import Mapping, Sequence
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List, Optional, Union

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
EXPORT_SHEET_TITLE = "Data"

Scalar = Union[str, int, float, bool, None]
RowRecord = Dict[str, Scalar]


class SpreadsheetDecodeError(ValueError):
    """The bytes are not a readable workbook."""


def _to_scalar(value: Any) -> Scalar:
    if isinstance(value, str):
        # Control characters are valid JSON but not valid worksheet text.
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return _to_scalar(str(value))


def _header_names(raw: Sequence[Any]) -> List[Optional[str]]:
    """Column names from the header row; blank headers drop their column, repeats get a suffix."""
    names: List[Optional[str]] = []
    seen: Dict[str, int] = {}
    for value in raw:
        if value is None or not str(value).strip():
            names.append(None)
            continue
        name = str(value).strip()
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 0
        names.append(name)
    return names


def _load(data: bytes):
    try:
        return load_workbook(filename=BytesIO(data), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise SpreadsheetDecodeError(f"Unreadable spreadsheet: {exc}") from exc


def decode_rows(data: bytes) -> tuple[list[str], list[RowRecord]]:
    """Return (headers, rows) for the first worksheet.

    The first row is the header row. Every row inside the sheet extent is
    returned, blank ones included, so row positions map back to the source.
    """
    workbook = _load(data)
    try:
        if not workbook.worksheets:
            raise SpreadsheetDecodeError("Workbook has no worksheets")
        ws = workbook.worksheets[0]
        max_row, max_col = ws.max_row, ws.max_column
        header_cells = next(
            ws.iter_rows(min_row=1, max_row=1, max_col=max_col, values_only=True), ()
        )
        names = _header_names(header_cells)
        headers = [name for name in names if name is not None]
        if not headers:
            return [], []

        rows: list[RowRecord] = []
        for values in ws.iter_rows(min_row=2, max_row=max_row, max_col=max_col, values_only=True):
            rows.append(
                {
                    name: _to_scalar(value)
                    for name, value in zip(names, values)
                    if name is not None
                }
            )
        logger.debug(f"Decoded {len(rows)} rows x {len(headers)} columns")
        return headers, rows
    finally:
        workbook.close()


def new_workbook(headers: Sequence[str]) -> Workbook:
    """Fresh export workbook holding only the header row."""
    workbook = Workbook()
    ws = workbook.active
    ws.title = EXPORT_SHEET_TITLE
    ws.append(list(headers))
    return workbook


def load_export_workbook(data: bytes) -> Workbook:
    return _load(data)


def read_headers(workbook: Workbook) -> list[str]:
    """Column order stored in the header row of an export workbook."""
    ws: Worksheet = workbook.worksheets[0]
    header_cells = next(ws.iter_rows(min_row=1, max_row=1, values_only=True), ())
    return ["" if value is None else str(value) for value in header_cells]


def project_rows(batch: Sequence[Mapping[str, Any]], headers: Sequence[str]) -> list[list[Scalar]]:
    """Order each record by ``headers``; missing fields become empty cells."""
    return [[_to_scalar(record.get(header)) for header in headers] for record in batch]


def write_block(workbook: Workbook, block: Sequence[Sequence[Scalar]], origin_row: int) -> None:
    """Write ``block`` starting at 0-based row ``origin_row``, overwriting what is there."""
    ws: Worksheet = workbook.worksheets[0]
    for offset, values in enumerate(block):
        for col, value in enumerate(values, start=1):
            ws.cell(row=origin_row + offset + 1, column=col).value = value


def encode(workbook: Workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
