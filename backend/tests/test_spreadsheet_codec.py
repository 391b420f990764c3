import datetime as dt

import pytest
from openpyxl import Workbook

from app.services.spreadsheet_codec import (
    SpreadsheetDecodeError,
    decode_rows,
    encode,
    load_export_workbook,
    new_workbook,
    project_rows,
    read_headers,
    write_block,
)
from conftest import build_xlsx


def test_decode_keeps_blank_rows_inside_extent():
    content = build_xlsx(["code", "name"], [("A", "Alpha"), None, ("C", "Gamma")])

    headers, rows = decode_rows(content)

    assert headers == ["code", "name"]
    assert rows == [
        {"code": "A", "name": "Alpha"},
        {"code": None, "name": None},
        {"code": "C", "name": "Gamma"},
    ]


def test_decode_short_rows_and_scalar_kinds():
    content = build_xlsx(
        ["code", "opened", "active", "score"],
        [("A", dt.datetime(2024, 9, 1, 8, 30), True, 4.5), ("B",)],
    )

    _, rows = decode_rows(content)

    assert rows[0] == {"code": "A", "opened": "2024-09-01T08:30:00", "active": True, "score": 4.5}
    assert rows[1] == {"code": "B", "opened": None, "active": None, "score": None}


def test_decode_renames_duplicate_and_drops_blank_headers():
    content = build_xlsx(["code", None, "code"], [("A", "ignored", "B")])

    headers, rows = decode_rows(content)

    assert headers == ["code", "code_1"]
    assert rows == [{"code": "A", "code_1": "B"}]


def test_decode_header_only_sheet():
    headers, rows = decode_rows(build_xlsx(["code"], []))
    assert headers == ["code"]
    assert rows == []


def test_decode_empty_workbook():
    assert decode_rows(encode(Workbook())) == ([], [])


def test_decode_rejects_garbage():
    with pytest.raises(SpreadsheetDecodeError):
        decode_rows(b"definitely not a zip archive")


def test_project_rows_orders_by_headers_and_keeps_falsy_values():
    block = project_rows(
        [{"name": "Alpha", "code": "A", "extra": 1}, {"code": "B", "students": 0, "active": False}],
        ["code", "name", "students", "active"],
    )
    assert block == [["A", "Alpha", None, None], ["B", None, 0, False]]


def test_write_block_overwrites_at_origin():
    workbook = new_workbook(["code", "name"])
    write_block(workbook, [["A", "Alpha"], ["B", "Beta"]], origin_row=1)
    write_block(workbook, [["X", None]], origin_row=1)

    reloaded = load_export_workbook(encode(workbook))
    ws = reloaded.worksheets[0]

    assert read_headers(reloaded) == ["code", "name"]
    assert [cell.value for cell in ws[2]] == ["X", None]
    assert [cell.value for cell in ws[3]] == ["B", "Beta"]


def test_project_rows_strips_control_characters():
    block = project_rows([{"code": "A\x00", "name": "line\x0bbreak\ttab"}], ["code", "name"])
    assert block == [["A", "linebreak\ttab"]]

    workbook = new_workbook(["code", "name"])
    write_block(workbook, block, origin_row=1)
    ws = load_export_workbook(encode(workbook)).worksheets[0]
    assert [cell.value for cell in ws[2]] == ["A", "linebreak\ttab"]
