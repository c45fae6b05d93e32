"""
Spreadsheet decoding tests (XLSX via openpyxl, CSV with sniffed delimiters).
"""
import io
from datetime import datetime

import pytest
from openpyxl import Workbook

from cafeteria.services.errors import BadRequest
from cafeteria.services.spreadsheet import read_first_sheet, read_workbook


def _xlsx(*sheets):
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets:
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def test_xlsx_cells_are_type_tagged():
    raw = _xlsx(("Plans", [["Matricule", datetime(2025, 3, 5), 45721], ["12345", "x", None]]))
    grid = read_first_sheet(raw, "plans.xlsx")

    assert grid.name == "Plans"
    assert grid.cell(0, 0).numeric is False
    assert grid.cell(0, 1).numeric is True
    assert grid.cell(0, 2).value == 45721
    assert grid.cell(0, 2).numeric is True
    # trailing empty cells are trimmed, out-of-range reads are empty
    assert len(grid.rows[1]) == 2
    assert grid.cell(5, 5).is_empty


def test_xlsx_keeps_every_sheet():
    raw = _xlsx(("L1", [["Matricule"]]), ("L2", [["Matricule"]]))
    sheets = read_workbook(raw, "students.xlsx")
    assert [s.name for s in sheets] == ["L1", "L2"]


def test_csv_semicolon_and_leading_zeros():
    raw = "Matricule;Note;Code\n00123;12,5;7\n".encode("utf-8")
    grid = read_first_sheet(raw, "list.csv")

    assert grid.value(1, 0) == "00123"
    assert grid.cell(1, 0).numeric is False
    assert grid.value(1, 1) == 12.5
    assert grid.value(1, 2) == 7
    assert grid.cell(1, 2).numeric is True


def test_csv_latin1_fallback():
    raw = "Matricule,Repas\n1,Déjeuner\n".encode("cp1252")
    grid = read_first_sheet(raw, "plans.csv")
    assert grid.value(1, 1) == "Déjeuner"


def test_csv_bytes_undefined_in_cp1252_still_decode():
    # 0x81 and 0x9d have no cp1252 mapping
    raw = b"Matricule,Nom\n12345,A\x81B\x9d\n"
    grid = read_first_sheet(raw, "people.csv")
    assert grid.value(1, 1) == "A\x81B\x9d"


def test_garbage_is_bad_request():
    with pytest.raises(BadRequest):
        read_workbook(b"not a zip file", "plans.xlsx")


def test_empty_upload_is_bad_request():
    with pytest.raises(BadRequest):
        read_workbook(b"", "plans.xlsx")


def test_blank_sheet_is_bad_request():
    raw = _xlsx(("Empty", []))
    with pytest.raises(BadRequest, match="empty"):
        read_first_sheet(raw, "plans.xlsx")
