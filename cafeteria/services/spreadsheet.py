"""
Spreadsheet decoding - turns an uploaded XLSX or CSV buffer into plain cell grids.

Import code only sees `SheetGrid` objects: rows of `Cell(value, numeric)`,
never the workbook library itself.
"""
import csv
import io
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, List, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from cafeteria.services.errors import BadRequest

CSV_EXTENSIONS = ("csv", "tsv", "txt")


@dataclass(frozen=True)
class Cell:
    value: Any = None
    numeric: bool = False

    @property
    def is_empty(self) -> bool:
        return self.value is None or (isinstance(self.value, str) and not self.value.strip())


EMPTY = Cell()


@dataclass
class SheetGrid:
    name: str
    rows: List[List[Cell]] = field(default_factory=list)

    @property
    def n_rows(self) -> int:
        return len(self.rows)

    @property
    def n_cols(self) -> int:
        return max((len(r) for r in self.rows), default=0)

    def cell(self, r: int, c: int) -> Cell:
        if r < 0 or r >= len(self.rows):
            return EMPTY
        row = self.rows[r]
        if c < 0 or c >= len(row):
            return EMPTY
        return row[c]

    def value(self, r: int, c: int) -> Any:
        return self.cell(r, c).value

    def is_blank(self) -> bool:
        return all(cell.is_empty for row in self.rows for cell in row)


def _make_cell(value: Any) -> Cell:
    if isinstance(value, bool):
        return Cell(value, numeric=False)
    if isinstance(value, (int, float)):
        return Cell(value, numeric=True)
    if isinstance(value, (datetime, date)):
        return Cell(value, numeric=True)
    if isinstance(value, str):
        return Cell(value.strip(), numeric=False)
    return Cell(value, numeric=False)


def _trim(rows: List[List[Cell]]) -> List[List[Cell]]:
    """Drop trailing empty cells and trailing empty rows"""
    trimmed = []
    for row in rows:
        row = list(row)
        while row and row[-1].is_empty:
            row.pop()
        trimmed.append(row)
    while trimmed and not trimmed[-1]:
        trimmed.pop()
    return trimmed


def _decode_text(raw: bytes) -> str:
    """UTF-8 (with or without BOM), then Windows-1252; latin-1 maps every byte"""
    for encoding in ("utf-8-sig", "cp1252"):
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return raw.decode("latin-1")


def _parse_csv_value(text: str) -> Cell:
    text = text.strip()
    if not text:
        return EMPTY
    # Leading zeros are identifiers, not numbers
    if text.isdigit() and (len(text) == 1 or not text.startswith("0")):
        return Cell(int(text), numeric=True)
    if _is_decimal(text):
        return Cell(float(text.replace(",", ".")), numeric=True)
    return Cell(text)


def _is_decimal(text: str) -> bool:
    head, sep, tail = text.replace(",", ".").partition(".")
    return bool(sep) and head.lstrip("-").isdigit() and tail.isdigit()


def read_csv(raw: bytes, name: str = "csv") -> SheetGrid:
    text = _decode_text(raw)
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    reader = csv.reader(io.StringIO(text), dialect)
    rows = [[_parse_csv_value(v) for v in row] for row in reader]
    return SheetGrid(name=name, rows=_trim(rows))


def read_xlsx(raw: bytes) -> List[SheetGrid]:
    try:
        wb = load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise BadRequest(f"Unreadable spreadsheet: {e}")

    sheets = []
    try:
        for sheet_name in wb.sheetnames:
            ws = wb[sheet_name]
            rows = [[_make_cell(v) for v in row] for row in ws.iter_rows(values_only=True)]
            sheets.append(SheetGrid(name=sheet_name, rows=_trim(rows)))
    finally:
        wb.close()
    return sheets


def read_workbook(raw: bytes, filename: Optional[str] = None) -> List[SheetGrid]:
    """Decode an uploaded buffer into one grid per sheet"""
    if not raw:
        raise BadRequest("File is empty")

    ext = filename.rsplit(".", 1)[-1].lower() if filename and "." in filename else ""
    if ext in CSV_EXTENSIONS:
        sheets = [read_csv(raw, name=filename)]
    else:
        sheets = read_xlsx(raw)

    if not sheets:
        raise BadRequest("Spreadsheet has no sheet")
    return sheets


def read_first_sheet(raw: bytes, filename: Optional[str] = None) -> SheetGrid:
    sheet = read_workbook(raw, filename)[0]
    if sheet.is_blank():
        raise BadRequest("Spreadsheet is empty")
    return sheet
