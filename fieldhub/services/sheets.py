"""
Spreadsheet reading helpers shared by every bulk import.

Uploads are read into a plain grid (list of rows, each a list of cell values)
so the importers can apply their own header heuristics.
"""
import csv
import io
import os
import unicodedata
import zipfile
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from openpyxl import load_workbook
from openpyxl.utils import column_index_from_string
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import SpreadsheetError


SUPPORTED_EXTENSIONS = (".xlsx", ".csv")


def read_grid(filename: str, content: bytes) -> List[List[Any]]:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext == ".xls":
        raise SpreadsheetError("Legacy .xls files are not supported; save the sheet as .xlsx or .csv")
    if ext == ".csv":
        rows = _read_csv(content)
    elif ext in (".xlsx", ".xlsm"):
        rows = _read_xlsx(content)
    else:
        raise SpreadsheetError(f"Unsupported file type '{ext or filename}'; use .xlsx or .csv")
    # Interior blank rows stay so row numbers match the sheet
    while rows and is_blank_row(rows[-1]):
        rows.pop()
    if not rows:
        raise SpreadsheetError("The file is empty")
    return rows


def _read_xlsx(content: bytes) -> List[List[Any]]:
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise SpreadsheetError(f"Could not read spreadsheet: {e}")
    try:
        ws = wb.worksheets[0]
        return [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def _read_csv(content: bytes) -> List[List[Any]]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")
    sample = text[:4096]
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    return [[c if c != "" else None for c in row] for row in csv.reader(io.StringIO(text), dialect)]


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def is_blank_row(row: List[Any]) -> bool:
    return all(is_blank(c) for c in row)


def first_filled_row(rows: List[List[Any]]) -> int:
    return next((i for i, row in enumerate(rows) if not is_blank_row(row)), 0)


def cell_text(value: Any) -> str:
    """Cell as trimmed text; whole floats lose their ``.0``."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat() if value.time() == datetime.min.time() else value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def strip_accents(text: str) -> str:
    return "".join(c for c in unicodedata.normalize("NFD", text) if unicodedata.category(c) != "Mn")


def normalize_header(value: Any) -> str:
    return strip_accents(cell_text(value).upper())


def cell(row: List[Any], index: int) -> Any:
    if index < 0 or index >= len(row):
        return None
    return row[index]


def letter(row: List[Any], column: str) -> Any:
    """Value in spreadsheet column ``column`` (``"A"``, ``"B"``...)."""
    return cell(row, column_index_from_string(column) - 1)


def parse_decimal(value: Any) -> Optional[float]:
    """Number from a cell that may use a decimal comma; ``None`` when invalid."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", ".", 1)
    try:
        return float(text)
    except ValueError:
        return None


def records(rows: List[List[Any]]) -> List[Dict[str, Any]]:
    """First filled row as header, the non-blank rows below as dicts keyed by the header text."""
    start = first_filled_row(rows)
    header = [cell_text(h) for h in rows[start]]
    out = []
    for row in rows[start + 1:]:
        if is_blank_row(row):
            continue
        rec = {}
        for i, name in enumerate(header):
            if name and not (name in rec and is_blank(cell(row, i))):
                rec[name] = cell(row, i)
        out.append(rec)
    return out


def first_value(record: Dict[str, Any], *keys: str) -> Any:
    """First non-blank, non-zero value among ``keys``."""
    for key in keys:
        value = record.get(key)
        if not is_blank(value) and value != 0:
            return value
    return None
