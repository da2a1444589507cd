"""
Roster importer: turns an uploaded CSV or XLSX sheet into field maps keyed by normalized header.

Exported rosters usually carry a title line or two ("Student Guardian List") above the real
header and spell columns inconsistently ("PRN No.", "Student  Name", "EMAIL ID"). Headers are
normalized, the header row is located within the first few lines, and values are looked up
with an exact-then-prefix match.
"""

import csv
import io
import re
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import load_workbook

from feeledger.core.exceptions import ValidationError

HEADER_SCAN_LINES = 5
MIN_PREFIX_MATCH = 3

CSV_EXTENSIONS = (".csv",)
EXCEL_EXTENSIONS = (".xlsx", ".xlsm")

Row = Dict[str, str]


def normalize_header(header: Any) -> str:
    text = "" if header is None else str(header)
    return re.sub(r"[.\s]+", " ", text.strip().lower()).strip()


def _looks_like_header(cells: Sequence[str]) -> bool:
    line = " ".join(normalize_header(c) for c in cells)
    return "prn" in line and "name" in line


def _find_header_index(lines: Sequence[Sequence[str]]) -> int:
    for i, cells in enumerate(lines[:HEADER_SCAN_LINES]):
        if _looks_like_header(cells):
            return i
    return 0


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    # Excel stores roll numbers and phones as floats
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _to_rows(records: List[List[str]]) -> List[Row]:
    if not records:
        return []
    header_index = _find_header_index(records)
    keys = [normalize_header(h) for h in records[header_index]]
    rows: List[Row] = []
    for record in records[header_index + 1:]:
        if not any(cell.strip() for cell in record):
            continue
        row: Row = {}
        for key, cell in zip(keys, record):
            if key and key not in row:
                row[key] = cell.strip()
        rows.append(row)
    return rows


def parse_rows(raw_text: str) -> List[Row]:
    """Parse CSV text into one dict per data row, header located and normalized."""
    text = raw_text.lstrip("\ufeff")
    records = [list(r) for r in csv.reader(io.StringIO(text))]
    return _to_rows(records)


def parse_workbook(content: bytes) -> List[Row]:
    """Same as parse_rows, reading the active sheet of an .xlsx workbook."""
    try:
        wb = load_workbook(filename=io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValidationError(f"Invalid Excel file: {e}") from e
    try:
        ws = wb.active
        if ws is None:
            raise ValidationError("Excel file has no active sheet")
        records = [[_cell_text(c) for c in row] for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()
    return _to_rows(records)


def parse_upload(filename: Optional[str], content: bytes) -> List[Row]:
    name = (filename or "").lower()
    if not content:
        raise ValidationError("Uploaded file is empty")
    if name.endswith(EXCEL_EXTENSIONS):
        return parse_workbook(content)
    if name.endswith(CSV_EXTENSIONS) or not name:
        try:
            return parse_rows(content.decode("utf-8-sig"))
        except UnicodeDecodeError:
            return parse_rows(content.decode("latin-1"))
    raise ValidationError("Please upload a CSV or Excel (.xlsx) file")


def get_value(row: Row, *keys: str) -> Optional[str]:
    """
    First non-empty value among candidate keys. Exact keys win; otherwise a column whose
    name starts with the key (or the key with the column name) matches, provided the
    shorter of the two is at least three characters.
    """
    for key in keys:
        value = row.get(key)
        if value:
            return value.strip()
    for key in keys:
        for column, value in row.items():
            if not value:
                continue
            if (column.startswith(key) or key.startswith(column)) and min(len(key), len(column)) >= MIN_PREFIX_MATCH:
                return value.strip()
    return None


def extract_student_fields(row: Row) -> Dict[str, Optional[str]]:
    prn = get_value(row, "prn number", "prn", "prnnumber", "prn no")
    email = get_value(row, "email id", "email", "emailid")
    division = get_value(row, "division")
    return {
        "prn": prn.upper() if prn else None,
        "name": get_value(row, "student name", "name", "studentname"),
        "academic_year": get_value(row, "academic year", "academicyear"),
        "semester": get_value(row, "semester"),
        "year": get_value(row, "year", "class"),
        "division": division,
        "roll_no": get_value(row, "roll no", "rollno", "roll"),
        "department": get_value(row, "department", "branch") or division,
        "email": email.lower() if email else None,
        "phone": get_value(row, "mobile number", "mobile", "phone"),
    }

