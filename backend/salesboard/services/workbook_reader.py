# Overview: Reads the first sheet of an uploaded spreadsheet into a 2-D list of cell values.

from __future__ import annotations

import io
import zipfile
from typing import Any, BinaryIO

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
import xlrd


ALLOWED_EXTENSIONS = {"xlsx", "xls"}


class StructuralError(ValueError):
    """Raised when an upload cannot be ingested at all (nothing is processed)."""


class WorkbookError(StructuralError):
    """Raised when the upload cannot be opened as a spreadsheet."""


def file_extension(filename: str | None) -> str:
    name = filename or ""
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def is_allowed_file(filename: str | None) -> bool:
    return file_extension(filename) in ALLOWED_EXTENSIONS


def _normalize_row(values) -> list[Any]:
    row = list(values or [])
    if all(value is None or (isinstance(value, str) and not value.strip()) for value in row):
        return []
    return row


def _read_xlsx(data: bytes) -> list[list[Any]]:
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise WorkbookError(f"File is not a readable .xlsx workbook: {exc}") from exc
    try:
        if not wb.worksheets:
            raise WorkbookError("Workbook has no sheets")
        sheet = wb.worksheets[0]
        return [_normalize_row(values) for values in sheet.iter_rows(values_only=True)]
    finally:
        wb.close()


def _read_xls(data: bytes) -> list[list[Any]]:
    try:
        book = xlrd.open_workbook(file_contents=data)
    except xlrd.XLRDError as exc:
        raise WorkbookError(f"File is not a readable .xls workbook: {exc}") from exc
    if book.nsheets == 0:
        raise WorkbookError("Workbook has no sheets")
    sheet = book.sheet_by_index(0)

    rows: list[list[Any]] = []
    for r in range(sheet.nrows):
        values: list[Any] = []
        for c in range(sheet.ncols):
            cell = sheet.cell(r, c)
            if cell.ctype == xlrd.XL_CELL_DATE:
                values.append(xlrd.xldate.xldate_as_datetime(cell.value, book.datemode))
            elif cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
                values.append(None)
            else:
                values.append(cell.value)
        rows.append(_normalize_row(values))
    return rows


def read_sheet_rows(stream: BinaryIO | bytes, filename: str) -> list[list[Any]]:
    """
    Return the first sheet as rows of raw cell values (row 0 is the header).

    Fully blank rows come back as []. Raises WorkbookError for unsupported or
    unreadable files.
    """
    ext = file_extension(filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise WorkbookError("Only Excel files (.xlsx, .xls) are accepted")

    data = stream if isinstance(stream, bytes) else stream.read()
    if not data:
        raise WorkbookError("Uploaded file is empty")

    if ext == "xlsx":
        return _read_xlsx(data)
    return _read_xls(data)
