"""
Excel I/O for reconciliation inputs and reports, using openpyxl.

Nothing here knows about reconciliation; sheets go in as row dicts or raw
matrices and come out as named tables.
"""

import io
import logging
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Sequence, Union
from zipfile import BadZipFile

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException

from gst_recon.errors import WorkbookError

logger = logging.getLogger(__name__)

Source = Union[str, Path, bytes, IO[bytes]]

# Excel refuses longer sheet titles
MAX_SHEET_TITLE = 31


def _load(source: Source):
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    try:
        return openpyxl.load_workbook(source, read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as e:
        raise WorkbookError(f"Could not open workbook: {e}") from e


def _pick_sheet(wb, sheet_name: Optional[str]):
    if sheet_name is None:
        return wb.worksheets[0]
    if sheet_name in wb.sheetnames:
        return wb[sheet_name]
    wanted = sheet_name.strip().lower()
    for title in wb.sheetnames:
        if title.strip().lower() == wanted:
            return wb[title]
    raise WorkbookError(f"Sheet '{sheet_name}' not found (available: {', '.join(wb.sheetnames)})")


def read_sheet_matrix(source: Source, sheet_name: Optional[str] = None) -> List[List[Any]]:
    """Return every row of a sheet as a list of cell values (None kept)."""
    wb = _load(source)
    try:
        ws = _pick_sheet(wb, sheet_name)
        return [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def rows_from_matrix(matrix: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
    """
    Turn a matrix whose first row is the header into row dicts.

    Empty cells become "" and rows with no content at all are dropped.
    Columns with a blank header are ignored.
    """
    if not matrix:
        return []
    header = [str(h).strip() if h is not None else '' for h in matrix[0]]
    rows = []
    for values in matrix[1:]:
        if all(v is None or v == '' for v in values):
            continue
        row = {}
        for idx, name in enumerate(header):
            if not name:
                continue
            value = values[idx] if idx < len(values) else None
            row[name] = '' if value is None else value
        rows.append(row)
    return rows


def read_rows(source: Source, sheet_name: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Read one sheet into row dicts keyed by header.

    Args:
        source: Path, raw bytes or binary file object of an .xlsx file.
        sheet_name: Sheet to read; matched exactly first, then ignoring
            case. None reads the first sheet.

    Raises:
        WorkbookError: if the file cannot be opened or the sheet is absent.
    """
    rows = rows_from_matrix(read_sheet_matrix(source, sheet_name))
    logger.debug("Read %d row(s) from sheet %s", len(rows), sheet_name or '<first>')
    return rows


def _fill_sheet(ws, matrix: Sequence[Sequence[Any]], bold_header: bool) -> None:
    for row in matrix:
        ws.append(list(row))
    if bold_header and matrix and matrix[0]:
        for cell in ws[1]:
            cell.font = Font(bold=True)
    ws.column_dimensions['A'].width = 40


def build_workbook(tables: Dict[str, Sequence[Sequence[Any]]], bold_header: bool = True):
    """Create an in-memory workbook with one sheet per named table."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for name, matrix in tables.items():
        ws = wb.create_sheet(title=name[:MAX_SHEET_TITLE])
        _fill_sheet(ws, matrix, bold_header)
    return wb


def write_views(tables: Dict[str, Sequence[Sequence[Any]]], target: Union[str, Path, IO[bytes]],
                bold_header: bool = True) -> None:
    """Save named tables as a multi-sheet .xlsx file."""
    if isinstance(target, (str, Path)):
        Path(target).parent.mkdir(parents=True, exist_ok=True)
    build_workbook(tables, bold_header).save(target)


def workbook_bytes(tables: Dict[str, Sequence[Sequence[Any]]], bold_header: bool = True) -> bytes:
    buffer = io.BytesIO()
    write_views(tables, buffer, bold_header)
    return buffer.getvalue()
