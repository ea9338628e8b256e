"""
Excel export of extracted tables.

Builds an .xlsx workbook in memory with one sheet per table. Every cell is
stored as text with the "@" number format so Excel never reinterprets
part numbers or codes as numbers or dates.
"""

import io
import logging
import re
from datetime import datetime, timezone
from typing import Any, Iterable

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ..models import ExportTable
from .exceptions import ExportError, InvalidInputError
from .extraction import cell_text

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Excel sheet rules: max 31 chars, none of : \ / ? * [ ], no leading or trailing apostrophe
MAX_SHEET_NAME = 31
_INVALID_SHEET_CHARS = re.compile(r"[:\\/?*\[\]]")
_WHITESPACE = re.compile(r"\s+")
_EDGE_QUOTES = re.compile(r"^[\s']+|[\s']+$")

MIN_COLUMN_WIDTH = 10
MAX_COLUMN_WIDTH = 70
WIDTH_SAMPLE_ROWS = 50
HEADER_ROW_HEIGHT = 18
DATA_ROW_HEIGHT = 30
TEXT_FORMAT = "@"
PLACEHOLDER_COLUMN = "message"
PLACEHOLDER_TEXT = "Table had no columns/rows."


# =============================================================================
# Naming and Shaping
# =============================================================================


def safe_sheet_name(name: str | None, fallback: str) -> str:
    """Make ``name`` a legal sheet title, or return ``fallback`` if nothing is left."""
    cleaned = _INVALID_SHEET_CHARS.sub(" ", name or fallback)
    # Excel also rejects titles that begin or end with an apostrophe
    cleaned = _EDGE_QUOTES.sub("", _WHITESPACE.sub(" ", cleaned))
    cleaned = _EDGE_QUOTES.sub("", cleaned[:MAX_SHEET_NAME])
    return cleaned or fallback


def unique_sheet_name(base: str, used: set[str]) -> str:
    """
    Append " 2", " 3", ... until the name is unused, keeping it within
    the length limit. Comparison is case-insensitive, as in Excel.
    """
    name = base
    counter = 2
    while name.lower() in used:
        suffix = f" {counter}"
        name = (base[: MAX_SHEET_NAME - len(suffix)] + suffix).strip()
        counter += 1
    used.add(name.lower())
    return name


def resolve_columns(table: ExportTable) -> list[str]:
    """Declared columns, else the union of row keys in first-seen order."""
    if table.columns:
        return list(table.columns)

    columns: dict[str, None] = {}
    for row in table.rows:
        for key in row:
            columns.setdefault(str(key), None)
    return list(columns)


def _clean(text: str) -> str:
    return ILLEGAL_CHARACTERS_RE.sub("", text)


def normalize_export_rows(columns: list[str], rows: Iterable[dict[str, Any]]) -> list[list[str]]:
    """Row values in column order, as text, "" for missing or null."""
    return [[_clean(cell_text(row.get(c))) for c in columns] for row in rows]


def column_widths(columns: list[str], rows: list[list[str]]) -> list[int]:
    """Size columns from the header and the first rows, capped."""
    widths = [max(MIN_COLUMN_WIDTH, len(c) + 2) for c in columns]
    for row in rows[:WIDTH_SAMPLE_ROWS]:
        for idx, value in enumerate(row):
            widths[idx] = max(widths[idx], len(value) + 2)
    return [min(MAX_COLUMN_WIDTH, w) for w in widths]


# =============================================================================
# Sheet Writing
# =============================================================================


def _apply_sheet_styling(ws: Worksheet, column_count: int) -> None:
    """Frozen bold header with auto-filter, wrapped text, fixed row heights."""
    ws.freeze_panes = "A2"

    for cell in ws[1]:
        cell.font = Font(bold=True)

    if column_count > 0 and ws.max_row >= 1:
        ws.auto_filter.ref = f"A1:{get_column_letter(column_count)}1"

    wrap = Alignment(wrap_text=True, vertical="top")
    for row_idx, row in enumerate(ws.iter_rows(), start=1):
        for cell in row:
            cell.alignment = wrap
        ws.row_dimensions[row_idx].height = (
            HEADER_ROW_HEIGHT if row_idx == 1 else DATA_ROW_HEIGHT
        )


def _append_text_row(ws: Worksheet, values: list[str]) -> None:
    """Append a row stored as literal text, so "=..." never becomes a formula."""
    ws.append(values)
    for cell in ws[ws.max_row]:
        cell.data_type = "s"
        cell.number_format = TEXT_FORMAT


def _write_placeholder(ws: Worksheet) -> None:
    _append_text_row(ws, [PLACEHOLDER_COLUMN])
    _append_text_row(ws, [PLACEHOLDER_TEXT])
    ws.column_dimensions["A"].width = 50
    _apply_sheet_styling(ws, 1)


def _write_table(ws: Worksheet, columns: list[str], rows: list[list[str]]) -> None:
    _append_text_row(ws, [_clean(c) for c in columns])

    for values in rows:
        _append_text_row(ws, values)

    for idx, width in enumerate(column_widths(columns, rows), start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width

    _apply_sheet_styling(ws, len(columns))


def build_workbook(tables: list[ExportTable], creator: str = "docextract") -> bytes:
    """
    Render tables as an .xlsx document.

    Args:
        tables: Tables in output order; each becomes one sheet.
        creator: Workbook author metadata.

    Returns:
        The workbook as bytes.

    Raises:
        ExportError: If openpyxl fails to build or serialize the workbook.
    """
    wb = Workbook()
    wb.remove(wb.active)
    wb.properties.creator = creator
    wb.properties.created = datetime.now(timezone.utc).replace(tzinfo=None)

    used: set[str] = set()

    try:
        for idx, table in enumerate(tables, start=1):
            fallback = f"Table {idx}"
            sheet_name = unique_sheet_name(safe_sheet_name(table.table_name, fallback), used)
            ws = wb.create_sheet(title=sheet_name)

            columns = resolve_columns(table)
            if not columns:
                logger.info("Sheet '%s' has no columns; writing placeholder", sheet_name)
                _write_placeholder(ws)
                continue

            _write_table(ws, columns, normalize_export_rows(columns, table.rows))

        buffer = io.BytesIO()
        wb.save(buffer)
    except ValueError as e:
        logger.exception("Excel export failed")
        raise ExportError(f"Excel export failed: {e}") from e

    logger.info("Built workbook with %d sheet(s)", len(tables))
    return buffer.getvalue()


def tables_from_payload(body: Any) -> list[ExportTable]:
    """
    Find the tables in an export request body.

    Accepts the full /ask response (``{ok, data: {tables}}``), its ``data``
    object, or a bare ``{tables: [...]}``.

    Raises:
        InvalidInputError: No non-empty ``tables`` list was found.
    """
    data = body.get("data") if isinstance(body, dict) else None
    if data is None:
        data = body

    raw_tables = data.get("tables") if isinstance(data, dict) else None
    if not isinstance(raw_tables, list) or not raw_tables:
        raise InvalidInputError(
            "No tables found. Expected JSON with data.tables[] "
            "(paste the full /ask response or the inner data object)."
        )

    return [ExportTable.from_raw(t) for t in raw_tables]
