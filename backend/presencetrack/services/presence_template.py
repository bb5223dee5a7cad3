"""
Population of the fixed presence-sheet workbook.

The template's layout is discovered at run time by scanning for anchor
texts; only ``locate_anchors`` knows how the table header is found, so the
row filling works on plain (row, column) numbers.
"""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from presencetrack.core.config import settings
from presencetrack.core.errors import TemplateError, TemplateUnavailableError
from presencetrack.schemas.presence import PresenceDay

logger = logging.getLogger(__name__)

DATE_HEADER = "Date"
TASK_HEADER = "Tâches et livrables"
TIME_HEADER = "Temps"
PROVIDER_LABEL = "Prestataire"
PERIOD_LABEL = "Période objet de la facturation"
SUPERVISOR_LABEL = "Responsable suivi de mission"

MAX_TABLE_ROWS = 31


@dataclass(frozen=True)
class TableAnchors:
    header_row: int
    date_col: int
    task_col: int
    time_col: int
    max_row: int
    max_col: int


def _text(value: object) -> str | None:
    return value.strip() if isinstance(value, str) else None


def _sheet_is_empty(ws: Worksheet) -> bool:
    for row in ws.iter_rows(values_only=True):
        if any(value is not None and value != "" for value in row):
            return False
    return True


def _merged_range_at(ws: Worksheet, row: int, col: int):
    for merged in ws.merged_cells.ranges:
        if merged.min_row <= row <= merged.max_row and merged.min_col <= col <= merged.max_col:
            return merged
    return None


def write_cell(ws: Worksheet, row: int, col: int, value: str | None) -> None:
    """Write a value, redirecting to the anchor cell when (row, col) is merged."""
    merged = _merged_range_at(ws, row, col)
    if merged is not None:
        row, col = merged.min_row, merged.min_col
    ws.cell(row=row, column=col).value = value or None


def locate_anchors(ws: Worksheet) -> TableAnchors:
    """Find the table header row holding "Date", "Tâches et livrables" and "Temps"."""
    if _sheet_is_empty(ws):
        raise TemplateError("Template sheet appears empty.")

    max_row, max_col = ws.max_row, ws.max_column
    for r in range(1, max_row + 1):
        found: dict[str, int] = {}
        for c in range(1, max_col + 1):
            text = _text(ws.cell(row=r, column=c).value)
            if text in (DATE_HEADER, TASK_HEADER, TIME_HEADER):
                found.setdefault(text, c)
        if len(found) == 3:
            return TableAnchors(
                header_row=r,
                date_col=found[DATE_HEADER],
                task_col=found[TASK_HEADER],
                time_col=found[TIME_HEADER],
                max_row=max_row,
                max_col=max_col,
            )

    raise TemplateError("Could not find table headers in template.")


def set_label_value_right(ws: Worksheet, label: str, value: str) -> bool:
    """Write ``value`` right of the first cell whose text equals ``label``."""
    for r in range(1, ws.max_row + 1):
        for c in range(1, ws.max_column + 1):
            if _text(ws.cell(row=r, column=c).value) != label:
                continue
            merged = _merged_range_at(ws, r, c)
            target_col = (merged.max_col if merged is not None else c) + 1
            write_cell(ws, r, target_col, value)
            return True

    logger.warning("Template label '%s' not found, value left unset", label)
    return False


def set_signature_below(ws: Worksheet, full_name: str) -> bool:
    """Write the name under "Prestataire" in the signature row.

    The signature row is the one that also holds "Responsable suivi de
    mission"; this keeps it apart from the header's "Prestataire" label.
    """
    for r in range(1, ws.max_row + 1):
        provider_col = None
        has_supervisor = False
        for c in range(1, ws.max_column + 1):
            text = _text(ws.cell(row=r, column=c).value)
            if text == PROVIDER_LABEL:
                provider_col = c
            elif text == SUPERVISOR_LABEL:
                has_supervisor = True
        if provider_col is not None and has_supervisor:
            merged = _merged_range_at(ws, r, provider_col)
            below = (merged.max_row if merged is not None else r) + 1
            write_cell(ws, below, provider_col, full_name)
            return True

    logger.warning("Signature row not found in template, name left unset")
    return False


def fill_rows(ws: Worksheet, anchors: TableAnchors, rows: list[PresenceDay]) -> int:
    """Write one table row per day; returns the number of rows written."""
    last_row = min(anchors.max_row, anchors.header_row + MAX_TABLE_ROWS)
    written = 0
    for r in range(anchors.header_row + 1, last_row + 1):
        index = r - anchors.header_row - 1
        if index >= len(rows):
            break
        day = rows[index]
        write_cell(ws, r, anchors.date_col, day.date_label)
        write_cell(ws, r, anchors.task_col, day.task_text)
        write_cell(ws, r, anchors.time_col, day.time_text)
        written += 1

    if written < min(len(rows), MAX_TABLE_ROWS):
        logger.warning(
            "Template table has room for %d rows, %d days were not written",
            written, min(len(rows), MAX_TABLE_ROWS) - written,
        )
    return written


def load_template(path: Path | None = None) -> Workbook:
    path = Path(path or settings.PRESENCE_TEMPLATE_PATH)
    try:
        return load_workbook(path)
    except FileNotFoundError:
        raise TemplateUnavailableError(f"Presence sheet template not found: {path}") from None
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise TemplateUnavailableError(
            f"Presence sheet template could not be opened: {exc}"
        ) from exc


def populate_workbook(
    wb: Workbook, full_name: str, period: str, rows: list[PresenceDay]
) -> Workbook:
    ws = wb.worksheets[0]
    set_label_value_right(ws, PROVIDER_LABEL, full_name)
    set_label_value_right(ws, PERIOD_LABEL, period)
    set_signature_below(ws, full_name)

    anchors = locate_anchors(ws)
    fill_rows(ws, anchors, rows)
    return wb


def render(wb: Workbook) -> bytes:
    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()


def render_presence_sheet(
    full_name: str,
    period: str,
    rows: list[PresenceDay],
    template_path: Path | None = None,
) -> bytes:
    """Load the template, fill it and return the ``.xlsx`` bytes."""
    wb = load_template(template_path)
    populate_workbook(wb, full_name, period, rows)
    return render(wb)
