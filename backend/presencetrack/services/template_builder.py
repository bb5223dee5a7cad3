"""
Builds the default ``feuille_presence_template.xlsx``.

Usage:
    python -m presencetrack.services.template_builder [output_path]
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from presencetrack.core.config import settings
from presencetrack.services.presence_template import (
    DATE_HEADER,
    MAX_TABLE_ROWS,
    PERIOD_LABEL,
    PROVIDER_LABEL,
    SUPERVISOR_LABEL,
    TASK_HEADER,
    TIME_HEADER,
)

logger = logging.getLogger(__name__)

TITLE = "Feuille de présence"
HEADER_ROW = 6

HEADER_FILL = PatternFill(fill_type="solid", fgColor="1F4E78")
LABEL_FILL = PatternFill(fill_type="solid", fgColor="DDEBF7")
HEADER_FONT = Font(bold=True, color="FFFFFF")
BOLD_FONT = Font(bold=True)
TITLE_FONT = Font(bold=True, size=14)

THIN_SIDE = Side(style="thin", color="808080")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)


def build_default_template() -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = "Feuille de présence"

    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=3)
    title = ws.cell(row=1, column=1, value=TITLE)
    title.font = TITLE_FONT
    title.alignment = Alignment(horizontal="center")

    for row, label in ((3, PROVIDER_LABEL), (4, PERIOD_LABEL)):
        cell = ws.cell(row=row, column=1, value=label)
        cell.font = BOLD_FONT
        cell.fill = LABEL_FILL
        cell.border = THIN_BORDER
        ws.merge_cells(start_row=row, start_column=2, end_row=row, end_column=3)
        ws.cell(row=row, column=2).border = THIN_BORDER

    for col, header in enumerate((DATE_HEADER, TASK_HEADER, TIME_HEADER), start=1):
        cell = ws.cell(row=HEADER_ROW, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center")

    # Bordered cells keep the whole table inside the sheet's used range
    for r in range(HEADER_ROW + 1, HEADER_ROW + MAX_TABLE_ROWS + 1):
        for col in range(1, 4):
            cell = ws.cell(row=r, column=col)
            cell.border = THIN_BORDER
            cell.alignment = Alignment(vertical="center", wrap_text=(col == 2))

    signature_row = HEADER_ROW + MAX_TABLE_ROWS + 2
    ws.cell(row=signature_row, column=1, value=PROVIDER_LABEL).font = BOLD_FONT
    ws.cell(row=signature_row, column=3, value=SUPERVISOR_LABEL).font = BOLD_FONT
    ws.cell(row=signature_row + 1, column=1).border = THIN_BORDER
    ws.cell(row=signature_row + 1, column=3).border = THIN_BORDER

    ws.column_dimensions["A"].width = 32
    ws.column_dimensions["B"].width = 70
    ws.column_dimensions["C"].width = 28
    return wb


def write_default_template(path: Path | None = None) -> Path:
    path = Path(path or settings.PRESENCE_TEMPLATE_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    build_default_template().save(path)
    logger.info("Presence sheet template written to %s", path)
    return path


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else None
    write_default_template(target)
