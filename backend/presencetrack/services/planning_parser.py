"""
Excel parser for monthly planning (schedule) uploads.

Expected columns (case-insensitive, any of the aliases):
  EmployeeID / Employee ID / EmpID / ID
  Name / Employee Name / Full Name
  Date / WorkDate / Work Date / Shift Date
  Shift / ShiftType / Shift Type
  StartTime / Start Time / Start / From
  EndTime / End Time / End / To
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from io import BytesIO
from typing import IO

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font
from pydantic import ValidationError

from presencetrack.schemas.planning import HHMM_RE, PlanningRow

logger = logging.getLogger(__name__)

COLUMN_ALIASES: dict[str, list[str]] = {
    "employee_code": ["employeeid", "employee id", "empid", "id", "employee_id", "code"],
    "employee_name": ["name", "employee name", "employeename", "full name", "full_name"],
    "work_date": ["date", "workdate", "work date", "shift date"],
    "shift": ["shift", "shifttype", "shift type"],
    "start_time": ["starttime", "start time", "start", "from", "start_time"],
    "end_time": ["endtime", "end time", "end", "to", "end_time"],
}

REQUIRED_COLUMNS = tuple(COLUMN_ALIASES)

# Flat set of all known aliases, used for header row detection
_ALL_ALIASES: frozenset[str] = frozenset(
    alias for aliases in COLUMN_ALIASES.values() for alias in aliases
)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%d/%m/%Y",
    "%Y/%m/%d",
    "%d-%m-%Y",
    "%d.%m.%Y",
)
_TIME_FORMATS = ("%H:%M:%S", "%I:%M %p", "%I:%M%p", "%Y-%m-%d %H:%M:%S")

# Day zero of Excel's 1900 date system, shifted for the 1900 leap-year bug
_EXCEL_EPOCH = date(1899, 12, 30)

_TEMPLATE_COLUMNS = ("EmployeeID", "Name", "Date", "Shift", "StartTime", "EndTime")


def _find_header_row(file: IO[bytes]) -> int:
    """
    Scan the first 20 rows looking for the one that contains the most
    column-alias matches.  Returns the 0-based row index to pass as
    ``header=`` to ``pd.read_excel``.
    """
    try:
        preview = pd.read_excel(file, engine="openpyxl", dtype=str, nrows=20, header=None)
    except Exception:
        # The full read below reports the error to the caller
        return 0
    finally:
        file.seek(0)

    best_row, best_score = 0, 0
    for row_idx, row in preview.iterrows():
        score = sum(
            1 for cell in row
            if isinstance(cell, str) and cell.lower().strip() in _ALL_ALIASES
        )
        if score > best_score:
            best_score = score
            best_row = int(row_idx)

    return best_row if best_score >= 2 else 0


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Rename DataFrame columns to canonical names using COLUMN_ALIASES."""
    lower_cols = {str(c).lower().strip(): c for c in df.columns}
    rename_map: dict[str, str] = {}
    for canonical, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in lower_cols:
                rename_map[lower_cols[alias]] = canonical
                break
    return df.rename(columns=rename_map)


def _clean_cell(value: object) -> str:
    """Normalize pandas NaN placeholders to empty string."""
    text = "" if value is None else str(value).strip()
    return "" if text.lower() in ("nan", "none", "nat") else text


def parse_date(value: str) -> date | None:
    if not value:
        return None

    # Excel serial number kept as text by dtype=str
    try:
        serial = float(value)
    except ValueError:
        pass
    else:
        if serial >= 1:
            return _EXCEL_EPOCH + timedelta(days=int(serial))
        return None

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue

    parsed = pd.to_datetime(value, dayfirst=True, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def parse_time(value: str) -> str | None:
    """Normalize a cell to ``HH:mm``; accepts H:mm, HH:mm:ss, h:mm AM and day fractions."""
    if not value:
        return None

    if HHMM_RE.match(value):
        return value.zfill(5)

    try:
        fraction = float(value)
    except ValueError:
        pass
    else:
        if 0 <= fraction < 1:
            total = round(fraction * 24 * 60) % (24 * 60)
            return f"{total // 60:02d}:{total % 60:02d}"
        return None

    for fmt in _TIME_FORMATS:
        try:
            return datetime.strptime(value.upper(), fmt).strftime("%H:%M")
        except ValueError:
            continue
    return None


def _row_error(row_number: int, message: str, code: str) -> str:
    msg = f"Row {row_number}: {message}"
    logger.warning("Skipped planning row: %s (code='%s')", msg, code)
    return msg


def parse_planning_excel(file: IO[bytes]) -> tuple[list[PlanningRow], list[str]]:
    """
    Parse a planning workbook and return (valid_rows, error_messages).

    Bad rows are reported with their visible row number and never abort the
    rest of the file.
    """
    header_row = _find_header_row(file)

    try:
        df = pd.read_excel(file, engine="openpyxl", dtype=str, header=header_row)
    except Exception as exc:
        return [], [f"Failed to parse Excel file: {exc}"]

    df = _normalize_columns(df)

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        return [], [
            f"Missing required columns: {', '.join(missing)}. "
            f"Expected columns: {', '.join(_TEMPLATE_COLUMNS)}"
        ]

    valid_rows: list[PlanningRow] = []
    errors: list[str] = []

    # header_row is 0-based; visible row numbers start at 1, and the header
    # itself takes one row, so data rows start at header_row + 2 (1-indexed)
    data_row_offset = header_row + 2
    skipped_empty = 0

    for i, row in enumerate(df.itertuples(index=False), start=data_row_offset):
        raw = {col: _clean_cell(getattr(row, col, "")) for col in REQUIRED_COLUMNS}

        if not any(raw.values()):
            skipped_empty += 1
            continue

        code = raw["employee_code"]
        work_date = parse_date(raw["work_date"])
        if work_date is None:
            errors.append(_row_error(i, f"Invalid date format: '{raw['work_date']}'", code))
            continue

        start_time = parse_time(raw["start_time"])
        if start_time is None:
            errors.append(_row_error(i, "Invalid start time format", code))
            continue
        end_time = parse_time(raw["end_time"])
        if end_time is None:
            errors.append(_row_error(i, "Invalid end time format", code))
            continue

        try:
            valid_rows.append(
                PlanningRow(
                    employee_code=code,
                    employee_name=raw["employee_name"],
                    work_date=work_date,
                    shift=raw["shift"],
                    start_time=start_time,
                    end_time=end_time,
                )
            )
        except ValidationError as exc:
            for err in exc.errors():
                errors.append(_row_error(i, f"{err['loc'][0]}: {err['msg']}", code))

    logger.info(
        "Planning parse finished: valid=%d errors=%d empty=%d",
        len(valid_rows), len(errors), skipped_empty,
    )
    return valid_rows, errors


def build_planning_template(today: date | None = None) -> bytes:
    """Example upload workbook with the expected header and two sample rows."""
    today = today or date.today()
    wb = Workbook()
    ws = wb.active
    ws.title = "Planning"
    ws.append(list(_TEMPLATE_COLUMNS))
    for cell in ws[1]:
        cell.font = Font(bold=True)

    ws.append(["EMP001", "John Doe", today.isoformat(), "Shift 0", "09:00", "17:00"])
    ws.append(["EMP002", "Jane Smith", today.isoformat(), "Shift 1", "14:00", "22:00"])

    for letter, width in zip("ABCDEF", (12, 20, 12, 12, 10, 10)):
        ws.column_dimensions[letter].width = width

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()
