"""
Month reconciliation: planning + attendance -> one row per table line.

Both inputs are scoped to the same month before they are keyed by day of
month, so the integer key never mixes days from different months.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Iterable, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from presencetrack.core.config import settings
from presencetrack.db.models import AttendanceRecord, PlanningRecord, User
from presencetrack.periods import (
    DEFAULT_LOCALE,
    capitalize_first,
    days_in_month,
    format_hhmm,
    is_weekend,
    month_bounds,
    weekday_name,
)
from presencetrack.schemas.presence import PresenceDay

logger = logging.getLogger(__name__)

TEMPLATE_ROW_CAPACITY = 31
ABSENT_TASK = "Absent"

DayRecord = TypeVar("DayRecord", AttendanceRecord, PlanningRecord)

_SHIFT_RE = re.compile(r"shift\s*([0-2])", re.IGNORECASE)


def parse_shift_index(label: str | None) -> int | None:
    """Extract the 0-2 shift number from labels such as "Shift 1"."""
    if not label:
        return None
    match = _SHIFT_RE.search(label)
    return int(match.group(1)) if match else None


def date_label(day: date, locale: str = DEFAULT_LOCALE) -> str:
    label = f"{day.day:02d} du mois"
    if is_weekend(day):
        label += f" ({capitalize_first(weekday_name(day, locale))})"
    return label


def time_range(record: AttendanceRecord | None) -> str:
    if record is None or record.check_in is None or record.check_out is None:
        return ""
    return f"{format_hhmm(record.check_in)} - {format_hhmm(record.check_out)}"


def _task_for(shift_index: int | None, weekend: bool) -> str:
    # Any recognised shift gets the same text; only the weekend flag matters.
    if shift_index is None:
        return ""
    return settings.PRESENCE_TASK_WEEKEND if weekend else settings.PRESENCE_TASK_WEEKDAY


def _by_day(
    records: Iterable[DayRecord], year: int, month: int
) -> dict[int, DayRecord]:
    keyed: dict[int, DayRecord] = {}
    for rec in records:
        work_date = rec.work_date
        if work_date.year != year or work_date.month != month:
            continue
        # Later rows overwrite earlier ones for the same day
        keyed[work_date.day] = rec
    return keyed


def reconcile_month(
    employee: User,
    year: int,
    month: int,
    attendance: Iterable[AttendanceRecord],
    planning: Iterable[PlanningRecord],
    locale: str = DEFAULT_LOCALE,
    capacity: int = TEMPLATE_ROW_CAPACITY,
) -> list[PresenceDay]:
    """Build ``capacity`` rows for the month; rows past the last day are blank."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")

    attendance_by_day = _by_day(attendance, year, month)
    planning_by_day = _by_day(planning, year, month)
    last_day = days_in_month(year, month)

    rows: list[PresenceDay] = []
    for day_number in range(1, capacity + 1):
        if day_number > last_day:
            rows.append(PresenceDay(day_number=day_number, blank=True))
            continue

        day = date(year, month, day_number)
        weekend = is_weekend(day)
        att = attendance_by_day.get(day_number)
        plan = planning_by_day.get(day_number)
        planned_shift = plan.shift if plan is not None else None
        label = date_label(day, locale)

        if att is not None and att.status == "absent":
            rows.append(
                PresenceDay(
                    day_number=day_number,
                    is_weekend=weekend,
                    is_absent=True,
                    planned_shift=planned_shift,
                    date_label=label,
                    task_text=ABSENT_TASK,
                )
            )
            continue

        shift_index = parse_shift_index(planned_shift)
        real = time_range(att)
        rows.append(
            PresenceDay(
                day_number=day_number,
                is_weekend=weekend,
                planned_shift=planned_shift,
                shift_index=shift_index,
                real_time_range=real or None,
                date_label=label,
                task_text=_task_for(shift_index, weekend),
                time_text=real,
            )
        )

    logger.debug(
        "Reconciled %s %d-%02d: %d days, %d absent",
        employee.employee_code, year, month, last_day,
        sum(1 for row in rows if row.is_absent),
    )
    return rows


async def fetch_month_records(
    db: AsyncSession, employee: User, year: int, month: int
) -> tuple[list[AttendanceRecord], list[PlanningRecord]]:
    """Load the employee's attendance and planning rows for one month."""
    start, end = month_bounds(year, month)

    att_result = await db.execute(
        select(AttendanceRecord)
        .where(
            AttendanceRecord.employee_id == employee.id,
            AttendanceRecord.work_date.between(start, end),
        )
        .order_by(AttendanceRecord.work_date)
    )
    attendance = list(att_result.scalars().all())

    plan_result = await db.execute(
        select(PlanningRecord)
        .where(
            or_(
                PlanningRecord.employee_id == employee.id,
                PlanningRecord.employee_code == employee.employee_code,
            ),
            PlanningRecord.work_date.between(start, end),
        )
        .order_by(PlanningRecord.work_date, PlanningRecord.id)
    )
    planning = list(plan_result.scalars().all())

    logger.debug(
        "Month records for %s %d-%02d: attendance=%d planning=%d",
        employee.employee_code, year, month, len(attendance), len(planning),
    )
    return attendance, planning


async def build_month_rows(
    db: AsyncSession,
    employee: User,
    year: int,
    month: int,
    locale: str | None = None,
) -> list[PresenceDay]:
    attendance, planning = await fetch_month_records(db, employee, year, month)
    return reconcile_month(
        employee, year, month, attendance, planning, locale or settings.REPORT_LOCALE
    )
