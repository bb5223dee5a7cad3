"""
Dashboard aggregates over ``attendance_records``.

Statuses are grouped in SQL; ``count_statuses`` maps the (status, count)
rows onto response fields for every view.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from presencetrack.core.config import settings
from presencetrack.db.models import AttendanceRecord, PlanningRecord, User
from presencetrack.periods import capitalize_first, month_bounds, week_bounds, weekday_name
from presencetrack.schemas.stats import (
    DashboardStats,
    DayStatusCounts,
    DepartmentStats,
    EmployeeCounts,
    MonthlyOverview,
    RecentCheckIn,
    StatusCounts,
    TodayOverview,
    TodaySummary,
    TopPerformer,
    WeeklySummary,
)

logger = logging.getLogger(__name__)

RECENT_CHECK_INS = 10
TOP_PERFORMERS = 5

STATUS_FIELDS = {
    "present": "present",
    "absent": "absent",
    "late": "late",
    "half-day": "half_day",
    "on-leave": "on_leave",
    "pending-absence": "pending",
}

Counts = TypeVar("Counts", bound=StatusCounts)


def count_statuses(rows: Iterable[tuple[str, int]], into: Counts) -> Counts:
    for status, count in rows:
        into.total += count
        field = STATUS_FIELDS.get(status)
        if field is not None:
            setattr(into, field, getattr(into, field) + count)
    return into


async def status_counts(
    db: AsyncSession, start: date | None, end: date | None
) -> list[tuple[str, int]]:
    """(status, count) pairs for work dates in [start, end]; None leaves a side open."""
    filters = []
    if start is not None:
        filters.append(AttendanceRecord.work_date >= start)
    if end is not None:
        filters.append(AttendanceRecord.work_date <= end)
    result = await db.execute(
        select(AttendanceRecord.status, func.count(AttendanceRecord.id))
        .where(*filters)
        .group_by(AttendanceRecord.status)
    )
    return [(status, count) for status, count in result.all()]


async def employee_counts(db: AsyncSession) -> EmployeeCounts:
    result = await db.execute(
        select(
            func.count(User.id),
            func.count(User.id).filter(User.is_active.is_(True)),
        ).where(User.role == "employee")
    )
    total, active = result.one()
    return EmployeeCounts(total=total, active=active, inactive=total - active)


async def scheduled_shift_count(db: AsyncSession, day: date) -> int:
    result = await db.execute(
        select(func.count(PlanningRecord.id)).where(PlanningRecord.work_date == day)
    )
    return result.scalar_one()


async def dashboard_stats(db: AsyncSession, today: date) -> DashboardStats:
    employees = await employee_counts(db)
    today_rows = await status_counts(db, today, today)
    month_rows = await status_counts(db, *month_bounds(today.year, today.month))
    scheduled = await scheduled_shift_count(db, today)

    overview = count_statuses(today_rows, TodayOverview(scheduled_shifts=scheduled))
    overview.checked_in = overview.present + overview.late
    overview.not_checked_in = max(employees.active - overview.checked_in, 0)

    return DashboardStats(
        date=today,
        employees=employees,
        today=overview,
        monthly=count_statuses(month_rows, StatusCounts()),
    )


async def today_summary(db: AsyncSession, today: date) -> TodaySummary:
    rows = await status_counts(db, today, today)
    result = await db.execute(
        select(AttendanceRecord, User)
        .join(User, User.id == AttendanceRecord.employee_id)
        .where(AttendanceRecord.work_date == today)
        .order_by(AttendanceRecord.check_in.desc().nulls_last())
        .limit(RECENT_CHECK_INS)
    )
    recent = [
        RecentCheckIn(
            employee_code=user.employee_code,
            full_name=user.full_name,
            department=user.department,
            status=record.status,
            check_in=record.check_in,
            check_out=record.check_out,
        )
        for record, user in result.all()
    ]
    return TodaySummary(
        date=today, stats=count_statuses(rows, StatusCounts()), recent_check_ins=recent
    )


async def weekly_summary(
    db: AsyncSession, today: date, locale: str | None = None
) -> WeeklySummary:
    locale = locale or settings.REPORT_LOCALE
    start, end = week_bounds(today)
    result = await db.execute(
        select(
            AttendanceRecord.work_date,
            AttendanceRecord.status,
            func.count(AttendanceRecord.id),
        )
        .where(AttendanceRecord.work_date.between(start, end))
        .group_by(AttendanceRecord.work_date, AttendanceRecord.status)
    )
    by_day: dict[date, list[tuple[str, int]]] = defaultdict(list)
    for work_date, status, count in result.all():
        by_day[work_date].append((status, count))

    days = []
    for offset in range(7):
        day = start + timedelta(days=offset)
        counts = DayStatusCounts(date=day, day=capitalize_first(weekday_name(day, locale)))
        days.append(count_statuses(by_day.get(day, []), counts))
    return WeeklySummary(start=start, end=end, days=days)


async def monthly_overview(db: AsyncSession, year: int, month: int) -> MonthlyOverview:
    start, end = month_bounds(year, month)
    in_month = AttendanceRecord.work_date.between(start, end)
    rows = await status_counts(db, start, end)

    present_days = func.count(AttendanceRecord.id).label("present_days")
    total_hours = func.coalesce(func.sum(AttendanceRecord.work_hours), 0.0).label("total_hours")
    top_result = await db.execute(
        select(
            User.id,
            User.employee_code,
            User.full_name,
            User.department,
            present_days,
            total_hours,
        )
        .select_from(AttendanceRecord)
        .join(User, User.id == AttendanceRecord.employee_id)
        .where(in_month, AttendanceRecord.status == "present")
        .group_by(User.id)
        .order_by(present_days.desc(), total_hours.desc())
        .limit(TOP_PERFORMERS)
    )
    top = [
        TopPerformer(
            employee_id=employee_id,
            employee_code=code,
            full_name=name,
            department=department,
            present_days=days,
            total_hours=round(float(hours), 2),
        )
        for employee_id, code, name, department, days, hours in top_result.all()
    ]

    records = func.count(AttendanceRecord.id).label("records")
    dept_result = await db.execute(
        select(
            User.department,
            records,
            func.count(AttendanceRecord.id).filter(AttendanceRecord.status == "present"),
            func.count(AttendanceRecord.id).filter(AttendanceRecord.status == "late"),
        )
        .select_from(AttendanceRecord)
        .join(User, User.id == AttendanceRecord.employee_id)
        .where(in_month)
        .group_by(User.department)
        .order_by(records.desc())
    )
    departments = [
        DepartmentStats(department=department, total=total, present=present, late=late)
        for department, total, present, late in dept_result.all()
    ]

    logger.debug(
        "Monthly overview %d-%02d: records=%d departments=%d",
        year, month, sum(count for _, count in rows), len(departments),
    )
    return MonthlyOverview(
        month=f"{year}-{month:02d}",
        stats=count_statuses(rows, StatusCounts()),
        top_performers=top,
        departments=departments,
    )
