"""
Daily attendance state machine.

One ``AttendanceRecord`` per employee per local calendar day:

    none -> present | late -> (check_out set, status kept)
    none -> pending-absence -> absent | deleted

The ``apply_*`` helpers mutate a record in memory and hold the transition
rules; the async functions around them load and persist records.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from presencetrack.core.config import settings
from presencetrack.core.errors import BadRequestError, ForbiddenError, NotFoundError
from presencetrack.db.models import AttendanceRecord, User
from presencetrack.periods import (
    days_in_month,
    month_bounds,
    parse_hhmm,
    to_local,
)
from presencetrack.schemas.attendance import (
    AttendanceUpdate,
    LocationPayload,
    MonthlySummary,
)
from presencetrack.services.geo import distance_m

logger = logging.getLogger(__name__)

_ABSENCE_STATUSES = frozenset({"absent", "pending-absence"})


# ---------------------------------------------------------------------------
# Pure rules
# ---------------------------------------------------------------------------


def compute_hours(check_in: datetime, check_out: datetime) -> tuple[float, float]:
    """Return (work_hours, overtime_hours), both >= 0 and rounded to 2 decimals."""
    worked = round(max(0.0, (check_out - check_in).total_seconds() / 3600), 2)
    overtime = round(max(0.0, worked - settings.STANDARD_WORK_HOURS), 2)
    return worked, overtime


def recompute_hours(record: AttendanceRecord) -> None:
    if record.check_in is not None and record.check_out is not None:
        record.work_hours, record.overtime_hours = compute_hours(
            record.check_in, record.check_out
        )


def late_cutoff() -> tuple[int, int]:
    base = parse_hhmm(settings.LATE_THRESHOLD_TIME)
    total = base.hour * 60 + base.minute + settings.LATE_GRACE_MINUTES
    return divmod(total, 60)


def is_late(check_in: datetime) -> bool:
    """True when the local check-in time is strictly after the daily cutoff."""
    local = to_local(check_in)
    hour, minute = late_cutoff()
    cutoff = local.replace(hour=hour, minute=minute, second=0, microsecond=0)
    return local > cutoff


def ensure_within_geofence(location: LocationPayload | None) -> float | None:
    """Enforce the company geofence when enabled; return the measured distance."""
    if not settings.REQUIRE_GEOFENCE:
        return None

    if location is None or location.latitude is None or location.longitude is None:
        raise BadRequestError("Location is required to check in.")

    radius = settings.CHECKIN_RADIUS_METERS
    dist = distance_m(
        location.latitude, location.longitude, settings.COMPANY_LAT, settings.COMPANY_LNG
    )
    if dist > radius:
        raise ForbiddenError(
            f"You must be within {radius:.0f}m of the company to check in. "
            f"Current distance: {round(dist)}m."
        )
    return dist


def _location_snapshot(location: LocationPayload | None) -> dict | None:
    if location is None:
        return None
    return {
        "latitude": location.latitude,
        "longitude": location.longitude,
        "address": location.address or "",
    }


def apply_check_in(
    record: AttendanceRecord,
    now: datetime,
    location: LocationPayload | None = None,
    notes: str | None = None,
) -> AttendanceRecord:
    if record.status in _ABSENCE_STATUSES:
        raise BadRequestError("You have marked absence for today. Cannot check in.")
    if record.check_in is not None:
        raise BadRequestError("Already checked in today")

    record.check_in = now
    record.status = "late" if is_late(now) else "present"
    if notes:
        record.notes = notes
    if location is not None:
        record.check_in_location = _location_snapshot(location)
    return record


def apply_check_out(
    record: AttendanceRecord,
    now: datetime,
    location: LocationPayload | None = None,
    notes: str | None = None,
) -> AttendanceRecord:
    if record.status in _ABSENCE_STATUSES:
        raise BadRequestError("Marked as absent. Cannot check out.")
    if record.check_in is None:
        raise BadRequestError("Must check in before checking out")
    if record.check_out is not None:
        raise BadRequestError("Already checked out today")

    record.check_out = now
    recompute_hours(record)
    if location is not None:
        record.check_out_location = _location_snapshot(location)
    if notes:
        record.notes = f"{record.notes}; {notes}" if record.notes else notes
    return record


def summarize_month(
    records: list[AttendanceRecord], year: int, month: int
) -> MonthlySummary:
    summary = MonthlySummary(
        total_days=days_in_month(year, month),
        recorded_days=len(records),
    )
    counters = {
        "present": "present",
        "absent": "absent",
        "late": "late",
        "half-day": "half_day",
        "on-leave": "on_leave",
    }
    total_hours = 0.0
    total_overtime = 0.0
    for rec in records:
        field = counters.get(rec.status)
        if field is None:
            # pending-absence is not counted until it is approved
            continue
        setattr(summary, field, getattr(summary, field) + 1)
        total_hours += rec.work_hours or 0.0
        total_overtime += rec.overtime_hours or 0.0

    summary.total_work_hours = round(total_hours, 2)
    summary.total_overtime_hours = round(total_overtime, 2)
    if records:
        summary.average_work_hours = round(total_hours / len(records), 2)
    return summary


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def get_day_record(
    db: AsyncSession, employee_id: uuid.UUID, work_date: date
) -> AttendanceRecord | None:
    result = await db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.work_date == work_date,
        )
    )
    return result.scalar_one_or_none()


async def get_record(db: AsyncSession, record_id: int) -> AttendanceRecord:
    record = await db.get(AttendanceRecord, record_id)
    if record is None:
        raise NotFoundError("Attendance record not found")
    return record


async def check_in(
    db: AsyncSession,
    employee: User,
    location: LocationPayload | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> AttendanceRecord:
    ensure_within_geofence(location)

    now = now or _utcnow()
    today = to_local(now).date()
    record = await get_day_record(db, employee.id, today)
    if record is None:
        record = AttendanceRecord(employee_id=employee.id, work_date=today, notes="")
        db.add(record)

    apply_check_in(record, now, location, notes)

    try:
        await db.commit()
    except IntegrityError:
        # A parallel request inserted today's record first
        await db.rollback()
        raise BadRequestError("Already checked in today") from None

    await db.refresh(record)
    logger.info(
        "Check-in: employee=%s date=%s status=%s", employee.employee_code, today, record.status
    )
    return record


async def check_out(
    db: AsyncSession,
    employee: User,
    location: LocationPayload | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> AttendanceRecord:
    now = now or _utcnow()
    today = to_local(now).date()
    record = await get_day_record(db, employee.id, today)
    if record is None:
        raise BadRequestError("No check-in found for today")

    apply_check_out(record, now, location, notes)
    await db.commit()
    await db.refresh(record)
    logger.info(
        "Check-out: employee=%s date=%s work_hours=%.2f",
        employee.employee_code, today, record.work_hours,
    )
    return record


async def mark_absent(
    db: AsyncSession,
    employee: User,
    notes: str | None = None,
    now: datetime | None = None,
) -> AttendanceRecord:
    today = to_local(now or _utcnow()).date()
    record = await get_day_record(db, employee.id, today)
    if record is None:
        record = AttendanceRecord(employee_id=employee.id, work_date=today, notes="")
        db.add(record)
    elif record.check_in is not None:
        raise BadRequestError("Cannot mark absent: Already checked in today.")

    record.status = "pending-absence"
    record.check_in = None
    record.check_out = None
    record.work_hours = 0.0
    record.overtime_hours = 0.0
    if notes:
        record.notes = notes

    await db.commit()
    await db.refresh(record)
    logger.info("Absence declared: employee=%s date=%s", employee.employee_code, today)
    return record


async def approve_absence(db: AsyncSession, record_id: int) -> AttendanceRecord:
    record = await get_record(db, record_id)
    if record.status != "pending-absence":
        raise BadRequestError("This record is not pending approval")

    record.status = "absent"
    await db.commit()
    await db.refresh(record)
    logger.info("Absence approved: record=%d", record_id)
    return record


async def reject_absence(db: AsyncSession, record_id: int) -> None:
    record = await get_record(db, record_id)
    if record.status != "pending-absence":
        raise BadRequestError("This record is not pending approval")

    await db.delete(record)
    await db.commit()
    logger.info("Absence rejected: record=%d", record_id)


async def update_record(
    db: AsyncSession, record_id: int, body: AttendanceUpdate
) -> AttendanceRecord:
    record = await get_record(db, record_id)
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(record, field, value)

    if record.check_in is not None and record.check_out is not None:
        if record.check_out < record.check_in:
            raise BadRequestError("Check-out must be after check-in")
        recompute_hours(record)
    else:
        record.work_hours = 0.0
        record.overtime_hours = 0.0

    await db.commit()
    await db.refresh(record)
    return record


async def delete_record(db: AsyncSession, record_id: int) -> None:
    record = await get_record(db, record_id)
    await db.delete(record)
    await db.commit()


async def monthly_summary(
    db: AsyncSession, employee_id: uuid.UUID, year: int, month: int
) -> tuple[MonthlySummary, list[AttendanceRecord]]:
    start, end = month_bounds(year, month)
    result = await db.execute(
        select(AttendanceRecord)
        .where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.work_date.between(start, end),
        )
        .order_by(AttendanceRecord.work_date)
    )
    records = list(result.scalars().all())
    return summarize_month(records, year, month), records
