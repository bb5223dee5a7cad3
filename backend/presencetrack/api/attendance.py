import math
import uuid
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from presencetrack.core.middleware import get_current_user, require_role
from presencetrack.db.models import AttendanceRecord, User
from presencetrack.db.session import get_db
from presencetrack.periods import local_today
from presencetrack.schemas.attendance import (
    AbsenceRequest,
    AttendanceResponse,
    AttendanceStatus,
    AttendanceUpdate,
    CheckRequest,
    MonthlyReportResponse,
)
from presencetrack.schemas.stats import StatusCounts
from presencetrack.services import attendance as attendance_service
from presencetrack.services import stats as stats_service

router = APIRouter()


def _check_range(date_from: date | None, date_to: date | None) -> None:
    if date_from and date_to and date_from > date_to:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="date_from must be before date_to",
        )


def _date_filters(
    date_from: date | None, date_to: date | None
) -> list:
    _check_range(date_from, date_to)
    filters = []
    if date_from:
        filters.append(AttendanceRecord.work_date >= date_from)
    if date_to:
        filters.append(AttendanceRecord.work_date <= date_to)
    return filters


async def _paginate(
    db: AsyncSession, filters: list, page: int, per_page: int, order: Literal["asc", "desc"]
) -> dict:
    total = (
        await db.execute(
            select(func.count(AttendanceRecord.id))
            .join(User, User.id == AttendanceRecord.employee_id)
            .where(*filters)
        )
    ).scalar_one()

    order_by = (
        AttendanceRecord.work_date.asc() if order == "asc" else AttendanceRecord.work_date.desc()
    )
    result = await db.execute(
        select(AttendanceRecord)
        .join(User, User.id == AttendanceRecord.employee_id)
        .where(*filters)
        .order_by(order_by, User.full_name)
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": math.ceil(total / per_page) if total > 0 else 1,
        "items": [AttendanceResponse.model_validate(r) for r in result.scalars().all()],
    }


@router.post(
    "/check-in",
    response_model=AttendanceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Check in for today",
)
async def check_in(
    body: CheckRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AttendanceResponse:
    record = await attendance_service.check_in(db, current_user, body.location, body.notes)
    return AttendanceResponse.model_validate(record)


@router.post(
    "/check-out",
    response_model=AttendanceResponse,
    summary="Check out for today",
)
async def check_out(
    body: CheckRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AttendanceResponse:
    record = await attendance_service.check_out(db, current_user, body.location, body.notes)
    return AttendanceResponse.model_validate(record)


@router.post(
    "/absent",
    response_model=AttendanceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Declare today as absent (pending admin approval)",
)
async def mark_absent(
    body: AbsenceRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AttendanceResponse:
    record = await attendance_service.mark_absent(db, current_user, body.notes)
    return AttendanceResponse.model_validate(record)


@router.get(
    "/today",
    response_model=AttendanceResponse | None,
    summary="Today's record for the current user",
)
async def today(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AttendanceResponse | None:
    record = await attendance_service.get_day_record(db, current_user.id, local_today())
    return AttendanceResponse.model_validate(record) if record else None


@router.get("/my", summary="Own attendance history (paginated)")
async def my_attendance(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=31, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    filters = [AttendanceRecord.employee_id == current_user.id]
    filters += _date_filters(date_from, date_to)
    return await _paginate(db, filters, page, per_page, "desc")


@router.get("/", summary="All attendance records (admin, paginated)")
async def list_attendance(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    status_filter: AttendanceStatus | None = Query(default=None, alias="status"),
    employee_id: uuid.UUID | None = Query(default=None),
    department: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> dict:
    filters = _date_filters(date_from, date_to)
    if status_filter:
        filters.append(AttendanceRecord.status == status_filter)
    if employee_id:
        filters.append(AttendanceRecord.employee_id == employee_id)
    if department:
        filters.append(User.department == department)
    return await _paginate(db, filters, page, per_page, "desc")


@router.get(
    "/stats",
    response_model=StatusCounts,
    summary="Status counts over a date range (admin)",
)
async def attendance_stats(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> StatusCounts:
    _check_range(date_from, date_to)
    rows = await stats_service.status_counts(db, date_from, date_to)
    return stats_service.count_statuses(rows, StatusCounts())


@router.get(
    "/report",
    response_model=MonthlyReportResponse,
    summary="Monthly attendance summary for one employee (admin)",
)
async def monthly_report(
    employee_id: uuid.UUID = Query(...),
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> MonthlyReportResponse:
    summary, records = await attendance_service.monthly_summary(db, employee_id, year, month)
    return MonthlyReportResponse(
        summary=summary,
        records=[AttendanceResponse.model_validate(r) for r in records],
    )


@router.post(
    "/{record_id}/approve",
    response_model=AttendanceResponse,
    summary="Approve a pending absence (admin)",
)
async def approve_absence(
    record_id: int,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> AttendanceResponse:
    record = await attendance_service.approve_absence(db, record_id)
    return AttendanceResponse.model_validate(record)


@router.post(
    "/{record_id}/reject",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reject a pending absence (admin); the record is deleted",
)
async def reject_absence(
    record_id: int,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> None:
    await attendance_service.reject_absence(db, record_id)


@router.put(
    "/{record_id}",
    response_model=AttendanceResponse,
    summary="Edit an attendance record (admin)",
)
async def update_attendance(
    record_id: int,
    body: AttendanceUpdate,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> AttendanceResponse:
    record = await attendance_service.update_record(db, record_id, body)
    return AttendanceResponse.model_validate(record)


@router.delete(
    "/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an attendance record (admin)",
)
async def delete_attendance(
    record_id: int,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> None:
    await attendance_service.delete_record(db, record_id)
