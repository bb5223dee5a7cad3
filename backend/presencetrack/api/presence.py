import math
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from presencetrack.core.middleware import get_current_user, require_role
from presencetrack.db.models import PresenceSheet, User
from presencetrack.db.session import get_db
from presencetrack.schemas.presence import (
    GenerateAllRequest,
    GenerateAllResult,
    PresenceSheetResponse,
)
from presencetrack.services import presence_sheets
from presencetrack.services.presence_sheets import XLSX_MEDIA_TYPE, build_file_name

router = APIRouter()


def _xlsx_response(data: bytes, filename: str) -> Response:
    return Response(
        content=data,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _to_response(record: PresenceSheet) -> PresenceSheetResponse:
    employee = record.employee
    generator = record.generator
    return PresenceSheetResponse(
        id=record.id,
        employee_id=record.employee_id,
        employee_code=employee.employee_code if employee else None,
        employee_name=employee.full_name if employee else None,
        department=employee.department if employee else None,
        year=record.year,
        month=record.month,
        file_name=record.file_name,
        file_path=record.file_path,
        generated_by=record.generated_by,
        generated_by_name=(generator.full_name or generator.username) if generator else None,
        generated_at=record.generated_at,
        size=record.size,
    )


@router.get("/my", summary="Download own presence sheet (generated on the fly)")
async def download_my_sheet(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    data = await presence_sheets.generate_presence_workbook(db, current_user, year, month)
    return _xlsx_response(data, build_file_name(current_user.employee_code, year, month))


@router.get(
    "/admin/user/{user_id}",
    summary="Generate, store and download an employee's presence sheet (admin)",
)
async def generate_for_user(
    user_id: uuid.UUID,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role("admin")),
) -> Response:
    employee = await db.get(User, user_id)
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Employee not found",
        )

    record, data = await presence_sheets.generate_and_store(
        db, employee, year, month, current_user.id
    )
    return _xlsx_response(data, record.file_name)


@router.post(
    "/admin/generate-all",
    response_model=GenerateAllResult,
    summary="Generate and store sheets for all active employees (admin)",
)
async def generate_all(
    body: GenerateAllRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role("admin")),
) -> GenerateAllResult:
    department = (body.department or "").strip() or None
    return await presence_sheets.generate_all(
        db, body.year, body.month, department, current_user.id
    )


@router.get("/admin/records", summary="List stored presence sheets (admin, paginated)")
async def list_records(
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    employee_id: uuid.UUID | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> dict:
    total, records = await presence_sheets.list_records(
        db, year, month, employee_id, page, per_page
    )
    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": math.ceil(total / per_page) if total > 0 else 1,
        "items": [_to_response(r) for r in records],
    }


@router.get(
    "/admin/records/{record_id}/download",
    summary="Download a stored presence sheet (admin)",
)
async def download_record(
    record_id: int,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> FileResponse:
    record = await presence_sheets.get_record(db, record_id)
    path = presence_sheets.resolve_stored_file(record)
    return FileResponse(path, media_type=XLSX_MEDIA_TYPE, filename=record.file_name)
