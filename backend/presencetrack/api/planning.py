import io
import logging
import math
from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, status
from fastapi.responses import Response
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from presencetrack.core.config import settings
from presencetrack.core.middleware import get_current_user, require_role
from presencetrack.db.models import ImportHistory, PlanningRecord, User
from presencetrack.db.session import get_db
from presencetrack.periods import local_today, month_bounds
from presencetrack.schemas.planning import (
    PlanningImportResult,
    PlanningResponse,
    PlanningUpdate,
)
from presencetrack.services import planning as planning_service
from presencetrack.services.planning_parser import (
    build_planning_template,
    parse_planning_excel,
)
from presencetrack.services.presence_sheets import XLSX_MEDIA_TYPE

logger = logging.getLogger(__name__)

router = APIRouter()

_ALLOWED_EXTENSIONS = {".xlsx", ".xls"}


def _file_extension(filename: str | None) -> str:
    if not filename:
        return ""
    idx = filename.rfind(".")
    return filename[idx:].lower() if idx != -1 else ""


async def _page(db: AsyncSession, filters: list, page: int, per_page: int) -> dict:
    total = (
        await db.execute(select(func.count(PlanningRecord.id)).where(*filters))
    ).scalar_one()
    result = await db.execute(
        select(PlanningRecord)
        .where(*filters)
        .order_by(PlanningRecord.work_date, PlanningRecord.employee_code, PlanningRecord.id)
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": math.ceil(total / per_page) if total > 0 else 1,
        "items": [PlanningResponse.model_validate(p) for p in result.scalars().all()],
    }


@router.post(
    "/upload",
    response_model=PlanningImportResult,
    summary="Upload planning Excel file",
)
async def upload_planning(
    file: UploadFile,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role("admin")),
) -> PlanningImportResult:
    ext = _file_extension(file.filename)
    logger.info("Planning upload: '%s' (extension '%s', user %s)", file.filename, ext, current_user.id)

    if ext not in _ALLOWED_EXTENSIONS:
        logger.warning("Rejected file '%s': unsupported extension '%s'", file.filename, ext)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type '{ext}'. Allowed: {', '.join(sorted(_ALLOWED_EXTENSIONS))}",
        )

    content = await file.read()
    if len(content) > settings.MAX_UPLOAD_SIZE_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Uploaded file is too large",
        )

    rows, errors = parse_planning_excel(io.BytesIO(content))
    total = len(rows) + len(errors)

    batch_id = None
    inserted = linked = 0
    if rows:
        batch_id, inserted, linked = await planning_service.save_planning_rows(
            db, rows, current_user.id
        )

    if inserted == 0:
        import_status = "failed"
    elif errors:
        import_status = "partial"
    else:
        import_status = "success"

    logger.info(
        "Planning import finished [%s]: status=%s total=%d inserted=%d linked=%d errors=%d",
        file.filename, import_status, total, inserted, linked, len(errors),
    )

    db.add(
        ImportHistory(
            filename=file.filename or "unknown",
            batch_id=batch_id,
            uploaded_by=current_user.id,
            uploaded_at=datetime.now(timezone.utc),
            status=import_status,
            logs={
                "total": total,
                "inserted": inserted,
                "linked": linked,
                "errors": errors[:100],
            },
        )
    )
    await db.commit()

    return PlanningImportResult(
        filename=file.filename or "unknown",
        batch_id=batch_id,
        total=total,
        inserted_count=inserted,
        linked_count=linked,
        error_count=len(errors),
        errors=errors,
        status=import_status,
    )


@router.get("/template", summary="Download an example planning workbook")
async def download_template(
    _current_user: User = Depends(require_role("admin")),
) -> Response:
    return Response(
        content=build_planning_template(local_today()),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="planning_template.xlsx"'},
    )


@router.get(
    "/history",
    summary="List planning import history (paginated)",
)
async def list_history(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> dict:
    total = (await db.execute(select(func.count(ImportHistory.id)))).scalar_one()
    result = await db.execute(
        select(ImportHistory)
        .options(selectinload(ImportHistory.uploader))
        .order_by(ImportHistory.uploaded_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )

    items = [
        {
            "id": h.id,
            "filename": h.filename,
            "batch_id": h.batch_id,
            "uploaded_by": str(h.uploaded_by) if h.uploaded_by else None,
            "uploaded_by_name": (h.uploader.full_name or h.uploader.username) if h.uploader else None,
            "uploaded_at": h.uploaded_at.isoformat(),
            "status": h.status,
            "logs": h.logs,
        }
        for h in result.scalars().all()
    ]

    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": math.ceil(total / per_page) if total > 0 else 1,
        "items": items,
    }


@router.get("/my", summary="Own planning (defaults to the current month)")
async def my_planning(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=31, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    if date_from is None and date_to is None:
        today = local_today()
        date_from, date_to = month_bounds(today.year, today.month)

    filters = [
        or_(
            PlanningRecord.employee_id == current_user.id,
            PlanningRecord.employee_code == current_user.employee_code,
        )
    ]
    if date_from:
        filters.append(PlanningRecord.work_date >= date_from)
    if date_to:
        filters.append(PlanningRecord.work_date <= date_to)
    return await _page(db, filters, page, per_page)


@router.get("/", summary="All planning entries (admin, paginated)")
async def list_planning(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    employee_code: str | None = Query(default=None),
    shift: str | None = Query(default=None),
    department: str | None = Query(default=None),
    batch_id: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> dict:
    filters = []
    if date_from:
        filters.append(PlanningRecord.work_date >= date_from)
    if date_to:
        filters.append(PlanningRecord.work_date <= date_to)
    if employee_code:
        filters.append(PlanningRecord.employee_code.ilike(f"%{employee_code}%"))
    if shift:
        filters.append(PlanningRecord.shift.ilike(f"%{shift}%"))
    if batch_id:
        filters.append(PlanningRecord.upload_batch == batch_id)
    if department:
        filters.append(
            PlanningRecord.employee_id.in_(
                select(User.id).where(User.department == department)
            )
        )
    return await _page(db, filters, page, per_page)


@router.put(
    "/{entry_id}",
    response_model=PlanningResponse,
    summary="Edit a planning entry (admin)",
)
async def update_planning(
    entry_id: int,
    body: PlanningUpdate,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> PlanningResponse:
    entry = await planning_service.update_entry(db, entry_id, body)
    return PlanningResponse.model_validate(entry)


@router.delete(
    "/batch/{batch_id}",
    summary="Delete every entry of one upload batch (admin)",
)
async def delete_planning_batch(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> dict:
    deleted = await planning_service.delete_batch(db, batch_id)
    return {"batch_id": batch_id, "deleted": deleted}


@router.delete(
    "/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a planning entry (admin)",
)
async def delete_planning(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> None:
    await planning_service.delete_entry(db, entry_id)
