"""
Generation and storage of monthly presence sheets.

One stored file and one ``presence_sheets`` row per (employee, year, month);
regenerating overwrites both.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from presencetrack.core.config import settings
from presencetrack.core.errors import NotFoundError
from presencetrack.db.models import PresenceSheet, User
from presencetrack.periods import period_label
from presencetrack.schemas.presence import GenerateAllResult, GenerationFailure
from presencetrack.services import reconciliation
from presencetrack.services.presence_template import render_presence_sheet

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def build_file_name(employee_code: str, year: int, month: int) -> str:
    return f"Feuille_de_presence_{employee_code}_{year}-{month:02d}.xlsx"


def build_storage_path(employee_code: str, year: int, month: int) -> Path:
    folder = Path(settings.PRESENCE_STORAGE_ROOT) / "presence" / f"{year}-{month:02d}"
    return folder / build_file_name(employee_code, year, month)


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


async def generate_presence_workbook(
    db: AsyncSession,
    employee: User,
    year: int,
    month: int,
    locale: str | None = None,
) -> bytes:
    """Reconcile the month and render it into the template; nothing is stored."""
    locale = locale or settings.REPORT_LOCALE
    rows = await reconciliation.build_month_rows(db, employee, year, month, locale)
    return await asyncio.to_thread(
        render_presence_sheet,
        employee.full_name,
        period_label(year, month, locale),
        rows,
    )


def build_upsert_statement(values: dict):
    """INSERT .. ON CONFLICT (employee_id, year, month) DO UPDATE .. RETURNING."""
    stmt = pg_insert(PresenceSheet).values(**values)
    stmt = stmt.on_conflict_do_update(
        constraint="uq_presence_sheet_employee_period",
        set_={
            "file_name": stmt.excluded.file_name,
            "file_path": stmt.excluded.file_path,
            "generated_by": stmt.excluded.generated_by,
            "generated_at": stmt.excluded.generated_at,
            "size": stmt.excluded.size,
        },
    ).returning(PresenceSheet)
    return stmt


async def upsert_presence_sheet(db: AsyncSession, values: dict) -> PresenceSheet:
    stmt = build_upsert_statement(values)
    result = await db.scalars(stmt, execution_options={"populate_existing": True})
    record = result.one()
    await db.commit()
    return record


async def generate_and_store(
    db: AsyncSession,
    employee: User,
    year: int,
    month: int,
    generated_by: uuid.UUID | None,
) -> tuple[PresenceSheet, bytes]:
    data = await generate_presence_workbook(db, employee, year, month)

    path = build_storage_path(employee.employee_code, year, month)
    await asyncio.to_thread(_write_file, path, data)

    record = await upsert_presence_sheet(
        db,
        {
            "employee_id": employee.id,
            "year": year,
            "month": month,
            "file_name": path.name,
            "file_path": str(path),
            "generated_by": generated_by,
            "generated_at": datetime.now(timezone.utc),
            "size": len(data),
        },
    )
    logger.info(
        "Presence sheet stored: employee=%s period=%d-%02d size=%d path=%s",
        employee.employee_code, year, month, len(data), path,
    )
    return record, data


async def list_active_employees(
    db: AsyncSession, department: str | None = None
) -> list[User]:
    stmt = select(User).where(User.role == "employee", User.is_active.is_(True))
    if department:
        stmt = stmt.where(User.department == department)
    result = await db.execute(stmt.order_by(User.full_name))
    return list(result.scalars().all())


async def generate_all(
    db: AsyncSession,
    year: int,
    month: int,
    department: str | None,
    generated_by: uuid.UUID | None,
) -> GenerateAllResult:
    """Generate sheets for every active employee; one failure never stops the batch."""
    employees = await list_active_employees(db, department)
    # A failed employee rolls the session back, which expires everything it
    # holds; detached rows keep their loaded columns for the rest of the batch.
    for employee in employees:
        db.expunge(employee)

    generated = 0
    errors: list[GenerationFailure] = []
    for employee in employees:
        try:
            await generate_and_store(db, employee, year, month, generated_by)
            generated += 1
        except Exception as exc:
            logger.exception(
                "Presence sheet generation failed: employee=%s period=%d-%02d",
                employee.employee_code, year, month,
            )
            await db.rollback()
            errors.append(
                GenerationFailure(
                    employee_code=employee.employee_code,
                    name=employee.full_name,
                    message=getattr(exc, "message", None) or str(exc),
                )
            )

    logger.info(
        "Bulk generation %d-%02d (department=%s): total=%d generated=%d failed=%d",
        year, month, department or "*", len(employees), generated, len(errors),
    )
    return GenerateAllResult(
        year=year,
        month=month,
        department=department,
        total_employees=len(employees),
        generated=generated,
        failed=len(errors),
        errors=errors,
    )


async def list_records(
    db: AsyncSession,
    year: int | None = None,
    month: int | None = None,
    employee_id: uuid.UUID | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[int, list[PresenceSheet]]:
    filters = []
    if year is not None:
        filters.append(PresenceSheet.year == year)
    if month is not None:
        filters.append(PresenceSheet.month == month)
    if employee_id is not None:
        filters.append(PresenceSheet.employee_id == employee_id)

    total = (
        await db.execute(select(func.count(PresenceSheet.id)).where(*filters))
    ).scalar_one()

    result = await db.execute(
        select(PresenceSheet)
        .where(*filters)
        .options(selectinload(PresenceSheet.employee), selectinload(PresenceSheet.generator))
        .order_by(
            PresenceSheet.year.desc(),
            PresenceSheet.month.desc(),
            PresenceSheet.generated_at.desc(),
        )
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return total, list(result.scalars().all())


async def get_record(db: AsyncSession, record_id: int) -> PresenceSheet:
    record = await db.get(PresenceSheet, record_id)
    if record is None:
        raise NotFoundError("Presence sheet record not found")
    return record


def resolve_stored_file(record: PresenceSheet) -> Path:
    path = Path(record.file_path)
    if not path.is_file():
        logger.warning(
            "Stored presence sheet missing on disk: record=%s path=%s", record.id, path
        )
        raise NotFoundError("Stored file not found on disk. Please regenerate.")
    return path
