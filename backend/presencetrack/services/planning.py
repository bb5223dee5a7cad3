"""
Planning store: batch import, manual edits and linking rows to employees.

Rows always carry ``employee_code``; ``employee_id`` stays NULL until an
employee with that code exists and ``relink_orphan_planning`` runs for it.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from presencetrack.core.errors import NotFoundError
from presencetrack.db.models import PlanningRecord, User
from presencetrack.schemas.planning import PlanningRow, PlanningUpdate

logger = logging.getLogger(__name__)


async def _employee_ids_by_code(db: AsyncSession, codes: set[str]) -> dict[str, uuid.UUID]:
    if not codes:
        return {}
    result = await db.execute(
        select(User.employee_code, User.id).where(User.employee_code.in_(codes))
    )
    return {code.upper(): emp_id for code, emp_id in result.all()}


async def save_planning_rows(
    db: AsyncSession,
    rows: list[PlanningRow],
    uploaded_by: uuid.UUID | None,
) -> tuple[str, int, int]:
    """Insert parsed rows under a new batch id.

    Returns (batch_id, inserted, linked). The caller commits.
    """
    batch_id = str(uuid.uuid4())
    ids_by_code = await _employee_ids_by_code(db, {r.employee_code for r in rows})

    linked = 0
    for row in rows:
        employee_id = ids_by_code.get(row.employee_code)
        if employee_id is not None:
            linked += 1
        db.add(
            PlanningRecord(
                employee_id=employee_id,
                employee_code=row.employee_code,
                employee_name=row.employee_name,
                work_date=row.work_date,
                shift=row.shift,
                start_time=row.start_time,
                end_time=row.end_time,
                break_duration=60,
                upload_batch=batch_id,
                uploaded_by=uploaded_by,
                notes="",
            )
        )
    await db.flush()

    logger.info(
        "Planning batch %s saved: rows=%d linked=%d orphans=%d",
        batch_id, len(rows), linked, len(rows) - linked,
    )
    return batch_id, len(rows), linked


async def relink_orphan_planning(db: AsyncSession, employee: User) -> int:
    """Attach rows imported before ``employee`` existed; returns rows linked."""
    result = await db.execute(
        update(PlanningRecord)
        .where(
            PlanningRecord.employee_id.is_(None),
            PlanningRecord.employee_code == employee.employee_code.upper(),
        )
        .values(employee_id=employee.id)
        .execution_options(synchronize_session=False)
    )
    linked = result.rowcount or 0
    if linked:
        logger.info(
            "Linked %d orphan planning rows to employee %s", linked, employee.employee_code
        )
    return linked


async def get_entry(db: AsyncSession, entry_id: int) -> PlanningRecord:
    entry = await db.get(PlanningRecord, entry_id)
    if entry is None:
        raise NotFoundError("Planning entry not found")
    return entry


async def update_entry(
    db: AsyncSession, entry_id: int, body: PlanningUpdate
) -> PlanningRecord:
    """Apply a manual edit to one planning row.

    The employee code and link are not editable here. Changing the code would
    have to clear ``employee_id`` and go through ``relink_orphan_planning``.
    """
    entry = await get_entry(db, entry_id)
    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(entry, field, value)
    await db.commit()
    await db.refresh(entry)
    return entry


async def delete_entry(db: AsyncSession, entry_id: int) -> None:
    entry = await get_entry(db, entry_id)
    await db.delete(entry)
    await db.commit()


async def delete_batch(db: AsyncSession, batch_id: str) -> int:
    result = await db.execute(
        delete(PlanningRecord).where(PlanningRecord.upload_batch == batch_id)
    )
    deleted = result.rowcount or 0
    if deleted == 0:
        await db.rollback()
        raise NotFoundError("No planning entries found for this batch")

    await db.commit()
    logger.info("Planning batch %s deleted: rows=%d", batch_id, deleted)
    return deleted
