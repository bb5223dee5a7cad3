import logging
import math
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from presencetrack.core.middleware import get_current_user, require_role
from presencetrack.core.security import hash_password
from presencetrack.db.models import User
from presencetrack.db.session import get_db
from presencetrack.schemas.user import UserCreate, UserResponse, UserUpdate
from presencetrack.services.planning import relink_orphan_planning

logger = logging.getLogger(__name__)

router = APIRouter()


async def _ensure_unique(
    db: AsyncSession,
    *,
    username: str | None = None,
    employee_code: str | None = None,
    exclude_id: uuid.UUID | None = None,
) -> None:
    checks = []
    if username is not None:
        checks.append(("Username", User.username, username))
    if employee_code is not None:
        checks.append(("Employee code", User.employee_code, employee_code))

    for label, column, value in checks:
        q = select(User.id).where(column == value)
        if exclude_id is not None:
            q = q.where(User.id != exclude_id)
        if (await db.execute(q)).first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{label} '{value}' is already taken",
            )


@router.post(
    "/",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new user (admin only)",
)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> UserResponse:
    await _ensure_unique(db, username=body.username, employee_code=body.employee_code)

    user = User(
        username=body.username,
        password_hash=hash_password(body.password),
        role=body.role,
        employee_code=body.employee_code,
        full_name=body.full_name,
        email=body.email,
        department=body.department,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    linked = await relink_orphan_planning(db, user)
    await db.commit()
    await db.refresh(user)

    logger.info("User created: code=%s linked_planning=%d", user.employee_code, linked)
    return UserResponse.model_validate(user)


@router.get(
    "/",
    summary="List users with pagination and optional search",
)
async def list_users(
    search: str | None = Query(default=None, description="Filter by name, username or code"),
    department: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> dict:
    filters = []
    if search:
        filters.append(
            or_(
                User.full_name.ilike(f"%{search}%"),
                User.username.ilike(f"%{search}%"),
                User.employee_code.ilike(f"%{search}%"),
            )
        )
    if department:
        filters.append(User.department == department)

    total = (await db.execute(select(func.count(User.id)).where(*filters))).scalar_one()
    result = await db.execute(
        select(User)
        .where(*filters)
        .order_by(User.full_name)
        .offset((page - 1) * per_page)
        .limit(per_page)
    )

    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": math.ceil(total / per_page) if total > 0 else 1,
        "items": [UserResponse.model_validate(u) for u in result.scalars().all()],
    }


@router.get(
    "/departments",
    summary="Distinct departments of active employees",
)
async def list_departments(
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> list[str]:
    result = await db.execute(
        select(User.department)
        .where(User.is_active.is_(True), User.department != "")
        .distinct()
        .order_by(User.department)
    )
    return list(result.scalars().all())


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current authenticated user profile",
)
async def get_me(
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.patch(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update user profile, role or active status (admin only)",
)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> UserResponse:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    if body.is_active is False and user_id == _current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot deactivate yourself; only another admin can deactivate you",
        )

    code_changed = body.employee_code is not None and body.employee_code != user.employee_code
    if code_changed:
        await _ensure_unique(db, employee_code=body.employee_code, exclude_id=user.id)

    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(user, field, value)

    if code_changed:
        await db.flush()
        await relink_orphan_planning(db, user)

    await db.commit()
    await db.refresh(user)
    return UserResponse.model_validate(user)


async def _get_other_user(
    db: AsyncSession, user_id: uuid.UUID, current_user: User, action: str
) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    if user.id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"You cannot {action} your own account",
        )
    return user


@router.put(
    "/{user_id}/status",
    response_model=UserResponse,
    summary="Toggle a user between active and inactive (admin only)",
)
async def toggle_user_status(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> UserResponse:
    user = await _get_other_user(db, user_id, _current_user, "change the status of")
    user.is_active = not user.is_active
    await db.commit()
    await db.refresh(user)

    logger.info(
        "User %s: code=%s",
        "activated" if user.is_active else "deactivated",
        user.employee_code,
    )
    return UserResponse.model_validate(user)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a user (admin only); the account is deactivated, history is kept",
)
async def delete_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _current_user: User = Depends(require_role("admin")),
) -> None:
    user = await _get_other_user(db, user_id, _current_user, "delete")
    # Soft delete; attendance and presence sheet rows stay linked
    user.is_active = False
    await db.commit()
    logger.info("User removed (deactivated): code=%s", user.employee_code)
