"""
Authentication dependencies.

Every protected route depends on ``get_current_user``; admin routes use
``require_role("admin")`` instead, which resolves the user first.
"""

import logging
import uuid
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from presencetrack.core.security import ACCESS_TOKEN, token_subject
from presencetrack.db.models import User
from presencetrack.db.session import get_db

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def load_active_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise _unauthorized()
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise _unauthorized()
    try:
        user_id = token_subject(credentials.credentials, ACCESS_TOKEN)
    except JWTError:
        raise _unauthorized() from None
    return await load_active_user(db, user_id)


def require_role(*roles: str) -> Callable:
    allowed = frozenset(roles)

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            logger.warning(
                "Access denied: user=%s role=%s required=%s",
                current_user.employee_code, current_user.role, "/".join(sorted(allowed)),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires the {' or '.join(sorted(allowed))} role",
            )
        return current_user

    return role_checker
