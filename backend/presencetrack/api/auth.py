import logging

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from jose import JWTError
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from presencetrack.core.config import settings
from presencetrack.core.middleware import get_current_user
from presencetrack.core.security import (
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    hash_password,
    token_subject,
    verify_password,
)
from presencetrack.db.models import User
from presencetrack.db.session import get_db
from presencetrack.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdate,
    TokenResponse,
)
from presencetrack.schemas.user import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()

_REFRESH_TOKEN_COOKIE = "refresh_token"


def _set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=_REFRESH_TOKEN_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=False,
        max_age=settings.REFRESH_TOKEN_EXPIRE_MINUTES * 60,
    )


def _issue_tokens(response: Response, user: User) -> TokenResponse:
    data = {"sub": str(user.id), "role": user.role}
    _set_refresh_cookie(response, create_refresh_token(data))
    return TokenResponse(access_token=create_access_token(data))


@router.post("/login", response_model=TokenResponse, summary="Password login")
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    # Employees may sign in with their employee code instead of the username
    login_name = body.username.strip()
    result = await db.execute(
        select(User).where(
            or_(User.username == login_name, User.employee_code == login_name.upper())
        )
    )
    user = result.scalars().first()

    if user is None or not verify_password(body.password, user.password_hash):
        logger.warning("Failed login for '%s'", login_name)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    logger.info("Login: user=%s role=%s", user.employee_code, user.role)
    return _issue_tokens(response, user)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token using HttpOnly cookie",
)
async def refresh_tokens(
    response: Response,
    db: AsyncSession = Depends(get_db),
    refresh_token: str | None = Cookie(default=None, alias=_REFRESH_TOKEN_COOKIE),
) -> TokenResponse:
    invalid = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Refresh token invalid or expired",
    )
    if not refresh_token:
        raise invalid

    try:
        user_id = token_subject(refresh_token, REFRESH_TOKEN)
    except JWTError:
        raise invalid from None

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise invalid

    return _issue_tokens(response, user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Logout")
async def logout(response: Response) -> None:
    response.delete_cookie(_REFRESH_TOKEN_COOKIE)


@router.put("/profile", response_model=UserResponse, summary="Update own name and email")
async def update_profile(
    body: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(current_user, field, value)
    await db.commit()
    await db.refresh(current_user)
    return UserResponse.model_validate(current_user)


@router.put(
    "/password",
    response_model=TokenResponse,
    summary="Change own password; issues fresh tokens",
)
async def change_password(
    body: ChangePasswordRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TokenResponse:
    if not verify_password(body.current_password, current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    current_user.password_hash = hash_password(body.new_password)
    await db.commit()
    logger.info("Password changed: user=%s", current_user.employee_code)
    return _issue_tokens(response, current_user)
