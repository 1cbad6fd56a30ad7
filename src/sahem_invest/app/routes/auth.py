"""Authentication routes: login, me, password change and reset."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.app.config import get_settings
from sahem_invest.domain.models import User
from sahem_invest.domain.permissions import Permission
from sahem_invest.domain.permissions import require_permission as check_permission
from sahem_invest.domain.schemas import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    MessageResponse,
    ResetPasswordRequest,
    TokenResponse,
    UserLogin,
    UserResponse,
)
from sahem_invest.infra.database import get_db
from sahem_invest.services.auth_service import (
    authenticate,
    change_password,
    complete_password_reset,
    create_access_token,
    decode_token,
    start_password_reset,
)
from sahem_invest.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


async def get_current_user_dep(
    request: Request, db: AsyncSession = Depends(get_db)
) -> User:
    """Dependency: extract current user from Bearer token."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid token",
        )
    token = auth_header.removeprefix("Bearer ")
    payload = decode_token(token)
    if not payload or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    result = await db.execute(select(User).where(User.id == payload["sub"]))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def require_permission(permission: Permission):
    """Factory: dependency that checks the user's role grants ``permission``."""

    async def checker(user: User = Depends(get_current_user_dep)):
        check_permission(user.role, permission)
        return user

    return checker


@router.post("/login", response_model=TokenResponse)
async def login(data: UserLogin, db: AsyncSession = Depends(get_db)):
    user = await authenticate(db, data.email, data.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = create_access_token(user.id, user.role)
    return TokenResponse(access_token=token, user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user_dep)):
    return UserResponse.model_validate(user)


@router.post("/change-password", response_model=UserResponse)
async def change_password_route(
    data: ChangePasswordRequest,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    user = await change_password(
        db, user, data.current_password, data.new_password, data.confirm_password
    )
    return UserResponse.model_validate(user)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    data: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """Always answers the same way so the endpoint cannot be used to discover accounts."""
    issued = await start_password_reset(db, data.email)
    if issued is not None:
        user, token = issued
        settings = get_settings()
        await NotificationDispatcher(background_tasks).notify(
            "password_reset",
            user.email,
            {
                "name": user.name,
                "reset_url": f"{settings.frontend_url}/auth/reset-password?token={token}",
                "expires_minutes": settings.password_reset_expiry_minutes,
            },
        )
    return MessageResponse(
        message="If an account exists for that email, a reset link has been sent."
    )


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(data: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    await complete_password_reset(db, data.token, data.new_password, data.confirm_password)
    return MessageResponse(message="Password has been reset. You can now sign in.")
