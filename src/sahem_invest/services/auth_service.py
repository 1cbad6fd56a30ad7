"""Authentication service: password hashing, JWT tokens and password resets."""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.app.config import get_settings
from sahem_invest.domain.errors import ValidationError
from sahem_invest.domain.models import User

logger = logging.getLogger(__name__)

settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: str, role: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expiration_minutes)
    payload = {"sub": user_id, "role": role, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def normalize_email(email: str) -> str:
    """Trim surrounding whitespace. Matching stays case-sensitive."""
    return (email or "").strip()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def authenticate(db: AsyncSession, email: str, password: str) -> User | None:
    user = await get_user_by_email(db, email)
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        return None
    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    return user


def _validate_new_password(new_password: str, confirm_password: str) -> None:
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters")
    if new_password != confirm_password:
        raise ValidationError("Passwords don't match")


async def change_password(
    db: AsyncSession,
    user: User,
    current_password: str,
    new_password: str,
    confirm_password: str,
) -> User:
    """Replace the password and clear the forced-change flag."""
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    _validate_new_password(new_password, confirm_password)

    user.password_hash = hash_password(new_password)
    user.needs_password_change = False
    await db.commit()
    logger.info("Password changed for user %s", user.id)
    return user


async def start_password_reset(db: AsyncSession, email: str) -> tuple[User, str] | None:
    """Issue a reset token. Returns None when no such account exists."""
    user = await get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None

    token = secrets.token_urlsafe(32)
    user.reset_token = token
    user.reset_token_expiry = datetime.now(timezone.utc) + timedelta(
        minutes=settings.password_reset_expiry_minutes
    )
    await db.commit()
    return user, token


async def complete_password_reset(
    db: AsyncSession,
    token: str,
    new_password: str,
    confirm_password: str,
) -> User:
    result = await db.execute(select(User).where(User.reset_token == token))
    user = result.scalar_one_or_none()
    if user is None or user.reset_token_expiry is None:
        raise ValidationError("Invalid or expired reset token")

    expiry = user.reset_token_expiry
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    if datetime.now(timezone.utc) > expiry:
        raise ValidationError("Invalid or expired reset token")

    _validate_new_password(new_password, confirm_password)

    user.password_hash = hash_password(new_password)
    user.needs_password_change = False
    user.reset_token = None
    user.reset_token_expiry = None
    await db.commit()
    logger.info("Password reset completed for user %s", user.id)
    return user
