# api/auth/db_manager.py
"""
Administrative user accounts: credential checks, token refresh and
account management.
"""
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock
from core.errors import AuditError, ConflictError, NotFoundError
from core.security import get_password_hash, verify_password, verify_token_type
from db_models.user import User, UserRole
from . import queries

log = structlog.get_logger(__name__)


class InvalidCredentialsError(AuditError):
    status_code = 401


class UserNotFoundError(NotFoundError):
    pass


class EmailTakenError(ConflictError):
    pass


async def authenticate(db: AsyncSession, email: str, password: str, clock: Clock) -> User:
    """
    Check credentials and stamp the login time.

    Raises:
        InvalidCredentialsError: Wrong email/password or a disabled account
    """
    result = await db.execute(queries.select_user_by_email(email))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(password, user.hashed_password):
        log.info("login_failed", email=email)
        raise InvalidCredentialsError("Incorrect email or password")
    if not user.is_active:
        log.info("login_rejected_disabled", user_id=user.id)
        raise InvalidCredentialsError("User account is disabled")

    user.last_login_at = clock.now()
    await db.commit()
    log.info("login_succeeded", user_id=user.id, role=user.role)
    return user


async def user_for_refresh_token(db: AsyncSession, refresh_token: str) -> User:
    payload = verify_token_type(refresh_token, "refresh")
    if payload is None or payload.get("sub") is None:
        raise InvalidCredentialsError("Invalid or expired refresh token")

    result = await db.execute(queries.select_user_by_id(int(payload["sub"]), active_only=True))
    user = result.scalar_one_or_none()
    if user is None:
        raise InvalidCredentialsError("User not found or inactive")
    return user


async def list_users(db: AsyncSession, skip: int, limit: int) -> tuple[list[User], int]:
    total = (await db.execute(queries.count_users())).scalar_one()
    result = await db.execute(queries.select_users(skip, limit))
    return list(result.scalars().all()), total


async def create_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    full_name: str,
    role: UserRole,
) -> User:
    existing = await db.execute(queries.select_user_by_email(email))
    if existing.scalar_one_or_none() is not None:
        raise EmailTakenError(f"Email already registered: {email}")

    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        role=role.value,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    log.info("user_created", user_id=user.id, role=user.role)
    return user


async def update_user(
    db: AsyncSession,
    user_id: int,
    *,
    full_name: str | None = None,
    role: UserRole | None = None,
    is_active: bool | None = None,
) -> User:
    result = await db.execute(queries.select_user_by_id(user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(f"User {user_id} not found")

    if full_name is not None:
        user.full_name = full_name
    if role is not None:
        user.role = role.value
    if is_active is not None:
        user.is_active = is_active

    await db.commit()
    await db.refresh(user)
    log.info("user_updated", user_id=user.id, role=user.role, is_active=user.is_active)
    return user
