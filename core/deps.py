# core/deps.py
"""
FastAPI dependencies for authentication, authorization and the injectable
collaborators (clock, mail transport, token cache).
"""
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from api.auth import queries as auth_queries
from db import get_session
from db_models.user import User
from core.clock import Clock, system_clock
from core.security import decode_token
from core.token_cache import TokenCache, token_cache
from notifications.mailer import MailTransport, build_mail_transport

# OAuth2 scheme for token extraction from Authorization header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


class AuthenticationError(HTTPException):
    """Raised when authentication fails."""
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(HTTPException):
    """Raised when user lacks required permissions."""
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


async def get_current_user(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Resolve the bearer access token to an active administrative user.

    Raises:
        AuthenticationError: Missing or bad token, unknown or disabled user
    """
    if token is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_token(token)
    if payload is None or payload.get("type") != "access":
        raise AuthenticationError("Invalid or expired token")

    try:
        user_id = int(payload.get("sub"))
    except (ValueError, TypeError):
        raise AuthenticationError("Invalid token payload")

    result = await db.execute(auth_queries.select_user_by_id(user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is disabled")
    return user


# Role-based access dependencies

async def require_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Dependency that requires ADMIN role."""
    if not current_user.can_manage_plans():
        raise AuthorizationError("Admin access required")
    return current_user


async def require_auditor_or_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Dependency that requires AUDITOR or ADMIN role."""
    if not current_user.can_manage_corrective_actions():
        raise AuthorizationError("Auditor or admin access required")
    return current_user


# Collaborators. Tests replace these through app.dependency_overrides.

def get_clock() -> Clock:
    return system_clock


@lru_cache
def get_mailer() -> MailTransport:
    return build_mail_transport(settings)


def get_token_cache() -> TokenCache:
    return token_cache


# Type aliases for cleaner endpoint signatures
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]
AuditorOrAdmin = Annotated[User, Depends(require_auditor_or_admin)]
ClockDep = Annotated[Clock, Depends(get_clock)]
MailerDep = Annotated[MailTransport, Depends(get_mailer)]
TokenCacheDep = Annotated[TokenCache, Depends(get_token_cache)]
