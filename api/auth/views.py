# api/auth/views.py
"""
Login and user management for administrative users.
"""
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from db_models.user import User
from core.deps import AdminUser, ClockDep, CurrentUser
from core.errors import AuditError, http_error
from core.security import create_access_token, create_refresh_token
from .models import (
    Token,
    TokenRefresh,
    LoginRequest,
    UserCreate,
    UserUpdate,
    UserResponse,
    UserListResponse,
)
from . import db_manager

router = APIRouter(prefix="/auth", tags=["authentication"])


def _issue_tokens(user: User) -> Token:
    claims = {"sub": str(user.id), "role": user.role}
    return Token(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
    )


async def _login(db: AsyncSession, email: str, password: str, clock) -> Token:
    try:
        user = await db_manager.authenticate(db, email, password, clock)
    except AuditError as exc:
        error = http_error(exc)
        error.headers = {"WWW-Authenticate": "Bearer"}
        raise error from exc
    return _issue_tokens(user)


@router.post("/login", response_model=Token, summary="Login and get tokens")
async def login(
    clock: ClockDep,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_session),
) -> Token:
    """OAuth2 password flow; the username field carries the email."""
    return await _login(db, form_data.username, form_data.password, clock)


@router.post("/login/json", response_model=Token, summary="Login with JSON body")
async def login_json(
    credentials: LoginRequest,
    clock: ClockDep,
    db: AsyncSession = Depends(get_session),
) -> Token:
    return await _login(db, credentials.email, credentials.password, clock)


@router.post("/refresh", response_model=Token, summary="Refresh access token")
async def refresh_token(
    request: TokenRefresh,
    db: AsyncSession = Depends(get_session),
) -> Token:
    try:
        user = await db_manager.user_for_refresh_token(db, request.refresh_token)
    except AuditError as exc:
        raise http_error(exc) from exc
    return _issue_tokens(user)


@router.get("/me", response_model=UserResponse, summary="Get current user")
async def get_me(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user)


# --- Admin endpoints for user management ---

@router.get("/users", response_model=UserListResponse, summary="List all users (admin)")
async def list_users(
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
    skip: int = 0,
    limit: int = 100,
) -> UserListResponse:
    users, total = await db_manager.list_users(db, skip, limit)
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users], total=total)


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user (admin)",
)
async def create_user(
    user_data: UserCreate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    try:
        user = await db_manager.create_user(
            db,
            email=user_data.email,
            password=user_data.password,
            full_name=user_data.full_name,
            role=user_data.role,
        )
    except AuditError as exc:
        raise http_error(exc) from exc
    return UserResponse.model_validate(user)


@router.patch("/users/{user_id}", response_model=UserResponse, summary="Update user (admin)")
async def update_user(
    user_id: int,
    updates: UserUpdate,
    admin: AdminUser,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    try:
        user = await db_manager.update_user(
            db,
            user_id,
            full_name=updates.full_name,
            role=updates.role,
            is_active=updates.is_active,
        )
    except AuditError as exc:
        raise http_error(exc) from exc
    return UserResponse.model_validate(user)
