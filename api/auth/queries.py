# api/auth/queries.py
from sqlalchemy import select, func

from db_models.user import User


def select_user_by_email(email: str):
    return select(User).where(func.lower(User.email) == email.strip().lower())


def select_user_by_id(user_id: int, active_only: bool = False):
    stmt = select(User).where(User.id == user_id)
    if active_only:
        stmt = stmt.where(User.is_active.is_(True))
    return stmt


def select_users(skip: int, limit: int):
    return select(User).order_by(User.id).offset(skip).limit(limit)


def count_users():
    return select(func.count(User.id))
