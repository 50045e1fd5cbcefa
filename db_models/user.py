# db_models/user.py
"""
Administrative user accounts.

Roles:
- ADMIN: creates audit plans, manages corrective actions, triggers reminders
- AUDITOR: reads plans and results, updates corrective actions
- VIEWER: read-only access

Employees taking part in an audit are not users; they reach the portal with
an emailed access token (see api/employee_audit).
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import String, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base


class UserRole(str, Enum):
    """User roles for authorization."""
    ADMIN = "ADMIN"
    AUDITOR = "AUDITOR"
    VIEWER = "VIEWER"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # Login credentials
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.VIEWER.value,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def is_auditor(self) -> bool:
        return self.role == UserRole.AUDITOR.value

    def can_manage_plans(self) -> bool:
        """Only ADMIN can create plans and change their status."""
        return self.role == UserRole.ADMIN.value

    def can_manage_corrective_actions(self) -> bool:
        return self.role in (UserRole.ADMIN.value, UserRole.AUDITOR.value)
