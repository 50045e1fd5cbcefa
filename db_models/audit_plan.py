# db_models/audit_plan.py
from datetime import date, datetime

from sqlalchemy import String, Text, Date, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db_base import Base
from core.statuses import ACTIVE_PLAN_STATUSES, AuditPlanStatus


class AuditPlan(Base):
    __tablename__ = "audit_plans"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Planning / In Progress / Completed
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AuditPlanStatus.PLANNING.value,
        server_default=AuditPlanStatus.PLANNING.value,
    )

    created_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=func.now(),
    )

    assignments: Mapped[list["AuditAssignment"]] = relationship(
        "AuditAssignment",
        back_populates="audit_plan",
        cascade="all, delete-orphan",
    )
    audit_assets: Mapped[list["AuditAsset"]] = relationship(
        "AuditAsset",
        back_populates="audit_plan",
        cascade="all, delete-orphan",
    )
    corrective_actions: Mapped[list["CorrectiveAction"]] = relationship(
        "CorrectiveAction",
        back_populates="audit_plan",
        cascade="all, delete-orphan",
    )
    audit_logs: Mapped[list["AuditLog"]] = relationship(
        "AuditLog",
        back_populates="audit_plan",
        cascade="all, delete-orphan",
    )

    def is_active(self, today: date) -> bool:
        """Open for employee submissions."""
        return self.status in ACTIVE_PLAN_STATUSES and self.due_date > today
