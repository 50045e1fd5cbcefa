# db_models/corrective_action.py
from datetime import date, datetime

from sqlalchemy import String, Text, Date, DateTime, JSON, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db_base import Base
from core.statuses import CorrectiveActionStatus, Priority
from db_models import notes as note_log


class CorrectiveAction(Base):
    __tablename__ = "corrective_actions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    audit_asset_id: Mapped[int] = mapped_column(
        ForeignKey("audit_assets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Denormalized from the audit asset for plan-level queries
    audit_plan_id: Mapped[int] = mapped_column(
        ForeignKey("audit_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    issue: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)

    # Primary notification target
    assigned_to: Mapped[int | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    priority: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=Priority.MEDIUM.value,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CorrectiveActionStatus.PENDING.value,
        index=True,
    )

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    # Set iff status == completed
    completed_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    notes: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)

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

    audit_asset: Mapped["AuditAsset"] = relationship(
        "AuditAsset",
        back_populates="corrective_actions",
    )
    audit_plan: Mapped["AuditPlan"] = relationship(
        "AuditPlan",
        back_populates="corrective_actions",
    )
    assignments: Mapped[list["CorrectiveActionAssignment"]] = relationship(
        "CorrectiveActionAssignment",
        back_populates="corrective_action",
        cascade="all, delete-orphan",
        order_by="CorrectiveActionAssignment.id",
    )

    def is_completed(self) -> bool:
        return self.status == CorrectiveActionStatus.COMPLETED.value

    def is_overdue(self, today: date) -> bool:
        return self.due_date is not None and self.due_date < today and not self.is_completed()

    def append_note(self, text: str, at: datetime) -> None:
        self.notes = note_log.appended(self.notes, text, at)
