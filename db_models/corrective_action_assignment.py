# db_models/corrective_action_assignment.py
from datetime import datetime

from sqlalchemy import String, DateTime, JSON, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db_base import Base
from core.statuses import CorrectiveActionStatus
from db_models import notes as note_log


class CorrectiveActionAssignment(Base):
    """
    Binds a corrective action to the employee working on it.

    status, started_at and completed_at mirror the parent action's status;
    they are rewritten whenever the action's status changes.
    """

    __tablename__ = "corrective_action_assignments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    corrective_action_id: Mapped[int] = mapped_column(
        ForeignKey("corrective_actions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    audit_assignment_id: Mapped[int | None] = mapped_column(
        ForeignKey("audit_assignments.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_to_employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CorrectiveActionStatus.PENDING.value,
    )

    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    progress_notes: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)

    corrective_action: Mapped["CorrectiveAction"] = relationship(
        "CorrectiveAction",
        back_populates="assignments",
    )
    audit_assignment: Mapped["AuditAssignment | None"] = relationship("AuditAssignment")
    assigned_to_employee: Mapped["Employee"] = relationship("Employee")

    def append_progress_note(self, text: str, at: datetime) -> None:
        self.progress_notes = note_log.appended(self.progress_notes, text, at)
