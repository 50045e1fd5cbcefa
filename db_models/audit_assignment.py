# db_models/audit_assignment.py
from datetime import datetime

from sqlalchemy import String, Text, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db_base import Base
from core.statuses import AuditAssignmentStatus


class AuditAssignment(Base):
    """One auditor's responsibility for one location within a plan."""

    __tablename__ = "audit_assignments"
    __table_args__ = (
        UniqueConstraint(
            "audit_plan_id", "location_id", "auditor_id",
            name="uq_audit_assignment_plan_location_auditor",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    audit_plan_id: Mapped[int] = mapped_column(
        ForeignKey("audit_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=False,
    )
    auditor_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AuditAssignmentStatus.ASSIGNED.value,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    audit_plan: Mapped["AuditPlan"] = relationship(
        "AuditPlan",
        back_populates="assignments",
    )
    location: Mapped["Location"] = relationship("Location")
    auditor: Mapped["Employee"] = relationship("Employee")
