# db_models/audit_asset.py
from datetime import datetime

from sqlalchemy import String, Text, Boolean, DateTime, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db_base import Base


class AuditAsset(Base):
    """
    Per-plan snapshot of one asset.

    original_* columns are captured at plan creation and never change;
    current_* columns record what the auditor or employee reported.
    """

    __tablename__ = "audit_assets"
    __table_args__ = (
        Index("ix_audit_asset_plan_asset", "audit_plan_id", "asset_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    audit_plan_id: Mapped[int] = mapped_column(
        ForeignKey("audit_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    asset_id: Mapped[int] = mapped_column(
        ForeignKey("assets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Snapshot taken at plan creation
    original_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    original_user: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Reported state
    current_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    current_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    current_user: Mapped[str | None] = mapped_column(String(255), nullable=True)

    auditor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # NULL until somebody submits a status for this asset
    audited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    audited_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    audit_status: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # True once the canonical asset has been written back. Terminal.
    resolved: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
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

    audit_plan: Mapped["AuditPlan"] = relationship(
        "AuditPlan",
        back_populates="audit_assets",
    )
    asset: Mapped["Asset"] = relationship("Asset")
    corrective_actions: Mapped[list["CorrectiveAction"]] = relationship(
        "CorrectiveAction",
        back_populates="audit_asset",
        cascade="all, delete-orphan",
    )

    def is_audited(self) -> bool:
        return self.audited_at is not None

    def has_location_changed(self) -> bool:
        return bool(self.current_location) and self.current_location != self.original_location

    def has_user_changed(self) -> bool:
        return bool(self.current_user) and self.current_user != self.original_user
