# db_models/asset.py
from datetime import datetime

from sqlalchemy import String, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db_base import Base


class Asset(Base):
    """Canonical inventory record. The audit subsystem only ever updates it."""

    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # Human-facing asset tag, e.g. "PC-0042"
    asset_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=False,
    )

    type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    model: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Location name (see locations.name), not a foreign key
    location: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    # One of core.statuses.AssetStatus, stored in its canonical form
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    last_updated: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

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

    employee: Mapped["Employee | None"] = relationship(
        "Employee",
        back_populates="assets",
    )
