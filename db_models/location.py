# db_models/location.py
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # Assets reference locations by name, not by id.
    name: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )

    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
