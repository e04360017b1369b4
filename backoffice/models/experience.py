"""
Experience / provider catalog used when building quote days.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, JSON, Numeric, String, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.models.base import CatalogBase

EXPERIENCE_TYPES = ("Experience", "Provider")


class Experience(CatalogBase):
    __tablename__ = "experiences"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(
        SQLEnum(*EXPERIENCE_TYPES, name="experience_type"),
        default="Experience",
        nullable=False,
    )
    cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    duration_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    min_people: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_people: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Ids of other experiences bundled into this one
    included_experience_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    def __repr__(self) -> str:
        return f"<Experience(id={self.id}, name='{self.name}', type='{self.type}')>"
