"""
Vehicle type catalog (sedan, suburban, van, sprinter...).
"""

from typing import Optional

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.models.base import CatalogBase, unique_while_present


class VehicleType(CatalogBase):
    __tablename__ = "vehicle_types"
    __table_args__ = (unique_while_present("uq_vehicle_types_code", "code"),)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    icon: Mapped[str] = mapped_column(String(50), default="car", nullable=False)
    default_capacity: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<VehicleType(id={self.id}, code='{self.code}')>"
