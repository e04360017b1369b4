"""
Point of interest - origin or destination of a priced service route.
"""

from typing import Optional

from sqlalchemy import String, Text, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.models.base import CatalogBase

POI_SERVICE_TYPES = ("airport", "local", "city")


class POI(CatalogBase):
    __tablename__ = "pois"

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    service_type: Mapped[str] = mapped_column(
        SQLEnum(*POI_SERVICE_TYPES, name="poi_service_type"),
        default="local",
        nullable=False,
    )
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<POI(id={self.id}, name='{self.name}')>"
