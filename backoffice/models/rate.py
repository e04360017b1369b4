"""
Rate tier (e.g. Económico, Premium) applied to services and vehicles.
"""

from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.models.base import CatalogBase, unique_while_present


class Rate(CatalogBase):
    __tablename__ = "rates"
    __table_args__ = (unique_while_present("uq_rates_name", "name"),)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    color: Mapped[str] = mapped_column(String(7), default="#6366F1", nullable=False)

    def __repr__(self) -> str:
        return f"<Rate(id={self.id}, name='{self.name}')>"
