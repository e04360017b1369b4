"""
Department model - groups staff for quote visibility scoping.
"""

from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.models.base import CatalogBase


class Department(CatalogBase):
    __tablename__ = "departments"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Department(id={self.id}, name='{self.name}')>"
