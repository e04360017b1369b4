"""
Client model - companies or individuals that request quotes.
"""

from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.models.base import CatalogBase


class Client(CatalogBase):
    __tablename__ = "clients"

    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    rfc: Mapped[Optional[str]] = mapped_column(String(13), nullable=True)  # Mexican tax id
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def name(self) -> str:
        return self.company_name

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, company_name='{self.company_name}')>"
