"""
Quote model - a transport/experience quotation for a client.

Status flow:
    requested -> hold | scheduled | rejected
    hold      -> scheduled | rejected
    scheduled -> rejected   (only through reservation cancellation)
"""

import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, JSON, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.models.base import CatalogBase

if TYPE_CHECKING:
    from backoffice.models.client import Client
    from backoffice.models.invoice import Invoice
    from backoffice.models.rate import Rate
    from backoffice.models.user import User

QUOTE_STATUSES = ("requested", "hold", "scheduled", "rejected")


def empty_service_items() -> dict:
    return {"days": [], "subtotal": 0, "iva": 0, "total": 0}


class Quote(CatalogBase):
    __tablename__ = "quotes"

    folio: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(
        SQLEnum(*QUOTE_STATUSES, name="quote_status"),
        default="requested",
        nullable=False,
        index=True,
    )

    client_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("clients.id"), nullable=True, index=True
    )
    rate_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("rates.id"), nullable=True
    )

    event_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    number_of_people: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    contact_person: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # {"days": [...], "subtotal", "iva", "total"} - amounts stored as strings
    service_items: Mapped[dict] = mapped_column(JSON, default=empty_service_items, nullable=False)

    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Denormalized invoice request flags
    invoice_requested: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    invoice_request_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    invoice_requested_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Relationships
    client: Mapped[Optional["Client"]] = relationship("Client", lazy="raise")
    rate: Mapped[Optional["Rate"]] = relationship("Rate", lazy="raise")
    created_by: Mapped[Optional["User"]] = relationship("User", foreign_keys=[created_by_id], lazy="raise")
    invoice_requested_by: Mapped[Optional["User"]] = relationship(
        "User", foreign_keys=[invoice_requested_by_id], lazy="raise"
    )
    invoices: Mapped[list["Invoice"]] = relationship(
        "Invoice", back_populates="quote", lazy="raise", order_by="Invoice.id"
    )

    def __repr__(self) -> str:
        return f"<Quote(id={self.id}, folio='{self.folio}', status='{self.status}')>"
