"""
Invoice request model - a request to bill a scheduled quote.

Status flow: pending -> completed | cancelled (both terminal).
"""

import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, Text, Uuid, Enum as SQLEnum, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.models.base import Base, BigIntPK, TimestampMixin, utcnow

if TYPE_CHECKING:
    from backoffice.models.quote import Quote
    from backoffice.models.user import User

INVOICE_STATUSES = ("pending", "completed", "cancelled")

_pending_only = text("status = 'pending'")


class Invoice(Base, TimestampMixin):
    __tablename__ = "invoices"
    __table_args__ = (
        # One pending request per quote
        Index(
            "uq_invoices_pending_quote",
            "quote_id",
            unique=True,
            postgresql_where=_pending_only,
            sqlite_where=_pending_only,
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    quote_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        SQLEnum(*INVOICE_STATUSES, name="invoice_request_status"),
        default="pending",
        nullable=False,
        index=True,
    )

    requested_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    request_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    processed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    process_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    invoice_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    quote: Mapped["Quote"] = relationship("Quote", back_populates="invoices", lazy="raise")
    requested_by: Mapped[Optional["User"]] = relationship("User", foreign_keys=[requested_by_id], lazy="raise")
    processed_by: Mapped[Optional["User"]] = relationship("User", foreign_keys=[processed_by_id], lazy="raise")

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, quote_id={self.quote_id}, status='{self.status}')>"
