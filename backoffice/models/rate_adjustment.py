"""
Rate adjustments: exchange rate, inflation, agency and transfer percentages.

Every kind keeps its full history; exactly one row per kind is current
(lifecycle ``active``). Superseded rows become ``inactive``.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text, Uuid, Enum as SQLEnum, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.models.base import CatalogBase

if TYPE_CHECKING:
    from backoffice.models.user import User

ADJUSTMENT_KINDS = ("exchange_rate", "inflation", "agency", "transfer")

_current_only = text("lifecycle = 'active'")


class RateAdjustment(CatalogBase):
    __tablename__ = "rate_adjustments"
    __table_args__ = (
        # At most one current row per kind
        Index(
            "uq_rate_adjustments_current_kind",
            "kind",
            unique=True,
            postgresql_where=_current_only,
            sqlite_where=_current_only,
        ),
    )

    kind: Mapped[str] = mapped_column(
        SQLEnum(*ADJUSTMENT_KINDS, name="rate_adjustment_kind"),
        nullable=False,
        index=True,
    )
    value: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    effective_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by: Mapped[Optional["User"]] = relationship("User", lazy="raise")

    def __repr__(self) -> str:
        return f"<RateAdjustment(id={self.id}, kind='{self.kind}', value={self.value}, lifecycle='{self.lifecycle}')>"
