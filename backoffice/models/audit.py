"""
Audit Log model - tracks lifecycle changes for compliance.
"""

import uuid
from typing import Optional

from sqlalchemy import JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.models.base import Base, BigIntPK, TimestampMixin


class AuditLog(Base, TimestampMixin):
    """
    Audit log entry tracking changes to entities.
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    # User who made the change (no FK: entries outlive users)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)
    user_role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Entity reference
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # create, update, status_change, delete, request_invoice, complete, cancel...
    action: Mapped[str] = mapped_column(String(50), nullable=False)

    # Change details
    old_values_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    new_values_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Context
    context: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, entity={self.entity_type}:{self.entity_id}, action='{self.action}')>"
