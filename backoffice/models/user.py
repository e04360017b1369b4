"""
User model with role-based access control.
"""

import uuid
from typing import Optional, TYPE_CHECKING

from sqlalchemy import BigInteger, ForeignKey, String, Text, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.models.base import Base, TimestampMixin, LifecycleMixin

if TYPE_CHECKING:
    from backoffice.models.department import Department


# Role hierarchy: higher level includes the permissions of lower levels
ROLE_LEVELS: dict[str, int] = {
    "superadmin": 7,
    "admin": 6,
    "client": 5,
    "department_manager": 4,
    "employee": 3,
    "driver": 2,
    "guest": 1,
}

ADMIN_ROLES = ("superadmin", "admin")


class User(Base, TimestampMixin, LifecycleMixin):
    """A back-office user (staff, driver or client contact)."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    password_hash: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    role: Mapped[str] = mapped_column(
        SQLEnum(*ROLE_LEVELS.keys(), name="user_role"),
        default="employee",
        nullable=False,
    )

    department_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    department: Mapped[Optional["Department"]] = relationship("Department", lazy="raise")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

    @property
    def name(self) -> str:
        """Full name from first_name and last_name."""
        parts = [self.first_name, self.last_name]
        return " ".join(p for p in parts if p) or self.email

    @property
    def level(self) -> int:
        return ROLE_LEVELS.get(self.role, 0)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
