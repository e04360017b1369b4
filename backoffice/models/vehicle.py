"""
Fleet vehicle.
"""

from datetime import date
from typing import Optional, TYPE_CHECKING

from sqlalchemy import BigInteger, Date, ForeignKey, Integer, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.models.base import CatalogBase, unique_while_present

if TYPE_CHECKING:
    from backoffice.models.rate import Rate
    from backoffice.models.vehicle_type import VehicleType

MAINTENANCE_STATUSES = ("operational", "maintenance", "repair", "out_of_service")


class Vehicle(CatalogBase):
    __tablename__ = "vehicles"
    __table_args__ = (unique_while_present("uq_vehicles_license_plate", "license_plate"),)

    brand: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    license_plate: Mapped[str] = mapped_column(String(20), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    vehicle_type_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("vehicle_types.id"), nullable=False, index=True
    )
    rate_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("rates.id"), nullable=True, index=True
    )

    maintenance_status: Mapped[str] = mapped_column(
        SQLEnum(*MAINTENANCE_STATUSES, name="vehicle_maintenance_status"),
        default="operational",
        nullable=False,
    )
    insurance_expiry: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    vehicle_type: Mapped["VehicleType"] = relationship("VehicleType", lazy="raise")
    rate: Mapped[Optional["Rate"]] = relationship("Rate", lazy="raise")

    def __repr__(self) -> str:
        return f"<Vehicle(id={self.id}, plate='{self.license_plate}')>"
