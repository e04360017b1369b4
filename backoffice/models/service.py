"""
Service catalog - a priced route between two POIs for a vehicle type and rate.
"""

from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.models.base import CatalogBase, unique_while_present

if TYPE_CHECKING:
    from backoffice.models.poi import POI
    from backoffice.models.rate import Rate
    from backoffice.models.vehicle_type import VehicleType


class Service(CatalogBase):
    """
    Route tuple (origin, destination, vehicle type, rate) is unique among
    rows that are not soft-deleted, whether active or not. Rows without an
    origin are covered by the service-layer check only, since NULLs never
    collide in a unique index.
    """

    __tablename__ = "services"
    __table_args__ = (
        unique_while_present(
            "uq_services_route",
            "origin_poi_id",
            "destination_poi_id",
            "vehicle_type_id",
            "rate_id",
        ),
    )

    origin_poi_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("pois.id"), nullable=True, index=True
    )
    destination_poi_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("pois.id"), nullable=False, index=True
    )
    vehicle_type_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("vehicle_types.id"), nullable=False, index=True
    )
    rate_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("rates.id"), nullable=False, index=True
    )

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    is_round_trip: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    origin_poi: Mapped[Optional["POI"]] = relationship("POI", foreign_keys=[origin_poi_id], lazy="raise")
    destination_poi: Mapped["POI"] = relationship("POI", foreign_keys=[destination_poi_id], lazy="raise")
    vehicle_type: Mapped["VehicleType"] = relationship("VehicleType", lazy="raise")
    rate: Mapped["Rate"] = relationship("Rate", lazy="raise")

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, {self.origin_poi_id}->{self.destination_poi_id})>"
