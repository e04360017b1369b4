"""
SQLAlchemy models for the transport back-office.
Importing this package registers every table on Base.metadata.
"""

from backoffice.models.base import Base, CatalogBase, Lifecycle, LifecycleMixin, TimestampMixin
from backoffice.models.department import Department
from backoffice.models.user import User, ROLE_LEVELS
from backoffice.models.client import Client
from backoffice.models.poi import POI
from backoffice.models.vehicle_type import VehicleType
from backoffice.models.rate import Rate
from backoffice.models.vehicle import Vehicle
from backoffice.models.service import Service
from backoffice.models.experience import Experience
from backoffice.models.rate_adjustment import RateAdjustment, ADJUSTMENT_KINDS
from backoffice.models.quote import Quote, QUOTE_STATUSES
from backoffice.models.invoice import Invoice, INVOICE_STATUSES
from backoffice.models.audit import AuditLog

__all__ = [
    "Base",
    "CatalogBase",
    "Lifecycle",
    "LifecycleMixin",
    "TimestampMixin",
    "Department",
    "User",
    "ROLE_LEVELS",
    "Client",
    "POI",
    "VehicleType",
    "Rate",
    "Vehicle",
    "Service",
    "Experience",
    "RateAdjustment",
    "ADJUSTMENT_KINDS",
    "Quote",
    "QUOTE_STATUSES",
    "Invoice",
    "INVOICE_STATUSES",
    "AuditLog",
]
