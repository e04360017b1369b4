"""
Catalog CRUD shared by services, POIs, vehicle types, vehicles, rates,
experiences and clients.

Each resource is a ``CatalogService`` subclass declaring its model, search
and sort columns and validation rules. Uniqueness is checked under a lock
on the uniqueness key and backed by partial unique indexes; an
IntegrityError at commit is reported as the same Conflict.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Hashable, Optional, Sequence

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from backoffice.errors import Conflict, NotFound, ValidationError
from backoffice.models.base import CatalogBase, Lifecycle
from backoffice.models.client import Client
from backoffice.models.experience import EXPERIENCE_TYPES, Experience
from backoffice.models.poi import POI, POI_SERVICE_TYPES
from backoffice.models.rate import Rate
from backoffice.models.service import Service
from backoffice.models.user import User
from backoffice.models.vehicle import MAINTENANCE_STATUSES, Vehicle
from backoffice.models.vehicle_type import VehicleType
from backoffice.policy import authorize
from backoffice.services.audit import record_audit
from backoffice.services.listing import ListPage, ListParams, paginate, resolve_sort
from backoffice.services.locks import catalog_locks

logger = logging.getLogger(__name__)


def _parse_bool(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "si", "sí")


def _int_filter(filters: dict[str, str], key: str) -> Optional[int]:
    value = filters.get(key)
    if not value:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Filtro {key} inválido", code="invalid_filter")


class CatalogService:
    model: type[CatalogBase]
    resource: str
    label: str
    not_found_message: str = "Registro no encontrado"
    conflict_message: str = "El registro ya existe"
    search_columns: Sequence[Any] = ()
    sort_columns: dict[str, Any] = {}
    column_order: Sequence[str] = ()
    default_sort: str = "createdAt"
    load_options: Sequence[Any] = ()

    # ================================================================
    # Hooks
    # ================================================================

    def base_query(self) -> Select:
        return select(self.model).where(self.model.not_deleted())

    def apply_filters(self, stmt: Select, filters: dict[str, str]) -> Select:
        active = _parse_bool(filters.get("active"))
        if active is not None:
            lifecycle = Lifecycle.ACTIVE if active else Lifecycle.INACTIVE
            stmt = stmt.where(self.model.lifecycle == lifecycle)
        return stmt

    def normalize(self, values: dict) -> dict:
        return values

    async def validate(self, db: AsyncSession, values: dict, existing: Optional[CatalogBase] = None) -> None:
        """Raise ValidationError / Conflict for invalid or duplicate rows."""

    def uniqueness_key(self, values: dict) -> Optional[Hashable]:
        return None

    def snapshot(self, row: CatalogBase, fields: Sequence[str]) -> dict:
        return {field: getattr(row, field, None) for field in fields}

    def reject_nulls(self, values: dict) -> None:
        """Explicit nulls on NOT NULL columns are input errors, not conflicts."""
        columns = self.model.__table__.columns
        for field, value in values.items():
            column = columns.get(field)
            if value is None and column is not None and not column.nullable:
                raise ValidationError(f"El campo {field} es requerido", code="required_field")

    # ================================================================
    # Reads
    # ================================================================

    async def list_rows(self, db: AsyncSession, actor: User, params: ListParams) -> ListPage:
        authorize(actor, self.resource, "read")
        stmt = self.apply_filters(self.base_query(), params.filters)
        order = resolve_sort(params, self.sort_columns, self.column_order, self.default_sort)
        return await paginate(
            db,
            stmt,
            params,
            search_columns=self.search_columns,
            order_by=(order, self.model.id.asc()),
            options=self.load_options,
        )

    async def list_active(self, db: AsyncSession, actor: User) -> list:
        """Active rows for select boxes, in default sort order."""
        authorize(actor, self.resource, "read")
        result = await db.execute(
            self.base_query()
            .where(self.model.lifecycle == Lifecycle.ACTIVE)
            .order_by(self.sort_columns[self.default_sort].asc(), self.model.id.asc())
            .options(*self.load_options)
        )
        return list(result.scalars().unique().all())

    async def _get(self, db: AsyncSession, row_id: int) -> CatalogBase:
        result = await db.execute(
            select(self.model)
            .where(self.model.id == row_id, self.model.not_deleted())
            .options(*self.load_options)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFound(self.not_found_message, code=f"{self.resource}_not_found")
        return row

    async def get_by_id(self, db: AsyncSession, actor: User, row_id: int) -> CatalogBase:
        authorize(actor, self.resource, "read")
        return await self._get(db, row_id)

    # ================================================================
    # Writes
    # ================================================================

    async def create(self, db: AsyncSession, actor: User, values: dict) -> CatalogBase:
        authorize(actor, self.resource, "create")
        values = self.normalize(dict(values))
        active = values.pop("active", True)
        self.reject_nulls(values)

        async with catalog_locks.hold((self.resource, self.uniqueness_key(values))):
            await self.validate(db, values)
            row = self.model(**values)
            row.lifecycle = Lifecycle.ACTIVE if active in (None, True) else Lifecycle.INACTIVE
            db.add(row)
            await self._commit(db, actor, "create")

        logger.info(
            f"{self.label} {row.id} created",
            extra={"actor_id": str(actor.id), "role": actor.role, "resource": self.resource, "resource_id": row.id},
        )
        await record_audit(db, actor, self.resource, row.id, "create", new_values=values)
        return await self._get(db, row.id)

    async def update(self, db: AsyncSession, actor: User, row_id: int, changes: dict) -> CatalogBase:
        authorize(actor, self.resource, "update")
        row = await self._get(db, row_id)
        changes = self.normalize(dict(changes))
        active = changes.pop("active", None)
        self.reject_nulls(changes)
        if not changes and active is None:
            raise ValidationError("No se proporcionaron campos para actualizar", code="no_changes")

        merged = {**self.snapshot(row, self.model.__table__.columns.keys()), **changes}
        async with catalog_locks.hold((self.resource, self.uniqueness_key(merged))):
            await self.validate(db, merged, existing=row)
            old_values = self.snapshot(row, list(changes))
            for field, value in changes.items():
                setattr(row, field, value)
            if active is not None:
                row.lifecycle = Lifecycle.ACTIVE if active else Lifecycle.INACTIVE
            await self._commit(db, actor, "update")

        await record_audit(db, actor, self.resource, row_id, "update", old_values=old_values, new_values=changes)
        return await self._get(db, row_id)

    async def toggle_status(self, db: AsyncSession, actor: User, row_id: int, active: bool) -> CatalogBase:
        authorize(actor, self.resource, "toggle_status")
        row = await self._get(db, row_id)
        previous = row.lifecycle
        row.lifecycle = Lifecycle.ACTIVE if active else Lifecycle.INACTIVE
        await self._commit(db, actor, "toggle status")

        logger.info(
            f"{self.label} {row_id} {'activated' if active else 'deactivated'}",
            extra={"actor_id": str(actor.id), "role": actor.role, "resource": self.resource, "resource_id": row_id},
        )
        await record_audit(
            db, actor, self.resource, row_id, "toggle_status",
            old_values={"lifecycle": previous.value},
            new_values={"lifecycle": row.lifecycle.value},
        )
        return await self._get(db, row_id)

    async def soft_delete(self, db: AsyncSession, actor: User, row_id: int) -> None:
        authorize(actor, self.resource, "delete")
        row = await self._get(db, row_id)
        row.lifecycle = Lifecycle.DELETED
        await self._commit(db, actor, "delete")

        logger.info(
            f"{self.label} {row_id} deleted",
            extra={"actor_id": str(actor.id), "role": actor.role, "resource": self.resource, "resource_id": row_id},
        )
        await record_audit(db, actor, self.resource, row_id, "delete")

    async def _commit(self, db: AsyncSession, actor: User, operation: str) -> None:
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning(f"{self.label} {operation} rejected by constraint: {e.orig}")
            raise Conflict(self.conflict_message, code=f"{self.resource}_conflict")
        except SQLAlchemyError:
            await db.rollback()
            logger.error(
                f"Failed to {operation} {self.label}",
                exc_info=True,
                extra={"actor_id": str(actor.id), "resource": self.resource},
            )
            raise

    # ================================================================
    # Shared validation helpers
    # ================================================================

    async def _ensure_unique(self, db: AsyncSession, existing: Optional[CatalogBase], *criteria) -> None:
        stmt = select(self.model.id).where(self.model.not_deleted(), *criteria)
        if existing is not None:
            stmt = stmt.where(self.model.id != existing.id)
        if await db.scalar(stmt.limit(1)) is not None:
            raise Conflict(self.conflict_message, code=f"{self.resource}_conflict")

    @staticmethod
    async def _ensure_reference(db: AsyncSession, model: type[CatalogBase], row_id: Optional[int], message: str) -> None:
        if row_id is None:
            raise ValidationError(message)
        found = await db.scalar(select(model.id).where(model.id == row_id, model.not_deleted()))
        if found is None:
            raise ValidationError(message)


# ========================================================================
# Services (priced routes)
# ========================================================================

_origin = aliased(POI)
_destination = aliased(POI)


class ServiceCatalog(CatalogService):
    model = Service
    resource = "services"
    label = "Servicio"
    not_found_message = "Servicio no encontrado"
    conflict_message = "Ya existe un servicio con esta ruta, tipo de vehículo y tarifa"
    search_columns = (_origin.name, _destination.name, VehicleType.name, Rate.name, Service.note)
    sort_columns = {
        "rate": Rate.name,
        "originPOI": _origin.name,
        "destinationPOI": _destination.name,
        "vehicleType": VehicleType.name,
        "price": Service.price,
        "note": Service.note,
        "active": Service.lifecycle,
        "createdAt": Service.created_at,
    }
    column_order = ("rate", "originPOI", "destinationPOI", "vehicleType", "price", "note", "active")
    default_sort = "rate"
    load_options = (
        selectinload(Service.origin_poi),
        selectinload(Service.destination_poi),
        selectinload(Service.vehicle_type),
        selectinload(Service.rate),
    )

    def base_query(self) -> Select:
        return (
            select(Service)
            .outerjoin(_origin, Service.origin_poi_id == _origin.id)
            .join(_destination, Service.destination_poi_id == _destination.id)
            .join(VehicleType, Service.vehicle_type_id == VehicleType.id)
            .join(Rate, Service.rate_id == Rate.id)
            .where(Service.not_deleted())
        )

    def apply_filters(self, stmt: Select, filters: dict[str, str]) -> Select:
        stmt = super().apply_filters(stmt, filters)
        rate_id = _int_filter(filters, "rateId")
        if rate_id is not None:
            stmt = stmt.where(Service.rate_id == rate_id)
        vehicle_type_id = _int_filter(filters, "vehicleTypeId")
        if vehicle_type_id is not None:
            stmt = stmt.where(Service.vehicle_type_id == vehicle_type_id)
        if filters.get("serviceType"):
            stmt = stmt.where(_destination.service_type == filters["serviceType"])
        return stmt

    def normalize(self, values: dict) -> dict:
        if isinstance(values.get("note"), str):
            values["note"] = values["note"].strip() or None
        return values

    def uniqueness_key(self, values: dict) -> Hashable:
        return (
            values.get("origin_poi_id"),
            values.get("destination_poi_id"),
            values.get("vehicle_type_id"),
            values.get("rate_id"),
        )

    async def validate(self, db: AsyncSession, values: dict, existing: Optional[Service] = None) -> None:
        origin_id = values.get("origin_poi_id")
        destination_id = values.get("destination_poi_id")
        price = values.get("price")
        if price is None or Decimal(str(price)) <= 0:
            raise ValidationError("El precio debe ser mayor a 0")
        note = values.get("note")
        if note and len(note) > 500:
            raise ValidationError("La nota no puede exceder 500 caracteres")
        if origin_id is not None and origin_id == destination_id:
            raise ValidationError("El origen y el destino no pueden ser el mismo")

        if origin_id is not None:
            await self._ensure_reference(db, POI, origin_id, "El punto de origen no existe")
        await self._ensure_reference(db, POI, destination_id, "El punto de destino no existe")
        await self._ensure_reference(db, VehicleType, values.get("vehicle_type_id"), "El tipo de vehículo no existe")
        await self._ensure_reference(db, Rate, values.get("rate_id"), "La tarifa no existe")

        origin_clause = Service.origin_poi_id.is_(None) if origin_id is None else Service.origin_poi_id == origin_id
        # Active and inactive rows both count; only deleted rows free the route
        await self._ensure_unique(
            db,
            existing,
            origin_clause,
            Service.destination_poi_id == destination_id,
            Service.vehicle_type_id == values.get("vehicle_type_id"),
            Service.rate_id == values.get("rate_id"),
        )


# ========================================================================
# Points of interest
# ========================================================================

class POICatalog(CatalogService):
    model = POI
    resource = "pois"
    label = "POI"
    not_found_message = "Punto de interés no encontrado"
    conflict_message = "Ya existe un punto de interés con este nombre"
    search_columns = (POI.name, POI.address)
    sort_columns = {"name": POI.name, "serviceType": POI.service_type, "active": POI.lifecycle, "createdAt": POI.created_at}
    column_order = ("name", "serviceType", "active")
    default_sort = "name"

    def apply_filters(self, stmt: Select, filters: dict[str, str]) -> Select:
        stmt = super().apply_filters(stmt, filters)
        if filters.get("serviceType"):
            stmt = stmt.where(POI.service_type == filters["serviceType"])
        return stmt

    def normalize(self, values: dict) -> dict:
        if isinstance(values.get("name"), str):
            values["name"] = values["name"].strip()
        return values

    async def validate(self, db: AsyncSession, values: dict, existing: Optional[POI] = None) -> None:
        if not values.get("name"):
            raise ValidationError("El nombre es requerido")
        if values.get("service_type", "local") not in POI_SERVICE_TYPES:
            raise ValidationError(f"Tipo de servicio inválido. Debe ser uno de: {', '.join(POI_SERVICE_TYPES)}")
        await self._ensure_unique(db, existing, POI.name == values["name"])


# ========================================================================
# Vehicle types
# ========================================================================

class VehicleTypeCatalog(CatalogService):
    model = VehicleType
    resource = "vehicle_types"
    label = "Tipo de vehículo"
    not_found_message = "Tipo de vehículo no encontrado"
    conflict_message = "Ya existe un tipo de vehículo con este código"
    search_columns = (VehicleType.name, VehicleType.code, VehicleType.description)
    sort_columns = {
        "name": VehicleType.name,
        "code": VehicleType.code,
        "defaultCapacity": VehicleType.default_capacity,
        "sortOrder": VehicleType.sort_order,
        "active": VehicleType.lifecycle,
        "createdAt": VehicleType.created_at,
    }
    column_order = ("name", "code", "defaultCapacity", "sortOrder", "active")
    default_sort = "sortOrder"

    def normalize(self, values: dict) -> dict:
        if isinstance(values.get("code"), str):
            values["code"] = values["code"].strip().lower()
        return values

    def uniqueness_key(self, values: dict) -> Hashable:
        return values.get("code")

    async def validate(self, db: AsyncSession, values: dict, existing: Optional[VehicleType] = None) -> None:
        if not values.get("name") or not values.get("code"):
            raise ValidationError("Nombre y código son requeridos")
        capacity = values.get("default_capacity") or 4
        if not 1 <= int(capacity) <= 100:
            raise ValidationError("La capacidad debe estar entre 1 y 100")
        await self._ensure_unique(db, existing, VehicleType.code == values["code"])


# ========================================================================
# Rates
# ========================================================================

class RateCatalog(CatalogService):
    model = Rate
    resource = "rates"
    label = "Tarifa"
    not_found_message = "Tarifa no encontrada"
    conflict_message = "Ya existe una tarifa con este nombre"
    search_columns = (Rate.name,)
    sort_columns = {"name": Rate.name, "percentage": Rate.percentage, "active": Rate.lifecycle, "createdAt": Rate.created_at}
    column_order = ("name", "percentage", "color", "active")
    default_sort = "name"

    def normalize(self, values: dict) -> dict:
        if isinstance(values.get("name"), str):
            values["name"] = values["name"].strip()
        if isinstance(values.get("color"), str):
            values["color"] = values["color"].upper()
        return values

    def uniqueness_key(self, values: dict) -> Hashable:
        return (values.get("name") or "").lower()

    async def validate(self, db: AsyncSession, values: dict, existing: Optional[Rate] = None) -> None:
        if not values.get("name"):
            raise ValidationError("El nombre es requerido")
        percentage = Decimal(str(values.get("percentage") or 0))
        if not Decimal("0") <= percentage <= Decimal("100"):
            raise ValidationError("El porcentaje debe estar entre 0 y 100")
        await self._ensure_unique(db, existing, Rate.name == values["name"])


# ========================================================================
# Vehicles
# ========================================================================

class VehicleCatalog(CatalogService):
    model = Vehicle
    resource = "vehicles"
    label = "Vehículo"
    not_found_message = "Vehículo no encontrado"
    conflict_message = "Ya existe un vehículo con esta placa"
    search_columns = (Vehicle.brand, Vehicle.model, Vehicle.license_plate, VehicleType.name)
    sort_columns = {
        "brand": Vehicle.brand,
        "model": Vehicle.model,
        "year": Vehicle.year,
        "licensePlate": Vehicle.license_plate,
        "vehicleType": VehicleType.name,
        "capacity": Vehicle.capacity,
        "maintenanceStatus": Vehicle.maintenance_status,
        "active": Vehicle.lifecycle,
        "createdAt": Vehicle.created_at,
    }
    column_order = ("brand", "model", "year", "licensePlate", "vehicleType", "capacity", "maintenanceStatus", "active")
    default_sort = "brand"
    load_options = (selectinload(Vehicle.vehicle_type), selectinload(Vehicle.rate))

    def base_query(self) -> Select:
        return (
            select(Vehicle)
            .join(VehicleType, Vehicle.vehicle_type_id == VehicleType.id)
            .where(Vehicle.not_deleted())
        )

    def apply_filters(self, stmt: Select, filters: dict[str, str]) -> Select:
        stmt = super().apply_filters(stmt, filters)
        vehicle_type_id = _int_filter(filters, "vehicleTypeId")
        if vehicle_type_id is not None:
            stmt = stmt.where(Vehicle.vehicle_type_id == vehicle_type_id)
        if filters.get("maintenanceStatus"):
            stmt = stmt.where(Vehicle.maintenance_status == filters["maintenanceStatus"])
        return stmt

    def normalize(self, values: dict) -> dict:
        if isinstance(values.get("license_plate"), str):
            values["license_plate"] = values["license_plate"].strip().upper()
        return values

    def uniqueness_key(self, values: dict) -> Hashable:
        return values.get("license_plate")

    async def validate(self, db: AsyncSession, values: dict, existing: Optional[Vehicle] = None) -> None:
        year = int(values.get("year") or 0)
        if not 1990 <= year <= date.today().year + 1:
            raise ValidationError(f"El año debe estar entre 1990 y {date.today().year + 1}")
        capacity = int(values.get("capacity") or 0)
        if not 1 <= capacity <= 100:
            raise ValidationError("La capacidad debe estar entre 1 y 100")
        if values.get("maintenance_status", "operational") not in MAINTENANCE_STATUSES:
            raise ValidationError(f"Estado de mantenimiento inválido. Debe ser uno de: {', '.join(MAINTENANCE_STATUSES)}")
        await self._ensure_reference(db, VehicleType, values.get("vehicle_type_id"), "El tipo de vehículo no existe")
        if values.get("rate_id") is not None:
            await self._ensure_reference(db, Rate, values["rate_id"], "La tarifa no existe")
        await self._ensure_unique(db, existing, Vehicle.license_plate == values.get("license_plate"))


# ========================================================================
# Experiences
# ========================================================================

class ExperienceCatalog(CatalogService):
    model = Experience
    resource = "experiences"
    label = "Experiencia"
    not_found_message = "Experiencia no encontrada"
    conflict_message = "Ya existe una experiencia con este nombre"
    search_columns = (Experience.name, Experience.description)
    sort_columns = {
        "name": Experience.name,
        "type": Experience.type,
        "cost": Experience.cost,
        "active": Experience.lifecycle,
        "createdAt": Experience.created_at,
    }
    column_order = ("name", "type", "cost", "active")
    default_sort = "name"

    def apply_filters(self, stmt: Select, filters: dict[str, str]) -> Select:
        stmt = super().apply_filters(stmt, filters)
        if filters.get("type"):
            stmt = stmt.where(Experience.type == filters["type"])
        return stmt

    async def validate(self, db: AsyncSession, values: dict, existing: Optional[Experience] = None) -> None:
        if not values.get("name"):
            raise ValidationError("El nombre es requerido")
        if values.get("type", "Experience") not in EXPERIENCE_TYPES:
            raise ValidationError("El tipo debe ser Experience o Provider")
        if Decimal(str(values.get("cost") or 0)) < 0:
            raise ValidationError("El costo no puede ser negativo")
        min_people, max_people = values.get("min_people"), values.get("max_people")
        if min_people and max_people and int(min_people) > int(max_people):
            raise ValidationError("El mínimo de personas no puede ser mayor al máximo")

        included = [int(i) for i in values.get("included_experience_ids") or []]
        if existing is not None and existing.id in included:
            raise ValidationError("Una experiencia no puede incluirse a sí misma")
        if included:
            result = await db.execute(
                select(Experience.id).where(Experience.id.in_(included), Experience.not_deleted())
            )
            missing = set(included) - set(result.scalars().all())
            if missing:
                raise ValidationError(f"Experiencias incluidas no encontradas: {', '.join(map(str, sorted(missing)))}")
        values["included_experience_ids"] = included
        await self._ensure_unique(db, existing, Experience.name == values["name"], Experience.type == values.get("type", "Experience"))


# ========================================================================
# Clients
# ========================================================================

class ClientCatalog(CatalogService):
    model = Client
    resource = "clients"
    label = "Cliente"
    not_found_message = "Cliente no encontrado"
    conflict_message = "Ya existe un cliente con este correo"
    search_columns = (Client.company_name, Client.contact_name, Client.email, Client.rfc)
    sort_columns = {
        "companyName": Client.company_name,
        "contactName": Client.contact_name,
        "email": Client.email,
        "active": Client.lifecycle,
        "createdAt": Client.created_at,
    }
    column_order = ("companyName", "contactName", "email", "phone", "active")
    default_sort = "companyName"

    def normalize(self, values: dict) -> dict:
        if isinstance(values.get("email"), str):
            values["email"] = values["email"].strip().lower() or None
        if isinstance(values.get("rfc"), str):
            values["rfc"] = values["rfc"].strip().upper() or None
        return values

    def uniqueness_key(self, values: dict) -> Hashable:
        return values.get("email")

    async def validate(self, db: AsyncSession, values: dict, existing: Optional[Client] = None) -> None:
        if not values.get("company_name"):
            raise ValidationError("El nombre de la empresa es requerido")
        if values.get("email"):
            await self._ensure_unique(db, existing, Client.email == values["email"])


service_catalog = ServiceCatalog()
poi_catalog = POICatalog()
vehicle_type_catalog = VehicleTypeCatalog()
rate_catalog = RateCatalog()
vehicle_catalog = VehicleCatalog()
experience_catalog = ExperienceCatalog()
client_catalog = ClientCatalog()
