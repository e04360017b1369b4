"""
Catalog endpoints: services, POIs, vehicle types, vehicles, rates,
experiences and clients.

Every resource exposes the same routes, built by ``catalog_router``:

    GET    ""                    DataTables list (search, sort, ?active=)
    GET    "/active"             active rows for select boxes
    GET    "/{id}"
    POST   ""
    PUT    "/{id}"
    PATCH  "/{id}/toggle-status" {"active": bool}
    DELETE "/{id}"               soft delete
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field

from backoffice.api.common import (
    ApiResponse,
    CamelModel,
    DataTablesResponse,
    Money,
    NamedRef,
    datatables_params,
    to_datatables,
)
from backoffice.api.deps import DbSession, require_policy
from backoffice.models.user import User
from backoffice.services.catalog_service import (
    CatalogService,
    client_catalog,
    experience_catalog,
    poi_catalog,
    rate_catalog,
    service_catalog,
    vehicle_catalog,
    vehicle_type_catalog,
)
from backoffice.services.listing import ListParams


# ============ SCHEMAS ============

class ToggleStatus(CamelModel):
    active: bool


class RateRef(NamedRef):
    color: str


class VehicleTypeRef(NamedRef):
    code: str


class POIRef(NamedRef):
    service_type: str


# --- Services ---

class ServiceCreate(CamelModel):
    origin_poi_id: Optional[int] = None
    destination_poi_id: int
    vehicle_type_id: int
    rate_id: int
    price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    is_round_trip: bool = False
    note: Optional[str] = Field(None, max_length=500)
    active: bool = True


class ServiceUpdate(CamelModel):
    origin_poi_id: Optional[int] = None
    destination_poi_id: Optional[int] = None
    vehicle_type_id: Optional[int] = None
    rate_id: Optional[int] = None
    price: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    is_round_trip: Optional[bool] = None
    note: Optional[str] = Field(None, max_length=500)
    active: Optional[bool] = None


class ServiceResponse(CamelModel):
    id: int
    origin_poi: Optional[POIRef] = None
    destination_poi: POIRef
    vehicle_type: VehicleTypeRef
    rate: RateRef
    price: Money
    is_round_trip: bool
    note: Optional[str] = None
    active: bool
    created_at: datetime
    updated_at: datetime


# --- POIs ---

class POICreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    service_type: Literal["airport", "local", "city"] = "local"
    address: Optional[str] = None
    active: bool = True


class POIUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    service_type: Optional[Literal["airport", "local", "city"]] = None
    address: Optional[str] = None
    active: Optional[bool] = None


class POIResponse(CamelModel):
    id: int
    name: str
    service_type: str
    address: Optional[str] = None
    active: bool
    created_at: datetime


# --- Vehicle types ---

class VehicleTypeCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    description: Optional[str] = None
    icon: str = "car"
    default_capacity: int = Field(4, ge=1, le=100)
    sort_order: int = 0
    active: bool = True


class VehicleTypeUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    code: Optional[str] = Field(None, min_length=1, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    description: Optional[str] = None
    icon: Optional[str] = None
    default_capacity: Optional[int] = Field(None, ge=1, le=100)
    sort_order: Optional[int] = None
    active: Optional[bool] = None


class VehicleTypeResponse(CamelModel):
    id: int
    name: str
    code: str
    description: Optional[str] = None
    icon: str
    default_capacity: int
    sort_order: int
    active: bool
    created_at: datetime


# --- Rates ---

class RateCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    percentage: Decimal = Field(Decimal("0"), ge=0, le=100)
    color: str = Field("#6366F1", pattern=r"^#[0-9A-Fa-f]{6}$")
    active: bool = True


class RateUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    active: Optional[bool] = None


class RateResponse(CamelModel):
    id: int
    name: str
    percentage: Money
    color: str
    active: bool
    created_at: datetime


# --- Vehicles ---

MaintenanceStatus = Literal["operational", "maintenance", "repair", "out_of_service"]


class VehicleCreate(CamelModel):
    brand: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    year: int
    license_plate: str = Field(..., min_length=1, max_length=20)
    capacity: int
    color: Optional[str] = None
    vehicle_type_id: int
    rate_id: Optional[int] = None
    maintenance_status: MaintenanceStatus = "operational"
    insurance_expiry: Optional[date] = None
    active: bool = True


class VehicleUpdate(CamelModel):
    brand: Optional[str] = Field(None, min_length=1, max_length=100)
    model: Optional[str] = Field(None, min_length=1, max_length=100)
    year: Optional[int] = None
    license_plate: Optional[str] = Field(None, min_length=1, max_length=20)
    capacity: Optional[int] = None
    color: Optional[str] = None
    vehicle_type_id: Optional[int] = None
    rate_id: Optional[int] = None
    maintenance_status: Optional[MaintenanceStatus] = None
    insurance_expiry: Optional[date] = None
    active: Optional[bool] = None


class VehicleResponse(CamelModel):
    id: int
    brand: str
    model: str
    year: int
    license_plate: str
    capacity: int
    color: Optional[str] = None
    vehicle_type: VehicleTypeRef
    rate: Optional[RateRef] = None
    maintenance_status: str
    insurance_expiry: Optional[date] = None
    active: bool
    created_at: datetime


# --- Experiences ---

class ExperienceCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: Literal["Experience", "Provider"] = "Experience"
    cost: Decimal = Field(Decimal("0"), ge=0)
    duration_hours: Optional[Decimal] = Field(None, ge=0)
    min_people: Optional[int] = Field(None, ge=1)
    max_people: Optional[int] = Field(None, ge=1)
    included_experience_ids: list[int] = []
    active: bool = True


class ExperienceUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[Literal["Experience", "Provider"]] = None
    cost: Optional[Decimal] = Field(None, ge=0)
    duration_hours: Optional[Decimal] = Field(None, ge=0)
    min_people: Optional[int] = Field(None, ge=1)
    max_people: Optional[int] = Field(None, ge=1)
    included_experience_ids: Optional[list[int]] = None
    active: Optional[bool] = None


class ExperienceResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    type: str
    cost: Money
    duration_hours: Optional[Money] = None
    min_people: Optional[int] = None
    max_people: Optional[int] = None
    included_experience_ids: list[int]
    active: bool
    created_at: datetime


# --- Clients ---

class ClientCreate(CamelModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    contact_name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    rfc: Optional[str] = Field(None, min_length=12, max_length=13)
    address: Optional[str] = None
    active: bool = True


class ClientUpdate(CamelModel):
    company_name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    rfc: Optional[str] = Field(None, min_length=12, max_length=13)
    address: Optional[str] = None
    active: Optional[bool] = None


class ClientResponse(CamelModel):
    id: int
    company_name: str
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    rfc: Optional[str] = None
    address: Optional[str] = None
    active: bool
    created_at: datetime


# ============ ROUTER FACTORY ============

def catalog_router(
    catalog: CatalogService,
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    response_schema: type[BaseModel],
) -> APIRouter:
    router = APIRouter()
    resource = catalog.resource

    @router.get("", response_model=DataTablesResponse[response_schema])
    async def list_rows(
        db: DbSession,
        params: ListParams = Depends(datatables_params),
        user: User = Depends(require_policy(resource, "read")),
    ):
        page = await catalog.list_rows(db, user, params)
        return to_datatables(page, response_schema)

    @router.get("/active", response_model=ApiResponse[list[response_schema]])
    async def list_active(
        db: DbSession,
        user: User = Depends(require_policy(resource, "read")),
    ):
        rows = await catalog.list_active(db, user)
        return ApiResponse(data=[response_schema.model_validate(row) for row in rows])

    @router.get("/{row_id}", response_model=ApiResponse[response_schema])
    async def get_row(
        row_id: int,
        db: DbSession,
        user: User = Depends(require_policy(resource, "read")),
    ):
        row = await catalog.get_by_id(db, user, row_id)
        return ApiResponse(data=response_schema.model_validate(row))

    @router.post("", response_model=ApiResponse[response_schema], status_code=status.HTTP_201_CREATED)
    async def create_row(
        data: create_schema,  # type: ignore[valid-type]
        db: DbSession,
        user: User = Depends(require_policy(resource, "create")),
    ):
        row = await catalog.create(db, user, data.model_dump())
        return ApiResponse(data=response_schema.model_validate(row), message="Registro creado exitosamente")

    @router.put("/{row_id}", response_model=ApiResponse[response_schema])
    async def update_row(
        row_id: int,
        data: update_schema,  # type: ignore[valid-type]
        db: DbSession,
        user: User = Depends(require_policy(resource, "update")),
    ):
        row = await catalog.update(db, user, row_id, data.model_dump(exclude_unset=True))
        return ApiResponse(data=response_schema.model_validate(row), message="Registro actualizado exitosamente")

    @router.patch("/{row_id}/toggle-status", response_model=ApiResponse[response_schema])
    async def toggle_status(
        row_id: int,
        data: ToggleStatus,
        db: DbSession,
        user: User = Depends(require_policy(resource, "toggle_status")),
    ):
        row = await catalog.toggle_status(db, user, row_id, data.active)
        message = "Registro activado exitosamente" if data.active else "Registro desactivado exitosamente"
        return ApiResponse(data=response_schema.model_validate(row), message=message)

    @router.delete("/{row_id}", response_model=ApiResponse[None])
    async def delete_row(
        row_id: int,
        db: DbSession,
        user: User = Depends(require_policy(resource, "delete")),
    ):
        await catalog.soft_delete(db, user, row_id)
        return ApiResponse(message="Registro eliminado exitosamente")

    return router


services_router = catalog_router(service_catalog, ServiceCreate, ServiceUpdate, ServiceResponse)
pois_router = catalog_router(poi_catalog, POICreate, POIUpdate, POIResponse)
vehicle_types_router = catalog_router(vehicle_type_catalog, VehicleTypeCreate, VehicleTypeUpdate, VehicleTypeResponse)
rates_router = catalog_router(rate_catalog, RateCreate, RateUpdate, RateResponse)
vehicles_router = catalog_router(vehicle_catalog, VehicleCreate, VehicleUpdate, VehicleResponse)
experiences_router = catalog_router(experience_catalog, ExperienceCreate, ExperienceUpdate, ExperienceResponse)
clients_router = catalog_router(client_catalog, ClientCreate, ClientUpdate, ClientResponse)
