from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.errors import AuthorizationDenied, Conflict, NotFound, ValidationError
from backoffice.models import Service, User
from backoffice.models.base import Lifecycle
from backoffice.services.catalog_service import (
    client_catalog,
    experience_catalog,
    poi_catalog,
    rate_catalog,
    service_catalog,
    vehicle_catalog,
    vehicle_type_catalog,
)
from backoffice.services.listing import ListParams


def _route(rows: dict, **overrides) -> dict:
    values = {
        "origin_poi_id": rows["airport"].id,
        "destination_poi_id": rows["hotel"].id,
        "vehicle_type_id": rows["suburban"].id,
        "rate_id": rows["rate"].id,
        "price": Decimal("1450.00"),
    }
    values.update(overrides)
    return values


# ============ Services (priced routes) ============

async def test_duplicate_route_conflicts_even_when_inactive(
    db_session: AsyncSession, admin: User, catalog_rows: dict
) -> None:
    first = await service_catalog.create(db_session, admin, _route(catalog_rows))
    assert first.active

    with pytest.raises(Conflict) as exc_info:
        await service_catalog.create(db_session, admin, _route(catalog_rows, price=Decimal("999")))
    assert exc_info.value.message == "Ya existe un servicio con esta ruta, tipo de vehículo y tarifa"

    toggled = await service_catalog.toggle_status(db_session, admin, first.id, False)
    assert toggled.lifecycle == Lifecycle.INACTIVE

    with pytest.raises(Conflict):
        await service_catalog.create(db_session, admin, _route(catalog_rows))


async def test_deleted_route_frees_the_tuple(db_session: AsyncSession, admin: User, catalog_rows: dict) -> None:
    first = await service_catalog.create(db_session, admin, _route(catalog_rows))
    await service_catalog.soft_delete(db_session, admin, first.id)

    again = await service_catalog.create(db_session, admin, _route(catalog_rows))
    assert again.id != first.id
    with pytest.raises(NotFound):
        await service_catalog.get_by_id(db_session, admin, first.id)


async def test_routes_without_origin_are_unique_too(
    db_session: AsyncSession, admin: User, catalog_rows: dict
) -> None:
    await service_catalog.create(db_session, admin, _route(catalog_rows, origin_poi_id=None))
    with pytest.raises(Conflict):
        await service_catalog.create(db_session, admin, _route(catalog_rows, origin_poi_id=None))


async def test_route_validation(db_session: AsyncSession, admin: User, catalog_rows: dict) -> None:
    same = catalog_rows["hotel"].id
    with pytest.raises(ValidationError):
        await service_catalog.create(db_session, admin, _route(catalog_rows, origin_poi_id=same, destination_poi_id=same))
    with pytest.raises(ValidationError):
        await service_catalog.create(db_session, admin, _route(catalog_rows, price=Decimal("0")))
    with pytest.raises(ValidationError):
        await service_catalog.create(db_session, admin, _route(catalog_rows, rate_id=9999))


async def test_update_route_into_existing_tuple_conflicts(
    db_session: AsyncSession, admin: User, catalog_rows: dict
) -> None:
    await service_catalog.create(db_session, admin, _route(catalog_rows))
    other = await service_catalog.create(
        db_session, admin, _route(catalog_rows, destination_poi_id=catalog_rows["museum"].id)
    )

    with pytest.raises(Conflict):
        await service_catalog.update(db_session, admin, other.id, {"destination_poi_id": catalog_rows["hotel"].id})

    updated = await service_catalog.update(db_session, admin, other.id, {"price": Decimal("2000"), "note": "  Nocturno "})
    assert updated.price == Decimal("2000")
    assert updated.note == "Nocturno"
    assert updated.destination_poi.name == "Museo de Antropología"


async def test_service_list_sorts_and_searches_on_related_names(
    db_session: AsyncSession, admin: User, catalog_rows: dict
) -> None:
    to_hotel = await service_catalog.create(db_session, admin, _route(catalog_rows))
    to_museum = await service_catalog.create(
        db_session, admin, _route(catalog_rows, destination_poi_id=catalog_rows["museum"].id)
    )

    by_destination = await service_catalog.list_rows(
        db_session, admin, ListParams(sort="destinationPOI", sort_dir="desc")
    )
    assert [s.id for s in by_destination.rows] == [to_museum.id, to_hotel.id]

    by_index = await service_catalog.list_rows(db_session, admin, ListParams(sort="2", sort_dir="asc"))
    assert [s.id for s in by_index.rows] == [to_hotel.id, to_museum.id]

    searched = await service_catalog.list_rows(db_session, admin, ListParams(search="museo"))
    assert searched.records_total == 2
    assert searched.records_filtered == 1
    assert searched.rows[0].destination_poi.name == "Museo de Antropología"

    city_only = await service_catalog.list_rows(db_session, admin, ListParams(filters={"serviceType": "city"}))
    assert [s.id for s in city_only.rows] == [to_hotel.id]


async def test_active_filter_and_active_list(db_session: AsyncSession, admin: User, catalog_rows: dict) -> None:
    kept = await service_catalog.create(db_session, admin, _route(catalog_rows))
    paused = await service_catalog.create(
        db_session, admin, _route(catalog_rows, destination_poi_id=catalog_rows["museum"].id, active=False)
    )
    assert paused.lifecycle == Lifecycle.INACTIVE

    inactive = await service_catalog.list_rows(db_session, admin, ListParams(filters={"active": "false"}))
    assert [s.id for s in inactive.rows] == [paused.id]

    options = await service_catalog.list_active(db_session, admin)
    assert [s.id for s in options] == [kept.id]


async def test_employee_reads_but_cannot_write(
    db_session: AsyncSession, employee: User, driver: User, catalog_rows: dict
) -> None:
    page = await service_catalog.list_rows(db_session, employee, ListParams())
    assert page.records_total == 0
    with pytest.raises(AuthorizationDenied):
        await service_catalog.create(db_session, employee, _route(catalog_rows))
    with pytest.raises(AuthorizationDenied):
        await service_catalog.list_rows(db_session, driver, ListParams())


async def test_page_length_is_capped(db_session: AsyncSession, admin: User) -> None:
    params = ListParams(length=5000, start=-3)
    assert params.length == 100
    assert params.start == 0


# ============ Other catalogs ============

async def test_poi_names_are_unique(db_session: AsyncSession, admin: User) -> None:
    await poi_catalog.create(db_session, admin, {"name": " Zócalo ", "service_type": "city"})
    with pytest.raises(Conflict):
        await poi_catalog.create(db_session, admin, {"name": "Zócalo"})


async def test_vehicle_type_code_is_normalized_and_unique(db_session: AsyncSession, admin: User) -> None:
    row = await vehicle_type_catalog.create(db_session, admin, {"name": "Sprinter", "code": " SPRINTER "})
    assert row.code == "sprinter"
    with pytest.raises(Conflict):
        await vehicle_type_catalog.create(db_session, admin, {"name": "Sprinter 2", "code": "sprinter"})


async def test_vehicle_rules(db_session: AsyncSession, admin: User, catalog_rows: dict) -> None:
    values = {
        "brand": "Chevrolet",
        "model": "Suburban",
        "year": date.today().year,
        "license_plate": "abc-123-x",
        "capacity": 7,
        "vehicle_type_id": catalog_rows["suburban"].id,
    }
    vehicle = await vehicle_catalog.create(db_session, admin, values)
    assert vehicle.license_plate == "ABC-123-X"
    assert vehicle.vehicle_type.code == "suburban"

    with pytest.raises(Conflict):
        await vehicle_catalog.create(db_session, admin, {**values, "license_plate": "ABC-123-X"})
    with pytest.raises(ValidationError):
        await vehicle_catalog.create(db_session, admin, {**values, "license_plate": "NEW-1", "year": 1980})
    with pytest.raises(ValidationError):
        await vehicle_catalog.create(db_session, admin, {**values, "license_plate": "NEW-2", "capacity": 0})


async def test_rate_rules(db_session: AsyncSession, admin: User) -> None:
    rate = await rate_catalog.create(db_session, admin, {"name": "Económico", "percentage": Decimal("5"), "color": "#00ff00"})
    assert rate.color == "#00FF00"
    with pytest.raises(Conflict):
        await rate_catalog.create(db_session, admin, {"name": "Económico"})
    with pytest.raises(ValidationError):
        await rate_catalog.update(db_session, admin, rate.id, {"percentage": Decimal("101")})


async def test_experience_includes_must_exist(db_session: AsyncSession, admin: User) -> None:
    tour = await experience_catalog.create(db_session, admin, {"name": "Tour Teotihuacán", "cost": Decimal("850")})
    bundle = await experience_catalog.create(
        db_session, admin, {"name": "Paquete Cultural", "included_experience_ids": [tour.id]}
    )
    assert bundle.included_experience_ids == [tour.id]

    with pytest.raises(ValidationError):
        await experience_catalog.create(db_session, admin, {"name": "Paquete Roto", "included_experience_ids": [9999]})
    with pytest.raises(ValidationError):
        await experience_catalog.update(db_session, admin, bundle.id, {"included_experience_ids": [bundle.id]})


async def test_client_email_is_unique(db_session: AsyncSession, admin: User) -> None:
    created = await client_catalog.create(
        db_session, admin, {"company_name": "Viajes del Sur", "email": "Ventas@ViajesSur.mx", "rfc": "vds010101ab1"}
    )
    assert created.email == "ventas@viajessur.mx"
    assert created.rfc == "VDS010101AB1"
    with pytest.raises(Conflict):
        await client_catalog.create(db_session, admin, {"company_name": "Otro", "email": "ventas@viajessur.mx"})


async def test_update_without_fields_is_rejected(db_session: AsyncSession, admin: User, catalog_rows: dict) -> None:
    with pytest.raises(ValidationError):
        await poi_catalog.update(db_session, admin, catalog_rows["airport"].id, {})


async def test_unknown_row_is_not_found(db_session: AsyncSession, admin: User) -> None:
    with pytest.raises(NotFound):
        await poi_catalog.get_by_id(db_session, admin, 12345)
    with pytest.raises(NotFound):
        await service_catalog.toggle_status(db_session, admin, 12345, True)


async def test_service_model_rows_survive_soft_delete(db_session: AsyncSession, admin: User, catalog_rows: dict) -> None:
    row = await service_catalog.create(db_session, admin, _route(catalog_rows))
    await service_catalog.soft_delete(db_session, admin, row.id)
    stored = await db_session.get(Service, row.id, populate_existing=True)
    assert stored is not None
    assert stored.exists is False


async def test_explicit_null_on_required_column_is_a_validation_error(
    db_session: AsyncSession, admin: User, catalog_rows: dict
) -> None:
    vehicle = await vehicle_catalog.create(
        db_session,
        admin,
        {
            "brand": "Toyota",
            "model": "Hiace",
            "year": date.today().year,
            "license_plate": "HIA-001",
            "capacity": 12,
            "vehicle_type_id": catalog_rows["suburban"].id,
        },
    )

    with pytest.raises(ValidationError) as exc_info:
        await vehicle_catalog.update(db_session, admin, vehicle.id, {"brand": None})
    assert exc_info.value.code == "required_field"

    with pytest.raises(ValidationError):
        await vehicle_type_catalog.update(db_session, admin, catalog_rows["suburban"].id, {"icon": None})

    unchanged = await vehicle_catalog.get_by_id(db_session, admin, vehicle.id)
    assert unchanged.brand == "Toyota"

    # Nullable columns still accept null
    cleared = await vehicle_catalog.update(db_session, admin, vehicle.id, {"color": None})
    assert cleared.color is None


async def test_non_numeric_id_filters_are_rejected(db_session: AsyncSession, admin: User) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await service_catalog.list_rows(db_session, admin, ListParams(filters={"rateId": "abc"}))
    assert exc_info.value.code == "invalid_filter"

    with pytest.raises(ValidationError):
        await vehicle_catalog.list_rows(db_session, admin, ListParams(filters={"vehicleTypeId": "1.5"}))
