from __future__ import annotations

from collections.abc import Callable

import pytest
from httpx import AsyncClient

from backoffice.models import User

Headers = Callable[[User], dict[str, str]]


async def test_service_route_conflict_over_http(
    api: AsyncClient, admin: User, catalog_rows: dict, headers_for: Headers
) -> None:
    headers = headers_for(admin)
    payload = {
        "originPoiId": catalog_rows["airport"].id,
        "destinationPoiId": catalog_rows["hotel"].id,
        "vehicleTypeId": catalog_rows["suburban"].id,
        "rateId": catalog_rows["rate"].id,
        "price": 1450.5,
        "note": "Incluye espera de 1 hora",
    }

    created = await api.post("/api/services", json=payload, headers=headers)
    assert created.status_code == 201
    service = created.json()["data"]
    assert service["price"] == 1450.5
    assert service["originPoi"]["name"] == "Aeropuerto CDMX"
    assert service["destinationPoi"]["serviceType"] == "city"
    assert service["vehicleType"]["code"] == "suburban"
    assert service["rate"]["color"] == "#FF0000"
    assert service["active"] is True

    duplicate = await api.post("/api/services", json=payload, headers=headers)
    assert duplicate.status_code == 409
    assert duplicate.json() == {
        "success": False,
        "error": "Ya existe un servicio con esta ruta, tipo de vehículo y tarifa",
        "code": "services_conflict",
    }

    toggled = await api.patch(f"/api/services/{service['id']}/toggle-status", json={"active": False}, headers=headers)
    assert toggled.status_code == 200
    assert toggled.json()["data"]["active"] is False

    still_duplicate = await api.post("/api/services", json=payload, headers=headers)
    assert still_duplicate.status_code == 409

    deleted = await api.delete(f"/api/services/{service['id']}", headers=headers)
    assert deleted.status_code == 200

    recreated = await api.post("/api/services", json=payload, headers=headers)
    assert recreated.status_code == 201


async def test_service_validation_over_http(
    api: AsyncClient, admin: User, catalog_rows: dict, headers_for: Headers
) -> None:
    same_point = await api.post(
        "/api/services",
        json={
            "originPoiId": catalog_rows["hotel"].id,
            "destinationPoiId": catalog_rows["hotel"].id,
            "vehicleTypeId": catalog_rows["suburban"].id,
            "rateId": catalog_rows["rate"].id,
            "price": 100,
        },
        headers=headers_for(admin),
    )
    assert same_point.status_code == 400
    assert same_point.json()["error"] == "El origen y el destino no pueden ser el mismo"

    bad_price = await api.post(
        "/api/services",
        json={
            "destinationPoiId": catalog_rows["hotel"].id,
            "vehicleTypeId": catalog_rows["suburban"].id,
            "rateId": catalog_rows["rate"].id,
            "price": -1,
        },
        headers=headers_for(admin),
    )
    assert bad_price.status_code == 400
    assert bad_price.json()["code"] == "validation_error"


async def test_catalog_datatables_listing(
    api: AsyncClient, admin: User, employee: User, headers_for: Headers
) -> None:
    for name, service_type in [("Zócalo", "city"), ("Aeropuerto T1", "airport"), ("Bellas Artes", "city")]:
        response = await api.post(
            "/api/pois", json={"name": name, "serviceType": service_type}, headers=headers_for(admin)
        )
        assert response.status_code == 201

    listed = await api.get(
        "/api/pois",
        params={"draw": 3, "start": 0, "length": 10, "sortBy": "name", "sortOrder": "asc", "serviceType": "city"},
        headers=headers_for(employee),
    )
    assert listed.status_code == 200
    body = listed.json()
    assert body["draw"] == 3
    assert body["recordsTotal"] == 2
    assert [row["name"] for row in body["data"]] == ["Bellas Artes", "Zócalo"]

    searched = await api.get("/api/pois", params={"search[value]": "aero"}, headers=headers_for(employee))
    assert searched.json()["recordsTotal"] == 3
    assert searched.json()["recordsFiltered"] == 1

    options = await api.get("/api/pois/active", headers=headers_for(employee))
    assert [row["name"] for row in options.json()["data"]] == ["Aeropuerto T1", "Bellas Artes", "Zócalo"]


async def test_bad_pagination_is_400(api: AsyncClient, employee: User, headers_for: Headers) -> None:
    response = await api.get("/api/rates", params={"start": "abc"}, headers=headers_for(employee))
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_pagination"


@pytest.mark.parametrize(
    ("path", "payload", "update", "field"),
    [
        ("/api/rates", {"name": "Ejecutiva", "percentage": 10, "color": "#112233"}, {"percentage": 12.5}, "percentage"),
        ("/api/vehicle-types", {"name": "Van", "code": "VAN"}, {"defaultCapacity": 12}, "defaultCapacity"),
        ("/api/experiences", {"name": "Xochimilco", "cost": 650}, {"maxPeople": 20}, "maxPeople"),
        ("/api/clients", {"companyName": "Grupo Norte", "email": "compras@norte.mx"}, {"phone": "5551234567"}, "phone"),
    ],
)
async def test_catalog_crud_round(
    api: AsyncClient, admin: User, headers_for: Headers, path: str, payload: dict, update: dict, field: str
) -> None:
    headers = headers_for(admin)

    created = await api.post(path, json=payload, headers=headers)
    assert created.status_code == 201
    row_id = created.json()["data"]["id"]

    updated = await api.put(f"{path}/{row_id}", json=update, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["data"][field] == next(iter(update.values()))

    fetched = await api.get(f"{path}/{row_id}", headers=headers)
    assert fetched.json()["data"]["id"] == row_id

    deleted = await api.delete(f"{path}/{row_id}", headers=headers)
    assert deleted.status_code == 200

    missing = await api.get(f"{path}/{row_id}", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["success"] is False


async def test_vehicle_over_http(api: AsyncClient, admin: User, catalog_rows: dict, headers_for: Headers) -> None:
    created = await api.post(
        "/api/vehicles",
        json={
            "brand": "Mercedes-Benz",
            "model": "Sprinter",
            "year": 2024,
            "licensePlate": "mex-001",
            "capacity": 19,
            "vehicleTypeId": catalog_rows["suburban"].id,
            "rateId": catalog_rows["rate"].id,
        },
        headers=headers_for(admin),
    )
    assert created.status_code == 201
    vehicle = created.json()["data"]
    assert vehicle["licensePlate"] == "MEX-001"
    assert vehicle["vehicleType"]["name"] == "Suburban"
    assert vehicle["rate"]["name"] == "Premium"
    assert vehicle["maintenanceStatus"] == "operational"


async def test_catalog_writes_are_admin_only(
    api: AsyncClient, employee: User, headers_for: Headers
) -> None:
    response = await api.post("/api/clients", json={"companyName": "Sin permiso"}, headers=headers_for(employee))
    assert response.status_code == 403
    assert response.json()["code"] == "authorization_denied"


async def test_null_required_field_and_bad_filter_are_400(
    api: AsyncClient, admin: User, catalog_rows: dict, headers_for: Headers
) -> None:
    headers = headers_for(admin)
    created = await api.post(
        "/api/vehicles",
        json={
            "brand": "Toyota",
            "model": "Hiace",
            "year": 2024,
            "licensePlate": "HIA-002",
            "capacity": 12,
            "vehicleTypeId": catalog_rows["suburban"].id,
        },
        headers=headers,
    )
    vehicle_id = created.json()["data"]["id"]

    nulled = await api.put(f"/api/vehicles/{vehicle_id}", json={"brand": None}, headers=headers)
    assert nulled.status_code == 400
    assert nulled.json()["code"] == "required_field"

    bad_rate = await api.get("/api/services", params={"rateId": "abc"}, headers=headers)
    assert bad_rate.status_code == 400
    assert bad_rate.json() == {"success": False, "error": "Filtro rateId inválido", "code": "invalid_filter"}

    bad_type = await api.get("/api/vehicles", params={"vehicleTypeId": "x"}, headers=headers)
    assert bad_type.status_code == 400
