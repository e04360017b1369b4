from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import timedelta
from types import SimpleNamespace

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.auth import create_access_token, get_password_hash, verify_password
from backoffice.models import User
from backoffice.models.base import Lifecycle
from backoffice.services.catalog_service import poi_catalog

UserFactory = Callable[..., Awaitable[User]]


# ============ Auth ============

async def test_login_returns_usable_token(api: AsyncClient, make_user: UserFactory) -> None:
    await make_user("admin", email="ana@example.com", password_hash=get_password_hash("secreto123"))

    response = await api.post("/auth/login", json={"email": "Ana@Example.com", "password": "secreto123"})
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] == 3600
    assert body["user"]["email"] == "ana@example.com"
    assert body["user"]["role"] == "admin"

    me = await api.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "ana@example.com"


async def test_login_rejects_wrong_password(api: AsyncClient, make_user: UserFactory) -> None:
    await make_user("admin", email="ana@example.com", password_hash=get_password_hash("secreto123"))

    response = await api.post("/auth/login", json={"email": "ana@example.com", "password": "otro"})
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": "Correo o contraseña incorrectos",
        "code": "invalid_credentials",
    }
    assert response.headers["www-authenticate"] == "Bearer"


async def test_bad_tokens_are_rejected(api: AsyncClient, admin: User) -> None:
    garbage = await api.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert garbage.status_code == 401
    assert garbage.json()["code"] == "invalid_token"

    expired_token = create_access_token(admin.id, expires_delta=timedelta(minutes=-5))
    expired = await api.get("/auth/me", headers={"Authorization": f"Bearer {expired_token}"})
    assert expired.status_code == 401
    assert expired.json()["code"] == "invalid_token"


async def test_inactive_user_cannot_authenticate(
    api: AsyncClient, db_session: AsyncSession, employee: User, headers_for
) -> None:
    headers = headers_for(employee)
    employee.lifecycle = Lifecycle.INACTIVE
    await db_session.commit()

    response = await api.get("/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["code"] == "inactive_user"


def test_password_hashing() -> None:
    hashed = get_password_hash("clave")
    assert hashed != "clave"
    assert verify_password("clave", hashed)
    assert not verify_password("otra", hashed)


# ============ Health and errors ============

async def test_root_and_health(api: AsyncClient) -> None:
    root = await api.get("/")
    assert root.status_code == 200
    assert root.json()["status"] == "healthy"
    assert root.json()["version"]

    health = await api.get("/health")
    assert health.status_code == 200
    assert health.json() == {"status": "healthy", "database": "connected", "environment": "test"}


async def test_unknown_route_uses_error_shape(api: AsyncClient) -> None:
    response = await api.get("/api/nowhere")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Not Found", "code": "not_found"}


async def test_unexpected_errors_hide_details_when_configured(
    api: AsyncClient, admin: User, headers_for, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def boom(*args, **kwargs):
        raise RuntimeError("connection string leaked")

    monkeypatch.setattr(poi_catalog, "get_by_id", boom)
    monkeypatch.setattr("backoffice.errors.get_settings", lambda: SimpleNamespace(show_error_details=False))

    response = await api.get("/api/pois/1", headers=headers_for(admin))
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Error interno del servidor", "code": "unexpected_error"}


async def test_unexpected_errors_show_details_outside_production(
    api: AsyncClient, admin: User, headers_for, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def boom(*args, **kwargs):
        raise RuntimeError("tabla pois bloqueada")

    monkeypatch.setattr(poi_catalog, "get_by_id", boom)
    monkeypatch.setattr("backoffice.errors.get_settings", lambda: SimpleNamespace(show_error_details=True))

    response = await api.get("/api/pois/1", headers=headers_for(admin))
    assert response.status_code == 500
    assert response.json()["error"] == "tabla pois bloqueada"
