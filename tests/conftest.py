from __future__ import annotations

import os
from collections.abc import AsyncIterator, Awaitable, Callable
from decimal import Decimal
from typing import Optional

# Settings are read at import time by backoffice.database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from backoffice.api.auth import create_access_token
from backoffice.database import get_db
from backoffice.main import app
from backoffice.models import Base, Client, Department, POI, Quote, Rate, User, VehicleType
from backoffice.models.base import Lifecycle

UserFactory = Callable[..., Awaitable[User]]


@pytest.fixture()
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    # File database: every session (including the audit writer) gets its own connection
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'backoffice.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def department(db_session: AsyncSession) -> Department:
    row = Department(name="Ventas")
    db_session.add(row)
    await db_session.commit()
    return row


@pytest.fixture()
def make_user(db_session: AsyncSession) -> UserFactory:
    counter = {"n": 0}

    async def _make(role: str = "employee", department: Optional[Department] = None, **kwargs) -> User:
        counter["n"] += 1
        user = User(
            email=kwargs.pop("email", f"{role}{counter['n']}@example.com"),
            first_name=kwargs.pop("first_name", role.replace("_", " ").title()),
            last_name=kwargs.pop("last_name", str(counter["n"])),
            role=role,
            department_id=department.id if department else None,
            **kwargs,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture()
async def admin(make_user: UserFactory) -> User:
    return await make_user("admin", first_name="Ana", last_name="Admin")


@pytest.fixture()
async def manager(make_user: UserFactory, department: Department) -> User:
    return await make_user("department_manager", department=department, first_name="Mario", last_name="Gerente")


@pytest.fixture()
async def employee(make_user: UserFactory) -> User:
    return await make_user("employee", first_name="Elena", last_name="Empleada")


@pytest.fixture()
async def driver(make_user: UserFactory) -> User:
    return await make_user("driver")


@pytest.fixture()
async def client_row(db_session: AsyncSession) -> Client:
    row = Client(company_name="Eventos Globales", contact_name="Laura", email="laura@eventos.mx")
    db_session.add(row)
    await db_session.commit()
    return row


@pytest.fixture()
async def rate_row(db_session: AsyncSession) -> Rate:
    row = Rate(name="Premium", percentage=Decimal("15.00"), color="#FF0000")
    db_session.add(row)
    await db_session.commit()
    return row


@pytest.fixture()
async def catalog_rows(db_session: AsyncSession, rate_row: Rate) -> dict:
    airport = POI(name="Aeropuerto CDMX", service_type="airport")
    hotel = POI(name="Hotel Reforma", service_type="city")
    museum = POI(name="Museo de Antropología", service_type="local")
    suburban = VehicleType(name="Suburban", code="suburban", default_capacity=6)
    db_session.add_all([airport, hotel, museum, suburban])
    await db_session.commit()
    return {"airport": airport, "hotel": hotel, "museum": museum, "suburban": suburban, "rate": rate_row}


@pytest.fixture()
def make_quote(db_session: AsyncSession) -> Callable[..., Awaitable[Quote]]:
    counter = {"n": 0}

    async def _make(creator: User, status: str = "requested", **kwargs) -> Quote:
        counter["n"] += 1
        quote = Quote(
            folio=f"QTE-2025-{900 + counter['n']:04d}",
            status=status,
            number_of_people=kwargs.pop("number_of_people", 4),
            contact_person=kwargs.pop("contact_person", "Laura Pérez"),
            service_items=kwargs.pop(
                "service_items",
                {"days": [], "subtotal": "1000.00", "iva": "160.00", "total": "1160.00"},
            ),
            created_by_id=creator.id,
            lifecycle=Lifecycle.ACTIVE,
            **kwargs,
        )
        db_session.add(quote)
        await db_session.commit()
        return quote

    return _make


@pytest.fixture()
def headers_for() -> Callable[[User], dict[str, str]]:
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture()
async def api(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncClient]:
    async def override_get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()
