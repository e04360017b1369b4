"""
Seed script - Creates demo data for development.

Run with: python -m scripts.seed_demo
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.auth import get_password_hash
from backoffice.database import async_session_maker
from backoffice.models import POI, Client, Department, Rate, RateAdjustment, Service, User, VehicleType


async def create_users(db: AsyncSession) -> list[User]:
    """Create demo department and users."""
    sales = Department(name="Ventas", description="Equipo comercial")
    db.add(sales)
    await db.flush()

    users = [
        User(email="admin@backoffice-demo.mx", first_name="Ana", last_name="Ramírez", role="admin",
             password_hash=get_password_hash("admin123")),
        User(email="gerente@backoffice-demo.mx", first_name="Mario", last_name="Torres", role="department_manager",
             department_id=sales.id, password_hash=get_password_hash("gerente123")),
        User(email="empleado@backoffice-demo.mx", first_name="Elena", last_name="Cruz", role="employee",
             department_id=sales.id, password_hash=get_password_hash("empleado123")),
    ]
    db.add_all(users)
    await db.flush()
    print(f"✅ Created {len(users)} users")
    return users


async def create_catalogs(db: AsyncSession) -> None:
    """Create demo POIs, vehicle types, rates, a client and priced routes."""
    airport = POI(name="Aeropuerto Internacional CDMX", service_type="airport")
    reforma = POI(name="Hotel Paseo de la Reforma", service_type="city")
    polanco = POI(name="Centro de Convenciones Polanco", service_type="city")
    teotihuacan = POI(name="Zona Arqueológica Teotihuacán", service_type="local")
    db.add_all([airport, reforma, polanco, teotihuacan])

    suburban = VehicleType(name="Suburban", code="suburban", icon="car", default_capacity=6, sort_order=1)
    sprinter = VehicleType(name="Sprinter", code="sprinter", icon="van", default_capacity=19, sort_order=2)
    db.add_all([suburban, sprinter])

    standard = Rate(name="Estándar", percentage=Decimal("0"), color="#6366F1")
    premium = Rate(name="Premium", percentage=Decimal("15"), color="#F59E0B")
    db.add_all([standard, premium])

    db.add(Client(company_name="Eventos Globales S.A.", contact_name="Laura Pérez", email="laura@eventosglobales.mx"))
    await db.flush()

    routes = [
        (airport, reforma, suburban, standard, "1200.00"),
        (airport, reforma, sprinter, standard, "2600.00"),
        (airport, polanco, suburban, premium, "1450.00"),
        (reforma, teotihuacan, sprinter, standard, "5200.00"),
        (None, reforma, suburban, standard, "950.00"),
    ]
    for origin, destination, vehicle_type, rate, price in routes:
        db.add(
            Service(
                origin_poi_id=origin.id if origin else None,
                destination_poi_id=destination.id,
                vehicle_type_id=vehicle_type.id,
                rate_id=rate.id,
                price=Decimal(price),
            )
        )
    await db.flush()
    print(f"✅ Created catalogs with {len(routes)} priced routes")


async def create_adjustments(db: AsyncSession, admin: User) -> None:
    """Create one current rate adjustment per kind."""
    now = datetime.now(timezone.utc)
    adjustments = [
        RateAdjustment(kind="exchange_rate", value=Decimal("18.50"), currency="MXN", description="Tipo de cambio inicial"),
        RateAdjustment(kind="inflation", value=Decimal("4.50"), description="Inflación anual"),
        RateAdjustment(kind="agency", value=Decimal("10"), description="Comisión de agencia"),
        RateAdjustment(kind="transfer", value=Decimal("5"), description="Ajuste de traslados"),
    ]
    for adjustment in adjustments:
        adjustment.effective_date = now
        adjustment.created_by_id = admin.id
    db.add_all(adjustments)
    await db.flush()
    print("✅ Created current rate adjustments")


async def seed_demo_data():
    """Main seed function."""
    print("🌱 Starting demo data seed...")

    async with async_session_maker() as db:
        # Check if data already exists
        result = await db.execute(select(User).limit(1))
        if result.scalar_one_or_none():
            print("⚠️  Data already exists. Skipping seed.")
            return

        users = await create_users(db)
        await create_catalogs(db)
        await create_adjustments(db, users[0])

        await db.commit()
        print("✅ Demo data seed completed!")
        print("\n📝 Login credentials:")
        print("   Admin: admin@backoffice-demo.mx / admin123")
        print("   Manager: gerente@backoffice-demo.mx / gerente123")
        print("   Employee: empleado@backoffice-demo.mx / empleado123")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
