from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.errors import NotFound, ValidationError
from backoffice.models import AuditLog, RateAdjustment, User
from backoffice.models.base import Lifecycle
from backoffice.services.rate_adjustment_service import RateAdjustmentService, normalize_kind


async def _active_count(db: AsyncSession, kind: str) -> int:
    return await db.scalar(
        select(func.count())
        .select_from(RateAdjustment)
        .where(RateAdjustment.kind == kind, RateAdjustment.lifecycle == Lifecycle.ACTIVE)
    )


async def test_create_replaces_current_adjustment(db_session: AsyncSession, admin: User) -> None:
    first = await RateAdjustmentService.create_adjustment(db_session, "inflation", "5.25", actor=admin)
    current = await RateAdjustmentService.get_current(db_session, "inflation")
    assert current is not None
    assert current.id == first.id
    assert current.active is True
    assert current.value == Decimal("5.25")

    second = await RateAdjustmentService.create_adjustment(db_session, "inflation", 6, actor=admin)
    current = await RateAdjustmentService.get_current(db_session, "inflation")
    assert current.id == second.id
    assert current.value == Decimal("6")
    assert current.created_by.id == admin.id

    history = await RateAdjustmentService.get_history(db_session, "inflation")
    assert [row.id for row in history["rows"]] == [second.id, first.id]
    assert history["rows"][1].lifecycle == Lifecycle.INACTIVE
    assert history["pagination"] == {"page": 1, "limit": 10, "total": 2, "pages": 1}


async def test_sequential_creates_keep_single_active_row(db_session: AsyncSession, admin: User) -> None:
    assert await _active_count(db_session, "transfer") == 0
    for value in ("1.00", "2.50", "3.75", "4.00"):
        await RateAdjustmentService.create_adjustment(db_session, "transfer", value, actor=admin)
        assert await _active_count(db_session, "transfer") == 1


async def test_concurrent_creates_leave_one_active_row(
    session_factory: async_sessionmaker[AsyncSession],
    db_session: AsyncSession,
    admin: User,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    # SQLite allows a single writer; keep the out-of-band audit writes out of the race
    async def no_audit(*args, **kwargs) -> None:
        return None

    monkeypatch.setattr("backoffice.services.rate_adjustment_service.record_audit", no_audit)

    async def create(value: str) -> None:
        async with session_factory() as session:
            await RateAdjustmentService.create_adjustment(session, "agency", value, actor=admin)

    await asyncio.gather(create("10.00"), create("12.00"), create("14.00"))

    assert await _active_count(db_session, "agency") == 1
    total = await db_session.scalar(
        select(func.count()).select_from(RateAdjustment).where(RateAdjustment.kind == "agency")
    )
    assert total == 3


@pytest.mark.parametrize("value", ["0", "-1", "50.01", "abc", None, "", float("nan")])
async def test_percentage_values_outside_range_are_rejected(db_session: AsyncSession, admin: User, value) -> None:
    with pytest.raises(ValidationError):
        await RateAdjustmentService.create_adjustment(db_session, "inflation", value, actor=admin)
    assert await _active_count(db_session, "inflation") == 0


@pytest.mark.parametrize("value", ["0.01", "50.00", 50])
async def test_percentage_boundaries_are_accepted(db_session: AsyncSession, admin: User, value) -> None:
    row = await RateAdjustmentService.create_adjustment(db_session, "agency", value, actor=admin)
    assert row.active


async def test_exchange_rate_range_and_currency(db_session: AsyncSession, admin: User) -> None:
    row = await RateAdjustmentService.create_adjustment(db_session, "exchange-rate", "18.75", actor=admin)
    assert row.kind == "exchange_rate"
    assert row.currency == "MXN"

    with pytest.raises(ValidationError):
        await RateAdjustmentService.create_adjustment(db_session, "exchange_rate", "1000.01", actor=admin)
    with pytest.raises(ValidationError):
        await RateAdjustmentService.create_adjustment(db_session, "exchange_rate", "20", currency="PESOS", actor=admin)


def test_is_valid_value_matches_kind_ranges() -> None:
    assert RateAdjustmentService.is_valid_value("inflation", "0.01")
    assert RateAdjustmentService.is_valid_value("transfer", 50)
    assert not RateAdjustmentService.is_valid_value("transfer", 50.5)
    assert RateAdjustmentService.is_valid_value("exchange_rate", 999)
    assert not RateAdjustmentService.is_valid_value("exchange_rate", 0)
    assert not RateAdjustmentService.is_valid_value("agency", True)


def test_format_value_and_display_name() -> None:
    assert RateAdjustmentService.format_value("inflation", "5.25") == "5.25%"
    assert RateAdjustmentService.format_value("exchange-rate", "18.5") == "$18.50 MXN"
    assert RateAdjustmentService.format_value("exchange_rate", 20, currency="USD") == "$20.00 USD"
    assert RateAdjustmentService.display_name("exchange-rate") == "Tipo de Cambio"


def test_unknown_kind_is_a_validation_error() -> None:
    with pytest.raises(ValidationError):
        normalize_kind("discount")


async def test_current_value_falls_back_when_unset(db_session: AsyncSession) -> None:
    assert await RateAdjustmentService.get_current_value(db_session, "exchange_rate") == Decimal("18.50")
    assert await RateAdjustmentService.get_current_value(db_session, "inflation") == Decimal("0")
    current = await RateAdjustmentService.get_all_current(db_session)
    assert set(current) == {"exchange-rate", "inflation", "agency", "transfer"}
    assert all(value is None for value in current.values())


async def test_history_search_sort_and_pagination(db_session: AsyncSession, admin: User) -> None:
    for value, description in [("1", "Ajuste enero"), ("2", "Ajuste FEBRERO"), ("3", "Revisión anual")]:
        await RateAdjustmentService.create_adjustment(
            db_session, "inflation", value, description=description, actor=admin
        )

    found = await RateAdjustmentService.get_history(db_session, "inflation", search="ajuste")
    assert {row.description for row in found["rows"]} == {"Ajuste enero", "Ajuste FEBRERO"}
    assert found["pagination"]["total"] == 2

    by_value = await RateAdjustmentService.get_history(
        db_session, "inflation", sort_by="value", sort_order="asc", limit=2, page=2
    )
    assert [row.value for row in by_value["rows"]] == [Decimal("3")]
    assert by_value["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}


async def test_soft_delete_current_leaves_no_current_value(db_session: AsyncSession, admin: User) -> None:
    first = await RateAdjustmentService.create_adjustment(db_session, "transfer", "2", actor=admin)
    second = await RateAdjustmentService.create_adjustment(db_session, "transfer", "3", actor=admin)

    await RateAdjustmentService.soft_delete(db_session, "transfer", second.id, actor=admin)

    assert await RateAdjustmentService.get_current(db_session, "transfer") is None
    history = await RateAdjustmentService.get_history(db_session, "transfer")
    assert [row.id for row in history["rows"]] == [first.id]
    with pytest.raises(NotFound):
        await RateAdjustmentService.get_by_id(db_session, "transfer", second.id)


async def test_adjustment_lookup_is_scoped_by_kind(db_session: AsyncSession, admin: User) -> None:
    row = await RateAdjustmentService.create_adjustment(db_session, "agency", "8", actor=admin)
    with pytest.raises(NotFound):
        await RateAdjustmentService.get_by_id(db_session, "inflation", row.id)


async def test_create_writes_audit_entry(db_session: AsyncSession, admin: User) -> None:
    row = await RateAdjustmentService.create_adjustment(db_session, "inflation", "4.5", actor=admin)
    entry = await db_session.scalar(
        select(AuditLog).where(AuditLog.entity_type == "rate_adjustment", AuditLog.entity_id == str(row.id))
    )
    assert entry is not None
    assert entry.action == "create"
    assert entry.user_id == admin.id
    assert entry.new_values_json["value"] == "4.5"
