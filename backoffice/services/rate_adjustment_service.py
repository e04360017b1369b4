"""
Rate adjustment lifecycle: exchange rate, inflation, agency and transfer.

Creating an adjustment replaces the current one of the same kind. The
previous row is deactivated and the new row inserted in a single
transaction, serialized per kind inside the worker, and the partial unique
index on ``rate_adjustments(kind) WHERE lifecycle = 'active'`` rejects a
concurrent writer from another worker instead of letting two rows be current.
"""

import logging
import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.config import get_settings
from backoffice.errors import Conflict, NotFound, ValidationError
from backoffice.models.base import Lifecycle
from backoffice.models.rate_adjustment import ADJUSTMENT_KINDS, RateAdjustment
from backoffice.models.user import User
from backoffice.services.audit import record_audit
from backoffice.services.listing import contains, count_rows
from backoffice.services.locks import rate_adjustment_locks

logger = logging.getLogger(__name__)


# ========================================================================
# Kind configuration
# ========================================================================

# URL segment -> stored kind
KIND_BY_TYPE = {
    "exchange-rate": "exchange_rate",
    "inflation": "inflation",
    "agency": "agency",
    "transfer": "transfer",
}
TYPE_BY_KIND = {kind: url_type for url_type, kind in KIND_BY_TYPE.items()}

DISPLAY_NAMES = {
    "exchange_rate": "Tipo de Cambio",
    "inflation": "% de Inflación",
    "agency": "% de Agencia",
    "transfer": "% de Transferencia",
}

PERCENTAGE_RANGE = (Decimal("0.01"), Decimal("50.00"))
VALUE_RANGES = {
    "exchange_rate": (Decimal("0.01"), Decimal("1000.00")),
    "inflation": PERCENTAGE_RANGE,
    "agency": PERCENTAGE_RANGE,
    "transfer": PERCENTAGE_RANGE,
}

HISTORY_SORT_COLUMNS = {
    "createdAt": RateAdjustment.created_at,
    "effectiveDate": RateAdjustment.effective_date,
    "value": RateAdjustment.value,
    "description": RateAdjustment.description,
}

MAX_DESCRIPTION_LENGTH = 500


def normalize_kind(kind: str) -> str:
    """Accept either the URL form (``exchange-rate``) or the stored form."""
    normalized = KIND_BY_TYPE.get(kind, kind.replace("-", "_") if kind else kind)
    if normalized not in ADJUSTMENT_KINDS:
        raise ValidationError(
            f"Tipo de ajuste inválido. Debe ser uno de: {', '.join(KIND_BY_TYPE)}",
            code="invalid_adjustment_type",
        )
    return normalized


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a numeric input, returning None for anything non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


class RateAdjustmentService:
    """Lifecycle operations shared by all adjustment kinds."""

    # ================================================================
    # Pure helpers
    # ================================================================

    @staticmethod
    def is_valid_value(kind: str, value: Any) -> bool:
        amount = to_decimal(value)
        if amount is None:
            return False
        low, high = VALUE_RANGES[normalize_kind(kind)]
        return low <= amount <= high

    @staticmethod
    def format_value(kind: str, value: Any, currency: Optional[str] = None) -> str:
        """``$18.50 MXN`` for exchange rates, ``5.25%`` for percentages."""
        amount = to_decimal(value) or Decimal("0")
        if normalize_kind(kind) == "exchange_rate":
            return f"${amount:.2f} {currency or get_settings().default_currency}"
        return f"{amount:.2f}%"

    @staticmethod
    def display_name(kind: str) -> str:
        return DISPLAY_NAMES[normalize_kind(kind)]

    # ================================================================
    # Writes
    # ================================================================

    @staticmethod
    async def create_adjustment(
        db: AsyncSession,
        kind: str,
        value: Any,
        description: Optional[str] = None,
        effective_date: Optional[datetime] = None,
        currency: Optional[str] = None,
        actor: Optional[User] = None,
    ) -> RateAdjustment:
        """
        Make ``value`` the current adjustment of ``kind``.

        Raises ValidationError for a missing, non-numeric or out-of-range
        value. Having no previous current row is normal.
        """
        kind = normalize_kind(kind)
        amount = to_decimal(value)
        if amount is None:
            raise ValidationError("El valor es requerido y debe ser numérico", code="invalid_value")

        low, high = VALUE_RANGES[kind]
        if not (low <= amount <= high):
            raise ValidationError(
                f"El valor debe estar entre {low} y {high}",
                code="value_out_of_range",
            )

        if kind == "exchange_rate":
            currency = (currency or get_settings().default_currency).strip().upper()
            if len(currency) != 3 or not currency.isalpha():
                raise ValidationError("La moneda debe ser un código ISO de 3 letras", code="invalid_currency")
        else:
            currency = None

        description = description.strip() if description else None
        if description and len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"La descripción no puede exceder {MAX_DESCRIPTION_LENGTH} caracteres",
                code="description_too_long",
            )

        actor_context = {
            "actor_id": str(actor.id) if actor else None,
            "role": actor.role if actor else None,
            "kind": kind,
        }

        async with rate_adjustment_locks.hold(kind):
            try:
                result = await db.execute(
                    select(RateAdjustment)
                    .where(
                        RateAdjustment.kind == kind,
                        RateAdjustment.lifecycle == Lifecycle.ACTIVE,
                    )
                    .with_for_update()
                )
                previous_rows = result.scalars().all()
                for row in previous_rows:
                    row.lifecycle = Lifecycle.INACTIVE
                if previous_rows:
                    # Deactivation must reach the index before the insert
                    await db.flush()

                adjustment = RateAdjustment(
                    kind=kind,
                    value=amount,
                    currency=currency,
                    description=description,
                    effective_date=effective_date,
                    lifecycle=Lifecycle.ACTIVE,
                    created_by_id=actor.id if actor else None,
                )
                db.add(adjustment)
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                logger.warning(f"Concurrent {kind} adjustment rejected: {e}", extra=actor_context)
                raise Conflict(
                    "Se registró otro ajuste al mismo tiempo, intente nuevamente",
                    code="concurrent_adjustment",
                )
            except SQLAlchemyError:
                await db.rollback()
                logger.error(f"Failed to create {kind} adjustment", exc_info=True, extra=actor_context)
                raise

        logger.info(
            f"{DISPLAY_NAMES[kind]} set to {amount}",
            extra={**actor_context, "resource_id": adjustment.id},
        )
        await record_audit(
            db,
            actor,
            "rate_adjustment",
            adjustment.id,
            "create",
            old_values={"ids": [row.id for row in previous_rows], "values": [row.value for row in previous_rows]},
            new_values={"kind": kind, "value": amount, "currency": currency, "description": description},
        )
        return await RateAdjustmentService.get_by_id(db, kind, adjustment.id)

    @staticmethod
    async def soft_delete(
        db: AsyncSession,
        kind: str,
        adjustment_id: int,
        actor: Optional[User] = None,
    ) -> RateAdjustment:
        """Remove a row from history. Deleting the current row leaves no current value."""
        kind = normalize_kind(kind)
        async with rate_adjustment_locks.hold(kind):
            adjustment = await RateAdjustmentService.get_by_id(db, kind, adjustment_id)
            previous = adjustment.lifecycle
            adjustment.lifecycle = Lifecycle.DELETED
            try:
                await db.commit()
            except SQLAlchemyError:
                await db.rollback()
                logger.error(f"Failed to delete {kind} adjustment {adjustment_id}", exc_info=True)
                raise

        logger.info(
            f"{DISPLAY_NAMES[kind]} {adjustment_id} deleted",
            extra={"actor_id": str(actor.id) if actor else None, "kind": kind, "resource_id": adjustment_id},
        )
        await record_audit(
            db, actor, "rate_adjustment", adjustment_id, "delete",
            old_values={"lifecycle": previous.value},
            new_values={"lifecycle": Lifecycle.DELETED.value},
        )
        return adjustment

    # ================================================================
    # Reads
    # ================================================================

    @staticmethod
    async def get_current(db: AsyncSession, kind: str) -> Optional[RateAdjustment]:
        kind = normalize_kind(kind)
        result = await db.execute(
            select(RateAdjustment)
            .where(
                RateAdjustment.kind == kind,
                RateAdjustment.lifecycle == Lifecycle.ACTIVE,
            )
            .options(selectinload(RateAdjustment.created_by))
            .execution_options(populate_existing=True)
            .order_by(RateAdjustment.created_at.desc(), RateAdjustment.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_current_value(db: AsyncSession, kind: str) -> Decimal:
        """Current value, or the configured fallback when none was ever set."""
        current = await RateAdjustmentService.get_current(db, kind)
        if current is not None:
            return Decimal(current.value)
        if normalize_kind(kind) == "exchange_rate":
            return get_settings().fallback_exchange_rate
        return Decimal("0")

    @staticmethod
    async def get_all_current(db: AsyncSession) -> dict[str, Optional[RateAdjustment]]:
        """Current row per kind, keyed by URL type."""
        return {
            url_type: await RateAdjustmentService.get_current(db, kind)
            for url_type, kind in KIND_BY_TYPE.items()
        }

    @staticmethod
    async def get_by_id(db: AsyncSession, kind: str, adjustment_id: int) -> RateAdjustment:
        kind = normalize_kind(kind)
        result = await db.execute(
            select(RateAdjustment)
            .where(
                RateAdjustment.id == adjustment_id,
                RateAdjustment.kind == kind,
                RateAdjustment.not_deleted(),
            )
            .options(selectinload(RateAdjustment.created_by))
            .execution_options(populate_existing=True)
        )
        adjustment = result.scalar_one_or_none()
        if adjustment is None:
            raise NotFound(f"{DISPLAY_NAMES[kind]} no encontrado")
        return adjustment

    @staticmethod
    async def get_history(
        db: AsyncSession,
        kind: str,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        search: Optional[str] = None,
    ) -> dict:
        """
        Paginated history of non-deleted rows, newest first by default.
        ``search`` matches the description only.
        """
        kind = normalize_kind(kind)
        page = max(int(page or 1), 1)
        limit = min(max(int(limit or 10), 1), 100)

        stmt = select(RateAdjustment).where(
            RateAdjustment.kind == kind,
            RateAdjustment.not_deleted(),
        )
        search = (search or "").strip()
        if search:
            stmt = stmt.where(contains(RateAdjustment.description, search))

        total = await count_rows(db, stmt)

        column = HISTORY_SORT_COLUMNS.get(sort_by, RateAdjustment.created_at)
        descending = str(sort_order).lower() != "asc"
        order = [column.desc() if descending else column.asc()]
        order.append(RateAdjustment.id.desc() if descending else RateAdjustment.id.asc())

        result = await db.execute(
            stmt.options(selectinload(RateAdjustment.created_by))
            .execution_options(populate_existing=True)
            .order_by(*order)
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return {
            "rows": list(result.scalars().all()),
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }
