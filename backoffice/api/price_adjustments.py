"""
Price adjustment endpoints: exchange rate, inflation, agency and transfer.

``/api/price-adjustments/{type}`` serves all kinds; ``kind_router`` builds the
per-kind routes (``/api/inflation-rate``...) used by the admin screens.
"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status

from backoffice.api.common import ApiResponse, CamelModel, Money, UserRef
from backoffice.api.deps import DbSession, require_policy
from backoffice.errors import ValidationError
from backoffice.models.rate_adjustment import RateAdjustment
from backoffice.models.user import User
from backoffice.services.rate_adjustment_service import (
    DISPLAY_NAMES,
    KIND_BY_TYPE,
    TYPE_BY_KIND,
    RateAdjustmentService,
    normalize_kind,
)

router = APIRouter()


# ============ SCHEMAS ============

class AdjustmentCreate(CamelModel):
    value: Any = None
    currency: Optional[str] = None
    effective_date: Optional[datetime] = None
    note: Optional[str] = None


class KindAdjustmentCreate(CamelModel):
    value: Any = None
    description: Optional[str] = None
    currency: Optional[str] = None
    effective_date: Optional[datetime] = None


class AdjustmentResponse(CamelModel):
    id: int
    type: str
    display_name: str
    value: Money
    formatted_value: str
    currency: Optional[str] = None
    effective_date: Optional[datetime] = None
    note: Optional[str] = None
    active: bool
    created_by: Optional[UserRef] = None
    created_at: datetime


class PaginationResponse(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class AdjustmentHistoryResponse(CamelModel):
    rows: list[AdjustmentResponse]
    pagination: PaginationResponse


def adjustment_response(row: RateAdjustment) -> AdjustmentResponse:
    return AdjustmentResponse(
        id=row.id,
        type=TYPE_BY_KIND[row.kind],
        display_name=DISPLAY_NAMES[row.kind],
        value=row.value,
        formatted_value=RateAdjustmentService.format_value(row.kind, row.value, row.currency),
        currency=row.currency,
        effective_date=row.effective_date,
        note=row.description,
        active=row.active,
        created_by=UserRef.model_validate(row.created_by) if row.created_by else None,
        created_at=row.created_at,
    )


def history_response(history: dict) -> AdjustmentHistoryResponse:
    return AdjustmentHistoryResponse(
        rows=[adjustment_response(row) for row in history["rows"]],
        pagination=PaginationResponse(**history["pagination"]),
    )


def adjustment_type(type: str) -> str:
    """Path parameter: one of exchange-rate, inflation, agency, transfer."""
    if type not in KIND_BY_TYPE:
        raise ValidationError(
            f"Tipo de ajuste inválido. Debe ser uno de: {', '.join(KIND_BY_TYPE)}",
            code="invalid_adjustment_type",
        )
    return KIND_BY_TYPE[type]


# ============ ENDPOINTS ============

@router.get("/current", response_model=ApiResponse[dict[str, Optional[AdjustmentResponse]]])
async def get_all_current(
    db: DbSession,
    user: User = Depends(require_policy("price_adjustments", "read")),
):
    """Current value of every kind (null where none was ever set)."""
    current = await RateAdjustmentService.get_all_current(db)
    return ApiResponse(
        data={url_type: adjustment_response(row) if row else None for url_type, row in current.items()}
    )


@router.get("/{type}/current", response_model=ApiResponse[AdjustmentResponse])
async def get_current(
    db: DbSession,
    kind: str = Depends(adjustment_type),
    user: User = Depends(require_policy("price_adjustments", "read")),
):
    row = await RateAdjustmentService.get_current(db, kind)
    if row is None:
        return ApiResponse(data=None, message=f"No hay {DISPLAY_NAMES[kind]} registrado")
    return ApiResponse(data=adjustment_response(row))


@router.get("/{type}/history", response_model=ApiResponse[AdjustmentHistoryResponse])
async def get_history(
    db: DbSession,
    kind: str = Depends(adjustment_type),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    search: Optional[str] = None,
    user: User = Depends(require_policy("price_adjustments", "read")),
):
    history = await RateAdjustmentService.get_history(
        db, kind, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order, search=search
    )
    return ApiResponse(data=history_response(history))


@router.post(
    "/{type}",
    response_model=ApiResponse[AdjustmentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_adjustment(
    data: AdjustmentCreate,
    db: DbSession,
    kind: str = Depends(adjustment_type),
    user: User = Depends(require_policy("price_adjustments", "create")),
):
    """Replace the current value of ``type``. ``value`` and ``effectiveDate`` are required."""
    if data.value is None or data.value == "":
        raise ValidationError("El valor es requerido", code="value_required")
    if data.effective_date is None:
        raise ValidationError("La fecha efectiva es requerida", code="effective_date_required")

    row = await RateAdjustmentService.create_adjustment(
        db,
        kind,
        data.value,
        description=data.note,
        effective_date=data.effective_date,
        currency=data.currency,
        actor=user,
    )
    return ApiResponse(
        data=adjustment_response(row),
        message=f"{DISPLAY_NAMES[kind]} actualizado exitosamente",
    )


@router.delete("/{type}/{adjustment_id}", response_model=ApiResponse[AdjustmentResponse])
async def delete_adjustment(
    adjustment_id: int,
    db: DbSession,
    kind: str = Depends(adjustment_type),
    user: User = Depends(require_policy("price_adjustments", "delete")),
):
    row = await RateAdjustmentService.soft_delete(db, kind, adjustment_id, actor=user)
    return ApiResponse(data=adjustment_response(row), message=f"{DISPLAY_NAMES[kind]} eliminado")


# ============ PER-KIND ROUTES ============

def kind_router(kind: str) -> APIRouter:
    """Routes for a single kind, mounted at e.g. ``/api/inflation-rate``."""
    kind = normalize_kind(kind)
    label = DISPLAY_NAMES[kind]
    kind_routes = APIRouter()

    @kind_routes.get("/current", response_model=ApiResponse[AdjustmentResponse])
    async def current(
        db: DbSession,
        user: User = Depends(require_policy("price_adjustments", "read")),
    ):
        row = await RateAdjustmentService.get_current(db, kind)
        if row is None:
            return ApiResponse(data=None, message=f"No hay {label} registrado")
        return ApiResponse(data=adjustment_response(row))

    @kind_routes.get("/history", response_model=ApiResponse[AdjustmentHistoryResponse])
    async def history(
        db: DbSession,
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        sort_by: str = Query("createdAt", alias="sortBy"),
        sort_order: str = Query("desc", alias="sortOrder"),
        search: Optional[str] = None,
        user: User = Depends(require_policy("price_adjustments", "read")),
    ):
        result = await RateAdjustmentService.get_history(
            db, kind, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order, search=search
        )
        return ApiResponse(data=history_response(result))

    @kind_routes.get("/{adjustment_id}", response_model=ApiResponse[AdjustmentResponse])
    async def detail(
        adjustment_id: int,
        db: DbSession,
        user: User = Depends(require_policy("price_adjustments", "read")),
    ):
        row = await RateAdjustmentService.get_by_id(db, kind, adjustment_id)
        return ApiResponse(data=adjustment_response(row))

    @kind_routes.post("", response_model=ApiResponse[AdjustmentResponse], status_code=status.HTTP_201_CREATED)
    async def create(
        data: KindAdjustmentCreate,
        db: DbSession,
        user: User = Depends(require_policy("price_adjustments", "create")),
    ):
        row = await RateAdjustmentService.create_adjustment(
            db,
            kind,
            data.value,
            description=data.description,
            effective_date=data.effective_date,
            currency=data.currency,
            actor=user,
        )
        return ApiResponse(data=adjustment_response(row), message=f"{label} actualizado exitosamente")

    @kind_routes.delete("/{adjustment_id}", response_model=ApiResponse[AdjustmentResponse])
    async def delete(
        adjustment_id: int,
        db: DbSession,
        user: User = Depends(require_policy("price_adjustments", "delete")),
    ):
        row = await RateAdjustmentService.soft_delete(db, kind, adjustment_id, actor=user)
        return ApiResponse(data=adjustment_response(row), message=f"{label} eliminado")

    return kind_routes
