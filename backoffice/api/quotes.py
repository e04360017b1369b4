"""
Quote endpoints: CRUD, status changes and reservation actions
(invoice request, receipt, cancellation).
"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status
from pydantic import EmailStr, Field

from backoffice.api.common import (
    ApiResponse,
    CamelModel,
    DataTablesResponse,
    Money,
    NamedRef,
    UserRef,
    datatables_params,
    to_datatables,
)
from backoffice.api.deps import DbSession, require_policy
from backoffice.models.quote import Quote
from backoffice.models.user import User
from backoffice.services.listing import ListParams
from backoffice.services.quote_service import QuoteService

router = APIRouter()


# ============ SCHEMAS ============

class SubconceptInput(CamelModel):
    concept: str = Field(..., min_length=1, max_length=255)
    quantity: float = Field(1, gt=0)
    unit_price: float = Field(0, ge=0)


class DayInput(CamelModel):
    day_number: Optional[int] = None
    date: Optional[str] = None
    subconcepts: list[SubconceptInput] = []


class QuoteCreate(CamelModel):
    client_id: Optional[int] = None
    rate_id: Optional[int] = None
    event_type: Optional[str] = Field(None, max_length=100)
    number_of_people: int = Field(1, ge=1)
    contact_person: Optional[str] = Field(None, max_length=255)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    valid_until: Optional[datetime] = None
    days: Optional[list[DayInput]] = None


class QuoteUpdate(CamelModel):
    status: Optional[str] = None
    number_of_people: Optional[int] = Field(None, ge=1)
    contact_person: Optional[str] = Field(None, max_length=255)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    valid_until: Optional[datetime] = None
    event_type: Optional[str] = Field(None, max_length=100)
    client_id: Optional[int] = None
    rate_id: Optional[int] = None
    reason: Optional[str] = None


class StatusUpdate(CamelModel):
    status: str
    reason: Optional[str] = None


class ServiceItemsUpdate(CamelModel):
    days: list[DayInput]


class ReasonBody(CamelModel):
    reason: Optional[str] = None


class InvoiceRequestBody(CamelModel):
    notes: Optional[str] = None


class AvailableVehicle(CamelModel):
    service_id: int
    vehicle_type: str
    vehicle_type_id: int
    capacity: int
    price: Money
    note: str = ""
    is_round_trip: bool


class AvailableRoute(CamelModel):
    route_key: str
    label: str
    origin_id: Optional[int] = None
    origin_name: str
    destination_id: int
    destination_name: str
    service_type: str
    has_round_trip: bool
    vehicles: list[AvailableVehicle]


class ClientRef(CamelModel):
    id: int
    company_name: str


class QuoteResponse(CamelModel):
    id: int
    folio: str
    status: str
    client: Optional[ClientRef] = None
    rate: Optional[NamedRef] = None
    event_type: Optional[str] = None
    number_of_people: int
    contact_person: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    service_items: dict[str, Any]
    valid_until: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    invoice_requested: bool
    invoice_request_date: Optional[datetime] = None
    invoice_requested_by: Optional[UserRef] = None
    created_by: Optional[UserRef] = None
    active: bool
    created_at: datetime
    updated_at: datetime


class QuoteListItem(CamelModel):
    id: int
    folio: str
    status: str
    client: Optional[ClientRef] = None
    rate: Optional[NamedRef] = None
    event_type: Optional[str] = None
    number_of_people: int
    contact_person: Optional[str] = None
    total: Optional[str] = None
    invoice_requested: bool
    valid_until: Optional[datetime] = None
    created_at: datetime


class StatusChangeResponse(CamelModel):
    quote: QuoteResponse
    previous_status: str
    new_status: str


class InvoiceRequestResponse(CamelModel):
    id: int
    quote_id: int
    status: str
    request_date: datetime
    notes: Optional[str] = None


class InvoiceSummary(CamelModel):
    id: int
    status: str
    invoice_number: Optional[str] = None
    request_date: datetime
    process_date: Optional[datetime] = None
    requested_by: Optional[UserRef] = None


class QuoteWithInvoices(CamelModel):
    id: int
    folio: str
    status: str
    client: Optional[ClientRef] = None
    invoice_requested: bool
    invoices: list[InvoiceSummary]
    created_at: datetime


def list_item(quote: Quote) -> QuoteListItem:
    return QuoteListItem(
        id=quote.id,
        folio=quote.folio,
        status=quote.status,
        client=ClientRef.model_validate(quote.client) if quote.client else None,
        rate=NamedRef.model_validate(quote.rate) if quote.rate else None,
        event_type=quote.event_type,
        number_of_people=quote.number_of_people,
        contact_person=quote.contact_person,
        total=str((quote.service_items or {}).get("total", "0")),
        invoice_requested=quote.invoice_requested,
        valid_until=quote.valid_until,
        created_at=quote.created_at,
    )


# ============ ENDPOINTS ============

@router.get("", response_model=DataTablesResponse[QuoteListItem])
async def list_quotes(
    db: DbSession,
    params: ListParams = Depends(datatables_params),
    user: User = Depends(require_policy("quotes", "read")),
):
    """DataTables list; filter with ``?status=``."""
    page = await QuoteService.list_quotes(db, user, params)
    return {
        "draw": page.draw,
        "records_total": page.records_total,
        "records_filtered": page.records_filtered,
        "data": [list_item(q) for q in page.rows],
    }


@router.get("/with-invoices", response_model=DataTablesResponse[QuoteWithInvoices])
async def list_quotes_with_invoices(
    db: DbSession,
    params: ListParams = Depends(datatables_params),
    user: User = Depends(require_policy("quotes", "read")),
):
    page = await QuoteService.list_quotes_with_invoices(db, user, params)
    return to_datatables(page, QuoteWithInvoices)


@router.post("", response_model=ApiResponse[QuoteResponse], status_code=status.HTTP_201_CREATED)
async def create_quote(
    data: QuoteCreate,
    db: DbSession,
    user: User = Depends(require_policy("quotes", "create")),
):
    payload = data.model_dump(by_alias=True, exclude_none=True)
    quote = await QuoteService.create_quote(db, user, payload)
    return ApiResponse(data=QuoteResponse.model_validate(quote), message="Cotización creada exitosamente")


@router.get("/{quote_id}", response_model=ApiResponse[QuoteResponse])
async def get_quote(
    quote_id: int,
    db: DbSession,
    user: User = Depends(require_policy("quotes", "read")),
):
    quote = await QuoteService.get_quote(db, user, quote_id)
    return ApiResponse(data=QuoteResponse.model_validate(quote))


@router.get("/{quote_id}/available-services", response_model=ApiResponse[list[AvailableRoute]])
async def get_available_services(
    quote_id: int,
    db: DbSession,
    user: User = Depends(require_policy("quotes", "available_services")),
):
    """Services under the quote's rate, grouped by route for the subconcept selector."""
    routes = await QuoteService.available_services(db, user, quote_id)
    return ApiResponse(data=[AvailableRoute.model_validate(route) for route in routes])


@router.put("/{quote_id}", response_model=ApiResponse[QuoteResponse])
async def update_quote(
    quote_id: int,
    data: QuoteUpdate,
    db: DbSession,
    user: User = Depends(require_policy("quotes", "update")),
):
    updates = data.model_dump(by_alias=True, exclude_unset=True)
    reason = updates.pop("reason", None)
    quote = await QuoteService.update_quote(db, user, quote_id, updates, reason=reason)
    return ApiResponse(data=QuoteResponse.model_validate(quote), message="Cotización actualizada exitosamente")


@router.patch("/{quote_id}/status", response_model=ApiResponse[StatusChangeResponse])
async def update_quote_status(
    quote_id: int,
    data: StatusUpdate,
    db: DbSession,
    user: User = Depends(require_policy("quotes", "update_status")),
):
    result = await QuoteService.update_quote_status(db, user, quote_id, data.status, reason=data.reason)
    return ApiResponse(
        data=StatusChangeResponse(
            quote=QuoteResponse.model_validate(result["quote"]),
            previous_status=result["previousStatus"],
            new_status=result["newStatus"],
        ),
        message="Estado actualizado exitosamente",
    )


@router.put("/{quote_id}/service-items", response_model=ApiResponse[QuoteResponse])
async def update_service_items(
    quote_id: int,
    data: ServiceItemsUpdate,
    db: DbSession,
    user: User = Depends(require_policy("quotes", "update")),
):
    days = [day.model_dump(by_alias=True) for day in data.days]
    quote = await QuoteService.update_service_items(db, user, quote_id, days)
    return ApiResponse(data=QuoteResponse.model_validate(quote), message="Conceptos actualizados exitosamente")


@router.delete("/{quote_id}", response_model=ApiResponse[None])
async def delete_quote(
    quote_id: int,
    db: DbSession,
    data: Optional[ReasonBody] = Body(None),
    user: User = Depends(require_policy("quotes", "delete")),
):
    await QuoteService.soft_delete_quote(db, user, quote_id, reason=data.reason if data else None)
    return ApiResponse(message="Cotización eliminada exitosamente")


@router.post("/{quote_id}/duplicate", response_model=ApiResponse[QuoteResponse], status_code=status.HTTP_201_CREATED)
async def duplicate_quote(
    quote_id: int,
    db: DbSession,
    user: User = Depends(require_policy("quotes", "create")),
):
    quote = await QuoteService.duplicate_quote(db, user, quote_id)
    return ApiResponse(data=QuoteResponse.model_validate(quote), message="Cotización duplicada exitosamente")


@router.post(
    "/{quote_id}/request-invoice",
    response_model=ApiResponse[InvoiceRequestResponse],
    status_code=status.HTTP_201_CREATED,
)
async def request_invoice(
    quote_id: int,
    db: DbSession,
    data: Optional[InvoiceRequestBody] = Body(None),
    user: User = Depends(require_policy("quotes", "request_invoice")),
):
    invoice = await QuoteService.request_invoice(db, user, quote_id, notes=data.notes if data else None)
    return ApiResponse(
        data=InvoiceRequestResponse.model_validate(invoice),
        message="Solicitud de factura enviada exitosamente",
    )


@router.get("/{quote_id}/receipt")
async def generate_receipt(
    quote_id: int,
    db: DbSession,
    include_payment_info: Optional[bool] = Query(None, alias="includePaymentInfo"),
    user: User = Depends(require_policy("quotes", "receipt")),
):
    """Reservation receipt as ``application/pdf``."""
    filename, pdf_bytes = await QuoteService.generate_receipt(
        db, user, quote_id, include_payment_info=include_payment_info
    )
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{quote_id}/cancel-reservation", response_model=ApiResponse[QuoteResponse])
async def cancel_reservation(
    quote_id: int,
    db: DbSession,
    data: Optional[ReasonBody] = Body(None),
    user: User = Depends(require_policy("quotes", "cancel_reservation")),
):
    quote = await QuoteService.cancel_reservation(db, user, quote_id, reason=data.reason if data else None)
    return ApiResponse(data=QuoteResponse.model_validate(quote), message="Reserva cancelada exitosamente")
