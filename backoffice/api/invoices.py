"""
Invoice request endpoints (admin back-office).
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends

from backoffice.api.common import ApiResponse, CamelModel, DataTablesResponse, UserRef, datatables_params
from backoffice.api.deps import DbSession, require_policy
from backoffice.models.invoice import Invoice
from backoffice.models.user import User
from backoffice.services.invoice_request_service import InvoiceRequestService
from backoffice.services.listing import ListParams

router = APIRouter()


# ============ SCHEMAS ============

class InvoiceComplete(CamelModel):
    invoice_number: Optional[str] = None
    notes: Optional[str] = None


class InvoiceCancel(CamelModel):
    reason: Optional[str] = None


class InvoiceQuoteInfo(CamelModel):
    id: int
    folio: str
    status: str
    client_name: Optional[str] = None
    contact_person: Optional[str] = None
    contact_email: Optional[str] = None
    number_of_people: int
    total: str


class InvoiceResponse(CamelModel):
    id: int
    status: str
    quote: InvoiceQuoteInfo
    requested_by: Optional[UserRef] = None
    request_date: datetime
    processed_by: Optional[UserRef] = None
    process_date: Optional[datetime] = None
    invoice_number: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None


class InvoiceCompletedResponse(CamelModel):
    id: int
    status: str
    invoice_number: Optional[str] = None
    process_date: Optional[datetime] = None


class PendingCountResponse(CamelModel):
    pending_count: int


def invoice_response(invoice: Invoice) -> InvoiceResponse:
    quote = invoice.quote
    return InvoiceResponse(
        id=invoice.id,
        status=invoice.status,
        quote=InvoiceQuoteInfo(
            id=quote.id,
            folio=quote.folio,
            status=quote.status,
            client_name=quote.client.company_name if quote.client else None,
            contact_person=quote.contact_person,
            contact_email=quote.contact_email,
            number_of_people=quote.number_of_people,
            total=str((quote.service_items or {}).get("total", "0")),
        ),
        requested_by=UserRef.model_validate(invoice.requested_by) if invoice.requested_by else None,
        request_date=invoice.request_date,
        processed_by=UserRef.model_validate(invoice.processed_by) if invoice.processed_by else None,
        process_date=invoice.process_date,
        invoice_number=invoice.invoice_number,
        notes=invoice.notes,
        cancellation_reason=invoice.cancellation_reason,
    )


# ============ ENDPOINTS ============

@router.get("", response_model=DataTablesResponse[InvoiceResponse])
async def list_pending_invoices(
    db: DbSession,
    params: ListParams = Depends(datatables_params),
    user: User = Depends(require_policy("invoices", "read")),
):
    """Pending invoice requests in the DataTables envelope."""
    page = await InvoiceRequestService.list_pending(db, user, params)
    return {
        "draw": page.draw,
        "records_total": page.records_total,
        "records_filtered": page.records_filtered,
        "data": [invoice_response(invoice) for invoice in page.rows],
    }


@router.get("/pending-count", response_model=ApiResponse[PendingCountResponse])
async def get_pending_count(
    db: DbSession,
    user: User = Depends(require_policy("invoices", "read")),
):
    count = await InvoiceRequestService.count_pending(db, user)
    return ApiResponse(data=PendingCountResponse(pending_count=count))


@router.get("/{invoice_id}", response_model=ApiResponse[InvoiceResponse])
async def get_invoice(
    invoice_id: int,
    db: DbSession,
    user: User = Depends(require_policy("invoices", "read")),
):
    invoice = await InvoiceRequestService.get_invoice(db, user, invoice_id)
    return ApiResponse(data=invoice_response(invoice))


@router.put("/{invoice_id}/complete", response_model=ApiResponse[InvoiceCompletedResponse])
async def complete_invoice(
    invoice_id: int,
    data: InvoiceComplete,
    db: DbSession,
    user: User = Depends(require_policy("invoices", "complete")),
):
    invoice = await InvoiceRequestService.complete_invoice(
        db, user, invoice_id, data.invoice_number, notes=data.notes
    )
    return ApiResponse(
        data=InvoiceCompletedResponse.model_validate(invoice),
        message="Factura completada exitosamente",
    )


@router.delete("/{invoice_id}", response_model=ApiResponse[InvoiceResponse])
async def cancel_invoice(
    invoice_id: int,
    db: DbSession,
    data: Optional[InvoiceCancel] = Body(None),
    user: User = Depends(require_policy("invoices", "cancel")),
):
    invoice = await InvoiceRequestService.cancel_invoice(
        db, user, invoice_id, reason=data.reason if data else None
    )
    return ApiResponse(
        data=invoice_response(invoice),
        message="Solicitud de factura cancelada exitosamente",
    )
