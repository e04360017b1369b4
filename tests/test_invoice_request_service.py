from __future__ import annotations

from collections.abc import Awaitable, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.errors import AuthorizationDenied, InvalidStateTransition, NotFound, ValidationError
from backoffice.models import Invoice, Quote, User
from backoffice.services.invoice_request_service import InvoiceRequestService
from backoffice.services.listing import ListParams
from backoffice.services.quote_service import QuoteService

QuoteFactory = Callable[..., Awaitable[Quote]]


async def _pending_invoice(db: AsyncSession, requester: User, make_quote: QuoteFactory, **quote_kwargs) -> Invoice:
    quote = await make_quote(requester, status="scheduled", **quote_kwargs)
    return await QuoteService.request_invoice(db, requester, quote.id)


async def test_complete_invoice(db_session: AsyncSession, admin: User, manager: User, make_quote: QuoteFactory) -> None:
    invoice = await _pending_invoice(db_session, manager, make_quote)

    completed = await InvoiceRequestService.complete_invoice(
        db_session, admin, invoice.id, "  FAC-2026-0042 ", notes="Timbrada"
    )
    assert completed.status == "completed"
    assert completed.invoice_number == "FAC-2026-0042"
    assert completed.process_date is not None
    assert completed.processed_by.id == admin.id
    assert completed.notes == "Timbrada"


async def test_complete_twice_fails(db_session: AsyncSession, admin: User, make_quote: QuoteFactory) -> None:
    invoice = await _pending_invoice(db_session, admin, make_quote)
    await InvoiceRequestService.complete_invoice(db_session, admin, invoice.id, "FAC-1")

    with pytest.raises(InvalidStateTransition) as exc_info:
        await InvoiceRequestService.complete_invoice(db_session, admin, invoice.id, "FAC-2")
    assert exc_info.value.message == "Solo se pueden completar facturas pendientes"


async def test_complete_requires_invoice_number(db_session: AsyncSession, admin: User, make_quote: QuoteFactory) -> None:
    invoice = await _pending_invoice(db_session, admin, make_quote)
    with pytest.raises(ValidationError) as exc_info:
        await InvoiceRequestService.complete_invoice(db_session, admin, invoice.id, "   ")
    assert exc_info.value.message == "Número de factura requerido"

    still_pending = await InvoiceRequestService.get_invoice(db_session, admin, invoice.id)
    assert still_pending.status == "pending"


async def test_cancel_invoice_clears_quote_flags(db_session: AsyncSession, admin: User, make_quote: QuoteFactory) -> None:
    invoice = await _pending_invoice(db_session, admin, make_quote)

    cancelled = await InvoiceRequestService.cancel_invoice(db_session, admin, invoice.id, reason="Datos fiscales incorrectos")
    assert cancelled.status == "cancelled"
    assert cancelled.cancellation_reason == "Datos fiscales incorrectos"
    assert cancelled.quote.invoice_requested is False
    assert cancelled.quote.invoice_request_date is None
    assert cancelled.quote.invoice_requested_by_id is None

    with pytest.raises(InvalidStateTransition) as exc_info:
        await InvoiceRequestService.cancel_invoice(db_session, admin, invoice.id)
    assert exc_info.value.message == "Solo se pueden cancelar facturas pendientes"


@pytest.mark.parametrize("close", ["complete", "cancel"])
async def test_new_request_allowed_after_pending_is_closed(
    db_session: AsyncSession, admin: User, make_quote: QuoteFactory, close: str
) -> None:
    invoice = await _pending_invoice(db_session, admin, make_quote)
    if close == "complete":
        await InvoiceRequestService.complete_invoice(db_session, admin, invoice.id, "FAC-9")
    else:
        await InvoiceRequestService.cancel_invoice(db_session, admin, invoice.id)

    second = await QuoteService.request_invoice(db_session, admin, invoice.quote_id)
    assert second.id != invoice.id
    assert second.status == "pending"


async def test_only_admins_process_invoices(
    db_session: AsyncSession, manager: User, make_quote: QuoteFactory
) -> None:
    invoice = await _pending_invoice(db_session, manager, make_quote)
    with pytest.raises(AuthorizationDenied):
        await InvoiceRequestService.complete_invoice(db_session, manager, invoice.id, "FAC-1")
    with pytest.raises(AuthorizationDenied):
        await InvoiceRequestService.list_pending(db_session, manager, ListParams())


async def test_unknown_invoice_is_not_found(db_session: AsyncSession, admin: User) -> None:
    with pytest.raises(NotFound):
        await InvoiceRequestService.get_invoice(db_session, admin, 404)
    with pytest.raises(NotFound):
        await InvoiceRequestService.complete_invoice(db_session, admin, 404, "FAC-1")


async def test_list_pending_search_and_sort(
    db_session: AsyncSession,
    admin: User,
    make_user: Callable[..., Awaitable[User]],
    make_quote: QuoteFactory,
) -> None:
    rosa = await make_user("department_manager", first_name="Rosa", last_name="Zamora", email="rosa@example.com")
    beto = await make_user("department_manager", first_name="Alberto", last_name="Báez", email="beto@example.com")
    first = await _pending_invoice(db_session, rosa, make_quote)
    second = await _pending_invoice(db_session, beto, make_quote)
    done = await _pending_invoice(db_session, beto, make_quote)
    await InvoiceRequestService.complete_invoice(db_session, admin, done.id, "FAC-3")

    page = await InvoiceRequestService.list_pending(db_session, admin, ListParams())
    assert page.records_total == 2
    assert [i.id for i in page.rows] == [second.id, first.id]

    by_name = await InvoiceRequestService.list_pending(db_session, admin, ListParams(search="rosa"))
    assert [i.id for i in by_name.rows] == [first.id]
    assert by_name.records_filtered == 1

    by_requester = await InvoiceRequestService.list_pending(
        db_session, admin, ListParams(sort="requestedBy", sort_dir="asc")
    )
    assert [i.id for i in by_requester.rows] == [second.id, first.id]
    assert by_requester.rows[0].quote.folio


async def test_pending_count_tracks_open_requests(
    db_session: AsyncSession, admin: User, manager: User, make_quote: QuoteFactory
) -> None:
    assert await InvoiceRequestService.count_pending(db_session, admin) == 0

    first = await _pending_invoice(db_session, manager, make_quote)
    await _pending_invoice(db_session, manager, make_quote)
    assert await InvoiceRequestService.count_pending(db_session, admin) == 2

    await InvoiceRequestService.complete_invoice(db_session, admin, first.id, "FAC-1")
    assert await InvoiceRequestService.count_pending(db_session, admin) == 1

    with pytest.raises(AuthorizationDenied):
        await InvoiceRequestService.count_pending(db_session, manager)
