"""
Invoice request workflow: pending → completed | cancelled.

Both transitions are terminal and only allowed from ``pending``. They run
under the owning quote's lock so they serialize with the quote's own
lifecycle operations (invoice request, reservation cancellation).
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from backoffice.errors import InvalidStateTransition, NotFound, ValidationError
from backoffice.models.base import utcnow
from backoffice.models.client import Client
from backoffice.models.invoice import Invoice
from backoffice.models.quote import Quote
from backoffice.models.user import User
from backoffice.policy import authorize
from backoffice.services.audit import record_audit
from backoffice.services.listing import ListPage, ListParams, paginate, resolve_sort
from backoffice.services.locks import quote_locks

logger = logging.getLogger(__name__)

_requester = aliased(User)

PENDING_SORT_COLUMNS = {
    "requestDate": Invoice.request_date,
    "folio": Quote.folio,
    "client": Client.company_name,
    "requestedBy": _requester.last_name,
}
PENDING_COLUMN_ORDER = ["folio", "client", "requestedBy", "requestDate"]

INVOICE_LOAD_OPTIONS = (
    selectinload(Invoice.quote).selectinload(Quote.client),
    selectinload(Invoice.requested_by),
    selectinload(Invoice.processed_by),
)


class InvoiceRequestService:
    """Admin-side processing of invoice requests."""

    @staticmethod
    async def _load(db: AsyncSession, invoice_id: int, for_update: bool = False) -> Invoice:
        stmt = (
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .options(*INVOICE_LOAD_OPTIONS)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=Invoice)
        result = await db.execute(stmt)
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFound("Factura no encontrada", code="invoice_not_found")
        return invoice

    @staticmethod
    async def _quote_id_of(db: AsyncSession, invoice_id: int) -> int:
        quote_id = await db.scalar(select(Invoice.quote_id).where(Invoice.id == invoice_id))
        if quote_id is None:
            raise NotFound("Factura no encontrada", code="invoice_not_found")
        return quote_id

    @staticmethod
    async def list_pending(db: AsyncSession, actor: User, params: ListParams) -> ListPage:
        """Pending requests; search covers quote folio and requester name/email."""
        authorize(actor, "invoices", "read")
        stmt = (
            select(Invoice)
            .join(Quote, Invoice.quote_id == Quote.id)
            .outerjoin(Client, Quote.client_id == Client.id)
            .outerjoin(_requester, Invoice.requested_by_id == _requester.id)
            .where(Invoice.status == "pending", Quote.not_deleted())
        )
        if params.sort is None:
            params.sort, params.sort_dir = "requestDate", "desc"
        order = resolve_sort(params, PENDING_SORT_COLUMNS, PENDING_COLUMN_ORDER, "requestDate")
        return await paginate(
            db,
            stmt,
            params,
            search_columns=(
                Quote.folio,
                _requester.first_name,
                _requester.last_name,
                _requester.email,
            ),
            order_by=(order, Invoice.id.desc()),
            options=INVOICE_LOAD_OPTIONS,
        )

    @staticmethod
    async def count_pending(db: AsyncSession, actor: User) -> int:
        """Number of pending requests, for the navigation badge."""
        authorize(actor, "invoices", "read")
        count = await db.scalar(
            select(func.count(Invoice.id))
            .join(Quote, Invoice.quote_id == Quote.id)
            .where(Invoice.status == "pending", Quote.not_deleted())
        )
        return count or 0

    @staticmethod
    async def get_invoice(db: AsyncSession, actor: User, invoice_id: int) -> Invoice:
        authorize(actor, "invoices", "read")
        return await InvoiceRequestService._load(db, invoice_id)

    @staticmethod
    async def complete_invoice(
        db: AsyncSession,
        actor: User,
        invoice_id: int,
        invoice_number: Optional[str],
        notes: Optional[str] = None,
    ) -> Invoice:
        """Mark a pending request as invoiced under ``invoice_number``."""
        authorize(actor, "invoices", "complete")
        quote_id = await InvoiceRequestService._quote_id_of(db, invoice_id)

        async with quote_locks.hold(quote_id):
            invoice = await InvoiceRequestService._load(db, invoice_id, for_update=True)
            if invoice.status != "pending":
                raise InvalidStateTransition(
                    "Solo se pueden completar facturas pendientes",
                    code="invoice_not_pending",
                )
            number = (invoice_number or "").strip()
            if not number:
                raise ValidationError("Número de factura requerido", code="invoice_number_required")

            invoice.status = "completed"
            invoice.invoice_number = number
            invoice.process_date = utcnow()
            invoice.processed_by_id = actor.id
            if notes:
                invoice.notes = notes
            await InvoiceRequestService._commit(db, actor, invoice_id, "completion")

        logger.info(
            f"Invoice request {invoice_id} completed as {number}",
            extra={"actor_id": str(actor.id), "role": actor.role, "resource": "invoice", "resource_id": invoice_id},
        )
        await record_audit(
            db, actor, "invoice", invoice_id, "complete",
            old_values={"status": "pending"},
            new_values={"status": "completed", "invoiceNumber": number},
        )
        return await InvoiceRequestService._load(db, invoice_id)

    @staticmethod
    async def cancel_invoice(
        db: AsyncSession,
        actor: User,
        invoice_id: int,
        reason: Optional[str] = None,
    ) -> Invoice:
        """
        Cancel a pending request and clear the quote's invoice flags in the
        same transaction.
        """
        authorize(actor, "invoices", "cancel")
        quote_id = await InvoiceRequestService._quote_id_of(db, invoice_id)

        async with quote_locks.hold(quote_id):
            invoice = await InvoiceRequestService._load(db, invoice_id, for_update=True)
            if invoice.status != "pending":
                raise InvalidStateTransition(
                    "Solo se pueden cancelar facturas pendientes",
                    code="invoice_not_pending",
                )

            invoice.status = "cancelled"
            invoice.process_date = utcnow()
            invoice.processed_by_id = actor.id
            invoice.cancellation_reason = reason

            quote = await db.scalar(
                select(Quote).where(Quote.id == quote_id).with_for_update().execution_options(populate_existing=True)
            )
            if quote is not None:
                quote.invoice_requested = False
                quote.invoice_request_date = None
                quote.invoice_requested_by_id = None
            await InvoiceRequestService._commit(db, actor, invoice_id, "cancellation")

        logger.info(
            f"Invoice request {invoice_id} cancelled",
            extra={
                "actor_id": str(actor.id),
                "role": actor.role,
                "resource": "invoice",
                "resource_id": invoice_id,
                "reason": reason,
            },
        )
        await record_audit(
            db, actor, "invoice", invoice_id, "cancel",
            old_values={"status": "pending"},
            new_values={"status": "cancelled"},
            context=reason,
        )
        return await InvoiceRequestService._load(db, invoice_id)

    @staticmethod
    async def _commit(db: AsyncSession, actor: User, invoice_id: int, operation: str) -> None:
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.error(
                f"Failed to persist invoice {operation}",
                exc_info=True,
                extra={"actor_id": str(actor.id), "resource": "invoice", "resource_id": invoice_id},
            )
            raise
