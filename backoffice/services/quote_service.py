"""
Quote service: business logic for the quote lifecycle.

Handles:
- Folio allocation (QTE-YYYY-0001)
- Status transitions requested → hold → scheduled → rejected
- Service items totals (subtotal, IVA, total)
- Invoice requests, reservation receipts and reservation cancellation

Every lifecycle mutation of a quote holds that quote's lock and re-reads the
row FOR UPDATE, so invoice requests, cancellations and status changes on the
same quote are applied one after the other.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backoffice.config import get_settings
from backoffice.errors import Conflict, InvalidStateTransition, InvalidTransitionError, NotFound, ValidationError
from backoffice.models.base import Lifecycle, utcnow
from backoffice.models.client import Client
from backoffice.models.invoice import Invoice
from backoffice.models.quote import QUOTE_STATUSES, Quote, empty_service_items
from backoffice.models.rate import Rate
from backoffice.models.service import Service
from backoffice.models.user import User
from backoffice.policy import authorize, is_allowed
from backoffice.services.audit import record_audit
from backoffice.services.listing import ListPage, ListParams, paginate, resolve_sort
from backoffice.services.locks import quote_locks
from backoffice.services.receipt_pdf import generate_receipt_pdf

logger = logging.getLogger(__name__)


# ========================================================================
# Status machine
# ========================================================================

# Transitions reachable through the generic status/update operations.
# Leaving "scheduled" is only possible through cancel_reservation.
QUOTE_TRANSITIONS: dict[str, frozenset[str]] = {
    "requested": frozenset({"hold", "scheduled", "rejected"}),
    "hold": frozenset({"scheduled", "rejected"}),
    "scheduled": frozenset(),
    "rejected": frozenset(),
}

# Fields accepted by update_quote, keyed by their API name
UPDATABLE_FIELDS = {
    "status": "status",
    "numberOfPeople": "number_of_people",
    "contactPerson": "contact_person",
    "contactEmail": "contact_email",
    "contactPhone": "contact_phone",
    "notes": "notes",
    "validUntil": "valid_until",
    "eventType": "event_type",
    "clientId": "client_id",
    "rateId": "rate_id",
}

EDITABLE_ITEM_STATUSES = ("requested", "hold")
FOLIO_PREFIX = "QTE"
FOLIO_ATTEMPTS = 3
CENT = Decimal("0.01")


LIST_SORT_COLUMNS = {
    "folio": Quote.folio,
    "client": Client.company_name,
    "eventType": Quote.event_type,
    "numberOfPeople": Quote.number_of_people,
    "status": Quote.status,
    "validUntil": Quote.valid_until,
    "createdAt": Quote.created_at,
}
LIST_COLUMN_ORDER = ["folio", "client", "eventType", "numberOfPeople", "status", "validUntil", "createdAt"]


def _actor_context(actor: Optional[User], quote_id: Any = None, **extra) -> dict:
    return {
        "actor_id": str(actor.id) if actor else None,
        "role": actor.role if actor else None,
        "resource": "quote",
        "resource_id": quote_id,
        **extra,
    }


def assert_transition(current: str, target: str) -> None:
    """Raise InvalidTransitionError unless current → target is allowed."""
    if target not in QUOTE_STATUSES:
        raise ValidationError(
            f"Estado inválido. Debe ser uno de: {', '.join(QUOTE_STATUSES)}",
            code="invalid_status",
        )
    if current == target:
        return
    if current == "scheduled":
        raise InvalidTransitionError(
            "Una cotización programada solo puede cambiar de estado mediante la cancelación de la reserva",
            code="scheduled_status_locked",
        )
    if target not in QUOTE_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(
            f"No se puede cambiar el estado de '{current}' a '{target}'",
        )


def _money(value: Any, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} debe ser numérico")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} debe ser un número positivo")
    return amount


def compute_service_items(days: list[dict], iva_rate: Optional[Decimal] = None) -> dict:
    """
    Normalize quote days and compute subtotal, IVA and total.

    Each day is ``{"dayNumber", "date", "subconcepts": [{"concept", "quantity", "unitPrice"}]}``.
    Amounts are returned as strings with two decimals.
    """
    if iva_rate is None:
        iva_rate = get_settings().iva_rate

    subtotal = Decimal("0")
    normalized_days = []
    for index, day in enumerate(days or [], start=1):
        subconcepts = []
        for item in day.get("subconcepts") or []:
            concept = str(item.get("concept") or "").strip()
            if not concept:
                raise ValidationError(f"Día {index}: cada concepto requiere descripción")
            quantity = _money(item.get("quantity", 1), "Cantidad")
            unit_price = _money(item.get("unitPrice", 0), "Precio unitario")
            line_total = (quantity * unit_price).quantize(CENT, rounding=ROUND_HALF_UP)
            subtotal += line_total
            subconcepts.append({
                "concept": concept,
                "quantity": str(int(quantity)) if quantity == quantity.to_integral_value() else str(quantity),
                "unitPrice": str(unit_price.quantize(CENT)),
                "total": str(line_total),
            })
        normalized_days.append({
            "dayNumber": day.get("dayNumber") or index,
            "date": day.get("date"),
            "subconcepts": subconcepts,
        })

    subtotal = subtotal.quantize(CENT)
    iva = (subtotal * iva_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    return {
        "days": normalized_days,
        "subtotal": str(subtotal),
        "iva": str(iva),
        "total": str(subtotal + iva),
    }


class QuoteService:
    """Quote lifecycle operations."""

    # ================================================================
    # Loading & access
    # ================================================================

    @staticmethod
    async def _load(db: AsyncSession, quote_id: int, for_update: bool = False) -> Quote:
        stmt = (
            select(Quote)
            .where(Quote.id == quote_id, Quote.not_deleted())
            .options(
                selectinload(Quote.client),
                selectinload(Quote.rate),
                selectinload(Quote.created_by),
                selectinload(Quote.invoice_requested_by),
            )
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=Quote)
        result = await db.execute(stmt)
        quote = result.scalar_one_or_none()
        if quote is None:
            raise NotFound("Cotización no encontrada", code="quote_not_found")
        return quote

    @staticmethod
    def _scope_clause(actor: User):
        """Visibility filter: admins see everything, managers their department."""
        if actor.is_admin:
            return None
        if actor.role == "department_manager" and actor.department_id is not None:
            return or_(
                Quote.created_by_id == actor.id,
                Quote.created_by_id.in_(
                    select(User.id).where(User.department_id == actor.department_id)
                ),
            )
        return Quote.created_by_id == actor.id

    @staticmethod
    def _check_access(actor: User, quote: Quote) -> None:
        if actor.is_admin or quote.created_by_id == actor.id:
            return
        creator = quote.created_by
        if (
            actor.role == "department_manager"
            and actor.department_id is not None
            and creator is not None
            and creator.department_id == actor.department_id
        ):
            return
        # Hidden quotes look the same as missing ones
        raise NotFound("Cotización no encontrada", code="quote_not_found")

    @staticmethod
    async def _validate_references(db: AsyncSession, client_id: Optional[int], rate_id: Optional[int]) -> None:
        if client_id is not None:
            found = await db.scalar(select(Client.id).where(Client.id == client_id, Client.not_deleted()))
            if found is None:
                raise ValidationError("El cliente seleccionado no existe", code="invalid_client")
        if rate_id is not None:
            found = await db.scalar(select(Rate.id).where(Rate.id == rate_id, Rate.not_deleted()))
            if found is None:
                raise ValidationError("La tarifa seleccionada no existe", code="invalid_rate")

    @staticmethod
    async def _next_folio(db: AsyncSession, year: Optional[int] = None) -> str:
        year = year or utcnow().year
        prefix = f"{FOLIO_PREFIX}-{year}-"
        last = await db.scalar(
            select(Quote.folio)
            .where(Quote.folio.like(f"{prefix}%"))
            .order_by(func.length(Quote.folio).desc(), Quote.folio.desc())
            .limit(1)
        )
        sequence = 1
        if last:
            try:
                sequence = int(last.rsplit("-", 1)[1]) + 1
            except (IndexError, ValueError):
                sequence = 1
        return f"{prefix}{sequence:04d}"

    @staticmethod
    async def _insert_with_folio(db: AsyncSession, quote: Quote) -> Quote:
        """Insert under a fresh folio; the unique index arbitrates between workers."""
        async with quote_locks.hold("folio"):
            for attempt in range(FOLIO_ATTEMPTS):
                quote.folio = await QuoteService._next_folio(db)
                db.add(quote)
                try:
                    await db.commit()
                    return quote
                except IntegrityError:
                    await db.rollback()
                    if attempt >= FOLIO_ATTEMPTS - 1:
                        raise Conflict("No fue posible asignar un folio, intente nuevamente", code="folio_conflict")
                    logger.warning(f"Folio {quote.folio} already taken, retrying")
        raise Conflict("No fue posible asignar un folio, intente nuevamente", code="folio_conflict")

    # ================================================================
    # Queries
    # ================================================================

    @staticmethod
    async def get_quote(db: AsyncSession, actor: User, quote_id: int) -> Quote:
        authorize(actor, "quotes", "read")
        quote = await QuoteService._load(db, quote_id)
        QuoteService._check_access(actor, quote)
        return quote

    @staticmethod
    async def list_quotes(db: AsyncSession, actor: User, params: ListParams) -> ListPage:
        authorize(actor, "quotes", "read")
        stmt = (
            select(Quote)
            .outerjoin(Client, Quote.client_id == Client.id)
            .where(Quote.not_deleted())
        )
        scope = QuoteService._scope_clause(actor)
        if scope is not None:
            stmt = stmt.where(scope)

        status = params.filters.get("status")
        if status:
            if status not in QUOTE_STATUSES:
                raise ValidationError(f"Estado inválido. Debe ser uno de: {', '.join(QUOTE_STATUSES)}")
            stmt = stmt.where(Quote.status == status)

        if params.sort is None:
            params.sort, params.sort_dir = "createdAt", "desc"
        order = resolve_sort(params, LIST_SORT_COLUMNS, LIST_COLUMN_ORDER, "createdAt")
        return await paginate(
            db,
            stmt,
            params,
            search_columns=(Quote.folio, Quote.contact_person, Quote.contact_email, Client.company_name),
            order_by=(order, Quote.id.desc()),
            options=(selectinload(Quote.client), selectinload(Quote.rate), selectinload(Quote.created_by)),
        )

    @staticmethod
    async def list_quotes_with_invoices(db: AsyncSession, actor: User, params: ListParams) -> ListPage:
        """Quotes that have had at least one invoice request, with their requests."""
        authorize(actor, "quotes", "read")
        stmt = (
            select(Quote)
            .outerjoin(Client, Quote.client_id == Client.id)
            .where(
                Quote.not_deleted(),
                Quote.id.in_(select(Invoice.quote_id)),
            )
        )
        scope = QuoteService._scope_clause(actor)
        if scope is not None:
            stmt = stmt.where(scope)

        if params.sort is None:
            params.sort, params.sort_dir = "createdAt", "desc"
        order = resolve_sort(params, LIST_SORT_COLUMNS, LIST_COLUMN_ORDER, "createdAt")
        return await paginate(
            db,
            stmt,
            params,
            search_columns=(Quote.folio, Client.company_name),
            order_by=(order, Quote.id.desc()),
            options=(
                selectinload(Quote.client),
                selectinload(Quote.invoices).selectinload(Invoice.requested_by),
            ),
        )

    @staticmethod
    async def available_services(db: AsyncSession, actor: User, quote_id: int) -> list[dict]:
        """
        Active services priced under the quote's rate, grouped by route
        (origin -> destination) with one entry per vehicle type. Services
        without an origin are local routes labelled by their destination.
        """
        authorize(actor, "quotes", "available_services")
        quote = await QuoteService._load(db, quote_id)
        QuoteService._check_access(actor, quote)
        if quote.rate_id is None:
            raise ValidationError("La cotización no tiene una tarifa asignada", code="quote_without_rate")

        result = await db.execute(
            select(Service)
            .where(Service.rate_id == quote.rate_id, Service.lifecycle == Lifecycle.ACTIVE)
            .options(
                selectinload(Service.origin_poi),
                selectinload(Service.destination_poi),
                selectinload(Service.vehicle_type),
            )
            .order_by(Service.id)
        )
        services = result.scalars().all()

        routes: dict[str, dict] = {}
        for service in services:
            origin, destination = service.origin_poi, service.destination_poi
            route_key = f"{origin.id if origin else 'local'}_{destination.id}"
            route = routes.get(route_key)
            if route is None:
                route = routes[route_key] = {
                    "routeKey": route_key,
                    "originId": origin.id if origin else None,
                    "originName": origin.name if origin else "Local",
                    "destinationId": destination.id,
                    "destinationName": destination.name,
                    "serviceType": destination.service_type,
                    "hasRoundTrip": False,
                    "vehicles": [],
                }
            route["hasRoundTrip"] = route["hasRoundTrip"] or service.is_round_trip
            route["vehicles"].append({
                "serviceId": service.id,
                "vehicleType": service.vehicle_type.name,
                "vehicleTypeId": service.vehicle_type_id,
                "capacity": service.vehicle_type.default_capacity,
                "price": service.price,
                "note": service.note or "",
                "isRoundTrip": service.is_round_trip,
            })

        for route in routes.values():
            arrow = "<->" if route["hasRoundTrip"] else "->"
            route["label"] = (
                route["destinationName"]
                if route["originId"] is None
                else f"{route['originName']} {arrow} {route['destinationName']}"
            )

        logger.info(
            f"Quote {quote.folio}: {len(routes)} routes from {len(services)} services",
            extra=_actor_context(actor, quote_id, rate_id=quote.rate_id),
        )
        return list(routes.values())

    # ================================================================
    # Creation
    # ================================================================

    @staticmethod
    async def create_quote(db: AsyncSession, actor: User, data: dict) -> Quote:
        """
        Create a quote in status ``requested`` valid for the configured number
        of days. ``data`` uses the API field names.
        """
        authorize(actor, "quotes", "create")
        settings = get_settings()

        client_id = data.get("clientId")
        rate_id = data.get("rateId")
        await QuoteService._validate_references(db, client_id, rate_id)

        number_of_people = data.get("numberOfPeople") or 1
        if int(number_of_people) < 1:
            raise ValidationError("El número de personas debe ser al menos 1")

        days = data.get("days")
        quote = Quote(
            status="requested",
            client_id=client_id,
            rate_id=rate_id,
            event_type=data.get("eventType"),
            number_of_people=int(number_of_people),
            contact_person=data.get("contactPerson"),
            contact_email=data.get("contactEmail"),
            contact_phone=data.get("contactPhone"),
            notes=data.get("notes"),
            service_items=compute_service_items(days) if days else empty_service_items(),
            valid_until=data.get("validUntil") or utcnow() + timedelta(days=settings.quote_validity_days),
            created_by_id=actor.id,
            lifecycle=Lifecycle.ACTIVE,
        )
        await QuoteService._insert_with_folio(db, quote)

        logger.info(f"Quote {quote.folio} created", extra=_actor_context(actor, quote.id))
        await record_audit(db, actor, "quote", quote.id, "create", new_values={"folio": quote.folio})
        return await QuoteService._load(db, quote.id)

    @staticmethod
    async def duplicate_quote(db: AsyncSession, actor: User, quote_id: int) -> Quote:
        """Copy a quote into a new ``requested`` quote with its own folio."""
        authorize(actor, "quotes", "create")
        source = await QuoteService.get_quote(db, actor, quote_id)
        settings = get_settings()

        copy = Quote(
            status="requested",
            client_id=source.client_id,
            rate_id=source.rate_id,
            event_type=source.event_type,
            number_of_people=source.number_of_people,
            contact_person=source.contact_person,
            contact_email=source.contact_email,
            contact_phone=source.contact_phone,
            notes=source.notes,
            service_items=dict(source.service_items or empty_service_items()),
            valid_until=utcnow() + timedelta(days=settings.quote_validity_days),
            created_by_id=actor.id,
            lifecycle=Lifecycle.ACTIVE,
        )
        await QuoteService._insert_with_folio(db, copy)

        logger.info(f"Quote {source.folio} duplicated as {copy.folio}", extra=_actor_context(actor, copy.id))
        await record_audit(
            db, actor, "quote", copy.id, "duplicate",
            new_values={"folio": copy.folio, "source": source.folio},
        )
        return await QuoteService._load(db, copy.id)

    # ================================================================
    # Status & updates
    # ================================================================

    @staticmethod
    async def update_quote_status(
        db: AsyncSession,
        actor: User,
        quote_id: int,
        new_status: str,
        reason: Optional[str] = None,
    ) -> dict:
        """Returns ``{"quote", "previousStatus", "newStatus"}``."""
        authorize(actor, "quotes", "update_status")
        if new_status not in QUOTE_STATUSES:
            raise ValidationError(
                f"Estado inválido. Debe ser uno de: {', '.join(QUOTE_STATUSES)}",
                code="invalid_status",
            )

        async with quote_locks.hold(quote_id):
            quote = await QuoteService._load(db, quote_id, for_update=True)
            QuoteService._check_access(actor, quote)
            previous_status = quote.status
            assert_transition(previous_status, new_status)

            quote.status = new_status
            if new_status == "rejected" and reason:
                quote.cancellation_reason = reason
            await QuoteService._commit(db, actor, quote_id, "status change")

        logger.info(
            f"Quote {quote.folio} status {previous_status} -> {new_status}",
            extra=_actor_context(
                actor, quote_id, previous_status=previous_status, new_status=new_status, reason=reason
            ),
        )
        await record_audit(
            db, actor, "quote", quote_id, "status_change",
            old_values={"status": previous_status},
            new_values={"status": new_status},
            context=reason,
        )
        return {"quote": quote, "previousStatus": previous_status, "newStatus": new_status}

    @staticmethod
    async def update_quote(
        db: AsyncSession,
        actor: User,
        quote_id: int,
        updates: dict,
        reason: Optional[str] = None,
    ) -> Quote:
        """
        Partial update over the whitelisted fields in UPDATABLE_FIELDS; other
        keys are ignored. A status change goes through the same transition
        guard as update_quote_status.
        """
        authorize(actor, "quotes", "update")
        changes = {UPDATABLE_FIELDS[k]: v for k, v in (updates or {}).items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ValidationError("No se proporcionaron campos válidos para actualizar", code="no_changes")

        if "status" in changes:
            authorize(actor, "quotes", "update_status")
        if "number_of_people" in changes:
            try:
                people = int(changes["number_of_people"])
            except (TypeError, ValueError):
                raise ValidationError("El número de personas debe ser un entero")
            if people < 1:
                raise ValidationError("El número de personas debe ser al menos 1")
            changes["number_of_people"] = people
        if isinstance(changes.get("valid_until"), str):
            try:
                changes["valid_until"] = datetime.fromisoformat(changes["valid_until"])
            except ValueError:
                raise ValidationError("Fecha de vigencia inválida")

        await QuoteService._validate_references(db, changes.get("client_id"), changes.get("rate_id"))

        async with quote_locks.hold(quote_id):
            quote = await QuoteService._load(db, quote_id, for_update=True)
            QuoteService._check_access(actor, quote)
            if "status" in changes:
                assert_transition(quote.status, changes["status"])

            old_values = {field: getattr(quote, field) for field in changes}
            for field, value in changes.items():
                setattr(quote, field, value)
            await QuoteService._commit(db, actor, quote_id, "update")

        logger.info(
            f"Quote {quote.folio} updated: {', '.join(changes)}",
            extra=_actor_context(actor, quote_id, reason=reason),
        )
        await record_audit(db, actor, "quote", quote_id, "update", old_values=old_values, new_values=changes, context=reason)
        return await QuoteService._load(db, quote_id)

    @staticmethod
    async def update_service_items(db: AsyncSession, actor: User, quote_id: int, days: list[dict]) -> Quote:
        """Replace the quote days and recompute its totals."""
        authorize(actor, "quotes", "update")
        items = compute_service_items(days)

        async with quote_locks.hold(quote_id):
            quote = await QuoteService._load(db, quote_id, for_update=True)
            QuoteService._check_access(actor, quote)
            if quote.status not in EDITABLE_ITEM_STATUSES:
                raise InvalidStateTransition(
                    "Solo se pueden modificar los conceptos de cotizaciones solicitadas o en espera",
                    code="items_locked",
                )
            old_total = (quote.service_items or {}).get("total")
            quote.service_items = items
            await QuoteService._commit(db, actor, quote_id, "service items update")

        await record_audit(
            db, actor, "quote", quote_id, "update_items",
            old_values={"total": old_total},
            new_values={"total": items["total"]},
        )
        return quote

    @staticmethod
    async def soft_delete_quote(
        db: AsyncSession,
        actor: User,
        quote_id: int,
        reason: Optional[str] = None,
    ) -> None:
        authorize(actor, "quotes", "delete")
        async with quote_locks.hold(quote_id):
            quote = await QuoteService._load(db, quote_id, for_update=True)
            QuoteService._check_access(actor, quote)
            quote.lifecycle = Lifecycle.DELETED
            await QuoteService._commit(db, actor, quote_id, "delete")

        logger.info(f"Quote {quote.folio} deleted", extra=_actor_context(actor, quote_id, reason=reason))
        await record_audit(db, actor, "quote", quote_id, "delete", context=reason)

    # ================================================================
    # Reservation actions
    # ================================================================

    @staticmethod
    async def request_invoice(
        db: AsyncSession,
        actor: User,
        quote_id: int,
        notes: Optional[str] = None,
    ) -> Invoice:
        """Open a pending invoice request for a scheduled quote."""
        authorize(actor, "quotes", "request_invoice")

        async with quote_locks.hold(quote_id):
            quote = await QuoteService._load(db, quote_id, for_update=True)
            QuoteService._check_access(actor, quote)
            if quote.status != "scheduled":
                raise InvalidStateTransition(
                    "Solo se puede solicitar factura para cotizaciones programadas",
                    code="quote_not_scheduled",
                )

            pending = await db.scalar(
                select(Invoice.id).where(Invoice.quote_id == quote_id, Invoice.status == "pending")
            )
            if pending is not None:
                raise Conflict(
                    "Ya existe una solicitud de factura pendiente para esta cotización",
                    code="invoice_already_pending",
                )

            now = utcnow()
            invoice = Invoice(
                quote_id=quote_id,
                requested_by_id=actor.id,
                status="pending",
                request_date=now,
                notes=notes,
            )
            db.add(invoice)
            quote.invoice_requested = True
            quote.invoice_request_date = now
            quote.invoice_requested_by_id = actor.id
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise Conflict(
                    "Ya existe una solicitud de factura pendiente para esta cotización",
                    code="invoice_already_pending",
                )
            except SQLAlchemyError:
                await db.rollback()
                logger.error(f"Failed to request invoice for quote {quote_id}", exc_info=True, extra=_actor_context(actor, quote_id))
                raise

        logger.info(
            f"Invoice requested for quote {quote.folio}",
            extra=_actor_context(actor, quote_id),
        )
        await record_audit(db, actor, "invoice", invoice.id, "request", new_values={"quote": quote.folio})
        return invoice

    @staticmethod
    async def generate_receipt(
        db: AsyncSession,
        actor: User,
        quote_id: int,
        include_payment_info: Optional[bool] = None,
    ) -> tuple[str, bytes]:
        """
        Build the reservation receipt from the stored totals.

        Banking details are included by default for admins. Only roles allowed
        to override may change that default; for everyone else it is ignored.
        """
        authorize(actor, "quotes", "receipt")
        quote = await QuoteService._load(db, quote_id)
        QuoteService._check_access(actor, quote)
        if quote.status != "scheduled":
            raise InvalidStateTransition(
                "Solo se pueden generar recibos para cotizaciones programadas",
                code="quote_not_scheduled",
            )

        include = actor.is_admin
        if include_payment_info is not None and is_allowed(actor, "quotes", "receipt_payment_info"):
            include = include_payment_info

        pdf_bytes = await generate_receipt_pdf(quote, include_payment_info=include)
        logger.info(
            f"Receipt generated for quote {quote.folio}",
            extra=_actor_context(actor, quote_id),
        )
        return f"recibo-{quote.folio}.pdf", pdf_bytes

    @staticmethod
    async def cancel_reservation(
        db: AsyncSession,
        actor: User,
        quote_id: int,
        reason: Optional[str] = None,
    ) -> Quote:
        """
        scheduled → rejected. A pending invoice request for the quote is
        cancelled in the same transaction.
        """
        authorize(actor, "quotes", "cancel_reservation")

        async with quote_locks.hold(quote_id):
            quote = await QuoteService._load(db, quote_id, for_update=True)
            QuoteService._check_access(actor, quote)
            if quote.status != "scheduled":
                raise InvalidStateTransition(
                    "Solo se pueden cancelar reservas programadas",
                    code="quote_not_scheduled",
                )

            now = utcnow()
            result = await db.execute(
                select(Invoice)
                .where(Invoice.quote_id == quote_id, Invoice.status == "pending")
                .with_for_update()
            )
            cancelled_invoices = result.scalars().all()
            for invoice in cancelled_invoices:
                invoice.status = "cancelled"
                invoice.process_date = now
                invoice.processed_by_id = actor.id
                invoice.cancellation_reason = reason or "Reserva cancelada"
            if cancelled_invoices:
                quote.invoice_requested = False
                quote.invoice_request_date = None
                quote.invoice_requested_by_id = None

            quote.status = "rejected"
            quote.cancellation_reason = reason
            await QuoteService._commit(db, actor, quote_id, "reservation cancellation")

        logger.info(
            f"Reservation {quote.folio} cancelled",
            extra=_actor_context(actor, quote_id, previous_status="scheduled", new_status="rejected", reason=reason),
        )
        await record_audit(
            db, actor, "quote", quote_id, "cancel_reservation",
            old_values={"status": "scheduled"},
            new_values={"status": "rejected", "cancelledInvoices": [i.id for i in cancelled_invoices]},
            context=reason,
        )
        return await QuoteService._load(db, quote_id)

    @staticmethod
    async def _commit(db: AsyncSession, actor: User, quote_id: int, operation: str) -> None:
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.error(
                f"Failed to persist quote {operation}",
                exc_info=True,
                extra=_actor_context(actor, quote_id),
            )
            raise
