"""
Reservation receipt PDF generation.
Uses Jinja2 for HTML templating + WeasyPrint for PDF conversion.

The receipt shows the totals stored on the quote; nothing is recomputed.
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader

from backoffice.config import get_settings
from backoffice.models.quote import Quote


# Template directory
TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

STATUS_LABELS = {
    "requested": "Solicitada",
    "hold": "En espera",
    "scheduled": "Programada",
    "rejected": "Rechazada",
}


def _get_jinja_env() -> Environment:
    """Create Jinja2 environment with the templates directory."""
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=True,
    )


def format_amount(amount: Any, currency: str = "MXN") -> str:
    """Format amount for display: $1,467.00 MXN"""
    if amount is None or amount == "":
        amount = 0
    value = Decimal(str(amount)).quantize(Decimal("0.01"))
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f} {currency}"


def format_date(d: Any) -> str:
    """Format date for display: 10/02/2026"""
    if d is None or d == "":
        return ""
    if isinstance(d, str):
        try:
            d = datetime.fromisoformat(d)
        except ValueError:
            return d
    if isinstance(d, (date, datetime)):
        return d.strftime("%d/%m/%Y")
    return str(d)


def default_issuer() -> dict:
    settings = get_settings()
    return {
        "company_name": settings.receipt_company_name,
        "address": settings.receipt_company_address,
        "phone": settings.receipt_company_phone,
        "bank_name": settings.receipt_bank_name,
        "beneficiary": settings.receipt_bank_beneficiary,
        "account": settings.receipt_bank_account,
        "clabe": settings.receipt_bank_clabe,
    }


def render_receipt_html(
    quote: Quote,
    include_payment_info: bool = False,
    issuer: Optional[dict] = None,
) -> str:
    """
    Render receipt HTML from the Jinja2 template.

    ``quote.client`` must be loaded.
    """
    env = _get_jinja_env()
    template = env.get_template("receipt.html")

    items = quote.service_items or {}
    currency = get_settings().default_currency

    context = {
        "quote": quote,
        "client": quote.client,
        "status_label": STATUS_LABELS.get(quote.status, quote.status),
        "days": items.get("days") or [],
        "subtotal": items.get("subtotal", 0),
        "iva": items.get("iva", 0),
        "total": items.get("total", 0),
        "currency": currency,
        "issuer": issuer or default_issuer(),
        "include_payment_info": include_payment_info,
        # Formatting helpers
        "format_amount": format_amount,
        "format_date": format_date,
        "generated_at": datetime.now().strftime("%d/%m/%Y %H:%M"),
    }

    return template.render(**context)


async def generate_receipt_pdf(
    quote: Quote,
    include_payment_info: bool = False,
    issuer: Optional[dict] = None,
) -> bytes:
    """
    Generate receipt PDF bytes.

    Requires WeasyPrint and its system libraries (Pango).
    """
    html = render_receipt_html(quote, include_payment_info, issuer)

    try:
        from weasyprint import HTML
    except ImportError:
        raise ImportError(
            "WeasyPrint is required for PDF generation. "
            "Install it with: pip install weasyprint"
        )
    # WeasyPrint is synchronous and CPU bound
    return await asyncio.to_thread(HTML(string=html).write_pdf)
