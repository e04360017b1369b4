"""
Transport back-office API - main application entry point.

Pricing adjustments, quotes with their invoice requests and receipts, and
the catalogs (services, POIs, vehicles, rates, experiences, clients) that
quotes are built from.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from backoffice import __version__
from backoffice.api import auth, catalog, invoices, price_adjustments, quotes
from backoffice.config import get_settings
from backoffice.database import engine
from backoffice.errors import register_exception_handlers
from backoffice.logging import configure_logging

settings = get_settings()
logger = logging.getLogger(__name__)

KIND_PREFIXES = {
    "/api/inflation-rate": "inflation",
    "/api/transfer-rate": "transfer",
    "/api/agency-rate": "agency",
    "/api/exchange-rate": "exchange_rate",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging(settings.log_level)
    logger.info(f"Starting {settings.app_name} ({settings.environment})")

    yield

    await engine.dispose()
    logger.info(f"Shutting down {settings.app_name}")


app = FastAPI(
    title=settings.app_name,
    description="""
    ## Transport Back-office API

    - **Price adjustments**: inflation, transfer, agency and exchange rates with history
    - **Quotes**: status workflow, invoice requests and PDF receipts
    - **Catalogs**: priced routes, points of interest, fleet, rates, experiences and clients

    ### Authentication
    All endpoints require JWT authentication. Use `/auth/login` to obtain a token.
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(price_adjustments.router, prefix="/api/price-adjustments", tags=["Price Adjustments"])
# Per-kind routes kept for the existing admin screens
for prefix, kind in KIND_PREFIXES.items():
    app.include_router(
        price_adjustments.kind_router(kind),
        prefix=prefix,
        tags=["Price Adjustments"],
    )
app.include_router(quotes.router, prefix="/api/quotes", tags=["Quotes"])
app.include_router(invoices.router, prefix="/api/invoices", tags=["Invoice Requests"])
app.include_router(catalog.services_router, prefix="/api/services", tags=["Services"])
app.include_router(catalog.pois_router, prefix="/api/pois", tags=["POIs"])
app.include_router(catalog.vehicle_types_router, prefix="/api/vehicle-types", tags=["Vehicle Types"])
app.include_router(catalog.vehicles_router, prefix="/api/vehicles", tags=["Vehicles"])
app.include_router(catalog.rates_router, prefix="/api/rates", tags=["Rates"])
app.include_router(catalog.experiences_router, prefix="/api/experiences", tags=["Experiences"])
app.include_router(catalog.clients_router, prefix="/api/clients", tags=["Clients"])


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": __version__,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check, including database connectivity."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")
        database = "unavailable"
    return {
        "status": "healthy" if database == "connected" else "degraded",
        "database": database,
        "environment": settings.environment,
    }
