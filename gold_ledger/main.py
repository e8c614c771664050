# gold_ledger/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gold_ledger.core.config import settings
from gold_ledger.core.db import create_schema, get_async_engine
from gold_ledger.utils.logger import setup_app_logging, get_logger
# Local application imports - Routes
from gold_ledger.allocations.router import router as allocation_routes
from gold_ledger.credits.router import router as credit_routes
from gold_ledger.ledger.router import router as ledger_routes
from gold_ledger.payments.router import router as payment_routes
from gold_ledger.receivables.router import router as receivable_routes
from gold_ledger.reconciliation.router import router as reconciliation_routes
from gold_ledger.settlements.router import router as settlement_routes
from gold_ledger.smelting.router import router as smelting_routes


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create the ledger tables when configured to
    """
    if settings.auto_create_schema:
        await create_schema(get_async_engine())
    yield


# Create the FastAPI app
ledger_app = FastAPI(
    title=f"Gold Collections Ledger - {settings.environment}",
    description="Debt ledger and credit allocation engine for alliance collections",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure logging
setup_app_logging(
    ledger_app,
    log_level=settings.log_level,
    use_json=settings.log_json or settings.environment.lower() == "production",
    log_file=settings.log_file,
    app_name="Gold Collections Ledger",
    environment=settings.environment,
)
logger = get_logger(__name__)

# Add CORS middleware
ledger_app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_cors_urls.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
ledger_app.include_router(ledger_routes)
ledger_app.include_router(smelting_routes)
ledger_app.include_router(receivable_routes)
ledger_app.include_router(settlement_routes)
ledger_app.include_router(payment_routes)
ledger_app.include_router(allocation_routes)
ledger_app.include_router(credit_routes)
ledger_app.include_router(reconciliation_routes)


# Root API to check if the server is up
@ledger_app.get("/", tags=["Base"])
async def health_check():
    """
    Root API to check if the server is up
    """
    logger.info("Calling root API for testing")
    return {"status": "ok"}
