"""
Stock Ledger Service
Product catalog, stock adjustments with movement history, and atomic order settlement
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import subprocess
import os

from shared.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from app.api.routes import products_router, inventory_router, orders_router
from app.core_settings import get_settings
from app.domain.errors import (
    Conflict,
    DuplicateSku,
    InsufficientStock,
    InvalidInput,
    InventoryError,
    OrderNotFound,
    ProductNotFound,
    Timeout,
)
from app.infrastructure.db import engine, init_models

SERVICE_NAME = "stock-ledger"
SERVICE_DESCRIPTION = "Inventory ledger and order settlement service"

settings = get_settings()
os.environ.setdefault("SERVICE_VERSION", settings.SERVICE_VERSION)
os.environ.setdefault("ENVIRONMENT", settings.ENVIRONMENT)

setup_logging(service_name=SERVICE_NAME, level=settings.LOG_LEVEL)

logger = get_logger(__name__)

# Error kind -> (status code, retry hint)
ERROR_STATUS = {
    InvalidInput: (400, False),
    ProductNotFound: (404, False),
    OrderNotFound: (404, False),
    DuplicateSku: (409, False),
    InsufficientStock: (409, False),
    Conflict: (409, True),
    Timeout: (503, True),
}

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    logger.info(f"Starting {SERVICE_NAME} version {settings.SERVICE_VERSION}")

    if settings.RUN_MIGRATIONS:
        logger.info("Running database migrations")
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=os.path.join(os.path.dirname(__file__), ".."),
            capture_output=True,
            text=True,
            check=False
        )
        if result.returncode != 0:
            logger.warning(f"Migration output: {result.stderr}")
        else:
            logger.info("Database migrations completed")

    try:
        init_models()
        logger.info("Database models initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database models: {e}")
        raise

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")

app = FastAPI(
    title=SERVICE_NAME,
    description=SERVICE_DESCRIPTION,
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError) -> JSONResponse:
    status_code, retryable = next(
        (mapping for kind, mapping in ERROR_STATUS.items() if isinstance(exc, kind)),
        (400, False),
    )
    headers = {"Retry-After": "1"} if retryable else None
    if status_code >= 500 or retryable:
        logger.warning(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)

health_service = ServiceHealth(SERVICE_NAME, engine, settings.SERVICE_VERSION)
app.include_router(health_service.create_health_router())

app.include_router(products_router)
app.include_router(inventory_router)
app.include_router(orders_router)

@app.get("/")
async def root():
    return {
        "service": SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "status": "running",
        "docs": "/api/docs"
    }
