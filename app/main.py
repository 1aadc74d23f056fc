"""
PharaohVault Backend — Main Application
Gold and silver accumulation subscriptions: checkout, lifecycle, spot prices,
cancellation and withdrawal workflows, admin rollups.
"""
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.database import engine, Base
from app.core.errors import AppError
from app.api.routes import (
    auth, users, subscriptions, checkout, billing, orders,
    metal_prices, cancellation_requests, withdrawal_requests, dashboard,
)
from app.schemas.schemas import HealthResponse
from app.services.billing import get_stripe_mode

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Stripe mode: {get_stripe_mode().upper()} ({settings.CHECKOUT_UI_MODE} checkout)")
    logger.info(f"Gold API: {'configured' if settings.GOLD_API_KEY else 'NOT configured'}")

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Recurring gold and silver accumulation plans. Subscribers pick a metal "
        "and a target weight, pay monthly through Stripe, and can request "
        "cancellation or physical withdrawal of what they have accumulated."
    ),
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# ── CORS ─────────────────────────────────────────────────────────────────────
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error Handlers ───────────────────────────────────────────────────────────
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_errors(exc)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "details": None},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    error_id = uuid.uuid4().hex[:12]
    logger.exception(f"Unhandled error {error_id} on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": {"error_id": error_id}},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


# ── Routes ───────────────────────────────────────────────────────────────────
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(subscriptions.router, prefix="/api/subscriptions", tags=["Subscriptions"])
app.include_router(checkout.router, prefix="/api/checkout", tags=["Checkout"])
app.include_router(billing.router, prefix="/api/billing", tags=["Billing"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(metal_prices.router, prefix="/api/metal-prices", tags=["Metal Prices"])
app.include_router(cancellation_requests.router, prefix="/api/cancellation-requests", tags=["Cancellation Requests"])
app.include_router(withdrawal_requests.router, prefix="/api/withdrawal-requests", tags=["Withdrawal Requests"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])


# ── Health Check ─────────────────────────────────────────────────────────────
@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    return HealthResponse(
        status="healthy",
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        stripe_mode=get_stripe_mode(),
    )


@app.get("/", tags=["Root"])
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
    }
