from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pymongo.errors import PyMongoError

from database import Database
from routes import access, calculators, checkout, macro_data, webhooks
from services.access_validator import AccessValidator
from services.economic_data import DEFAULT_COUNTRY, DEFAULT_PROJECTED_INFLATION
from services.email_service import EmailService
from services.entitlement_store import EntitlementStore
from services.errors import InputValidationError, StoreUnavailableError
from services.inflation_series import InflationSeriesProvider
from services.stripe_service import StripeService
from services.stripe_webhook_service import DEFAULT_TIMEOUT_SECONDS, WebhookProcessor
from utils import messages
from utils.env import get_float_env, missing_env, validate_env
from utils.rate_limiter import RateLimiter

import os
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

CHECKOUT_RATE_LIMIT = 5
CHECKOUT_RATE_WINDOW_SECONDS = 60


def configure_services(app: FastAPI, db) -> None:
    """Build every service around one database handle and attach them to app.state."""
    store = EntitlementStore(db)
    email_service = EmailService(db)

    app.state.series_provider = InflationSeriesProvider(
        db,
        default_projected_inflation=get_float_env("DEFAULT_PROJECTED_INFLATION", DEFAULT_PROJECTED_INFLATION),
    )
    app.state.entitlement_store = store
    app.state.access_validator = AccessValidator(store)
    app.state.email_service = email_service
    app.state.webhook_processor = WebhookProcessor(
        store,
        email_service,
        timeout_seconds=get_float_env("WEBHOOK_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
    )
    app.state.stripe_service = StripeService()
    app.state.rate_limiter = RateLimiter(
        max_attempts=CHECKOUT_RATE_LIMIT,
        window_seconds=CHECKOUT_RATE_WINDOW_SECONDS,
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Finapp API")

    # Tests attach their own services to app.state
    if os.getenv("PYTEST_RUNNING"):
        yield
        return

    if os.getenv("ENVIRONMENT") == "production":
        validate_env()
    else:
        missing = missing_env()
        if missing:
            logger.warning("Missing environment variables: %s", ", ".join(missing))

    database = Database()
    await database.connect()
    app.state.database = database
    configure_services(app, database.get_db())

    try:
        await app.state.series_provider.seed_static_series(DEFAULT_COUNTRY)
    except PyMongoError as e:
        logger.warning(f"Seeding macro data failed, static series stays available: {e}")

    yield

    # Shutdown
    logger.info("Shutting down Finapp API")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="Finapp API",
    description="Inflation and purchasing power calculators with paid access",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(webhooks.router)
app.include_router(access.router)
app.include_router(calculators.router)
app.include_router(macro_data.router)
app.include_router(checkout.router)

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": os.getenv("ENVIRONMENT", "development")
    }


def _invalid_fields(errors) -> list:
    """Names of the offending fields, in order, for the localized 422 body."""
    fields = []
    for e in errors:
        names = [part for part in e.get("loc", ()) if isinstance(part, str) and part not in ("body", "query")]
        if names and names[-1] not in fields:
            fields.append(names[-1])
    return fields


# Validation error handler: log request_id + full errors (loc path)
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    logger.warning(
        "Validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={
            "message": messages.INVALID_INPUT,
            "fields": _invalid_fields(errors),
            "detail": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                for e in errors
            ],
            "request_id": request_id,
        },
    )


@app.exception_handler(InputValidationError)
async def input_validation_exception_handler(request: Request, exc: InputValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": exc.message, "field": exc.field}
    )


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_exception_handler(request: Request, exc: StoreUnavailableError):
    logger.error(f"Store unavailable on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": messages.SERVICE_UNAVAILABLE}
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": messages.INTERNAL_ERROR}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
