from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router
from app.core.exceptions import TripLedgerError, ValidationError
from app.core.storage import StorageClient
from app.database import init_db, async_session_factory


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting %s v%s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)
    await init_db()
    for entity_type in StorageClient.ENTITY_TYPES:
        StorageClient.ensure_entity_directory(entity_type)
    logger.info("Attachment store at %s", StorageClient.base_dir())

    yield

    # Shutdown
    logger.info("Shutting down %s", settings.APP_NAME)


# OpenAPI Tags for documentation
OPENAPI_TAGS = [
    {
        "name": "Transactions",
        "description": "Daily vehicle transactions: Fixed, Adhoc and Replacement trips, "
                       "merged listing, xlsx export and attachments",
    },
    {
        "name": "Health",
        "description": "Service health check",
    },
]

API_DESCRIPTION = """
## Trip Ledger API

Records daily vehicle trips for a transport operator and serves them as one feed.

* **Fixed** trips reference master vehicles and drivers (ordered lists).
* **Adhoc** and **Replacement** trips carry vendor, vehicle and driver as free text
  plus advance/balance payment tracking.

Transaction ids are local to each store; pass `type` when reading or deleting
a single transaction to avoid ambiguity.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Validation failed, unknown reference or rejected attachment |
| 404 | Transaction or file not found |
| 409 | Duplicate record or record in use |
| 500 | Internal Server Error |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


# ==================== EXCEPTION HANDLERS ====================

@app.exception_handler(TripLedgerError)
async def trip_ledger_exception_handler(request: Request, exc: TripLedgerError):
    """Domain errors carry their own status and body."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Query/body validation errors use the same per-field body as ValidationError."""
    error = ValidationError.from_errors(exc.errors())
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unexpected failures; internal detail only outside production or with DEBUG."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)

    content = {"error": "Internal server error"}
    if not settings.is_production or settings.DEBUG:
        content["detail"] = str(exc)
        content["type"] = type(exc).__name__

    return JSONResponse(status_code=500, content=content)


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
