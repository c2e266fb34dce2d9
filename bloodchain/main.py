from fastapi import Depends, FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
import logging
import time
import uuid
from bloodchain.core.config import settings
from bloodchain.core.logging import logger
from bloodchain.core.exceptions import (
    BloodChainError,
    bloodchain_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler
)
from bloodchain.api.v1.api import api_router
from bloodchain.api.deps import get_coordinator
from bloodchain.services.coordinator import BloodBankCoordinator

http_logger = logging.getLogger("bloodchain.http")

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Blood Donation Coordination API",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
)

# Add exception handlers
app.add_exception_handler(BloodChainError, bloodchain_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Request logging middleware: one line per request, tagged with its request id
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.perf_counter()
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    response = await call_next(request)

    elapsed_ms = (time.perf_counter() - start_time) * 1000
    level = logging.WARNING if response.status_code >= 400 else logging.INFO
    http_logger.log(
        level,
        f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)",
        extra={"request_id": request_id},
    )
    response.headers["X-Request-ID"] = request_id
    return response

# Include API routes
app.include_router(api_router, prefix="/api/v1")

@app.on_event("startup")
async def startup_event():
    """Build the coordinator (and create tables for the SQL ledger) before the first request."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")
    try:
        coordinator = get_coordinator()
    except Exception as e:
        logger.error(f"Ledger initialization failed: {e}")
        raise
    logger.info(
        f"Ledger: {type(coordinator.ledger).__name__}; "
        f"donation interval {settings.MINIMUM_DONATION_INTERVAL_DAYS} days, "
        f"{settings.REWARD_POINTS_PER_DONATION} points and {settings.UNITS_PER_DONATION} unit(s) per donation, "
        f"direct fulfillment {'on' if settings.ALLOW_DIRECT_FULFILLMENT else 'off'}"
    )

@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown."""
    logger.info("Application shutting down")

@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if settings.DEBUG else "disabled"
    }

@app.get("/health")
def health_check(coordinator: BloodBankCoordinator = Depends(get_coordinator)):
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "ledger": type(coordinator.ledger).__name__,
    }
