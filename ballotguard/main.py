"""Main FastAPI application."""
import os
from contextlib import asynccontextmanager

import psutil
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ballotguard.api.deps import get_data_access
from ballotguard.api.v1.router import api_router
from ballotguard.core.config import settings
from ballotguard.core.exceptions import BallotGuardError
from ballotguard.core.logging_config import get_logger, setup_logging
from ballotguard.core.rate_limit import limiter
from ballotguard.db.access import DataAccessLayer
from ballotguard.db.base import Base
from ballotguard.db.session import engine
from ballotguard.middleware import LoggingMiddleware
from ballotguard.schemas import ErrorDetail, ErrorResponse

# Initialize structured logging
setup_logging(level=settings.LOG_LEVEL, json_logs=settings.ENVIRONMENT == "production")
logger = get_logger(__name__)

# Validate production configuration after logging is configured
if settings.ENVIRONMENT == "production":
    settings.validate_production_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the data access layer: start it with the app, stop it on shutdown."""
    data_access = getattr(app.state, "data_access", None)
    owned = data_access is None
    if owned:
        if settings.ENVIRONMENT == "development":
            Base.metadata.create_all(bind=engine)
        data_access = DataAccessLayer.from_settings(engine, settings)
        data_access.start()
        app.state.data_access = data_access

    logger.info(
        "application_starting",
        app_title=settings.APP_TITLE,
        app_version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        election_timezone=settings.ELECTION_TIMEZONE,
    )
    try:
        yield
    finally:
        if owned:
            data_access.stop()
            del app.state.data_access
        logger.info("application_stopped")


app = FastAPI(
    title=settings.APP_TITLE,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(BallotGuardError)
async def ballotguard_error_handler(request: Request, exc: BallotGuardError):
    """Render domain errors as the standard error body with their status code."""
    if exc.retryable:
        logger.warning("request_storage_error", code=exc.code, message=exc.message)
    body = ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message))
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=headers)


# Add logging middleware (must be added before other middleware for proper request tracking)
app.add_middleware(LoggingMiddleware)


@app.middleware("http")
async def add_api_version_header(request: Request, call_next):
    """Add X-API-Version header to all responses for version tracking."""
    response = await call_next(request)
    response.headers["X-API-Version"] = settings.APP_VERSION
    return response


# CORS middleware - configured for cookie-based auth
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,  # Required for cookies
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
def health_check(dal: DataAccessLayer = Depends(get_data_access)):
    """
    Liveness with database monitor, cache and memory figures.

    Returns 200 while the process serves requests; ``status`` reports the
    database health (healthy, degraded, connecting, critical, unknown) so a
    database outage does not take the status endpoint down with it.
    """
    stats = dal.stats()
    process = psutil.Process(os.getpid())
    memory_info = process.memory_info()
    return {
        "status": stats["database"]["status"],
        "environment": settings.ENVIRONMENT,
        "database": stats["database"],
        "circuit": stats["circuit"],
        "cache": stats["cache"],
        "memory": {
            "rss_mb": round(memory_info.rss / 1024 / 1024, 2),
            "vms_mb": round(memory_info.vms / 1024 / 1024, 2),
            "percent": round(process.memory_percent(), 2),
        },
    }
