# backend/nakksha/main.py
from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.constants import BRAND_NAME
from .core.exceptions import DomainException, RepositoryException
from .database import Base, engine
from .middleware.prometheus_middleware import PrometheusMiddleware
from .routes import health, prometheus
from .routes.v1 import (
    availability as availability_v1,
    consultant_availability as consultant_availability_v1,
    jobs as jobs_v1,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")

    if settings.is_sqlite:
        # Local SQLite databases are created on the fly; other backends are migrated.
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=engine)

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")


fastapi_app = FastAPI(
    title=f"{BRAND_NAME} Availability API",
    description="Weekly availability patterns, bookable slots and scheduling jobs",
    version="1.0.0",
    lifespan=app_lifespan,
)


@fastapi_app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Domain errors that escaped a route keep their status and code."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@fastapi_app.exception_handler(RepositoryException)
async def repository_exception_handler(request: Request, exc: RepositoryException) -> JSONResponse:
    logger.error(
        "Repository error",
        extra={"path": request.url.path, "error": str(exc)},
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": {
                "message": "Database operation failed",
                "code": "INTERNAL_ERROR",
                "details": {},
            }
        },
    )


fastapi_app.add_middleware(PrometheusMiddleware)

# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")

api_v1.include_router(availability_v1.router, prefix="/availability")
api_v1.include_router(consultant_availability_v1.router, prefix="/consultant/availability")
api_v1.include_router(jobs_v1.router, prefix="/jobs")

fastapi_app.include_router(api_v1)
fastapi_app.include_router(health.router)
fastapi_app.include_router(prometheus.router)

app = fastapi_app
