"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fleet_engine.api.routes import (
    accounting_router,
    authorization_router,
    documents_router,
    health_router,
    trips_router,
    validity_router,
)
from fleet_engine.config import get_settings
from fleet_engine.database import create_schema, init_db
from fleet_engine.errors import FleetError
from fleet_engine.events import DomainEvent, EventEmitter

logger = logging.getLogger(__name__)

# Error code -> HTTP status
ERROR_STATUS: dict[str, int] = {
    "UNAUTHORIZED": status.HTTP_403_FORBIDDEN,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "UNKNOWN_ROLE": status.HTTP_404_NOT_FOUND,
    "UNKNOWN_PERMISSION": status.HTTP_404_NOT_FOUND,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
    "ALREADY_ISSUED": status.HTTP_409_CONFLICT,
    "ACCOUNTING_ERROR": 422,
    "INVALID_VALUE": 422,
}


def _log_event(event: DomainEvent) -> None:
    logger.info("Event %s", event.to_json())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    engine, _ = init_db()
    if get_settings().auto_create_schema:
        create_schema(engine)
    yield


def create_app(init_database: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Pass ``init_database=False`` when the session dependency is overridden.
    """
    app = FastAPI(
        title="Fleet Engine API",
        description="Authorization, lifecycle and accounting core for fleet operations",
        version="0.1.0",
        lifespan=lifespan if init_database else None,
    )

    emitter = EventEmitter()
    emitter.on_all(_log_event)
    app.state.event_emitter = emitter

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(FleetError)
    async def fleet_error_handler(request: Request, exc: FleetError) -> JSONResponse:
        """Map business-rule failures to HTTP status codes."""
        return JSONResponse(
            status_code=ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST),
            content={"detail": str(exc), "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(authorization_router, prefix="/api/v1")
    app.include_router(trips_router, prefix="/api/v1")
    app.include_router(accounting_router, prefix="/api/v1")
    app.include_router(documents_router, prefix="/api/v1")
    app.include_router(validity_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
