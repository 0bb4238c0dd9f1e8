"""API routes."""

from fleet_engine.api.routes.accounting import router as accounting_router
from fleet_engine.api.routes.authorization import router as authorization_router
from fleet_engine.api.routes.documents import router as documents_router
from fleet_engine.api.routes.health import router as health_router
from fleet_engine.api.routes.trips import router as trips_router
from fleet_engine.api.routes.validity import router as validity_router

__all__ = [
    "accounting_router",
    "authorization_router",
    "documents_router",
    "health_router",
    "trips_router",
    "validity_router",
]
