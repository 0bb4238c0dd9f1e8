"""HTTP surface for the fleet engine."""

from fleet_engine.api.app import create_app

__all__ = ["create_app"]
