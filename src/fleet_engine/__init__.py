"""Fleet engine: authorization, lifecycle and accounting core for fleet operations."""

from fleet_engine.core import CoreConfig, FleetCore, OperationResult

__version__ = "0.1.0"

__all__ = ["CoreConfig", "FleetCore", "OperationResult", "__version__"]
