"""Configuration management for the fleet engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    host: str
    port: int
    debug: bool
    log_level: str
    expiring_soon_days: int
    compliance_upcoming_days: int
    assignment_expiring_days: int
    service_interval_days: int
    auto_create_schema: bool

    @property
    def HOST(self) -> str:
        """Alias for host."""
        return self.host

    @property
    def PORT(self) -> int:
        """Alias for port."""
        return self.port

    @property
    def DEBUG(self) -> bool:
        """Alias for debug."""
        return self.debug

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./fleet_engine.db"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            expiring_soon_days=int(os.getenv("EXPIRING_SOON_DAYS", "30")),
            compliance_upcoming_days=int(os.getenv("COMPLIANCE_UPCOMING_DAYS", "7")),
            assignment_expiring_days=int(os.getenv("ASSIGNMENT_EXPIRING_DAYS", "7")),
            service_interval_days=int(os.getenv("SERVICE_INTERVAL_DAYS", "90")),
            auto_create_schema=os.getenv("AUTO_CREATE_SCHEMA", "false").lower() == "true",
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
