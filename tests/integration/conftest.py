"""Integration fixtures: the HTTP app and the CLI bound to the test database."""

from collections.abc import Generator
from contextlib import contextmanager
from io import StringIO

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from fleet_engine.api.app import create_app
from fleet_engine.api.dependencies import get_clock, get_db_session
from fleet_engine.cli import FleetCli
from fleet_engine.runtime import FixedClock


@pytest.fixture
def client(session: Session, clock: FixedClock, catalog: dict[str, int]) -> Generator[TestClient, None, None]:
    """HTTP client whose requests share the test session and clock."""
    app = create_app(init_database=False)

    def _session() -> Generator[Session, None, None]:
        yield session

    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def cli_out() -> StringIO:
    return StringIO()


@pytest.fixture
def cli(session: Session, cli_out: StringIO) -> FleetCli:
    @contextmanager
    def scope() -> Generator[Session, None, None]:
        yield session
        session.flush()

    return FleetCli(scope=scope, out=cli_out, create_schema_fn=lambda: None)
