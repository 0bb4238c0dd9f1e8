"""Pytest fixtures for fleet engine tests."""

from __future__ import annotations

import itertools
from collections.abc import Callable, Generator
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fleet_engine.core import FleetCore
from fleet_engine.events import EventEmitter, RecordingHandler
from fleet_engine.models import (
    Base,
    EscrowAccount,
    LeaseContract,
    Permission,
    Role,
    Trip,
    User,
    UserRole,
    Vehicle,
)
from fleet_engine.runtime import FixedClock
from fleet_engine.services.catalog import seed_catalog
from fleet_engine.services.documents import DocumentService
from fleet_engine.services.escrow import EscrowService
from fleet_engine.services.fleet import FleetService
from fleet_engine.services.trip_service import TripService

# Every test starts at the same instant
START = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
TODAY = START.date()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """In-memory SQLite database, one per test."""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, class_=Session, expire_on_commit=False, autoflush=False)


@pytest.fixture
def session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Create a database session for each test."""
    with session_factory() as session:
        yield session
        session.rollback()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def catalog(session: Session) -> dict[str, int]:
    """Seed roles, permissions and the default grants."""
    return seed_catalog(session)


@pytest.fixture
def roles(session: Session, catalog: dict[str, int]) -> dict[str, Role]:
    return {r.code: r for r in session.scalars(select(Role))}


@pytest.fixture
def permissions(session: Session, catalog: dict[str, int]) -> dict[str, Permission]:
    return {p.code: p for p in session.scalars(select(Permission))}


@pytest.fixture
def make_user(session: Session, roles: dict[str, Role]) -> Callable[..., User]:
    """Factory for users holding the given role codes."""
    counter = itertools.count(1)

    def _make(*role_codes: str, status: str = "active") -> User:
        n = next(counter)
        user = User(
            username=f"user{n}",
            email=f"user{n}@fleet.test",
            password_hash="not-a-real-hash",
            status=status,
            created_at=START,
            updated_at=START,
        )
        session.add(user)
        session.flush()
        for code in role_codes:
            session.add(UserRole(user_id=user.id, role_id=roles[code].id, assigned_at=START))
        session.flush()
        return user

    return _make


@pytest.fixture
def driver(make_user: Callable[..., User]) -> User:
    return make_user("driver")


@pytest.fixture
def dispatcher(make_user: Callable[..., User]) -> User:
    return make_user("dispatcher")


@pytest.fixture
def manager(make_user: Callable[..., User]) -> User:
    return make_user("manager")


@pytest.fixture
def admin(make_user: Callable[..., User]) -> User:
    return make_user("admin")


@pytest.fixture
def fleet(session: Session, clock: FixedClock) -> FleetService:
    return FleetService(session, clock)


@pytest.fixture
def trips(session: Session, clock: FixedClock) -> TripService:
    return TripService(session, clock)


@pytest.fixture
def documents(session: Session, clock: FixedClock) -> DocumentService:
    return DocumentService(session, clock)


@pytest.fixture
def escrow(session: Session, clock: FixedClock) -> EscrowService:
    return EscrowService(session, clock)


@pytest.fixture
def vehicle(fleet: FleetService) -> Vehicle:
    return fleet.register_vehicle("T-100", "1FUJGLDR0CLBP8834", make="Freightliner", year=2021)


@pytest.fixture
def trip(trips: TripService, vehicle: Vehicle, driver: User) -> Trip:
    return trips.create_trip(
        vehicle.id,
        driver.id,
        START + timedelta(hours=2),
        origin_city="Dallas",
        origin_state="TX",
        dest_city="Memphis",
        dest_state="TN",
        distance_miles=452.0,
    )


@pytest.fixture
def walk_trip(trips: TripService, clock: FixedClock) -> Callable[[Trip, str], Trip]:
    """Drive a trip forward to ``target``, satisfying every guard on the way."""
    path = ["planned", "loaded", "in_transit", "delivered", "completed"]

    def _walk(trip: Trip, target: str) -> Trip:
        for status in path[path.index(trip.status) + 1 : path.index(target) + 1]:
            if status == "loaded" and not trips.stops(trip.id):
                trips.add_stop(trip.id, "pickup", city=trip.origin_city)
            if status == "delivered":
                drop = trips.add_stop(trip.id, "drop", city=trip.dest_city)
                trips.complete_stop(drop.id)
            if status == "completed" and trips.metrics(trip.id) is None:
                trips.record_metrics(trip.id, 452.0, fuel_volume_gal=70.0, fuel_cost=Decimal("245.00"))
            clock.advance(timedelta(hours=1))
            trip = trips.transition(trip.id, status).trip
        return trip

    return _walk


@pytest.fixture
def contract(session: Session, vehicle: Vehicle) -> LeaseContract:
    contract = LeaseContract(
        lessor_name="Lone Star Leasing",
        lessee_name="R. Alvarez Trucking",
        vehicle_id=vehicle.id,
        start_date=date(2024, 7, 1),
        end_date=date(2025, 6, 30),
        status="active",
        created_at=START,
        updated_at=START,
    )
    session.add(contract)
    session.flush()
    return contract


@pytest.fixture
def escrow_account(escrow: EscrowService, contract: LeaseContract) -> EscrowAccount:
    return escrow.open_account(contract.id)


@pytest.fixture
def recorder() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def emitter(recorder: RecordingHandler) -> EventEmitter:
    emitter = EventEmitter()
    emitter.on_all(recorder)
    return emitter


@pytest.fixture
def core(
    session: Session, clock: FixedClock, emitter: EventEmitter, catalog: dict[str, int]
) -> FleetCore:
    return FleetCore(session, clock=clock, event_emitter=emitter)
