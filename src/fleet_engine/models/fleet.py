"""Vehicles, trips, stops, assignments, maintenance and trip costs."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from fleet_engine.models.base import Base, TimestampMixin, UTCDateTime, utcnow


class Vehicle(Base, TimestampMixin):
    """Tractor unit."""

    __tablename__ = "vehicle"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    unit_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    vin: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    make: Mapped[str | None] = mapped_column(String)
    model: Mapped[str | None] = mapped_column(String)
    year: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    current_mileage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_service_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'in_transit', 'in_maintenance', 'out_of_service', 'at_yard')",
            name="vehicle_status_check",
        ),
    )


class Trip(Base, TimestampMixin):
    """A load moved by one driver in one vehicle."""

    __tablename__ = "trip"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    vehicle_id: Mapped[UUID] = mapped_column(ForeignKey("vehicle.id"), nullable=False)
    driver_user_id: Mapped[UUID] = mapped_column(ForeignKey("app_user.id"), nullable=False)
    external_ref: Mapped[str | None] = mapped_column(String)
    planned_start_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    actual_start_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    end_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    origin_city: Mapped[str | None] = mapped_column(String)
    origin_state: Mapped[str | None] = mapped_column(String)
    dest_city: Mapped[str | None] = mapped_column(String)
    dest_state: Mapped[str | None] = mapped_column(String)
    distance_miles: Mapped[float | None] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String, nullable=False, default="planned")
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('planned', 'loaded', 'in_transit', 'delivered', 'completed', 'cancelled')",
            name="trip_status_check",
        ),
    )


class TripStop(Base, TimestampMixin):
    """Ordered stop within a trip. Completed once ``timestamp`` is set."""

    __tablename__ = "trip_stop"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    trip_id: Mapped[UUID] = mapped_column(
        ForeignKey("trip.id", ondelete="CASCADE"), nullable=False
    )
    stop_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    stop_type: Mapped[str] = mapped_column(String, nullable=False)
    city: Mapped[str | None] = mapped_column(String)
    state: Mapped[str | None] = mapped_column(String)
    timestamp: Mapped[datetime | None] = mapped_column(UTCDateTime())
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    notes: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("trip_id", "stop_sequence", name="trip_stop_sequence_unique"),
        CheckConstraint(
            "stop_type IN ('pickup', 'drop', 'fuel', 'rest', 'inspection', 'breakdown')",
            name="trip_stop_type_check",
        ),
    )

    @property
    def is_completed(self) -> bool:
        return self.timestamp is not None


class TripMetrics(Base, TimestampMixin):
    """Fuel and mileage reconciliation for a trip. At most one per trip."""

    __tablename__ = "trip_metrics"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    trip_id: Mapped[UUID] = mapped_column(
        ForeignKey("trip.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    total_miles: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    drive_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    idle_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fuel_volume_gal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    fuel_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    mpg: Mapped[float | None] = mapped_column(Float)


class Assignment(Base, TimestampMixin):
    """Driver assigned to a vehicle, optionally under a lease contract."""

    __tablename__ = "assignment"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    vehicle_id: Mapped[UUID] = mapped_column(ForeignKey("vehicle.id"), nullable=False)
    contract_id: Mapped[UUID | None] = mapped_column(ForeignKey("lease_contract.id"))
    driver_user_id: Mapped[UUID] = mapped_column(ForeignKey("app_user.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    notes: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'active', 'suspended', 'completed', 'cancelled')",
            name="assignment_status_check",
        ),
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date", name="assignment_dates_check"
        ),
    )


class MaintenanceRecord(Base, TimestampMixin):
    """Scheduled or performed service on a vehicle."""

    __tablename__ = "maintenance_record"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    vehicle_id: Mapped[UUID] = mapped_column(ForeignKey("vehicle.id"), nullable=False)
    scheduled_for: Mapped[date] = mapped_column(Date, nullable=False)
    odometer: Mapped[float | None] = mapped_column(Float)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    vendor: Mapped[str | None] = mapped_column(String)
    maintenance_type: Mapped[str] = mapped_column(String, nullable=False, default="preventive")
    status: Mapped[str] = mapped_column(String, nullable=False, default="scheduled")
    created_by: Mapped[UUID | None] = mapped_column(ForeignKey("app_user.id"))
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    __table_args__ = (
        CheckConstraint(
            "maintenance_type IN ('preventive', 'corrective', 'emergency', 'warranty', 'inspection')",
            name="maintenance_type_check",
        ),
        CheckConstraint(
            "status IN ('scheduled', 'in_progress', 'completed', 'cancelled')",
            name="maintenance_status_check",
        ),
    )


class FuelRecord(Base, TimestampMixin):
    """Fuel purchase for a vehicle, optionally tied to a trip."""

    __tablename__ = "fuel_record"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    vehicle_id: Mapped[UUID] = mapped_column(ForeignKey("vehicle.id"), nullable=False)
    trip_id: Mapped[UUID | None] = mapped_column(ForeignKey("trip.id"))
    purchased_on: Mapped[date] = mapped_column(Date, nullable=False)
    station: Mapped[str | None] = mapped_column(String)
    city: Mapped[str | None] = mapped_column(String)
    state: Mapped[str | None] = mapped_column(String)
    gallons: Mapped[float] = mapped_column(Float, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column()


class Deduction(Base, TimestampMixin):
    """Charge withheld from a trip's pay."""

    __tablename__ = "deduction"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    trip_id: Mapped[UUID] = mapped_column(ForeignKey("trip.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    incurred_on: Mapped[date] = mapped_column(Date, nullable=False)


class Advance(Base, TimestampMixin):
    """Cash advanced against a trip, recovered at settlement."""

    __tablename__ = "advance"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    trip_id: Mapped[UUID] = mapped_column(ForeignKey("trip.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    advanced_on: Mapped[date] = mapped_column(Date, nullable=False)
