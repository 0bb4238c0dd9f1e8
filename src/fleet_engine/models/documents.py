"""Documents, their append-only version log, and document links."""

from __future__ import annotations

from datetime import date, datetime
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


class Document(Base, TimestampMixin):
    """Immutable document metadata. Content changes go to DocumentVersion."""

    __tablename__ = "document"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    type_code: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    issuer: Mapped[str | None] = mapped_column(String)
    issue_date: Mapped[date | None] = mapped_column(Date)
    expiry_date: Mapped[date | None] = mapped_column(Date)
    hash_integrity: Mapped[str | None] = mapped_column(String)
    mime_type: Mapped[str | None] = mapped_column(String)
    notes: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint(
            "type_code IN ('bol', 'eld', 'lease_contract', 'insurance', 'inspection', "
            "'registration', 'permits', 'maintenance', 'fuel_receipt', 'invoice', "
            "'receipt', 'tax_form', 'other')",
            name="document_type_check",
        ),
    )


class DocumentVersion(Base):
    """Append-only version entry. Versions are unique per document."""

    __tablename__ = "document_version"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    document_id: Mapped[UUID] = mapped_column(
        ForeignKey("document.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    ocr_text: Mapped[str | None] = mapped_column(Text)
    ocr_confidence: Mapped[float | None] = mapped_column(Float)
    file_uri: Mapped[str | None] = mapped_column(String)
    changes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    created_by: Mapped[UUID] = mapped_column(ForeignKey("app_user.id"), nullable=False)

    __table_args__ = (
        UniqueConstraint("document_id", "version", name="document_version_unique"),
        CheckConstraint("version >= 1", name="document_version_positive"),
        CheckConstraint(
            "ocr_confidence IS NULL OR (ocr_confidence >= 0 AND ocr_confidence <= 1)",
            name="document_version_confidence_range",
        ),
    )


class DocumentLink(Base, TimestampMixin):
    """Links a document to any linkable entity by id."""

    __tablename__ = "document_link"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    entity: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    document_id: Mapped[UUID] = mapped_column(
        ForeignKey("document.id", ondelete="CASCADE"), nullable=False
    )
    relationship_type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "entity IN ('vehicle', 'trip', 'user', 'contract', 'maintenance', 'fuel_record')",
            name="document_link_entity_check",
        ),
        CheckConstraint(
            "relationship_type IN ('primary', 'supporting', 'required', 'optional', 'reference')",
            name="document_link_relationship_check",
        ),
        CheckConstraint(
            "status IN ('active', 'inactive', 'expired', 'pending')",
            name="document_link_status_check",
        ),
    )


class VehicleDocument(Base, TimestampMixin):
    """Regulatory paperwork attached to a vehicle, with its own expiry."""

    __tablename__ = "vehicle_document"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    vehicle_id: Mapped[UUID] = mapped_column(
        ForeignKey("vehicle.id", ondelete="CASCADE"), nullable=False
    )
    document_id: Mapped[UUID] = mapped_column(
        ForeignKey("document.id", ondelete="CASCADE"), nullable=False
    )
    relationship_type: Mapped[str] = mapped_column(String, nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "vehicle_id", "document_id", "relationship_type", name="vehicle_document_unique"
        ),
        CheckConstraint(
            "status IN ('valid', 'expired', 'expiring_soon', 'pending', 'suspended')",
            name="vehicle_document_status_check",
        ),
    )
