"""Document versions, OCR state, document links and vehicle paperwork.

Version numbers are assigned here and nowhere else: the next version is
``max(version) + 1`` for the document. The unique constraint on
``(document_id, version)`` rejects a concurrent writer that computed the
same number.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fleet_engine.errors import InvalidTransition, parse_choice
from fleet_engine.models import Document, DocumentLink, DocumentVersion, User, Vehicle, VehicleDocument
from fleet_engine.runtime import Clock, IdFactory, SystemClock, default_id_factory
from fleet_engine.services.state_machine import DocumentLinkStateMachine, LinkStatus, status_value
from fleet_engine.services.validity import ValidityEngine
from fleet_engine.store import EntityStore

logger = logging.getLogger(__name__)


class DocumentType(str, Enum):
    BOL = "bol"
    ELD = "eld"
    LEASE_CONTRACT = "lease_contract"
    INSURANCE = "insurance"
    INSPECTION = "inspection"
    REGISTRATION = "registration"
    PERMITS = "permits"
    MAINTENANCE = "maintenance"
    FUEL_RECEIPT = "fuel_receipt"
    INVOICE = "invoice"
    RECEIPT = "receipt"
    TAX_FORM = "tax_form"
    OTHER = "other"

    @property
    def requires_ocr(self) -> bool:
        return self in _OCR_TYPES


_OCR_TYPES = frozenset({
    DocumentType.BOL,
    DocumentType.ELD,
    DocumentType.FUEL_RECEIPT,
    DocumentType.INVOICE,
    DocumentType.RECEIPT,
})


class OCRQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNKNOWN = "unknown"


def ocr_quality(confidence: float | None) -> OCRQuality:
    if confidence is None:
        return OCRQuality.UNKNOWN
    if confidence >= 0.9:
        return OCRQuality.EXCELLENT
    if confidence >= 0.7:
        return OCRQuality.GOOD
    if confidence >= 0.5:
        return OCRQuality.FAIR
    if confidence >= 0.3:
        return OCRQuality.POOR
    return OCRQuality.UNKNOWN


class LinkEntity(str, Enum):
    VEHICLE = "vehicle"
    TRIP = "trip"
    USER = "user"
    CONTRACT = "contract"
    MAINTENANCE = "maintenance"
    FUEL_RECORD = "fuel_record"


class RelationshipType(str, Enum):
    PRIMARY = "primary"
    SUPPORTING = "supporting"
    REQUIRED = "required"
    OPTIONAL = "optional"
    REFERENCE = "reference"


@dataclass(frozen=True)
class LinkChange:
    link: DocumentLink
    from_status: str | None
    to_status: str


class DocumentService:
    """Document metadata, the append-only version log, and links."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        new_id: IdFactory = default_id_factory,
        validity: ValidityEngine | None = None,
    ):
        self.session = session
        self.store = EntityStore(session)
        self.clock = clock or SystemClock()
        self.new_id = new_id
        self.validity = validity or ValidityEngine()

    def create_document(
        self,
        type_code: str,
        title: str,
        issuer: str | None = None,
        issue_date: date | None = None,
        expiry_date: date | None = None,
        hash_integrity: str | None = None,
        mime_type: str | None = None,
    ) -> Document:
        return self.store.add(
            Document(
                id=self.new_id(),
                type_code=parse_choice(DocumentType, type_code, "type_code").value,
                title=title,
                issuer=issuer,
                issue_date=issue_date,
                expiry_date=expiry_date,
                hash_integrity=hash_integrity,
                mime_type=mime_type,
                created_at=self.clock.now(),
            )
        )

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def record_version(
        self,
        document_id: UUID,
        created_by: UUID,
        ocr_text: str | None = None,
        ocr_confidence: float | None = None,
        file_uri: str | None = None,
        changes: str | None = None,
    ) -> DocumentVersion:
        """Append the next version of a document.

        Raises:
            NotFound: document or author does not exist
            ValueError: OCR confidence outside [0, 1]
        """
        self.store.require(Document, document_id)
        self.store.require(User, created_by)
        if ocr_confidence is not None and not 0.0 <= ocr_confidence <= 1.0:
            raise ValueError("ocr_confidence must be between 0 and 1")

        current = self.session.scalar(
            select(func.max(DocumentVersion.version)).where(
                DocumentVersion.document_id == document_id
            )
        )
        version = self.store.add(
            DocumentVersion(
                id=self.new_id(),
                document_id=document_id,
                version=(current or 0) + 1,
                ocr_text=ocr_text,
                ocr_confidence=ocr_confidence,
                file_uri=file_uri,
                changes=changes,
                created_at=self.clock.now(),
                created_by=created_by,
            )
        )
        logger.info("Recorded version %d of document %s", version.version, document_id)
        return version

    def versions(self, document_id: UUID) -> list[DocumentVersion]:
        return self.store.find(
            DocumentVersion,
            DocumentVersion.document_id == document_id,
            order_by=DocumentVersion.version,
        )

    def latest_version(self, document_id: UUID) -> DocumentVersion | None:
        return self.session.scalars(
            select(DocumentVersion)
            .where(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.version.desc())
            .limit(1)
        ).first()

    def latest_ocr_version(self, document_id: UUID) -> DocumentVersion | None:
        """Highest version that carries OCR text."""
        return self.session.scalars(
            select(DocumentVersion)
            .where(
                DocumentVersion.document_id == document_id,
                DocumentVersion.ocr_text.is_not(None),
            )
            .order_by(DocumentVersion.version.desc())
            .limit(1)
        ).first()

    def has_valid_ocr(self, document_id: UUID) -> bool:
        return self.latest_ocr_version(document_id) is not None

    def needs_ocr(self, document_id: UUID) -> bool:
        """True for OCR-bearing document types that have no OCR text yet."""
        document = self.store.require(Document, document_id)
        return DocumentType(document.type_code).requires_ocr and not self.has_valid_ocr(document_id)

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def link_document(
        self,
        document_id: UUID,
        entity: str,
        entity_id: UUID,
        relationship_type: str = RelationshipType.PRIMARY.value,
        activate: bool = True,
    ) -> LinkChange:
        """Link a document to an entity.

        Re-linking the same (document, entity, relationship) reuses the
        existing row and reactivates it when allowed.
        """
        self.store.require(Document, document_id)
        entity = parse_choice(LinkEntity, entity, "entity").value
        relationship_type = parse_choice(RelationshipType, relationship_type, "relationship_type").value

        existing = self.store.find_one(
            DocumentLink,
            DocumentLink.document_id == document_id,
            DocumentLink.entity == entity,
            DocumentLink.entity_id == entity_id,
            DocumentLink.relationship_type == relationship_type,
        )
        if existing is not None:
            if activate and existing.status != LinkStatus.ACTIVE:
                return self.transition_link(existing.id, LinkStatus.ACTIVE)
            return LinkChange(existing, existing.status, existing.status)

        now = self.clock.now()
        status = LinkStatus.ACTIVE if activate else LinkStatus.PENDING
        link = self.store.add(
            DocumentLink(
                id=self.new_id(),
                document_id=document_id,
                entity=entity,
                entity_id=entity_id,
                relationship_type=relationship_type,
                status=status.value,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Linked document %s to %s %s", document_id, entity, entity_id)
        return LinkChange(link, None, link.status)

    def transition_link(self, link_id: UUID, to_status: str) -> LinkChange:
        link = self.store.require(DocumentLink, link_id)
        from_status = link.status
        target = status_value(to_status)
        DocumentLinkStateMachine.validate_transition(from_status, target)
        if not self.store.compare_and_set(
            DocumentLink, link_id, from_status, {"status": target, "updated_at": self.clock.now()}
        ):
            raise InvalidTransition(
                "document_link", link.status, target, f"status changed concurrently from '{from_status}'"
            )
        return LinkChange(link, from_status, link.status)

    def unlink_document(self, link_id: UUID) -> LinkChange:
        """Deactivate a link. The row is kept; unlinking twice is a no-op."""
        link = self.store.require(DocumentLink, link_id)
        if link.status == LinkStatus.INACTIVE:
            return LinkChange(link, link.status, link.status)
        return self.transition_link(link_id, LinkStatus.INACTIVE)

    def links_for(self, entity: str, entity_id: UUID, active_only: bool = True) -> list[DocumentLink]:
        criteria = [
            DocumentLink.entity == parse_choice(LinkEntity, entity, "entity").value,
            DocumentLink.entity_id == entity_id,
        ]
        if active_only:
            criteria.append(DocumentLink.status == LinkStatus.ACTIVE.value)
        return self.store.find(DocumentLink, *criteria, order_by=DocumentLink.created_at)

    # ------------------------------------------------------------------
    # Vehicle paperwork
    # ------------------------------------------------------------------

    def attach_to_vehicle(
        self,
        vehicle_id: UUID,
        document_id: UUID,
        relationship_type: str,
        expiry_date: date | None = None,
    ) -> VehicleDocument:
        self.store.require(Vehicle, vehicle_id)
        document = self.store.require(Document, document_id)
        expiry = expiry_date or document.expiry_date
        now = self.clock.now()
        return self.store.add(
            VehicleDocument(
                id=self.new_id(),
                vehicle_id=vehicle_id,
                document_id=document_id,
                relationship_type=relationship_type,
                expiry_date=expiry,
                status=self.validity.vehicle_document_status(expiry, now),
                created_at=now,
                updated_at=now,
            )
        )

    def refresh_vehicle_documents(
        self, vehicle_id: UUID, as_of: datetime | None = None
    ) -> list[VehicleDocument]:
        """Recompute derived statuses. Suspended and pending rows are left alone.

        Returns the rows whose status changed.
        """
        as_of = as_of or self.clock.now()
        changed = []
        for row in self.store.find(VehicleDocument, VehicleDocument.vehicle_id == vehicle_id):
            if row.status == "suspended" or (row.status == "pending" and row.expiry_date is None):
                continue
            status = self.validity.vehicle_document_status(row.expiry_date, as_of)
            if status != row.status:
                row.status = status
                row.updated_at = as_of
                changed.append(row)
        self.session.flush()
        return changed

