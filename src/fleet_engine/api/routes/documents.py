"""Document version endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, status

from fleet_engine.api.dependencies import Core, DbSession, UserId
from fleet_engine.api.schemas import (
    DocumentVersionCreate,
    DocumentVersionResponse,
    ErrorResponse,
)

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post(
    "/{document_id}/versions",
    response_model=DocumentVersionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def record_document_version(
    db: DbSession,
    core: Core,
    actor_id: UserId,
    document_id: Annotated[UUID, Path()],
    payload: DocumentVersionCreate,
) -> DocumentVersionResponse:
    """Append a version, typically once OCR for an upload has finished."""
    version = core.record_document_version(
        document_id,
        created_by=actor_id,
        ocr_text=payload.ocr_text,
        ocr_confidence=payload.ocr_confidence,
        file_uri=payload.file_uri,
        actor_id=actor_id,
    ).unwrap()
    db.commit()
    return DocumentVersionResponse.model_validate(version)


@router.get(
    "/{document_id}/versions/latest",
    response_model=DocumentVersionResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def latest_document_version(
    core: Core,
    actor_id: UserId,
    document_id: Annotated[UUID, Path()],
) -> DocumentVersionResponse:
    version = core.latest_document_version(document_id, actor_id=actor_id).unwrap()
    if version is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document {document_id} has no versions",
        )
    return DocumentVersionResponse.model_validate(version)
