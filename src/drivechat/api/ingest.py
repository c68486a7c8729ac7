"""Ingestion trigger and progress endpoints."""
from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from drivechat.errors import IngestConfigurationError, IngestError
from drivechat.ingest.pipeline import IngestionPipeline, IngestOutcome
from drivechat.progress import ProgressTracker

from .dependencies import get_ingestion_pipeline, get_progress_tracker

LOGGER = logging.getLogger(__name__)

DEFAULT_SESSION_ID = "default-session"
CONFIG_HINT = (
    "Set GOOGLE_CLIENT_EMAIL, GOOGLE_PRIVATE_KEY, GOOGLE_DRIVE_FOLDER_ID and GEMINI_API_KEY "
    "in the server environment."
)
INGEST_HINT = (
    "Check that the service account has access to the Drive folder and that the API keys are valid."
)

router = APIRouter(tags=["ingest"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FileSummary(_CamelModel):
    id: str
    name: str
    type: str


class IngestResponse(_CamelModel):
    """Body returned by a finished (ready or empty) ingestion run."""

    status: str
    message: str
    session_id: str = Field(alias="sessionId")
    files_processed: Optional[int] = Field(default=None, alias="filesProcessed")
    files: Optional[List[FileSummary]] = None
    total_chunks: Optional[int] = Field(default=None, alias="totalChunks")
    cached: Optional[bool] = None


class ProgressRequest(_CamelModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ProgressResponse(_CamelModel):
    current_step: int = Field(alias="currentStep")
    total_steps: int = Field(alias="totalSteps")
    status: str
    current_file: str = Field(alias="currentFile")
    files_processed: int = Field(alias="filesProcessed")
    total_files: int = Field(alias="totalFiles")
    percentage: int
    state: str


def _to_response(outcome: IngestOutcome) -> IngestResponse:
    if outcome.status != "ready":
        return IngestResponse(status=outcome.status, message=outcome.message, session_id=outcome.session_id)
    return IngestResponse(
        status=outcome.status,
        message=outcome.message,
        session_id=outcome.session_id,
        files_processed=outcome.files_processed,
        files=[FileSummary(id=item.id, name=item.name, type=item.mime_type) for item in outcome.files],
        total_chunks=outcome.total_chunks,
        cached=outcome.cached,
    )


@router.get(
    "/ingest",
    response_model=IngestResponse,
    response_model_exclude_none=True,
    response_model_by_alias=True,
)
async def ingest_documents(
    session_id: str = Query(DEFAULT_SESSION_ID, alias="sessionId"),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    """Ingest the configured Drive folder for the session (no-op when already indexed)."""

    try:
        outcome = await pipeline.run(session_id)
    except IngestConfigurationError as exc:
        LOGGER.error("Ingestion for session %s refused: %s", session_id, exc)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Missing required environment variables (Google Drive credentials, folder ID, or Gemini API key).",
                "hint": CONFIG_HINT,
                "missing": exc.missing,
            },
        )
    except IngestError as exc:
        tracking_id = uuid.uuid4().hex
        LOGGER.error("Ingestion for session %s failed (tracking id %s): %s", session_id, tracking_id, exc)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Failed to ingest documents from Google Drive.",
                "details": str(exc),
                "code": exc.code if isinstance(exc.code, (int, str)) else None,
                "hint": INGEST_HINT,
                "trackingId": tracking_id,
            },
        )
    return _to_response(outcome)


@router.post("/ingest", response_model=ProgressResponse, response_model_by_alias=True)
def read_ingest_progress(
    request: ProgressRequest,
    tracker: ProgressTracker = Depends(get_progress_tracker),
) -> ProgressResponse:
    """Return the recorded progress for a session, 404 when there is none."""

    if not request.session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")
    if not tracker.has(request.session_id):
        raise HTTPException(status_code=404, detail="Progress not found for session")
    return ProgressResponse.model_validate(tracker.get(request.session_id).to_dict())


@router.get("/progress", response_model=ProgressResponse, response_model_by_alias=True)
def read_progress(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    tracker: ProgressTracker = Depends(get_progress_tracker),
) -> ProgressResponse:
    """Return the progress of a session, or a zeroed record when none exists."""

    if not session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")
    return ProgressResponse.model_validate(tracker.get(session_id).to_dict())
