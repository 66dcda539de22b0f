"""Request and response models for the upload and session endpoints."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.constants import MAX_TRANSCRIPT_LENGTH, TranscriptSessionType
from app.schemas.pipeline import TokenUsage


class StartUploadResponse(BaseModel):
    job_id: UUID = Field(..., description="Id of the queued job")
    status: str = Field(..., description="Always QUEUED on success")


class UploadJobSnapshot(BaseModel):
    """Pollable view of an upload job."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    design_week_id: UUID
    filename: str
    mime_type: str
    file_size: int
    status: str = Field(..., description="QUEUED, PROCESSING, COMPLETE or FAILED")
    current_stage: str = Field(..., description="Stage the job is in")
    stage_progress: Optional[dict[str, Any]] = Field(default=None, description="Last progress report")
    error: Optional[str] = Field(default=None, description="Failure message when FAILED")
    extraction_mode: str
    classification_result: Optional[dict[str, Any]] = None
    raw_extraction_id: Optional[UUID] = None
    population_result: Optional[dict[str, Any]] = None
    session_id: Optional[UUID] = None
    retried_from_job_id: Optional[UUID] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class CancelResponse(BaseModel):
    message: str
    status: str


class TranscriptExtractRequest(BaseModel):
    transcript: str = Field(..., min_length=1, max_length=MAX_TRANSCRIPT_LENGTH)
    session_type: TranscriptSessionType = Field(..., description="Kind of session the transcript records")


class ExtractedItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    type: str
    category: Optional[str] = None
    content: str
    structured_data: Optional[dict[str, Any]] = None
    confidence: float
    status: str
    source_quote: Optional[str] = None
    source_speaker: Optional[str] = None
    source_timestamp: Optional[int] = None


class ExtractionUsage(TokenUsage):
    latency_ms: int = Field(default=0, description="Provider latency")


class TranscriptExtractResponse(BaseModel):
    item_count: int
    items: list[ExtractedItemResponse]
    usage: ExtractionUsage
    warnings: list[str] = Field(default_factory=list)
