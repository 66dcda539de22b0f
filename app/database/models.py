"""SQLAlchemy models for all database tables."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.constants import ProcessingStatus, ReviewStatus, UploadJobStatus, PipelineStage
from app.core.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DesignWeek(Base):
    """Engagement that uploads and sessions belong to."""

    __tablename__ = "design_weeks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    current_phase: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    business_profile: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="Business profile sections populated from extracted items"
    )
    technical_profile: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="Technical profile sections populated from extracted items"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    sessions: Mapped[list["DesignSession"]] = relationship(
        "DesignSession", back_populates="design_week", cascade="all, delete-orphan"
    )
    upload_jobs: Mapped[list["UploadJob"]] = relationship(
        "UploadJob", back_populates="design_week", cascade="all, delete-orphan"
    )


class DesignSession(Base):
    """A working session within an engagement; extracted items hang off it."""

    __tablename__ = "sessions"
    __table_args__ = (
        UniqueConstraint("design_week_id", "session_number", name="uq_session_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    design_week_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("design_weeks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_number: Mapped[int] = mapped_column(Integer, nullable=False)
    phase: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    processing_status: Mapped[str] = mapped_column(
        String, nullable=False, default=ProcessingStatus.PENDING.value
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    design_week: Mapped["DesignWeek"] = relationship("DesignWeek", back_populates="sessions")
    extracted_items: Mapped[list["ExtractedItem"]] = relationship(
        "ExtractedItem", back_populates="session", cascade="all, delete-orphan"
    )


class UploadJob(Base):
    """One submitted artifact and its pipeline lifecycle."""

    __tablename__ = "upload_jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    design_week_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("design_weeks.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Artifact
    filename: Mapped[str] = mapped_column(String, nullable=False)
    mime_type: Mapped[str] = mapped_column(String, nullable=False)
    file_url: Mapped[str] = mapped_column(String, nullable=False, comment="Storage path")
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=UploadJobStatus.QUEUED.value, index=True
    )
    current_stage: Mapped[str] = mapped_column(
        String, nullable=False, default=PipelineStage.CLASSIFICATION.value
    )
    stage_progress: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Options for this run
    extraction_mode: Mapped[str] = mapped_column(String, nullable=False, default="standard")
    extraction_models: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    # Stage outputs
    classification_result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    raw_extraction_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    population_result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    session_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    retried_from_job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("upload_jobs.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    design_week: Mapped["DesignWeek"] = relationship("DesignWeek", back_populates="upload_jobs")


class RawExtraction(Base):
    """Unprocessed general extraction output kept for audit and reprocessing."""

    __tablename__ = "raw_extractions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    design_week_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("design_weeks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    upload_job_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    content_type: Mapped[str] = mapped_column(String, nullable=False)
    source_file_name: Mapped[str] = mapped_column(String, nullable=False)
    source_mime_type: Mapped[str] = mapped_column(String, nullable=False)
    raw_json: Mapped[dict] = mapped_column(JSONType, nullable=False)
    extraction_metadata: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ExtractedItem(Base):
    """One structured fact discovered during extraction."""

    __tablename__ = "extracted_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    structured_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=ReviewStatus.PENDING.value,
        comment="Derived from confidence at creation, then owned by reviewers",
    )
    source_quote: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_speaker: Mapped[str | None] = mapped_column(String, nullable=True)
    source_timestamp: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    session: Mapped["DesignSession"] = relationship("DesignSession", back_populates="extracted_items")


class LLMOperation(Base):
    """Append-only audit row for one content analysis call."""

    __tablename__ = "llm_operations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    pipeline_name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    model: Mapped[str] = mapped_column(String, nullable=False)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    latency_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    operation_metadata: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
