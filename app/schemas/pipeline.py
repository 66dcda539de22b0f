"""Pydantic models for pipeline options, stage outputs and progress."""

from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.constants import (
    ContentClassification,
    ExtractionMode,
    PipelineStage,
    StageStatus,
)


def clamp_confidence(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(1.0, max(0.0, number))


class TokenUsage(BaseModel):
    """Token counts reported by the content analysis provider."""

    input_tokens: int = Field(default=0, description="Prompt tokens")
    output_tokens: int = Field(default=0, description="Completion tokens")

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


class StageProgress(BaseModel):
    """Last reported progress snapshot for a job."""

    stage: PipelineStage = Field(..., description="Stage that emitted the report")
    status: StageStatus = Field(..., description="pending, running, complete or error")
    percent: int = Field(default=0, ge=0, le=100, description="Completion within the stage")
    message: str = Field(default="", description="Human readable progress message")
    details: dict[str, Any] = Field(default_factory=dict, description="Structured details such as counts")


class ExtractionOptions(BaseModel):
    """Per-run extraction configuration, stored on the job."""

    mode: ExtractionMode = Field(default=ExtractionMode.STANDARD, description="Extraction mode")
    models: list[str] = Field(default_factory=list, description="Providers used in multi-model mode")
    second_pass_enabled: bool = Field(default=False, description="Run the corrective pass")

    @model_validator(mode="after")
    def check_mode_requirements(self) -> "ExtractionOptions":
        if self.mode == ExtractionMode.MULTI_MODEL and not self.models:
            raise ValueError("models must be non-empty for multi-model extraction")
        if self.mode == ExtractionMode.TWO_PASS:
            self.second_pass_enabled = True
        return self


class ClassificationResult(BaseModel):
    """Coarse content type of the artifact."""

    type: ContentClassification = Field(default=ContentClassification.UNKNOWN)
    confidence: float = Field(default=0.0, description="Clamped to [0, 1]")
    key_indicators: list[str] = Field(default_factory=list)
    missing_questions: list[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, value: Any) -> ContentClassification:
        try:
            return ContentClassification(str(value).upper())
        except ValueError:
            return ContentClassification.UNKNOWN

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp(cls, value: Any) -> float:
        return clamp_confidence(value, default=0.0)


class ExtractedEntity(BaseModel):
    """One fact proposed by an extraction stage, before it is persisted."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    category: str = Field(default="")
    type: str
    content: str
    confidence: float = Field(default=0.8)
    source_quote: Optional[str] = None
    source_speaker: Optional[str] = None
    source_timestamp: Optional[int] = None
    structured_data: Optional[dict[str, Any]] = None
    found_by: list[str] = Field(default_factory=list, description="Providers that reported this entity")

    @field_validator("id", mode="before")
    @classmethod
    def ensure_id(cls, value: Any) -> str:
        return str(value) if value else uuid4().hex

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp(cls, value: Any) -> float:
        # Providers that omit confidence get the same default the prompts describe
        return clamp_confidence(value, default=0.8)

    @field_validator("source_timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    @field_validator("category", "type", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)


class GeneralExtractionResult(BaseModel):
    entities: list[ExtractedEntity] = Field(default_factory=list)
    summary: dict[str, Any] = Field(default_factory=dict)
    details: dict[str, Any] = Field(default_factory=dict, description="Mode-specific diagnostics")


class ChecklistResult(BaseModel):
    questions_asked: list[str] = Field(default_factory=list)
    questions_missing: list[str] = Field(default_factory=list)
    coverage_score: float = Field(default=0.0)

    @field_validator("coverage_score", mode="before")
    @classmethod
    def clamp(cls, value: Any) -> float:
        return clamp_confidence(value, default=0.0)


class SpecializedExtractionResult(BaseModel):
    items: list[ExtractedEntity] = Field(default_factory=list)
    checklist: ChecklistResult = Field(default_factory=ChecklistResult)


class PopulationResult(BaseModel):
    """What tab population wrote for the job."""

    session_id: Optional[str] = None
    extracted_items: int = 0
    integrations: int = 0
    business_rules: int = 0
    test_cases: int = 0
    warnings: list[str] = Field(default_factory=list)
    profile_sections: dict[str, list[str]] = Field(default_factory=dict)
