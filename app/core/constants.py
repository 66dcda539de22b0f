"""Shared enums and fixed constants for the ingestion pipeline."""

from enum import Enum

# Items at or above this confidence are created APPROVED; everything else waits
# for human review.
AUTO_APPROVE_CONFIDENCE = 0.8

MAX_ERROR_MESSAGE_LENGTH = 200

MAX_TRANSCRIPT_LENGTH = 500_000


class UploadJobStatus(str, Enum):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadJobStatus.COMPLETE, UploadJobStatus.FAILED)


TERMINAL_JOB_STATUSES = (UploadJobStatus.COMPLETE.value, UploadJobStatus.FAILED.value)


class PipelineStage(str, Enum):
    CLASSIFICATION = "CLASSIFICATION"
    GENERAL_EXTRACTION = "GENERAL_EXTRACTION"
    SPECIALIZED_EXTRACTION = "SPECIALIZED_EXTRACTION"
    TAB_POPULATION = "TAB_POPULATION"
    COMPLETE = "COMPLETE"

    @property
    def order(self) -> int:
        return STAGE_ORDER.index(self)


STAGE_ORDER = [
    PipelineStage.CLASSIFICATION,
    PipelineStage.GENERAL_EXTRACTION,
    PipelineStage.SPECIALIZED_EXTRACTION,
    PipelineStage.TAB_POPULATION,
    PipelineStage.COMPLETE,
]


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    NEEDS_CLARIFICATION = "NEEDS_CLARIFICATION"
    REJECTED = "REJECTED"


class ProcessingStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


class ExtractionMode(str, Enum):
    STANDARD = "standard"
    MULTI_MODEL = "multi-model"
    TWO_PASS = "two-pass"


class ContentClassification(str, Enum):
    KICKOFF_SESSION = "KICKOFF_SESSION"
    PROCESS_DESIGN_SESSION = "PROCESS_DESIGN_SESSION"
    SKILLS_GUARDRAILS_SESSION = "SKILLS_GUARDRAILS_SESSION"
    TECHNICAL_SESSION = "TECHNICAL_SESSION"
    SIGNOFF_SESSION = "SIGNOFF_SESSION"
    REQUIREMENTS_DOCUMENT = "REQUIREMENTS_DOCUMENT"
    TECHNICAL_SPEC = "TECHNICAL_SPEC"
    PROCESS_DOCUMENT = "PROCESS_DOCUMENT"
    UNKNOWN = "UNKNOWN"


# Engagement phase a freshly created session lands in, by classification.
CLASSIFICATION_PHASES = {
    ContentClassification.KICKOFF_SESSION: 1,
    ContentClassification.PROCESS_DESIGN_SESSION: 2,
    ContentClassification.SKILLS_GUARDRAILS_SESSION: 3,
    ContentClassification.TECHNICAL_SESSION: 4,
    ContentClassification.SIGNOFF_SESSION: 6,
}
DEFAULT_SESSION_PHASE = 2


class TranscriptSessionType(str, Enum):
    KICKOFF = "kickoff"
    PROCESS = "process"
    TECHNICAL = "technical"
    SIGNOFF = "signoff"
    PERSONA = "persona"
