"""Base stage interface for all pipeline stages."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, Type, TypeVar
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from app.core.analysis_client import (
    AnalysisClientRegistry,
    AnalysisOptions,
    AnalysisResult,
    Content,
    ContentAnalysisService,
)
from app.core.constants import PipelineStage, StageStatus
from app.core.exceptions import AnalysisError, APIClientError, AppError
from app.schemas.pipeline import (
    ClassificationResult,
    ExtractedEntity,
    ExtractionOptions,
    GeneralExtractionResult,
    PopulationResult,
    SpecializedExtractionResult,
    StageProgress,
    TokenUsage,
)
from app.services.operation_log import OperationLog
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

ProgressReporter = Callable[[StageProgress], Awaitable[None]]
CancellationCheck = Callable[[], Awaitable[None]]


@dataclass
class StageContext:
    """Inputs of one pipeline run plus the outputs accumulated so far."""
    job_id: UUID
    design_week_id: UUID
    filename: str
    mime_type: str
    content: bytes
    options: ExtractionOptions
    report: ProgressReporter
    check_cancelled: CancellationCheck
    classification: Optional[ClassificationResult] = None
    general: Optional[GeneralExtractionResult] = None
    specialized: Optional[SpecializedExtractionResult] = None
    population: Optional[PopulationResult] = None
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class StageResult:
    """Standard result from stage execution."""
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    # Columns written onto the upload job once the stage succeeds
    outputs: dict[str, Any] = field(default_factory=dict)


async def analyze_and_record(
    client: ContentAnalysisService,
    operation_log: OperationLog,
    pipeline_name: str,
    content: Content,
    content_type: Optional[str],
    options: AnalysisOptions,
    metadata: Optional[dict] = None,
) -> AnalysisResult:
    """Run one analysis call and append it to the operations log.

    Raises:
        AnalysisError: If the provider fails or returns unusable output.
    """
    started = time.perf_counter()
    try:
        result = await client.analyze(content, content_type, options)
    except Exception as e:
        message = e.message if isinstance(e, AppError) else f"{type(e).__name__}: {e}"
        await operation_log.record(
            pipeline_name,
            client.model,
            success=False,
            latency_ms=int((time.perf_counter() - started) * 1000),
            error=message,
            metadata=metadata,
        )
        if isinstance(e, AppError) and not isinstance(e, APIClientError):
            raise
        raise AnalysisError(f"{pipeline_name} failed: {message}", original_error=e) from e

    await operation_log.record(
        pipeline_name,
        result.model,
        success=True,
        usage=result.usage,
        latency_ms=result.latency_ms,
        metadata={**(metadata or {}), "provider": result.provider, "truncated": result.truncated},
    )
    return result


def parse_entities(raw_items: Any, provider: Optional[str] = None) -> list[ExtractedEntity]:
    """Build entities from provider output, dropping entries without type or content."""
    if not isinstance(raw_items, list):
        return []
    entities = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        try:
            entity = ExtractedEntity.model_validate(raw)
        except SchemaValidationError as e:
            LOGGER.warning("Dropping malformed entity", extra={"provider": provider, "error": str(e)})
            continue
        if not entity.type.strip() or not entity.content.strip():
            continue
        if provider and not entity.found_by:
            entity.found_by = [provider]
        entities.append(entity)
    return entities


def parse_model(model: Type[ModelT], data: Any, task: str) -> ModelT:
    try:
        return model.model_validate(data or {})
    except SchemaValidationError as e:
        raise AnalysisError(f"{task} returned an unexpected shape: {e.error_count()} invalid fields") from e


class BaseStage(ABC):
    """Base class for pipeline stages.

    A stage reads what earlier stages left on the context, calls the content
    analysis capability, reports progress and stores its own output back on
    the context.
    """

    label: str = ""

    def __init__(self, analysis: AnalysisClientRegistry, operation_log: OperationLog):
        self.analysis = analysis
        self.operation_log = operation_log

    @property
    @abstractmethod
    def stage(self) -> PipelineStage:
        """Stage this executor implements."""
        pass

    @abstractmethod
    async def execute(self, context: StageContext) -> StageResult:
        """Execute the stage."""
        pass

    async def progress(self, context: StageContext, percent: int, message: str, **details: Any) -> None:
        await context.report(
            StageProgress(
                stage=self.stage,
                status=StageStatus.RUNNING,
                percent=percent,
                message=message,
                details=details,
            )
        )

    async def analyze(
        self,
        context: StageContext,
        client: ContentAnalysisService,
        content: Content,
        content_type: Optional[str],
        prompt: str,
        task: Optional[str] = None,
        max_output_tokens: Optional[int] = None,
    ) -> AnalysisResult:
        task = task or self.stage.value.lower()
        result = await analyze_and_record(
            client,
            self.operation_log,
            pipeline_name=task,
            content=content,
            content_type=content_type,
            options=AnalysisOptions(task=task, prompt=prompt, max_output_tokens=max_output_tokens),
            metadata={"job_id": str(context.job_id), "design_week_id": str(context.design_week_id)},
        )
        context.usage = context.usage + result.usage
        return result

    @staticmethod
    def count_by_type(entities: Iterable[ExtractedEntity]) -> dict[str, int]:
        counts: dict[str, int] = {}
        for entity in entities:
            counts[entity.type] = counts.get(entity.type, 0) + 1
        return counts
