"""Job control operations: start, progress, cancel and retry uploads."""

from dataclasses import dataclass
from typing import Optional, Sequence
from uuid import UUID

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.analysis_client import AnalysisClientRegistry
from app.core.constants import ExtractionMode, UploadJobStatus
from app.core.exceptions import NotFoundError, ValidationError
from app.database.models import UploadJob
from app.pipeline.runner import PipelineRunner
from app.repositories.engagement_repository import DesignWeekRepository
from app.schemas.pipeline import ExtractionOptions
from app.services.artifact_validator import ArtifactValidator
from app.services.job_store import JobStore
from app.services.storage_service import StorageService, build_object_path
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class CancelResult:
    message: str
    status: str
    changed: bool


def parse_models(raw: Optional[str]) -> list[str]:
    """Split a comma-separated model list, dropping blanks and duplicates."""
    models: list[str] = []
    for name in (raw or "").split(","):
        name = name.strip().lower()
        if name and name not in models:
            models.append(name)
    return models


class UploadService:
    """Validates and stores uploads, then hands them to the pipeline runner."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        job_store: JobStore,
        validator: ArtifactValidator,
        storage: StorageService,
        runner: PipelineRunner,
        analysis: AnalysisClientRegistry,
        default_models: Sequence[str] = (),
    ):
        self.session_factory = session_factory
        self.job_store = job_store
        self.validator = validator
        self.storage = storage
        self.runner = runner
        self.analysis = analysis
        self.default_models = list(default_models)

    def build_options(self, mode: Optional[str], models: Sequence[str] = ()) -> ExtractionOptions:
        """Resolve the extraction options of a start request.

        Raises:
            ValidationError: For an unknown mode or unconfigured model.
        """
        try:
            extraction_mode = ExtractionMode(mode or ExtractionMode.STANDARD.value)
        except ValueError:
            allowed = ", ".join(m.value for m in ExtractionMode)
            raise ValidationError(f"Invalid extraction mode '{mode}'. Allowed: {allowed}") from None

        selected = list(models)
        if extraction_mode == ExtractionMode.MULTI_MODEL:
            selected = selected or [name for name in self.default_models if self.analysis.has(name)]
            unknown = [name for name in selected if not self.analysis.has(name)]
            if unknown:
                raise ValidationError(f"Models are not configured: {', '.join(unknown)}")
        else:
            selected = []

        try:
            return ExtractionOptions(mode=extraction_mode, models=selected)
        except SchemaValidationError as e:
            raise ValidationError(e.errors()[0]["msg"].removeprefix("Value error, ")) from e

    async def _require_design_week(self, design_week_id: UUID) -> None:
        async with self.session_factory() as db:
            if not await DesignWeekRepository(db).exists(design_week_id):
                raise NotFoundError(f"Design week {design_week_id} not found")

    def check_size(self, size: Optional[int]) -> None:
        """Reject an upload by its declared size before the body is read."""
        problem = self.validator.check_size(size)
        if problem:
            raise ValidationError(problem)

    async def start(
        self,
        design_week_id: UUID,
        filename: Optional[str],
        declared_mime_type: Optional[str],
        data: bytes,
        options: ExtractionOptions,
    ) -> UploadJob:
        """Validate, store and queue an upload; the pipeline runs detached.

        Raises:
            ValidationError: If the artifact is rejected
            NotFoundError: If the design week does not exist
            StorageError: If the artifact cannot be stored
        """
        decision = self.validator.validate(filename, declared_mime_type, data).raise_for_rejection()
        await self._require_design_week(design_week_id)

        stored = await self.storage.put(
            data, build_object_path(design_week_id, decision.filename), content_type=decision.mime_type
        )
        job = await self.job_store.create(
            design_week_id=design_week_id,
            filename=decision.filename,
            mime_type=decision.mime_type,
            file_url=stored.path,
            file_size=stored.size,
            extraction_mode=options.mode.value,
            extraction_models=options.models or None,
        )
        self.runner.launch(job.id, design_week_id, data, decision.filename, decision.mime_type, options)
        return job

    async def get_progress(self, job_id: UUID) -> UploadJob:
        job = await self.job_store.get(job_id)
        if job is None:
            raise NotFoundError(f"Upload job {job_id} not found")
        return job

    async def cancel(self, job_id: UUID) -> CancelResult:
        outcome = await self.job_store.cancel(job_id)
        if outcome is None:
            raise NotFoundError(f"Upload job {job_id} not found")
        if outcome.changed:
            return CancelResult(message="Upload cancelled", status=outcome.job.status, changed=True)
        return CancelResult(message="Job already finished", status=outcome.job.status, changed=False)

    async def retry(self, job_id: UUID) -> UploadJob:
        """Start a new job from a failed job's stored artifact.

        Raises:
            NotFoundError: If the job does not exist
            ValidationError: If the job is not FAILED
        """
        previous = await self.get_progress(job_id)
        if previous.status != UploadJobStatus.FAILED.value:
            raise ValidationError(f"Only failed jobs can be retried (job is {previous.status})")

        options = self.build_options(previous.extraction_mode, previous.extraction_models or [])
        data = await self.storage.get(previous.file_url)
        job = await self.job_store.create(
            design_week_id=previous.design_week_id,
            filename=previous.filename,
            mime_type=previous.mime_type,
            file_url=previous.file_url,
            file_size=previous.file_size,
            extraction_mode=options.mode.value,
            extraction_models=options.models or None,
            retried_from_job_id=previous.id,
        )
        LOGGER.info("Retrying upload job", extra={"job_id": str(job.id), "retried_from": str(previous.id)})
        self.runner.launch(job.id, previous.design_week_id, data, previous.filename, previous.mime_type, options)
        return job
