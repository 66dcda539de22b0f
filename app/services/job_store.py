"""Durable upload job records.

Each call opens its own database session so the store can be shared by
request handlers and detached pipeline tasks alike.
"""

from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.constants import PipelineStage, StageStatus, UploadJobStatus
from app.database.models import UploadJob
from app.repositories.upload_job_repository import UploadJobRepository
from app.schemas.pipeline import StageProgress
from app.utils.logging import get_logger
from app.utils.redaction import redact_error_message

LOGGER = get_logger(__name__)

CANCELLED_MESSAGE = "Cancelled by user"


@dataclass
class CancelOutcome:
    job: UploadJob
    changed: bool


class JobStore:
    """Create, read and transition upload jobs."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(self, **fields: Any) -> UploadJob:
        async with self.session_factory() as db:
            job = await UploadJobRepository(db).create(
                status=UploadJobStatus.QUEUED.value,
                current_stage=PipelineStage.CLASSIFICATION.value,
                stage_progress=StageProgress(
                    stage=PipelineStage.CLASSIFICATION,
                    status=StageStatus.PENDING,
                    percent=0,
                    message="Queued",
                ).model_dump(mode="json"),
                **fields,
            )
        LOGGER.info(
            "Created upload job",
            extra={"job_id": str(job.id), "design_week_id": str(job.design_week_id)},
        )
        return job

    async def get(self, job_id: UUID) -> Optional[UploadJob]:
        async with self.session_factory() as db:
            return await UploadJobRepository(db).get_by_id(job_id)

    async def is_terminal(self, job_id: UUID) -> bool:
        """True when the job finished, failed, was cancelled or no longer exists."""
        async with self.session_factory() as db:
            status = await UploadJobRepository(db).get_status(job_id)
        return status is None or status.is_terminal

    async def mark_processing(self, job_id: UUID) -> bool:
        async with self.session_factory() as db:
            return await UploadJobRepository(db).mark_processing(job_id)

    async def set_stage(self, job_id: UUID, progress: StageProgress) -> bool:
        async with self.session_factory() as db:
            return await UploadJobRepository(db).set_stage(
                job_id, progress.stage, progress.model_dump(mode="json")
            )

    async def record_progress(self, job_id: UUID, progress: StageProgress) -> bool:
        async with self.session_factory() as db:
            return await UploadJobRepository(db).record_progress(job_id, progress.model_dump(mode="json"))

    async def save_outputs(self, job_id: UUID, **values: Any) -> bool:
        """Store stage outputs (classification, raw extraction id, population result)."""
        async with self.session_factory() as db:
            return await UploadJobRepository(db).update_if_active(job_id, **values)

    async def mark_complete(self, job_id: UUID, **outputs: Any) -> bool:
        progress = StageProgress(
            stage=PipelineStage.COMPLETE,
            status=StageStatus.COMPLETE,
            percent=100,
            message="Processing complete",
        )
        async with self.session_factory() as db:
            repository = UploadJobRepository(db)
            if outputs:
                await repository.update_if_active(job_id, **outputs)
            return await repository.mark_complete(job_id, progress.model_dump(mode="json"))

    async def mark_failed(
        self, job_id: UUID, error: Any, stage: Optional[PipelineStage] = None
    ) -> bool:
        """Fail the job with a redacted message; no-op if it is already terminal."""
        message = redact_error_message(error)
        async with self.session_factory() as db:
            repository = UploadJobRepository(db)
            progress = None
            if stage is not None:
                # Keep the last reported percent so it never moves backwards
                job = await repository.get_by_id(job_id)
                last = (job.stage_progress or {}) if job else {}
                percent = last.get("percent", 0) if last.get("stage") == stage.value else 0
                progress = StageProgress(
                    stage=stage,
                    status=StageStatus.ERROR,
                    percent=percent,
                    message=message,
                ).model_dump(mode="json")
            changed = await repository.mark_failed(job_id, message, progress, stage=stage)
        if changed:
            LOGGER.error(
                "Upload job failed",
                extra={"job_id": str(job_id), "stage": stage.value if stage else None, "error": message},
            )
        return changed

    async def cancel(self, job_id: UUID) -> Optional[CancelOutcome]:
        """Fail a running job as user-cancelled; finished jobs are left untouched.

        Returns:
            None if the job does not exist.
        """
        async with self.session_factory() as db:
            repository = UploadJobRepository(db)
            changed = await repository.mark_failed(job_id, CANCELLED_MESSAGE)
            job = await repository.get_by_id(job_id)
        if job is None:
            return None
        if changed:
            LOGGER.info("Upload job cancelled", extra={"job_id": str(job_id)})
        return CancelOutcome(job=job, changed=changed)
