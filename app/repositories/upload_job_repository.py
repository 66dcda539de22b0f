"""Repository for upload jobs.

Lifecycle writes are conditional on the job still being non-terminal, so a
cancelled or finished job never picks up a late write from the pipeline.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import TERMINAL_JOB_STATUSES, PipelineStage, UploadJobStatus
from app.database.models import UploadJob
from app.repositories.base_repository import BaseRepository


class UploadJobRepository(BaseRepository[UploadJob]):
    """Data access for upload_jobs."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, UploadJob)

    async def update_if_active(self, job_id: UUID, **values: Any) -> bool:
        """Apply values only while the job is QUEUED or PROCESSING.

        Returns:
            True if the row was updated, False if the job is terminal or missing.
        """
        try:
            stmt = (
                update(UploadJob)
                .where(UploadJob.id == job_id, UploadJob.status.notin_(TERMINAL_JOB_STATUSES))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            await self.session.commit()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail("updating", e) from e

    async def mark_processing(self, job_id: UUID) -> bool:
        return await self.update_if_active(
            job_id,
            status=UploadJobStatus.PROCESSING.value,
            started_at=datetime.now(timezone.utc),
        )

    async def set_stage(self, job_id: UUID, stage: PipelineStage, progress: dict) -> bool:
        return await self.update_if_active(
            job_id,
            status=UploadJobStatus.PROCESSING.value,
            current_stage=stage.value,
            stage_progress=progress,
        )

    async def record_progress(self, job_id: UUID, progress: dict) -> bool:
        return await self.update_if_active(job_id, stage_progress=progress)

    async def mark_complete(self, job_id: UUID, progress: dict) -> bool:
        return await self.update_if_active(
            job_id,
            status=UploadJobStatus.COMPLETE.value,
            current_stage=PipelineStage.COMPLETE.value,
            stage_progress=progress,
            completed_at=datetime.now(timezone.utc),
        )

    async def mark_failed(
        self,
        job_id: UUID,
        error: str,
        progress: Optional[dict] = None,
        stage: Optional[PipelineStage] = None,
    ) -> bool:
        values: dict[str, Any] = {
            "status": UploadJobStatus.FAILED.value,
            "error": error,
            "completed_at": datetime.now(timezone.utc),
        }
        if progress is not None:
            values["stage_progress"] = progress
        if stage is not None:
            values["current_stage"] = stage.value
        return await self.update_if_active(job_id, **values)

    async def get_status(self, job_id: UUID) -> Optional[UploadJobStatus]:
        """Read only the live status column."""
        try:
            result = await self.session.execute(
                select(UploadJob.status).where(UploadJob.id == job_id)
            )
            value = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail("reading status of", e) from e
        return UploadJobStatus(value) if value is not None else None
