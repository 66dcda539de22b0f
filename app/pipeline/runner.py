"""Owns detached pipeline runs launched from request handlers."""

import asyncio
from typing import Set
from uuid import UUID

from app.pipeline.orchestrator import ExtractionPipeline
from app.schemas.pipeline import ExtractionOptions
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class PipelineRunner:
    """Starts one background task per job and keeps its handle.

    Unhandled task failures are logged; on shutdown every in-flight run is
    cancelled, which marks its job FAILED as interrupted.
    """

    def __init__(self, pipeline: ExtractionPipeline):
        self.pipeline = pipeline
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def launch(
        self,
        job_id: UUID,
        design_week_id: UUID,
        content: bytes,
        filename: str,
        mime_type: str,
        options: ExtractionOptions,
    ) -> asyncio.Task:
        task = asyncio.create_task(
            self.pipeline.run(job_id, design_week_id, content, filename, mime_type, options),
            name=f"upload-job-{job_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        LOGGER.info("Launched pipeline run", extra={"job_id": str(job_id)})
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            LOGGER.warning(f"Pipeline task {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            LOGGER.error(
                f"Pipeline task {task.get_name()} crashed",
                exc_info=(type(error), error, error.__traceback__),
            )

    async def wait_idle(self) -> None:
        """Wait for every run started so far."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        if not self._tasks:
            return
        LOGGER.info(f"Cancelling {len(self._tasks)} in-flight pipeline runs")
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
