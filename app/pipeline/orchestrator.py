"""Pipeline orchestrator.

Runs the stage executors strictly in order for one upload job and persists
every progress report to the job store. The job's live status is checked
before each stage and between sub-steps; once the job is terminal (cancelled
or failed elsewhere) the run stops without writing anything further.
"""

import asyncio
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.analysis_client import AnalysisClientRegistry
from app.core.base_stage import BaseStage, StageContext
from app.core.constants import PipelineStage, StageStatus
from app.core.exceptions import AppError, JobCancelledError, StageTimeoutError
from app.pipeline.stages.classification import ClassificationStage
from app.pipeline.stages.general_extraction import GeneralExtractionStage
from app.pipeline.stages.specialized_extraction import SpecializedExtractionStage
from app.pipeline.stages.tab_population import TabPopulationStage
from app.schemas.pipeline import ExtractionOptions, StageProgress
from app.services.item_sink import ExtractionItemSink
from app.services.job_store import JobStore
from app.services.operation_log import OperationLog
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

INTERRUPTED_MESSAGE = "Processing interrupted before completion"


class ExtractionPipeline:
    """Sequences the stage executors for upload jobs.

    Attributes:
        job_store: Durable job records
        stages: Stage executors in execution order
        stage_timeout_seconds: Upper bound for a single stage
    """

    def __init__(self, job_store: JobStore, stages: Sequence[BaseStage], stage_timeout_seconds: float = 600):
        orders = [stage.stage.order for stage in stages]
        if orders != sorted(orders) or len(set(orders)) != len(orders):
            raise ValueError("Stages must be unique and in pipeline order")
        self.job_store = job_store
        self.stages = list(stages)
        self.stage_timeout_seconds = stage_timeout_seconds

    def _reporter(self, job_id: UUID):
        async def report(progress: StageProgress) -> None:
            if not await self.job_store.record_progress(job_id, progress):
                raise JobCancelledError("Job is no longer active", stage=progress.stage.value)
        return report

    def _cancellation_check(self, job_id: UUID):
        async def check_cancelled() -> None:
            if await self.job_store.is_terminal(job_id):
                raise JobCancelledError("Job is no longer active")
        return check_cancelled

    async def _run_stage(self, stage: BaseStage, context: StageContext) -> None:
        if not await self.job_store.set_stage(
            context.job_id,
            StageProgress(stage=stage.stage, status=StageStatus.RUNNING, percent=0, message=f"{stage.label} started"),
        ):
            raise JobCancelledError("Job is no longer active", stage=stage.stage.value)

        LOGGER.info(
            f"Stage {stage.stage.value} started",
            extra={"job_id": str(context.job_id), "stage": stage.stage.value},
        )
        try:
            result = await asyncio.wait_for(stage.execute(context), timeout=self.stage_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise StageTimeoutError(
                f"{stage.label} timed out after {self.stage_timeout_seconds:g} seconds",
                stage=stage.stage.value,
                original_error=e,
            ) from e

        if result.outputs and not await self.job_store.save_outputs(context.job_id, **result.outputs):
            raise JobCancelledError("Job is no longer active", stage=stage.stage.value)
        await context.report(
            StageProgress(
                stage=stage.stage,
                status=StageStatus.COMPLETE,
                percent=100,
                message=result.message,
                details=result.details,
            )
        )
        LOGGER.info(
            f"Stage {stage.stage.value} complete",
            extra={"job_id": str(context.job_id), "stage": stage.stage.value, "details": result.details},
        )

    async def run(
        self,
        job_id: UUID,
        design_week_id: UUID,
        content: bytes,
        filename: str,
        mime_type: str,
        options: ExtractionOptions,
    ) -> bool:
        """Run every stage for the job.

        Never raises for stage failures: they are recorded on the job.

        Returns:
            True if the job reached COMPLETE.
        """
        if not await self.job_store.mark_processing(job_id):
            LOGGER.info("Skipping run for inactive job", extra={"job_id": str(job_id)})
            return False

        context = StageContext(
            job_id=job_id,
            design_week_id=design_week_id,
            filename=filename,
            mime_type=mime_type,
            content=content,
            options=options,
            report=self._reporter(job_id),
            check_cancelled=self._cancellation_check(job_id),
        )
        current: Optional[PipelineStage] = None

        try:
            for stage in self.stages:
                current = stage.stage
                await context.check_cancelled()
                await self._run_stage(stage, context)
        except JobCancelledError:
            LOGGER.info(
                "Job became inactive, abandoning run",
                extra={"job_id": str(job_id), "stage": current.value if current else None},
            )
            return False
        except asyncio.CancelledError:
            await self.job_store.mark_failed(job_id, INTERRUPTED_MESSAGE, stage=current)
            raise
        except Exception as e:
            message = e.message if isinstance(e, AppError) else f"{type(e).__name__}: {e}"
            LOGGER.error(
                f"Pipeline failed at {current.value if current else 'start'}",
                exc_info=True,
                extra={"job_id": str(job_id), "stage": current.value if current else None},
            )
            await self.job_store.mark_failed(job_id, message, stage=current)
            return False

        completed = await self.job_store.mark_complete(job_id)
        LOGGER.info(
            "Pipeline finished",
            extra={
                "job_id": str(job_id),
                "completed": completed,
                "input_tokens": context.usage.input_tokens,
                "output_tokens": context.usage.output_tokens,
            },
        )
        return completed


def build_extraction_pipeline(
    job_store: JobStore,
    analysis: AnalysisClientRegistry,
    operation_log: OperationLog,
    session_factory: async_sessionmaker[AsyncSession],
    sink: ExtractionItemSink,
    stage_timeout_seconds: float = 600,
) -> ExtractionPipeline:
    """Wire the four stages in pipeline order."""
    stages = [
        ClassificationStage(analysis, operation_log),
        GeneralExtractionStage(analysis, operation_log, session_factory),
        SpecializedExtractionStage(analysis, operation_log),
        TabPopulationStage(analysis, operation_log, session_factory, sink),
    ]
    return ExtractionPipeline(job_store, stages, stage_timeout_seconds=stage_timeout_seconds)
