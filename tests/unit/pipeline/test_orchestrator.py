"""Tests for the pipeline orchestrator state machine.

Uses scripted stages against a real job store on SQLite so every persisted
progress report can be inspected in order.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import pytest

from app.core.base_stage import BaseStage, StageContext, StageResult
from app.core.constants import STAGE_ORDER, PipelineStage, StageStatus, UploadJobStatus
from app.core.exceptions import AnalysisError
from app.pipeline.orchestrator import INTERRUPTED_MESSAGE, ExtractionPipeline
from app.schemas.pipeline import ExtractionOptions, StageProgress
from app.services.job_store import CANCELLED_MESSAGE, JobStore


class RecordingJobStore(JobStore):
    """Job store that also keeps every accepted progress write."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.history: list[StageProgress] = []

    async def set_stage(self, job_id, progress):
        accepted = await super().set_stage(job_id, progress)
        if accepted:
            self.history.append(progress)
        return accepted

    async def record_progress(self, job_id, progress):
        accepted = await super().record_progress(job_id, progress)
        if accepted:
            self.history.append(progress)
        return accepted


class ScriptedStage(BaseStage):
    label = "Scripted"

    def __init__(self, stage: PipelineStage, action: Optional[Callable[[StageContext], Awaitable[None]]] = None):
        super().__init__(analysis=None, operation_log=None)
        self._stage = stage
        self.action = action
        self.executed = False

    @property
    def stage(self) -> PipelineStage:
        return self._stage

    async def execute(self, context: StageContext) -> StageResult:
        self.executed = True
        await self.progress(context, 40, "Working")
        if self.action is not None:
            await self.action(context)
        await self.progress(context, 90, "Almost done")
        return StageResult(message="Done", details={"stage": self._stage.value})


def scripted_stages(**actions) -> list[ScriptedStage]:
    return [ScriptedStage(stage, actions.get(stage.value.lower())) for stage in STAGE_ORDER[:-1]]


@pytest.fixture
def recording_store(session_factory) -> RecordingJobStore:
    return RecordingJobStore(session_factory)


@pytest.fixture
async def job(recording_store, design_week):
    return await recording_store.create(
        design_week_id=design_week.id,
        filename="kickoff.mp3",
        mime_type="audio/mpeg",
        file_url="design-weeks/x/kickoff.mp3",
        file_size=2048,
        extraction_mode="standard",
    )


async def run(pipeline: ExtractionPipeline, job) -> bool:
    return await pipeline.run(
        job.id, job.design_week_id, b"ID3", job.filename, job.mime_type, ExtractionOptions()
    )


def assert_monotonic(history: list[StageProgress]) -> None:
    orders = [progress.stage.order for progress in history]
    assert orders == sorted(orders)
    for previous, current in zip(history, history[1:]):
        if previous.stage == current.stage:
            assert current.percent >= previous.percent


class TestExtractionPipeline:
    """Tests for ExtractionPipeline.run."""

    @pytest.mark.asyncio
    async def test_runs_all_stages_in_order(self, recording_store, job):
        stages = scripted_stages()
        pipeline = ExtractionPipeline(recording_store, stages)

        completed = await run(pipeline, job)

        stored = await recording_store.get(job.id)
        assert completed is True
        assert stored.status == UploadJobStatus.COMPLETE.value
        assert stored.current_stage == PipelineStage.COMPLETE.value
        assert stored.stage_progress["percent"] == 100
        assert stored.completed_at is not None
        assert all(stage.executed for stage in stages)
        assert_monotonic(recording_store.history)
        assert [p.stage for p in recording_store.history if p.status == StageStatus.COMPLETE] == STAGE_ORDER[:-1]

    @pytest.mark.asyncio
    async def test_stage_failure_is_terminal(self, recording_store, job):
        async def explode(context):
            raise AnalysisError("general_extraction failed: provider returned 500")

        stages = scripted_stages(general_extraction=explode)
        pipeline = ExtractionPipeline(recording_store, stages)

        completed = await run(pipeline, job)

        stored = await recording_store.get(job.id)
        assert completed is False
        assert stored.status == UploadJobStatus.FAILED.value
        assert stored.current_stage == PipelineStage.GENERAL_EXTRACTION.value
        assert "provider returned 500" in stored.error
        assert stored.stage_progress["status"] == StageStatus.ERROR.value
        assert stored.stage_progress["percent"] == 40
        assert not stages[2].executed and not stages[3].executed
        assert max(p.stage.order for p in recording_store.history) == PipelineStage.GENERAL_EXTRACTION.order
        assert_monotonic(recording_store.history)

    @pytest.mark.asyncio
    async def test_unexpected_exception_fails_job(self, recording_store, job):
        async def explode(context):
            raise KeyError("entities")

        pipeline = ExtractionPipeline(recording_store, scripted_stages(classification=explode))

        assert await run(pipeline, job) is False

        stored = await recording_store.get(job.id)
        assert stored.status == UploadJobStatus.FAILED.value
        assert stored.error.startswith("KeyError")

    @pytest.mark.asyncio
    async def test_cancel_mid_run_stops_pipeline(self, recording_store, job):
        async def cancel(context):
            await recording_store.cancel(context.job_id)

        stages = scripted_stages(specialized_extraction=cancel)
        pipeline = ExtractionPipeline(recording_store, stages)

        completed = await run(pipeline, job)

        stored = await recording_store.get(job.id)
        assert completed is False
        assert stored.status == UploadJobStatus.FAILED.value
        assert stored.error == CANCELLED_MESSAGE
        assert stored.current_stage == PipelineStage.SPECIALIZED_EXTRACTION.value
        assert not stages[3].executed
        # Nothing written after the cancel
        assert recording_store.history[-1].percent == 40

    @pytest.mark.asyncio
    async def test_cancelled_before_start_does_not_run(self, recording_store, job):
        stages = scripted_stages()
        await recording_store.cancel(job.id)

        assert await run(ExtractionPipeline(recording_store, stages), job) is False
        assert not any(stage.executed for stage in stages)

    @pytest.mark.asyncio
    async def test_stage_timeout_fails_job(self, recording_store, job):
        async def hang(context):
            await asyncio.sleep(5)

        pipeline = ExtractionPipeline(
            recording_store, scripted_stages(classification=hang), stage_timeout_seconds=0.05
        )

        assert await run(pipeline, job) is False

        stored = await recording_store.get(job.id)
        assert stored.status == UploadJobStatus.FAILED.value
        assert stored.current_stage == PipelineStage.CLASSIFICATION.value
        assert "timed out" in stored.error

    @pytest.mark.asyncio
    async def test_task_cancellation_marks_job_interrupted(self, recording_store, job):
        started = asyncio.Event()

        async def hang(context):
            started.set()
            await asyncio.sleep(5)

        pipeline = ExtractionPipeline(recording_store, scripted_stages(tab_population=hang))
        task = asyncio.create_task(run(pipeline, job))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        stored = await recording_store.get(job.id)
        assert stored.status == UploadJobStatus.FAILED.value
        assert stored.error == INTERRUPTED_MESSAGE
        assert stored.current_stage == PipelineStage.TAB_POPULATION.value

    def test_rejects_out_of_order_stages(self, recording_store):
        stages = scripted_stages()
        with pytest.raises(ValueError):
            ExtractionPipeline(recording_store, list(reversed(stages)))
