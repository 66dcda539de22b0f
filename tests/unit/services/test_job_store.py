"""Tests for upload job lifecycle writes."""

from uuid import uuid4

import pytest

from app.core.constants import PipelineStage, StageStatus, UploadJobStatus
from app.schemas.pipeline import StageProgress
from app.services.job_store import CANCELLED_MESSAGE


def running(stage: PipelineStage, percent: int) -> StageProgress:
    return StageProgress(stage=stage, status=StageStatus.RUNNING, percent=percent, message="working")


class TestJobStore:
    """Tests for JobStore."""

    @pytest.mark.asyncio
    async def test_create_starts_queued(self, queued_job):
        assert queued_job.status == UploadJobStatus.QUEUED.value
        assert queued_job.current_stage == PipelineStage.CLASSIFICATION.value
        assert queued_job.stage_progress["status"] == StageStatus.PENDING.value
        assert queued_job.error is None
        assert queued_job.completed_at is None

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, job_store, queued_job):
        first = await job_store.cancel(queued_job.id)
        second = await job_store.cancel(queued_job.id)

        assert first.changed is True
        assert second.changed is False
        assert first.job.status == second.job.status == UploadJobStatus.FAILED.value
        assert first.job.error == second.job.error == CANCELLED_MESSAGE
        assert first.job.completed_at == second.job.completed_at

    @pytest.mark.asyncio
    async def test_cancel_of_complete_job_keeps_completed_at(self, job_store, queued_job):
        assert await job_store.mark_processing(queued_job.id)
        assert await job_store.mark_complete(queued_job.id)
        completed = await job_store.get(queued_job.id)

        outcome = await job_store.cancel(queued_job.id)

        assert outcome.changed is False
        assert outcome.job.status == UploadJobStatus.COMPLETE.value
        assert outcome.job.completed_at == completed.completed_at
        assert outcome.job.error is None

    @pytest.mark.asyncio
    async def test_cancel_of_unknown_job_returns_none(self, job_store):
        assert await job_store.cancel(uuid4()) is None

    @pytest.mark.asyncio
    async def test_progress_after_terminal_state_is_rejected(self, job_store, queued_job):
        await job_store.cancel(queued_job.id)

        assert await job_store.set_stage(queued_job.id, running(PipelineStage.GENERAL_EXTRACTION, 0)) is False
        assert await job_store.record_progress(queued_job.id, running(PipelineStage.CLASSIFICATION, 50)) is False
        assert await job_store.mark_complete(queued_job.id) is False

        job = await job_store.get(queued_job.id)
        assert job.status == UploadJobStatus.FAILED.value
        assert job.current_stage == PipelineStage.CLASSIFICATION.value

    @pytest.mark.asyncio
    async def test_is_terminal(self, job_store, queued_job):
        assert await job_store.is_terminal(queued_job.id) is False
        await job_store.mark_failed(queued_job.id, "boom")
        assert await job_store.is_terminal(queued_job.id) is True
        assert await job_store.is_terminal(uuid4()) is True

    @pytest.mark.asyncio
    async def test_mark_failed_keeps_last_percent_and_redacts(self, job_store, queued_job):
        await job_store.mark_processing(queued_job.id)
        await job_store.set_stage(queued_job.id, running(PipelineStage.GENERAL_EXTRACTION, 0))
        await job_store.record_progress(queued_job.id, running(PipelineStage.GENERAL_EXTRACTION, 60))

        changed = await job_store.mark_failed(
            queued_job.id,
            "Provider rejected api_key=AIzaSyA1234567890abcdefghijkl at https://internal.example/v1",
            stage=PipelineStage.GENERAL_EXTRACTION,
        )

        job = await job_store.get(queued_job.id)
        assert changed is True
        assert job.status == UploadJobStatus.FAILED.value
        assert job.current_stage == PipelineStage.GENERAL_EXTRACTION.value
        assert job.stage_progress["status"] == StageStatus.ERROR.value
        assert job.stage_progress["percent"] == 60
        assert "AIza" not in job.error
        assert "internal.example" not in job.error
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_save_outputs(self, job_store, queued_job):
        await job_store.mark_processing(queued_job.id)

        assert await job_store.save_outputs(queued_job.id, classification_result={"type": "KICKOFF_SESSION"})

        job = await job_store.get(queued_job.id)
        assert job.classification_result == {"type": "KICKOFF_SESSION"}
        assert job.started_at is not None
