"""Tests for upload job control: start, progress, cancel and retry."""

from unittest.mock import Mock
from uuid import uuid4

import pytest

from app.core.analysis_client import AnalysisClientRegistry
from app.core.constants import ExtractionMode, UploadJobStatus
from app.core.exceptions import NotFoundError, ValidationError
from app.pipeline.runner import PipelineRunner
from app.repositories.upload_job_repository import UploadJobRepository
from app.schemas.pipeline import ExtractionOptions
from app.services.artifact_validator import ArtifactValidator
from app.services.storage_service import VolumeStorageService
from app.services.upload_service import UploadService, parse_models

MB = 1024 * 1024


@pytest.fixture
def runner() -> Mock:
    return Mock(spec=PipelineRunner)


@pytest.fixture
def storage(tmp_path) -> VolumeStorageService:
    return VolumeStorageService(str(tmp_path / "artifacts"))


@pytest.fixture
def registry(make_fake_client) -> AnalysisClientRegistry:
    return AnalysisClientRegistry(
        {"gemini": make_fake_client(), "openrouter": make_fake_client(name="openrouter", reads_media=False)},
        primary="gemini",
    )


@pytest.fixture
def service(session_factory, job_store, storage, runner, registry) -> UploadService:
    return UploadService(
        session_factory,
        job_store,
        ArtifactValidator(max_size_bytes=5 * MB),
        storage,
        runner,
        registry,
        default_models=["gemini", "openrouter", "claude"],
    )


async def job_count(session_factory) -> int:
    async with session_factory() as db:
        return await UploadJobRepository(db).count()


class TestParseModels:

    def test_splits_trims_and_dedupes(self):
        assert parse_models(" Gemini, openrouter,,gemini ") == ["gemini", "openrouter"]

    def test_empty(self):
        assert parse_models(None) == []
        assert parse_models("") == []


class TestBuildOptions:

    def test_defaults_to_standard(self, service):
        options = service.build_options(None)

        assert options.mode == ExtractionMode.STANDARD
        assert options.models == []
        assert options.second_pass_enabled is False

    def test_two_pass_enables_second_pass(self, service):
        assert service.build_options("two-pass").second_pass_enabled is True

    def test_invalid_mode(self, service):
        with pytest.raises(ValidationError, match="Invalid extraction mode 'turbo'"):
            service.build_options("turbo")

    def test_multi_model_uses_configured_defaults(self, service):
        options = service.build_options("multi-model")

        assert options.models == ["gemini", "openrouter"]

    def test_multi_model_rejects_unconfigured_model(self, service):
        with pytest.raises(ValidationError, match="claude"):
            service.build_options("multi-model", ["gemini", "claude"])

    def test_multi_model_without_any_model(self, session_factory, job_store, storage, runner, registry):
        service = UploadService(
            session_factory, job_store, ArtifactValidator(max_size_bytes=MB), storage, runner, registry
        )

        with pytest.raises(ValidationError, match="models must be non-empty"):
            service.build_options("multi-model")


class TestStart:

    @pytest.mark.asyncio
    async def test_start_stores_artifact_and_launches_run(
        self, service, runner, storage, design_week, sample_mp3_content
    ):
        job = await service.start(
            design_week.id, "../Kickoff Call.mp3", "audio/mpeg", sample_mp3_content, ExtractionOptions()
        )

        assert job.status == UploadJobStatus.QUEUED.value
        assert job.filename == "Kickoff_Call.mp3"
        assert job.mime_type == "audio/mpeg"
        assert job.file_size == len(sample_mp3_content)
        assert job.file_url.startswith(f"design-weeks/{design_week.id}/")
        assert await storage.get(job.file_url) == sample_mp3_content
        runner.launch.assert_called_once()
        assert runner.launch.call_args.args[0] == job.id

    @pytest.mark.asyncio
    async def test_rejected_upload_creates_no_job(
        self, session_factory, job_store, runner, registry, design_week, sample_mp3_content
    ):
        storage = Mock(spec=VolumeStorageService)
        service = UploadService(
            session_factory, job_store, ArtifactValidator(max_size_bytes=5 * MB), storage, runner, registry
        )

        with pytest.raises(ValidationError, match="does not match"):
            await service.start(design_week.id, "report.pdf", "application/pdf", sample_mp3_content, ExtractionOptions())

        storage.put.assert_not_called()
        runner.launch.assert_not_called()
        assert await job_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_unknown_design_week(self, service, runner, session_factory, sample_pdf_content):
        with pytest.raises(NotFoundError):
            await service.start(uuid4(), "notes.pdf", "application/pdf", sample_pdf_content, ExtractionOptions())

        runner.launch.assert_not_called()
        assert await job_count(session_factory) == 0

    def test_check_size(self, service):
        with pytest.raises(ValidationError, match="maximum upload size of 5 MB"):
            service.check_size(6 * MB)
        service.check_size(None)


class TestCancelAndRetry:

    @pytest.mark.asyncio
    async def test_get_progress_of_unknown_job(self, service):
        with pytest.raises(NotFoundError):
            await service.get_progress(uuid4())

    @pytest.mark.asyncio
    async def test_cancel_messages(self, service, queued_job):
        first = await service.cancel(queued_job.id)
        second = await service.cancel(queued_job.id)

        assert (first.message, first.changed) == ("Upload cancelled", True)
        assert (second.message, second.changed) == ("Job already finished", False)
        assert first.status == second.status == UploadJobStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_cancel_unknown_job(self, service):
        with pytest.raises(NotFoundError):
            await service.cancel(uuid4())

    @pytest.mark.asyncio
    async def test_retry_requires_failed_job(self, service, queued_job):
        with pytest.raises(ValidationError, match="Only failed jobs"):
            await service.retry(queued_job.id)

    @pytest.mark.asyncio
    async def test_retry_starts_new_job_from_stored_artifact(
        self, service, runner, job_store, design_week, sample_pdf_content
    ):
        original = await service.start(
            design_week.id, "notes.pdf", "application/pdf", sample_pdf_content,
            service.build_options("multi-model", ["gemini", "openrouter"]),
        )
        await job_store.mark_failed(original.id, "Classification failed")

        retried = await service.retry(original.id)

        assert retried.id != original.id
        assert retried.retried_from_job_id == original.id
        assert retried.status == UploadJobStatus.QUEUED.value
        assert retried.file_url == original.file_url
        assert retried.extraction_mode == ExtractionMode.MULTI_MODEL.value
        assert retried.extraction_models == ["gemini", "openrouter"]
        assert runner.launch.call_count == 2
        launched = runner.launch.call_args.args
        assert launched[0] == retried.id
        assert launched[2] == sample_pdf_content
        assert launched[5].models == ["gemini", "openrouter"]
