"""Pytest configuration and shared fixtures."""

import os
import tempfile

# Settings are read at import time, so the environment must be ready first
_TEST_DIR = tempfile.mkdtemp(prefix="design-week-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/app.db"
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ["STORAGE_BACKEND"] = "volume"
os.environ["STORAGE_PATH"] = os.path.join(_TEST_DIR, "uploads")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import asyncio
import copy
from typing import Any, Callable, Dict, Optional, Union

import pytest
from fastapi.testclient import TestClient

from app.core.analysis_client import AnalysisClientRegistry, AnalysisOptions, AnalysisResult
from app.core.database import Base, build_engine, build_session_maker
from app.database import models  # noqa: F401  registers tables
from app.main import app
from app.repositories.engagement_repository import DesignWeekRepository, SessionRepository
from app.schemas.pipeline import TokenUsage
from app.services.job_store import JobStore
from app.utils.document_text import is_media

Scripted = Union[dict, Exception, Callable[[Any, Optional[str], AnalysisOptions], dict]]


class FakeAnalysisClient:
    """Content analysis double that answers by task name.

    Responses are dicts, exceptions to raise, or callables returning a dict.
    """

    def __init__(
        self,
        name: str = "gemini",
        model: str = "fake-model",
        responses: Optional[Dict[str, Scripted]] = None,
        reads_media: bool = True,
        delay: float = 0.0,
    ):
        self.name = name
        self.model = model
        self.responses = dict(responses or {})
        self.reads_media = reads_media
        self.delay = delay
        self.calls: list[AnalysisOptions] = []

    def supports(self, content_type: Optional[str]) -> bool:
        return self.reads_media or not is_media(content_type)

    async def analyze(self, content, content_type, options: AnalysisOptions) -> AnalysisResult:
        self.calls.append(options)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.get(options.task, {})
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(content, content_type, options)
        return AnalysisResult(
            data=response,
            usage=TokenUsage(input_tokens=120, output_tokens=40),
            latency_ms=15,
            model=self.model,
            provider=self.name,
        )

    @property
    def tasks(self) -> list[str]:
        return [options.task for options in self.calls]


KICKOFF_RESPONSES: Dict[str, Scripted] = {
    "classification": {
        "type": "KICKOFF_SESSION",
        "confidence": 0.91,
        "key_indicators": ["introductions", "goals discussion"],
        "missing_questions": ["What are the peak periods?"],
    },
    "general_extraction": {
        "entities": [
            {"id": "e1", "type": "STAKEHOLDER", "content": "Dana Lee, Head of Claims", "confidence": 0.95},
            {"id": "e2", "type": "GOAL", "content": "Cut claim intake time by half", "confidence": 0.7},
            {"id": "e3", "type": "KPI", "content": "First response within 4 hours", "confidence": 0.85},
        ],
        "summary": {"topics": ["claims intake"]},
    },
    "specialized_extraction": {
        "items": [
            {"type": "STAKEHOLDER", "content": "Dana Lee, Head of Claims", "confidence": 0.95},
            {"type": "GOAL", "content": "Cut claim intake time by half", "confidence": 0.79},
            {"type": "KPI_TARGET", "content": "First response within 4 hours", "confidence": 0.8},
            {"type": "IN_SCOPE", "content": "Email claims intake", "confidence": 0.9},
        ],
        "checklist": {
            "questions_asked": ["Who are the stakeholders?"],
            "questions_missing": ["What are the peak periods?"],
            "coverage_score": 0.6,
        },
    },
}


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_maker(db_engine)


@pytest.fixture
async def design_week(session_factory):
    async with session_factory() as db:
        return await DesignWeekRepository(db).create(name="eng-1", current_phase=1)


@pytest.fixture
async def design_session(session_factory, design_week):
    async with session_factory() as db:
        return await SessionRepository(db).create_next(design_week.id, phase=1)


@pytest.fixture
def kickoff_responses() -> Dict[str, Scripted]:
    return copy.deepcopy(KICKOFF_RESPONSES)


@pytest.fixture
def make_fake_client():
    """Factory for scripted analysis clients."""
    return FakeAnalysisClient


@pytest.fixture
def fake_client(kickoff_responses) -> FakeAnalysisClient:
    return FakeAnalysisClient(responses=kickoff_responses)


@pytest.fixture
def analysis_registry(fake_client) -> AnalysisClientRegistry:
    return AnalysisClientRegistry({"gemini": fake_client}, primary="gemini")


@pytest.fixture
def sample_mp3_content() -> bytes:
    """2 MB recording that starts with an ID3 tag."""
    header = b"ID3\x04\x00\x00\x00\x00\x00\x00"
    return header + b"\x00" * (2 * 1024 * 1024 - len(header))


@pytest.fixture
def sample_pdf_content() -> bytes:
    """Sample PDF content for testing.

    Returns:
        bytes: Sample PDF content
    """
    # Minimal valid PDF header
    return b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<<\n/Type /Catalog\n/Pages 2 0 R\n>>\nendobj\n"


@pytest.fixture
def job_store(session_factory) -> JobStore:
    return JobStore(session_factory)


@pytest.fixture
async def queued_job(job_store, design_week):
    return await job_store.create(
        design_week_id=design_week.id,
        filename="kickoff.mp3",
        mime_type="audio/mpeg",
        file_url="design-weeks/x/kickoff.mp3",
        file_size=2048,
        extraction_mode="standard",
    )
