"""Tests for the four stage executors with a scripted analysis client."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy import select

from app.core.analysis_client import AnalysisClientRegistry
from app.core.base_stage import StageContext
from app.core.constants import (
    ContentClassification,
    ExtractionMode,
    ProcessingStatus,
    ReviewStatus,
)
from app.core.exceptions import AnalysisError, APIClientError, JobCancelledError
from app.database.models import LLMOperation
from app.pipeline.stages.classification import ClassificationStage
from app.pipeline.stages.general_extraction import GeneralExtractionStage
from app.pipeline.stages.specialized_extraction import SpecializedExtractionStage, checklist_for
from app.pipeline.stages.tab_population import TabPopulationStage, normalize_entities
from app.repositories.audit_repository import LLMOperationRepository, RawExtractionRepository
from app.repositories.engagement_repository import DesignWeekRepository, SessionRepository
from app.repositories.extracted_item_repository import ExtractedItemRepository
from app.schemas.pipeline import (
    ClassificationResult,
    ExtractedEntity,
    ExtractionOptions,
    GeneralExtractionResult,
    SpecializedExtractionResult,
)
from app.services.item_sink import ExtractionItemSink
from app.services.operation_log import OperationLog


@pytest.fixture
def operation_log(session_factory) -> OperationLog:
    return OperationLog(session_factory)


@pytest.fixture
def make_context(design_week):
    def factory(mime_type: str = "audio/mpeg", options: ExtractionOptions = None, **outputs) -> StageContext:
        return StageContext(
            job_id=uuid4(),
            design_week_id=design_week.id,
            filename="session.bin",
            mime_type=mime_type,
            content=b"artifact",
            options=options or ExtractionOptions(),
            report=AsyncMock(),
            check_cancelled=AsyncMock(),
            **outputs,
        )
    return factory


def reported_percents(context: StageContext) -> list[int]:
    return [call.args[0].percent for call in context.report.await_args_list]


class TestClassificationStage:
    """Tests for ClassificationStage."""

    @pytest.mark.asyncio
    async def test_classifies_and_records_operation(
        self, analysis_registry, operation_log, make_context, session_factory, fake_client
    ):
        context = make_context()

        result = await ClassificationStage(analysis_registry, operation_log).execute(context)

        assert context.classification.type == ContentClassification.KICKOFF_SESSION
        assert result.outputs["classification_result"]["confidence"] == 0.91
        assert reported_percents(context) == [10, 90]
        assert context.usage.input_tokens == 120
        assert fake_client.tasks == ["classification"]
        async with session_factory() as db:
            assert await LLMOperationRepository(db).count({"pipeline_name": "classification"}) == 1

    @pytest.mark.asyncio
    async def test_unknown_type_and_out_of_range_confidence(
        self, make_fake_client, operation_log, make_context
    ):
        client = make_fake_client(responses={"classification": {"type": "podcast", "confidence": 7}})
        registry = AnalysisClientRegistry({"gemini": client}, primary="gemini")
        context = make_context()

        await ClassificationStage(registry, operation_log).execute(context)

        assert context.classification.type == ContentClassification.UNKNOWN
        assert context.classification.confidence == 1.0

    @pytest.mark.asyncio
    async def test_provider_failure_raises_analysis_error(
        self, make_fake_client, operation_log, make_context, session_factory
    ):
        client = make_fake_client(responses={"classification": APIClientError("Gemini generation failed: 503")})
        registry = AnalysisClientRegistry({"gemini": client}, primary="gemini")

        with pytest.raises(AnalysisError):
            await ClassificationStage(registry, operation_log).execute(make_context())

        async with session_factory() as db:
            assert await LLMOperationRepository(db).count({"success": False}) == 1

    @pytest.mark.asyncio
    async def test_unexpected_provider_exception_is_recorded(
        self, make_fake_client, operation_log, make_context, session_factory
    ):
        client = make_fake_client(responses={"classification": RuntimeError("socket closed")}, delay=0.02)
        registry = AnalysisClientRegistry({"gemini": client}, primary="gemini")

        with pytest.raises(AnalysisError, match="classification failed: RuntimeError: socket closed"):
            await ClassificationStage(registry, operation_log).execute(make_context())

        async with session_factory() as db:
            rows = (await db.execute(select(LLMOperation))).scalars().all()
        assert len(rows) == 1
        assert rows[0].success is False
        assert rows[0].latency_ms >= 20
        assert "socket closed" in rows[0].error_message


class TestGeneralExtractionStage:
    """Tests for GeneralExtractionStage in each extraction mode."""

    @pytest.mark.asyncio
    async def test_standard_mode_stores_raw_extraction(
        self, analysis_registry, operation_log, session_factory, make_context
    ):
        context = make_context(
            classification=ClassificationResult(type="KICKOFF_SESSION", confidence=0.9)
        )
        stage = GeneralExtractionStage(analysis_registry, operation_log, session_factory)

        result = await stage.execute(context)

        assert len(context.general.entities) == 3
        assert context.general.summary["by_type"] == {"STAKEHOLDER": 1, "GOAL": 1, "KPI": 1}
        assert all(entity.found_by == ["gemini"] for entity in context.general.entities)
        async with session_factory() as db:
            row = await RawExtractionRepository(db).get_by_id(result.outputs["raw_extraction_id"])
        assert row.content_type == "KICKOFF_SESSION"
        assert row.upload_job_id == context.job_id
        assert len(row.raw_json["entities"]) == 3
        assert reported_percents(context) == [10, 60]

    @pytest.mark.asyncio
    async def test_multi_model_merges_deterministically(
        self, make_fake_client, operation_log, session_factory, make_context
    ):
        gemini = make_fake_client(responses={"general_extraction:gemini": {"entities": [
            {"type": "STAKEHOLDER", "content": "Dana Lee, Head of Claims", "confidence": 0.7},
            {"type": "GOAL", "content": "Cut intake time", "confidence": 0.9},
        ]}})
        openrouter = make_fake_client(name="openrouter", reads_media=False, responses={
            "general_extraction:openrouter": {"entities": [
                {"type": "stakeholder", "content": "dana lee, head of claims", "confidence": 0.9,
                 "source_quote": "I own claims"},
                {"type": "RISK", "content": "Legacy system outages", "confidence": 0.6},
            ]},
        })
        registry = AnalysisClientRegistry({"gemini": gemini, "openrouter": openrouter}, primary="gemini")
        options = ExtractionOptions(mode=ExtractionMode.MULTI_MODEL, models=["gemini", "openrouter"])
        context = make_context(mime_type="application/pdf", options=options)

        result = await GeneralExtractionStage(registry, operation_log, session_factory).execute(context)

        entities = context.general.entities
        assert [entity.type for entity in entities] == ["STAKEHOLDER", "GOAL", "RISK"]
        stakeholder = entities[0]
        assert stakeholder.content == "Dana Lee, Head of Claims"
        assert stakeholder.confidence == 0.9
        assert stakeholder.source_quote == "I own claims"
        assert stakeholder.found_by == ["gemini", "openrouter"]
        assert result.details["agreed"] == 1
        assert result.details["per_model_counts"] == {"gemini": 2, "openrouter": 2}
        assert context.check_cancelled.await_count >= 2

    @pytest.mark.asyncio
    async def test_multi_model_skips_models_that_cannot_read_media(
        self, make_fake_client, operation_log, session_factory, make_context
    ):
        gemini = make_fake_client(responses={"general_extraction:gemini": {"entities": [
            {"type": "GOAL", "content": "Cut intake time", "confidence": 0.9},
        ]}})
        openrouter = make_fake_client(name="openrouter", reads_media=False)
        registry = AnalysisClientRegistry({"gemini": gemini, "openrouter": openrouter}, primary="gemini")
        options = ExtractionOptions(mode=ExtractionMode.MULTI_MODEL, models=["gemini", "openrouter"])
        context = make_context(mime_type="audio/mpeg", options=options)

        result = await GeneralExtractionStage(registry, operation_log, session_factory).execute(context)

        assert len(context.general.entities) == 1
        assert "openrouter" in result.details["failed_models"]
        assert openrouter.calls == []

    @pytest.mark.asyncio
    async def test_multi_model_fails_when_every_model_fails(
        self, make_fake_client, operation_log, session_factory, make_context
    ):
        failing = {"general_extraction:gemini": APIClientError("quota exceeded")}
        gemini = make_fake_client(responses=failing)
        openrouter = make_fake_client(
            name="openrouter", responses={"general_extraction:openrouter": APIClientError("bad gateway")}
        )
        registry = AnalysisClientRegistry({"gemini": gemini, "openrouter": openrouter}, primary="gemini")
        options = ExtractionOptions(mode=ExtractionMode.MULTI_MODEL, models=["gemini", "openrouter"])

        with pytest.raises(AnalysisError, match="bad gateway"):
            await GeneralExtractionStage(registry, operation_log, session_factory).execute(
                make_context(mime_type="text/plain", options=options)
            )

    @pytest.mark.asyncio
    async def test_cancellation_between_models_stops_stage(
        self, make_fake_client, operation_log, session_factory, make_context
    ):
        gemini = make_fake_client()
        registry = AnalysisClientRegistry({"gemini": gemini}, primary="gemini")
        context = make_context(options=ExtractionOptions(mode=ExtractionMode.MULTI_MODEL, models=["gemini"]))
        context.check_cancelled.side_effect = JobCancelledError("Job is no longer active")

        with pytest.raises(JobCancelledError):
            await GeneralExtractionStage(registry, operation_log, session_factory).execute(context)
        assert gemini.calls == []

    @pytest.mark.asyncio
    async def test_two_pass_refines_and_dedupes(
        self, make_fake_client, operation_log, session_factory, make_context
    ):
        client = make_fake_client(responses={
            "general_extraction": {"entities": [
                {"id": "e1", "type": "GOAL", "content": "Cut claim intake time", "confidence": 0.5},
                {"id": "e2", "type": "STAKEHOLDER", "content": "Dana Lee", "confidence": 0.7},
            ]},
            "general_extraction:second_pass": {
                "refinements": [{"id": "e1", "content": "Halve claim intake time", "confidence": 0.9}],
                "new_entities": [
                    {"type": "RISK", "content": "Peak season backlog", "confidence": 0.6},
                    {"type": "stakeholder", "content": "Dana Lee", "confidence": 0.95},
                ],
            },
        })
        registry = AnalysisClientRegistry({"gemini": client}, primary="gemini")
        context = make_context(options=ExtractionOptions(mode=ExtractionMode.TWO_PASS))

        result = await GeneralExtractionStage(registry, operation_log, session_factory).execute(context)

        by_type = {entity.type.upper(): entity for entity in context.general.entities}
        assert len(context.general.entities) == 3
        assert by_type["GOAL"].content == "Halve claim intake time"
        assert by_type["GOAL"].confidence == 0.9
        assert by_type["STAKEHOLDER"].confidence == 0.95
        assert result.details["second_pass"] == {"refined": 1, "added": 1}
        assert client.tasks == ["general_extraction", "general_extraction:second_pass"]
        assert reported_percents(context) == [10, 60, 65, 80]


class TestSpecializedExtractionStage:
    """Tests for SpecializedExtractionStage."""

    @pytest.mark.asyncio
    async def test_returns_items_and_checklist(self, analysis_registry, operation_log, make_context, fake_client):
        context = make_context(
            classification=ClassificationResult(type="KICKOFF_SESSION", confidence=0.9),
            general=GeneralExtractionResult(entities=[ExtractedEntity(type="GOAL", content="Cut intake time")]),
        )

        result = await SpecializedExtractionStage(analysis_registry, operation_log).execute(context)

        assert len(context.specialized.items) == 4
        assert context.specialized.checklist.coverage_score == 0.6
        assert result.details["fell_back_to_general"] is False
        prompt = fake_client.calls[0].prompt
        assert "Cut intake time" in prompt
        assert checklist_for(ContentClassification.KICKOFF_SESSION)[0] in prompt

    @pytest.mark.asyncio
    async def test_falls_back_to_general_entities(self, make_fake_client, operation_log, make_context):
        registry = AnalysisClientRegistry(
            {"gemini": make_fake_client(responses={"specialized_extraction": {"items": []}})}, primary="gemini"
        )
        general = [ExtractedEntity(type="GOAL", content="Cut intake time", confidence=0.85)]
        context = make_context(
            classification=ClassificationResult(type="TECHNICAL_SESSION"),
            general=GeneralExtractionResult(entities=general),
        )

        result = await SpecializedExtractionStage(registry, operation_log).execute(context)

        assert [item.content for item in context.specialized.items] == ["Cut intake time"]
        assert result.details["fell_back_to_general"] is True
        assert context.specialized.checklist.questions_missing == checklist_for(
            ContentClassification.TECHNICAL_SESSION
        )


class TestTabPopulationStage:
    """Tests for TabPopulationStage."""

    def test_normalize_entities_maps_aliases_and_skips_unknown(self):
        entities = [
            ExtractedEntity(type="kpi", content="Resolve in 4 hours"),
            ExtractedEntity(type="In Scope", content="Email intake"),
            ExtractedEntity(type="MOOD", content="Upbeat"),
        ]

        normalized, warnings = normalize_entities(entities)

        assert [entity.type for entity in normalized] == ["KPI_TARGET", "SCOPE_IN"]
        assert warnings == ["Skipped item with unknown type 'MOOD'"]

    @pytest.mark.asyncio
    async def test_creates_session_and_populates_profiles(
        self, analysis_registry, operation_log, session_factory, make_context, design_week
    ):
        context = make_context(
            classification=ClassificationResult(type="TECHNICAL_SESSION", confidence=0.9),
            specialized=SpecializedExtractionResult(items=[
                ExtractedEntity(type="SYSTEM_INTEGRATION", content="Salesforce case API", confidence=0.9),
                ExtractedEntity(type="GUARDRAIL_NEVER", content="Never promise refunds", confidence=0.8),
                ExtractedEntity(type="EXCEPTION", content="Missing policy number", confidence=0.6),
                ExtractedEntity(type="IN_SCOPE", content="Email intake", confidence=0.79),
                ExtractedEntity(type="MOOD", content="Upbeat", confidence=0.9),
            ]),
        )
        stage = TabPopulationStage(
            analysis_registry, operation_log, session_factory, ExtractionItemSink(session_factory)
        )

        result = await stage.execute(context)

        population = context.population
        assert population.extracted_items == 4
        assert population.integrations == 1
        assert population.business_rules == 1
        assert population.test_cases == 1
        assert len(population.warnings) == 1
        assert result.outputs["session_id"] is not None

        async with session_factory() as db:
            session = await SessionRepository(db).get_latest(design_week.id)
            items = await ExtractedItemRepository(db).list_for_session(session.id)
            refreshed = await DesignWeekRepository(db).get_by_id(design_week.id)

        assert session.id == result.outputs["session_id"]
        assert session.phase == 4
        assert session.processing_status == ProcessingStatus.COMPLETE.value
        assert {item.content: item.status for item in items}["Email intake"] == ReviewStatus.PENDING.value
        assert {item.content: item.status for item in items}["Never promise refunds"] == ReviewStatus.APPROVED.value
        assert refreshed.current_phase == 4
        assert "integrations" in refreshed.technical_profile
        assert "guardrails" in refreshed.business_profile
        assert "in_scope" in refreshed.business_profile

    @pytest.mark.asyncio
    async def test_reuses_latest_session(
        self, analysis_registry, operation_log, session_factory, make_context, design_session
    ):
        context = make_context(
            specialized=SpecializedExtractionResult(items=[ExtractedEntity(type="GOAL", content="Cut intake time")])
        )
        stage = TabPopulationStage(
            analysis_registry, operation_log, session_factory, ExtractionItemSink(session_factory)
        )

        result = await stage.execute(context)

        assert result.outputs["session_id"] == design_session.id
