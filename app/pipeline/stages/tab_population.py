"""Stage 4: write items to the engagement's session and fill its profiles."""

from typing import Any, Dict, List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.analysis_client import AnalysisClientRegistry
from app.core.base_stage import BaseStage, StageContext, StageResult
from app.core.constants import (
    CLASSIFICATION_PHASES,
    DEFAULT_SESSION_PHASE,
    PipelineStage,
    ProcessingStatus,
)
from app.core.exceptions import NotFoundError
from app.database.models import DesignSession, ExtractedItem
from app.pipeline.item_types import (
    BUSINESS_RULE_TYPES,
    INTEGRATION_TYPES,
    PROFILE_PLACEMENT,
    TEST_CASE_TYPES,
    ExtractedItemType,
    normalize_item_type,
)
from app.repositories.engagement_repository import DesignWeekRepository, SessionRepository
from app.schemas.pipeline import ExtractedEntity, PopulationResult
from app.services.item_sink import ExtractionItemSink
from app.services.operation_log import OperationLog
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def normalize_entities(entities: List[ExtractedEntity]) -> Tuple[List[ExtractedEntity], List[str]]:
    """Map raw types onto the taxonomy; unknown types are skipped with a warning."""
    normalized = []
    warnings = []
    for entity in entities:
        item_type = normalize_item_type(entity.type)
        if item_type is None:
            warnings.append(f"Skipped item with unknown type '{entity.type}'")
            continue
        normalized.append(entity.model_copy(update={"type": item_type.value}))
    return normalized, warnings


def build_profile_sections(items: List[ExtractedItem]) -> Dict[str, Dict[str, List[dict]]]:
    """Group persisted items into business, technical and scope profile sections."""
    profiles: Dict[str, Dict[str, List[dict]]] = {"business": {}, "technical": {}, "scope": {}}
    for item in items:
        profile, section = PROFILE_PLACEMENT[ExtractedItemType(item.type)]
        profiles[profile].setdefault(section, []).append(
            {
                "item_id": str(item.id),
                "type": item.type,
                "content": item.content,
                "confidence": item.confidence,
                "status": item.status,
                "structured_data": item.structured_data,
            }
        )
    return profiles


class TabPopulationStage(BaseStage):
    label = "Tab population"

    def __init__(
        self,
        analysis: AnalysisClientRegistry,
        operation_log: OperationLog,
        session_factory: async_sessionmaker[AsyncSession],
        sink: ExtractionItemSink,
    ):
        super().__init__(analysis, operation_log)
        self.session_factory = session_factory
        self.sink = sink

    @property
    def stage(self) -> PipelineStage:
        return PipelineStage.TAB_POPULATION

    def _classified_phase(self, context: StageContext):
        if context.classification is None:
            return None
        return CLASSIFICATION_PHASES.get(context.classification.type)

    async def _target_session(self, context: StageContext) -> DesignSession:
        async with self.session_factory() as db:
            repository = SessionRepository(db)
            session = await repository.get_latest(context.design_week_id)
            if session is None:
                phase = self._classified_phase(context) or DEFAULT_SESSION_PHASE
                session = await repository.create_next(context.design_week_id, phase)
                LOGGER.info(
                    "Created session for upload",
                    extra={"design_week_id": str(context.design_week_id), "session_id": str(session.id)},
                )
            return session

    async def execute(self, context: StageContext) -> StageResult:
        source = context.specialized.items if context.specialized else []
        items, warnings = normalize_entities(source)
        for warning in warnings:
            LOGGER.warning(warning, extra={"job_id": str(context.job_id)})

        await self.progress(context, 10, f"Preparing {len(items)} items", items=len(items))
        session = await self._target_session(context)

        await context.check_cancelled()
        await self.progress(context, 30, "Writing extracted items", session_id=str(session.id))
        sink_result = await self.sink.replace(session.id, items)

        await context.check_cancelled()
        await self.progress(context, 70, "Updating profiles", items=sink_result.inserted)
        profiles = build_profile_sections(sink_result.items)
        business_sections = {**profiles["business"], **profiles["scope"]}
        async with self.session_factory() as db:
            design_week = await DesignWeekRepository(db).merge_profiles(
                context.design_week_id,
                business_sections=business_sections,
                technical_sections=profiles["technical"],
                min_phase=self._classified_phase(context),
            )
            if design_week is None:
                raise NotFoundError(f"Design week {context.design_week_id} no longer exists")
            await SessionRepository(db).set_processing_status(session.id, ProcessingStatus.COMPLETE.value)

        types = [ExtractedItemType(item.type) for item in sink_result.items]
        population = PopulationResult(
            session_id=str(session.id),
            extracted_items=sink_result.inserted,
            integrations=sum(1 for t in types if t in INTEGRATION_TYPES),
            business_rules=sum(1 for t in types if t in BUSINESS_RULE_TYPES),
            test_cases=sum(1 for t in types if t in TEST_CASE_TYPES),
            warnings=warnings,
            profile_sections={name: sorted(sections) for name, sections in profiles.items() if sections},
        )
        context.population = population

        details: Dict[str, Any] = {
            "extracted_items": population.extracted_items,
            "replaced_items": sink_result.removed,
            "integrations": population.integrations,
            "business_rules": population.business_rules,
            "test_cases": population.test_cases,
            "warnings": len(warnings),
        }
        return StageResult(
            message=f"Populated {population.extracted_items} items",
            details=details,
            outputs={"population_result": population.model_dump(mode="json"), "session_id": session.id},
        )
