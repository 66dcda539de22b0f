"""Stage 3: type-aware review of the general extraction.

Works from the entities already extracted, so the artifact is not sent again.
"""

import json

from app.core.base_stage import BaseStage, StageContext, StageResult, parse_entities, parse_model
from app.core.constants import ContentClassification, PipelineStage
from app.prompts.system_prompts import CHECKLISTS, SPECIALIZED_FOCUS, SPECIALIZED_TASK
from app.schemas.pipeline import ChecklistResult, SpecializedExtractionResult
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

SPECIALIZED_MAX_OUTPUT_TOKENS = 32768


def checklist_for(classification: ContentClassification) -> list[str]:
    return CHECKLISTS.get(classification.value, CHECKLISTS[ContentClassification.UNKNOWN.value])


class SpecializedExtractionStage(BaseStage):
    label = "Specialized extraction"

    @property
    def stage(self) -> PipelineStage:
        return PipelineStage.SPECIALIZED_EXTRACTION

    def build_prompt(self, classification: ContentClassification, entities_json: str) -> str:
        focus = SPECIALIZED_FOCUS.get(classification.value, SPECIALIZED_FOCUS[ContentClassification.UNKNOWN.value])
        questions = "\n".join(f"{i}. {question}" for i, question in enumerate(checklist_for(classification), 1))
        return (
            f"{focus}\n"
            f"## Previously extracted entities\n{entities_json}\n\n"
            f"## Checklist for {classification.value}\n{questions}\n"
            f"{SPECIALIZED_TASK}"
        )

    async def execute(self, context: StageContext) -> StageResult:
        classification = context.classification.type if context.classification else ContentClassification.UNKNOWN
        general_entities = context.general.entities if context.general else []

        await self.progress(
            context, 10, f"Reviewing {len(general_entities)} entities for {classification.value}",
            entities=len(general_entities),
        )
        entities_json = json.dumps(
            [entity.model_dump(exclude={"found_by"}) for entity in general_entities], ensure_ascii=False
        )
        client = self.analysis.primary
        result = await self.analyze(
            context,
            client,
            None,
            None,
            prompt=self.build_prompt(classification, entities_json),
            max_output_tokens=SPECIALIZED_MAX_OUTPUT_TOKENS,
        )
        if result.truncated:
            LOGGER.warning(
                "Specialized extraction response was truncated",
                extra={"job_id": str(context.job_id)},
            )

        items = parse_entities(result.data.get("items"), provider=client.name)
        raw_checklist = result.data.get("checklist")
        if isinstance(raw_checklist, dict):
            checklist = parse_model(ChecklistResult, raw_checklist, "Specialized extraction")
        else:
            checklist = ChecklistResult(questions_missing=checklist_for(classification))

        fell_back = False
        if not items and general_entities:
            # Nothing came back from the review; keep the general entities
            items = [entity.model_copy(deep=True) for entity in general_entities]
            fell_back = True
            LOGGER.warning(
                "Specialized extraction returned no items, using general entities",
                extra={"job_id": str(context.job_id), "entities": len(items)},
            )

        context.specialized = SpecializedExtractionResult(items=items, checklist=checklist)
        await self.progress(
            context, 90, f"Specialized {len(items)} items",
            items=len(items), coverage_score=checklist.coverage_score,
        )
        return StageResult(
            message=f"Specialized {len(items)} items, {round(checklist.coverage_score * 100)}% checklist coverage",
            details={
                "items": len(items),
                "coverage_score": checklist.coverage_score,
                "questions_missing": len(checklist.questions_missing),
                "fell_back_to_general": fell_back,
            },
        )
