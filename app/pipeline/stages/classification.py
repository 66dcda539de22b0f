"""Stage 1: determine the coarse content type of the artifact."""

from app.core.base_stage import BaseStage, StageContext, StageResult, parse_model
from app.core.constants import PipelineStage
from app.prompts.system_prompts import CLASSIFICATION_PROMPT
from app.schemas.pipeline import ClassificationResult
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ClassificationStage(BaseStage):
    label = "Classification"

    @property
    def stage(self) -> PipelineStage:
        return PipelineStage.CLASSIFICATION

    async def execute(self, context: StageContext) -> StageResult:
        await self.progress(context, 10, "Analyzing content type")

        result = await self.analyze(
            context,
            self.analysis.primary,
            context.content,
            context.mime_type,
            prompt=CLASSIFICATION_PROMPT,
        )
        classification = parse_model(ClassificationResult, result.data, "Classification")
        context.classification = classification

        LOGGER.info(
            f"Classified upload as {classification.type.value}",
            extra={
                "job_id": str(context.job_id),
                "confidence": classification.confidence,
                "provider": result.provider,
            },
        )
        await self.progress(
            context, 90, f"Classified as {classification.type.value}",
            type=classification.type.value, confidence=classification.confidence,
        )
        return StageResult(
            message=f"Classified as {classification.type.value}",
            details={
                "type": classification.type.value,
                "confidence": classification.confidence,
                "missing_questions": len(classification.missing_questions),
            },
            outputs={"classification_result": classification.model_dump(mode="json")},
        )
