"""Stage 2: broad extraction across the full item taxonomy.

Runs once in standard mode, once per model in multi-model mode and adds a
corrective pass when the second pass is enabled. The raw result is kept as a
raw_extractions row for audit.
"""

import json
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.analysis_client import AnalysisClientRegistry
from app.core.base_stage import BaseStage, StageContext, StageResult, parse_entities
from app.core.constants import ExtractionMode, PipelineStage
from app.core.exceptions import AnalysisError, AppError
from app.pipeline.reconciliation import apply_refinements, merge_model_results
from app.prompts.system_prompts import GENERAL_EXTRACTION_PROMPT, SECOND_PASS_PROMPT
from app.repositories.audit_repository import RawExtractionRepository
from app.schemas.pipeline import ExtractedEntity, GeneralExtractionResult
from app.services.operation_log import OperationLog
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class GeneralExtractionStage(BaseStage):
    label = "General extraction"

    def __init__(
        self,
        analysis: AnalysisClientRegistry,
        operation_log: OperationLog,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        super().__init__(analysis, operation_log)
        self.session_factory = session_factory

    @property
    def stage(self) -> PipelineStage:
        return PipelineStage.GENERAL_EXTRACTION

    def _prompt(self, context: StageContext) -> str:
        classification = context.classification
        if classification is None:
            return GENERAL_EXTRACTION_PROMPT
        indicators = ", ".join(classification.key_indicators) or "none"
        return (
            f"Content type identified as: {classification.type.value} "
            f"(confidence: {classification.confidence})\n"
            f"Key indicators found: {indicators}\n"
            + GENERAL_EXTRACTION_PROMPT
        )

    async def _extract_once(
        self, context: StageContext, provider: str, task: str
    ) -> Tuple[List[ExtractedEntity], dict]:
        client = self.analysis.get(provider)
        result = await self.analyze(
            context, client, context.content, context.mime_type, prompt=self._prompt(context), task=task
        )
        summary = result.data.get("summary")
        return parse_entities(result.data.get("entities"), provider=provider), summary if isinstance(summary, dict) else {}

    async def _run_models(self, context: StageContext) -> Tuple[List[ExtractedEntity], dict, dict]:
        models = context.options.models
        runs: List[Tuple[str, List[ExtractedEntity]]] = []
        failures: dict[str, str] = {}
        last_error: Optional[AppError] = None

        for i, provider in enumerate(models):
            await context.check_cancelled()
            await self.progress(
                context, 10 + int(50 * i / len(models)), f"Extracting with {provider}",
                model=provider, model_index=i + 1, model_count=len(models),
            )
            client = self.analysis.get(provider)
            if not client.supports(context.mime_type):
                failures[provider] = f"cannot analyze {context.mime_type}"
                LOGGER.warning(
                    f"Skipping {provider} for unsupported content",
                    extra={"job_id": str(context.job_id), "mime_type": context.mime_type},
                )
                continue
            try:
                entities, _ = await self._extract_once(context, provider, task=f"general_extraction:{provider}")
            except AppError as e:
                failures[provider] = e.message
                last_error = e
                LOGGER.warning(
                    f"Model {provider} failed during multi-model extraction",
                    extra={"job_id": str(context.job_id), "error": e.message},
                )
                continue
            runs.append((provider, entities))

        if not runs:
            if last_error is not None:
                raise last_error
            raise AnalysisError("No configured model can analyze this content")

        merged = merge_model_results(runs)
        details = {
            "models": [provider for provider, _ in runs],
            "per_model_counts": {provider: len(entities) for provider, entities in runs},
            "failed_models": failures,
            "agreed": sum(1 for entity in merged if len(entity.found_by) > 1),
        }
        return merged, {}, details

    async def _second_pass(
        self, context: StageContext, entities: List[ExtractedEntity]
    ) -> Tuple[List[ExtractedEntity], dict]:
        await context.check_cancelled()
        await self.progress(context, 65, "Refining low-confidence items", entities=len(entities))

        first_pass = json.dumps(
            [entity.model_dump(exclude={"found_by"}) for entity in entities], ensure_ascii=False
        )
        prompt = f"{SECOND_PASS_PROMPT}\n## First-pass entities\n{first_pass}\n"
        client = self.analysis.primary
        result = await self.analyze(
            context, client, context.content, context.mime_type, prompt=prompt, task="general_extraction:second_pass"
        )
        new_entities = parse_entities(result.data.get("new_entities"), provider=client.name)
        return apply_refinements(entities, result.data.get("refinements"), new_entities)

    async def _store_raw(self, context: StageContext, extraction: GeneralExtractionResult) -> UUID:
        async with self.session_factory() as db:
            row = await RawExtractionRepository(db).create(
                design_week_id=context.design_week_id,
                upload_job_id=context.job_id,
                content_type=context.classification.type.value if context.classification else "UNKNOWN",
                source_file_name=context.filename,
                source_mime_type=context.mime_type,
                raw_json=extraction.model_dump(mode="json"),
                extraction_metadata={
                    "mode": context.options.mode.value,
                    "models": context.options.models,
                    "second_pass": context.options.second_pass_enabled,
                    "usage": context.usage.model_dump(),
                },
            )
        return row.id

    async def execute(self, context: StageContext) -> StageResult:
        options = context.options
        details: dict = {"mode": options.mode.value}

        if options.mode == ExtractionMode.MULTI_MODEL:
            entities, summary, model_details = await self._run_models(context)
            details.update(model_details)
        else:
            await self.progress(context, 10, "Extracting entities")
            entities, summary = await self._extract_once(
                context, self.analysis.primary.name, task="general_extraction"
            )

        await self.progress(context, 60, f"Found {len(entities)} entities", entities=len(entities))

        if options.second_pass_enabled:
            entities, refinement_counts = await self._second_pass(context, entities)
            details["second_pass"] = refinement_counts
            await self.progress(context, 80, f"Refined to {len(entities)} entities", entities=len(entities))

        summary = {**summary, "total_entities": len(entities), "by_type": self.count_by_type(entities)}
        extraction = GeneralExtractionResult(entities=entities, summary=summary, details=details)
        context.general = extraction

        await context.check_cancelled()
        raw_extraction_id = await self._store_raw(context, extraction)

        LOGGER.info(
            "General extraction finished",
            extra={
                "job_id": str(context.job_id),
                "extraction_mode": options.mode.value,
                "entities": len(entities),
                "raw_extraction_id": str(raw_extraction_id),
            },
        )
        return StageResult(
            message=f"Extracted {len(entities)} entities",
            details={"entities": len(entities), **details},
            outputs={"raw_extraction_id": raw_extraction_id},
        )
