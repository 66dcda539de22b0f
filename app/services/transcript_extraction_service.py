"""Synchronous extraction of items from a supplied transcript."""

from dataclasses import dataclass, field
from typing import List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.analysis_client import AnalysisClientRegistry, AnalysisOptions
from app.core.base_stage import analyze_and_record, parse_entities
from app.core.constants import ProcessingStatus, TranscriptSessionType
from app.core.exceptions import AnalysisError, AppError, NotFoundError
from app.database.models import ExtractedItem
from app.pipeline.stages.tab_population import normalize_entities
from app.prompts.system_prompts import build_transcript_prompt
from app.repositories.engagement_repository import SessionRepository
from app.repositories.extracted_item_repository import ExtractedItemRepository
from app.schemas.pipeline import TokenUsage
from app.services.item_sink import ExtractionItemSink
from app.services.operation_log import OperationLog
from app.utils.logging import get_logger
from app.utils.redaction import redact_error_message

LOGGER = get_logger(__name__)

TRANSCRIPT_MAX_OUTPUT_TOKENS = 8192


@dataclass
class TranscriptExtraction:
    items: List[ExtractedItem]
    usage: TokenUsage
    latency_ms: int
    warnings: List[str] = field(default_factory=list)


class TranscriptExtractionService:
    """Runs one analysis call over a transcript and replaces the session's items."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        analysis: AnalysisClientRegistry,
        sink: ExtractionItemSink,
        operation_log: OperationLog,
    ):
        self.session_factory = session_factory
        self.analysis = analysis
        self.sink = sink
        self.operation_log = operation_log

    async def _set_status(self, session_id: UUID, status: ProcessingStatus) -> None:
        async with self.session_factory() as db:
            await SessionRepository(db).set_processing_status(session_id, status.value)

    async def extract(
        self, session_id: UUID, transcript: str, session_type: TranscriptSessionType
    ) -> TranscriptExtraction:
        """Extract items and replace the session's existing items with them.

        Raises:
            NotFoundError: If the session does not exist
            AnalysisError: With a redacted message if extraction fails; the
                session's processing status is FAILED in that case
        """
        async with self.session_factory() as db:
            if await SessionRepository(db).get_by_id(session_id) is None:
                raise NotFoundError(f"Session {session_id} not found")

        await self._set_status(session_id, ProcessingStatus.PROCESSING)
        pipeline_name = f"extract-{session_type.value}"

        try:
            result = await analyze_and_record(
                self.analysis.primary,
                self.operation_log,
                pipeline_name=pipeline_name,
                content=transcript,
                content_type="text/plain",
                options=AnalysisOptions(
                    task=pipeline_name,
                    prompt=build_transcript_prompt(session_type.value),
                    max_output_tokens=TRANSCRIPT_MAX_OUTPUT_TOKENS,
                    temperature=0.2,
                ),
                metadata={"session_id": str(session_id), "session_type": session_type.value},
            )
            entities, warnings = normalize_entities(
                parse_entities(result.data.get("items"), provider=result.provider)
            )
            reported = result.data.get("warnings")
            if isinstance(reported, list):
                warnings.extend(str(warning) for warning in reported)

            sink_result = await self.sink.replace(session_id, entities)
        except Exception as e:
            message = redact_error_message(e.message if isinstance(e, AppError) else str(e))
            LOGGER.error(
                "Transcript extraction failed",
                exc_info=True,
                extra={"session_id": str(session_id), "session_type": session_type.value},
            )
            await self._set_status(session_id, ProcessingStatus.FAILED)
            raise AnalysisError(f"Extraction failed: {message}", original_error=e) from e

        await self._set_status(session_id, ProcessingStatus.COMPLETE)
        LOGGER.info(
            "Transcript extraction complete",
            extra={
                "session_id": str(session_id),
                "session_type": session_type.value,
                "items": sink_result.inserted,
                "replaced_items": sink_result.removed,
            },
        )
        return TranscriptExtraction(
            items=sink_result.items,
            usage=result.usage,
            latency_ms=result.latency_ms,
            warnings=warnings,
        )

    async def list_items(self, session_id: UUID) -> List[ExtractedItem]:
        async with self.session_factory() as db:
            if await SessionRepository(db).get_by_id(session_id) is None:
                raise NotFoundError(f"Session {session_id} not found")
            return await ExtractedItemRepository(db).list_for_session(session_id)
