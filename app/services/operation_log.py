"""Append-only audit trail of content analysis calls."""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import PersistenceError
from app.repositories.audit_repository import LLMOperationRepository
from app.schemas.pipeline import TokenUsage
from app.utils.logging import get_logger
from app.utils.redaction import redact_error_message

LOGGER = get_logger(__name__)


class OperationLog:
    """Records one llm_operations row per analysis call.

    Audit writes never fail the caller; a failed write is only logged.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(
        self,
        pipeline_name: str,
        model: str,
        success: bool,
        usage: Optional[TokenUsage] = None,
        latency_ms: int = 0,
        error: Optional[Any] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        usage = usage or TokenUsage()
        LOGGER.info(
            f"Analysis call {pipeline_name} {'succeeded' if success else 'failed'}",
            extra={
                "pipeline_name": pipeline_name,
                "model": model,
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
                "latency_ms": latency_ms,
            },
        )
        try:
            async with self.session_factory() as db:
                await LLMOperationRepository(db).create(
                    pipeline_name=pipeline_name,
                    model=model,
                    input_tokens=usage.input_tokens,
                    output_tokens=usage.output_tokens,
                    latency_ms=latency_ms,
                    success=success,
                    error_message=redact_error_message(error) if error is not None else None,
                    operation_metadata=metadata,
                )
        except PersistenceError as e:
            LOGGER.error(
                "Failed to write operations log entry",
                extra={"pipeline_name": pipeline_name, "error": str(e)},
            )
