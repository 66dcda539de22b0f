"""Writes extracted items for a session using replace-not-merge semantics."""

import asyncio
import weakref
from dataclasses import dataclass, field
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.constants import AUTO_APPROVE_CONFIDENCE, ReviewStatus
from app.database.models import ExtractedItem
from app.repositories.extracted_item_repository import ExtractedItemRepository
from app.schemas.pipeline import ExtractedEntity
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def review_status_for(confidence: float) -> ReviewStatus:
    """Initial review status for a new item; depends on confidence alone."""
    return ReviewStatus.APPROVED if confidence >= AUTO_APPROVE_CONFIDENCE else ReviewStatus.PENDING


class SessionLocks:
    """One asyncio.Lock per session id, dropped once nobody holds it."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, session_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock


@dataclass
class SinkResult:
    session_id: UUID
    removed: int
    items: list[ExtractedItem] = field(default_factory=list)

    @property
    def inserted(self) -> int:
        return len(self.items)


class ExtractionItemSink:
    """Replaces all items of a session with a new batch in one transaction.

    Replacements for the same session are serialized in-process, so two
    concurrent runs cannot interleave their delete and insert.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], locks: SessionLocks = None):
        self.session_factory = session_factory
        self.locks = locks or SessionLocks()

    @staticmethod
    def build_item(session_id: UUID, entity: ExtractedEntity) -> ExtractedItem:
        return ExtractedItem(
            session_id=session_id,
            type=entity.type,
            category=entity.category or None,
            content=entity.content,
            structured_data=entity.structured_data,
            confidence=entity.confidence,
            status=review_status_for(entity.confidence).value,
            source_quote=entity.source_quote,
            source_speaker=entity.source_speaker,
            source_timestamp=entity.source_timestamp,
        )

    async def replace(self, session_id: UUID, entities: Sequence[ExtractedEntity]) -> SinkResult:
        """Delete every existing item for the session, then insert the batch.

        Raises:
            PersistenceError: If the transaction fails; nothing is changed then.
        """
        items = [self.build_item(session_id, entity) for entity in entities]

        async with self.locks.lock_for(session_id):
            async with self.session_factory() as db:
                async with db.begin():
                    repository = ExtractedItemRepository(db)
                    removed = await repository.delete_for_session(session_id)
                    await repository.add_all(items)

        approved = sum(1 for item in items if item.status == ReviewStatus.APPROVED.value)
        LOGGER.info(
            "Replaced extracted items",
            extra={
                "session_id": str(session_id),
                "removed": removed,
                "inserted": len(items),
                "approved": approved,
            },
        )
        return SinkResult(session_id=session_id, removed=removed, items=items)
