from typing import List
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import ExtractedItem
from app.repositories.base_repository import BaseRepository


class ExtractedItemRepository(BaseRepository[ExtractedItem]):
    """Data access for extracted_items.

    The write methods only flush; the caller owns the transaction so a delete
    and the following insert commit together.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, ExtractedItem)

    async def delete_for_session(self, session_id: UUID) -> int:
        try:
            result = await self.session.execute(
                delete(ExtractedItem)
                .where(ExtractedItem.session_id == session_id)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount
        except SQLAlchemyError as e:
            raise self._fail("deleting", e) from e

    async def add_all(self, items: List[ExtractedItem]) -> None:
        try:
            self.session.add_all(items)
            await self.session.flush()
        except SQLAlchemyError as e:
            raise self._fail("inserting", e) from e

    async def list_for_session(self, session_id: UUID) -> List[ExtractedItem]:
        try:
            result = await self.session.execute(
                select(ExtractedItem)
                .where(ExtractedItem.session_id == session_id)
                .order_by(ExtractedItem.created_at, ExtractedItem.type)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._fail("listing", e) from e
