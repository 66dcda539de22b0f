"""Repositories for append-only audit records."""

from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import LLMOperation, RawExtraction
from app.repositories.base_repository import BaseRepository


class RawExtractionRepository(BaseRepository[RawExtraction]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, RawExtraction)


class LLMOperationRepository(BaseRepository[LLMOperation]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, LLMOperation)
