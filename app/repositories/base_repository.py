from typing import Generic, TypeVar, Type, Optional, Any, Dict
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import PersistenceError
from app.utils.logging import get_logger

ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Base repository implementing common CRUD operations.

    Database failures are logged and re-raised as PersistenceError so callers
    deal with one error type regardless of the driver underneath.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    def _fail(self, action: str, error: SQLAlchemyError) -> PersistenceError:
        self.logger.error(
            f"Error {action} {self.model.__name__}: {str(error)}",
            exc_info=True,
        )
        return PersistenceError(f"Database error while {action} {self.model.__name__}", original_error=error)

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        """Get a record by its ID.

        Args:
            id: The UUID of the record

        Returns:
            The record if found, None otherwise
        """
        try:
            query = select(self.model).where(self.model.id == id)
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail("retrieving", e) from e

    async def create(self, **kwargs) -> ModelType:
        """Create and commit a new record.

        Args:
            **kwargs: Fields and values for the new record

        Returns:
            The created record
        """
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail("creating", e) from e

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching filters.

        Args:
            filters: Dictionary of field_name: value to filter by

        Returns:
            Count of matching records
        """
        try:
            query = select(func.count()).select_from(self.model)
            if filters:
                for field, value in filters.items():
                    if hasattr(self.model, field):
                        query = query.where(getattr(self.model, field) == value)
            result = await self.session.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            raise self._fail("counting", e) from e
