"""Repositories for engagements (design weeks) and their sessions."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import DesignSession, DesignWeek
from app.repositories.base_repository import BaseRepository


class DesignWeekRepository(BaseRepository[DesignWeek]):
    """Data access for design_weeks."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DesignWeek)

    async def exists(self, design_week_id: UUID) -> bool:
        try:
            result = await self.session.execute(
                select(DesignWeek.id).where(DesignWeek.id == design_week_id)
            )
            return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            raise self._fail("checking", e) from e

    async def merge_profiles(
        self,
        design_week_id: UUID,
        business_sections: dict,
        technical_sections: dict,
        min_phase: Optional[int] = None,
    ) -> Optional[DesignWeek]:
        """Overwrite the given profile sections and optionally advance the phase.

        Sections not present in the new mapping are left untouched.
        """
        try:
            design_week = await self.get_by_id(design_week_id)
            if design_week is None:
                return None

            if business_sections:
                design_week.business_profile = {**(design_week.business_profile or {}), **business_sections}
            if technical_sections:
                design_week.technical_profile = {**(design_week.technical_profile or {}), **technical_sections}
            if min_phase is not None and min_phase > design_week.current_phase:
                design_week.current_phase = min_phase
            design_week.updated_at = datetime.now(timezone.utc)

            await self.session.commit()
            return design_week
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail("updating profiles of", e) from e


class SessionRepository(BaseRepository[DesignSession]):
    """Data access for sessions."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DesignSession)

    async def get_latest(self, design_week_id: UUID) -> Optional[DesignSession]:
        try:
            result = await self.session.execute(
                select(DesignSession)
                .where(DesignSession.design_week_id == design_week_id)
                .order_by(DesignSession.session_number.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail("retrieving latest", e) from e

    async def create_next(self, design_week_id: UUID, phase: int) -> DesignSession:
        """Create the session following the highest existing session number."""
        try:
            result = await self.session.execute(
                select(func.max(DesignSession.session_number)).where(
                    DesignSession.design_week_id == design_week_id
                )
            )
            last_number = result.scalar_one_or_none() or 0
        except SQLAlchemyError as e:
            raise self._fail("numbering", e) from e

        return await self.create(
            design_week_id=design_week_id,
            session_number=last_number + 1,
            phase=phase,
        )

    async def set_processing_status(self, session_id: UUID, status: str) -> None:
        values = {"processing_status": status}
        if status in ("COMPLETE", "FAILED"):
            values["processed_at"] = datetime.now(timezone.utc)
        try:
            await self.session.execute(
                update(DesignSession)
                .where(DesignSession.id == session_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail("updating status of", e) from e
