"""User preference storage."""

import logging

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from malrec.db.models import UserPreference, utcnow
from malrec.db.schemas import Preferences

logger = logging.getLogger(__name__)


class PreferencesService:
    def __init__(self, db: AsyncSession, default_min_score: float = 7.0):
        self.db = db
        self.default_min_score = default_min_score

    async def get(self, user_id: int) -> Preferences:
        """Stored preferences, or defaults when the user never saved any."""
        result = await self.db.execute(
            select(UserPreference).where(UserPreference.user_id == user_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return Preferences(min_score=self.default_min_score)
        return Preferences(
            favorite_genres=row.favorite_genres or [],
            excluded_genres=row.excluded_genres or [],
            preferred_studios=row.preferred_studios or [],
            preferred_authors=row.preferred_authors or [],
            preferred_media_types=row.preferred_media_types or [],
            min_score=row.min_score if row.min_score is not None else self.default_min_score,
        )

    async def save(self, user_id: int, preferences: Preferences) -> Preferences:
        values = preferences.model_dump()
        stmt = insert(UserPreference).values(user_id=user_id, updated_at=utcnow(), **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={**{key: stmt.excluded[key] for key in values}, "updated_at": stmt.excluded.updated_at},
        )
        await self.db.execute(stmt)
        await self.db.commit()
        logger.info(f"Saved preferences for user {user_id}")
        return preferences
