"""Server-side recommendation cache.

One row per (user, item type, mode) holding the active batch. This copy is
authoritative; the Redis mirror is only a fast path in front of it.
"""

import logging
from datetime import datetime

from sqlalchemy import select, delete, func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from malrec.db.models import RecommendationCache, utcnow
from malrec.db.schemas import ItemType, RecommendationBatch, RecommendationItem, RecommendationMode

logger = logging.getLogger(__name__)


def build_cache_upsert(batch: RecommendationBatch, metadata: dict | None = None):
    """INSERT ... ON CONFLICT so concurrent writers for one key leave one row."""
    stmt = insert(RecommendationCache).values(
        user_id=batch.user_id,
        item_type=batch.item_type.value,
        mode=batch.mode.value,
        recommendations=[item.model_dump(mode="json") for item in batch.items],
        batch_metadata=metadata or {},
        generated_at=batch.generated_at,
        expires_at=batch.expires_at,
    )
    return stmt.on_conflict_do_update(
        index_elements=["user_id", "item_type", "mode"],
        set_={
            "recommendations": stmt.excluded.recommendations,
            "batch_metadata": stmt.excluded.batch_metadata,
            "generated_at": stmt.excluded.generated_at,
            "expires_at": stmt.excluded.expires_at,
        },
    )


class RecommendationCacheService:
    """Manages the recommendation_cache table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(
        self,
        user_id: int,
        item_type: ItemType,
        mode: RecommendationMode,
        now: datetime | None = None,
    ) -> RecommendationBatch | None:
        """Return the cached batch, or None if missing or expired."""
        now = now or utcnow()
        result = await self.db.execute(
            select(RecommendationCache)
            .where(RecommendationCache.user_id == user_id)
            .where(RecommendationCache.item_type == item_type.value)
            .where(RecommendationCache.mode == mode.value)
            .where(RecommendationCache.expires_at > now)
            .order_by(RecommendationCache.generated_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None

        logger.info(f"Server cache hit for user {user_id} ({item_type.value}/{mode.value})")
        return RecommendationBatch(
            user_id=row.user_id,
            item_type=ItemType(row.item_type),
            mode=RecommendationMode(row.mode),
            items=[RecommendationItem.model_validate(item) for item in row.recommendations],
            generated_at=row.generated_at,
            expires_at=row.expires_at,
            source="server_cache",
        )

    async def upsert(self, batch: RecommendationBatch, metadata: dict | None = None):
        await self.db.execute(build_cache_upsert(batch, metadata))
        await self.db.commit()
        logger.info(
            f"Cached {len(batch.items)} recommendations for user {batch.user_id} "
            f"({batch.item_type.value}/{batch.mode.value}) until {batch.expires_at.isoformat()}"
        )

    async def invalidate(self, user_id: int, item_type: ItemType | None = None) -> int:
        """Delete the user's cached batches, optionally for one item type."""
        stmt = delete(RecommendationCache).where(RecommendationCache.user_id == user_id)
        if item_type:
            stmt = stmt.where(RecommendationCache.item_type == item_type.value)
        result = await self.db.execute(stmt)
        await self.db.commit()
        logger.info(f"Invalidated {result.rowcount} cached batches for user {user_id}")
        return result.rowcount

    async def delete_expired(self, now: datetime | None = None) -> int:
        result = await self.db.execute(
            delete(RecommendationCache).where(RecommendationCache.expires_at <= (now or utcnow()))
        )
        await self.db.commit()
        return result.rowcount

    async def get_cache_stats(self) -> dict:
        now = utcnow()
        total_result = await self.db.execute(select(func.count(RecommendationCache.id)))
        active_result = await self.db.execute(
            select(func.count(RecommendationCache.id)).where(RecommendationCache.expires_at > now)
        )
        return {
            "total_cached_batches": total_result.scalar_one_or_none() or 0,
            "active_cached_batches": active_result.scalar_one_or_none() or 0,
        }
