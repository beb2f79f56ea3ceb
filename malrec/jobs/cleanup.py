"""Scheduled cleanup of expired recommendation batches and share links."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from malrec.services.recommendation_cache_service import RecommendationCacheService
from malrec.services.share_service import ShareService

logger = logging.getLogger(__name__)


async def cleanup_expired(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, int]:
    """
    Delete expired recommendation_cache rows and share links.

    Expired rows are never served (reads filter on expires_at), so this only
    reclaims space.
    """
    try:
        async with session_factory() as db:
            batches = await RecommendationCacheService(db).delete_expired()
            shares = await ShareService(db).delete_expired()
    except Exception as e:
        logger.error(f"Expired cache cleanup failed: {e}")
        raise

    if batches or shares:
        logger.info(f"Cleanup: deleted {batches} expired batches and {shares} expired share links")
    else:
        logger.debug("Cleanup: nothing expired")
    return {"recommendation_cache": batches, "shared_recommendations": shares}
