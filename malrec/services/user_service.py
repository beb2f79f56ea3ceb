"""MAL account records and token ownership."""

import logging

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from malrec.core.cache import CacheService
from malrec.core.errors import UpstreamError
from malrec.core.mal_client import MALClient
from malrec.db.models import User, utcnow

logger = logging.getLogger(__name__)


def build_user_upsert(mal_id: int, username: str, avatar_url: str | None):
    now = utcnow()
    stmt = insert(User).values(
        mal_id=mal_id,
        username=username,
        avatar_url=avatar_url,
        created_at=now,
        updated_at=now,
    )
    return stmt.on_conflict_do_update(
        index_elements=["mal_id"],
        set_={
            "username": stmt.excluded.username,
            "avatar_url": stmt.excluded.avatar_url,
            "updated_at": stmt.excluded.updated_at,
        },
    )


class UserService:
    def __init__(
        self,
        db: AsyncSession,
        mal: MALClient,
        cache: CacheService | None = None,
        owner_ttl: int = 600,
    ):
        self.db = db
        self.mal = mal
        self.cache = cache
        self.owner_ttl = owner_ttl

    async def _fetch_profile(self, token: str) -> dict:
        try:
            return await self.mal.get_user_info(token)
        except Exception as e:
            logger.error(f"MAL profile fetch failed: {e}")
            raise UpstreamError("Could not load your MyAnimeList profile") from e

    async def identify(self, token: str) -> int:
        """
        Return the MAL id of the token's owner.

        The lookup is cached for owner_ttl seconds so writes such as feedback
        clicks do not each cost a MAL round trip.
        """
        key = CacheService.token_owner_key(token)
        if self.cache:
            cached = await self.cache.get(key)
            if cached is not None:
                return int(cached)

        info = await self._fetch_profile(token)
        if self.cache:
            await self.cache.set(key, info["id"], ttl=self.owner_ttl)
        return info["id"]

    async def refresh_profile(self, token: str) -> int:
        """Store the token owner's profile and return their MAL id."""
        info = await self._fetch_profile(token)
        await self.db.execute(build_user_upsert(info["id"], info["name"], info.get("picture")))
        await self.db.commit()
        if self.cache:
            await self.cache.set(CacheService.token_owner_key(token), info["id"], ttl=self.owner_ttl)
        return info["id"]
