"""
User list snapshot store and MAL sync.

The snapshot is replaced wholesale on every login/sync: all rows for
(user, item type) are deleted and the fresh list inserted in the same
transaction. The recommendation core only reads it.
"""

import asyncio
import logging

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from malrec.core.errors import UpstreamError
from malrec.core.mal_client import MALClient
from malrec.db.models import UserListEntry, utcnow
from malrec.db.schemas import ItemType, ListEntry, SyncResponse

logger = logging.getLogger(__name__)


def _to_row(user_id: int, entry: ListEntry, cached_at) -> dict:
    data = entry.model_dump(mode="json")
    data["user_id"] = user_id
    data["cached_at"] = cached_at
    return data


class ListCacheService:
    """Reads and replaces user_list_entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_list_cache(self, user_id: int, item_type: ItemType) -> list[ListEntry]:
        result = await self.db.execute(
            select(UserListEntry)
            .where(UserListEntry.user_id == user_id)
            .where(UserListEntry.item_type == item_type.value)
        )
        return [
            ListEntry(
                item_id=row.item_id,
                item_type=ItemType(row.item_type),
                title=row.title,
                image_url=row.image_url,
                score=row.score,
                status=row.status,
                genres=row.genres,
                synopsis=row.synopsis,
                studios=row.studios,
                authors=row.authors,
                mean_score=row.mean_score,
                popularity=row.popularity,
                season=row.season,
                year=row.year,
                num_episodes=row.num_episodes,
                num_chapters=row.num_chapters,
                num_volumes=row.num_volumes,
                media_type=row.media_type,
            )
            for row in result.scalars().all()
        ]

    async def get_user_list_ids(self, user_id: int, item_type: ItemType) -> set[int]:
        result = await self.db.execute(
            select(UserListEntry.item_id)
            .where(UserListEntry.user_id == user_id)
            .where(UserListEntry.item_type == item_type.value)
        )
        return set(result.scalars().all())

    async def replace_user_list_cache(
        self, user_id: int, item_type: ItemType, entries: list[ListEntry]
    ) -> int:
        """Delete-then-insert in one transaction. Returns rows written."""
        now = utcnow()
        # MAL can repeat an entry across pages when the list changes mid-sync
        unique = {entry.item_id: entry for entry in entries}
        try:
            await self.db.execute(
                delete(UserListEntry)
                .where(UserListEntry.user_id == user_id)
                .where(UserListEntry.item_type == item_type.value)
            )
            if unique:
                self.db.add_all(
                    UserListEntry(**_to_row(user_id, entry, now)) for entry in unique.values()
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Cached {len(unique)} {item_type.value} entries for user {user_id}")
        return len(unique)


class ListSyncService:
    """Refreshes both list snapshots from MAL."""

    def __init__(self, mal: MALClient, lists: ListCacheService):
        self.mal = mal
        self.lists = lists

    async def sync(self, user_id: int, token: str) -> SyncResponse:
        """
        Fetch anime and manga lists concurrently and replace each snapshot.

        One failing side does not block the other. If both fail the error
        propagates as UpstreamError.
        """
        anime, manga = await asyncio.gather(
            self.mal.get_user_list(token, ItemType.ANIME),
            self.mal.get_user_list(token, ItemType.MANGA),
            return_exceptions=True,
        )

        response = SyncResponse()
        for item_type, fetched in ((ItemType.ANIME, anime), (ItemType.MANGA, manga)):
            if isinstance(fetched, Exception):
                logger.warning(f"[{user_id}] {item_type.value} list fetch failed: {fetched}")
                response.errors.append(f"{item_type.value}: {fetched}")
                continue
            count = await self.lists.replace_user_list_cache(user_id, item_type, fetched)
            if item_type == ItemType.ANIME:
                response.anime_count = count
            else:
                response.manga_count = count

        if response.anime_count is None and response.manga_count is None:
            raise UpstreamError("Could not fetch your lists from MyAnimeList")
        return response
