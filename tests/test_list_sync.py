import asyncio

import pytest

from fakes import list_entry
from malrec.core.errors import UpstreamError
from malrec.db.schemas import ItemType
from malrec.services.list_service import ListSyncService


class ListMAL:
    def __init__(self, anime=None, manga=None):
        self.lists = {ItemType.ANIME: anime, ItemType.MANGA: manga}

    async def get_user_list(self, token, item_type, limit=None):
        result = self.lists[item_type]
        if isinstance(result, Exception):
            raise result
        return result


class RecordingStore:
    def __init__(self):
        self.replaced = {}

    async def replace_user_list_cache(self, user_id, item_type, entries):
        self.replaced[(user_id, item_type)] = entries
        return len({e.item_id for e in entries})


def test_both_lists_are_replaced():
    store = RecordingStore()
    mal = ListMAL(
        anime=[list_entry(1, 8), list_entry(2, 0)],
        manga=[list_entry(3, 9, item_type=ItemType.MANGA)],
    )
    response = asyncio.run(ListSyncService(mal, store).sync(7, "token"))

    assert response.anime_count == 2
    assert response.manga_count == 1
    assert response.errors == []
    assert set(store.replaced) == {(7, ItemType.ANIME), (7, ItemType.MANGA)}


def test_one_failed_side_keeps_the_other():
    store = RecordingStore()
    mal = ListMAL(anime=[list_entry(1, 8)], manga=RuntimeError("MAL unavailable"))
    response = asyncio.run(ListSyncService(mal, store).sync(7, "token"))

    assert response.anime_count == 1
    assert response.manga_count is None
    assert len(response.errors) == 1
    assert (7, ItemType.MANGA) not in store.replaced


def test_both_failing_is_upstream_error():
    mal = ListMAL(anime=RuntimeError("down"), manga=RuntimeError("down"))
    with pytest.raises(UpstreamError):
        asyncio.run(ListSyncService(mal, RecordingStore()).sync(7, "token"))
