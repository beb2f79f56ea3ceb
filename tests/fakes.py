"""In-memory stand-ins for Redis, Postgres-backed services and the MAL client."""

from datetime import datetime, timezone
from fnmatch import fnmatch

from malrec.db.schemas import CatalogItem, ItemType, ListEntry, Preferences


class FakeCache:
    def __init__(self, fail=False):
        self.data = {}
        self.ttls = {}
        self.fail = fail

    async def get(self, key):
        return None if self.fail else self.data.get(key)

    async def set(self, key, value, ttl=None):
        if self.fail:
            return False
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, key):
        self.data.pop(key, None)
        return True

    async def flush_pattern(self, pattern):
        matched = [key for key in self.data if fnmatch(key, pattern)]
        for key in matched:
            del self.data[key]
        return len(matched)


class FakeServerCache:
    def __init__(self, fail_reads=False, fail_writes=False):
        self.rows = {}
        self.metadata = {}
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    async def get(self, user_id, item_type, mode, now=None):
        if self.fail_reads:
            raise RuntimeError("database unavailable")
        batch = self.rows.get((user_id, item_type, mode))
        if batch is None or batch.expires_at <= now:
            return None
        return batch.model_copy(update={"source": "server_cache"})

    async def upsert(self, batch, metadata=None):
        if self.fail_writes:
            raise RuntimeError("database unavailable")
        key = (batch.user_id, batch.item_type, batch.mode)
        self.rows[key] = batch
        self.metadata[key] = metadata or {}

    async def invalidate(self, user_id, item_type=None):
        doomed = [k for k in self.rows if k[0] == user_id and (item_type is None or k[1] == item_type)]
        for key in doomed:
            del self.rows[key]
        return len(doomed)


class FakeMAL:
    def __init__(self, seasonal=None, ranking=None, details=None, fail_seasons=False):
        self.seasonal = seasonal or []
        self.ranking = ranking or []
        self.details = details or {}
        self.fail_seasons = fail_seasons
        self.calls = []

    async def get_seasonal_items(self, token, year, season, limit=50):
        self.calls.append(("seasonal", year, season))
        if self.fail_seasons:
            raise RuntimeError("MAL unavailable")
        return list(self.seasonal)

    async def get_ranking(self, token, item_type, ranking_type="all", limit=100):
        self.calls.append(("ranking", item_type))
        if isinstance(self.ranking, Exception):
            raise self.ranking
        return list(self.ranking)

    async def get_item_details(self, token, item_type, item_id):
        self.calls.append(("details", item_id))
        if item_id not in self.details:
            raise RuntimeError(f"{item_id} not found")
        return self.details[item_id]


class FakeLists:
    def __init__(self, entries=None, fail=False):
        self.entries = entries or []
        self.fail = fail

    async def get_user_list_cache(self, user_id, item_type):
        if self.fail:
            raise RuntimeError("database unavailable")
        return [e for e in self.entries if e.item_type == item_type]

    async def get_user_list_ids(self, user_id, item_type):
        return {e.item_id for e in await self.get_user_list_cache(user_id, item_type)}


class FakePreferences:
    def __init__(self, preferences=None):
        self.preferences = preferences or Preferences()

    async def get(self, user_id):
        return self.preferences


class NoFeedback:
    async def get_likes(self, user_id, item_type):
        return []

    async def get_dislikes(self, user_id, item_type):
        return []

    async def get_all_likes_excluding(self, user_id, item_type):
        return {}

    async def get_likes_for_users(self, user_ids, item_type):
        return {}


class Clock:
    def __init__(self, now=None):
        self.now = now or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def catalog_item(item_id, mean=8.0, media_type="tv", genres=()):
    return CatalogItem(
        id=item_id,
        title=f"Item {item_id}",
        mean=mean,
        media_type=media_type,
        genres=[{"id": g, "name": f"Genre {g}"} for g in genres],
    )


def list_entry(item_id, score, status="completed", item_type=ItemType.ANIME, genres=()):
    return ListEntry(
        item_id=item_id,
        item_type=item_type,
        title=f"Entry {item_id}",
        score=score,
        status=status,
        genres=[{"id": g, "name": f"Genre {g}"} for g in genres],
    )
