"""
Rate-limited MyAnimeList API v2 client.

Every response is normalized into CatalogItem / ListEntry records at this
boundary; nothing past this module sees raw MAL JSON. Calls are made on
behalf of a user with their OAuth access token, or with the app client id
when no token is given.
"""

import asyncio
import logging
from collections import deque
from time import time

import httpx
from pydantic import ValidationError

from malrec.config import Settings
from malrec.core.retry import RetryConfig, async_retry
from malrec.db.schemas import CatalogItem, ItemType, ListEntry

logger = logging.getLogger(__name__)

SEASONS = ("winter", "spring", "summer", "fall")

ANIME_LIST_FIELDS = "id,title,main_picture,genres,mean,status,num_episodes,media_type,source"
MANGA_LIST_FIELDS = "id,title,main_picture,genres,mean,status,num_chapters,num_volumes,media_type"

ANIME_DETAIL_FIELDS = (
    "id,title,main_picture,alternative_titles,start_date,end_date,synopsis,mean,rank,"
    "popularity,num_episodes,start_season,broadcast,source,average_episode_duration,"
    "rating,studios,genres,media_type,status"
)
MANGA_DETAIL_FIELDS = (
    "id,title,main_picture,alternative_titles,start_date,end_date,synopsis,mean,rank,"
    "popularity,num_chapters,num_volumes,authors{first_name,last_name},genres,media_type,status"
)

ANIME_USER_LIST_FIELDS = (
    "list_status,id,title,main_picture,genres,mean,status,num_episodes,media_type,"
    "synopsis,studios,popularity,start_season"
)
MANGA_USER_LIST_FIELDS = (
    "list_status,id,title,main_picture,genres,mean,status,num_chapters,num_volumes,"
    "media_type,synopsis,authors{first_name,last_name},popularity"
)

USER_LIST_PAGE_SIZE = 100


class RateLimiter:
    """Sliding-window rate limiter for the MAL API."""

    def __init__(self, max_requests: int = 60, window_seconds: int = 60):
        self.max_requests = max_requests
        self.window = window_seconds
        self.requests: deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self):
        """Wait until a request can be made within rate limits."""
        async with self._lock:
            while True:
                now = time()

                while self.requests and self.requests[0] < now - self.window:
                    self.requests.popleft()

                if len(self.requests) < self.max_requests:
                    self.requests.append(now)
                    break

                sleep_time = self.requests[0] + self.window - now
                if sleep_time > 0:
                    logger.info(f"Rate limit reached, waiting {sleep_time:.2f}s")
                    await asyncio.sleep(sleep_time)


class MALClient:
    """Async client for the MAL API v2.

    The underlying httpx client can be injected, which is how tests plug in
    an httpx.MockTransport.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self.base_url = settings.mal_api_url
        self.client_id = settings.mal_client_id
        self.timeout = settings.catalog_fetch_timeout
        self.user_list_timeout = settings.user_list_timeout
        self.user_list_limit = settings.mal_user_list_limit
        self.retry_config = RetryConfig.from_settings(settings)
        self.rate_limiter = RateLimiter(
            max_requests=settings.mal_rate_limit_requests,
            window_seconds=settings.mal_rate_limit_window,
        )
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _auth_headers(self, token: str | None) -> dict[str, str]:
        if token:
            return {"Authorization": f"Bearer {token}"}
        if self.client_id:
            return {"X-MAL-CLIENT-ID": self.client_id}
        return {}

    async def _request(
        self,
        endpoint: str,
        token: str | None,
        params: dict | None = None,
    ) -> dict:
        """
        Make a rate-limited GET to the MAL API with automatic retry.

        Retries are performed for transient errors (network issues, timeouts,
        429, 5xx). Other HTTP errors are raised immediately.
        """
        query = {k: v for k, v in (params or {}).items() if v is not None}

        @async_retry(self.retry_config)
        async def do_request() -> dict:
            await self.rate_limiter.acquire()
            client = await self._get_client()

            try:
                response = await client.get(
                    endpoint,
                    params=query,
                    headers=self._auth_headers(token),
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                logger.warning(
                    f"MAL API error: {e.response.status_code} - {e.response.text[:200]}"
                )
                raise

        try:
            return await do_request()
        except Exception as e:
            logger.error(f"MAL API request failed after retries: {endpoint} - {e}")
            raise

    @staticmethod
    def _parse_items(rows: list[dict]) -> list[CatalogItem]:
        items = []
        for row in rows:
            try:
                items.append(CatalogItem.from_node(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed catalog node: {e.errors()[:1]}")
        return items

    async def get_user_info(self, token: str) -> dict:
        """Get the profile of the token's owner."""
        return await self._request(
            "/users/@me",
            token,
            {"fields": "id,name,picture,joined_at,anime_statistics,manga_statistics"},
        )

    async def get_seasonal_items(
        self,
        token: str | None,
        year: int,
        season: str,
        limit: int = 50,
    ) -> list[CatalogItem]:
        """Get anime from one broadcast season."""
        if season not in SEASONS:
            raise ValueError(f"Unknown season: {season}")
        data = await self._request(
            f"/anime/season/{year}/{season}",
            token,
            {"limit": limit, "fields": ANIME_LIST_FIELDS},
        )
        return self._parse_items(data.get("data", []))

    async def get_ranking(
        self,
        token: str | None,
        item_type: ItemType,
        ranking_type: str = "all",
        limit: int = 100,
    ) -> list[CatalogItem]:
        """Get a ranking list (anime or manga)."""
        fields = ANIME_LIST_FIELDS if item_type == ItemType.ANIME else MANGA_LIST_FIELDS
        data = await self._request(
            f"/{item_type.value}/ranking",
            token,
            {"ranking_type": ranking_type, "limit": limit, "fields": fields},
        )
        return self._parse_items(data.get("data", []))

    async def get_item_details(
        self,
        token: str | None,
        item_type: ItemType,
        item_id: int,
    ) -> CatalogItem:
        """Get the full detail record for one item."""
        fields = ANIME_DETAIL_FIELDS if item_type == ItemType.ANIME else MANGA_DETAIL_FIELDS
        data = await self._request(f"/{item_type.value}/{item_id}", token, {"fields": fields})
        return CatalogItem.from_node(data)

    async def get_user_list(
        self,
        token: str,
        item_type: ItemType,
        limit: int | None = None,
    ) -> list[ListEntry]:
        """
        Fetch the token owner's complete anime or manga list.

        Pages through the list 100 entries at a time following paging.next,
        up to `limit` entries.

        Raises:
            asyncio.TimeoutError: If pagination takes longer than user_list_timeout
        """
        limit = limit or self.user_list_limit
        fields = (
            ANIME_USER_LIST_FIELDS if item_type == ItemType.ANIME else MANGA_USER_LIST_FIELDS
        )
        entries: list[ListEntry] = []
        offset = 0

        async with asyncio.timeout(self.user_list_timeout):
            while offset < limit:
                data = await self._request(
                    f"/users/@me/{item_type.value}list",
                    token,
                    {
                        "fields": fields,
                        "limit": min(USER_LIST_PAGE_SIZE, limit - offset),
                        "offset": offset,
                        "sort": "list_updated_at",
                        "nsfw": "true",
                    },
                )
                for row in data.get("data", []):
                    try:
                        entries.append(ListEntry.from_api(row, item_type))
                    except ValidationError as e:
                        logger.warning(f"Skipping malformed list row: {e.errors()[:1]}")

                if not (data.get("paging") or {}).get("next"):
                    break
                offset += USER_LIST_PAGE_SIZE

        logger.info(f"Fetched {len(entries)} {item_type.value} list entries")
        return entries
