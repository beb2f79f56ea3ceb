"""
Cooldown and cache controller.

Per (user, item type, mode) key there are two states:

- Open: no active batch, generation is allowed
- Active: a batch exists and has not expired; requests get it back unchanged

The batch lives in two places. The recommendation_cache row is authoritative
and is read first; the Redis entry mirrors it and is written right after a
successful server write. Either may be missing. Failures on either layer are
logged and never fail the request.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from malrec.config import Settings
from malrec.core.cache import CacheService
from malrec.db.schemas import CooldownStatus, ItemType, RecommendationBatch, RecommendationMode
from malrec.services.recommendation_cache_service import RecommendationCacheService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpiryPolicy(Protocol):
    def expires_at(self, generated_at: datetime) -> datetime: ...


@dataclass(frozen=True)
class RollingExpiry:
    """Batch expires a fixed number of hours after generation."""
    hours: int = 12

    def expires_at(self, generated_at: datetime) -> datetime:
        return generated_at + timedelta(hours=self.hours)


@dataclass(frozen=True)
class TwiceDailyExpiry:
    """Batch expires at the next 00:00 or 12:00 wall-clock time in tz."""
    tz: ZoneInfo = ZoneInfo("UTC")

    def expires_at(self, generated_at: datetime) -> datetime:
        local = generated_at.astimezone(self.tz)
        if local.hour < 12:
            reset = local.replace(hour=12, minute=0, second=0, microsecond=0)
        else:
            next_day = (local + timedelta(days=1)).date()
            reset = datetime(next_day.year, next_day.month, next_day.day, tzinfo=self.tz)
        return reset.astimezone(timezone.utc)


def expiry_policy_from_settings(settings: Settings) -> ExpiryPolicy:
    if settings.cooldown_policy == "twice_daily":
        return TwiceDailyExpiry(ZoneInfo(settings.cooldown_timezone))
    return RollingExpiry(settings.cooldown_hours)


@dataclass
class CooldownCheck:
    can_generate: bool
    cached_batch: RecommendationBatch | None = None


class CooldownController:
    """Gates generation per (user, item type, mode) behind the expiry window."""

    def __init__(
        self,
        local_cache: CacheService,
        server_cache: RecommendationCacheService | None,
        policy: ExpiryPolicy,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.local_cache = local_cache
        self.server_cache = server_cache
        self.policy = policy
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    def expires_at(self, generated_at: datetime) -> datetime:
        return self.policy.expires_at(generated_at)

    # ------------------------------------------------------------------
    # Local mirror (Redis)
    # ------------------------------------------------------------------

    async def check_cooldown(
        self, user_id: int, item_type: ItemType, mode: RecommendationMode
    ) -> CooldownCheck:
        """Serve an unexpired local entry; purge it once expired."""
        key = CacheService.cooldown_key(user_id, item_type.value, mode.value)
        cached = await self.local_cache.get(key)
        if not cached:
            return CooldownCheck(can_generate=True)

        try:
            batch = RecommendationBatch.model_validate(cached)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cooldown entry {key}: {e.errors()[:1]}")
            await self.local_cache.delete(key)
            return CooldownCheck(can_generate=True)

        if self.now() >= batch.expires_at:
            await self.local_cache.delete(key)
            return CooldownCheck(can_generate=True)

        return CooldownCheck(
            can_generate=False,
            cached_batch=batch.model_copy(update={"source": "local_cache"}),
        )

    async def save_cooldown(self, batch: RecommendationBatch) -> bool:
        """Write the local entry with a TTL matching the batch expiry."""
        ttl = math.ceil((batch.expires_at - self.now()).total_seconds())
        if ttl <= 0:
            return False
        key = CacheService.cooldown_key(batch.user_id, batch.item_type.value, batch.mode.value)
        saved = await self.local_cache.set(key, batch.model_dump(mode="json"), ttl=ttl)
        if not saved:
            logger.warning(f"Cooldown mirror write failed for {key}")
        return saved

    # ------------------------------------------------------------------
    # Server cache (authoritative)
    # ------------------------------------------------------------------

    async def get_server_batch(
        self, user_id: int, item_type: ItemType, mode: RecommendationMode
    ) -> RecommendationBatch | None:
        if self.server_cache is None:
            return None
        try:
            return await self.server_cache.get(user_id, item_type, mode, now=self.now())
        except Exception as e:
            logger.warning(f"Server cache read failed for user {user_id}: {e}")
            return None

    async def save_server_batch(self, batch: RecommendationBatch, metadata: dict | None = None) -> bool:
        if self.server_cache is None:
            return False
        try:
            await self.server_cache.upsert(batch, metadata)
            return True
        except Exception as e:
            logger.error(
                f"Server cache write failed for user {batch.user_id} "
                f"({batch.item_type.value}/{batch.mode.value}): {e}"
            )
            return False

    # ------------------------------------------------------------------
    # Combined operations
    # ------------------------------------------------------------------

    async def persist(
        self,
        batch: RecommendationBatch,
        metadata: dict | None = None,
        server: bool = True,
    ) -> None:
        """Write server row, then local mirror. Neither failure propagates."""
        if server:
            await self.save_server_batch(batch, metadata)
        await self.save_cooldown(batch)

    async def invalidate(self, user_id: int, item_type: ItemType | None = None) -> None:
        """Drop server rows and local mirrors so the next request regenerates."""
        if self.server_cache is not None:
            await self.server_cache.invalidate(user_id, item_type)
        await self.local_cache.flush_pattern(
            CacheService.cooldown_pattern(user_id, item_type.value if item_type else None)
        )

    async def status(
        self, user_id: int, item_type: ItemType, mode: RecommendationMode
    ) -> CooldownStatus:
        """Report whether a batch is active and how long until it expires."""
        batch = None
        if mode == RecommendationMode.NEW:
            batch = await self.get_server_batch(user_id, item_type, mode)
        if batch is None:
            batch = (await self.check_cooldown(user_id, item_type, mode)).cached_batch
        if batch is None:
            return CooldownStatus(item_type=item_type, mode=mode, active=False)

        remaining = max(0, int((batch.expires_at - self.now()).total_seconds()))
        return CooldownStatus(
            item_type=item_type,
            mode=mode,
            active=True,
            expires_at=batch.expires_at,
            remaining_seconds=remaining,
        )
