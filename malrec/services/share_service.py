"""Share links for recommendation batches."""

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from malrec.core.errors import ShareLinkNotFoundError
from malrec.db.models import SharedRecommendation, utcnow
from malrec.db.schemas import (
    ItemType, RecommendationItem, RecommendationMode, ShareResponse,
)

logger = logging.getLogger(__name__)

# Excludes 0/O and 1/I/l
SHARE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"
SHARE_CODE_LENGTH = 8


def generate_share_code(length: int = SHARE_CODE_LENGTH) -> str:
    return "".join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(length))


def _to_response(row: SharedRecommendation) -> ShareResponse:
    return ShareResponse(
        share_code=row.share_code,
        item_type=ItemType(row.item_type),
        mode=RecommendationMode(row.mode),
        items=[RecommendationItem.model_validate(item) for item in row.recommendations],
        created_by=row.created_by,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )


class ShareService:
    def __init__(self, db: AsyncSession, lifetime_days: int = 7):
        self.db = db
        self.lifetime = timedelta(days=lifetime_days)

    async def create(
        self,
        user_id: int,
        item_type: ItemType,
        mode: RecommendationMode,
        items: list[RecommendationItem],
    ) -> ShareResponse:
        now = utcnow()
        row = SharedRecommendation(
            share_code=generate_share_code(),
            item_type=item_type.value,
            mode=mode.value,
            recommendations=[item.model_dump(mode="json") for item in items],
            created_by=user_id,
            created_at=now,
            expires_at=now + self.lifetime,
        )
        self.db.add(row)
        await self.db.commit()
        logger.info(f"User {user_id} shared {len(items)} {item_type.value} items as {row.share_code}")
        return _to_response(row)

    async def get(self, share_code: str, now: datetime | None = None) -> ShareResponse:
        """Look up a share link. Missing and expired links are both not-found."""
        result = await self.db.execute(
            select(SharedRecommendation).where(SharedRecommendation.share_code == share_code)
        )
        row = result.scalar_one_or_none()
        if row is None or row.expires_at <= (now or utcnow()):
            raise ShareLinkNotFoundError()
        return _to_response(row)

    async def delete_expired(self, now: datetime | None = None) -> int:
        result = await self.db.execute(
            delete(SharedRecommendation).where(SharedRecommendation.expires_at <= (now or utcnow()))
        )
        await self.db.commit()
        return result.rowcount
