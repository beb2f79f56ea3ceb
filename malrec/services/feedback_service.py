"""Like/dislike feedback store.

At most one record exists per (user, item type, item). Sending the same
kind again removes it; sending the other kind replaces it.
"""

import logging
from collections import defaultdict

from sqlalchemy import select, delete
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from malrec.db.models import UserFeedback, utcnow
from malrec.db.schemas import FeedbackKind, FeedbackRecord, ItemType

logger = logging.getLogger(__name__)


def build_feedback_upsert(
    user_id: int,
    item_id: int,
    item_type: ItemType,
    kind: FeedbackKind,
    rating: int | None = None,
):
    """INSERT ... ON CONFLICT statement keyed by (user, item type, item)."""
    stmt = insert(UserFeedback).values(
        user_id=user_id,
        item_type=item_type.value,
        item_id=item_id,
        feedback_type=kind.value,
        rating=rating,
        created_at=utcnow(),
    )
    return stmt.on_conflict_do_update(
        index_elements=["user_id", "item_type", "item_id"],
        set_={
            "feedback_type": stmt.excluded.feedback_type,
            "rating": stmt.excluded.rating,
            "created_at": stmt.excluded.created_at,
        },
    )


class FeedbackService:
    """Reads and writes user_feedback."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _item_ids(self, user_id: int, item_type: ItemType, kind: FeedbackKind) -> list[int]:
        result = await self.db.execute(
            select(UserFeedback.item_id)
            .where(UserFeedback.user_id == user_id)
            .where(UserFeedback.item_type == item_type.value)
            .where(UserFeedback.feedback_type == kind.value)
        )
        return list(result.scalars().all())

    async def get_likes(self, user_id: int, item_type: ItemType) -> list[int]:
        return await self._item_ids(user_id, item_type, FeedbackKind.LIKE)

    async def get_dislikes(self, user_id: int, item_type: ItemType) -> list[int]:
        return await self._item_ids(user_id, item_type, FeedbackKind.DISLIKE)

    async def get_all_likes_excluding(
        self, user_id: int, item_type: ItemType
    ) -> dict[int, list[int]]:
        """Liked item ids of every other user, grouped by user."""
        result = await self.db.execute(
            select(UserFeedback.user_id, UserFeedback.item_id)
            .where(UserFeedback.user_id != user_id)
            .where(UserFeedback.item_type == item_type.value)
            .where(UserFeedback.feedback_type == FeedbackKind.LIKE.value)
        )
        likes: dict[int, list[int]] = defaultdict(list)
        for other_id, item_id in result.all():
            likes[other_id].append(item_id)
        return dict(likes)

    async def get_likes_for_users(
        self, user_ids: list[int], item_type: ItemType
    ) -> dict[int, list[int]]:
        if not user_ids:
            return {}
        result = await self.db.execute(
            select(UserFeedback.user_id, UserFeedback.item_id)
            .where(UserFeedback.user_id.in_(user_ids))
            .where(UserFeedback.item_type == item_type.value)
            .where(UserFeedback.feedback_type == FeedbackKind.LIKE.value)
        )
        likes: dict[int, list[int]] = defaultdict(list)
        for other_id, item_id in result.all():
            likes[other_id].append(item_id)
        return dict(likes)

    async def list_feedback(
        self, user_id: int, item_type: ItemType | None = None
    ) -> list[FeedbackRecord]:
        query = select(UserFeedback).where(UserFeedback.user_id == user_id)
        if item_type:
            query = query.where(UserFeedback.item_type == item_type.value)
        result = await self.db.execute(query.order_by(UserFeedback.created_at.desc()))
        return [
            FeedbackRecord(
                user_id=row.user_id,
                item_id=row.item_id,
                item_type=ItemType(row.item_type),
                kind=FeedbackKind(row.feedback_type),
                rating=row.rating,
                created_at=row.created_at,
            )
            for row in result.scalars().all()
        ]

    async def toggle_feedback(
        self,
        user_id: int,
        item_id: int,
        item_type: ItemType,
        kind: FeedbackKind,
        rating: int | None = None,
    ) -> FeedbackKind | None:
        """Apply a like/dislike click and return the resulting state."""
        result = await self.db.execute(
            select(UserFeedback.feedback_type)
            .where(UserFeedback.user_id == user_id)
            .where(UserFeedback.item_type == item_type.value)
            .where(UserFeedback.item_id == item_id)
        )
        current = result.scalar_one_or_none()

        if current == kind.value:
            await self.db.execute(
                delete(UserFeedback)
                .where(UserFeedback.user_id == user_id)
                .where(UserFeedback.item_type == item_type.value)
                .where(UserFeedback.item_id == item_id)
            )
            await self.db.commit()
            logger.info(f"Removed {kind.value} on {item_type.value} {item_id} for user {user_id}")
            return None

        await self.db.execute(build_feedback_upsert(user_id, item_id, item_type, kind, rating))
        await self.db.commit()
        logger.info(f"Recorded {kind.value} on {item_type.value} {item_id} for user {user_id}")
        return kind
