"""
SQLAlchemy ORM models.

============================================================================
PER-USER STATE ONLY
============================================================================
The MAL catalog is never mirrored here. These tables hold what the service
needs to remember about each user between requests:

- User: MAL account and OAuth tokens
- UserListEntry: snapshot of the user's anime/manga list (bulk-replaced on sync)
- UserFeedback: like/dislike signals, at most one per (user, item)
- UserPreference: genre preferences and minimum score
- RecommendationCache: authoritative copy of the active batch per (user, type, mode)
- SharedRecommendation: share links with a fixed lifetime
============================================================================
"""

from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Integer, BigInteger, Float, Text, DateTime,
    Index, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB

from malrec.db.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """A MAL account that has logged in at least once."""

    __tablename__ = "users"

    mal_id = Column(BigInteger, primary_key=True)
    username = Column(String(100), nullable=False)
    avatar_url = Column(String(500))
    access_token = Column(Text)
    refresh_token = Column(Text)
    token_expires_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class UserListEntry(Base):
    """Cached row of a user's MAL anime or manga list."""

    __tablename__ = "user_list_entries"

    user_id = Column(BigInteger, primary_key=True)
    item_type = Column(String(10), primary_key=True)  # anime | manga
    item_id = Column(Integer, primary_key=True)
    title = Column(String(500), nullable=False)
    image_url = Column(String(500))
    score = Column(Integer, nullable=False, default=0)  # 0 = unrated
    status = Column(String(30))  # watching, completed, on_hold, dropped, plan_to_watch, reading...
    genres = Column(JSONB, nullable=False, default=list)  # [{"id": 1, "name": "Action"}]
    synopsis = Column(Text)
    studios = Column(JSONB, nullable=False, default=list)
    authors = Column(JSONB, nullable=False, default=list)
    mean_score = Column(Float)
    popularity = Column(Integer)
    season = Column(String(10))
    year = Column(Integer)
    num_episodes = Column(Integer)
    num_chapters = Column(Integer)
    num_volumes = Column(Integer)
    media_type = Column(String(30))
    cached_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_list_entries_user_type", "user_id", "item_type"),
    )


class UserFeedback(Base):
    """Like/dislike on a recommended item."""

    __tablename__ = "user_feedback"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False)
    item_type = Column(String(10), nullable=False)
    item_id = Column(Integer, nullable=False)
    feedback_type = Column(String(10), nullable=False)  # like | dislike
    rating = Column(Integer)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "item_type", "item_id", name="uq_feedback_user_item"),
        CheckConstraint("feedback_type IN ('like', 'dislike')", name="ck_feedback_type"),
        Index("idx_feedback_type_kind", "item_type", "feedback_type"),
    )


class UserPreference(Base):
    """Genre preferences and score threshold for recommendations."""

    __tablename__ = "user_preferences"

    user_id = Column(BigInteger, primary_key=True)
    favorite_genres = Column(JSONB, nullable=False, default=list)  # MAL genre ids
    excluded_genres = Column(JSONB, nullable=False, default=list)
    preferred_studios = Column(JSONB, nullable=False, default=list)
    preferred_authors = Column(JSONB, nullable=False, default=list)
    preferred_media_types = Column(JSONB, nullable=False, default=list)
    min_score = Column(Float, nullable=False, default=7.0)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class RecommendationCache(Base):
    """Server-side copy of the active batch, one row per (user, type, mode)."""

    __tablename__ = "recommendation_cache"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False)
    item_type = Column(String(10), nullable=False)
    mode = Column(String(10), nullable=False)
    recommendations = Column(JSONB, nullable=False)
    batch_metadata = Column(JSONB, nullable=False, default=dict)
    generated_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "item_type", "mode", name="uq_rec_cache_key"),
        Index("idx_rec_cache_expires", "expires_at"),
    )


class SharedRecommendation(Base):
    """A batch shared through a short public code."""

    __tablename__ = "shared_recommendations"

    share_code = Column(String(16), primary_key=True)
    item_type = Column(String(10), nullable=False)
    mode = Column(String(10), nullable=False)
    recommendations = Column(JSONB, nullable=False)
    created_by = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_shared_expires", "expires_at"),
    )
