from datetime import datetime, timedelta, timezone

from sqlalchemy.dialects import postgresql

from malrec.db.schemas import (
    FeedbackKind, ItemType, RecommendationBatch, RecommendationItem, RecommendationMode,
)
from malrec.services.feedback_service import build_feedback_upsert
from malrec.services.recommendation_cache_service import build_cache_upsert
from malrec.services.user_service import build_user_upsert


def compiled(stmt):
    return str(stmt.compile(dialect=postgresql.dialect()))


def test_cache_upsert_targets_the_batch_key():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    batch = RecommendationBatch(
        user_id=1,
        item_type=ItemType.ANIME,
        mode=RecommendationMode.NEW,
        items=[RecommendationItem(id=5, title="Item 5", item_type=ItemType.ANIME)],
        generated_at=now,
        expires_at=now + timedelta(hours=12),
    )
    sql = compiled(build_cache_upsert(batch, {"candidates": 8}))

    assert sql.startswith("INSERT INTO recommendation_cache")
    assert "ON CONFLICT (user_id, item_type, mode) DO UPDATE" in sql
    assert "expires_at = excluded.expires_at" in sql
    assert "batch_metadata = excluded.batch_metadata" in sql


def test_feedback_upsert_replaces_kind():
    stmt = build_feedback_upsert(1, 99, ItemType.MANGA, FeedbackKind.DISLIKE)
    sql = compiled(stmt)

    assert "ON CONFLICT (user_id, item_type, item_id) DO UPDATE" in sql
    assert "feedback_type = excluded.feedback_type" in sql
    params = stmt.compile(dialect=postgresql.dialect()).params
    assert params["feedback_type"] == "dislike"
    assert params["item_type"] == "manga"


def test_user_upsert_refreshes_profile():
    sql = compiled(build_user_upsert(42, "someone", None))
    assert "ON CONFLICT (mal_id) DO UPDATE" in sql
    assert "username = excluded.username" in sql
