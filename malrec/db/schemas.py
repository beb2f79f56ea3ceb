"""Pydantic schemas for catalog records, recommendation batches and API payloads."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class ItemType(str, Enum):
    ANIME = "anime"
    MANGA = "manga"


class RecommendationMode(str, Enum):
    """Generation modes. REWATCH and REREAD both draw from the user's own list."""
    NEW = "new"
    REWATCH = "rewatch"
    REREAD = "reread"

    @property
    def from_own_list(self) -> bool:
        return self in (RecommendationMode.REWATCH, RecommendationMode.REREAD)


class FeedbackKind(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"


# ============ Catalog Schemas ============

class Genre(BaseModel):
    id: int
    name: str = ""


class Picture(BaseModel):
    medium: str | None = None
    large: str | None = None


class Studio(BaseModel):
    id: int | None = None
    name: str = ""


class Author(BaseModel):
    id: int | None = None
    first_name: str = ""
    last_name: str = ""
    role: str | None = None


class Season(BaseModel):
    year: int | None = None
    season: str | None = None


def _normalize_authors(value: Any) -> Any:
    # MAL nests authors as {"node": {...}, "role": "Story"}
    if not isinstance(value, list):
        return value
    authors = []
    for raw in value:
        if isinstance(raw, dict) and "node" in raw:
            authors.append({**raw["node"], "role": raw.get("role")})
        else:
            authors.append(raw)
    return authors


class CatalogItem(BaseModel):
    """A MAL anime or manga node, as returned by list/ranking/detail endpoints.

    Only id and title are guaranteed; everything else depends on the
    requested fields and the endpoint.
    """
    id: int
    title: str
    main_picture: Picture | None = None
    mean: float | None = None
    status: str | None = None
    media_type: str | None = None
    genres: list[Genre] = []
    source: str | None = None
    studios: list[Studio] = []
    authors: list[Author] = []
    synopsis: str | None = None
    popularity: int | None = None
    num_episodes: int | None = None
    num_chapters: int | None = None
    num_volumes: int | None = None
    start_season: Season | None = None

    @field_validator("authors", mode="before")
    @classmethod
    def _flatten_authors(cls, value: Any) -> Any:
        return _normalize_authors(value or [])

    @field_validator("genres", "studios", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or []

    @property
    def image_url(self) -> str | None:
        if not self.main_picture:
            return None
        return self.main_picture.medium or self.main_picture.large

    @property
    def genre_ids(self) -> set[int]:
        return {g.id for g in self.genres}

    @classmethod
    def from_node(cls, data: dict) -> "CatalogItem":
        """Build from either a bare node or a {"node": ..., ...} wrapper."""
        node = data.get("node", data)
        return cls.model_validate(node)


class ListEntry(BaseModel):
    """A user's relationship to a catalog item, as cached in user_list_entries."""
    item_id: int
    item_type: ItemType
    title: str
    image_url: str | None = None
    score: int = 0  # User rating, 0 = unrated
    status: str | None = None
    genres: list[Genre] = []
    synopsis: str | None = None
    studios: list[Studio] = []
    authors: list[Author] = []
    mean_score: float | None = None
    popularity: int | None = None
    season: str | None = None
    year: int | None = None
    num_episodes: int | None = None
    num_chapters: int | None = None
    num_volumes: int | None = None
    media_type: str | None = None

    @field_validator("score", mode="before")
    @classmethod
    def _score_default(cls, value: Any) -> Any:
        return value or 0

    @field_validator("genres", "studios", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or []

    @field_validator("authors", mode="before")
    @classmethod
    def _flatten_authors(cls, value: Any) -> Any:
        return _normalize_authors(value or [])

    @property
    def genre_ids(self) -> set[int]:
        return {g.id for g in self.genres}

    @classmethod
    def from_api(cls, data: dict, item_type: ItemType) -> "ListEntry":
        """Build from a MAL user list row: {"node": {...}, "list_status": {...}}."""
        item = CatalogItem.from_node(data)
        list_status = data.get("list_status") or {}
        season = item.start_season
        return cls(
            item_id=item.id,
            item_type=item_type,
            title=item.title,
            image_url=item.image_url,
            score=list_status.get("score") or 0,
            status=list_status.get("status"),
            genres=item.genres,
            synopsis=item.synopsis,
            studios=item.studios,
            authors=item.authors,
            mean_score=item.mean,
            popularity=item.popularity,
            season=season.season if season else None,
            year=season.year if season else None,
            num_episodes=item.num_episodes,
            num_chapters=item.num_chapters,
            num_volumes=item.num_volumes,
            media_type=item.media_type,
        )


# ============ Recommendation Schemas ============

class RecommendationItem(BaseModel):
    """Single entry of a recommendation batch."""
    id: int
    title: str
    image_url: str | None = None
    score: float | None = None  # MAL mean, or the user's own rating in rewatch mode
    genres: list[Genre] = []
    status: str | None = None
    media_type: str | None = None
    num_episodes: int | None = None
    num_chapters: int | None = None
    num_volumes: int | None = None
    item_type: ItemType
    is_rewatch: bool = False
    user_score: int | None = None
    hybrid_score: float | None = None

    @classmethod
    def from_catalog(
        cls,
        item: CatalogItem,
        item_type: ItemType,
        hybrid_score: float | None = None,
    ) -> "RecommendationItem":
        return cls(
            id=item.id,
            title=item.title,
            image_url=item.image_url,
            score=item.mean,
            genres=item.genres,
            status=item.status,
            media_type=item.media_type,
            num_episodes=item.num_episodes,
            num_chapters=item.num_chapters,
            num_volumes=item.num_volumes,
            item_type=item_type,
            hybrid_score=hybrid_score,
        )

    @classmethod
    def from_list_entry(cls, entry: ListEntry) -> "RecommendationItem":
        return cls(
            id=entry.item_id,
            title=entry.title,
            image_url=entry.image_url,
            score=entry.score,
            genres=entry.genres,
            status=entry.status,
            media_type=entry.media_type,
            num_episodes=entry.num_episodes,
            num_chapters=entry.num_chapters,
            num_volumes=entry.num_volumes,
            item_type=entry.item_type,
            is_rewatch=True,
            user_score=entry.score,
        )


class RecommendationBatch(BaseModel):
    """The unit produced and cached per (user, item type, mode)."""
    user_id: int
    item_type: ItemType
    mode: RecommendationMode
    items: list[RecommendationItem]
    generated_at: datetime
    expires_at: datetime
    source: Literal["generated", "server_cache", "local_cache"] = "generated"


class CooldownStatus(BaseModel):
    item_type: ItemType
    mode: RecommendationMode
    active: bool
    expires_at: datetime | None = None
    remaining_seconds: int | None = None


# ============ User Schemas ============

class Preferences(BaseModel):
    favorite_genres: list[int] = []
    excluded_genres: list[int] = []
    preferred_studios: list[str] = []
    preferred_authors: list[str] = []
    preferred_media_types: list[str] = []
    min_score: float = Field(default=7.0, ge=0, le=10)


class SyncResponse(BaseModel):
    anime_count: int | None = None
    manga_count: int | None = None
    errors: list[str] = []


class FeedbackRequest(BaseModel):
    item_id: int
    item_type: ItemType
    kind: FeedbackKind
    rating: int | None = Field(default=None, ge=0, le=10)


class FeedbackRecord(BaseModel):
    user_id: int
    item_id: int
    item_type: ItemType
    kind: FeedbackKind
    rating: int | None = None
    created_at: datetime


class FeedbackResponse(BaseModel):
    """Feedback state after a toggle. kind is None when the signal was removed."""
    item_id: int
    item_type: ItemType
    kind: FeedbackKind | None


# ============ Share Schemas ============

class ShareCreateRequest(BaseModel):
    item_type: ItemType
    mode: RecommendationMode
    items: list[RecommendationItem] = Field(min_length=1)


class ShareResponse(BaseModel):
    share_code: str
    item_type: ItemType
    mode: RecommendationMode
    items: list[RecommendationItem]
    created_by: int
    created_at: datetime
    expires_at: datetime
