"""
Recommendation endpoints.

Batches are generated on demand from MyAnimeList catalog data and then held
for the cooldown window. Repeated calls inside the window return the same
batch; the cooldown endpoint tells the frontend when the next one unlocks.
"""

from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from malrec.api.deps import get_cooldown, get_recommendation_service
from malrec.core.auth import require_owner
from malrec.db.schemas import CooldownStatus, ItemType, RecommendationBatch, RecommendationMode
from malrec.services.cooldown import CooldownController
from malrec.services.recommendation_service import RecommendationService

# Generation hits MAL several times per call
limiter = Limiter(key_func=get_remote_address)

MAX_GENRE_FILTER = 20

router = APIRouter()


def _parse_genres(genres: str | None) -> list[int]:
    if not genres:
        return []
    parsed = []
    for part in genres.split(","):
        part = part.strip()
        if part.isdigit():
            parsed.append(int(part))
    return parsed[:MAX_GENRE_FILTER]


@router.post("/{user_id}", response_model=RecommendationBatch)
@limiter.limit("10/minute")
async def generate_recommendations(
    request: Request,
    user_id: int,
    item_type: ItemType = Query(default=ItemType.ANIME),
    mode: RecommendationMode = Query(default=RecommendationMode.NEW),
    genres: str | None = Query(
        default=None,
        description="Comma-separated MAL genre IDs; results must match at least one",
    ),
    token: str = Depends(require_owner),
    service: RecommendationService = Depends(get_recommendation_service),
):
    """
    Get the active recommendation batch, generating one if the cooldown has expired.

    Modes:
    - new: unseen titles from the catalog, ranked by content and collaborative signals
    - rewatch / reread: titles from the user's own list rated 7 or higher
    """
    return await service.generate(user_id, token, item_type, mode, _parse_genres(genres))


@router.get("/{user_id}/cooldown", response_model=CooldownStatus)
async def get_cooldown_status(
    user_id: int,
    item_type: ItemType = Query(default=ItemType.ANIME),
    mode: RecommendationMode = Query(default=RecommendationMode.NEW),
    cooldown: CooldownController = Depends(get_cooldown),
):
    return await cooldown.status(user_id, item_type, mode)
