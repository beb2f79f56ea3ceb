"""FastAPI dependencies building per-request services from app.state.

Long-lived handles (MAL client, Redis cache, generation locks, expiry
policy) are created once in the lifespan and stored on app.state; services
that need a database session are built per request.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from malrec.config import Settings
from malrec.db.database import get_db
from malrec.services.cooldown import CooldownController
from malrec.services.feedback_service import FeedbackService
from malrec.services.list_service import ListCacheService, ListSyncService
from malrec.services.preferences_service import PreferencesService
from malrec.services.recommendation_cache_service import RecommendationCacheService
from malrec.services.recommendation_service import RecommendationService
from malrec.services.share_service import ShareService
from malrec.services.user_service import UserService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cooldown(request: Request, db: AsyncSession = Depends(get_db)) -> CooldownController:
    return CooldownController(
        local_cache=request.app.state.cache,
        server_cache=RecommendationCacheService(db),
        policy=request.app.state.expiry_policy,
    )


def get_preferences_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> PreferencesService:
    return PreferencesService(db, default_min_score=settings.default_min_score)


def get_feedback_service(db: AsyncSession = Depends(get_db)) -> FeedbackService:
    return FeedbackService(db)


def get_list_sync_service(request: Request, db: AsyncSession = Depends(get_db)) -> ListSyncService:
    return ListSyncService(request.app.state.mal_client, ListCacheService(db))


def get_share_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> ShareService:
    return ShareService(db, lifetime_days=settings.share_link_days)


def get_recommendation_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    cooldown: CooldownController = Depends(get_cooldown),
    preferences: PreferencesService = Depends(get_preferences_service),
    settings: Settings = Depends(get_app_settings),
) -> RecommendationService:
    return RecommendationService(
        mal=request.app.state.mal_client,
        lists=ListCacheService(db),
        feedback=FeedbackService(db),
        preferences=preferences,
        cooldown=cooldown,
        settings=settings,
        locks=request.app.state.generation_locks,
    )


def get_user_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> UserService:
    return UserService(
        db,
        request.app.state.mal_client,
        cache=request.app.state.cache,
        owner_ttl=settings.token_owner_ttl,
    )
