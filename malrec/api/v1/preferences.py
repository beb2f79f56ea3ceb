"""User preference endpoints."""

import logging

from fastapi import APIRouter, Depends

from malrec.api.deps import get_cooldown, get_preferences_service
from malrec.core.auth import require_owner
from malrec.db.schemas import Preferences
from malrec.services.cooldown import CooldownController
from malrec.services.preferences_service import PreferencesService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{user_id}", response_model=Preferences)
async def get_preferences(
    user_id: int,
    service: PreferencesService = Depends(get_preferences_service),
):
    return await service.get(user_id)


@router.put("/{user_id}", response_model=Preferences, dependencies=[Depends(require_owner)])
async def save_preferences(
    user_id: int,
    preferences: Preferences,
    service: PreferencesService = Depends(get_preferences_service),
    cooldown: CooldownController = Depends(get_cooldown),
):
    """Save preferences and drop active batches so the next request uses them."""
    saved = await service.save(user_id, preferences)
    await cooldown.invalidate(user_id)
    logger.info(f"Saved preferences for user {user_id}, cached batches invalidated")
    return saved
