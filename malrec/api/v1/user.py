"""User list endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from malrec.api.deps import get_list_sync_service, get_user_service
from malrec.core.auth import require_mal_token
from malrec.db.schemas import SyncResponse
from malrec.services.list_service import ListSyncService
from malrec.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{user_id}/sync", response_model=SyncResponse)
async def sync_user_lists(
    user_id: int,
    token: str = Depends(require_mal_token),
    users: UserService = Depends(get_user_service),
    sync_service: ListSyncService = Depends(get_list_sync_service),
):
    """
    Re-fetch the user's anime and manga lists from MyAnimeList.

    The two lists sync independently; a failure on one side is reported in
    `errors` while the other is still stored. Active batches are left alone
    so a sync cannot be used to skip the cooldown.
    """
    owner_id = await users.refresh_profile(token)
    if owner_id != user_id:
        raise HTTPException(status_code=403, detail="Token does not belong to this user")

    response = await sync_service.sync(user_id, token)
    logger.info(
        f"Synced lists for user {user_id}: anime={response.anime_count} "
        f"manga={response.manga_count} errors={len(response.errors)}"
    )
    return response
