"""Shareable recommendation links."""

from fastapi import APIRouter, Depends

from malrec.api.deps import get_share_service
from malrec.core.auth import require_owner
from malrec.db.schemas import ShareCreateRequest, ShareResponse
from malrec.services.share_service import ShareService

router = APIRouter()


@router.post("/{user_id}", response_model=ShareResponse, dependencies=[Depends(require_owner)])
async def create_share_link(
    user_id: int,
    body: ShareCreateRequest,
    service: ShareService = Depends(get_share_service),
):
    """Store a batch under a short code that anyone can open for 7 days."""
    return await service.create(user_id, body.item_type, body.mode, body.items)


@router.get("/{share_code}", response_model=ShareResponse)
async def get_share_link(
    share_code: str,
    service: ShareService = Depends(get_share_service),
):
    return await service.get(share_code)
