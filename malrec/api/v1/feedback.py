"""Like/dislike feedback endpoints."""

from fastapi import APIRouter, Depends, Query

from malrec.api.deps import get_feedback_service
from malrec.core.auth import require_owner
from malrec.db.schemas import FeedbackRecord, FeedbackRequest, FeedbackResponse, ItemType
from malrec.services.feedback_service import FeedbackService

router = APIRouter()


@router.post("/{user_id}", response_model=FeedbackResponse, dependencies=[Depends(require_owner)])
async def toggle_feedback(
    user_id: int,
    body: FeedbackRequest,
    service: FeedbackService = Depends(get_feedback_service),
):
    """
    Record a like or dislike.

    Sending the same kind again removes it; sending the other kind replaces it.
    The response carries the resulting state (kind is null after a removal).
    """
    kind = await service.toggle_feedback(
        user_id, body.item_id, body.item_type, body.kind, body.rating
    )
    return FeedbackResponse(item_id=body.item_id, item_type=body.item_type, kind=kind)


@router.get("/{user_id}", response_model=list[FeedbackRecord])
async def list_feedback(
    user_id: int,
    item_type: ItemType | None = Query(default=None),
    service: FeedbackService = Depends(get_feedback_service),
):
    return await service.list_feedback(user_id, item_type)
