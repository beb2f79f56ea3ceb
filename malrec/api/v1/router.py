"""API v1 router - aggregates all endpoint routers."""

from fastapi import APIRouter

from malrec.api.v1 import feedback, preferences, recommendations, share, user

api_router = APIRouter()

api_router.include_router(recommendations.router, prefix="/recommendations", tags=["recommendations"])
api_router.include_router(user.router, prefix="/user", tags=["user"])
api_router.include_router(preferences.router, prefix="/preferences", tags=["preferences"])
api_router.include_router(feedback.router, prefix="/feedback", tags=["feedback"])
api_router.include_router(share.router, prefix="/share", tags=["share"])
