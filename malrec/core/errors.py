"""Typed failure reasons surfaced by the recommendation core.

The API layer maps each of these to a distinct HTTP response so the frontend
can show the matching guidance text.
"""


class RecommendationError(Exception):
    """Base class for failures the caller is expected to handle."""

    reason: str = "error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__doc__)
        self.message = message or (self.__doc__ or "").strip()


class NoRatingsError(RecommendationError):
    """No rated items found. Rate some titles on MyAnimeList first."""

    reason = "no_ratings"


class NoHighRatingsError(RecommendationError):
    """No items rated 7 or higher found. Rate more titles to get rewatch recommendations."""

    reason = "no_high_ratings"


class ShareLinkNotFoundError(RecommendationError):
    """This shared link is invalid or has expired."""

    reason = "share_not_found"


class UpstreamError(RecommendationError):
    """An essential upstream fetch failed."""

    reason = "upstream_error"
