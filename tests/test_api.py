from datetime import datetime, timezone

from fastapi.testclient import TestClient

from malrec.api.deps import (
    get_cooldown, get_feedback_service, get_list_sync_service, get_preferences_service,
    get_recommendation_service, get_share_service, get_user_service,
)
from malrec.core.errors import NoRatingsError, ShareLinkNotFoundError, UpstreamError
from malrec.db.schemas import (
    FeedbackKind, ItemType, Preferences, RecommendationBatch, RecommendationMode, SyncResponse,
)
from malrec.main import app

AUTH = {"Authorization": "Bearer mal-token"}


class FakeRecommendationService:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def generate(self, user_id, token, item_type, mode, genre_filter=None):
        self.calls.append((user_id, token, item_type, mode, genre_filter))
        if self.error:
            raise self.error
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        return RecommendationBatch(
            user_id=user_id, item_type=item_type, mode=mode, items=[],
            generated_at=now, expires_at=now,
        )


class FakeShareService:
    def __init__(self):
        self.created = []

    async def create(self, user_id, item_type, mode, items):
        self.created.append(user_id)

    async def get(self, share_code):
        raise ShareLinkNotFoundError()


class FakePreferencesService:
    def __init__(self):
        self.saved = []

    async def save(self, user_id, preferences):
        self.saved.append(user_id)
        return preferences


class FakeFeedbackService:
    def __init__(self):
        self.toggled = []

    async def toggle_feedback(self, user_id, item_id, item_type, kind, rating=None):
        self.toggled.append((user_id, item_id, kind))
        return kind


class FakeUserService:
    def __init__(self, owner_id):
        self.owner_id = owner_id

    async def identify(self, token):
        return self.owner_id

    async def refresh_profile(self, token):
        return self.owner_id


class RecordingCooldown:
    def __init__(self):
        self.invalidated = []

    async def invalidate(self, user_id, item_type=None):
        self.invalidated.append((user_id, item_type))


def client_with(overrides):
    app.dependency_overrides = {get_user_service: lambda: FakeUserService(owner_id=42), **overrides}
    return TestClient(app)


def test_generate_passes_query_and_token():
    service = FakeRecommendationService()
    client = client_with({get_recommendation_service: lambda: service})

    response = client.post(
        "/api/v1/recommendations/42?item_type=manga&mode=reread&genres=1, 2,x",
        headers=AUTH,
    )
    assert response.status_code == 200
    assert response.json()["mode"] == "reread"
    assert service.calls == [(42, "mal-token", ItemType.MANGA, RecommendationMode.REREAD, [1, 2])]
    assert response.headers["X-Correlation-ID"]


def test_generate_requires_token():
    client = client_with({get_recommendation_service: lambda: FakeRecommendationService()})
    assert client.post("/api/v1/recommendations/42").status_code == 401


def test_no_ratings_maps_to_422_with_reason():
    service = FakeRecommendationService(error=NoRatingsError())
    client = client_with({get_recommendation_service: lambda: service})

    response = client.post("/api/v1/recommendations/42?mode=rewatch", headers=AUTH)
    assert response.status_code == 422
    assert response.json()["reason"] == "no_ratings"


def test_upstream_failure_maps_to_502():
    service = FakeRecommendationService(error=UpstreamError("Could not load your list"))
    client = client_with({get_recommendation_service: lambda: service})

    response = client.post("/api/v1/recommendations/42", headers=AUTH)
    assert response.status_code == 502
    assert response.json() == {"detail": "Could not load your list", "reason": "upstream_error"}


def test_missing_share_link_is_404():
    client = client_with({get_share_service: lambda: FakeShareService()})
    response = client.get("/api/v1/share/AbCd2345")
    assert response.status_code == 404
    assert response.json()["reason"] == "share_not_found"


def test_saving_preferences_invalidates_batches():
    cooldown = RecordingCooldown()
    client = client_with({
        get_preferences_service: lambda: FakePreferencesService(),
        get_cooldown: lambda: cooldown,
    })

    body = Preferences(favorite_genres=[1], min_score=6.5).model_dump()
    response = client.put("/api/v1/preferences/42", json=body, headers=AUTH)
    assert response.status_code == 200
    assert response.json()["min_score"] == 6.5
    assert cooldown.invalidated == [(42, None)]


def test_preferences_reject_out_of_range_score():
    client = client_with({
        get_preferences_service: lambda: FakePreferencesService(),
        get_cooldown: lambda: RecordingCooldown(),
    })
    response = client.put("/api/v1/preferences/42", json={"min_score": 11}, headers=AUTH)
    assert response.status_code == 422


class FakeSyncService:
    def __init__(self):
        self.synced = []

    async def sync(self, user_id, token):
        self.synced.append(user_id)
        return SyncResponse(anime_count=3, manga_count=0)


def test_sync_rejects_someone_elses_token():
    sync = FakeSyncService()
    client = client_with({
        get_user_service: lambda: FakeUserService(owner_id=7),
        get_list_sync_service: lambda: sync,
    })
    response = client.post("/api/v1/user/42/sync", headers=AUTH)
    assert response.status_code == 403
    assert sync.synced == []


def test_sync_returns_counts():
    sync = FakeSyncService()
    client = client_with({
        get_user_service: lambda: FakeUserService(owner_id=42),
        get_list_sync_service: lambda: sync,
    })
    response = client.post("/api/v1/user/42/sync", headers=AUTH)
    assert response.status_code == 200
    assert response.json()["anime_count"] == 3
    assert sync.synced == [42]


def test_generate_rejects_someone_elses_token():
    service = FakeRecommendationService()
    client = client_with({
        get_recommendation_service: lambda: service,
        get_user_service: lambda: FakeUserService(owner_id=7),
    })
    response = client.post("/api/v1/recommendations/42", headers=AUTH)
    assert response.status_code == 403
    assert service.calls == []


def test_feedback_rejects_someone_elses_token():
    feedback = FakeFeedbackService()
    client = client_with({
        get_feedback_service: lambda: feedback,
        get_user_service: lambda: FakeUserService(owner_id=7),
    })
    body = {"item_id": 5, "item_type": "anime", "kind": "like"}
    response = client.post("/api/v1/feedback/42", json=body, headers=AUTH)
    assert response.status_code == 403
    assert feedback.toggled == []


def test_feedback_requires_token():
    feedback = FakeFeedbackService()
    client = client_with({get_feedback_service: lambda: feedback})
    body = {"item_id": 5, "item_type": "anime", "kind": "like"}
    assert client.post("/api/v1/feedback/42", json=body).status_code == 401
    assert feedback.toggled == []


def test_feedback_from_owner_is_recorded():
    feedback = FakeFeedbackService()
    client = client_with({get_feedback_service: lambda: feedback})
    body = {"item_id": 5, "item_type": "anime", "kind": "like"}
    response = client.post("/api/v1/feedback/42", json=body, headers=AUTH)
    assert response.status_code == 200
    assert response.json()["kind"] == "like"
    assert feedback.toggled == [(42, 5, FeedbackKind.LIKE)]


def test_preferences_reject_someone_elses_token():
    preferences, cooldown = FakePreferencesService(), RecordingCooldown()
    client = client_with({
        get_preferences_service: lambda: preferences,
        get_cooldown: lambda: cooldown,
        get_user_service: lambda: FakeUserService(owner_id=7),
    })
    response = client.put("/api/v1/preferences/42", json={"min_score": 7}, headers=AUTH)
    assert response.status_code == 403
    assert preferences.saved == []
    assert cooldown.invalidated == []


def test_share_create_rejects_someone_elses_token():
    share = FakeShareService()
    client = client_with({
        get_share_service: lambda: share,
        get_user_service: lambda: FakeUserService(owner_id=7),
    })
    body = {"item_type": "anime", "mode": "new", "items": [{"id": 5, "title": "Item 5", "item_type": "anime"}]}
    response = client.post("/api/v1/share/42", json=body, headers=AUTH)
    assert response.status_code == 403
    assert share.created == []
