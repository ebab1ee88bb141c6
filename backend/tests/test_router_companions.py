"""Tests for the companion profile router."""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.core.rate_limit import COMPANION_CREATE_POLICY, SETTINGS_POLICY, RateLimiter
from app.core.security import authenticate
from app.services.companion import CompanionNotFoundError

from conftest import make_companion

CREATE_BODY = {
    "name": "Lumen",
    "description": "A warm, teasing artist",
    "visual_description": "long silver hair, violet eyes",
    "default_outfit": "grey hoodie",
}


@pytest.fixture
def repo() -> MagicMock:
    repo = MagicMock()
    repo.create.return_value = make_companion()
    repo.get_owned.return_value = make_companion()
    repo.list_for_user.return_value = [make_companion(id="a"), make_companion(id="b")]
    repo.update.return_value = make_companion(name="Nova")
    repo.wipe_memory.return_value = 4
    return repo


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter()


@pytest.fixture
def image_service() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(repo: MagicMock, limiter: RateLimiter, image_service: MagicMock):
    from app.main import app

    app.state.companion_repository = repo
    app.state.image_service = image_service
    app.state.rate_limiter = limiter
    app.dependency_overrides[authenticate] = lambda: "user-1"
    yield TestClient(app)
    app.dependency_overrides.clear()
    for name in ("companion_repository", "rate_limiter", "image_service"):
        if hasattr(app.state, name):
            delattr(app.state, name)


class TestCreate:
    def test_returns_201(self, client: TestClient, repo: MagicMock) -> None:
        resp = client.post("/api/companions", json=CREATE_BODY)
        assert resp.status_code == 201
        assert resp.json()["id"] == "comp-1"
        user_id, data = repo.create.call_args.args
        assert user_id == "user-1"
        assert data.name == "Lumen"

    def test_invalid_body_returns_422(self, client: TestClient) -> None:
        resp = client.post("/api/companions", json={**CREATE_BODY, "description": "short"})
        assert resp.status_code == 422

    def test_rate_limited_returns_429(
        self, client: TestClient, repo: MagicMock, limiter: RateLimiter
    ) -> None:
        for _ in range(COMPANION_CREATE_POLICY.max_attempts):
            limiter.check("user-1", COMPANION_CREATE_POLICY)
        resp = client.post("/api/companions", json=CREATE_BODY)
        assert resp.status_code == 429
        repo.create.assert_not_called()


class TestRead:
    def test_list(self, client: TestClient, repo: MagicMock) -> None:
        resp = client.get("/api/companions")
        assert resp.status_code == 200
        assert [c["id"] for c in resp.json()] == ["a", "b"]
        repo.list_for_user.assert_called_once_with("user-1")

    def test_get(self, client: TestClient) -> None:
        resp = client.get("/api/companions/comp-1")
        assert resp.status_code == 200
        assert resp.json()["current_outfit"] == "grey hoodie, black shorts"

    def test_get_not_owned_returns_404(self, client: TestClient, repo: MagicMock) -> None:
        repo.get_owned.side_effect = CompanionNotFoundError("comp-1")
        assert client.get("/api/companions/comp-1").status_code == 404


class TestUpdate:
    def test_patch(self, client: TestClient, repo: MagicMock) -> None:
        resp = client.patch("/api/companions/comp-1", json={"name": "Nova"})
        assert resp.status_code == 200
        assert resp.json()["name"] == "Nova"
        companion_id, data = repo.update.call_args.args
        assert companion_id == "comp-1"
        assert data.name == "Nova"

    def test_patch_rate_limited(self, client: TestClient, repo: MagicMock, limiter: RateLimiter) -> None:
        for _ in range(SETTINGS_POLICY.max_attempts):
            limiter.check("user-1", SETTINGS_POLICY)
        assert client.patch("/api/companions/comp-1", json={"name": "Nova"}).status_code == 429
        repo.update.assert_not_called()

    def test_patch_not_owned_returns_404(self, client: TestClient, repo: MagicMock) -> None:
        repo.get_owned.side_effect = CompanionNotFoundError("comp-1")
        assert client.patch("/api/companions/comp-1", json={"name": "Nova"}).status_code == 404


class TestDelete:
    def test_success(self, client: TestClient, repo: MagicMock) -> None:
        resp = client.delete("/api/companions/comp-1")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "data": None, "error": None}
        repo.delete.assert_called_once_with("comp-1")

    def test_removes_stored_images(
        self, client: TestClient, repo: MagicMock, image_service: MagicMock
    ) -> None:
        client.delete("/api/companions/comp-1")
        image_service.delete_companion_images.assert_called_once_with("comp-1")

    def test_not_owned_returns_failed_result(self, client: TestClient, repo: MagicMock) -> None:
        repo.get_owned.side_effect = CompanionNotFoundError("comp-1")
        resp = client.delete("/api/companions/comp-1")
        assert resp.status_code == 200
        assert resp.json()["success"] is False
        assert resp.json()["error"] == "Failed to delete companion"
        repo.delete.assert_not_called()

    def test_not_owned_keeps_images(
        self, client: TestClient, repo: MagicMock, image_service: MagicMock
    ) -> None:
        repo.get_owned.side_effect = CompanionNotFoundError("comp-1")
        client.delete("/api/companions/comp-1")
        image_service.delete_companion_images.assert_not_called()

    def test_storage_error_returns_failed_result(self, client: TestClient, repo: MagicMock) -> None:
        repo.delete.side_effect = RuntimeError("firestore down")
        resp = client.delete("/api/companions/comp-1")
        assert resp.json()["success"] is False


class TestWipe:
    def test_wipe_returns_refreshed_companion(self, client: TestClient, repo: MagicMock) -> None:
        resp = client.post("/api/companions/comp-1/wipe")
        assert resp.status_code == 200
        repo.wipe_memory.assert_called_once()
        assert repo.get_owned.call_count == 2
