"""Shared test fixtures and configuration."""
from datetime import datetime, timezone
from typing import Any

import pytest

from app.models.companion import Companion
from app.models.image import ArtStyle


@pytest.fixture(autouse=True)
def set_required_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set required environment variables for all tests."""
    monkeypatch.setenv("GCP_PROJECT_ID", "test-project")
    monkeypatch.setenv("VERTEX_AI_LOCATION", "us-central1")
    monkeypatch.setenv("SD_API_URL", "http://sd.test:7860")
    monkeypatch.setenv("AUTH_SECRET", "test-secret")


def make_companion(**kwargs: Any) -> Companion:
    """Build a Companion with sensible defaults for tests."""
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    defaults: dict[str, Any] = {
        "id": "comp-1",
        "user_id": "user-1",
        "name": "Lumen",
        "description": "A warm, teasing artist who loves late-night talks",
        "visual_description": "long silver hair, violet eyes",
        "default_outfit": "grey hoodie, black shorts",
        "user_appearance": "short brown hair",
        "style": ArtStyle.anime,
        "current_outfit": "grey hoodie, black shorts",
        "current_location": "living room",
        "current_action": "looking at viewer",
        "created_at": now,
        "updated_at": now,
    }
    defaults.update(kwargs)
    return Companion(**defaults)


@pytest.fixture
def companion() -> Companion:
    return make_companion()
