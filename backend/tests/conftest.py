from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from notescape import create_app
from notescape.config import settings
from notescape.models.flashcard import Flashcard

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def client(tmp_path, monkeypatch):
    """App client backed by a throwaway SQLite database."""
    monkeypatch.setattr(settings, "data_dir", tmp_path)
    with TestClient(create_app()) as c:
        yield c


@pytest.fixture
def new_card():
    """Factory for a card in default scheduling state, due at T0."""

    def _make(**overrides) -> Flashcard:
        fields = {
            "id": "card-1",
            "user_id": "user-1",
            "notebook_id": "nb-1",
            "front": "What is photosynthesis?",
            "back": "Conversion of light energy into chemical energy.",
            "next_review_date": T0,
            "created_at": T0,
            "updated_at": T0,
        }
        fields.update(overrides)
        return Flashcard(**fields)

    return _make
