"""API test specific fixtures."""

import pytest
import yaml
from fastapi.testclient import TestClient

from chronicles.main import create_app


@pytest.fixture
def test_client():
    """Create FastAPI TestClient backed by a fresh in-memory database."""
    app = create_app("sqlite+aiosqlite:///:memory:")
    with TestClient(app) as client:
        yield client


@pytest.fixture
def campaign_document(sample_campaign_path):
    with open(sample_campaign_path, encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def keep_session(test_client, campaign_document):
    """Sample campaign, two characters and a session both joined. Returns the session id."""
    assert test_client.post("/api/campaigns", json=campaign_document).status_code == 201
    test_client.post("/api/characters", json={
        "id": "hero",
        "name": "Aldric",
        "user_id": "user_1",
        "stats": {"wisdom": 6, "magic": 3, "charisma": 5},
    })
    test_client.post("/api/characters", json={
        "id": "rival",
        "name": "Brenna",
        "user_id": "user_2",
        "stats": {"wisdom": 4, "stealth": 7, "strength": 8},
        "inventory": ["Lantern"],
    })
    response = test_client.post("/api/sessions", json={
        "campaign_id": "sunken_keep",
        "session_id": "keep",
        "current_node_id": "flooded_throne",
        "turn_order": ["user_1", "user_2"],
    })
    assert response.status_code == 201
    for character_id in ("hero", "rival"):
        test_client.post("/api/sessions/keep/participants", json={"character_id": character_id})
    return "keep"
