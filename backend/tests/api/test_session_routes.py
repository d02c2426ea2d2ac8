"""
API tests for the session routes and the session WebSocket feed.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chronicles.main import create_app

# ============================================================================
# Campaigns & Characters
# ============================================================================


@pytest.mark.api
def test_root(test_client):
    assert test_client.get("/").json() == {"message": "Lore Chronicles rule engine"}


@pytest.mark.api
def test_import_campaign(test_client, campaign_document):
    response = test_client.post("/api/campaigns", json=campaign_document)
    assert response.status_code == 201
    body = response.json()
    assert body["campaign_id"] == "sunken_keep"
    assert body["imported"] is True
    assert body["triggers"] == 3
    assert body["skipped"] == 0

    again = test_client.post("/api/campaigns", json=campaign_document).json()
    assert again["imported"] is False


@pytest.mark.api
def test_import_campaign_without_id(test_client):
    response = test_client.post("/api/campaigns", json={"name": "Nameless"})
    assert response.status_code == 422


@pytest.mark.api
def test_character_stats_are_clamped(test_client):
    response = test_client.post("/api/characters", json={
        "id": "giant",
        "name": "Gorm",
        "stats": {"strength": 14, "agility": 0},
        "inventory": ["club", "club"],
    })
    assert response.status_code == 201
    body = test_client.get("/api/characters/giant").json()
    assert body["stats"] == {"strength": 10, "agility": 1}
    assert body["inventory"] == ["club"]
    assert body["level"] == 1


@pytest.mark.api
def test_missing_character(test_client):
    assert test_client.get("/api/characters/nobody").status_code == 404


# ============================================================================
# Sessions & Turns
# ============================================================================


@pytest.mark.api
def test_session_for_unknown_campaign(test_client):
    response = test_client.post("/api/sessions", json={"campaign_id": "atlantis"})
    assert response.status_code == 404


@pytest.mark.api
def test_session_and_participants(test_client, keep_session):
    session = test_client.get(f"/api/sessions/{keep_session}").json()
    assert session["current_node_id"] == "flooded_throne"
    assert session["current_turn_player_id"] == "user_1"

    participants = test_client.get(f"/api/sessions/{keep_session}/participants").json()
    assert [p["character_name"] for p in participants] == ["Aldric", "Brenna"]

    test_client.delete(f"/api/sessions/{keep_session}/participants/rival")
    participants = test_client.get(f"/api/sessions/{keep_session}/participants").json()
    assert [p["character_id"] for p in participants] == ["hero"]

    assert test_client.get("/api/sessions/nowhere").status_code == 404


@pytest.mark.api
def test_turns(test_client, keep_session):
    turn = test_client.get(f"/api/sessions/{keep_session}/turn", params={"character_id": "hero"}).json()
    assert turn == {
        "current_turn_player_id": "user_1",
        "current_turn_player_name": "Aldric",
        "is_my_turn": True,
    }

    session = test_client.post(f"/api/sessions/{keep_session}/turn/advance").json()
    assert session["current_turn_player_id"] == "user_2"

    session = test_client.put(
        f"/api/sessions/{keep_session}/turn-order", json={"turn_order": ["user_1"]}
    ).json()
    assert session["current_turn_player_id"] == "user_1"


@pytest.mark.api
def test_state_snapshot(test_client, keep_session):
    state = test_client.get(f"/api/sessions/{keep_session}/state", params={"character_id": "rival"}).json()
    assert state["stats"]["stealth"] == 7
    assert state["inventory"] == ["Lantern"]
    assert state["player_count"] == 2
    assert state["node_id"] == "flooded_throne"


# ============================================================================
# Choices, Interactions & Hints
# ============================================================================


@pytest.mark.api
def test_make_choice(test_client, keep_session):
    response = test_client.post(f"/api/sessions/{keep_session}/choices", json={
        "character_id": "hero",
        "choice_text": "Kneel before the throne",
        "next_node_id": "crypt",
    })
    assert response.status_code == 200
    body = response.json()
    fired = {f["trigger_id"] for f in body["fired_triggers"]}
    assert {"wise_ones", "drowned_pact"} <= fired
    assert body["session"]["current_node_id"] == "crypt"
    assert body["state"]["story_flags"]["pact_sealed"] is True

    log = test_client.get(f"/api/sessions/{keep_session}/triggers/log").json()
    assert {entry["trigger_id"] for entry in log} == {"wise_ones", "drowned_pact"}


@pytest.mark.api
def test_empty_choice_rejected(test_client, keep_session):
    response = test_client.post(
        f"/api/sessions/{keep_session}/choices", json={"character_id": "hero", "choice_text": ""}
    )
    assert response.status_code == 422


@pytest.mark.api
def test_interaction_cascades(test_client, keep_session):
    response = test_client.post(
        f"/api/sessions/{keep_session}/interactions/bribe_guard/complete",
        json={"character_id": "hero", "outcome_type": "good"},
    )
    assert response.json()["applied_cascade_ids"] == ["bribe_opens_vault"]

    effects = test_client.get(f"/api/sessions/{keep_session}/interactions/vault_door/effects").json()
    assert effects["is_unlocked"] is True

    summary = test_client.get(f"/api/sessions/{keep_session}/interactions/bribe_guard/summary").json()
    assert summary["effects"][0] == "On success: Unlocks a new interaction"

    cascades = test_client.get(f"/api/sessions/{keep_session}/cascades").json()
    assert [c["cascade_rule_id"] for c in cascades] == ["bribe_opens_vault"]


@pytest.mark.api
def test_unknown_outcome_type(test_client, keep_session):
    response = test_client.post(
        f"/api/sessions/{keep_session}/interactions/bribe_guard/complete",
        json={"character_id": "hero", "outcome_type": "great"},
    )
    assert response.status_code == 422


@pytest.mark.api
def test_hints_hide_outcomes(test_client, keep_session):
    hints = test_client.get(
        f"/api/sessions/{keep_session}/hints",
        params={"character_id": "rival", "node_id": "flooded_hall"},
    ).json()
    assert {h["id"] for h in hints} == {"follow_the_water", "trust_the_lantern"}
    assert all("opposite_outcome" not in h for h in hints)


@pytest.mark.api
def test_hint_response_and_streaks(test_client, keep_session):
    response = test_client.post(
        f"/api/sessions/{keep_session}/hints/follow_the_water/responses",
        json={"character_id": "hero", "response": "opposite"},
    )
    assert response.status_code == 200
    assert response.json()["hint_outcome"] == {"grant_item": "cursed_ring"}
    assert "cursed_ring" in test_client.get("/api/characters/hero").json()["inventory"]

    streaks = test_client.get(
        f"/api/sessions/{keep_session}/hint-streaks", params={"character_id": "hero"}
    ).json()
    assert streaks == {"follow_streak": 0, "ignore_streak": 0, "opposite_count": 1}

    [chain] = test_client.get(f"/api/sessions/{keep_session}/hint-chains").json()
    assert chain["responded_hint_ids"] == ["follow_the_water"]
    assert chain["is_complete"] is False


@pytest.mark.api
def test_hint_response_errors(test_client, keep_session):
    bad = test_client.post(
        f"/api/sessions/{keep_session}/hints/follow_the_water/responses",
        json={"character_id": "hero", "response": "maybe"},
    )
    assert bad.status_code == 422

    missing = test_client.post(
        f"/api/sessions/{keep_session}/hints/no_hint/responses",
        json={"character_id": "hero", "response": "followed"},
    )
    assert missing.status_code == 404


# ============================================================================
# Combat & Bluffs
# ============================================================================


@pytest.mark.api
def test_combat_lifecycle(test_client, keep_session):
    response = test_client.post(f"/api/sessions/{keep_session}/combat", json={
        "combat_type": "duel",
        "participants": [
            {"character_id": "hero", "role": "challenger"},
            {"character_id": "rival", "role": "defender"},
        ],
    })
    assert response.status_code == 201
    encounter_id = response.json()["id"]

    assert test_client.get(f"/api/sessions/{keep_session}/combat/active").json() is None

    ready = test_client.post(f"/api/combat/{encounter_id}/ready", json={"character_id": "hero"}).json()
    assert ready["all_ready"] is False
    ready = test_client.post(f"/api/combat/{encounter_id}/ready", json={"character_id": "rival"}).json()
    assert ready["all_ready"] is True

    # Resolving a pending encounter is illegal
    early = test_client.post(f"/api/combat/{encounter_id}/resolve", json={"outcome": {"winner_id": "hero"}})
    assert early.status_code == 409

    active = test_client.post(f"/api/combat/{encounter_id}/status", json={"status": "active"})
    assert active.json()["status"] == "active"
    assert test_client.get(f"/api/sessions/{keep_session}/combat/active").json()["id"] == encounter_id

    resolved = test_client.post(
        f"/api/combat/{encounter_id}/resolve", json={"outcome": {"winner_id": "hero"}}
    ).json()
    assert resolved["status"] == "resolved"
    assert resolved["resolved_at"] is not None


@pytest.mark.api
def test_combat_errors(test_client, keep_session):
    bad_type = test_client.post(f"/api/sessions/{keep_session}/combat", json={
        "combat_type": "pillow_fight",
        "participants": [{"character_id": "hero"}],
    })
    assert bad_type.status_code == 422
    assert test_client.post("/api/combat/missing/status", json={"status": "active"}).status_code == 404


@pytest.mark.api
def test_bluffs(test_client, keep_session):
    response = test_client.post(f"/api/sessions/{keep_session}/bluffs", json={
        "actor_id": "hero",
        "target_id": "rival",
        "attempt_type": "scout",
    })
    assert response.status_code == 201
    attempt = response.json()
    assert attempt["stat_used"] == "perception"
    assert attempt["difficulty"] == 7
    assert attempt["success"] == (attempt["roll_value"] >= 7)
    if attempt["revealed_info"]:
        assert set(attempt["revealed_info"]) == {"stat", "hint"}

    history = test_client.get(f"/api/sessions/{keep_session}/bluffs", params={"character_id": "rival"}).json()
    assert [b["id"] for b in history] == [attempt["id"]]

    bad = test_client.post(f"/api/sessions/{keep_session}/bluffs", json={
        "actor_id": "hero",
        "target_id": "rival",
        "attempt_type": "juggle",
    })
    assert bad.status_code == 422


# ============================================================================
# WebSocket
# ============================================================================


@pytest.mark.api
def test_websocket_presence_and_updates(test_client, keep_session):
    with test_client.websocket_connect(
        f"/ws/sessions/{keep_session}?user_id=user_1&username=mira&character_id=hero"
    ) as websocket:
        presence = websocket.receive_json()
        assert presence["type"] == "presence_sync"
        assert presence["payload"]["users"][0]["username"] == "mira"
        assert "scope" not in presence

        online = test_client.get(f"/api/sessions/{keep_session}/presence").json()
        assert [u["user_id"] for u in online["users"]] == ["user_1"]

        test_client.put(f"/api/sessions/{keep_session}/node", json={"node_id": "crypt"})
        update = websocket.receive_json()
        assert update["type"] == "session_update"
        assert update["payload"]["current_node_id"] == "crypt"


@pytest.mark.api
def test_presence_survives_second_socket_closing(test_client, keep_session):
    url = f"/ws/sessions/{keep_session}?user_id=user_1&username=mira"
    with test_client.websocket_connect(url) as first:
        assert first.receive_json()["type"] == "presence_sync"
        with test_client.websocket_connect(url) as second:
            assert second.receive_json()["type"] == "presence_sync"
        # One of user_1's two sockets closed
        online = test_client.get(f"/api/sessions/{keep_session}/presence").json()
        assert [u["user_id"] for u in online["users"]] == ["user_1"]

    online = test_client.get(f"/api/sessions/{keep_session}/presence").json()
    assert online["users"] == []


@pytest.mark.api
def test_websocket_choice(test_client, keep_session):
    with test_client.websocket_connect(
        f"/ws/sessions/{keep_session}?user_id=user_1&character_id=hero"
    ) as websocket:
        assert websocket.receive_json()["type"] == "presence_sync"
        websocket.send_json({"type": "choice", "choice_text": "Kneel", "next_node_id": "crypt"})

        types = []
        while "trigger_fired" not in types:
            types.append(websocket.receive_json()["type"])
        assert types[0] == "session_update"


@pytest.mark.api
def test_websocket_unknown_session(test_client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with test_client.websocket_connect("/ws/sessions/nowhere?user_id=user_1") as websocket:
            websocket.receive_json()
    assert exc_info.value.code == 1008


@pytest.mark.api
def test_engine_not_started():
    """Without the lifespan running the routes report 503."""
    client = TestClient(create_app("sqlite+aiosqlite:///:memory:"))
    assert client.get("/api/sessions/anything").status_code == 503
