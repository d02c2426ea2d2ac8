"""
Integration tests for ChronicleEngine player actions.

Runs the sample campaign end to end: a choice fires triggers, a completed
interaction logs cascades, a hint response applies its outcome. Every
action is checked against the store and the session feed.
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import text

from chronicles.engine.errors import NotFoundError, PersistenceError
from chronicles.engine.loader import load_campaign_from_yaml
from chronicles.engine.state import CharacterRecord

SESSION_ID = "keep_session"


@pytest.fixture
async def keep_session(store, sample_campaign_path):
    await load_campaign_from_yaml(store, sample_campaign_path)
    await store.create_character(CharacterRecord(
        id="hero",
        name="Aldric",
        user_id="user_1",
        stats={"wisdom": 6, "magic": 3, "charisma": 5},
    ))
    await store.create_session(
        "sunken_keep",
        SESSION_ID,
        current_node_id="flooded_throne",
        turn_order=["user_1"],
    )
    await store.add_participant(SESSION_ID, "hero")
    return SESSION_ID


@pytest.fixture
def feed(chronicle_engine, keep_session):
    return chronicle_engine.ctx.register_listener(keep_session, "observer")


def drain(queue):
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


# ============================================================================
# make_choice
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
async def test_choice_fires_triggers_and_persists(chronicle_engine, store, keep_session, feed):
    outcome = await chronicle_engine.make_choice(keep_session, "hero", "Kneel before the throne", "crypt")

    assert outcome.ok
    assert {f.trigger_id for f in outcome.fired_triggers} == {"wise_ones", "drowned_pact"}
    assert outcome.state.stats["magic"] == 5
    assert outcome.state.story_flags == {"pact_sealed": True}
    assert outcome.state.inventory == ["tide_pearl"]
    assert outcome.messages == ["The walls whisper forgotten words."]
    assert outcome.random_event is None

    session = await store.get_session(keep_session)
    assert session.current_node_id == "crypt"
    assert session.turn_count == 1
    assert session.story_flags == {"pact_sealed": True}
    assert [c.node_id for c in session.choices_made] == ["flooded_throne"]

    hero = await store.get_character("hero")
    assert hero.stats == {"wisdom": 6, "magic": 5, "charisma": 5}
    assert hero.inventory == ["tide_pearl"]

    assert await store.get_fired_trigger_ids(keep_session) == {"wise_ones", "drowned_pact"}

    events = drain(feed)
    assert [e["type"] for e in events] == [
        "session_update",
        "session_update",
        "trigger_fired",
        "state_update",
        "message",
    ]
    assert events[3]["payload"]["delta"]["inventory"] == ["tide_pearl"]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_triggers_do_not_refire(chronicle_engine, store, keep_session):
    await chronicle_engine.make_choice(keep_session, "hero", "Kneel")
    outcome = await chronicle_engine.make_choice(keep_session, "hero", "Kneel again")

    assert outcome.fired_triggers == []
    assert (await store.get_character("hero")).stats["magic"] == 5
    assert len(await store.get_trigger_log(keep_session)) == 2


@pytest.mark.integration
@pytest.mark.asyncio
async def test_random_event_applies_effects(chronicle_engine, store, rng, keep_session, feed):
    await store.update_session(keep_session, turn_count=5)
    rng.random.return_value = 0.01

    outcome = await chronicle_engine.make_choice(keep_session, "hero", "Wade deeper")

    # rising_tide is first in definition order and wins over glinting_coin
    assert outcome.random_event.id == "rising_tide"
    [entry] = await store.get_random_event_log(keep_session)
    assert entry.event_id == "rising_tide"
    assert entry.was_positive is False
    assert "random_event" in [e["type"] for e in drain(feed)]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unlogged_triggers_reported(chronicle_engine, store, keep_session, monkeypatch):
    monkeypatch.setattr(
        store, "append_trigger_log", AsyncMock(side_effect=PersistenceError("append_trigger_log"))
    )

    outcome = await chronicle_engine.make_choice(keep_session, "hero", "Kneel")

    assert not outcome.ok
    assert outcome.errors[0].startswith("triggers:")
    # Effects were still applied and written
    assert (await store.get_character("hero")).stats["magic"] == 5


@pytest.mark.integration
@pytest.mark.asyncio
async def test_failed_trigger_log_read_reported(chronicle_engine, store, test_engine, keep_session):
    async with test_engine.begin() as conn:
        await conn.execute(text("DROP TABLE session_trigger_log"))

    outcome = await chronicle_engine.make_choice(keep_session, "hero", "Kneel", "crypt")

    assert not outcome.ok
    assert outcome.errors[0].startswith("triggers: get_fired_trigger_ids failed")
    assert outcome.fired_triggers == []
    # The choice itself was still recorded
    assert (await store.get_session(keep_session)).current_node_id == "crypt"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_choice_in_unknown_session(chronicle_engine, keep_session):
    with pytest.raises(NotFoundError):
        await chronicle_engine.make_choice("nowhere", "hero", "Kneel")


# ============================================================================
# complete_interaction
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
async def test_completed_interaction_logs_cascades(chronicle_engine, store, keep_session, feed):
    outcome = await chronicle_engine.complete_interaction(keep_session, "hero", "bribe_guard", "good")

    assert outcome.applied_cascade_ids == ["bribe_opens_vault"]
    [entry] = await store.get_cascade_log(keep_session)
    assert entry.cascade_rule_id == "bribe_opens_vault"

    effects = await chronicle_engine.get_interaction_effects(keep_session, "vault_door")
    assert effects.is_unlocked
    assert effects.difficulty_modifier == 0

    types = [e["type"] for e in drain(feed)]
    assert types[0] == "cascade_applied"
    # wise_ones fires on the re-run
    assert "trigger_fired" in types


@pytest.mark.integration
@pytest.mark.asyncio
async def test_failed_bribe_raises_difficulty(chronicle_engine, keep_session):
    await chronicle_engine.complete_interaction(keep_session, "hero", "bribe_guard", "bad")
    effects = await chronicle_engine.get_interaction_effects(keep_session, "vault_door")
    assert not effects.is_unlocked
    assert effects.difficulty_modifier == 2

    assert await chronicle_engine.get_cascade_effects_summary(keep_session, "bribe_guard") == [
        "On success: Unlocks a new interaction",
        "On failure: Increases difficulty of related interaction",
    ]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unknown_outcome_type(chronicle_engine, store, keep_session):
    with pytest.raises(ValueError):
        await chronicle_engine.complete_interaction(keep_session, "hero", "bribe_guard", "great")
    assert await store.get_completed_interactions(keep_session) == []


# ============================================================================
# respond_to_hint
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
async def test_opposite_response_grants_cursed_ring(chronicle_engine, store, keep_session, feed):
    outcome = await chronicle_engine.respond_to_hint(keep_session, "hero", "follow_the_water", "opposite")

    assert outcome.hint_outcome == {"grant_item": "cursed_ring"}
    assert "cursed_ring" in (await store.get_character("hero")).inventory

    [record] = await store.get_hint_responses(keep_session)
    assert record.response == "opposite"
    assert record.context["outcome"] == {"grant_item": "cursed_ring"}

    events = drain(feed)
    assert events[0]["type"] == "hint_outcome"
    assert events[0]["payload"]["hint_id"] == "follow_the_water"

    streaks = await chronicle_engine.get_hint_streaks(keep_session, "hero")
    assert streaks.opposite_count == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_followed_hint_awards_xp(chronicle_engine, store, keep_session):
    outcome = await chronicle_engine.respond_to_hint(keep_session, "hero", "follow_the_water", "followed")
    # 10 from the hint; wise_ones awards none
    assert outcome.xp_awarded == 10
    assert (await store.get_character("hero")).experience == 10


@pytest.mark.integration
@pytest.mark.asyncio
async def test_bad_hint_response_changes_nothing(chronicle_engine, store, keep_session):
    with pytest.raises(ValueError):
        await chronicle_engine.respond_to_hint(keep_session, "hero", "follow_the_water", "shrugged")
    with pytest.raises(NotFoundError):
        await chronicle_engine.respond_to_hint(keep_session, "hero", "no_such_hint", "followed")
    assert await store.get_hint_responses(keep_session) == []


# ============================================================================
# Queries
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
async def test_active_hints_follow_node_and_items(chronicle_engine, store, keep_session):
    hints = await chronicle_engine.get_active_hints(keep_session, "hero", "flooded_hall")
    assert [h.id for h in hints] == ["follow_the_water"]

    await store.update_character("hero", inventory=["Lantern"])
    hints = await chronicle_engine.get_active_hints(keep_session, "hero", "flooded_hall")
    assert {h.id for h in hints} == {"follow_the_water", "trust_the_lantern"}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_trigger_log_view(chronicle_engine, keep_session):
    await chronicle_engine.make_choice(keep_session, "hero", "Look around")
    [view] = await chronicle_engine.get_trigger_log(keep_session)
    assert view.trigger_id == "wise_ones"
    assert view.trigger_name == "The Wise Ones"
    assert view.event_name == "Arcane insight"
