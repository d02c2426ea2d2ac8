"""
Tests for TriggerSystem: one-shot firing, effect folding, and log failures.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from chronicles.db import create_tables, make_session_factory
from chronicles.engine import ChronicleStore
from chronicles.engine.errors import PersistenceError
from chronicles.engine.systems import SessionContext, TriggerSystem


@pytest.fixture
def trigger_system(ctx):
    return TriggerSystem(ctx)


@pytest.fixture
def wise_ones(make_trigger):
    return make_trigger(
        "wise_ones",
        "stat_threshold",
        {"stat": "wisdom", "min_value": 5},
        [("modify_stat", {"stat": "magic", "change": 2})],
    )


@pytest.mark.systems
@pytest.mark.asyncio
async def test_wisdom_trigger_raises_magic(trigger_system, wise_ones, make_state, seeded_session):
    state = make_state(stats={"wisdom": 6, "magic": 3})

    result = await trigger_system.evaluate_triggers(seeded_session, "hero", [wise_ones], state, set())

    assert result.fired_trigger_ids == ["wise_ones"]
    assert state.apply(result.state_updates).stats == {"wisdom": 6, "magic": 5}
    assert result.ok


@pytest.mark.systems
@pytest.mark.asyncio
async def test_condition_not_met(trigger_system, wise_ones, make_state, seeded_session):
    state = make_state(stats={"wisdom": 4, "magic": 3})
    result = await trigger_system.evaluate_triggers(seeded_session, "hero", [wise_ones], state, set())
    assert result.fired_triggers == []
    assert result.state_updates.is_empty()


@pytest.mark.systems
@pytest.mark.asyncio
async def test_trigger_fires_at_most_once(trigger_system, wise_ones, make_state, store, seeded_session):
    state = make_state(stats={"wisdom": 6, "magic": 3})

    for _ in range(3):
        fired = await store.get_fired_trigger_ids(seeded_session)
        await trigger_system.evaluate_triggers(seeded_session, "hero", [wise_ones], state, fired)

    log = await store.get_trigger_log(seeded_session)
    assert [entry.trigger_id for entry in log] == ["wise_ones"]


@pytest.mark.systems
@pytest.mark.asyncio
async def test_already_fired_ids_are_skipped(trigger_system, wise_ones, make_state, seeded_session):
    state = make_state(stats={"wisdom": 6, "magic": 3})
    result = await trigger_system.evaluate_triggers(
        seeded_session, "hero", [wise_ones], state, {"wise_ones"}
    )
    assert result.fired_triggers == []


@pytest.mark.systems
@pytest.mark.asyncio
async def test_inactive_trigger_is_skipped(trigger_system, make_trigger, make_state, seeded_session):
    trigger = make_trigger(
        "dormant", "player_count", {"min_players": 1},
        [("award_xp", {"amount": 5})], is_active=False,
    )
    result = await trigger_system.evaluate_triggers(seeded_session, "hero", [trigger], make_state(), set())
    assert result.fired_triggers == []


@pytest.mark.systems
@pytest.mark.asyncio
async def test_effects_fold_in_order(trigger_system, make_trigger, make_state, seeded_session):
    trigger = make_trigger(
        "surge",
        "player_count",
        {"min_players": 1},
        [
            ("modify_stat", {"stat": "magic", "change": 4}),
            ("modify_stat", {"stat": "magic", "change": 4}),
            ("grant_item", {"item_name": "storm_glass"}),
            ("show_message", {"message": "Lightning crawls along the walls."}),
            ("award_xp", {"amount": 20}),
        ],
    )
    state = make_state(stats={"magic": 3})

    result = await trigger_system.evaluate_triggers(seeded_session, "hero", [trigger], state, set())

    after = state.apply(result.state_updates)
    assert after.stats["magic"] == 10
    assert after.inventory == ["storm_glass"]
    assert result.messages == ["Lightning crawls along the walls."]
    assert result.xp_awarded == 20
    # One fired view per event, one log entry per trigger
    assert len(result.fired_triggers) == 5


@pytest.mark.systems
@pytest.mark.asyncio
async def test_conditions_read_the_input_snapshot(trigger_system, make_trigger, make_state, seeded_session):
    """A trigger is not enabled by an earlier trigger's effects in the same call."""
    grant = make_trigger("grant", "player_count", {"min_players": 1}, [("grant_item", {"item_name": "key"})])
    needs_key = make_trigger("needs_key", "item_possessed", {"item_name": "key"}, [("award_xp", {"amount": 5})])

    result = await trigger_system.evaluate_triggers(
        seeded_session, "hero", [grant, needs_key], make_state(), set()
    )

    assert result.fired_trigger_ids == ["grant"]


@pytest.mark.systems
@pytest.mark.asyncio
async def test_log_context_records_first_event(trigger_system, make_trigger, make_state, store, seeded_session):
    trigger = make_trigger(
        "omen",
        "player_count",
        {"min_players": 1},
        [("show_message", {"message": "Crows gather."}), ("set_flag", {"flag_name": "omen", "flag_value": True})],
    )
    await trigger_system.evaluate_triggers(seeded_session, "hero", [trigger], make_state(), set())

    [entry] = await store.get_trigger_log(seeded_session)
    assert entry.character_id == "hero"
    assert entry.context == {
        "event_name": "omen_0",
        "event_type": "show_message",
        "payload": {"message": "Crows gather."},
        "conditions_met": {"min_players": 1},
    }


@pytest.mark.systems
@pytest.mark.asyncio
async def test_unlogged_trigger_keeps_effects(wise_ones, make_state, rng):
    store = MagicMock()
    store.append_trigger_log = AsyncMock(side_effect=PersistenceError("append_trigger_log", "disk full"))
    trigger_system = TriggerSystem(SessionContext(store, rng))
    state = make_state(stats={"wisdom": 6, "magic": 3})

    result = await trigger_system.evaluate_triggers("s", "hero", [wise_ones], state, set())

    assert not result.ok
    assert result.unlogged_trigger_ids == ["wise_ones"]
    # In-memory effects are not rolled back
    assert state.apply(result.state_updates).stats["magic"] == 5


@pytest.mark.systems
@pytest.mark.asyncio
async def test_random_chance_trigger(trigger_system, make_trigger, make_state, rng, seeded_session):
    trigger = make_trigger("lucky", "random_chance", {"probability": 40}, [("award_xp", {"amount": 1})])

    rng.random.return_value = 0.5
    result = await trigger_system.evaluate_triggers(seeded_session, "hero", [trigger], make_state(), set())
    assert result.fired_triggers == []

    rng.random.return_value = 0.1
    result = await trigger_system.evaluate_triggers(seeded_session, "hero", [trigger], make_state(), set())
    assert result.fired_trigger_ids == ["lucky"]


@pytest.mark.systems
@pytest.mark.asyncio
async def test_load_trigger_log(trigger_system, make_trigger, wise_ones, make_state, store, seeded_session):
    await trigger_system.evaluate_triggers(
        seeded_session, "hero", [wise_ones], make_state(stats={"wisdom": 9}), set()
    )
    empty = make_trigger("empty", "player_count", {"min_players": 1})
    await store.append_trigger_log(seeded_session, "empty", "hero", {})
    await store.append_trigger_log(seeded_session, "deleted_trigger", "hero", {})

    views = await trigger_system.load_trigger_log(seeded_session, [wise_ones, empty])

    assert [v.trigger_id for v in views] == ["wise_ones", "empty"]
    assert views[0].event_type == "modify_stat"
    assert views[0].payload == {"stat": "magic", "change": 2}
    # Missing context falls back to the trigger name
    assert views[1].event_name == "Empty"
    assert views[1].event_type == "show_message"


# ============================================================================
# Overlapping Evaluations
# ============================================================================


@pytest.fixture
def bonus(make_trigger):
    return make_trigger("bonus", "player_count", {"min_players": 1}, [("award_xp", {"amount": 10})])


@pytest.fixture
async def file_store(tmp_path):
    """Store on a file database, so concurrent sessions get their own connections."""
    engine, factory = make_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'chronicle.db'}")
    await create_tables(engine)
    yield ChronicleStore(factory, append_retries=2)
    await engine.dispose()


@pytest.mark.systems
@pytest.mark.asyncio
async def test_stale_fired_set_does_not_refire(trigger_system, bonus, make_state, store, seeded_session):
    """Both evaluations read the fired set before either logged; only the first applies."""
    stale = await store.get_fired_trigger_ids(seeded_session)

    first = await trigger_system.evaluate_triggers(seeded_session, "hero", [bonus], make_state(), stale)
    second = await trigger_system.evaluate_triggers(seeded_session, "rival", [bonus], make_state(), stale)

    assert first.fired_trigger_ids == ["bonus"]
    assert first.xp_awarded == 10
    assert second.fired_triggers == []
    assert second.xp_awarded == 0
    assert second.ok
    assert [e.character_id for e in await store.get_trigger_log(seeded_session)] == ["hero"]


@pytest.mark.systems
@pytest.mark.asyncio
async def test_concurrent_evaluations_fire_once(file_store, bonus, make_state, rng):
    trigger_system = TriggerSystem(SessionContext(file_store, rng))

    async def evaluate(character_id):
        fired = await file_store.get_fired_trigger_ids("race")
        return await trigger_system.evaluate_triggers("race", character_id, [bonus], make_state(), fired)

    results = await asyncio.gather(evaluate("hero"), evaluate("rival"))

    assert sum(r.xp_awarded for r in results) == 10
    assert sum(len(r.fired_triggers) for r in results) == 1
    assert [e.trigger_id for e in await file_store.get_trigger_log("race")] == ["bonus"]
