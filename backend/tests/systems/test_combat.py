"""
Tests for CombatSystem: encounter lifecycle, ready checks and bluffs.
"""

import pytest

from chronicles.engine.campaign import CombatParticipant
from chronicles.engine.errors import InvalidTransitionError, NotFoundError
from chronicles.engine.systems import CombatSystem, get_stat_hint

HERO_STATS = {"wisdom": 6, "magic": 3, "charisma": 5}
RIVAL_STATS = {"wisdom": 4, "stealth": 7, "strength": 8}


@pytest.fixture
def combat(ctx):
    return CombatSystem(ctx)


@pytest.fixture
def duelists():
    return [
        CombatParticipant(character_id="hero", role="challenger", visible_equipment=["Sword"]),
        CombatParticipant(character_id="rival", role="defender"),
    ]


# ============================================================================
# Bluffs
# ============================================================================


@pytest.mark.systems
@pytest.mark.asyncio
async def test_flex_uses_charisma(combat, seeded_session):
    # charisma 5 + d6 roll of 1 = 6 against difficulty 5
    attempt = await combat.attempt_bluff(seeded_session, "hero", "rival", "flex", HERO_STATS, RIVAL_STATS)

    assert attempt.id > 0
    assert attempt.stat_used == "charisma"
    assert attempt.roll_value == 6
    assert attempt.difficulty == 5
    assert attempt.success is True
    assert attempt.revealed_info is None


@pytest.mark.systems
@pytest.mark.asyncio
async def test_feign_weakness_is_harder(combat, rng, seeded_session):
    attempt = await combat.attempt_bluff(
        seeded_session, "hero", "rival", "feign_weakness", {"charisma": 4}, RIVAL_STATS
    )
    assert attempt.difficulty == 6
    assert attempt.roll_value == 5
    assert attempt.success is False

    rng.randint.return_value = 2
    attempt = await combat.attempt_bluff(
        seeded_session, "hero", "rival", "feign_weakness", {"charisma": 4}, RIVAL_STATS
    )
    assert attempt.success is True


@pytest.mark.systems
@pytest.mark.asyncio
async def test_intimidate_against_target_wisdom(combat, seeded_session):
    attempt = await combat.attempt_bluff(seeded_session, "hero", "rival", "intimidate", HERO_STATS, RIVAL_STATS)
    assert attempt.difficulty == 4
    assert attempt.success is True

    attempt = await combat.attempt_bluff(seeded_session, "hero", "rival", "intimidate", HERO_STATS, {})
    assert attempt.difficulty == 5


@pytest.mark.systems
@pytest.mark.asyncio
async def test_missing_actor_stat_uses_default(combat, seeded_session):
    attempt = await combat.attempt_bluff(seeded_session, "rival", "hero", "flex", RIVAL_STATS, HERO_STATS)
    # rival has no charisma: 3 + 1
    assert attempt.roll_value == 4
    assert attempt.success is False


@pytest.mark.systems
@pytest.mark.asyncio
async def test_successful_scout_reveals_hint_not_value(combat, seeded_session):
    attempt = await combat.attempt_bluff(
        seeded_session, "hero", "rival", "scout", {"perception": 6}, RIVAL_STATS
    )

    assert attempt.stat_used == "perception"
    assert attempt.difficulty == 7
    assert attempt.success is True
    assert attempt.revealed_info == {"stat": "strength", "hint": "looks powerful"}
    assert 8 not in attempt.revealed_info.values()


@pytest.mark.systems
@pytest.mark.asyncio
async def test_failed_scout_reveals_nothing(combat, seeded_session):
    attempt = await combat.attempt_bluff(
        seeded_session, "hero", "rival", "scout", {"perception": 2}, RIVAL_STATS
    )
    assert attempt.success is False
    assert attempt.revealed_info is None


@pytest.mark.systems
@pytest.mark.asyncio
async def test_unknown_bluff_type(combat, store, seeded_session):
    with pytest.raises(ValueError):
        await combat.attempt_bluff(seeded_session, "hero", "rival", "juggle", HERO_STATS, RIVAL_STATS)
    assert await store.get_bluffs(seeded_session) == []


@pytest.mark.systems
@pytest.mark.asyncio
async def test_bluff_history_newest_first(combat, seeded_session):
    first = await combat.attempt_bluff(seeded_session, "hero", "rival", "flex", HERO_STATS, RIVAL_STATS)
    second = await combat.attempt_bluff(seeded_session, "rival", "hero", "intimidate", RIVAL_STATS, HERO_STATS)

    history = await combat.get_bluff_history(seeded_session, "hero")
    assert [a.id for a in history] == [second.id, first.id]
    assert await combat.get_bluff_history(seeded_session, "stranger") == []


# ============================================================================
# Encounter Lifecycle
# ============================================================================


@pytest.mark.systems
@pytest.mark.asyncio
async def test_encounter_lifecycle(combat, duelists, seeded_session):
    encounter = await combat.start_combat(seeded_session, "duel", duelists, node_id="gate")
    assert encounter.status == "pending"
    assert encounter.stats_hidden is True
    assert encounter.resolved_at is None

    encounter = await combat.activate(encounter.id)
    assert encounter.status == "active"

    encounter = await combat.resolve_combat(
        encounter.id, {"winner_id": "hero", "loser_id": "rival", "narrative": "Steel rings."}
    )
    assert encounter.status == "resolved"
    assert encounter.outcome["winner_id"] == "hero"
    assert encounter.resolved_at is not None
    assert encounter.resolved_at >= encounter.started_at


@pytest.mark.systems
@pytest.mark.asyncio
async def test_illegal_transitions(combat, duelists, seeded_session):
    encounter = await combat.start_combat(seeded_session, "pvp", duelists)

    with pytest.raises(InvalidTransitionError):
        await combat.resolve_combat(encounter.id, {"winner_id": "hero"})
    with pytest.raises(InvalidTransitionError):
        await combat.update_status(encounter.id, "resolved")

    await combat.activate(encounter.id)
    with pytest.raises(InvalidTransitionError):
        await combat.update_status(encounter.id, "pending")

    await combat.update_status(encounter.id, "resolved")
    with pytest.raises(InvalidTransitionError):
        await combat.update_status(encounter.id, "active")


@pytest.mark.systems
@pytest.mark.asyncio
async def test_unknown_combat_type(combat, duelists, seeded_session):
    with pytest.raises(ValueError):
        await combat.start_combat(seeded_session, "pillow_fight", duelists)


@pytest.mark.systems
@pytest.mark.asyncio
async def test_unknown_encounter(combat):
    with pytest.raises(NotFoundError):
        await combat.activate("missing")


@pytest.mark.systems
@pytest.mark.asyncio
async def test_ready_checks(combat, duelists, seeded_session):
    encounter = await combat.start_combat(seeded_session, "duel", duelists)

    encounter = await combat.set_ready(encounter.id, "hero")
    assert not combat.all_ready(encounter)
    encounter = await combat.set_ready(encounter.id, "rival")
    assert combat.all_ready(encounter)

    with pytest.raises(NotFoundError):
        await combat.set_ready(encounter.id, "stranger")


@pytest.mark.systems
@pytest.mark.asyncio
async def test_ready_after_resolution_rejected(combat, duelists, seeded_session):
    encounter = await combat.start_combat(seeded_session, "duel", duelists)
    await combat.activate(encounter.id)
    await combat.resolve_combat(encounter.id, None)
    with pytest.raises(InvalidTransitionError):
        await combat.set_ready(encounter.id, "hero")


@pytest.mark.systems
@pytest.mark.asyncio
async def test_active_combat_lookup(combat, duelists, seeded_session):
    encounter = await combat.start_combat(seeded_session, "duel", duelists)
    assert await combat.get_active_combat(seeded_session) is None
    assert not await combat.is_in_combat(seeded_session, "hero")

    await combat.activate(encounter.id)
    active = await combat.get_active_combat(seeded_session)
    assert active.id == encounter.id
    assert active.participants[0].visible_equipment == ["Sword"]
    assert await combat.is_in_combat(seeded_session, "hero")
    assert not await combat.is_in_combat(seeded_session, "stranger")


# ============================================================================
# Stat Hints
# ============================================================================


@pytest.mark.systems
@pytest.mark.parametrize(
    "stat,value,expected",
    [
        ("strength", 1, "appears frail"),
        ("strength", 3, "appears frail"),
        ("strength", 4, "seems capable"),
        ("strength", 6, "seems capable"),
        ("strength", 7, "looks powerful"),
        ("Magic", 10, "radiates power"),
        ("luck", 5, "unknown"),
    ],
)
def test_stat_hint_tiers(stat, value, expected):
    assert get_stat_hint(stat, value) == expected
