# backend/chronicles/engine/systems/conditions.py
"""
Condition evaluation - pure predicates over a SessionState.

Three families of condition bags exist:
- trigger conditions, keyed by TriggerType (one predicate per type)
- hint conditions (stat_threshold / flag_required / item_required, AND-ed)
- random event conditions (stat_threshold / required_flags / min_turns /
  location, AND-ed)

Campaign content is community-authored. A missing or malformed parameter
makes the condition false; nothing here raises.
"""

from __future__ import annotations

import random
from typing import Any, Callable, Mapping

from ..campaign import TriggerType, enum_value
from ..state import SessionState, as_number, coerce_flag_value

Conditions = Mapping[str, Any]
TriggerPredicate = Callable[[Conditions, SessionState, random.Random], bool]


# ============================================================================
# Trigger predicates
# ============================================================================


def _stat_threshold(cond: Conditions, state: SessionState, rng: random.Random) -> bool:
    stat = cond.get("stat")
    min_value = as_number(cond.get("min_value"))
    if not isinstance(stat, str) or not stat or min_value is None:
        return False
    current = as_number(state.stats.get(stat)) or 0
    return current >= min_value


def _item_possessed(cond: Conditions, state: SessionState, rng: random.Random) -> bool:
    item_name = cond.get("item_name")
    if not isinstance(item_name, str) or not item_name:
        return False
    return state.has_item(item_name)


def flag_matches(current: Any, expected: Any) -> bool:
    """Strict flag comparison with "true"/"false" strings treated as booleans."""
    expected = coerce_flag_value(expected)
    if isinstance(expected, bool):
        return current is expected
    if current is None:
        return False
    if isinstance(current, bool):
        return False
    return current == expected or str(current) == str(expected)


def _flag_set(cond: Conditions, state: SessionState, rng: random.Random) -> bool:
    flag_name = cond.get("flag_name")
    if not isinstance(flag_name, str) or not flag_name or "flag_value" not in cond:
        return False
    return flag_matches(state.story_flags.get(flag_name), cond["flag_value"])


def _namespaced_score(prefix: str, name_key: str, min_key: str) -> TriggerPredicate:
    def predicate(cond: Conditions, state: SessionState, rng: random.Random) -> bool:
        name = cond.get(name_key)
        minimum = as_number(cond.get(min_key))
        if not isinstance(name, str) or not name or minimum is None:
            return False
        current = as_number(state.story_flags.get(f"{prefix}_{name}")) or 0
        return current >= minimum

    return predicate


def _choice_made(cond: Conditions, state: SessionState, rng: random.Random) -> bool:
    node_id = cond.get("node_id")
    choice_text = cond.get("choice_text")
    if not isinstance(node_id, str) or not isinstance(choice_text, str):
        return False
    needle = choice_text.lower()
    return any(
        c.node_id == node_id and needle in (c.choice_text or "").lower()
        for c in state.choices_made
    )


def _player_count(cond: Conditions, state: SessionState, rng: random.Random) -> bool:
    min_players = as_number(cond.get("min_players"))
    if min_players is None:
        return False
    return state.player_count >= min_players


def _random_chance(cond: Conditions, state: SessionState, rng: random.Random) -> bool:
    # Rolled fresh on every evaluation
    probability = as_number(cond.get("probability"))
    if probability is None:
        return False
    return rng.random() * 100 < probability


TRIGGER_PREDICATES: dict[str, TriggerPredicate] = {
    TriggerType.STAT_THRESHOLD.value: _stat_threshold,
    TriggerType.ITEM_POSSESSED.value: _item_possessed,
    TriggerType.FLAG_SET.value: _flag_set,
    TriggerType.RELATIONSHIP_SCORE.value: _namespaced_score("relationship", "npc_name", "min_score"),
    TriggerType.FACTION_REPUTATION.value: _namespaced_score("faction", "faction_name", "min_reputation"),
    TriggerType.CHOICE_MADE.value: _choice_made,
    TriggerType.PLAYER_COUNT.value: _player_count,
    TriggerType.RANDOM_CHANCE.value: _random_chance,
}


def evaluate_trigger_condition(
    trigger_type: str,
    conditions: Conditions | None,
    state: SessionState,
    rng: random.Random | None = None,
) -> bool:
    """Evaluate one trigger condition. Unknown types never match."""
    predicate = TRIGGER_PREDICATES.get(enum_value(trigger_type))
    if predicate is None or not isinstance(conditions, Mapping):
        return False
    return predicate(conditions, state, rng or random)


# ============================================================================
# Hint conditions
# ============================================================================


def _stat_minimums(spec: Any) -> dict[str, float] | None:
    """
    Normalize a stat_threshold clause.

    Accepts {"stat": "wisdom", "min_value": 5} or {"wisdom": 5, "magic": 3}.
    Returns None when the clause is malformed.
    """
    if not isinstance(spec, Mapping) or not spec:
        return None
    if "stat" in spec:
        stat = spec.get("stat")
        minimum = as_number(spec.get("min_value"))
        if not isinstance(stat, str) or minimum is None:
            return None
        return {stat: minimum}
    minimums: dict[str, float] = {}
    for stat, raw in spec.items():
        minimum = as_number(raw)
        if minimum is None:
            return None
        minimums[str(stat)] = minimum
    return minimums


def _meets_stat_minimums(spec: Any, state: SessionState) -> bool:
    minimums = _stat_minimums(spec)
    if minimums is None:
        return False
    return all((as_number(state.stats.get(stat)) or 0) >= minimum for stat, minimum in minimums.items())


def evaluate_hint_conditions(conditions: Conditions | None, state: SessionState) -> bool:
    """All present clauses must hold; an empty bag is always eligible."""
    if not conditions:
        return True
    if not isinstance(conditions, Mapping):
        return False

    if "stat_threshold" in conditions:
        if not _meets_stat_minimums(conditions["stat_threshold"], state):
            return False

    if "flag_required" in conditions:
        flag = conditions["flag_required"]
        if not isinstance(flag, Mapping) or "key" not in flag:
            return False
        if state.story_flags.get(flag["key"]) != flag.get("value"):
            return False

    if "item_required" in conditions:
        item = conditions["item_required"]
        if not isinstance(item, str) or item not in state.inventory:
            return False

    return True


# ============================================================================
# Random event conditions
# ============================================================================


def evaluate_event_conditions(conditions: Conditions | None, state: SessionState) -> bool:
    """All present clauses must hold; an empty bag is always eligible."""
    if not conditions:
        return True
    if not isinstance(conditions, Mapping):
        return False

    if conditions.get("stat_threshold"):
        if not _meets_stat_minimums(conditions["stat_threshold"], state):
            return False

    if conditions.get("required_flags"):
        flags = conditions["required_flags"]
        if not isinstance(flags, Mapping):
            return False
        for flag, value in flags.items():
            if state.story_flags.get(flag) != value:
                return False

    if conditions.get("min_turns"):
        min_turns = as_number(conditions["min_turns"])
        if min_turns is None or state.turn_count < min_turns:
            return False

    if conditions.get("location"):
        if state.location != conditions["location"]:
            return False

    return True
