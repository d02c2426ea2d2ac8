# backend/chronicles/engine/systems/effects.py
"""
Effect application - pure functions from (effect, state) to a state delta.

Handles:
- modify_stat: signed delta, clamped to [STAT_MIN, STAT_MAX]
- set_flag: upsert with "true"/"false" coercion
- grant_item: add to inventory (inventory behaves as an ordered set)
- award_xp / show_message / unlock_path / spawn_node: no state delta; surfaced
  to the caller through EffectResult so the session layer can apply them to
  character records and the node graph

Also folds outcome payloads (hint outcomes, random event effects), which are
bags keyed by effect type, e.g. {"grant_item": "cursed_ring"}.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping

from ..campaign import EventType
from ..state import SessionState, StateDelta, as_number, clamp_stat, coerce_flag_value


@dataclass
class EffectResult:
    """Accumulated outcome of applying one or more effects."""

    delta: StateDelta = field(default_factory=StateDelta)
    messages: list[str] = field(default_factory=list)
    xp_awarded: int = 0
    unlocked_paths: list[dict[str, Any]] = field(default_factory=list)
    spawned_nodes: list[dict[str, Any]] = field(default_factory=list)

    def extend(self, other: "EffectResult") -> None:
        self.delta = self.delta.merge(other.delta)
        self.messages.extend(other.messages)
        self.xp_awarded += other.xp_awarded
        self.unlocked_paths.extend(other.unlocked_paths)
        self.spawned_nodes.extend(other.spawned_nodes)


def apply_effect(event_type: str, payload: Mapping[str, Any] | None, state: SessionState) -> StateDelta:
    """
    Compute the state delta of a single effect.

    Effects without a state component, unknown effect types and malformed
    payloads return an empty delta.
    """
    if not isinstance(payload, Mapping):
        return StateDelta()

    if event_type == EventType.MODIFY_STAT:
        stat = payload.get("stat")
        change = as_number(payload.get("change")) or 0
        if not isinstance(stat, str) or not stat:
            return StateDelta()
        stats = dict(state.stats)
        current = as_number(stats.get(stat)) or 0
        stats[stat] = clamp_stat(int(current + change))
        return StateDelta(stats=stats)

    if event_type == EventType.SET_FLAG:
        flag_name = payload.get("flag_name")
        if not isinstance(flag_name, str) or not flag_name:
            return StateDelta()
        flags = dict(state.story_flags)
        flags[flag_name] = coerce_flag_value(payload.get("flag_value"))
        return StateDelta(story_flags=flags)

    if event_type == EventType.GRANT_ITEM:
        item_name = payload.get("item_name")
        if not isinstance(item_name, str) or not item_name:
            return StateDelta()
        inventory = list(state.inventory)
        if item_name not in inventory:
            inventory.append(item_name)
        return StateDelta(inventory=inventory)

    return StateDelta()


def surface_effect(event_type: str, payload: Mapping[str, Any] | None) -> EffectResult:
    """Collect the non-state part of an effect (messages, xp, graph changes)."""
    result = EffectResult()
    if not isinstance(payload, Mapping):
        return result

    if event_type == EventType.SHOW_MESSAGE:
        message = payload.get("message")
        if message:
            result.messages.append(str(message))
    elif event_type == EventType.AWARD_XP:
        result.xp_awarded += int(as_number(payload.get("amount")) or 0)
    elif event_type == EventType.UNLOCK_PATH:
        result.unlocked_paths.append(dict(payload))
    elif event_type == EventType.SPAWN_NODE:
        result.spawned_nodes.append(dict(payload))
    return result


def run_effect(event_type: str, payload: Mapping[str, Any] | None, state: SessionState) -> EffectResult:
    """Apply one effect: state delta plus surfaced values."""
    result = surface_effect(event_type, payload)
    result.delta = apply_effect(event_type, payload, state)
    return result


# ============================================================================
# Outcome payloads
# ============================================================================

# Shorthand scalar forms: {"grant_item": "torch"} -> {"item_name": "torch"}
_SCALAR_KEYS = {
    EventType.GRANT_ITEM.value: "item_name",
    EventType.AWARD_XP.value: "amount",
    EventType.SHOW_MESSAGE.value: "message",
    EventType.UNLOCK_PATH.value: "node_id",
    EventType.SPAWN_NODE.value: "node_id",
}


def _expand_outcome_entry(event_type: str, value: Any) -> list[dict[str, Any]]:
    """Turn one outcome-bag entry into effect payloads."""
    if isinstance(value, list):
        expanded: list[dict[str, Any]] = []
        for item in value:
            expanded.extend(_expand_outcome_entry(event_type, item))
        return expanded

    if isinstance(value, Mapping):
        if event_type == EventType.SET_FLAG and "flag_name" not in value:
            # {"set_flag": {"door_open": true, "alarm": "false"}}
            return [{"flag_name": k, "flag_value": v} for k, v in value.items()]
        return [dict(value)]

    key = _SCALAR_KEYS.get(event_type)
    if key is None or value is None:
        return []
    return [{key: value}]


def apply_outcome(outcome: Mapping[str, Any] | None, state: SessionState) -> EffectResult:
    """
    Fold an outcome payload into an EffectResult.

    Entries are applied in key order, each against the state with the
    earlier entries already applied. Unknown keys are ignored.
    """
    result = EffectResult()
    if not isinstance(outcome, Mapping):
        return result

    valid = {e.value for e in EventType}
    current = state
    for event_type, value in outcome.items():
        if event_type not in valid:
            continue
        for payload in _expand_outcome_entry(event_type, value):
            step = run_effect(event_type, payload, current)
            current = current.apply(step.delta)
            result.extend(step)
    return result
