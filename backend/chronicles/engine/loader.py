# backend/chronicles/engine/loader.py
"""
YAML campaign import.

A campaign file holds the campaign header plus its triggers (with their
ordered events), cascade rules, hints, hint chains and random events.
Malformed entries are skipped with a warning so one bad entry does not keep
the rest of a community-authored campaign from loading.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .campaign import (CascadeEffectType, CascadeRule, EffectSpec, EventType,
                       Hint, HintChain, HintType, OutcomeType, RandomEvent,
                       RandomEventCategory, SourceFlavor, TriggerDefinition,
                       TriggerType)
from .state import as_number
from .store import ChronicleStore

logger = logging.getLogger(__name__)

TRIGGER_TYPES = {t.value for t in TriggerType}
EVENT_TYPES = {t.value for t in EventType}
OUTCOME_TYPES = {t.value for t in OutcomeType}
CASCADE_EFFECT_TYPES = {t.value for t in CascadeEffectType}
HINT_TYPES = {t.value for t in HintType}
SOURCE_FLAVORS = {t.value for t in SourceFlavor}
EVENT_CATEGORIES = {t.value for t in RandomEventCategory}


@dataclass
class ParsedCampaign:
    campaign_id: str
    name: str
    description: str | None = None
    triggers: list[TriggerDefinition] = field(default_factory=list)
    cascade_rules: list[CascadeRule] = field(default_factory=list)
    hints: list[Hint] = field(default_factory=list)
    hint_chains: list[HintChain] = field(default_factory=list)
    random_events: list[RandomEvent] = field(default_factory=list)
    skipped: int = 0


def _mapping(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _parse_event(data: Any, trigger_id: str) -> EffectSpec | None:
    if not isinstance(data, dict):
        logger.warning("Trigger %s: event is not a mapping, skipping", trigger_id)
        return None
    event_type = data.get("event_type")
    if event_type not in EVENT_TYPES:
        logger.warning("Trigger %s: unknown event_type %r, skipping event", trigger_id, event_type)
        return None
    return EffectSpec(
        event_type=event_type,
        payload=_mapping(data.get("payload")),
        name=str(data.get("name") or event_type),
        id=data.get("id"),
    )


def _parse_trigger(data: Any, campaign_id: str) -> TriggerDefinition | None:
    """Parse a trigger entry; None when the entry is unusable."""
    if not isinstance(data, dict) or not data.get("id") or not data.get("name"):
        logger.warning("Campaign %s: trigger without id/name, skipping: %r", campaign_id, data)
        return None
    trigger_type = data.get("trigger_type")
    if trigger_type not in TRIGGER_TYPES:
        logger.warning("Trigger %s: unknown trigger_type %r, skipping", data["id"], trigger_type)
        return None

    events = []
    for raw in data.get("events") or []:
        event = _parse_event(raw, data["id"])
        if event is not None:
            events.append(event)

    return TriggerDefinition(
        id=str(data["id"]),
        campaign_id=campaign_id,
        name=str(data["name"]),
        trigger_type=trigger_type,
        conditions=_mapping(data.get("conditions")),
        events=events,
        is_active=bool(data.get("is_active", True)),
        description=data.get("description"),
    )


def _parse_cascade_rule(data: Any, campaign_id: str) -> CascadeRule | None:
    required = ("id", "source_interaction_id", "target_interaction_id")
    if not isinstance(data, dict) or not all(data.get(k) for k in required):
        logger.warning("Campaign %s: incomplete cascade rule, skipping: %r", campaign_id, data)
        return None
    outcome = data.get("source_outcome_type")
    effect = data.get("effect_type")
    if outcome not in OUTCOME_TYPES or effect not in CASCADE_EFFECT_TYPES:
        logger.warning(
            "Cascade rule %s: bad outcome/effect type (%r, %r), skipping", data["id"], outcome, effect
        )
        return None
    return CascadeRule(
        id=str(data["id"]),
        campaign_id=campaign_id,
        source_interaction_id=str(data["source_interaction_id"]),
        source_outcome_type=outcome,
        target_interaction_id=str(data["target_interaction_id"]),
        effect_type=effect,
        effect_value=_mapping(data.get("effect_value")),
        priority=int(as_number(data.get("priority")) or 0),
        is_active=bool(data.get("is_active", True)),
    )


def _parse_hint(data: Any, campaign_id: str) -> Hint | None:
    if not isinstance(data, dict) or not data.get("id") or not data.get("hint_text"):
        logger.warning("Campaign %s: hint without id/text, skipping: %r", campaign_id, data)
        return None
    hint_type = data.get("hint_type", HintType.DIRECTION.value)
    if hint_type not in HINT_TYPES:
        logger.warning("Hint %s: unknown hint_type %r, skipping", data["id"], hint_type)
        return None
    flavor = data.get("source_flavor", SourceFlavor.INNER_VOICE.value)
    if flavor not in SOURCE_FLAVORS:
        logger.warning("Hint %s: unknown source_flavor %r, using inner_voice", data["id"], flavor)
        flavor = SourceFlavor.INNER_VOICE.value
    return Hint(
        id=str(data["id"]),
        campaign_id=campaign_id,
        hint_type=hint_type,
        hint_text=str(data["hint_text"]),
        node_id=data.get("node_id"),
        conditions=_mapping(data.get("conditions")),
        follow_outcome=_mapping(data.get("follow_outcome")),
        ignore_outcome=_mapping(data.get("ignore_outcome")),
        opposite_outcome=_mapping(data.get("opposite_outcome")),
        is_red_herring=bool(data.get("is_red_herring", False)),
        source_flavor=flavor,
        priority=int(as_number(data.get("priority")) or 0),
        is_active=bool(data.get("is_active", True)),
    )


def _parse_hint_chain(data: Any, campaign_id: str, order: int) -> HintChain | None:
    if not isinstance(data, dict) or not data.get("id") or not data.get("chain_name"):
        logger.warning("Campaign %s: hint chain without id/name, skipping: %r", campaign_id, data)
        return None
    hint_ids = data.get("hint_ids") or []
    chain_order = as_number(data.get("chain_order"))
    if not isinstance(hint_ids, list):
        logger.warning("Hint chain %s: hint_ids is not a list, skipping", data["id"])
        return None
    return HintChain(
        id=str(data["id"]),
        campaign_id=campaign_id,
        chain_name=str(data["chain_name"]),
        hint_ids=[str(h) for h in hint_ids],
        completion_reward=_mapping(data.get("completion_reward")),
        chain_order=int(chain_order) if chain_order is not None else order,
    )


def _parse_random_event(data: Any, campaign_id: str) -> RandomEvent | None:
    if not isinstance(data, dict) or not data.get("id") or not data.get("name"):
        logger.warning("Campaign %s: random event without id/name, skipping: %r", campaign_id, data)
        return None
    category = data.get("category")
    if category not in EVENT_CATEGORIES:
        logger.warning("Random event %s: unknown category %r, skipping", data["id"], category)
        return None
    probability = as_number(data.get("probability"))
    if probability is None or not 0 <= probability <= 100:
        logger.warning("Random event %s: probability must be 0-100, skipping", data["id"])
        return None
    return RandomEvent(
        id=str(data["id"]),
        campaign_id=campaign_id,
        name=str(data["name"]),
        category=category,
        probability=float(probability),
        description=data.get("description"),
        conditions=_mapping(data.get("conditions")),
        effects=_mapping(data.get("effects")),
        is_recurring=bool(data.get("is_recurring", False)),
        cooldown_turns=int(as_number(data.get("cooldown_turns")) or 0),
        is_active=bool(data.get("is_active", True)),
    )


def parse_campaign(data: dict[str, Any]) -> ParsedCampaign:
    """Parse a loaded campaign document. Raises ValueError without a campaign id/name."""
    if not isinstance(data, dict) or not data.get("id") or not data.get("name"):
        raise ValueError("campaign file needs top-level 'id' and 'name'")

    campaign_id = str(data["id"])
    parsed = ParsedCampaign(
        campaign_id=campaign_id,
        name=str(data["name"]),
        description=data.get("description"),
    )

    sections = (
        ("triggers", parsed.triggers, _parse_trigger),
        ("cascade_rules", parsed.cascade_rules, _parse_cascade_rule),
        ("hints", parsed.hints, _parse_hint),
        ("random_events", parsed.random_events, _parse_random_event),
    )
    for key, target, parse in sections:
        for entry in data.get(key) or []:
            item = parse(entry, campaign_id)
            if item is None:
                parsed.skipped += 1
            else:
                target.append(item)

    for i, entry in enumerate(data.get("hint_chains") or []):
        chain = _parse_hint_chain(entry, campaign_id, i)
        if chain is None:
            parsed.skipped += 1
        else:
            parsed.hint_chains.append(chain)

    return parsed


async def import_campaign(store: ChronicleStore, parsed: ParsedCampaign, source: str = "document") -> bool:
    """
    Write a parsed campaign to the store.

    Returns False (and writes nothing) when a campaign with the same id is
    already stored.
    """
    if await store.campaign_exists(parsed.campaign_id):
        logger.info("Campaign %s already loaded, skipping %s", parsed.campaign_id, source)
        return False

    await store.create_campaign(parsed.campaign_id, parsed.name, parsed.description)
    for trigger in parsed.triggers:
        await store.add_trigger(trigger)
    for rule in parsed.cascade_rules:
        await store.add_cascade_rule(rule)
    for hint in parsed.hints:
        await store.add_hint(hint)
    for chain in parsed.hint_chains:
        await store.add_hint_chain(chain)
    for event in parsed.random_events:
        await store.add_random_event(event)

    logger.info(
        "Loaded campaign %s from %s: %d triggers, %d cascade rules, %d hints, "
        "%d hint chains, %d random events (%d skipped)",
        parsed.campaign_id, source, len(parsed.triggers), len(parsed.cascade_rules),
        len(parsed.hints), len(parsed.hint_chains), len(parsed.random_events), parsed.skipped,
    )
    return True


async def load_campaign_from_yaml(store: ChronicleStore, path: str | Path) -> ParsedCampaign | None:
    """
    Load one campaign file into the store.

    Returns None when a campaign with the same id is already stored.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        parsed = parse_campaign(yaml.safe_load(f))
    if not await import_campaign(store, parsed, path.name):
        return None
    return parsed


async def load_campaigns_from_dir(store: ChronicleStore, directory: str | Path) -> list[ParsedCampaign]:
    """Load every *.yaml campaign under directory; files starting with '_' are skipped."""
    loaded: list[ParsedCampaign] = []
    directory = Path(directory)
    if not directory.exists():
        logger.warning("Campaign directory %s does not exist", directory)
        return loaded
    for yaml_file in sorted(directory.glob("**/*.yaml")):
        if yaml_file.name.startswith("_"):
            continue
        parsed = await load_campaign_from_yaml(store, yaml_file)
        if parsed is not None:
            loaded.append(parsed)
    return loaded
