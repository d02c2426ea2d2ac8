# backend/chronicles/engine/campaign.py
"""
Campaign definitions and append-only log records.

Definitions (triggers, cascade rules, hints, random events) are authored per
campaign and read by campaign id. Log records are written once and only read
back to derive state (fired trigger sets, hint streaks, cooldowns).

Enums subclass str so values read from the store or from YAML compare equal
to the members without conversion.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Simple type aliases for clarity
CampaignId = str
SessionId = str
CharacterId = str
TriggerId = str
HintId = str
InteractionId = str
NodeId = str
EncounterId = str

Payload = dict[str, Any]


def enum_value(value: Any) -> Any:
    """Plain value of an enum member; anything else is returned unchanged."""
    return value.value if isinstance(value, Enum) else value


class TriggerType(str, Enum):
    STAT_THRESHOLD = "stat_threshold"
    ITEM_POSSESSED = "item_possessed"
    FLAG_SET = "flag_set"
    RELATIONSHIP_SCORE = "relationship_score"
    FACTION_REPUTATION = "faction_reputation"
    CHOICE_MADE = "choice_made"
    PLAYER_COUNT = "player_count"
    RANDOM_CHANCE = "random_chance"


class EventType(str, Enum):
    UNLOCK_PATH = "unlock_path"
    SPAWN_NODE = "spawn_node"
    MODIFY_STAT = "modify_stat"
    GRANT_ITEM = "grant_item"
    SET_FLAG = "set_flag"
    SHOW_MESSAGE = "show_message"
    AWARD_XP = "award_xp"


class OutcomeType(str, Enum):
    GOOD = "good"
    BAD = "bad"
    NEUTRAL = "neutral"


class CascadeEffectType(str, Enum):
    UNLOCK = "unlock"
    LOCK = "lock"
    MODIFY_DIFFICULTY = "modify_difficulty"
    CHANGE_OUTCOME = "change_outcome"


class HintType(str, Enum):
    DIRECTION = "direction"
    ACTION = "action"
    SOCIAL = "social"
    DISCOVERY = "discovery"
    WARNING = "warning"


class SourceFlavor(str, Enum):
    INNER_VOICE = "inner_voice"
    COMPANION_WHISPER = "companion_whisper"
    ENVIRONMENTAL_CLUE = "environmental_clue"
    DIVINE_SIGN = "divine_sign"


class HintResponse(str, Enum):
    FOLLOWED = "followed"
    IGNORED = "ignored"
    OPPOSITE = "opposite"


class RandomEventCategory(str, Enum):
    ENCOUNTER = "encounter"
    WEATHER = "weather"
    FORTUNE = "fortune"
    MISFORTUNE = "misfortune"
    DISCOVERY = "discovery"
    AMBUSH = "ambush"


# Categories logged with was_positive=True
POSITIVE_EVENT_CATEGORIES = {RandomEventCategory.FORTUNE.value, RandomEventCategory.DISCOVERY.value}


class CombatType(str, Enum):
    PVP = "pvp"
    PVE = "pve"
    DUEL = "duel"


class CombatStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    RESOLVED = "resolved"


class ParticipantRole(str, Enum):
    ATTACKER = "attacker"
    DEFENDER = "defender"
    CHALLENGER = "challenger"
    PARTICIPANT = "participant"


class BluffType(str, Enum):
    FLEX = "flex"
    FEIGN_WEAKNESS = "feign_weakness"
    SCOUT = "scout"
    INTIMIDATE = "intimidate"


# ============================================================================
# Triggers
# ============================================================================


@dataclass
class EffectSpec:
    """One effect fired by a trigger, applied in list order."""

    event_type: str
    payload: Payload = field(default_factory=dict)
    name: str = ""
    id: str | None = None


@dataclass
class TriggerDefinition:
    """A one-shot condition + effects pair authored for a campaign."""

    id: TriggerId
    campaign_id: CampaignId
    name: str
    trigger_type: str
    conditions: Payload = field(default_factory=dict)
    events: list[EffectSpec] = field(default_factory=list)
    is_active: bool = True
    description: str | None = None


@dataclass
class FiredTrigger:
    """A single (trigger, event) firing as surfaced to the session layer."""

    id: str
    trigger_id: TriggerId
    trigger_name: str
    trigger_type: str
    event_name: str
    event_type: str
    payload: Payload
    fired_at: float


@dataclass
class TriggerLogEntry:
    id: int
    session_id: SessionId
    trigger_id: TriggerId
    character_id: CharacterId
    fired_at: float
    context: Payload = field(default_factory=dict)


# ============================================================================
# Cascades
# ============================================================================


@dataclass
class CascadeRule:
    """Links one interaction's outcome to an effect on another interaction."""

    id: str
    campaign_id: CampaignId
    source_interaction_id: InteractionId
    source_outcome_type: str
    target_interaction_id: InteractionId
    effect_type: str
    effect_value: Payload = field(default_factory=dict)
    priority: int = 0
    is_active: bool = True


@dataclass
class CascadeLogEntry:
    id: int
    session_id: SessionId
    character_id: CharacterId
    cascade_rule_id: str
    applied_at: float
    context: Payload = field(default_factory=dict)


@dataclass
class CompletedInteraction:
    interaction_id: InteractionId
    outcome_type: str
    character_id: CharacterId | None = None
    completed_at: float = 0.0


@dataclass
class InteractionEffects:
    """Folded cascade status for one target interaction."""

    is_locked: bool = False
    is_unlocked: bool = False
    difficulty_modifier: int = 0
    outcome_modifier: str | None = None


# ============================================================================
# Hints
# ============================================================================


@dataclass
class Hint:
    id: HintId
    campaign_id: CampaignId
    hint_type: str
    hint_text: str
    node_id: NodeId | None = None  # None = shown at any node
    conditions: Payload = field(default_factory=dict)
    follow_outcome: Payload = field(default_factory=dict)
    ignore_outcome: Payload = field(default_factory=dict)
    opposite_outcome: Payload = field(default_factory=dict)
    is_red_herring: bool = False
    source_flavor: str = SourceFlavor.INNER_VOICE.value
    priority: int = 0
    is_active: bool = True

    def outcome_for(self, response: str) -> Payload:
        """Outcome payload selected by a player response."""
        if response == HintResponse.FOLLOWED:
            return self.follow_outcome
        if response == HintResponse.OPPOSITE:
            return self.opposite_outcome
        return self.ignore_outcome


@dataclass
class HintResponseRecord:
    id: int
    session_id: SessionId
    hint_id: HintId
    character_id: CharacterId
    response: str
    responded_at: float
    context: Payload = field(default_factory=dict)
    triggered_event_id: str | None = None


@dataclass
class HintChain:
    """Ordered group of hints with a completion reward. Display grouping only."""

    id: str
    campaign_id: CampaignId
    chain_name: str
    hint_ids: list[HintId] = field(default_factory=list)
    completion_reward: Payload = field(default_factory=dict)
    chain_order: int = 0


@dataclass
class HintStreaks:
    follow_streak: int = 0
    ignore_streak: int = 0
    opposite_count: int = 0


# ============================================================================
# Random events
# ============================================================================


@dataclass
class RandomEvent:
    id: str
    campaign_id: CampaignId
    name: str
    category: str
    probability: float  # percent, 0-100
    description: str | None = None
    conditions: Payload = field(default_factory=dict)
    effects: Payload = field(default_factory=dict)
    is_recurring: bool = False
    cooldown_turns: int = 0
    is_active: bool = True

    @property
    def is_positive(self) -> bool:
        return enum_value(self.category) in POSITIVE_EVENT_CATEGORIES


@dataclass
class RandomEventLogEntry:
    id: int
    session_id: SessionId
    event_id: str
    character_id: CharacterId | None
    fired_at: float
    outcome: Payload = field(default_factory=dict)
    was_positive: bool = False


# ============================================================================
# Combat
# ============================================================================


@dataclass
class CombatParticipant:
    character_id: CharacterId
    role: str = ParticipantRole.PARTICIPANT.value
    visible_equipment: list[str] = field(default_factory=list)
    is_ready: bool = False

    def to_dict(self) -> Payload:
        return {
            "character_id": self.character_id,
            "role": self.role,
            "visible_equipment": list(self.visible_equipment),
            "is_ready": self.is_ready,
        }

    @classmethod
    def from_dict(cls, data: Payload) -> "CombatParticipant":
        return cls(
            character_id=data["character_id"],
            role=data.get("role", ParticipantRole.PARTICIPANT.value),
            visible_equipment=list(data.get("visible_equipment") or []),
            is_ready=bool(data.get("is_ready", False)),
        )


@dataclass
class CombatEncounter:
    id: EncounterId
    session_id: SessionId
    combat_type: str
    participants: list[CombatParticipant] = field(default_factory=list)
    node_id: NodeId | None = None
    stats_hidden: bool = True
    status: str = CombatStatus.PENDING.value
    outcome: Payload | None = None
    started_at: float = 0.0
    resolved_at: float | None = None

    def has_participant(self, character_id: CharacterId) -> bool:
        return any(p.character_id == character_id for p in self.participants)


@dataclass
class BluffAttempt:
    id: int
    session_id: SessionId
    actor_id: CharacterId
    target_id: CharacterId
    attempt_type: str
    stat_used: str
    roll_value: int
    difficulty: int
    success: bool
    revealed_info: Payload | None = None
    created_at: float = 0.0
