# backend/chronicles/engine/state.py
"""
Session state snapshots and the records they are built from.

SessionState is ephemeral: it is rebuilt from the session and character
records for every evaluation and is only changed by folding a StateDelta
into it. Nothing else mutates stats, flags or inventory.
"""

from dataclasses import dataclass, field, replace
from typing import Any

from .. import config
from .campaign import CharacterId, NodeId, SessionId


def clamp_stat(value: int) -> int:
    """Clamp a stat into [STAT_MIN, STAT_MAX]."""
    return max(config.STAT_MIN, min(config.STAT_MAX, value))


def coerce_flag_value(value: Any) -> Any:
    """Authoring tools store booleans as "true"/"false" strings."""
    if value == "true":
        return True
    if value == "false":
        return False
    return value


def as_number(value: Any) -> float | None:
    """Parse a numeric parameter; None for anything that is not a number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


@dataclass
class ChoiceRecord:
    node_id: NodeId
    choice_text: str

    def to_dict(self) -> dict[str, str]:
        return {"node_id": self.node_id, "choice_text": self.choice_text}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChoiceRecord":
        return cls(node_id=str(data.get("node_id", "")), choice_text=str(data.get("choice_text", "")))


@dataclass
class StateDelta:
    """
    Partial state update.

    Each present field is a complete replacement of that part of the state,
    computed against the state with all earlier deltas already applied, so
    merging is plain last-write-wins per field.
    """

    stats: dict[str, int] | None = None
    story_flags: dict[str, Any] | None = None
    inventory: list[str] | None = None

    def is_empty(self) -> bool:
        return self.stats is None and self.story_flags is None and self.inventory is None

    def merge(self, other: "StateDelta") -> "StateDelta":
        return StateDelta(
            stats=other.stats if other.stats is not None else self.stats,
            story_flags=other.story_flags if other.story_flags is not None else self.story_flags,
            inventory=other.inventory if other.inventory is not None else self.inventory,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.stats is not None:
            out["stats"] = dict(self.stats)
        if self.story_flags is not None:
            out["story_flags"] = dict(self.story_flags)
        if self.inventory is not None:
            out["inventory"] = list(self.inventory)
        return out


@dataclass
class SessionState:
    """Snapshot every condition and effect is evaluated against."""

    stats: dict[str, int] = field(default_factory=dict)
    story_flags: dict[str, Any] = field(default_factory=dict)
    inventory: list[str] = field(default_factory=list)
    turn_count: int = 0
    location: str | None = None
    player_count: int = 1
    choices_made: list[ChoiceRecord] = field(default_factory=list)
    node_id: NodeId | None = None

    def apply(self, delta: StateDelta) -> "SessionState":
        """Return a new snapshot with the delta folded in."""
        if delta.is_empty():
            return self
        return replace(
            self,
            stats=dict(delta.stats) if delta.stats is not None else dict(self.stats),
            story_flags=dict(delta.story_flags) if delta.story_flags is not None else dict(self.story_flags),
            inventory=list(delta.inventory) if delta.inventory is not None else list(self.inventory),
        )

    def has_item(self, item_name: str) -> bool:
        wanted = item_name.lower()
        return any(i.lower() == wanted for i in self.inventory)


@dataclass
class SessionRecord:
    """Persisted real-time session row."""

    id: SessionId
    campaign_id: str
    current_node_id: NodeId | None = None
    current_turn_player_id: str | None = None
    turn_order: list[str] = field(default_factory=list)
    status: str = "active"
    story_flags: dict[str, Any] = field(default_factory=dict)
    choices_made: list[ChoiceRecord] = field(default_factory=list)
    turn_count: int = 0
    location: str | None = None
    last_played_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "current_node_id": self.current_node_id,
            "current_turn_player_id": self.current_turn_player_id,
            "turn_order": list(self.turn_order),
            "status": self.status,
            "story_flags": dict(self.story_flags),
            "turn_count": self.turn_count,
            "location": self.location,
        }


@dataclass
class CharacterRecord:
    id: CharacterId
    name: str
    user_id: str | None = None
    level: int = 1
    experience: int = 0
    stats: dict[str, int] = field(default_factory=dict)
    inventory: list[str] = field(default_factory=list)


@dataclass
class SessionParticipant:
    id: str
    session_id: SessionId
    character_id: CharacterId
    is_active: bool = True
    joined_at: float = 0.0
    character_name: str | None = None
    user_id: str | None = None
