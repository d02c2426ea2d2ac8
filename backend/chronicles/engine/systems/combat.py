# backend/chronicles/engine/systems/combat.py
"""
CombatSystem - Hidden-stat encounters and bluff resolution.

Provides:
- Encounter lifecycle: pending -> active -> resolved (resolved is terminal)
- Ready checks for participants
- Bluff attempts (flex, feign_weakness, scout, intimidate) rolled as
  stat + d6 against a difficulty
- Qualitative stat hints; raw target stats are never revealed
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, List, Mapping

from ...logging import rule_audit
from ..campaign import (BluffAttempt, BluffType, CombatEncounter,
                        CombatParticipant, CombatStatus, CombatType,
                        enum_value)
from ..errors import InvalidTransitionError, NotFoundError
from ..state import as_number

if TYPE_CHECKING:
    from .context import SessionContext

logger = logging.getLogger(__name__)


# Stat hints based on relative strength: (low, mid, high)
STAT_HINTS: dict[str, tuple[str, str, str]] = {
    "strength": ("appears frail", "seems capable", "looks powerful"),
    "agility": ("moves clumsily", "moves steadily", "moves like lightning"),
    "magic": ("no magical aura", "faint magical presence", "radiates power"),
    "charisma": ("unremarkable presence", "noticeable presence", "commanding presence"),
    "wisdom": ("seems naive", "appears observant", "deeply perceptive"),
    "endurance": ("looks weary", "seems hardy", "built to last"),
}

# Stats a successful scout may reveal
SCOUT_STATS = ("strength", "agility", "magic")

# Allowed status moves
TRANSITIONS = {
    CombatStatus.PENDING.value: {CombatStatus.ACTIVE.value},
    CombatStatus.ACTIVE.value: {CombatStatus.RESOLVED.value},
    CombatStatus.RESOLVED.value: set(),
}


def get_stat_hint(stat: str, value: float) -> str:
    """Three-tier description of a stat value: <=3 low, <=6 mid, else high."""
    hints = STAT_HINTS.get(stat.lower())
    if not hints:
        return "unknown"
    low, mid, high = hints
    if value <= 3:
        return low
    if value <= 6:
        return mid
    return high


@dataclass
class CombatConfig:
    """Configuration for bluff mechanics."""
    flex_difficulty: int = 5
    feign_weakness_difficulty: int = 6
    default_difficulty: int = 5  # intimidate / scout when the target lacks the stat
    default_actor_stat: int = 3  # used when the actor lacks the rolled stat
    die_sides: int = 6


class CombatSystem:
    """
    Manages combat encounters and bluffs for sessions.

    Usage:
        combat = CombatSystem(ctx, config=CombatConfig())
        encounter = await combat.start_combat(session_id, "duel", participants)
        attempt = await combat.attempt_bluff(session_id, actor, target, "flex", a_stats, t_stats)
    """

    def __init__(
        self,
        ctx: "SessionContext",
        config: CombatConfig | None = None
    ) -> None:
        self.ctx = ctx
        self.config = config or CombatConfig()

    # ---------- Encounter Lifecycle ----------

    async def start_combat(
        self,
        session_id: str,
        combat_type: str,
        participants: Iterable[CombatParticipant],
        *,
        node_id: str | None = None,
        stats_hidden: bool = True,
    ) -> CombatEncounter:
        combat_type = enum_value(combat_type)
        if combat_type not in {t.value for t in CombatType}:
            raise ValueError(f"unknown combat type: {combat_type!r}")

        encounter = CombatEncounter(
            id=str(uuid.uuid4()),
            session_id=session_id,
            combat_type=combat_type,
            participants=list(participants),
            node_id=node_id,
            stats_hidden=stats_hidden,
            status=CombatStatus.PENDING.value,
            started_at=time.time(),
        )
        await self.ctx.store.save_encounter(encounter)
        logger.info(
            "Combat %s (%s) started in session %s with %d participants",
            encounter.id, combat_type, session_id, len(encounter.participants),
        )
        return encounter

    async def update_status(self, encounter_id: str, status: str) -> CombatEncounter:
        """
        Move an encounter to status.

        Raises InvalidTransitionError for anything but pending -> active ->
        resolved. resolved_at is stamped on the move into resolved.
        """
        status = enum_value(status)
        encounter = await self.ctx.store.get_encounter(encounter_id)
        if status not in TRANSITIONS.get(encounter.status, set()):
            raise InvalidTransitionError(encounter_id, encounter.status, status)

        previous = encounter.status
        encounter.status = status
        if status == CombatStatus.RESOLVED.value:
            encounter.resolved_at = time.time()
        await self.ctx.store.save_encounter(encounter)
        rule_audit.log_combat_transition(encounter_id, previous, status)
        return encounter

    async def activate(self, encounter_id: str) -> CombatEncounter:
        return await self.update_status(encounter_id, CombatStatus.ACTIVE.value)

    async def resolve_combat(
        self, encounter_id: str, outcome: Mapping[str, Any] | None
    ) -> CombatEncounter:
        """Resolve an active encounter with its outcome (e.g. winner_id, loser_id, narrative)."""
        encounter = await self.ctx.store.get_encounter(encounter_id)
        target = CombatStatus.RESOLVED.value
        if target not in TRANSITIONS.get(encounter.status, set()):
            raise InvalidTransitionError(encounter_id, encounter.status, target)

        previous = encounter.status
        encounter.status = target
        encounter.outcome = dict(outcome or {})
        encounter.resolved_at = time.time()
        await self.ctx.store.save_encounter(encounter)
        rule_audit.log_combat_transition(encounter_id, previous, target)
        return encounter

    async def set_ready(self, encounter_id: str, character_id: str) -> CombatEncounter:
        """Mark a participant ready; raises NotFoundError for a non-participant."""
        encounter = await self.ctx.store.get_encounter(encounter_id)
        if encounter.status == CombatStatus.RESOLVED.value:
            raise InvalidTransitionError(encounter_id, encounter.status, encounter.status)
        for participant in encounter.participants:
            if participant.character_id == character_id:
                participant.is_ready = True
                break
        else:
            raise NotFoundError("participant", character_id)
        await self.ctx.store.save_encounter(encounter)
        return encounter

    def all_ready(self, encounter: CombatEncounter) -> bool:
        return bool(encounter.participants) and all(p.is_ready for p in encounter.participants)

    async def get_active_combat(self, session_id: str) -> CombatEncounter | None:
        """Most recently started active encounter of the session."""
        active = await self.ctx.store.get_encounters(session_id, [CombatStatus.ACTIVE.value])
        return active[0] if active else None

    async def is_in_combat(self, session_id: str, character_id: str) -> bool:
        active = await self.get_active_combat(session_id)
        return active is not None and active.has_participant(character_id)

    # ---------- Bluffs ----------

    def _bluff_terms(
        self, attempt_type: str, target_stats: Mapping[str, Any]
    ) -> tuple[str, int, str | None]:
        """(stat used, difficulty, stat to reveal on success)"""
        cfg = self.config
        if attempt_type == BluffType.FLEX.value:
            return "charisma", cfg.flex_difficulty, None
        if attempt_type == BluffType.FEIGN_WEAKNESS.value:
            return "charisma", cfg.feign_weakness_difficulty, None
        if attempt_type == BluffType.INTIMIDATE.value:
            return "charisma", int(as_number(target_stats.get("wisdom")) or cfg.default_difficulty), None
        if attempt_type == BluffType.SCOUT.value:
            difficulty = int(as_number(target_stats.get("stealth")) or cfg.default_difficulty)
            return "perception", difficulty, self.ctx.rng.choice(SCOUT_STATS)
        raise ValueError(f"unknown bluff type: {attempt_type!r}")

    async def attempt_bluff(
        self,
        session_id: str,
        actor_id: str,
        target_id: str,
        attempt_type: str,
        actor_stats: Mapping[str, Any],
        target_stats: Mapping[str, Any],
    ) -> BluffAttempt:
        """
        Roll actor[stat] + d6 against the attempt's difficulty and log the attempt.

        A successful scout reveals a qualitative hint for one of the target's
        stats, never its value.
        """
        attempt_type = enum_value(attempt_type)
        stat_used, difficulty, revealed_stat = self._bluff_terms(attempt_type, target_stats)

        base = int(as_number(actor_stats.get(stat_used)) or self.config.default_actor_stat)
        roll_value = base + self.ctx.rng.randint(1, self.config.die_sides)
        success = roll_value >= difficulty

        revealed_info = None
        if success and revealed_stat:
            target_value = as_number(target_stats.get(revealed_stat)) or 0
            revealed_info = {
                "stat": revealed_stat,
                "hint": get_stat_hint(revealed_stat, target_value),
            }

        attempt = BluffAttempt(
            id=0,
            session_id=session_id,
            actor_id=actor_id,
            target_id=target_id,
            attempt_type=attempt_type,
            stat_used=stat_used,
            roll_value=roll_value,
            difficulty=difficulty,
            success=success,
            revealed_info=revealed_info,
            created_at=time.time(),
        )
        attempt = await self.ctx.store.append_bluff(attempt)
        rule_audit.log_bluff(
            session_id, actor_id, target_id, attempt_type, roll_value, difficulty, success
        )
        return attempt

    async def get_bluff_history(self, session_id: str, character_id: str) -> List[BluffAttempt]:
        """Bluffs the character made or was targeted by, newest first."""
        history = await self.ctx.store.get_bluffs(session_id, character_id)
        return list(reversed(history))

    get_stat_hint = staticmethod(get_stat_hint)
