# backend/chronicles/engine/systems/cascades.py
"""
CascadeSystem - Links the outcome of one interaction to effects on another.

Provides:
- get_interaction_effects(): fold every satisfied rule targeting an
  interaction into lock/unlock/difficulty/forced-outcome status
- apply_cascade_effects(): log the rules a completed interaction triggers
- load_applied_cascades(): read the session's cascade log
- get_cascade_effects_summary(): readable description of a source's rules
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, List

from ...logging import rule_audit
from ..campaign import (CascadeEffectType, CascadeLogEntry, CascadeRule,
                        CompletedInteraction, InteractionEffects, OutcomeType,
                        enum_value)
from ..errors import PersistenceError
from ..state import as_number

if TYPE_CHECKING:
    from .context import SessionContext

logger = logging.getLogger(__name__)

OUTCOME_LABELS = {
    OutcomeType.GOOD.value: "success",
    OutcomeType.BAD.value: "failure",
}


class CascadeSystem:
    """
    Usage:
        cascades = CascadeSystem(ctx)
        status = cascades.get_interaction_effects("vault_door", completed, rules)
        rule_ids = await cascades.apply_cascade_effects(
            session_id, character_id, "bribe_guard", "good", rules
        )
    """

    def __init__(self, ctx: "SessionContext") -> None:
        self.ctx = ctx

    # ---------- Evaluation ----------

    def get_interaction_effects(
        self,
        interaction_id: str,
        completed_interactions: Iterable[CompletedInteraction],
        rules: Iterable[CascadeRule],
    ) -> InteractionEffects:
        """
        Fold every rule targeting interaction_id whose source was completed
        with the rule's outcome.

        lock/unlock are OR-accumulated, modify_difficulty is summed and
        change_outcome is last-write-wins in rule order.
        """
        completed = {
            (c.interaction_id, enum_value(c.outcome_type)) for c in completed_interactions
        }
        effects = InteractionEffects()

        for rule in rules:
            if rule.target_interaction_id != interaction_id or not rule.is_active:
                continue
            if (rule.source_interaction_id, enum_value(rule.source_outcome_type)) not in completed:
                continue

            effect_type = enum_value(rule.effect_type)
            value = rule.effect_value or {}
            if effect_type == CascadeEffectType.LOCK.value:
                effects.is_locked = True
            elif effect_type == CascadeEffectType.UNLOCK.value:
                effects.is_unlocked = True
            elif effect_type == CascadeEffectType.MODIFY_DIFFICULTY.value:
                effects.difficulty_modifier += int(as_number(value.get("modifier")) or 0)
            elif effect_type == CascadeEffectType.CHANGE_OUTCOME.value:
                forced = value.get("force_outcome")
                effects.outcome_modifier = str(forced) if forced else None

        return effects

    def get_triggered_rules(
        self, interaction_id: str, outcome_type: str, rules: Iterable[CascadeRule]
    ) -> List[CascadeRule]:
        outcome_type = enum_value(outcome_type)
        return [
            r for r in rules
            if r.is_active
            and r.source_interaction_id == interaction_id
            and enum_value(r.source_outcome_type) == outcome_type
        ]

    # ---------- Logging ----------

    async def apply_cascade_effects(
        self,
        session_id: str,
        character_id: str,
        interaction_id: str,
        outcome_type: str,
        rules: Iterable[CascadeRule],
    ) -> List[str]:
        """
        Append one cascade log entry per rule triggered by (interaction, outcome).

        Returns the ids of the logged rules. Every rule is attempted; if any
        append fails, PersistenceError is raised after the rest are written.
        """
        outcome_type = enum_value(outcome_type)
        applied: List[str] = []
        failed: List[str] = []

        for rule in self.get_triggered_rules(interaction_id, outcome_type, rules):
            context = {
                "source_interaction_id": interaction_id,
                "outcome_type": outcome_type,
                "effect_type": enum_value(rule.effect_type),
                "target_interaction_id": rule.target_interaction_id,
            }
            try:
                await self.ctx.store.append_cascade_log(session_id, character_id, rule.id, context)
            except PersistenceError:
                failed.append(rule.id)
                continue
            applied.append(rule.id)
            rule_audit.log_cascade_applied(
                session_id,
                character_id,
                rule.id,
                interaction_id,
                rule.target_interaction_id,
                enum_value(rule.effect_type),
            )

        if failed:
            logger.error(
                "Cascade rules %s were not logged for session %s (applied: %s)",
                failed, session_id, applied,
            )
            raise PersistenceError("apply_cascade_effects", f"unlogged rules: {', '.join(failed)}")
        return applied

    async def load_applied_cascades(self, session_id: str) -> List[CascadeLogEntry]:
        return await self.ctx.store.get_cascade_log(session_id)

    # ---------- Display ----------

    def get_cascade_effects_summary(
        self, interaction_id: str, rules: Iterable[CascadeRule]
    ) -> List[str]:
        """Describe the rules sourced at interaction_id, e.g. "On success: Unlocks a new interaction"."""
        summary: List[str] = []
        for rule in rules:
            if rule.source_interaction_id != interaction_id:
                continue
            label = OUTCOME_LABELS.get(enum_value(rule.source_outcome_type), "neutral outcome")
            effect_type = enum_value(rule.effect_type)

            if effect_type == CascadeEffectType.UNLOCK.value:
                summary.append(f"On {label}: Unlocks a new interaction")
            elif effect_type == CascadeEffectType.LOCK.value:
                summary.append(f"On {label}: Locks a future interaction")
            elif effect_type == CascadeEffectType.MODIFY_DIFFICULTY.value:
                modifier = as_number((rule.effect_value or {}).get("modifier")) or 0
                direction = "Increases" if modifier > 0 else "Decreases"
                summary.append(f"On {label}: {direction} difficulty of related interaction")
            elif effect_type == CascadeEffectType.CHANGE_OUTCOME.value:
                summary.append(f"On {label}: Forces a specific outcome in related interaction")
        return summary
