# backend/chronicles/engine/systems/triggers.py
"""
TriggerSystem - One-shot condition/effect rules evaluated on every state change.

Provides:
- evaluate_triggers(): fire every active, not-yet-fired trigger whose
  condition holds, fold its effects, and log the firing
- load_trigger_log(): fired-trigger views rebuilt from the session log

A trigger fires at most once per session. The fired set is owned by the
caller (ChronicleStore.get_fired_trigger_ids) and passed in on every call.
When two evaluations of one session overlap, the trigger log's unique
(session, trigger) key accepts only the first firing; the other evaluation
drops that trigger's effects.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, List

from ...logging import rule_audit
from ..campaign import EventType, FiredTrigger, TriggerDefinition, enum_value
from ..errors import AlreadyRecordedError, PersistenceError
from ..state import SessionState, StateDelta
from .conditions import evaluate_trigger_condition
from .effects import EffectResult, run_effect

if TYPE_CHECKING:
    from .context import SessionContext

logger = logging.getLogger(__name__)


@dataclass
class TriggerEvaluation:
    """Result of one evaluate_triggers call."""

    fired_triggers: List[FiredTrigger] = field(default_factory=list)
    state_updates: StateDelta = field(default_factory=StateDelta)
    messages: List[str] = field(default_factory=list)
    xp_awarded: int = 0
    unlocked_paths: List[dict] = field(default_factory=list)
    spawned_nodes: List[dict] = field(default_factory=list)
    # Triggers whose effects were computed but whose log write failed.
    # They are not in the fired set and may fire again on the next call.
    unlogged_trigger_ids: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.unlogged_trigger_ids

    @property
    def fired_trigger_ids(self) -> List[str]:
        seen: List[str] = []
        for f in self.fired_triggers:
            if f.trigger_id not in seen:
                seen.append(f.trigger_id)
        return seen


class TriggerSystem:
    """
    Evaluates campaign triggers against a session state snapshot.

    Conditions are checked against the snapshot passed in. Effects are folded
    in order, so each effect sees every earlier effect of the same call.

    Usage:
        triggers = TriggerSystem(ctx)
        result = await triggers.evaluate_triggers(
            session_id, character_id, definitions, state, fired_ids
        )
    """

    def __init__(self, ctx: "SessionContext") -> None:
        self.ctx = ctx

    async def evaluate_triggers(
        self,
        session_id: str,
        character_id: str,
        triggers: Iterable[TriggerDefinition],
        state: SessionState,
        already_fired_ids: Iterable[str],
    ) -> TriggerEvaluation:
        result = TriggerEvaluation()
        effects = EffectResult()
        fired_ids = set(already_fired_ids)
        current = state

        for trigger in triggers:
            if not trigger.is_active or trigger.id in fired_ids:
                continue
            if not evaluate_trigger_condition(
                trigger.trigger_type, trigger.conditions, state, self.ctx.rng
            ):
                continue

            fired_at = time.time()
            after = current
            steps: List[EffectResult] = []
            fired: List[FiredTrigger] = []
            for event in trigger.events:
                step = run_effect(event.event_type, event.payload, after)
                after = after.apply(step.delta)
                steps.append(step)
                fired.append(FiredTrigger(
                    id=str(uuid.uuid4()),
                    trigger_id=trigger.id,
                    trigger_name=trigger.name,
                    trigger_type=enum_value(trigger.trigger_type),
                    event_name=event.name,
                    event_type=enum_value(event.event_type),
                    payload=dict(event.payload),
                    fired_at=fired_at,
                ))
            fired_ids.add(trigger.id)

            # Only the first event is recorded in detail
            first = trigger.events[0] if trigger.events else None
            context = {
                "event_name": first.name if first else None,
                "event_type": enum_value(first.event_type) if first else None,
                "payload": dict(first.payload) if first else None,
                "conditions_met": dict(trigger.conditions),
            }
            logged = True
            try:
                await self.ctx.store.append_trigger_log(session_id, trigger.id, character_id, context)
            except AlreadyRecordedError:
                # Another evaluation in this session fired it first
                logger.info(
                    "Trigger %s already fired in session %s; dropping its effects",
                    trigger.id,
                    session_id,
                )
                continue
            except PersistenceError:
                logger.error(
                    "Trigger %s fired in session %s but was not logged", trigger.id, session_id
                )
                result.unlogged_trigger_ids.append(trigger.id)
                logged = False

            current = after
            for step in steps:
                effects.extend(step)
            result.fired_triggers.extend(fired)

            if logged:
                rule_audit.log_trigger_fired(
                    session_id,
                    character_id,
                    trigger.id,
                    trigger.name,
                    [enum_value(e.event_type) for e in trigger.events],
                )

        result.state_updates = effects.delta
        result.messages = effects.messages
        result.xp_awarded = effects.xp_awarded
        result.unlocked_paths = effects.unlocked_paths
        result.spawned_nodes = effects.spawned_nodes
        return result

    async def load_trigger_log(
        self, session_id: str, triggers: Iterable[TriggerDefinition]
    ) -> List[FiredTrigger]:
        """
        Fired-trigger views for a session, oldest first.

        Entries whose trigger is no longer defined are skipped.
        """
        by_id = {t.id: t for t in triggers}
        entries: List[FiredTrigger] = []
        for entry in await self.ctx.store.get_trigger_log(session_id):
            trigger = by_id.get(entry.trigger_id)
            if trigger is None:
                continue
            context = entry.context or {}
            entries.append(FiredTrigger(
                id=str(entry.id),
                trigger_id=trigger.id,
                trigger_name=trigger.name,
                trigger_type=enum_value(trigger.trigger_type),
                event_name=context.get("event_name") or trigger.name,
                event_type=context.get("event_type") or EventType.SHOW_MESSAGE.value,
                payload=dict(context.get("payload") or {}),
                fired_at=entry.fired_at,
            ))
        return entries
