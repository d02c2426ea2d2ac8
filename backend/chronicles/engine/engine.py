# backend/chronicles/engine/engine.py
"""
ChronicleEngine - ties the rule systems to player actions.

A player action (choice made, interaction completed, hint answered) is
persisted and broadcast, then every interested rule system is run against
the new state snapshot. Their effects are merged, written back to the
session and character records, and broadcast again.

Nothing is scheduled: every evaluation starts from one of the explicit
calls below.
"""

from __future__ import annotations

import logging
import random
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from .campaign import (CascadeRule, CompletedInteraction, FiredTrigger, Hint,
                       HintChain, HintStreaks, InteractionEffects,
                       OutcomeType, RandomEvent, TriggerDefinition,
                       enum_value)
from .errors import PersistenceError
from .state import ChoiceRecord, SessionRecord, SessionState
from .store import ChronicleStore
from .systems import (CascadeSystem, CombatConfig, CombatSystem,
                      EventDispatcher, HintSystem, RandomEventSystem,
                      SessionContext, SessionSynchronizer, TriggerSystem)
from .systems.effects import EffectResult, apply_outcome

logger = logging.getLogger(__name__)

Event = Dict[str, Any]


@dataclass
class CampaignDefinitions:
    """Everything authored for one campaign, cached per engine."""

    campaign_id: str
    triggers: List[TriggerDefinition] = field(default_factory=list)
    cascade_rules: List[CascadeRule] = field(default_factory=list)
    hints: List[Hint] = field(default_factory=list)
    hint_chains: List[HintChain] = field(default_factory=list)
    random_events: List[RandomEvent] = field(default_factory=list)


@dataclass
class ActionOutcome:
    """What one player action changed."""

    session: SessionRecord
    state: SessionState
    fired_triggers: List[FiredTrigger] = field(default_factory=list)
    random_event: RandomEvent | None = None
    applied_cascade_ids: List[str] = field(default_factory=list)
    hint_outcome: Dict[str, Any] | None = None
    messages: List[str] = field(default_factory=list)
    xp_awarded: int = 0
    unlocked_paths: List[dict] = field(default_factory=list)
    spawned_nodes: List[dict] = field(default_factory=list)
    # One entry per subsystem whose writes failed
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "state": {
                "stats": dict(self.state.stats),
                "story_flags": dict(self.state.story_flags),
                "inventory": list(self.state.inventory),
                "turn_count": self.state.turn_count,
                "location": self.state.location,
            },
            "fired_triggers": [asdict(f) for f in self.fired_triggers],
            "random_event": asdict(self.random_event) if self.random_event else None,
            "applied_cascade_ids": list(self.applied_cascade_ids),
            "hint_outcome": self.hint_outcome,
            "messages": list(self.messages),
            "xp_awarded": self.xp_awarded,
            "unlocked_paths": list(self.unlocked_paths),
            "spawned_nodes": list(self.spawned_nodes),
            "errors": list(self.errors),
        }


class ChronicleEngine:
    """
    Core rule engine.

    Uses modular systems for specific domains:
    - SessionContext: Store, rng and subscriber queues shared by every system
    - EventDispatcher / SessionSynchronizer: Real-time session feed
    - TriggerSystem, CascadeSystem, HintSystem, RandomEventSystem, CombatSystem

    Usage:
        engine = ChronicleEngine(ChronicleStore(AsyncSessionLocal))
        outcome = await engine.make_choice(session_id, character_id, "Open the gate", "courtyard")
    """

    def __init__(
        self,
        store: ChronicleStore,
        rng: random.Random | None = None,
        combat_config: CombatConfig | None = None,
        presence_timeout: float | None = None,
    ) -> None:
        self.store = store

        # Initialize context and systems
        self.ctx = SessionContext(store, rng)
        self.event_dispatcher = EventDispatcher(self.ctx)
        self.ctx.event_dispatcher = self.event_dispatcher
        self.trigger_system = TriggerSystem(self.ctx)
        self.ctx.trigger_system = self.trigger_system
        self.cascade_system = CascadeSystem(self.ctx)
        self.ctx.cascade_system = self.cascade_system
        self.hint_system = HintSystem(self.ctx)
        self.ctx.hint_system = self.hint_system
        self.random_event_system = RandomEventSystem(self.ctx)
        self.ctx.random_event_system = self.random_event_system
        self.combat_system = CombatSystem(self.ctx, config=combat_config)
        self.ctx.combat_system = self.combat_system
        self.synchronizer = SessionSynchronizer(self.ctx, presence_timeout=presence_timeout)
        self.ctx.synchronizer = self.synchronizer

        self._definitions: Dict[str, CampaignDefinitions] = {}

    # ---------- Campaign Definitions ----------

    async def definitions(self, campaign_id: str, refresh: bool = False) -> CampaignDefinitions:
        cached = self._definitions.get(campaign_id)
        if cached is not None and not refresh:
            return cached
        defs = CampaignDefinitions(
            campaign_id=campaign_id,
            triggers=await self.store.get_triggers(campaign_id),
            cascade_rules=await self.store.get_cascade_rules(campaign_id),
            hints=await self.store.get_hints(campaign_id),
            hint_chains=await self.store.get_hint_chains(campaign_id),
            random_events=await self.store.get_random_events(campaign_id),
        )
        self._definitions[campaign_id] = defs
        logger.info(
            "Loaded campaign %s: %d triggers, %d cascade rules, %d hints, %d random events",
            campaign_id, len(defs.triggers), len(defs.cascade_rules),
            len(defs.hints), len(defs.random_events),
        )
        return defs

    def invalidate(self, campaign_id: str | None = None) -> None:
        """Drop cached definitions (all campaigns when campaign_id is None)."""
        if campaign_id is None:
            self._definitions.clear()
        else:
            self._definitions.pop(campaign_id, None)

    # ---------- State ----------

    async def build_state(self, session_id: str, character_id: str) -> SessionState:
        """Snapshot of the session record joined with the acting character."""
        session = await self.store.get_session(session_id)
        character = await self.store.get_character(character_id)
        participants = await self.store.get_participants(session_id)
        return SessionState(
            stats=dict(character.stats),
            story_flags=dict(session.story_flags),
            inventory=list(character.inventory),
            turn_count=session.turn_count,
            location=session.location,
            player_count=max(1, len(participants)),
            choices_made=list(session.choices_made),
            node_id=session.current_node_id,
        )

    async def _persist_state(
        self,
        session_id: str,
        character_id: str,
        before: SessionState,
        after: SessionState,
        xp_awarded: int,
    ) -> SessionRecord | None:
        """Write changed stats, inventory, xp and flags. Returns the session if flags changed."""
        if after.stats != before.stats or after.inventory != before.inventory or xp_awarded:
            await self.store.update_character(
                character_id,
                stats=after.stats if after.stats != before.stats else None,
                inventory=after.inventory if after.inventory != before.inventory else None,
                experience_delta=xp_awarded,
            )
        if after.story_flags != before.story_flags:
            return await self.synchronizer.set_story_flags(session_id, after.story_flags)
        return None

    def _collect(self, outcome: ActionOutcome, effects: EffectResult) -> None:
        outcome.messages.extend(effects.messages)
        outcome.xp_awarded += effects.xp_awarded
        outcome.unlocked_paths.extend(effects.unlocked_paths)
        outcome.spawned_nodes.extend(effects.spawned_nodes)

    async def _run_triggers(
        self,
        outcome: ActionOutcome,
        defs: CampaignDefinitions,
        session_id: str,
        character_id: str,
    ) -> None:
        try:
            fired_ids = await self.store.get_fired_trigger_ids(session_id)
        except PersistenceError as e:
            outcome.errors.append(f"triggers: {e}")
            return

        evaluation = await self.trigger_system.evaluate_triggers(
            session_id, character_id, defs.triggers, outcome.state, fired_ids
        )
        outcome.state = outcome.state.apply(evaluation.state_updates)
        outcome.fired_triggers.extend(evaluation.fired_triggers)
        outcome.messages.extend(evaluation.messages)
        outcome.xp_awarded += evaluation.xp_awarded
        outcome.unlocked_paths.extend(evaluation.unlocked_paths)
        outcome.spawned_nodes.extend(evaluation.spawned_nodes)
        if evaluation.unlogged_trigger_ids:
            outcome.errors.append(
                "triggers: firing not recorded for " + ", ".join(evaluation.unlogged_trigger_ids)
            )

    async def _run_random_events(
        self,
        outcome: ActionOutcome,
        defs: CampaignDefinitions,
        session_id: str,
        character_id: str,
    ) -> None:
        try:
            event_log = await self.random_event_system.load_event_log(session_id)
            check = await self.random_event_system.check_random_events(
                session_id,
                character_id,
                outcome.state,
                {e.event_id for e in event_log},
                defs.random_events,
                event_log,
            )
        except PersistenceError as e:
            outcome.errors.append(f"random_events: {e}")
            return

        if check.fired_event is None:
            return
        outcome.random_event = check.fired_event
        effects = apply_outcome(check.effects, outcome.state)
        outcome.state = outcome.state.apply(effects.delta)
        self._collect(outcome, effects)

    async def _finish(
        self,
        outcome: ActionOutcome,
        before: SessionState,
        session_id: str,
        character_id: str,
        events: List[Event],
    ) -> ActionOutcome:
        """Persist merged effects and broadcast the action's events."""
        try:
            updated = await self._persist_state(
                session_id, character_id, before, outcome.state, outcome.xp_awarded
            )
            if updated is not None:
                outcome.session = updated
        except PersistenceError as e:
            outcome.errors.append(f"state: {e}")

        dispatcher = self.event_dispatcher
        if outcome.fired_triggers:
            events.append(dispatcher.trigger_fired(session_id, outcome.fired_triggers))
        if outcome.random_event is not None:
            events.append(dispatcher.random_event(
                session_id,
                outcome.random_event,
                outcome.random_event.description or outcome.random_event.name,
            ))
        delta = {}
        if outcome.state.stats != before.stats:
            delta["stats"] = dict(outcome.state.stats)
        if outcome.state.inventory != before.inventory:
            delta["inventory"] = list(outcome.state.inventory)
        if outcome.state.story_flags != before.story_flags:
            delta["story_flags"] = dict(outcome.state.story_flags)
        if delta or outcome.xp_awarded:
            events.append(dispatcher.state_update(session_id, character_id, delta, outcome.xp_awarded))
        for text in outcome.messages:
            events.append(dispatcher.message(session_id, text))
        await dispatcher.dispatch(events)

        if outcome.errors:
            logger.warning("Session %s action finished with errors: %s", session_id, outcome.errors)
        return outcome

    # ---------- Player Actions ----------

    async def make_choice(
        self,
        session_id: str,
        character_id: str,
        choice_text: str,
        next_node_id: str | None = None,
    ) -> ActionOutcome:
        """
        Record a choice at the current node and advance the story.

        The choice and turn count are written first and broadcast; triggers
        and then random events are evaluated against the new state.
        """
        session = await self.store.get_session(session_id)
        choices = list(session.choices_made)
        choices.append(ChoiceRecord(node_id=session.current_node_id or "", choice_text=choice_text))
        fields: Dict[str, Any] = {"choices_made": choices, "turn_count": session.turn_count + 1}
        if next_node_id:
            fields["current_node_id"] = next_node_id
        session = await self.store.update_session(session_id, **fields)
        await self.event_dispatcher.dispatch([self.event_dispatcher.session_update(session)])

        defs = await self.definitions(session.campaign_id)
        before = await self.build_state(session_id, character_id)
        outcome = ActionOutcome(session=session, state=before)

        await self._run_triggers(outcome, defs, session_id, character_id)
        await self._run_random_events(outcome, defs, session_id, character_id)
        return await self._finish(outcome, before, session_id, character_id, [])

    async def complete_interaction(
        self,
        session_id: str,
        character_id: str,
        interaction_id: str,
        outcome_type: str,
    ) -> ActionOutcome:
        """Record an interaction outcome, log the cascades it triggers and re-run triggers."""
        outcome_type = enum_value(outcome_type)
        if outcome_type not in {o.value for o in OutcomeType}:
            raise ValueError(f"unknown outcome type: {outcome_type!r}")

        session = await self.store.get_session(session_id)
        await self.store.append_completed_interaction(
            session_id, character_id, interaction_id, outcome_type
        )

        defs = await self.definitions(session.campaign_id)
        before = await self.build_state(session_id, character_id)
        outcome = ActionOutcome(session=session, state=before)
        events: List[Event] = []

        try:
            outcome.applied_cascade_ids = await self.cascade_system.apply_cascade_effects(
                session_id, character_id, interaction_id, outcome_type, defs.cascade_rules
            )
        except PersistenceError as e:
            outcome.errors.append(f"cascades: {e}")
        if outcome.applied_cascade_ids:
            events.append(self.event_dispatcher.cascade_applied(
                session_id, interaction_id, outcome_type, outcome.applied_cascade_ids
            ))

        await self._run_triggers(outcome, defs, session_id, character_id)
        return await self._finish(outcome, before, session_id, character_id, events)

    async def respond_to_hint(
        self,
        session_id: str,
        character_id: str,
        hint_id: str,
        response: str,
    ) -> ActionOutcome:
        """
        Record a hint response and apply the outcome it selects.

        The response is logged before the outcome is applied; if the append
        fails the PersistenceError propagates and nothing changes.
        """
        session = await self.store.get_session(session_id)
        hint = await self.store.get_hint(hint_id)
        resolution = await self.hint_system.record_hint_response(
            session_id, hint, character_id, response
        )

        defs = await self.definitions(session.campaign_id)
        before = await self.build_state(session_id, character_id)
        outcome = ActionOutcome(session=session, state=before, hint_outcome=resolution.outcome)

        effects = apply_outcome(resolution.outcome, outcome.state)
        outcome.state = outcome.state.apply(effects.delta)
        self._collect(outcome, effects)

        events: List[Event] = [self.event_dispatcher.hint_outcome(
            session_id, character_id, hint_id, resolution.record.response, resolution.outcome
        )]
        await self._run_triggers(outcome, defs, session_id, character_id)
        return await self._finish(outcome, before, session_id, character_id, events)

    # ---------- Queries ----------

    async def get_interaction_effects(
        self,
        session_id: str,
        interaction_id: str,
        character_id: str | None = None,
    ) -> InteractionEffects:
        session = await self.store.get_session(session_id)
        defs = await self.definitions(session.campaign_id)
        completed: List[CompletedInteraction] = await self.store.get_completed_interactions(
            session_id, character_id
        )
        return self.cascade_system.get_interaction_effects(
            interaction_id, completed, defs.cascade_rules
        )

    async def get_cascade_effects_summary(self, session_id: str, interaction_id: str) -> List[str]:
        session = await self.store.get_session(session_id)
        defs = await self.definitions(session.campaign_id)
        return self.cascade_system.get_cascade_effects_summary(interaction_id, defs.cascade_rules)

    async def get_active_hints(
        self, session_id: str, character_id: str, node_id: str | None = None
    ) -> List[Hint]:
        """Hints eligible for the character at node_id (default: the current node)."""
        session = await self.store.get_session(session_id)
        defs = await self.definitions(session.campaign_id)
        state = await self.build_state(session_id, character_id)
        return self.hint_system.get_active_hints(
            node_id or session.current_node_id, state, defs.hints
        )

    async def get_hint_streaks(self, session_id: str, character_id: str | None = None) -> HintStreaks:
        responses = await self.hint_system.load_responses(session_id, character_id)
        return self.hint_system.get_hint_streaks(responses)

    async def get_trigger_log(self, session_id: str) -> List[FiredTrigger]:
        session = await self.store.get_session(session_id)
        defs = await self.definitions(session.campaign_id)
        return await self.trigger_system.load_trigger_log(session_id, defs.triggers)
