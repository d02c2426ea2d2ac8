# backend/chronicles/engine/systems/random_events.py
"""
RandomEventSystem - Probabilistic events rolled on explicit session checks.

Eligibility: active; non-recurring events fire once per session; recurring
events with a cooldown are held back once they have any log entry; the
event's conditions must hold.

Rolling walks the eligible events in definition order and stops at the
first success, so an earlier event wins over a later one when both would
have succeeded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, List

from ...logging import rule_audit
from ..campaign import RandomEvent, RandomEventLogEntry
from ..errors import AlreadyRecordedError
from ..state import SessionState
from .conditions import evaluate_event_conditions

if TYPE_CHECKING:
    from .context import SessionContext

logger = logging.getLogger(__name__)


@dataclass
class RandomEventCheck:
    fired_event: RandomEvent | None = None
    effects: dict = field(default_factory=dict)
    message: str | None = None


class RandomEventSystem:
    """
    Usage:
        random_events = RandomEventSystem(ctx)
        check = await random_events.check_random_events(
            session_id, character_id, state, fired_ids, events, event_log
        )
        if check.fired_event:
            ...
    """

    def __init__(self, ctx: "SessionContext") -> None:
        self.ctx = ctx

    def get_eligible_events(
        self,
        state: SessionState,
        fired_event_ids: Iterable[str],
        events: Iterable[RandomEvent],
        event_log: Iterable[RandomEventLogEntry] = (),
    ) -> List[RandomEvent]:
        fired = set(fired_event_ids)
        logged = {entry.event_id for entry in event_log}
        eligible: List[RandomEvent] = []
        for event in events:
            if not event.is_active:
                continue
            if not event.is_recurring and event.id in fired:
                continue
            # TODO: hold recurring events back for cooldown_turns turns instead of for the rest of the session
            if event.is_recurring and event.cooldown_turns > 0 and event.id in logged:
                continue
            if not evaluate_event_conditions(event.conditions, state):
                continue
            eligible.append(event)
        return eligible

    def roll(self, probability: float) -> bool:
        return self.ctx.rng.random() * 100 < probability

    async def check_random_events(
        self,
        session_id: str,
        character_id: str | None,
        state: SessionState,
        fired_event_ids: Iterable[str],
        events: Iterable[RandomEvent],
        event_log: Iterable[RandomEventLogEntry] = (),
    ) -> RandomEventCheck:
        """
        Roll eligible events in order; the first success is logged and returned.

        Raises PersistenceError when the winning event cannot be logged.
        """
        for event in self.get_eligible_events(state, fired_event_ids, events, event_log):
            if not self.roll(event.probability):
                continue

            try:
                await self.ctx.store.append_random_event_log(
                    session_id,
                    event.id,
                    character_id,
                    dict(event.effects),
                    event.is_positive,
                    once=not event.is_recurring,
                )
            except AlreadyRecordedError:
                logger.info("Random event %s already fired in session %s", event.id, session_id)
                continue
            rule_audit.log_random_event(
                session_id, character_id, event.id, event.category, event.is_positive
            )
            return RandomEventCheck(
                fired_event=event,
                effects=dict(event.effects),
                message=event.description or event.name,
            )

        return RandomEventCheck()

    async def load_event_log(self, session_id: str) -> List[RandomEventLogEntry]:
        return await self.ctx.store.get_random_event_log(session_id)
