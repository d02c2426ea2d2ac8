# backend/chronicles/engine/systems/events.py
"""
EventDispatcher - Handles event creation and routing to session subscribers.

Provides:
- Event construction helpers (session_update, trigger_fired, hint_outcome, ...)
- Event routing to subscriber queues based on scope

Every subscriber of a session receives that session's events in the order
they were dispatched. The feed is a notification channel; the persisted
session record stays the source of truth.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING, Any, Dict, List

if TYPE_CHECKING:
    from ..campaign import CombatEncounter, FiredTrigger, RandomEvent
    from ..state import SessionRecord
    from .context import SessionContext


# Type alias for events (message dicts sent to subscribers)
Event = Dict[str, Any]

# Keys used for routing only; never sent over the wire
_INTERNAL_KEYS = ("scope", "exclude", "client_id")


class EventDispatcher:
    """
    Manages event construction and routing to session subscribers.

    Scopes:
    - "session": every subscriber of the session (minus "exclude")
    - "client": one subscriber, addressed by client_id

    Usage:
        dispatcher = EventDispatcher(ctx)
        event = dispatcher.session_update(record)
        await dispatcher.dispatch([event])
    """

    def __init__(self, ctx: "SessionContext") -> None:
        self.ctx = ctx

    # ---------- Event Construction ----------

    def message(
        self,
        session_id: str,
        text: str,
        *,
        client_id: str | None = None,
        payload: dict | None = None,
    ) -> Event:
        """Create a text message for the whole session, or one client when client_id is given."""
        ev: Event = {
            "type": "message",
            "scope": "client" if client_id else "session",
            "session_id": session_id,
            "text": text,
        }
        if client_id:
            ev["client_id"] = client_id
        if payload:
            ev["payload"] = payload
        return ev

    def session_update(self, record: "SessionRecord") -> Event:
        """Current node, turn order and story flags after a session write."""
        return {
            "type": "session_update",
            "scope": "session",
            "session_id": record.id,
            "payload": record.to_dict(),
        }

    def state_update(
        self,
        session_id: str,
        character_id: str,
        delta: dict[str, Any],
        xp_awarded: int = 0,
    ) -> Event:
        return {
            "type": "state_update",
            "scope": "session",
            "session_id": session_id,
            "payload": {
                "character_id": character_id,
                "delta": delta,
                "xp_awarded": xp_awarded,
            },
        }

    def trigger_fired(self, session_id: str, fired: List["FiredTrigger"]) -> Event:
        return {
            "type": "trigger_fired",
            "scope": "session",
            "session_id": session_id,
            "payload": {"fired": [asdict(f) for f in fired]},
        }

    def cascade_applied(
        self,
        session_id: str,
        interaction_id: str,
        outcome_type: str,
        rule_ids: List[str],
    ) -> Event:
        return {
            "type": "cascade_applied",
            "scope": "session",
            "session_id": session_id,
            "payload": {
                "interaction_id": interaction_id,
                "outcome_type": outcome_type,
                "rule_ids": list(rule_ids),
            },
        }

    def hint_outcome(
        self,
        session_id: str,
        character_id: str,
        hint_id: str,
        response: str,
        outcome: dict[str, Any],
    ) -> Event:
        return {
            "type": "hint_outcome",
            "scope": "session",
            "session_id": session_id,
            "payload": {
                "character_id": character_id,
                "hint_id": hint_id,
                "response": response,
                "outcome": outcome,
            },
        }

    def random_event(self, session_id: str, event: "RandomEvent", message: str) -> Event:
        return {
            "type": "random_event",
            "scope": "session",
            "session_id": session_id,
            "text": message,
            "payload": {
                "event_id": event.id,
                "name": event.name,
                "category": event.category,
                "effects": event.effects,
            },
        }

    def combat_update(self, encounter: "CombatEncounter") -> Event:
        return {
            "type": "combat_update",
            "scope": "session",
            "session_id": encounter.session_id,
            "payload": {
                "encounter_id": encounter.id,
                "combat_type": encounter.combat_type,
                "status": encounter.status,
                "participants": [p.to_dict() for p in encounter.participants],
                "outcome": encounter.outcome,
            },
        }

    def presence_sync(self, session_id: str, users: List[dict[str, Any]]) -> Event:
        return {
            "type": "presence_sync",
            "scope": "session",
            "session_id": session_id,
            "payload": {"users": users},
        }

    # ---------- Event Dispatch ----------

    async def dispatch(self, events: List[Event]) -> None:
        """
        Route events to the appropriate subscriber queues.

        Events with no session_id, or addressed to a session or client with
        no subscribers, are dropped.
        """
        for ev in events:
            session_id = ev.get("session_id")
            if not session_id:
                continue
            listeners = self.ctx.get_listeners(session_id)
            if not listeners:
                continue

            wire_event = {k: v for k, v in ev.items() if k not in _INTERNAL_KEYS}
            scope = ev.get("scope", "session")

            if scope == "client":
                q = listeners.get(ev.get("client_id"))
                if q is not None:
                    await q.put(wire_event)

            elif scope == "session":
                exclude = set(ev.get("exclude", []))
                for client_id, q in listeners.items():
                    if client_id in exclude:
                        continue
                    await q.put(dict(wire_event))
