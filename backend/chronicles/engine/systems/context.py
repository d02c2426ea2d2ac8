# backend/chronicles/engine/systems/context.py
"""
SessionContext - Shared context object for all rule systems.

Provides:
- Access to the persistence collaborator (ChronicleStore)
- The random source used for every roll (injectable for tests)
- Per-session subscriber queues for the real-time feed
- Cross-system references

This avoids circular imports and provides a clean dependency injection pattern.
"""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from ..store import ChronicleStore


# Type alias for events (message dicts sent to subscribers)
Event = Dict[str, Any]


class SessionContext:
    """
    Shared context object passed to all rule systems.

    Usage:
        ctx = SessionContext(store)
        triggers = TriggerSystem(ctx)
        ctx.trigger_system = triggers  # Register for cross-system access
    """

    def __init__(self, store: "ChronicleStore", rng: random.Random | None = None) -> None:
        self.store = store
        self.rng = rng or random.Random()

        # session_id -> {client_id -> queue of outgoing events}
        self._listeners: Dict[str, Dict[str, asyncio.Queue[Event]]] = {}

        # System references (set by ChronicleEngine during initialization)
        self.event_dispatcher: Any = None  # EventDispatcher
        self.trigger_system: Any = None  # TriggerSystem
        self.cascade_system: Any = None  # CascadeSystem
        self.hint_system: Any = None  # HintSystem
        self.random_event_system: Any = None  # RandomEventSystem
        self.combat_system: Any = None  # CombatSystem
        self.synchronizer: Any = None  # SessionSynchronizer

    # ---------- Subscriber Management ----------

    def register_listener(self, session_id: str, client_id: str) -> asyncio.Queue[Event]:
        """Register a client's event queue for a session. Returns the queue for the WebSocket to read from."""
        q: asyncio.Queue[Event] = asyncio.Queue()
        self._listeners.setdefault(session_id, {})[client_id] = q
        return q

    def unregister_listener(self, session_id: str, client_id: str) -> None:
        """Remove a client's event queue."""
        clients = self._listeners.get(session_id)
        if not clients:
            return
        clients.pop(client_id, None)
        if not clients:
            del self._listeners[session_id]

    def has_listener(self, session_id: str, client_id: str) -> bool:
        return client_id in self._listeners.get(session_id, {})

    def get_listeners(self, session_id: str) -> Dict[str, asyncio.Queue[Event]]:
        """Snapshot of a session's subscribers (client_id -> queue)."""
        return dict(self._listeners.get(session_id, {}))
