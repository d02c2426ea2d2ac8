# backend/chronicles/engine/systems/sync.py
"""
SessionSynchronizer - Real-time propagation of shared session state.

Provides:
- Session record writes (current node, turn, story flags) followed by a
  session_update broadcast to every subscriber
- Turn helpers (advance_turn, is_my_turn, current_turn_player_name)
- Presence tracking with heartbeat timeout

The persisted session record is the source of truth; subscribers only get
notified. Concurrent advance_turn calls race on the same write and the last
one wins. Presence lives in memory and is rebuilt as clients reconnect.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List

from ... import config
from ..state import SessionParticipant, SessionRecord

if TYPE_CHECKING:
    from .context import Event, SessionContext

logger = logging.getLogger(__name__)


@dataclass
class PresenceEntry:
    user_id: str
    username: str
    online_at: float
    last_seen: float
    character_id: str | None = None
    # Open sockets for this user in the session
    connections: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "character_id": self.character_id,
            "online_at": self.online_at,
        }


class SessionSynchronizer:
    """
    Usage:
        sync = SessionSynchronizer(ctx)
        await sync.update_current_node(session_id, "forest_gate")
        await sync.advance_turn(session_id)
        await sync.track(session_id, user_id, "mira")
    """

    def __init__(
        self,
        ctx: "SessionContext",
        presence_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ctx = ctx
        self.presence_timeout = (
            config.PRESENCE_TIMEOUT if presence_timeout is None else presence_timeout
        )
        self.clock = clock
        # session_id -> user_id -> presence
        self._presence: Dict[str, Dict[str, PresenceEntry]] = {}

    # ---------- Feed ----------

    async def publish(self, events: List["Event"]) -> None:
        await self.ctx.event_dispatcher.dispatch(events)

    async def _broadcast_session(self, record: SessionRecord) -> SessionRecord:
        await self.publish([self.ctx.event_dispatcher.session_update(record)])
        return record

    # ---------- Session Writes ----------

    async def get_session(self, session_id: str) -> SessionRecord:
        return await self.ctx.store.get_session(session_id)

    async def update_current_node(self, session_id: str, node_id: str) -> SessionRecord:
        record = await self.ctx.store.update_session(session_id, current_node_id=node_id)
        return await self._broadcast_session(record)

    async def set_story_flags(self, session_id: str, story_flags: Dict[str, Any]) -> SessionRecord:
        """Replace the session's story flags with story_flags."""
        record = await self.ctx.store.update_session(session_id, story_flags=dict(story_flags))
        return await self._broadcast_session(record)

    async def set_turn_order(self, session_id: str, turn_order: List[str]) -> SessionRecord:
        """Replace the turn order; the first player takes the turn."""
        record = await self.ctx.store.update_session(
            session_id,
            turn_order=list(turn_order),
            current_turn_player_id=turn_order[0] if turn_order else None,
        )
        return await self._broadcast_session(record)

    async def advance_turn(self, session_id: str) -> SessionRecord | None:
        """
        Hand the turn to the next player in turn order.

        A current player missing from the order hands the turn to the first
        player. Returns None when the session has no turn order.
        """
        record = await self.ctx.store.get_session(session_id)
        if not record.turn_order:
            return None
        try:
            current_index = record.turn_order.index(record.current_turn_player_id)
        except ValueError:
            current_index = -1
        next_index = (current_index + 1) % len(record.turn_order)
        next_player = record.turn_order[next_index]

        record = await self.ctx.store.update_session(session_id, current_turn_player_id=next_player)
        logger.debug("Session %s turn passed to %s", session_id, next_player)
        return await self._broadcast_session(record)

    # ---------- Turn Queries ----------

    async def participants(self, session_id: str) -> List[SessionParticipant]:
        return await self.ctx.store.get_participants(session_id)

    async def is_my_turn(self, session_id: str, character_id: str) -> bool:
        """Always true without a turn order; otherwise the character's player must hold the turn."""
        record = await self.ctx.store.get_session(session_id)
        if not record.turn_order:
            return True
        for p in await self.participants(session_id):
            if p.character_id == character_id:
                return record.current_turn_player_id == p.user_id
        return False

    async def current_turn_player_name(self, session_id: str) -> str | None:
        record = await self.ctx.store.get_session(session_id)
        if not record.current_turn_player_id:
            return None
        for p in await self.participants(session_id):
            if p.user_id == record.current_turn_player_id:
                return p.character_name or "Unknown"
        return "Unknown"

    # ---------- Presence ----------

    async def track(
        self,
        session_id: str,
        user_id: str,
        username: str | None = None,
        character_id: str | None = None,
    ) -> List[dict[str, Any]]:
        now = self.clock()
        users = self._presence.setdefault(session_id, {})
        existing = users.get(user_id)
        users[user_id] = PresenceEntry(
            user_id=user_id,
            username=username or "Player",
            online_at=existing.online_at if existing else now,
            last_seen=now,
            character_id=character_id,
            connections=existing.connections + 1 if existing else 1,
        )
        return await self._sync_presence(session_id)

    async def heartbeat(self, session_id: str, user_id: str) -> bool:
        """Refresh a tracked user's last_seen; False if the user is not tracked."""
        entry = self._presence.get(session_id, {}).get(user_id)
        if entry is None:
            return False
        entry.last_seen = self.clock()
        return True

    async def untrack(self, session_id: str, user_id: str) -> List[dict[str, Any]]:
        """Close one of the user's connections; the user goes offline with the last one."""
        users = self._presence.get(session_id)
        entry = users.get(user_id) if users is not None else None
        if entry is not None:
            entry.connections -= 1
            if entry.connections <= 0:
                del users[user_id]
            if not users:
                del self._presence[session_id]
        return await self._sync_presence(session_id)

    def _prune(self, session_id: str) -> bool:
        users = self._presence.get(session_id)
        if not users:
            return False
        cutoff = self.clock() - self.presence_timeout
        stale = [uid for uid, entry in users.items() if entry.last_seen < cutoff]
        for uid in stale:
            del users[uid]
        if stale:
            logger.info("Presence timed out in session %s: %s", session_id, stale)
        if not users:
            del self._presence[session_id]
        return bool(stale)

    def presence_state(self, session_id: str) -> List[dict[str, Any]]:
        self._prune(session_id)
        return [e.to_dict() for e in self._presence.get(session_id, {}).values()]

    def online_users(self, session_id: str) -> List[str]:
        """User ids with a heartbeat inside the presence timeout."""
        self._prune(session_id)
        return list(self._presence.get(session_id, {}))

    async def _sync_presence(self, session_id: str) -> List[dict[str, Any]]:
        users = self.presence_state(session_id)
        await self.publish([self.ctx.event_dispatcher.presence_sync(session_id, users)])
        return users
