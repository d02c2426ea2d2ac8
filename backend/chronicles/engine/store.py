# backend/chronicles/engine/store.py
"""
ChronicleStore - async persistence collaborator for the rule engine.

Provides:
- Campaign definition reads (active only, in definition order) and writes
- Append-only log tables with retry (trigger, cascade, completion, hint
  response, random event, bluff)
- Session, participant and character record reads/writes
- Combat encounter storage

Every public method opens its own short-lived AsyncSession, so one store can
be shared by all systems and all connected clients.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .. import config, models
from ..logging import rule_audit
from .campaign import (BluffAttempt, CascadeLogEntry, CascadeRule,
                       CombatEncounter, CombatParticipant, CompletedInteraction,
                       EffectSpec, Hint, HintChain, HintResponseRecord,
                       RandomEvent, RandomEventLogEntry, TriggerDefinition,
                       TriggerLogEntry, enum_value)
from .errors import AlreadyRecordedError, NotFoundError, PersistenceError
from .state import (CharacterRecord, ChoiceRecord, SessionParticipant,
                    SessionRecord)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Columns of the sessions table callers may write through update_session
SESSION_FIELDS = {
    "current_node_id",
    "current_turn_player_id",
    "turn_order",
    "status",
    "story_flags",
    "choices_made",
    "turn_count",
    "location",
}


class ChronicleStore:
    """
    Usage:
        store = ChronicleStore(AsyncSessionLocal)
        triggers = await store.get_triggers(campaign_id)
        fired = await store.get_fired_trigger_ids(session_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        append_retries: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.append_retries = max(1, append_retries or config.LOG_APPEND_RETRIES)

    # ---------- Internals ----------

    async def _insert(self, row: models.Base) -> int:
        async with self.session_factory() as session:
            session.add(row)
            await session.flush()
            row_id = row.id
            await session.commit()
            return row_id

    async def _append(
        self,
        operation: str,
        make_row: Callable[[], models.Base],
        details: dict[str, Any],
        unique_key: str | None = None,
    ) -> int:
        """
        Insert one log row and return its id, retrying up to append_retries times.

        A fresh row is built for every attempt. Raises PersistenceError once
        the budget is exhausted. When unique_key is given, a unique constraint
        violation raises AlreadyRecordedError straight away.
        """
        attempt = 1
        while True:
            try:
                return await self._insert(make_row())
            except IntegrityError as e:
                if unique_key is not None:
                    logger.info("%s skipped, %s already recorded", operation, unique_key)
                    raise AlreadyRecordedError(operation, unique_key) from e
                error: SQLAlchemyError = e
            except SQLAlchemyError as e:
                error = e
            logger.warning(
                "%s attempt %d/%d failed: %s", operation, attempt, self.append_retries, error
            )
            if attempt >= self.append_retries:
                rule_audit.log_persistence_failure(operation, details, error)
                raise PersistenceError(operation, str(error)) from error
            attempt += 1

    @asynccontextmanager
    async def _read(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session for reads, mapping driver errors to PersistenceError."""
        try:
            async with self.session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            rule_audit.log_persistence_failure(operation, {}, e)
            raise PersistenceError(operation, str(e)) from e

    async def _write(self, operation: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run a read/write unit of work, mapping driver errors to PersistenceError."""
        try:
            async with self.session_factory() as session:
                result = await work(session)
                await session.commit()
                return result
        except SQLAlchemyError as e:
            rule_audit.log_persistence_failure(operation, {}, e)
            raise PersistenceError(operation, str(e)) from e

    async def _next_position(self, session: AsyncSession, model: Any, campaign_id: str) -> int:
        result = await session.execute(
            select(func.count()).select_from(model).where(model.campaign_id == campaign_id)
        )
        return int(result.scalar_one())

    # ========================================================================
    # Campaign definitions
    # ========================================================================

    async def create_campaign(
        self, campaign_id: str, name: str, description: str | None = None
    ) -> None:
        async def work(session: AsyncSession) -> None:
            existing = await session.get(models.Campaign, campaign_id)
            if existing:
                existing.name = name
                existing.description = description
                return
            session.add(models.Campaign(
                id=campaign_id, name=name, description=description, created_at=time.time()
            ))

        await self._write("create_campaign", work)

    async def campaign_exists(self, campaign_id: str) -> bool:
        async with self._read("campaign_exists") as session:
            return await session.get(models.Campaign, campaign_id) is not None

    async def add_trigger(self, trigger: TriggerDefinition) -> TriggerDefinition:
        """Store a trigger and its effects; effects keep their list order."""
        async def work(session: AsyncSession) -> TriggerDefinition:
            position = await self._next_position(session, models.EventTrigger, trigger.campaign_id)
            session.add(models.EventTrigger(
                id=trigger.id,
                campaign_id=trigger.campaign_id,
                name=trigger.name,
                description=trigger.description,
                trigger_type=enum_value(trigger.trigger_type),
                conditions=dict(trigger.conditions),
                is_active=trigger.is_active,
                position=position,
                created_at=time.time(),
            ))
            for i, event in enumerate(trigger.events):
                if event.id is None:
                    event.id = str(uuid.uuid4())
                session.add(models.TriggeredEvent(
                    id=event.id,
                    campaign_id=trigger.campaign_id,
                    trigger_id=trigger.id,
                    name=event.name,
                    event_type=enum_value(event.event_type),
                    payload=dict(event.payload),
                    position=i,
                ))
            return trigger

        return await self._write("add_trigger", work)

    async def get_triggers(self, campaign_id: str) -> list[TriggerDefinition]:
        """Active triggers in definition order, each with its ordered effects."""
        async with self._read("get_triggers") as session:
            result = await session.execute(
                select(models.EventTrigger)
                .where(models.EventTrigger.campaign_id == campaign_id)
                .where(models.EventTrigger.is_active.is_(True))
                .order_by(models.EventTrigger.position)
            )
            rows = result.scalars().all()
            if not rows:
                return []

            event_result = await session.execute(
                select(models.TriggeredEvent)
                .where(models.TriggeredEvent.trigger_id.in_([r.id for r in rows]))
                .order_by(models.TriggeredEvent.position)
            )
            events_by_trigger: dict[str, list[EffectSpec]] = {}
            for ev in event_result.scalars().all():
                events_by_trigger.setdefault(ev.trigger_id, []).append(
                    EffectSpec(event_type=ev.event_type, payload=dict(ev.payload or {}), name=ev.name, id=ev.id)
                )

        return [
            TriggerDefinition(
                id=r.id,
                campaign_id=r.campaign_id,
                name=r.name,
                trigger_type=r.trigger_type,
                conditions=dict(r.conditions or {}),
                events=events_by_trigger.get(r.id, []),
                is_active=r.is_active,
                description=r.description,
            )
            for r in rows
        ]

    async def add_cascade_rule(self, rule: CascadeRule) -> CascadeRule:
        async def work(session: AsyncSession) -> CascadeRule:
            position = await self._next_position(session, models.CascadeRule, rule.campaign_id)
            session.add(models.CascadeRule(
                id=rule.id,
                campaign_id=rule.campaign_id,
                source_interaction_id=rule.source_interaction_id,
                source_outcome_type=enum_value(rule.source_outcome_type),
                target_interaction_id=rule.target_interaction_id,
                effect_type=enum_value(rule.effect_type),
                effect_value=dict(rule.effect_value),
                priority=rule.priority,
                is_active=rule.is_active,
                position=position,
                created_at=time.time(),
            ))
            return rule

        return await self._write("add_cascade_rule", work)

    async def get_cascade_rules(self, campaign_id: str) -> list[CascadeRule]:
        """Active rules by ascending priority, then definition order."""
        async with self._read("get_cascade_rules") as session:
            result = await session.execute(
                select(models.CascadeRule)
                .where(models.CascadeRule.campaign_id == campaign_id)
                .where(models.CascadeRule.is_active.is_(True))
                .order_by(models.CascadeRule.priority, models.CascadeRule.position)
            )
            return [
                CascadeRule(
                    id=r.id,
                    campaign_id=r.campaign_id,
                    source_interaction_id=r.source_interaction_id,
                    source_outcome_type=r.source_outcome_type,
                    target_interaction_id=r.target_interaction_id,
                    effect_type=r.effect_type,
                    effect_value=dict(r.effect_value or {}),
                    priority=r.priority,
                    is_active=r.is_active,
                )
                for r in result.scalars().all()
            ]

    async def add_hint(self, hint: Hint) -> Hint:
        async def work(session: AsyncSession) -> Hint:
            position = await self._next_position(session, models.Hint, hint.campaign_id)
            session.add(models.Hint(
                id=hint.id,
                campaign_id=hint.campaign_id,
                node_id=hint.node_id,
                hint_type=enum_value(hint.hint_type),
                hint_text=hint.hint_text,
                conditions=dict(hint.conditions),
                follow_outcome=dict(hint.follow_outcome),
                ignore_outcome=dict(hint.ignore_outcome),
                opposite_outcome=dict(hint.opposite_outcome),
                is_red_herring=hint.is_red_herring,
                source_flavor=enum_value(hint.source_flavor),
                priority=hint.priority,
                is_active=hint.is_active,
                position=position,
                created_at=time.time(),
            ))
            return hint

        return await self._write("add_hint", work)

    @staticmethod
    def _to_hint(r: models.Hint) -> Hint:
        return Hint(
            id=r.id,
            campaign_id=r.campaign_id,
            hint_type=r.hint_type,
            hint_text=r.hint_text,
            node_id=r.node_id,
            conditions=dict(r.conditions or {}),
            follow_outcome=dict(r.follow_outcome or {}),
            ignore_outcome=dict(r.ignore_outcome or {}),
            opposite_outcome=dict(r.opposite_outcome or {}),
            is_red_herring=r.is_red_herring,
            source_flavor=r.source_flavor,
            priority=r.priority,
            is_active=r.is_active,
        )

    async def get_hints(self, campaign_id: str) -> list[Hint]:
        """Active hints by descending priority, then definition order."""
        async with self._read("get_hints") as session:
            result = await session.execute(
                select(models.Hint)
                .where(models.Hint.campaign_id == campaign_id)
                .where(models.Hint.is_active.is_(True))
                .order_by(models.Hint.priority.desc(), models.Hint.position)
            )
            return [self._to_hint(r) for r in result.scalars().all()]

    async def get_hint(self, hint_id: str) -> Hint:
        async with self._read("get_hint") as session:
            row = await session.get(models.Hint, hint_id)
            if row is None:
                raise NotFoundError("hint", hint_id)
            return self._to_hint(row)

    async def add_hint_chain(self, chain: HintChain) -> HintChain:
        async def work(session: AsyncSession) -> HintChain:
            session.add(models.HintChain(
                id=chain.id,
                campaign_id=chain.campaign_id,
                chain_name=chain.chain_name,
                hint_ids=list(chain.hint_ids),
                completion_reward=dict(chain.completion_reward),
                chain_order=chain.chain_order,
            ))
            return chain

        return await self._write("add_hint_chain", work)

    async def get_hint_chains(self, campaign_id: str) -> list[HintChain]:
        async with self._read("get_hint_chains") as session:
            result = await session.execute(
                select(models.HintChain)
                .where(models.HintChain.campaign_id == campaign_id)
                .order_by(models.HintChain.chain_order, models.HintChain.chain_name)
            )
            return [
                HintChain(
                    id=r.id,
                    campaign_id=r.campaign_id,
                    chain_name=r.chain_name,
                    hint_ids=list(r.hint_ids or []),
                    completion_reward=dict(r.completion_reward or {}),
                    chain_order=r.chain_order,
                )
                for r in result.scalars().all()
            ]

    async def add_random_event(self, event: RandomEvent) -> RandomEvent:
        async def work(session: AsyncSession) -> RandomEvent:
            position = await self._next_position(session, models.RandomEvent, event.campaign_id)
            session.add(models.RandomEvent(
                id=event.id,
                campaign_id=event.campaign_id,
                name=event.name,
                description=event.description,
                category=enum_value(event.category),
                probability=float(event.probability),
                conditions=dict(event.conditions),
                effects=dict(event.effects),
                is_recurring=event.is_recurring,
                cooldown_turns=event.cooldown_turns,
                is_active=event.is_active,
                position=position,
                created_at=time.time(),
            ))
            return event

        return await self._write("add_random_event", work)

    async def get_random_events(self, campaign_id: str) -> list[RandomEvent]:
        """Active random events in definition order."""
        async with self._read("get_random_events") as session:
            result = await session.execute(
                select(models.RandomEvent)
                .where(models.RandomEvent.campaign_id == campaign_id)
                .where(models.RandomEvent.is_active.is_(True))
                .order_by(models.RandomEvent.position)
            )
            return [
                RandomEvent(
                    id=r.id,
                    campaign_id=r.campaign_id,
                    name=r.name,
                    category=r.category,
                    probability=r.probability,
                    description=r.description,
                    conditions=dict(r.conditions or {}),
                    effects=dict(r.effects or {}),
                    is_recurring=r.is_recurring,
                    cooldown_turns=r.cooldown_turns,
                    is_active=r.is_active,
                )
                for r in result.scalars().all()
            ]

    # ========================================================================
    # Append-only logs
    # ========================================================================

    async def append_trigger_log(
        self,
        session_id: str,
        trigger_id: str,
        character_id: str,
        context: dict[str, Any],
    ) -> TriggerLogEntry:
        """Record a firing. Raises AlreadyRecordedError if the trigger is already logged."""
        fired_at = time.time()
        row_id = await self._append(
            "append_trigger_log",
            lambda: models.SessionTriggerLog(
                session_id=session_id,
                trigger_id=trigger_id,
                character_id=character_id,
                fired_at=fired_at,
                context=dict(context),
            ),
            {"session": session_id, "trigger": trigger_id},
            unique_key=trigger_id,
        )
        return TriggerLogEntry(
            id=row_id,
            session_id=session_id,
            trigger_id=trigger_id,
            character_id=character_id,
            fired_at=fired_at,
            context=dict(context),
        )

    async def get_trigger_log(self, session_id: str) -> list[TriggerLogEntry]:
        async with self._read("get_trigger_log") as session:
            result = await session.execute(
                select(models.SessionTriggerLog)
                .where(models.SessionTriggerLog.session_id == session_id)
                .order_by(models.SessionTriggerLog.id)
            )
            return [
                TriggerLogEntry(
                    id=r.id,
                    session_id=r.session_id,
                    trigger_id=r.trigger_id,
                    character_id=r.character_id,
                    fired_at=r.fired_at,
                    context=dict(r.context or {}),
                )
                for r in result.scalars().all()
            ]

    async def get_fired_trigger_ids(self, session_id: str) -> set[str]:
        """The session's fired set: distinct trigger ids in the trigger log."""
        async with self._read("get_fired_trigger_ids") as session:
            result = await session.execute(
                select(models.SessionTriggerLog.trigger_id)
                .where(models.SessionTriggerLog.session_id == session_id)
                .distinct()
            )
            return set(result.scalars().all())

    async def append_cascade_log(
        self,
        session_id: str,
        character_id: str,
        rule_id: str,
        context: dict[str, Any],
    ) -> CascadeLogEntry:
        applied_at = time.time()
        row_id = await self._append(
            "append_cascade_log",
            lambda: models.CascadeLog(
                session_id=session_id,
                character_id=character_id,
                cascade_rule_id=rule_id,
                applied_at=applied_at,
                context=dict(context),
            ),
            {"session": session_id, "rule": rule_id},
        )
        return CascadeLogEntry(
            id=row_id,
            session_id=session_id,
            character_id=character_id,
            cascade_rule_id=rule_id,
            applied_at=applied_at,
            context=dict(context),
        )

    async def get_cascade_log(self, session_id: str) -> list[CascadeLogEntry]:
        async with self._read("get_cascade_log") as session:
            result = await session.execute(
                select(models.CascadeLog)
                .where(models.CascadeLog.session_id == session_id)
                .order_by(models.CascadeLog.id)
            )
            return [
                CascadeLogEntry(
                    id=r.id,
                    session_id=r.session_id,
                    character_id=r.character_id,
                    cascade_rule_id=r.cascade_rule_id,
                    applied_at=r.applied_at,
                    context=dict(r.context or {}),
                )
                for r in result.scalars().all()
            ]

    async def append_completed_interaction(
        self,
        session_id: str,
        character_id: str,
        interaction_id: str,
        outcome_type: str,
    ) -> CompletedInteraction:
        completed_at = time.time()
        await self._append(
            "append_completed_interaction",
            lambda: models.InteractionCompletion(
                session_id=session_id,
                character_id=character_id,
                interaction_id=interaction_id,
                outcome_type=enum_value(outcome_type),
                completed_at=completed_at,
            ),
            {"session": session_id, "interaction": interaction_id},
        )
        return CompletedInteraction(
            interaction_id=interaction_id,
            outcome_type=enum_value(outcome_type),
            character_id=character_id,
            completed_at=completed_at,
        )

    async def get_completed_interactions(
        self, session_id: str, character_id: str | None = None
    ) -> list[CompletedInteraction]:
        async with self._read("get_completed_interactions") as session:
            stmt = (
                select(models.InteractionCompletion)
                .where(models.InteractionCompletion.session_id == session_id)
                .order_by(models.InteractionCompletion.id)
            )
            if character_id is not None:
                stmt = stmt.where(models.InteractionCompletion.character_id == character_id)
            result = await session.execute(stmt)
            return [
                CompletedInteraction(
                    interaction_id=r.interaction_id,
                    outcome_type=r.outcome_type,
                    character_id=r.character_id,
                    completed_at=r.completed_at,
                )
                for r in result.scalars().all()
            ]

    async def append_hint_response(
        self,
        session_id: str,
        hint_id: str,
        character_id: str,
        response: str,
        context: dict[str, Any],
        triggered_event_id: str | None = None,
    ) -> HintResponseRecord:
        responded_at = time.time()
        row_id = await self._append(
            "append_hint_response",
            lambda: models.HintResponse(
                session_id=session_id,
                hint_id=hint_id,
                character_id=character_id,
                response=enum_value(response),
                triggered_event_id=triggered_event_id,
                context=dict(context),
                responded_at=responded_at,
            ),
            {"session": session_id, "hint": hint_id, "response": enum_value(response)},
        )
        return HintResponseRecord(
            id=row_id,
            session_id=session_id,
            hint_id=hint_id,
            character_id=character_id,
            response=enum_value(response),
            responded_at=responded_at,
            context=dict(context),
            triggered_event_id=triggered_event_id,
        )

    async def get_hint_responses(
        self, session_id: str, character_id: str | None = None
    ) -> list[HintResponseRecord]:
        """Responses in append order (oldest first)."""
        async with self._read("get_hint_responses") as session:
            stmt = (
                select(models.HintResponse)
                .where(models.HintResponse.session_id == session_id)
                .order_by(models.HintResponse.id)
            )
            if character_id is not None:
                stmt = stmt.where(models.HintResponse.character_id == character_id)
            result = await session.execute(stmt)
            return [
                HintResponseRecord(
                    id=r.id,
                    session_id=r.session_id,
                    hint_id=r.hint_id,
                    character_id=r.character_id,
                    response=r.response,
                    responded_at=r.responded_at,
                    context=dict(r.context or {}),
                    triggered_event_id=r.triggered_event_id,
                )
                for r in result.scalars().all()
            ]

    async def append_random_event_log(
        self,
        session_id: str,
        event_id: str,
        character_id: str | None,
        outcome: dict[str, Any],
        was_positive: bool,
        once: bool = False,
    ) -> RandomEventLogEntry:
        """
        Record a random event firing.

        once marks a non-recurring event; a second once-row for the same event
        in the session raises AlreadyRecordedError.
        """
        fired_at = time.time()
        row_id = await self._append(
            "append_random_event_log",
            lambda: models.RandomEventLog(
                session_id=session_id,
                event_id=event_id,
                character_id=character_id,
                fired_at=fired_at,
                outcome=dict(outcome),
                was_positive=was_positive,
                once_key=event_id if once else None,
            ),
            {"session": session_id, "event": event_id},
            unique_key=event_id if once else None,
        )
        return RandomEventLogEntry(
            id=row_id,
            session_id=session_id,
            event_id=event_id,
            character_id=character_id,
            fired_at=fired_at,
            outcome=dict(outcome),
            was_positive=was_positive,
        )

    async def get_random_event_log(self, session_id: str) -> list[RandomEventLogEntry]:
        async with self._read("get_random_event_log") as session:
            result = await session.execute(
                select(models.RandomEventLog)
                .where(models.RandomEventLog.session_id == session_id)
                .order_by(models.RandomEventLog.id)
            )
            return [
                RandomEventLogEntry(
                    id=r.id,
                    session_id=r.session_id,
                    event_id=r.event_id,
                    character_id=r.character_id,
                    fired_at=r.fired_at,
                    outcome=dict(r.outcome or {}),
                    was_positive=r.was_positive,
                )
                for r in result.scalars().all()
            ]

    async def append_bluff(self, attempt: BluffAttempt) -> BluffAttempt:
        """Store a bluff attempt; the returned copy carries the assigned id."""
        row_id = await self._append(
            "append_bluff",
            lambda: models.BluffAttempt(
                session_id=attempt.session_id,
                actor_id=attempt.actor_id,
                target_id=attempt.target_id,
                attempt_type=enum_value(attempt.attempt_type),
                stat_used=attempt.stat_used,
                roll_value=attempt.roll_value,
                difficulty=attempt.difficulty,
                success=attempt.success,
                revealed_info=attempt.revealed_info,
                created_at=attempt.created_at,
            ),
            {"session": attempt.session_id, "actor": attempt.actor_id},
        )
        attempt.id = row_id
        return attempt

    async def get_bluffs(self, session_id: str, character_id: str | None = None) -> list[BluffAttempt]:
        """Bluffs in the session, optionally those where the character is actor or target."""
        async with self._read("get_bluffs") as session:
            stmt = (
                select(models.BluffAttempt)
                .where(models.BluffAttempt.session_id == session_id)
                .order_by(models.BluffAttempt.id)
            )
            if character_id is not None:
                stmt = stmt.where(
                    (models.BluffAttempt.actor_id == character_id)
                    | (models.BluffAttempt.target_id == character_id)
                )
            result = await session.execute(stmt)
            return [
                BluffAttempt(
                    id=r.id,
                    session_id=r.session_id,
                    actor_id=r.actor_id,
                    target_id=r.target_id,
                    attempt_type=r.attempt_type,
                    stat_used=r.stat_used,
                    roll_value=r.roll_value,
                    difficulty=r.difficulty,
                    success=r.success,
                    revealed_info=r.revealed_info,
                    created_at=r.created_at,
                )
                for r in result.scalars().all()
            ]

    # ========================================================================
    # Sessions, participants, characters
    # ========================================================================

    @staticmethod
    def _to_session(r: models.Session) -> SessionRecord:
        return SessionRecord(
            id=r.id,
            campaign_id=r.campaign_id,
            current_node_id=r.current_node_id,
            current_turn_player_id=r.current_turn_player_id,
            turn_order=list(r.turn_order or []),
            status=r.status,
            story_flags=dict(r.story_flags or {}),
            choices_made=[ChoiceRecord.from_dict(c) for c in (r.choices_made or [])],
            turn_count=r.turn_count,
            location=r.location,
            last_played_at=r.last_played_at,
        )

    async def create_session(
        self,
        campaign_id: str,
        session_id: str | None = None,
        *,
        current_node_id: str | None = None,
        turn_order: Iterable[str] = (),
        location: str | None = None,
        story_flags: dict[str, Any] | None = None,
    ) -> SessionRecord:
        order = list(turn_order)
        now = time.time()
        row = models.Session(
            id=session_id or str(uuid.uuid4()),
            campaign_id=campaign_id,
            status="active",
            current_node_id=current_node_id,
            current_turn_player_id=order[0] if order else None,
            turn_order=order,
            story_flags=dict(story_flags or {}),
            choices_made=[],
            turn_count=0,
            location=location,
            created_at=now,
            last_played_at=now,
        )

        async def work(session: AsyncSession) -> SessionRecord:
            session.add(row)
            return self._to_session(row)

        return await self._write("create_session", work)

    async def get_session(self, session_id: str) -> SessionRecord:
        async with self._read("get_session") as session:
            row = await session.get(models.Session, session_id)
            if row is None:
                raise NotFoundError("session", session_id)
            return self._to_session(row)

    async def update_session(self, session_id: str, **fields: Any) -> SessionRecord:
        """
        Write the given session columns and return the updated record.

        Accepts the names in SESSION_FIELDS; choices_made may be given as
        ChoiceRecord instances.
        """
        unknown = set(fields) - SESSION_FIELDS
        if unknown:
            raise ValueError(f"unknown session fields: {sorted(unknown)}")
        if "choices_made" in fields:
            fields["choices_made"] = [
                c.to_dict() if isinstance(c, ChoiceRecord) else dict(c)
                for c in fields["choices_made"]
            ]

        async def work(session: AsyncSession) -> SessionRecord:
            row = await session.get(models.Session, session_id)
            if row is None:
                raise NotFoundError("session", session_id)
            for key, value in fields.items():
                setattr(row, key, value)
            row.last_played_at = time.time()
            return self._to_session(row)

        return await self._write("update_session", work)

    async def add_participant(self, session_id: str, character_id: str) -> SessionParticipant:
        """Join a character to a session; rejoining reactivates the old row."""
        async def work(session: AsyncSession) -> SessionParticipant:
            if await session.get(models.Session, session_id) is None:
                raise NotFoundError("session", session_id)
            character = await session.get(models.Character, character_id)
            if character is None:
                raise NotFoundError("character", character_id)
            result = await session.execute(
                select(models.SessionParticipant)
                .where(models.SessionParticipant.session_id == session_id)
                .where(models.SessionParticipant.character_id == character_id)
            )
            row = result.scalars().first()
            if row is None:
                row = models.SessionParticipant(
                    id=str(uuid.uuid4()),
                    session_id=session_id,
                    character_id=character_id,
                    is_active=True,
                    joined_at=time.time(),
                )
                session.add(row)
            else:
                row.is_active = True
            return SessionParticipant(
                id=row.id,
                session_id=session_id,
                character_id=character_id,
                is_active=True,
                joined_at=row.joined_at,
                character_name=character.name,
                user_id=character.user_id,
            )

        return await self._write("add_participant", work)

    async def remove_participant(self, session_id: str, character_id: str) -> None:
        async def work(session: AsyncSession) -> None:
            result = await session.execute(
                select(models.SessionParticipant)
                .where(models.SessionParticipant.session_id == session_id)
                .where(models.SessionParticipant.character_id == character_id)
            )
            for row in result.scalars().all():
                row.is_active = False

        await self._write("remove_participant", work)

    async def get_participants(self, session_id: str, active_only: bool = True) -> list[SessionParticipant]:
        async with self._read("get_participants") as session:
            stmt = (
                select(models.SessionParticipant, models.Character)
                .join(models.Character, models.Character.id == models.SessionParticipant.character_id)
                .where(models.SessionParticipant.session_id == session_id)
                .order_by(models.SessionParticipant.joined_at)
            )
            if active_only:
                stmt = stmt.where(models.SessionParticipant.is_active.is_(True))
            result = await session.execute(stmt)
            return [
                SessionParticipant(
                    id=p.id,
                    session_id=p.session_id,
                    character_id=p.character_id,
                    is_active=p.is_active,
                    joined_at=p.joined_at,
                    character_name=c.name,
                    user_id=c.user_id,
                )
                for p, c in result.all()
            ]

    @staticmethod
    def _to_character(r: models.Character) -> CharacterRecord:
        return CharacterRecord(
            id=r.id,
            name=r.name,
            user_id=r.user_id,
            level=r.level,
            experience=r.experience,
            stats=dict(r.stats or {}),
            inventory=list(r.inventory or []),
        )

    async def create_character(self, character: CharacterRecord) -> CharacterRecord:
        async def work(session: AsyncSession) -> CharacterRecord:
            session.add(models.Character(
                id=character.id,
                user_id=character.user_id,
                name=character.name,
                level=character.level,
                experience=character.experience,
                stats=dict(character.stats),
                inventory=list(character.inventory),
            ))
            return character

        return await self._write("create_character", work)

    async def get_character(self, character_id: str) -> CharacterRecord:
        async with self._read("get_character") as session:
            row = await session.get(models.Character, character_id)
            if row is None:
                raise NotFoundError("character", character_id)
            return self._to_character(row)

    async def update_character(
        self,
        character_id: str,
        *,
        stats: dict[str, int] | None = None,
        inventory: list[str] | None = None,
        experience_delta: int = 0,
    ) -> CharacterRecord:
        async def work(session: AsyncSession) -> CharacterRecord:
            row = await session.get(models.Character, character_id)
            if row is None:
                raise NotFoundError("character", character_id)
            if stats is not None:
                row.stats = dict(stats)
            if inventory is not None:
                row.inventory = list(inventory)
            if experience_delta:
                row.experience = (row.experience or 0) + experience_delta
            return self._to_character(row)

        return await self._write("update_character", work)

    # ========================================================================
    # Combat encounters
    # ========================================================================

    @staticmethod
    def _to_encounter(r: models.CombatEncounter) -> CombatEncounter:
        return CombatEncounter(
            id=r.id,
            session_id=r.session_id,
            combat_type=r.combat_type,
            participants=[CombatParticipant.from_dict(p) for p in (r.participants or [])],
            node_id=r.node_id,
            stats_hidden=r.stats_hidden,
            status=r.status,
            outcome=dict(r.outcome) if r.outcome is not None else None,
            started_at=r.started_at,
            resolved_at=r.resolved_at,
        )

    async def save_encounter(self, encounter: CombatEncounter) -> CombatEncounter:
        """Insert or overwrite an encounter row."""
        async def work(session: AsyncSession) -> CombatEncounter:
            row = await session.get(models.CombatEncounter, encounter.id)
            if row is None:
                row = models.CombatEncounter(id=encounter.id, session_id=encounter.session_id)
                session.add(row)
            row.node_id = encounter.node_id
            row.combat_type = enum_value(encounter.combat_type)
            row.participants = [p.to_dict() for p in encounter.participants]
            row.stats_hidden = encounter.stats_hidden
            row.status = enum_value(encounter.status)
            row.outcome = dict(encounter.outcome) if encounter.outcome is not None else None
            row.started_at = encounter.started_at
            row.resolved_at = encounter.resolved_at
            return encounter

        return await self._write("save_encounter", work)

    async def get_encounter(self, encounter_id: str) -> CombatEncounter:
        async with self._read("get_encounter") as session:
            row = await session.get(models.CombatEncounter, encounter_id)
            if row is None:
                raise NotFoundError("encounter", encounter_id)
            return self._to_encounter(row)

    async def get_encounters(
        self, session_id: str, statuses: Iterable[str] | None = None
    ) -> list[CombatEncounter]:
        """Encounters of a session, newest first."""
        async with self._read("get_encounters") as session:
            stmt = (
                select(models.CombatEncounter)
                .where(models.CombatEncounter.session_id == session_id)
                .order_by(models.CombatEncounter.started_at.desc())
            )
            if statuses is not None:
                stmt = stmt.where(models.CombatEncounter.status.in_([enum_value(s) for s in statuses]))
            result = await session.execute(stmt)
            return [self._to_encounter(r) for r in result.scalars().all()]
