# backend/chronicles/models.py
from sqlalchemy import (JSON, Boolean, Float, ForeignKey, Integer, MetaData,
                        String, Text, UniqueConstraint)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Naming convention for constraints (required for batch migrations)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)


class Character(Base):
    __tablename__ = "characters"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    experience: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    # Stats (JSON: {"strength": 5, "wisdom": 6}) kept within [1, 10]
    stats: Mapped[dict] = mapped_column(JSON, default=dict)
    # Inventory item names (JSON array)
    inventory: Mapped[list] = mapped_column(JSON, default=list)


class Session(Base):
    """One playthrough of a campaign, shared in real time by its participants."""
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(String, ForeignKey("campaigns.id"), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, server_default="active")

    current_node_id: Mapped[str | None] = mapped_column(String, nullable=True)
    current_turn_player_id: Mapped[str | None] = mapped_column(String, nullable=True)
    # Ordered player ids (JSON array)
    turn_order: Mapped[list] = mapped_column(JSON, default=list)

    story_flags: Mapped[dict] = mapped_column(JSON, default=dict)
    # [{"node_id": ..., "choice_text": ...}] in the order they were made
    choices_made: Mapped[list] = mapped_column(JSON, default=list)
    turn_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    location: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[float] = mapped_column(Float, nullable=False)
    last_played_at: Mapped[float | None] = mapped_column(Float, nullable=True)


class SessionParticipant(Base):
    __tablename__ = "session_participants"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), nullable=False, index=True)
    character_id: Mapped[str] = mapped_column(String, ForeignKey("characters.id"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="1")
    joined_at: Mapped[float] = mapped_column(Float, nullable=False)


# ============================================================================
# Triggers
# ============================================================================


class EventTrigger(Base):
    __tablename__ = "event_triggers"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(String, ForeignKey("campaigns.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    trigger_type: Mapped[str] = mapped_column(String, nullable=False)
    conditions: Mapped[dict] = mapped_column(JSON, default=dict)
    # Definition order within the campaign
    position: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="1")
    created_at: Mapped[float] = mapped_column(Float, nullable=False)


class TriggeredEvent(Base):
    """One effect of a trigger; position orders effects within the trigger."""
    __tablename__ = "triggered_events"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(String, ForeignKey("campaigns.id"), nullable=False)
    trigger_id: Mapped[str] = mapped_column(String, ForeignKey("event_triggers.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    position: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")


class SessionTriggerLog(Base):
    """Append-only. The trigger ids per session are its fired set."""
    __tablename__ = "session_trigger_log"
    # One row per trigger per session; a concurrent duplicate firing is rejected
    __table_args__ = (UniqueConstraint("session_id", "trigger_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), nullable=False, index=True)
    trigger_id: Mapped[str] = mapped_column(String, ForeignKey("event_triggers.id"), nullable=False)
    character_id: Mapped[str] = mapped_column(String, nullable=False)
    fired_at: Mapped[float] = mapped_column(Float, nullable=False)
    context: Mapped[dict] = mapped_column(JSON, default=dict)


# ============================================================================
# Cascades
# ============================================================================


class CascadeRule(Base):
    __tablename__ = "cascade_rules"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(String, ForeignKey("campaigns.id"), nullable=False, index=True)
    source_interaction_id: Mapped[str] = mapped_column(String, nullable=False)
    source_outcome_type: Mapped[str] = mapped_column(String, nullable=False)  # "good", "bad", "neutral"
    target_interaction_id: Mapped[str] = mapped_column(String, nullable=False)
    effect_type: Mapped[str] = mapped_column(String, nullable=False)  # "unlock", "lock", "modify_difficulty", "change_outcome"
    effect_value: Mapped[dict] = mapped_column(JSON, default=dict)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    # Definition order within the campaign
    position: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="1")
    created_at: Mapped[float] = mapped_column(Float, nullable=False)


class CascadeLog(Base):
    __tablename__ = "cascade_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), nullable=False, index=True)
    character_id: Mapped[str] = mapped_column(String, nullable=False)
    cascade_rule_id: Mapped[str] = mapped_column(String, ForeignKey("cascade_rules.id"), nullable=False)
    applied_at: Mapped[float] = mapped_column(Float, nullable=False)
    context: Mapped[dict] = mapped_column(JSON, default=dict)


class InteractionCompletion(Base):
    """Append-only record of interactions finished in a session."""
    __tablename__ = "interaction_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), nullable=False, index=True)
    character_id: Mapped[str] = mapped_column(String, nullable=False)
    interaction_id: Mapped[str] = mapped_column(String, nullable=False)
    outcome_type: Mapped[str] = mapped_column(String, nullable=False)
    completed_at: Mapped[float] = mapped_column(Float, nullable=False)


# ============================================================================
# Hints
# ============================================================================


class Hint(Base):
    __tablename__ = "hints"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(String, ForeignKey("campaigns.id"), nullable=False, index=True)
    node_id: Mapped[str | None] = mapped_column(String, nullable=True)  # null = global
    hint_type: Mapped[str] = mapped_column(String, nullable=False)
    hint_text: Mapped[str] = mapped_column(Text, nullable=False)
    conditions: Mapped[dict] = mapped_column(JSON, default=dict)
    follow_outcome: Mapped[dict] = mapped_column(JSON, default=dict)
    ignore_outcome: Mapped[dict] = mapped_column(JSON, default=dict)
    opposite_outcome: Mapped[dict] = mapped_column(JSON, default=dict)
    is_red_herring: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0")
    source_flavor: Mapped[str] = mapped_column(String, nullable=False, server_default="inner_voice")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    # Definition order within the campaign
    position: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="1")
    created_at: Mapped[float] = mapped_column(Float, nullable=False)


class HintChain(Base):
    __tablename__ = "hint_chains"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(String, ForeignKey("campaigns.id"), nullable=False, index=True)
    chain_name: Mapped[str] = mapped_column(String, nullable=False)
    hint_ids: Mapped[list] = mapped_column(JSON, default=list)
    completion_reward: Mapped[dict] = mapped_column(JSON, default=dict)
    chain_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")


class HintResponse(Base):
    __tablename__ = "hint_responses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), nullable=False, index=True)
    hint_id: Mapped[str] = mapped_column(String, ForeignKey("hints.id"), nullable=False)
    character_id: Mapped[str] = mapped_column(String, nullable=False)
    response: Mapped[str] = mapped_column(String, nullable=False)  # "followed", "ignored", "opposite"
    triggered_event_id: Mapped[str | None] = mapped_column(String, nullable=True)
    # Denormalized copy of the applied outcome for audit
    context: Mapped[dict] = mapped_column(JSON, default=dict)
    responded_at: Mapped[float] = mapped_column(Float, nullable=False)


# ============================================================================
# Random events
# ============================================================================


class RandomEvent(Base):
    __tablename__ = "random_events"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    campaign_id: Mapped[str] = mapped_column(String, ForeignKey("campaigns.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String, nullable=False)
    probability: Mapped[float] = mapped_column(Float, nullable=False, server_default="0")  # percent
    conditions: Mapped[dict] = mapped_column(JSON, default=dict)
    effects: Mapped[dict] = mapped_column(JSON, default=dict)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0")
    cooldown_turns: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    # Definition order within the campaign
    position: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="1")
    created_at: Mapped[float] = mapped_column(Float, nullable=False)


class RandomEventLog(Base):
    __tablename__ = "random_event_log"
    __table_args__ = (UniqueConstraint("session_id", "once_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), nullable=False, index=True)
    event_id: Mapped[str] = mapped_column(String, ForeignKey("random_events.id"), nullable=False)
    character_id: Mapped[str | None] = mapped_column(String, nullable=True)
    fired_at: Mapped[float] = mapped_column(Float, nullable=False)
    outcome: Mapped[dict] = mapped_column(JSON, default=dict)
    was_positive: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0")
    # event_id for non-recurring events, NULL for recurring ones (NULLs never collide)
    once_key: Mapped[str | None] = mapped_column(String, nullable=True)


# ============================================================================
# Combat
# ============================================================================


class CombatEncounter(Base):
    __tablename__ = "combat_encounters"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), nullable=False, index=True)
    node_id: Mapped[str | None] = mapped_column(String, nullable=True)
    combat_type: Mapped[str] = mapped_column(String, nullable=False)  # "pvp", "pve", "duel"
    # [{"character_id", "role", "visible_equipment", "is_ready"}]
    participants: Mapped[list] = mapped_column(JSON, default=list)
    stats_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="1")
    status: Mapped[str] = mapped_column(String, nullable=False, server_default="pending")
    outcome: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    started_at: Mapped[float] = mapped_column(Float, nullable=False)
    resolved_at: Mapped[float | None] = mapped_column(Float, nullable=True)


class BluffAttempt(Base):
    __tablename__ = "bluff_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String, ForeignKey("sessions.id"), nullable=False, index=True)
    actor_id: Mapped[str] = mapped_column(String, nullable=False)
    target_id: Mapped[str] = mapped_column(String, nullable=False)
    attempt_type: Mapped[str] = mapped_column(String, nullable=False)
    stat_used: Mapped[str] = mapped_column(String, nullable=False)
    roll_value: Mapped[int] = mapped_column(Integer, nullable=False)
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    revealed_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False)
