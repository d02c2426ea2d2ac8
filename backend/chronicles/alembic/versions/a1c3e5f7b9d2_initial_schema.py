"""initial_schema

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-18 09:12:40.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b9d2'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'campaigns',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_campaigns')),
    )
    op.create_table(
        'characters',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('level', sa.Integer(), server_default='1', nullable=False),
        sa.Column('experience', sa.Integer(), server_default='0', nullable=False),
        sa.Column('stats', sa.JSON(), nullable=True),
        sa.Column('inventory', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_characters')),
    )
    op.create_table(
        'sessions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('status', sa.String(), server_default='active', nullable=False),
        sa.Column('current_node_id', sa.String(), nullable=True),
        sa.Column('current_turn_player_id', sa.String(), nullable=True),
        sa.Column('turn_order', sa.JSON(), nullable=True),
        sa.Column('story_flags', sa.JSON(), nullable=True),
        sa.Column('choices_made', sa.JSON(), nullable=True),
        sa.Column('turn_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('location', sa.String(), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('last_played_at', sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], name=op.f('fk_sessions_campaign_id_campaigns')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sessions')),
    )
    op.create_table(
        'session_participants',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('character_id', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='1', nullable=False),
        sa.Column('joined_at', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['character_id'], ['characters.id'], name=op.f('fk_session_participants_character_id_characters')),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], name=op.f('fk_session_participants_session_id_sessions')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_session_participants')),
    )
    op.create_index(op.f('ix_session_participants_session_id'), 'session_participants', ['session_id'])

    # Triggers
    op.create_table(
        'event_triggers',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('trigger_type', sa.String(), nullable=False),
        sa.Column('conditions', sa.JSON(), nullable=True),
        sa.Column('position', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='1', nullable=False),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], name=op.f('fk_event_triggers_campaign_id_campaigns')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_event_triggers')),
    )
    op.create_index(op.f('ix_event_triggers_campaign_id'), 'event_triggers', ['campaign_id'])
    op.create_table(
        'triggered_events',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('trigger_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('position', sa.Integer(), server_default='0', nullable=False),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], name=op.f('fk_triggered_events_campaign_id_campaigns')),
        sa.ForeignKeyConstraint(['trigger_id'], ['event_triggers.id'], name=op.f('fk_triggered_events_trigger_id_event_triggers')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_triggered_events')),
    )
    op.create_index(op.f('ix_triggered_events_trigger_id'), 'triggered_events', ['trigger_id'])
    op.create_table(
        'session_trigger_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('trigger_id', sa.String(), nullable=False),
        sa.Column('character_id', sa.String(), nullable=False),
        sa.Column('fired_at', sa.Float(), nullable=False),
        sa.Column('context', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], name=op.f('fk_session_trigger_log_session_id_sessions')),
        sa.ForeignKeyConstraint(['trigger_id'], ['event_triggers.id'], name=op.f('fk_session_trigger_log_trigger_id_event_triggers')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_session_trigger_log')),
    )
    op.create_index(op.f('ix_session_trigger_log_session_id'), 'session_trigger_log', ['session_id'])

    # Cascades
    op.create_table(
        'cascade_rules',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('source_interaction_id', sa.String(), nullable=False),
        sa.Column('source_outcome_type', sa.String(), nullable=False),
        sa.Column('target_interaction_id', sa.String(), nullable=False),
        sa.Column('effect_type', sa.String(), nullable=False),
        sa.Column('effect_value', sa.JSON(), nullable=True),
        sa.Column('priority', sa.Integer(), server_default='0', nullable=False),
        sa.Column('position', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='1', nullable=False),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], name=op.f('fk_cascade_rules_campaign_id_campaigns')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_cascade_rules')),
    )
    op.create_index(op.f('ix_cascade_rules_campaign_id'), 'cascade_rules', ['campaign_id'])
    op.create_table(
        'cascade_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('character_id', sa.String(), nullable=False),
        sa.Column('cascade_rule_id', sa.String(), nullable=False),
        sa.Column('applied_at', sa.Float(), nullable=False),
        sa.Column('context', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['cascade_rule_id'], ['cascade_rules.id'], name=op.f('fk_cascade_log_cascade_rule_id_cascade_rules')),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], name=op.f('fk_cascade_log_session_id_sessions')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_cascade_log')),
    )
    op.create_index(op.f('ix_cascade_log_session_id'), 'cascade_log', ['session_id'])
    op.create_table(
        'interaction_completions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('character_id', sa.String(), nullable=False),
        sa.Column('interaction_id', sa.String(), nullable=False),
        sa.Column('outcome_type', sa.String(), nullable=False),
        sa.Column('completed_at', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], name=op.f('fk_interaction_completions_session_id_sessions')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_interaction_completions')),
    )
    op.create_index(op.f('ix_interaction_completions_session_id'), 'interaction_completions', ['session_id'])

    # Hints
    op.create_table(
        'hints',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('node_id', sa.String(), nullable=True),
        sa.Column('hint_type', sa.String(), nullable=False),
        sa.Column('hint_text', sa.Text(), nullable=False),
        sa.Column('conditions', sa.JSON(), nullable=True),
        sa.Column('follow_outcome', sa.JSON(), nullable=True),
        sa.Column('ignore_outcome', sa.JSON(), nullable=True),
        sa.Column('opposite_outcome', sa.JSON(), nullable=True),
        sa.Column('is_red_herring', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('source_flavor', sa.String(), server_default='inner_voice', nullable=False),
        sa.Column('priority', sa.Integer(), server_default='0', nullable=False),
        sa.Column('position', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='1', nullable=False),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], name=op.f('fk_hints_campaign_id_campaigns')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_hints')),
    )
    op.create_index(op.f('ix_hints_campaign_id'), 'hints', ['campaign_id'])
    op.create_table(
        'hint_chains',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('chain_name', sa.String(), nullable=False),
        sa.Column('hint_ids', sa.JSON(), nullable=True),
        sa.Column('completion_reward', sa.JSON(), nullable=True),
        sa.Column('chain_order', sa.Integer(), server_default='0', nullable=False),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], name=op.f('fk_hint_chains_campaign_id_campaigns')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_hint_chains')),
    )
    op.create_index(op.f('ix_hint_chains_campaign_id'), 'hint_chains', ['campaign_id'])
    op.create_table(
        'hint_responses',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('hint_id', sa.String(), nullable=False),
        sa.Column('character_id', sa.String(), nullable=False),
        sa.Column('response', sa.String(), nullable=False),
        sa.Column('triggered_event_id', sa.String(), nullable=True),
        sa.Column('context', sa.JSON(), nullable=True),
        sa.Column('responded_at', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['hint_id'], ['hints.id'], name=op.f('fk_hint_responses_hint_id_hints')),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], name=op.f('fk_hint_responses_session_id_sessions')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_hint_responses')),
    )
    op.create_index(op.f('ix_hint_responses_session_id'), 'hint_responses', ['session_id'])

    # Random events
    op.create_table(
        'random_events',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('probability', sa.Float(), server_default='0', nullable=False),
        sa.Column('conditions', sa.JSON(), nullable=True),
        sa.Column('effects', sa.JSON(), nullable=True),
        sa.Column('is_recurring', sa.Boolean(), server_default='0', nullable=False),
        sa.Column('cooldown_turns', sa.Integer(), server_default='0', nullable=False),
        sa.Column('position', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='1', nullable=False),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], name=op.f('fk_random_events_campaign_id_campaigns')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_random_events')),
    )
    op.create_index(op.f('ix_random_events_campaign_id'), 'random_events', ['campaign_id'])
    op.create_table(
        'random_event_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('event_id', sa.String(), nullable=False),
        sa.Column('character_id', sa.String(), nullable=True),
        sa.Column('fired_at', sa.Float(), nullable=False),
        sa.Column('outcome', sa.JSON(), nullable=True),
        sa.Column('was_positive', sa.Boolean(), server_default='0', nullable=False),
        sa.ForeignKeyConstraint(['event_id'], ['random_events.id'], name=op.f('fk_random_event_log_event_id_random_events')),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], name=op.f('fk_random_event_log_session_id_sessions')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_random_event_log')),
    )
    op.create_index(op.f('ix_random_event_log_session_id'), 'random_event_log', ['session_id'])

    # Combat
    op.create_table(
        'combat_encounters',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('node_id', sa.String(), nullable=True),
        sa.Column('combat_type', sa.String(), nullable=False),
        sa.Column('participants', sa.JSON(), nullable=True),
        sa.Column('stats_hidden', sa.Boolean(), server_default='1', nullable=False),
        sa.Column('status', sa.String(), server_default='pending', nullable=False),
        sa.Column('outcome', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.Float(), nullable=False),
        sa.Column('resolved_at', sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], name=op.f('fk_combat_encounters_session_id_sessions')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_combat_encounters')),
    )
    op.create_index(op.f('ix_combat_encounters_session_id'), 'combat_encounters', ['session_id'])
    op.create_table(
        'bluff_attempts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('actor_id', sa.String(), nullable=False),
        sa.Column('target_id', sa.String(), nullable=False),
        sa.Column('attempt_type', sa.String(), nullable=False),
        sa.Column('stat_used', sa.String(), nullable=False),
        sa.Column('roll_value', sa.Integer(), nullable=False),
        sa.Column('difficulty', sa.Integer(), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('revealed_info', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id'], name=op.f('fk_bluff_attempts_session_id_sessions')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_bluff_attempts')),
    )
    op.create_index(op.f('ix_bluff_attempts_session_id'), 'bluff_attempts', ['session_id'])


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        'bluff_attempts',
        'combat_encounters',
        'random_event_log',
        'random_events',
        'hint_responses',
        'hint_chains',
        'hints',
        'interaction_completions',
        'cascade_log',
        'cascade_rules',
        'session_trigger_log',
        'triggered_events',
        'event_triggers',
        'session_participants',
        'sessions',
        'characters',
        'campaigns',
    ):
        op.drop_table(table)
