"""Unique guards on one-shot log rows

Adds a (session_id, trigger_id) unique constraint to session_trigger_log and
a once_key column with a (session_id, once_key) unique constraint to
random_event_log. Duplicate rows already in the logs are collapsed to the
earliest one first.

Revision ID: b4d6f8a0c2e1
Revises: a1c3e5f7b9d2
Create Date: 2026-10-18 14:03:11.274930
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "b4d6f8a0c2e1"
down_revision: Union[str, None] = "a1c3e5f7b9d2"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add unique guards to the trigger and random event logs."""
    op.execute(
        "DELETE FROM session_trigger_log WHERE id NOT IN ("
        "SELECT MIN(id) FROM session_trigger_log GROUP BY session_id, trigger_id)"
    )
    with op.batch_alter_table("session_trigger_log", schema=None) as batch_op:
        batch_op.create_unique_constraint(
            op.f("uq_session_trigger_log_session_id"), ["session_id", "trigger_id"]
        )

    with op.batch_alter_table("random_event_log", schema=None) as batch_op:
        batch_op.add_column(sa.Column("once_key", sa.String(), nullable=True))

    # Only the first firing of a non-recurring event carries the key
    op.execute(
        "UPDATE random_event_log SET once_key = event_id WHERE id IN ("
        "SELECT MIN(l.id) FROM random_event_log l "
        "JOIN random_events e ON e.id = l.event_id "
        "WHERE e.is_recurring = 0 GROUP BY l.session_id, l.event_id)"
    )
    with op.batch_alter_table("random_event_log", schema=None) as batch_op:
        batch_op.create_unique_constraint(
            op.f("uq_random_event_log_session_id"), ["session_id", "once_key"]
        )


def downgrade() -> None:
    """Remove the unique guards."""
    with op.batch_alter_table("random_event_log", schema=None) as batch_op:
        batch_op.drop_constraint(op.f("uq_random_event_log_session_id"), type_="unique")
        batch_op.drop_column("once_key")

    with op.batch_alter_table("session_trigger_log", schema=None) as batch_op:
        batch_op.drop_constraint(op.f("uq_session_trigger_log_session_id"), type_="unique")
