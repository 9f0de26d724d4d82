"""initial schema - users, CRM tables, notifications, snoozes, risk cache

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

Creates every table from the SQLAlchemy models, including the
(user_id, type, related_entity_id) unique constraint on notifications.
"""
from typing import Sequence, Union

from alembic import op

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from SQLAlchemy models (checkfirst, so re-runnable)."""
    from renewal_risk.models import Base

    Base.metadata.create_all(bind=op.get_bind(), checkfirst=True)


def downgrade() -> None:
    """Drop all tables. Destructive — dev/test environments only."""
    from renewal_risk.models import Base

    Base.metadata.drop_all(bind=op.get_bind())
