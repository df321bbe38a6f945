"""subscription_schema

Revision ID: 4b1d7e2a9c30
Revises: 
Create Date: 2026-10-17 09:00:00.000000

Creates subscription_plans, tenant_subscriptions, subscription_notifications,
clients and training_sessions from the model metadata.
"""
from typing import Sequence, Union

from alembic import op

from treniko.db_base import Base
import treniko.models  # noqa: F401 - required to register all model metadata


# revision identifiers, used by Alembic.
revision: str = '4b1d7e2a9c30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    Base.metadata.create_all(bind=bind)


def downgrade() -> None:
    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind)
