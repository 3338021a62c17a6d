"""create_activity_logs_table

Revision ID: e09b3d6a2c58
Revises: c7d5e1a94f26
Create Date: 2026-10-18 09:15:00

"""
from typing import Sequence, Union

from alembic import op

revision: str = 'e09b3d6a2c58'
down_revision: Union[str, None] = 'c7d5e1a94f26'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

def upgrade() -> None:
    op.execute("""
        CREATE TABLE activity_logs (
            id BIGSERIAL PRIMARY KEY,
            actor_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            action VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id VARCHAR(64) NOT NULL,
            details JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX idx_activity_logs_actor_user_id ON activity_logs(actor_user_id)")
    op.execute("CREATE INDEX idx_activity_logs_entity ON activity_logs(entity_type, entity_id)")
    op.execute("CREATE INDEX idx_activity_logs_created_at ON activity_logs(created_at)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS activity_logs")
