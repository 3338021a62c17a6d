"""create_shifts_table

Revision ID: 8b42e6f0c3a1
Revises: 3f1a9c2d7b10
Create Date: 2026-10-18 09:05:00

"""
from typing import Sequence, Union

from alembic import op

revision: str = '8b42e6f0c3a1'
down_revision: Union[str, None] = '3f1a9c2d7b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE shifts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            date DATE NOT NULL,
            start_time TIME NOT NULL,
            end_time TIME NOT NULL,
            role VARCHAR(100),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX idx_shifts_employee_id ON shifts(employee_id)")
    op.execute("CREATE INDEX idx_shifts_date ON shifts(date)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS shifts")
