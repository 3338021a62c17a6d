"""create_swap_requests_table

Revision ID: c7d5e1a94f26
Revises: 8b42e6f0c3a1
Create Date: 2026-10-18 09:10:00

"""
from typing import Sequence, Union

from alembic import op

revision: str = 'c7d5e1a94f26'
down_revision: Union[str, None] = '8b42e6f0c3a1'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE swap_requests (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            shift_id UUID NOT NULL REFERENCES shifts(id) ON DELETE RESTRICT,
            shift_date DATE NOT NULL,
            shift_start_time TIME NOT NULL,
            shift_end_time TIME NOT NULL,
            requester_id UUID NOT NULL REFERENCES users(id) ON DELETE RESTRICT,
            status VARCHAR(20) NOT NULL DEFAULT 'Open'
                CONSTRAINT swap_status CHECK (status IN ('Open', 'Pending', 'Approved', 'Rejected')),
            note TEXT,
            preferred_volunteer_name VARCHAR(100),
            preferred_time VARCHAR(100),
            volunteer_id UUID REFERENCES users(id) ON DELETE RESTRICT,
            volunteer_shift_id UUID REFERENCES shifts(id) ON DELETE RESTRICT,
            volunteer_shift_date DATE,
            volunteer_shift_start_time TIME,
            volunteer_shift_end_time TIME,
            manager_id UUID REFERENCES users(id) ON DELETE RESTRICT,
            approved_at TIMESTAMPTZ,
            rejected_at TIMESTAMPTZ,
            rejection_reason TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_swap_requests_state_fields CHECK (
                (status = 'Open' AND volunteer_id IS NULL AND manager_id IS NULL
                    AND approved_at IS NULL AND rejected_at IS NULL)
                OR (status = 'Pending' AND volunteer_id IS NOT NULL AND manager_id IS NULL
                    AND approved_at IS NULL AND rejected_at IS NULL)
                OR (status = 'Approved' AND volunteer_id IS NOT NULL AND manager_id IS NOT NULL
                    AND approved_at IS NOT NULL AND rejected_at IS NULL)
                OR (status = 'Rejected' AND volunteer_id IS NOT NULL AND manager_id IS NOT NULL
                    AND rejected_at IS NOT NULL AND approved_at IS NULL)
            ),
            CONSTRAINT ck_swap_requests_volunteer_fields CHECK (
                (volunteer_id IS NULL AND volunteer_shift_id IS NULL AND volunteer_shift_date IS NULL
                    AND volunteer_shift_start_time IS NULL AND volunteer_shift_end_time IS NULL)
                OR (volunteer_id IS NOT NULL AND volunteer_shift_id IS NOT NULL
                    AND volunteer_shift_date IS NOT NULL AND volunteer_shift_start_time IS NOT NULL
                    AND volunteer_shift_end_time IS NOT NULL)
            ),
            CONSTRAINT ck_swap_requests_no_self_swap CHECK (
                volunteer_id IS NULL OR volunteer_id <> requester_id
            )
        )
    """)
    op.execute(
        "CREATE UNIQUE INDEX uq_swap_requests_active_shift ON swap_requests(shift_id) "
        "WHERE status IN ('Open', 'Pending')"
    )
    op.execute("CREATE INDEX idx_swap_requests_status ON swap_requests(status)")
    op.execute("CREATE INDEX idx_swap_requests_requester ON swap_requests(requester_id)")
    op.execute("CREATE INDEX idx_swap_requests_volunteer ON swap_requests(volunteer_id) WHERE volunteer_id IS NOT NULL")
    op.execute("CREATE INDEX idx_swap_requests_created_at ON swap_requests(created_at)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS swap_requests")
