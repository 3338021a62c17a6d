"""
SwapRequest ORM model.

Table-level CHECK constraints back the lifecycle rules enforced by
SwapService: which optional columns are populated is fixed by ``status``.
"""

from __future__ import annotations

import datetime as dt
import enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    Time,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, UUIDMixin


class SwapStatus(str, enum.Enum):
    """Swap request lifecycle states."""

    open = "Open"
    pending = "Pending"
    approved = "Approved"
    rejected = "Rejected"


ACTIVE_SWAP_STATUSES = (SwapStatus.open, SwapStatus.pending)
DECIDED_SWAP_STATUSES = (SwapStatus.approved, SwapStatus.rejected)

_STATE_FIELDS_SQL = (
    "(status = 'Open' AND volunteer_id IS NULL AND manager_id IS NULL"
    " AND approved_at IS NULL AND rejected_at IS NULL)"
    " OR (status = 'Pending' AND volunteer_id IS NOT NULL AND manager_id IS NULL"
    " AND approved_at IS NULL AND rejected_at IS NULL)"
    " OR (status = 'Approved' AND volunteer_id IS NOT NULL AND manager_id IS NOT NULL"
    " AND approved_at IS NOT NULL AND rejected_at IS NULL)"
    " OR (status = 'Rejected' AND volunteer_id IS NOT NULL AND manager_id IS NOT NULL"
    " AND rejected_at IS NOT NULL AND approved_at IS NULL)"
)

_VOLUNTEER_FIELDS_SQL = (
    "(volunteer_id IS NULL AND volunteer_shift_id IS NULL AND volunteer_shift_date IS NULL"
    " AND volunteer_shift_start_time IS NULL AND volunteer_shift_end_time IS NULL)"
    " OR (volunteer_id IS NOT NULL AND volunteer_shift_id IS NOT NULL"
    " AND volunteer_shift_date IS NOT NULL AND volunteer_shift_start_time IS NOT NULL"
    " AND volunteer_shift_end_time IS NOT NULL)"
)


class SwapRequest(Base, UUIDMixin):
    """A staff member's offer to give away one scheduled shift."""

    __tablename__ = "swap_requests"
    __table_args__ = (
        CheckConstraint(_STATE_FIELDS_SQL, name="ck_swap_requests_state_fields"),
        CheckConstraint(_VOLUNTEER_FIELDS_SQL, name="ck_swap_requests_volunteer_fields"),
        CheckConstraint(
            "volunteer_id IS NULL OR volunteer_id <> requester_id",
            name="ck_swap_requests_no_self_swap",
        ),
        # At most one live request per origin shift.
        Index(
            "uq_swap_requests_active_shift",
            "shift_id",
            unique=True,
            postgresql_where=text("status IN ('Open', 'Pending')"),
            sqlite_where=text("status IN ('Open', 'Pending')"),
        ),
    )

    # Origin shift
    shift_id: Mapped[UUID] = mapped_column(
        ForeignKey("shifts.id", ondelete="RESTRICT"),
        nullable=False,
    )
    shift_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    shift_start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    shift_end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)

    requester_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    status: Mapped[SwapStatus] = mapped_column(
        Enum(
            SwapStatus,
            name="swap_status",
            native_enum=False,
            length=20,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=SwapStatus.open,
        index=True,
    )

    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    preferred_volunteer_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    preferred_time: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Volunteer (set together by volunteer())
    volunteer_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    volunteer_shift_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("shifts.id", ondelete="RESTRICT"),
        nullable=True,
    )
    volunteer_shift_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    volunteer_shift_start_time: Mapped[dt.time | None] = mapped_column(Time, nullable=True)
    volunteer_shift_end_time: Mapped[dt.time | None] = mapped_column(Time, nullable=True)

    # Manager decision
    manager_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
    )
    approved_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejected_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<SwapRequest id={self.id} status={self.status.value} shift_id={self.shift_id}>"
