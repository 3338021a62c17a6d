"""
Swap request business logic.

Lifecycle: Open -> Pending -> Approved | Rejected. Approved and Rejected are
terminal; re-requesting a shift means creating a new swap request.

Every transition re-reads the row, validates role and state, then writes with
a conditional UPDATE on the expected status and checks the affected row
count. Two concurrent volunteers (or two manager decisions) therefore cannot
both succeed.

Everything the response and the activity log entry need (names, the row as it
stands after the update) is gathered before the state change commits. After
the commit the only store call is the log append, and a store fault there is
returned in ``TransitionResult.audit_error`` instead of being raised: the
transition stands either way.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any, Awaitable, Callable, Mapping, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import rollback_quietly
from app.core.exceptions import (
    DuplicateRequestError,
    InvalidStateError,
    PersistenceError,
    RoleNotAllowedError,
    SelfSwapError,
    ShiftNotFoundError,
    SwapNotFoundError,
    ValidationError,
)
from app.models.activity_log import ActivityLog
from app.models.swap_request import (
    ACTIVE_SWAP_STATUSES,
    DECIDED_SWAP_STATUSES,
    SwapRequest,
    SwapStatus,
)
from app.schemas.swap import ApprovedSwap, OpenSwap, PendingSwap, RejectedSwap, SwapView
from app.services.activity_log_service import ActivityLogService, entry_context
from app.services.directory_service import (
    Actor,
    ShiftDirectory,
    SqlShiftDirectory,
    SqlUserDirectory,
    UserDirectory,
)

logger = logging.getLogger(__name__)

SWAP_ENTITY_TYPE = "swap_request"
ACTIVE_SHIFT_INDEX = "uq_swap_requests_active_shift"

T = TypeVar("T")


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a state-changing call.

    ``activity`` is the appended log entry. When the append failed after the
    state change committed, ``activity`` is None and ``audit_error`` holds
    the failure, with the full entry in its context for a later replay.
    """

    swap: SwapView
    activity: ActivityLog | None = None
    audit_error: PersistenceError | None = None

    @property
    def audit_logged(self) -> bool:
        return self.audit_error is None


def _store_errors(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """Roll back and re-raise store faults as PersistenceError."""

    @functools.wraps(func)
    async def wrapper(self: SwapService, *args: Any, **kwargs: Any) -> T:
        try:
            return await func(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            await rollback_quietly(self.db)
            logger.error("%s failed on the data store: %s", func.__name__, exc)
            raise PersistenceError(operation=func.__name__) from exc

    return wrapper


def is_active_shift_conflict(exc: IntegrityError) -> bool:
    """True when the insert hit the one-live-request-per-shift index."""
    message = str(exc.orig)
    # PostgreSQL names the index; SQLite names the indexed column.
    return (
        ACTIVE_SHIFT_INDEX in message
        or "UNIQUE constraint failed: swap_requests.shift_id" in message
    )


def is_missing_reference(exc: IntegrityError) -> bool:
    return "foreign key" in str(exc.orig).lower()


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _system_now() -> datetime:
    return datetime.now(UTC)


def _snapshot(swap: SwapRequest) -> dict[str, Any]:
    """Column values of a loaded row, detached from the session."""
    return {attr.key: getattr(swap, attr.key) for attr in sa_inspect(SwapRequest).column_attrs}


class SwapService:
    """The swap request state machine and its read-side projections."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        shifts: ShiftDirectory | None = None,
        users: UserDirectory | None = None,
        activity: ActivityLogService | None = None,
        clock: Callable[[], datetime] = _system_now,
    ) -> None:
        self.db = db
        self.shifts = shifts or SqlShiftDirectory(db)
        self.users = users or SqlUserDirectory(db)
        self.activity = activity or ActivityLogService(db, users=self.users)
        self.clock = clock

    # -----------------------------------------------------------------------
    # Create
    # -----------------------------------------------------------------------

    @_store_errors
    async def create(
        self,
        actor: Actor,
        shift_id: UUID,
        note: str | None = None,
        preferred_volunteer_name: str | None = None,
        preferred_time: str | None = None,
    ) -> TransitionResult:
        """Publish one of the actor's shifts as an Open swap request."""
        shift = await self.shifts.get_shift(shift_id)
        if shift is None:
            raise ShiftNotFoundError(shift_id=str(shift_id))
        if shift.owner_id != actor.id:
            raise ValidationError(
                "You can only request swaps for your own shifts",
                shift_id=str(shift_id),
            )

        existing = await self.db.scalar(
            select(SwapRequest.id)
            .where(
                SwapRequest.shift_id == shift_id,
                SwapRequest.status.in_(ACTIVE_SWAP_STATUSES),
            )
            .limit(1)
        )
        if existing is not None:
            raise DuplicateRequestError(shift_id=str(shift_id), swap_id=str(existing))

        names = await self.users.get_names([actor.id])
        row: dict[str, Any] = {
            "id": uuid4(),
            "shift_id": shift.id,
            "shift_date": shift.date,
            "shift_start_time": shift.start_time,
            "shift_end_time": shift.end_time,
            "requester_id": actor.id,
            "status": SwapStatus.open,
            "note": _clean_text(note),
            "preferred_volunteer_name": _clean_text(preferred_volunteer_name),
            "preferred_time": _clean_text(preferred_time),
            "created_at": self.clock(),
        }
        self.db.add(SwapRequest(**row))
        try:
            await self.db.flush()
            await self.db.commit()
        except IntegrityError as exc:
            await rollback_quietly(self.db)
            if is_active_shift_conflict(exc):
                # Lost the race against another create for the same shift.
                raise DuplicateRequestError(shift_id=str(shift_id)) from exc
            if is_missing_reference(exc):
                raise ShiftNotFoundError(shift_id=str(shift_id)) from exc
            raise

        logger.info("Swap %s created by %s for shift %s", row["id"], actor.id, shift_id)

        return await self._record(
            self._to_view(row, names),
            actor_id=actor.id,
            action="created",
            details={
                "shift_id": shift.id,
                "requester_id": actor.id,
                "requester": names.get(actor.id),
                "date": shift.date,
                "start_time": shift.start_time,
                "end_time": shift.end_time,
                "note": row["note"],
            },
        )

    # -----------------------------------------------------------------------
    # Volunteer
    # -----------------------------------------------------------------------

    @_store_errors
    async def volunteer(
        self,
        swap_id: UUID,
        actor: Actor,
        volunteer_shift_id: UUID,
    ) -> TransitionResult:
        """Commit the actor as volunteer, offering one of their own shifts."""
        swap = await self._get_swap(swap_id)

        if swap.requester_id == actor.id:
            raise SelfSwapError(swap_id=str(swap_id))
        if actor.is_manager:
            raise RoleNotAllowedError(
                "Managers cannot volunteer for shift swaps", swap_id=str(swap_id)
            )
        if swap.status is not SwapStatus.open:
            raise InvalidStateError(
                "This shift has already been claimed",
                current_status=swap.status.value,
                swap_id=str(swap_id),
            )

        offered = await self.shifts.get_shift(volunteer_shift_id)
        if offered is None:
            raise ShiftNotFoundError(shift_id=str(volunteer_shift_id))
        if offered.owner_id != actor.id:
            raise ValidationError(
                "You can only offer your own shifts",
                shift_id=str(volunteer_shift_id),
            )
        if offered.date < self.clock().date():
            raise ValidationError(
                "The offered shift has already passed",
                shift_id=str(volunteer_shift_id),
            )
        committed = await self.db.scalar(
            select(SwapRequest.id)
            .where(
                SwapRequest.status.in_(ACTIVE_SWAP_STATUSES),
                or_(
                    SwapRequest.shift_id == volunteer_shift_id,
                    SwapRequest.volunteer_shift_id == volunteer_shift_id,
                ),
            )
            .limit(1)
        )
        if committed is not None:
            raise ValidationError(
                "The offered shift is already part of another swap request",
                shift_id=str(volunteer_shift_id),
            )

        names = await self.users.get_names([swap.requester_id, actor.id])
        values = {
            "status": SwapStatus.pending,
            "volunteer_id": actor.id,
            "volunteer_shift_id": offered.id,
            "volunteer_shift_date": offered.date,
            "volunteer_shift_start_time": offered.start_time,
            "volunteer_shift_end_time": offered.end_time,
        }
        view = self._to_view({**_snapshot(swap), **values}, names)

        await self._compare_and_set(
            swap_id,
            expected=SwapStatus.open,
            message="This shift has already been claimed",
            values=values,
        )
        logger.info("Swap %s claimed by volunteer %s", swap_id, actor.id)

        return await self._record(
            view,
            actor_id=actor.id,
            action="volunteered",
            details={
                "swap_id": swap_id,
                "volunteer_id": actor.id,
                "volunteer": names.get(actor.id),
                "volunteer_shift_id": offered.id,
            },
        )

    # -----------------------------------------------------------------------
    # Manager decisions
    # -----------------------------------------------------------------------

    @_store_errors
    async def approve(self, swap_id: UUID, actor: Actor) -> TransitionResult:
        """Approve a Pending swap. Manager only."""
        if not actor.is_manager:
            raise RoleNotAllowedError(
                "Only managers can approve swap requests", swap_id=str(swap_id)
            )
        swap = await self._get_swap(swap_id)
        self._require_pending(swap)

        names = await self.users.get_names([swap.requester_id, swap.volunteer_id, actor.id])
        values = {
            "status": SwapStatus.approved,
            "manager_id": actor.id,
            "approved_at": self.clock(),
        }
        view = self._to_view({**_snapshot(swap), **values}, names)

        await self._compare_and_set(
            swap_id,
            expected=SwapStatus.pending,
            message="This swap request has already been decided",
            values=values,
        )
        logger.info("Swap %s approved by manager %s", swap_id, actor.id)

        return await self._record(
            view,
            actor_id=actor.id,
            action="approved",
            details={
                "swap_id": swap_id,
                "requester_id": view.requester_id,
                "requester": names.get(view.requester_id),
                "volunteer_id": view.volunteer_id,
                "volunteer": names.get(view.volunteer_id),
            },
        )

    @_store_errors
    async def reject(
        self,
        swap_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> TransitionResult:
        """Reject a Pending swap. Manager only; the reason is optional."""
        if not actor.is_manager:
            raise RoleNotAllowedError(
                "Only managers can reject swap requests", swap_id=str(swap_id)
            )
        swap = await self._get_swap(swap_id)
        self._require_pending(swap)

        reason = _clean_text(reason)
        names = await self.users.get_names([swap.requester_id, swap.volunteer_id, actor.id])
        values = {
            "status": SwapStatus.rejected,
            "manager_id": actor.id,
            "rejected_at": self.clock(),
            "rejection_reason": reason,
        }
        view = self._to_view({**_snapshot(swap), **values}, names)

        await self._compare_and_set(
            swap_id,
            expected=SwapStatus.pending,
            message="This swap request has already been decided",
            values=values,
        )
        logger.info("Swap %s rejected by manager %s", swap_id, actor.id)

        return await self._record(
            view,
            actor_id=actor.id,
            action="rejected",
            details={
                "swap_id": swap_id,
                "reason": reason,
                "requester_id": view.requester_id,
                "requester": names.get(view.requester_id),
                "volunteer_id": view.volunteer_id,
                "volunteer": names.get(view.volunteer_id),
            },
        )

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    @_store_errors
    async def get(self, swap_id: UUID) -> SwapView:
        swap = await self._get_swap(swap_id)
        return (await self._to_views([swap]))[0]

    @_store_errors
    async def list_open(self, exclude_user_id: UUID | None = None) -> list[SwapView]:
        """Open swaps, optionally hiding the caller's own requests."""
        stmt = select(SwapRequest).where(SwapRequest.status == SwapStatus.open)
        if exclude_user_id is not None:
            stmt = stmt.where(SwapRequest.requester_id != exclude_user_id)
        return await self._list(stmt)

    @_store_errors
    async def list_pending(self) -> list[SwapView]:
        return await self._list(
            select(SwapRequest).where(SwapRequest.status == SwapStatus.pending)
        )

    @_store_errors
    async def list_user_history(self, user_id: UUID) -> list[SwapView]:
        """Swaps the user requested or volunteered for."""
        return await self._list(
            select(SwapRequest).where(
                or_(
                    SwapRequest.requester_id == user_id,
                    SwapRequest.volunteer_id == user_id,
                )
            )
        )

    @_store_errors
    async def list_all(
        self,
        actor: Actor,
        *,
        employee_id: UUID | None = None,
        status: SwapStatus | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[SwapView]:
        """Every swap, filtered for the manager history view."""
        if not actor.is_manager:
            raise RoleNotAllowedError("Only managers can view all swap requests")

        stmt = select(SwapRequest)
        if employee_id is not None:
            stmt = stmt.where(
                or_(
                    SwapRequest.requester_id == employee_id,
                    SwapRequest.volunteer_id == employee_id,
                )
            )
        if status is not None:
            stmt = stmt.where(SwapRequest.status == status)
        if date_from is not None:
            stmt = stmt.where(
                SwapRequest.created_at >= datetime.combine(date_from, time.min, tzinfo=UTC)
            )
        if date_to is not None:
            stmt = stmt.where(
                SwapRequest.created_at
                < datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=UTC)
            )
        return await self._list(stmt)

    @_store_errors
    async def list_for_actor(self, actor: Actor) -> list[SwapView]:
        """
        Role-filtered view.

        Staff see their own requests and volunteered swaps plus every Open
        swap from other users. Managers see Pending and decided swaps.
        """
        if actor.is_manager:
            stmt = select(SwapRequest).where(
                SwapRequest.status.in_((SwapStatus.pending, *DECIDED_SWAP_STATUSES))
            )
        else:
            stmt = select(SwapRequest).where(
                or_(
                    SwapRequest.requester_id == actor.id,
                    SwapRequest.volunteer_id == actor.id,
                    SwapRequest.status == SwapStatus.open,
                )
            )
        return await self._list(stmt)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    async def _get_swap(self, swap_id: UUID) -> SwapRequest:
        """Load the current row, bypassing anything cached in the session."""
        swap = await self.db.scalar(
            select(SwapRequest)
            .where(SwapRequest.id == swap_id)
            .execution_options(populate_existing=True)
        )
        if swap is None:
            raise SwapNotFoundError(swap_id=str(swap_id))
        return swap

    def _require_pending(self, swap: SwapRequest) -> None:
        if swap.status is not SwapStatus.pending:
            raise InvalidStateError(
                f"Only pending swap requests can be decided (current: {swap.status.value})",
                current_status=swap.status.value,
                swap_id=str(swap.id),
            )

    async def _compare_and_set(
        self,
        swap_id: UUID,
        *,
        expected: SwapStatus,
        message: str,
        values: dict[str, Any],
    ) -> None:
        """UPDATE ... WHERE id = ? AND status = ? and commit; zero rows means a lost race."""
        result = await self.db.execute(
            update(SwapRequest)
            .where(SwapRequest.id == swap_id, SwapRequest.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await rollback_quietly(self.db)
            current = await self.db.scalar(
                select(SwapRequest.status).where(SwapRequest.id == swap_id)
            )
            logger.warning(
                "Conditional update lost for swap %s: expected %s, found %s",
                swap_id,
                expected.value,
                current.value if current else None,
            )
            raise InvalidStateError(
                message,
                current_status=current.value if current else None,
                swap_id=str(swap_id),
            )
        await self.db.commit()

    async def _record(
        self,
        view: SwapView,
        *,
        actor_id: UUID,
        action: str,
        details: dict[str, Any],
    ) -> TransitionResult:
        """Append the log entry for a committed transition; store faults are returned."""
        try:
            entry = await self.activity.append(
                actor_id, action, SWAP_ENTITY_TYPE, view.id, details
            )
        except PersistenceError as exc:
            audit_error = exc
        except SQLAlchemyError as exc:
            await rollback_quietly(self.db)
            audit_error = PersistenceError(
                "Activity log entry could not be written",
                **entry_context(actor_id, action, SWAP_ENTITY_TYPE, view.id, details),
            )
            audit_error.__cause__ = exc
        else:
            return TransitionResult(swap=view, activity=entry)

        logger.error(
            "Audit trail incomplete: %s on swap %s committed without a log entry",
            action,
            view.id,
        )
        return TransitionResult(swap=view, activity=None, audit_error=audit_error)

    async def _list(self, stmt: Any) -> list[SwapView]:
        stmt = stmt.order_by(SwapRequest.created_at.desc()).execution_options(
            populate_existing=True
        )
        swaps = list((await self.db.execute(stmt)).scalars().all())
        return await self._to_views(swaps)

    async def _to_views(self, swaps: list[SwapRequest]) -> list[SwapView]:
        rows = [_snapshot(swap) for swap in swaps]
        user_ids: set[UUID] = set()
        for row in rows:
            user_ids.update(
                uid for uid in (row["requester_id"], row["volunteer_id"], row["manager_id"]) if uid
            )
        names = await self.users.get_names(user_ids)
        return [self._to_view(row, names) for row in rows]

    @staticmethod
    def _to_view(row: Mapping[str, Any], names: Mapping[UUID, str]) -> SwapView:
        """Build the per-state read model from a row's column values."""
        base: dict[str, Any] = {
            "id": row["id"],
            "shift_id": row["shift_id"],
            "requester_id": row["requester_id"],
            "requester_name": names.get(row["requester_id"], ""),
            "date": row["shift_date"],
            "start_time": row["shift_start_time"],
            "end_time": row["shift_end_time"],
            "note": row.get("note"),
            "preferred_volunteer_name": row.get("preferred_volunteer_name"),
            "preferred_time": row.get("preferred_time"),
            "created_at": row["created_at"],
        }
        status = row["status"]
        if status is SwapStatus.open:
            return OpenSwap(**base)

        volunteered = {
            **base,
            "volunteer_id": row["volunteer_id"],
            "volunteer_name": names.get(row["volunteer_id"]),
            "volunteer_shift_id": row["volunteer_shift_id"],
            "volunteer_shift_date": row["volunteer_shift_date"],
            "volunteer_shift_start_time": row["volunteer_shift_start_time"],
            "volunteer_shift_end_time": row["volunteer_shift_end_time"],
        }
        if status is SwapStatus.pending:
            return PendingSwap(**volunteered)

        decided = {
            **volunteered,
            "manager_id": row["manager_id"],
            "manager_name": names.get(row["manager_id"]),
        }
        if status is SwapStatus.approved:
            return ApprovedSwap(**decided, approved_at=row["approved_at"])
        return RejectedSwap(
            **decided, rejected_at=row["rejected_at"], reason=row.get("rejection_reason")
        )
