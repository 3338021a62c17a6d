"""
Shift and user directories consumed by the swap workflow.

The workflow only needs ownership, dates and roles. These protocols keep the
workflow independent of where shifts and profiles are stored; the SQL
implementations read the local ``shifts`` and ``users`` tables.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Iterable, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.shift import Shift
from app.models.user import User, UserRole


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of an operation."""

    id: UUID
    role: UserRole

    @property
    def is_manager(self) -> bool:
        return self.role is UserRole.manager


@dataclass(frozen=True)
class ShiftInfo:
    id: UUID
    owner_id: UUID
    date: dt.date
    start_time: dt.time
    end_time: dt.time


@dataclass(frozen=True)
class UserInfo:
    id: UUID
    name: str
    email: str
    role: UserRole


class ShiftDirectory(Protocol):
    async def get_shift(self, shift_id: UUID) -> ShiftInfo | None: ...


class UserDirectory(Protocol):
    async def get_user(self, user_id: UUID) -> UserInfo | None: ...

    async def get_names(self, user_ids: Iterable[UUID]) -> dict[UUID, str]: ...


class SqlShiftDirectory:
    """Shift lookups against the ``shifts`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_shift(self, shift_id: UUID) -> ShiftInfo | None:
        shift = await self.db.scalar(select(Shift).where(Shift.id == shift_id))
        if shift is None:
            return None
        return ShiftInfo(
            id=shift.id,
            owner_id=shift.employee_id,
            date=shift.date,
            start_time=shift.start_time,
            end_time=shift.end_time,
        )


class SqlUserDirectory:
    """Profile lookups against the ``users`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_user(self, user_id: UUID) -> UserInfo | None:
        user = await self.db.scalar(select(User).where(User.id == user_id))
        if user is None:
            return None
        return UserInfo(id=user.id, name=user.name, email=user.email, role=user.role)

    async def get_names(self, user_ids: Iterable[UUID]) -> dict[UUID, str]:
        """Load display names for a set of user IDs in a single query."""
        ids = {uid for uid in user_ids if uid is not None}
        if not ids:
            return {}
        result = await self.db.execute(select(User.id, User.name).where(User.id.in_(ids)))
        return {row.id: row.name for row in result.all()}
