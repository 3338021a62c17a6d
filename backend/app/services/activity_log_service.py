"""
Activity log business logic.

Append-only audit trail written by every swap transition, and the paginated
read used by manager history views and CSV export. Entries are never updated
or deleted.
"""

from __future__ import annotations

import enum
import logging
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import rollback_quietly
from app.core.exceptions import PersistenceError
from app.models.activity_log import ActivityLog
from app.schemas.activity_log import ActivityLogPage, ActivityLogResponse
from app.services.directory_service import SqlUserDirectory, UserDirectory

logger = logging.getLogger(__name__)


def _sanitize_value(value: Any) -> Any:
    """Convert to a JSON-serializable value so details never fail on INSERT."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {str(k): _sanitize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_sanitize_value(v) for v in value]
    return str(value)


def sanitize_details(details: dict[str, Any] | None) -> dict[str, Any] | None:
    if details is None:
        return None
    return {str(k): _sanitize_value(v) for k, v in details.items()}


def entry_context(
    actor_user_id: UUID | str | None,
    action: str,
    entity_type: str,
    entity_id: UUID | str,
    details: dict[str, Any] | None,
) -> dict[str, Any]:
    """The full entry as JSON-safe kwargs, enough to replay the append later."""
    return {
        "actor_user_id": str(actor_user_id) if actor_user_id else None,
        "action": action,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "details": sanitize_details(details),
    }


def _day_start(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=UTC)


def _next_day(value: date) -> datetime:
    return datetime.combine(value + timedelta(days=1), time.min, tzinfo=UTC)


class ActivityLogService:
    """Writes and reads the activity log."""

    def __init__(self, db: AsyncSession, users: UserDirectory | None = None) -> None:
        self.db = db
        self.users = users or SqlUserDirectory(db)

    # -----------------------------------------------------------------------
    # Append
    # -----------------------------------------------------------------------

    async def append(
        self,
        actor_user_id: UUID | None,
        action: str,
        entity_type: str,
        entity_id: UUID | str,
        details: dict[str, Any] | None = None,
    ) -> ActivityLog:
        """
        Append one immutable entry and commit it.

        Raises:
            PersistenceError: If the store rejects or cannot take the write.
        """
        safe_details = sanitize_details(details)
        entry = ActivityLog(
            actor_user_id=actor_user_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            details=safe_details,
        )
        try:
            self.db.add(entry)
            await self.db.flush()
            await self.db.refresh(entry)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await rollback_quietly(self.db)
            logger.error(
                "Activity log append failed: action=%s entity=%s:%s error=%s",
                action,
                entity_type,
                entity_id,
                exc,
            )
            raise PersistenceError(
                "Activity log entry could not be written",
                **entry_context(actor_user_id, action, entity_type, entity_id, safe_details),
            ) from exc
        return entry

    async def find_entry(
        self, entity_type: str, entity_id: UUID | str, action: str
    ) -> ActivityLog | None:
        """The earliest entry recording ``action`` on one entity, if any."""
        try:
            return await self.db.scalar(
                select(ActivityLog)
                .where(
                    ActivityLog.entity_type == entity_type,
                    ActivityLog.entity_id == str(entity_id),
                    ActivityLog.action == action,
                )
                .order_by(ActivityLog.id)
                .limit(1)
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("Activity log could not be read") from exc

    # -----------------------------------------------------------------------
    # Query
    # -----------------------------------------------------------------------

    async def query(
        self,
        *,
        actor_id: UUID | None = None,
        date_from: date | datetime | None = None,
        date_to: date | datetime | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> ActivityLogPage:
        """Filtered, paginated entries, newest first. ``page`` is 1-based."""
        page = max(page, 1)
        page_size = page_size or settings.ACTIVITY_LOG_PAGE_SIZE
        page_size = max(1, min(page_size, settings.ACTIVITY_LOG_MAX_PAGE_SIZE))

        stmt = self._filtered(
            actor_id=actor_id,
            date_from=date_from,
            date_to=date_to,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        try:
            count_stmt = select(func.count()).select_from(stmt.subquery())
            total = (await self.db.execute(count_stmt)).scalar_one()

            stmt = (
                stmt.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            logs = list((await self.db.execute(stmt)).scalars().all())
            items = await self._to_responses(logs)
        except SQLAlchemyError as exc:
            raise PersistenceError("Activity log could not be read") from exc

        return ActivityLogPage(items=items, total=total, page=page, page_size=page_size)

    async def export_rows(
        self,
        *,
        actor_id: UUID | None = None,
        date_from: date | datetime | None = None,
        date_to: date | datetime | None = None,
    ) -> list[ActivityLogResponse]:
        """Every matching entry, newest first, for CSV export."""
        stmt = self._filtered(actor_id=actor_id, date_from=date_from, date_to=date_to)
        stmt = stmt.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        try:
            logs = list((await self.db.execute(stmt)).scalars().all())
            return await self._to_responses(logs)
        except SQLAlchemyError as exc:
            raise PersistenceError("Activity log could not be read") from exc

    async def history(self, entity_type: str, entity_id: UUID | str) -> list[ActivityLogResponse]:
        """All entries for one entity in insertion order."""
        stmt = (
            select(ActivityLog)
            .where(
                ActivityLog.entity_type == entity_type,
                ActivityLog.entity_id == str(entity_id),
            )
            .order_by(ActivityLog.id)
        )
        try:
            logs = list((await self.db.execute(stmt)).scalars().all())
            return await self._to_responses(logs)
        except SQLAlchemyError as exc:
            raise PersistenceError("Activity log could not be read") from exc

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _filtered(
        self,
        *,
        actor_id: UUID | None = None,
        date_from: date | datetime | None = None,
        date_to: date | datetime | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
    ) -> Select[tuple[ActivityLog]]:
        stmt = select(ActivityLog)
        if actor_id is not None:
            stmt = stmt.where(ActivityLog.actor_user_id == actor_id)
        if date_from is not None:
            stmt = stmt.where(ActivityLog.created_at >= _day_start(date_from))
        if isinstance(date_to, datetime):
            stmt = stmt.where(ActivityLog.created_at <= date_to)
        elif date_to is not None:
            # A bare date covers the whole day.
            stmt = stmt.where(ActivityLog.created_at < _next_day(date_to))
        if entity_type is not None:
            stmt = stmt.where(ActivityLog.entity_type == entity_type)
        if entity_id is not None:
            stmt = stmt.where(ActivityLog.entity_id == str(entity_id))
        return stmt

    async def _to_responses(self, logs: list[ActivityLog]) -> list[ActivityLogResponse]:
        names = await self.users.get_names(log.actor_user_id for log in logs)
        return [
            ActivityLogResponse(
                id=log.id,
                actor_user_id=log.actor_user_id,
                actor_name=names.get(log.actor_user_id) if log.actor_user_id else None,
                action=log.action,
                entity_type=log.entity_type,
                entity_id=log.entity_id,
                details=log.details,
                created_at=log.created_at,
            )
            for log in logs
        ]
