"""
Audit replay background tasks.

A swap transition commits before its activity log entry is written. When
that write fails, the API hands the entry to this worker, which retries the
append until the store takes it or the retry budget is spent. Each swap
action happens at most once per swap, so a replay that finds an entry for the
same action and entity treats it as already written.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from app.core.config import settings
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="app.workers.audit_tasks.replay_activity_log",
    bind=True,
    max_retries=settings.AUDIT_REPLAY_MAX_RETRIES,
    default_retry_delay=30,
)
def replay_activity_log(
    self,
    actor_user_id: str | None,
    action: str,
    entity_type: str,
    entity_id: str,
    details: dict[str, Any] | None,
) -> dict[str, Any]:
    """Write one missing activity log entry."""
    try:
        # Fresh loop per run; forked workers must not reuse a closed one.
        from app.core.database import async_engine
        async_engine.sync_engine.dispose()

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            entry_id = loop.run_until_complete(_append(
                actor_user_id=actor_user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details=details,
            ))
        finally:
            loop.close()
    except Exception as exc:
        logger.error(
            "replay_activity_log failed for %s %s:%s (attempt %s): %s",
            action,
            entity_type,
            entity_id,
            self.request.retries + 1,
            exc,
        )
        raise self.retry(exc=exc)

    logger.info("Replayed activity log %s for %s:%s", action, entity_type, entity_id)
    return {"status": "recorded", "activity_id": entry_id}


async def _append(
    actor_user_id: str | None,
    action: str,
    entity_type: str,
    entity_id: str,
    details: dict[str, Any] | None,
) -> int:
    import uuid

    from app.core.database import AsyncSessionLocal
    from app.services.activity_log_service import ActivityLogService

    async with AsyncSessionLocal() as session:
        service = ActivityLogService(db=session)
        existing = await service.find_entry(entity_type, entity_id, action)
        if existing is not None:
            logger.info(
                "Activity log %s for %s:%s already present as %s",
                action,
                entity_type,
                entity_id,
                existing.id,
            )
            return existing.id
        entry = await service.append(
            uuid.UUID(actor_user_id) if actor_user_id else None,
            action,
            entity_type,
            entity_id,
            details,
        )
    return entry.id


def queue_audit_replay(
    actor_user_id: str | None,
    action: str,
    entity_type: str,
    entity_id: str,
    details: dict[str, Any] | None,
) -> None:
    """
    Fire-and-forget: enqueue a replay of a failed activity log append.
    """
    replay_activity_log.delay(
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
    )
