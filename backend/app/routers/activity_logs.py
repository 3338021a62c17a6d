"""
Activity log endpoints.

Read-only access to the audit trail for managers. There is no write route:
entries are appended only by swap transitions.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import require_manager
from app.schemas.activity_log import ActivityLogPage
from app.services.activity_log_service import ActivityLogService
from app.services.directory_service import Actor
from app.services.export_service import activity_log_csv

router = APIRouter()


def get_activity_log_service(db: AsyncSession = Depends(get_db)) -> ActivityLogService:
    return ActivityLogService(db)


@router.get(
    "/activity-logs",
    response_model=ActivityLogPage,
    summary="Query the activity log (managers)",
)
async def list_activity_logs(
    user_id: UUID | None = Query(default=None, description="Filter by acting user"),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    entity_type: str | None = Query(default=None, max_length=50),
    entity_id: str | None = Query(default=None, max_length=64),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(
        default=settings.ACTIVITY_LOG_PAGE_SIZE,
        ge=1,
        le=settings.ACTIVITY_LOG_MAX_PAGE_SIZE,
    ),
    _: Actor = Depends(require_manager),
    service: ActivityLogService = Depends(get_activity_log_service),
) -> ActivityLogPage:
    return await service.query(
        actor_id=user_id,
        date_from=date_from,
        date_to=date_to,
        entity_type=entity_type,
        entity_id=entity_id,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/activity-logs/export.csv",
    summary="Export the activity log as CSV (managers)",
    response_class=Response,
)
async def export_activity_logs(
    user_id: UUID | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    _: Actor = Depends(require_manager),
    service: ActivityLogService = Depends(get_activity_log_service),
) -> Response:
    entries = await service.export_rows(
        actor_id=user_id, date_from=date_from, date_to=date_to
    )
    filename = f"activity_logs_{date.today().isoformat()}.csv"
    return Response(
        content=activity_log_csv(entries),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
