"""
Swap request endpoints.

The four lifecycle transitions, role-filtered lists and CSV export.
"""

from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_actor, require_manager
from app.models.swap_request import SwapStatus
from app.schemas.activity_log import ActivityLogListResponse
from app.schemas.swap import (
    SwapCreateRequest,
    SwapListResponse,
    SwapRejectRequest,
    SwapTransitionResponse,
    SwapView,
    SwapVolunteerRequest,
)
from app.services.activity_log_service import ActivityLogService
from app.services.directory_service import Actor
from app.services.export_service import swap_history_csv
from app.services.swap_service import SWAP_ENTITY_TYPE, SwapService, TransitionResult
from app.workers.audit_tasks import queue_audit_replay

logger = logging.getLogger(__name__)

router = APIRouter()


def get_swap_service(db: AsyncSession = Depends(get_db)) -> SwapService:
    return SwapService(db=db)


def _transition_response(result: TransitionResult) -> SwapTransitionResponse:
    """Build the response; a failed audit write is queued for replay, not raised."""
    if result.audit_error is not None:
        try:
            queue_audit_replay(**result.audit_error.context)
        except Exception:
            logger.exception("Could not queue audit replay for swap %s", result.swap.id)
    return SwapTransitionResponse(
        swap=result.swap,
        audit_logged=result.audit_logged,
        activity_id=result.activity.id if result.activity is not None else None,
    )


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

@router.post(
    "/swaps",
    response_model=SwapTransitionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Publish one of your shifts for swapping",
)
async def create_swap(
    data: SwapCreateRequest,
    actor: Actor = Depends(get_current_actor),
    service: SwapService = Depends(get_swap_service),
) -> SwapTransitionResponse:
    result = await service.create(
        actor,
        data.shift_id,
        note=data.note,
        preferred_volunteer_name=data.preferred_volunteer_name,
        preferred_time=data.preferred_time,
    )
    return _transition_response(result)


@router.post(
    "/swaps/{swap_id}/volunteer",
    response_model=SwapTransitionResponse,
    summary="Volunteer for an open swap",
)
async def volunteer_for_swap(
    swap_id: UUID,
    data: SwapVolunteerRequest,
    actor: Actor = Depends(get_current_actor),
    service: SwapService = Depends(get_swap_service),
) -> SwapTransitionResponse:
    result = await service.volunteer(swap_id, actor, data.volunteer_shift_id)
    return _transition_response(result)


@router.post(
    "/swaps/{swap_id}/approve",
    response_model=SwapTransitionResponse,
    summary="Approve a pending swap",
)
async def approve_swap(
    swap_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: SwapService = Depends(get_swap_service),
) -> SwapTransitionResponse:
    result = await service.approve(swap_id, actor)
    return _transition_response(result)


@router.post(
    "/swaps/{swap_id}/reject",
    response_model=SwapTransitionResponse,
    summary="Reject a pending swap",
)
async def reject_swap(
    swap_id: UUID,
    data: SwapRejectRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    service: SwapService = Depends(get_swap_service),
) -> SwapTransitionResponse:
    result = await service.reject(swap_id, actor, data.reason if data else None)
    return _transition_response(result)


# ---------------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------------

@router.get(
    "/swaps",
    response_model=SwapListResponse,
    summary="Swaps visible to the caller",
)
async def list_swaps(
    actor: Actor = Depends(get_current_actor),
    service: SwapService = Depends(get_swap_service),
) -> SwapListResponse:
    swaps = await service.list_for_actor(actor)
    return SwapListResponse(swaps=swaps, total=len(swaps))


@router.get(
    "/swaps/open",
    response_model=SwapListResponse,
    summary="Open swaps from other users",
)
async def list_open_swaps(
    actor: Actor = Depends(get_current_actor),
    service: SwapService = Depends(get_swap_service),
) -> SwapListResponse:
    swaps = await service.list_open(exclude_user_id=actor.id)
    return SwapListResponse(swaps=swaps, total=len(swaps))


@router.get(
    "/swaps/pending",
    response_model=SwapListResponse,
    summary="Swaps awaiting a manager decision",
)
async def list_pending_swaps(
    _: Actor = Depends(require_manager),
    service: SwapService = Depends(get_swap_service),
) -> SwapListResponse:
    swaps = await service.list_pending()
    return SwapListResponse(swaps=swaps, total=len(swaps))


@router.get(
    "/swaps/mine",
    response_model=SwapListResponse,
    summary="Swaps you requested or volunteered for",
)
async def list_my_swaps(
    actor: Actor = Depends(get_current_actor),
    service: SwapService = Depends(get_swap_service),
) -> SwapListResponse:
    swaps = await service.list_user_history(actor.id)
    return SwapListResponse(swaps=swaps, total=len(swaps))


@router.get(
    "/swaps/all",
    response_model=SwapListResponse,
    summary="Full swap history (managers)",
)
async def list_all_swaps(
    employee_id: UUID | None = Query(default=None),
    swap_status: SwapStatus | None = Query(default=None, alias="status"),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    service: SwapService = Depends(get_swap_service),
) -> SwapListResponse:
    swaps = await service.list_all(
        actor,
        employee_id=employee_id,
        status=swap_status,
        date_from=date_from,
        date_to=date_to,
    )
    return SwapListResponse(swaps=swaps, total=len(swaps))


@router.get(
    "/swaps/export.csv",
    summary="Export swap history as CSV (managers)",
    response_class=Response,
)
async def export_swaps(
    employee_id: UUID | None = Query(default=None),
    swap_status: SwapStatus | None = Query(default=None, alias="status"),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    service: SwapService = Depends(get_swap_service),
) -> Response:
    swaps = await service.list_all(
        actor,
        employee_id=employee_id,
        status=swap_status,
        date_from=date_from,
        date_to=date_to,
    )
    filename = f"shiftswap_history_{date.today().isoformat()}.csv"
    return Response(
        content=swap_history_csv(swaps),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# Single swap
# ---------------------------------------------------------------------------

@router.get(
    "/swaps/{swap_id}",
    response_model=SwapView,
    summary="Get one swap request",
)
async def get_swap(
    swap_id: UUID,
    _: Actor = Depends(get_current_actor),
    service: SwapService = Depends(get_swap_service),
) -> SwapView:
    return await service.get(swap_id)


@router.get(
    "/swaps/{swap_id}/activity",
    response_model=ActivityLogListResponse,
    summary="Activity trail of one swap request",
)
async def get_swap_activity(
    swap_id: UUID,
    _: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ActivityLogListResponse:
    await SwapService(db=db).get(swap_id)
    entries = await ActivityLogService(db).history(SWAP_ENTITY_TYPE, swap_id)
    return ActivityLogListResponse(activities=entries, total=len(entries))
