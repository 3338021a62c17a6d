"""
Swap request schemas.

Request bodies for the four transitions and the read model. The read model is
a union discriminated on ``status``: each state has its own shape, so an
``Open`` swap cannot carry volunteer fields and a decided swap always carries
its manager and decision timestamp.
"""

from __future__ import annotations

import datetime as dt
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class SwapCreateRequest(BaseModel):
    """Request body for POST /swaps."""

    shift_id: UUID
    note: str | None = Field(default=None, max_length=1000)
    preferred_volunteer_name: str | None = Field(default=None, max_length=100)
    preferred_time: str | None = Field(default=None, max_length=100)


class SwapVolunteerRequest(BaseModel):
    """Request body for POST /swaps/{swap_id}/volunteer."""

    volunteer_shift_id: UUID


class SwapRejectRequest(BaseModel):
    """Request body for POST /swaps/{swap_id}/reject."""

    reason: str | None = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Read model
# ---------------------------------------------------------------------------

class _SwapBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: UUID
    shift_id: UUID
    requester_id: UUID
    requester_name: str = ""
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    note: str | None = None
    preferred_volunteer_name: str | None = None
    preferred_time: str | None = None
    created_at: dt.datetime


class _VolunteeredSwap(_SwapBase):
    volunteer_id: UUID
    volunteer_name: str | None = None
    volunteer_shift_id: UUID
    volunteer_shift_date: dt.date
    volunteer_shift_start_time: dt.time
    volunteer_shift_end_time: dt.time


class OpenSwap(_SwapBase):
    status: Literal["Open"] = "Open"


class PendingSwap(_VolunteeredSwap):
    status: Literal["Pending"] = "Pending"


class ApprovedSwap(_VolunteeredSwap):
    status: Literal["Approved"] = "Approved"
    manager_id: UUID
    manager_name: str | None = None
    approved_at: dt.datetime


class RejectedSwap(_VolunteeredSwap):
    status: Literal["Rejected"] = "Rejected"
    manager_id: UUID
    manager_name: str | None = None
    rejected_at: dt.datetime
    reason: str | None = None


SwapView = Annotated[
    Union[OpenSwap, PendingSwap, ApprovedSwap, RejectedSwap],
    Field(discriminator="status"),
]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class SwapTransitionResponse(BaseModel):
    """Result of a state-changing call.

    ``audit_logged`` is false when the transition committed but its
    activity log entry could not be written.
    """

    swap: SwapView
    audit_logged: bool
    activity_id: int | None = None


class SwapListResponse(BaseModel):
    swaps: list[SwapView]
    total: int
