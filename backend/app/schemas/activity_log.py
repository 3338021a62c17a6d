"""
Activity log schemas.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class ActivityLogResponse(BaseModel):
    id: int
    actor_user_id: UUID | None
    actor_name: str | None = None
    action: str
    entity_type: str
    entity_id: str
    details: dict[str, Any] | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ActivityLogPage(BaseModel):
    """Response for GET /activity-logs (newest first)."""

    items: list[ActivityLogResponse]
    total: int
    page: int
    page_size: int


class ActivityLogListResponse(BaseModel):
    activities: list[ActivityLogResponse]
    total: int
