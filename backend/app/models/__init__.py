"""
SQLAlchemy ORM models.

All models imported here to ensure they are registered with Base.metadata.
Import order matters: base models before dependent models.
"""

from app.models.base import Base, JSONType, TimestampMixin, UUIDMixin
from app.models.user import User, UserRole
from app.models.shift import Shift
from app.models.swap_request import SwapRequest, SwapStatus
from app.models.activity_log import ActivityLog

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "UUIDMixin",
    "User",
    "UserRole",
    "Shift",
    "SwapRequest",
    "SwapStatus",
    "ActivityLog",
]
