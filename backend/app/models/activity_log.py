"""
ActivityLog ORM model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_IdType = BigInteger().with_variant(Integer(), "sqlite")


class ActivityLog(Base):
    """Append-only audit log. Rows are never updated or deleted."""

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("idx_activity_logs_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(_IdType, primary_key=True, autoincrement=True)
    # NULL actor means a system-initiated action.
    actor_user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return (
            f"<ActivityLog id={self.id} action={self.action!r} "
            f"entity={self.entity_type}:{self.entity_id}>"
        )
