"""Durable queue model for notification side effects."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin, utcnow


class NotificationJob(Base, UUIDMixin, TimestampMixin):
    """Queue item for one side effect of one submission."""

    __tablename__ = "notification_job"

    kind: Mapped[str] = mapped_column(String(50), index=True)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", index=True
    )  # pending/running/dead
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    submission_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("submission.id", ondelete="SET NULL"), nullable=True, index=True
    )
    scheduled_for: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, nullable=True
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3)
    last_error: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<NotificationJob {self.kind} {self.status} attempts={self.attempts}>"
