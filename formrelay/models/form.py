"""Form and Submission models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, Uuid, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..schemas.form import FormSettings
from .base import Base, UUIDMixin, TimestampMixin, utcnow


class Form(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "form"

    owner_id: Mapped[str] = mapped_column(String(100), index=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    endpoint_slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    settings_json: Mapped[dict | None] = mapped_column(JSON, default=None)

    submissions: Mapped[list["Submission"]] = relationship(
        back_populates="form", cascade="all, delete-orphan",
        order_by="Submission.submitted_at.desc()",
    )

    @property
    def form_settings(self) -> FormSettings:
        return FormSettings.model_validate(self.settings_json or {})

    def __repr__(self) -> str:
        return f"<Form {self.endpoint_slug} active={self.is_active}>"


class Submission(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "submission"

    form_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("form.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str | None] = mapped_column(String(200), default=None)
    email: Mapped[str | None] = mapped_column(String(320), default=None)
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    status: Mapped[str] = mapped_column(String(20), default="new")  # new/read/responded/spam
    ip: Mapped[str | None] = mapped_column(String(45), default=None, index=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), default=None)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )

    form: Mapped[Form] = relationship(back_populates="submissions")

    def __repr__(self) -> str:
        return f"<Submission {self.id} status={self.status}>"
