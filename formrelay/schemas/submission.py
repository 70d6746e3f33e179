"""Pydantic models for public submissions and owner-side updates."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .form import EMAIL_RE, CamelModel

SubmissionStatus = Literal["new", "read", "responded", "spam"]


class SubmissionCreate(CamelModel):
    """Public submission body.

    Unknown top-level keys are kept (``model_extra``) so a honeypot input
    posted next to ``formData`` is still seen by the spam checks.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    form_data: dict[str, Any]
    name: str | None = Field(default=None, max_length=200)
    email: str | None = None
    honeypot: str | None = None

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not EMAIL_RE.match(value):
            raise ValueError("Invalid email")
        return value

    @property
    def extra_fields(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class SubmissionUpdate(CamelModel):
    status: SubmissionStatus | None = None
    payload: dict[str, Any] | None = None
