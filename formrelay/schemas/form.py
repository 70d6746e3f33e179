"""Pydantic models for form definitions and their settings document."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9_-]{1,99}$")

FieldType = Literal[
    "text", "email", "number", "textarea", "select", "checkbox", "radio", "date", "file",
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FieldValidation(CamelModel):
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    message: str | None = None

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"Invalid pattern: {exc}") from exc
        return value


class FormField(CamelModel):
    id: str = Field(min_length=1, max_length=100)
    type: FieldType = "text"
    label: str
    placeholder: str | None = None
    required: bool = False
    options: list[str] | None = None
    validation: FieldValidation | None = None


class SpamProtectionSettings(CamelModel):
    enabled: bool = True
    honeypot: bool = True
    honeypot_field: str | None = None
    rate_limit: int | None = Field(default=10, ge=1)  # per IP
    rate_limit_per_form: int | None = Field(default=50, ge=1)
    rate_limit_window: int | None = Field(default=1, ge=1)  # minutes
    enable_recaptcha: bool = False


class FormSettings(CamelModel):
    fields: list[FormField] = Field(default_factory=list)
    allow_multiple_submissions: bool = False
    require_email_notification: bool = False
    notification_email: str | None = None
    send_auto_reply: bool = True
    webhook_url: str | None = None
    webhook_secret: str | None = None
    redirect_url: str | None = None
    spam_protection: SpamProtectionSettings = Field(default_factory=SpamProtectionSettings)

    @field_validator("fields")
    @classmethod
    def _unique_field_ids(cls, fields: list[FormField]) -> list[FormField]:
        seen: set[str] = set()
        for field in fields:
            if field.id in seen:
                raise ValueError(f"Duplicate field id: {field.id}")
            seen.add(field.id)
        return fields

    @field_validator("notification_email")
    @classmethod
    def _valid_email(cls, value: str | None) -> str | None:
        if value and not EMAIL_RE.match(value):
            raise ValueError("notificationEmail must be a valid email")
        return value or None

    @field_validator("webhook_url", "redirect_url")
    @classmethod
    def _http_url(cls, value: str | None) -> str | None:
        if value and not value.lower().startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return value or None

    def label_for(self, field_id: str) -> str:
        """Configured label for a payload key, else the capitalized key."""
        for field in self.fields:
            if field.id == field_id and field.label:
                return field.label
        return field_id[:1].upper() + field_id[1:]

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class FormCreate(CamelModel):
    owner_id: str
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    endpoint_slug: str
    is_active: bool = True
    settings: FormSettings = Field(default_factory=FormSettings)

    @field_validator("endpoint_slug")
    @classmethod
    def _slug(cls, value: str) -> str:
        value = value.strip().lower()
        if not SLUG_RE.match(value):
            raise ValueError("endpointSlug must be 2-100 chars of a-z, 0-9, '-' or '_'")
        return value


class FormUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    is_active: bool | None = None
    settings: FormSettings | None = None
