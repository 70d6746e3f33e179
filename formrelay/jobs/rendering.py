"""Email body rendering with Jinja2."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..config import settings
from ..schemas.form import FormSettings

_env: Environment | None = None


def get_environment() -> Environment:
    global _env
    if _env is None:
        _env = Environment(
            loader=FileSystemLoader(str(settings.templates_dir / "email")),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        _env.filters["value"] = format_value
    return _env


def format_value(value: Any) -> str:
    if value is None:
        return "N/A"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def format_timestamp(value: str | None) -> str:
    if not value:
        return "N/A"
    try:
        return datetime.fromisoformat(value).strftime("%Y-%m-%d %H:%M:%S %Z").strip()
    except ValueError:
        return value


def field_rows(submission: dict, form: dict) -> list[tuple[str, str]]:
    """(label, formatted value) for every payload key, in payload order."""
    form_settings = FormSettings.model_validate(form.get("settings") or {})
    payload = submission.get("payload") or {}
    return [(form_settings.label_for(key), format_value(value)) for key, value in payload.items()]


def render(template_name: str, **context: Any) -> str:
    return get_environment().get_template(template_name).render(**context)
