"""Checks a submission's formData against the form's field schema."""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, Mapping

from ..errors import SubmissionValidationError
from ..schemas.form import EMAIL_RE, FormField


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def as_number(value: Any) -> float | None:
    """Numeric value of ``value``, or None. Booleans are not numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _fail(field: FormField, default: str) -> SubmissionValidationError:
    message = default
    if field.validation and field.validation.message:
        message = field.validation.message
    return SubmissionValidationError(message, field_id=field.id, label=field.label)


def _check_bounds(field: FormField, measure: float, noun: str) -> None:
    rules = field.validation
    if rules is None:
        return
    if rules.min is not None and measure < rules.min:
        raise _fail(field, f"Field '{field.label}' must be at least {rules.min:g}{noun}")
    if rules.max is not None and measure > rules.max:
        raise _fail(field, f"Field '{field.label}' must be at most {rules.max:g}{noun}")


def validate_field(field: FormField, value: Any) -> None:
    # An unticked checkbox posts false; for a required box that is no answer.
    if is_empty(value) or (field.type == "checkbox" and value is False):
        if field.required:
            raise _fail(field, f"Field '{field.label}' is required")
        return

    if field.type == "email":
        if not isinstance(value, str) or not EMAIL_RE.match(value.strip()):
            raise _fail(field, f"Field '{field.label}' must be a valid email")

    if field.type == "number":
        number = as_number(value)
        if number is None:
            raise _fail(field, f"Field '{field.label}' must be a number")
        _check_bounds(field, number, "")
    elif isinstance(value, str):
        _check_bounds(field, len(value), " characters")

    if field.options and field.type in ("select", "radio"):
        if str(value) not in field.options:
            raise _fail(field, f"Field '{field.label}' must be one of: {', '.join(field.options)}")

    if field.validation and field.validation.pattern and isinstance(value, str):
        if not re.fullmatch(field.validation.pattern, value):
            raise _fail(field, f"Field '{field.label}' has an invalid format")


def validate_form_data(fields: Iterable[FormField], form_data: Mapping[str, Any]) -> None:
    """Raise SubmissionValidationError for the first field that fails."""
    for field in fields:
        validate_field(field, form_data.get(field.id))
