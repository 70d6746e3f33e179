"""Error taxonomy for the submission intake path and the job runtime.

Intake errors carry a stable ``code`` and an HTTP status so the router can
render them without inspecting message text. Job errors never reach a
synchronous caller; the queue runtime logs them and applies retry policy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .services.spam_svc import SpamCheckResult


class SubmissionError(Exception):
    """Base class for terminal intake failures."""

    code = "submission_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def headers(self) -> dict[str, str] | None:
        return None

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class FormNotFound(SubmissionError):
    code = "form_not_found"
    status_code = 404

    def __init__(self, message: str = "Form not found") -> None:
        super().__init__(message)


class FormInactive(SubmissionError):
    code = "form_inactive"
    status_code = 404

    def __init__(self, message: str = "Form is not active") -> None:
        super().__init__(message)


class SubmissionValidationError(SubmissionError):
    code = "validation_error"

    def __init__(self, message: str, field_id: str | None = None, label: str | None = None) -> None:
        super().__init__(message)
        self.field_id = field_id
        self.label = label

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field_id:
            data["field"] = self.field_id
        return data


class SpamRejected(SubmissionError):
    """Honeypot, rate-limit or CAPTCHA rejection.

    Rate-limit reasons map to 429, everything else to 400.
    """

    code = "spam_rejected"

    def __init__(self, result: SpamCheckResult) -> None:
        super().__init__(result.reason or "Submission rejected")
        self.result = result
        self.reason = result.code

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return 429 if self.result.is_rate_limited else 400

    @property
    def headers(self) -> dict[str, str] | None:
        if self.result.rate_limit is None:
            return None
        return self.result.rate_limit.headers()

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class DuplicateSubmission(SubmissionError):
    code = "duplicate_submission"

    def __init__(self, message: str = "Multiple submissions not allowed") -> None:
        super().__init__(message)


class SlugTaken(Exception):
    """Raised when an endpoint slug is already used by another form."""


class JobExecutionError(Exception):
    """Raised by a job handler to request a retry."""


class EmailDeliveryError(JobExecutionError):
    """Raised when an email provider rejects or times out a message."""


class WebhookDeliveryError(JobExecutionError):
    """Raised when a webhook target answers non-2xx or is unreachable."""
