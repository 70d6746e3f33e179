"""Turns a stored submission into queued notification jobs."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from ..jobs import JobKind
from ..models.form import Form, Submission
from ..models.job import NotificationJob
from . import job_svc

logger = logging.getLogger(__name__)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def submission_snapshot(submission: Submission) -> dict:
    return {
        "id": str(submission.id),
        "formId": str(submission.form_id),
        "payload": dict(submission.payload or {}),
        "name": submission.name,
        "email": submission.email,
        "status": submission.status,
        "ip": submission.ip,
        "userAgent": submission.user_agent,
        "submittedAt": to_iso(submission.submitted_at),
        "createdAt": to_iso(submission.created_at),
        "updatedAt": to_iso(submission.updated_at),
    }


def form_snapshot(form: Form) -> dict:
    """Public view of a form; the webhook secret never leaves the database."""
    document = dict(form.settings_json or {})
    document.pop("webhookSecret", None)
    return {
        "id": str(form.id),
        "name": form.name,
        "description": form.description,
        "endpointSlug": form.endpoint_slug,
        "settings": document,
        "isActive": form.is_active,
        "createdAt": to_iso(form.created_at),
        "updatedAt": to_iso(form.updated_at),
    }


async def schedule_submission_jobs(
    db: AsyncSession, form: Form, submission: Submission
) -> list[NotificationJob]:
    """Queue owner email, auto-reply and webhook jobs as configured."""
    form_settings = form.form_settings
    snapshot = {"submission": submission_snapshot(submission), "form": form_snapshot(form)}
    planned: list[tuple[JobKind, dict]] = []

    if form_settings.require_email_notification and form_settings.notification_email:
        planned.append((JobKind.NOTIFICATION_EMAIL, {"to": form_settings.notification_email, **snapshot}))

    if submission.email and form_settings.send_auto_reply:
        planned.append((JobKind.AUTO_REPLY_EMAIL, {"to": submission.email, **snapshot}))

    if form_settings.webhook_url:
        planned.append((
            JobKind.WEBHOOK,
            {"url": form_settings.webhook_url, "secret": form_settings.webhook_secret, **snapshot},
        ))

    jobs = [
        await job_svc.enqueue_job(
            db, kind.value, payload, submission_id=submission.id, commit=False
        )
        for kind, payload in planned
    ]
    if jobs:
        await db.commit()
        logger.info(
            "Queued %s for submission %s", ", ".join(j.kind for j in jobs), submission.id
        )
    return jobs
