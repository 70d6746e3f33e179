"""Owner notification and submitter auto-reply email handlers."""

from __future__ import annotations

import logging

from ..config import settings
from .rendering import field_rows, format_timestamp, render

logger = logging.getLogger(__name__)


def notification_subject(form: dict) -> str:
    return f"New submission for form: {form.get('name')}"


def auto_reply_subject(form: dict) -> str:
    return f"Thank you for your submission - {form.get('name')}"


async def send_notification_email(email_sender, payload: dict) -> None:
    submission = payload["submission"]
    form = payload["form"]
    context = {
        "form": form,
        "submission": submission,
        "rows": field_rows(submission, form),
        "submitted_at": format_timestamp(submission.get("submittedAt") or submission.get("createdAt")),
    }
    outcome = await email_sender.send(
        payload["to"],
        notification_subject(form),
        render("notification.html", **context),
        text=render("notification.txt", **context),
    )
    logger.info("Notification email for submission %s sent via %s", submission["id"], outcome.provider)


async def send_auto_reply_email(email_sender, payload: dict) -> None:
    submission = payload["submission"]
    form = payload["form"]
    context = {
        "form": form,
        "submission": submission,
        "submitted_at": format_timestamp(submission.get("submittedAt") or submission.get("createdAt")),
    }
    outcome = await email_sender.send(
        payload["to"],
        auto_reply_subject(form),
        render("auto_reply.html", **context),
        text=render("auto_reply.txt", **context),
        reply_to=settings.email_from,
    )
    logger.info("Auto-reply for submission %s sent via %s", submission["id"], outcome.provider)
