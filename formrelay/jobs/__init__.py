"""Notification job kinds and their handlers."""

from __future__ import annotations

from enum import Enum
from functools import partial
from typing import Awaitable, Callable


class JobKind(str, Enum):
    NOTIFICATION_EMAIL = "send-notification-email"
    AUTO_REPLY_EMAIL = "send-auto-reply-email"
    WEBHOOK = "dispatch-webhook"


JobHandler = Callable[[dict], Awaitable[None]]


def build_job_handlers(email_sender) -> dict[str, JobHandler]:
    """Map each job kind to its handler, bound to one email transport."""
    from .emails import send_auto_reply_email, send_notification_email
    from .webhook import dispatch_webhook

    return {
        JobKind.NOTIFICATION_EMAIL.value: partial(send_notification_email, email_sender),
        JobKind.AUTO_REPLY_EMAIL.value: partial(send_auto_reply_email, email_sender),
        JobKind.WEBHOOK.value: dispatch_webhook,
    }
