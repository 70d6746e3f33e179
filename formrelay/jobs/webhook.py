"""Signed webhook delivery for new submissions."""

from __future__ import annotations

import json
import logging

import httpx

from ..config import settings
from ..errors import WebhookDeliveryError
from ..models.base import utcnow
from ..security.signatures import SIGNATURE_HEADER, sign_payload

logger = logging.getLogger(__name__)

EVENT_SUBMISSION_CREATED = "submission.created"


def build_envelope(submission: dict, form: dict, timestamp: str | None = None) -> dict:
    form = {k: v for k, v in form.items() if k != "webhookSecret"}
    settings_doc = form.get("settings")
    if isinstance(settings_doc, dict) and "webhookSecret" in settings_doc:
        form["settings"] = {k: v for k, v in settings_doc.items() if k != "webhookSecret"}
    return {
        "event": EVENT_SUBMISSION_CREATED,
        "timestamp": timestamp or utcnow().isoformat(),
        "data": {"submission": submission, "form": form},
    }


def build_request(envelope: dict, secret: str | None) -> tuple[bytes, dict[str, str]]:
    """Serialize once; the signature covers exactly the bytes sent."""
    body = json.dumps(envelope, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "User-Agent": settings.webhook_user_agent,
    }
    if secret:
        headers[SIGNATURE_HEADER] = sign_payload(body, secret)
    return body, headers


async def dispatch_webhook(payload: dict) -> None:
    url = payload["url"]
    envelope = build_envelope(payload["submission"], payload["form"])
    body, headers = build_request(envelope, payload.get("secret"))

    try:
        async with httpx.AsyncClient(timeout=settings.webhook_timeout_seconds) as client:
            resp = await client.post(url, content=body, headers=headers)
    except httpx.HTTPError as exc:
        raise WebhookDeliveryError(f"Webhook to {url} failed: {exc}") from exc

    if not resp.is_success:
        raise WebhookDeliveryError(f"Webhook to {url} answered {resp.status_code}")
    logger.info("Webhook for submission %s delivered to %s", payload["submission"].get("id"), url)
