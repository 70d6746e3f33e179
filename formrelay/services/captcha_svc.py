"""reCAPTCHA verification client."""

from __future__ import annotations

import logging

import httpx

from ..config import settings

logger = logging.getLogger(__name__)


def _preview(token: str) -> str:
    return f"{token[:8]}..." if len(token) > 8 else "***"


async def verify_recaptcha(token: str, secret: str, remote_ip: str | None = None) -> bool:
    """Ask the provider whether ``token`` is valid.

    Transport errors, timeouts and malformed replies all count as failure.
    """
    data = {"secret": secret, "response": token}
    if remote_ip:
        data["remoteip"] = remote_ip

    try:
        async with httpx.AsyncClient(timeout=settings.recaptcha_timeout_seconds) as client:
            resp = await client.post(settings.recaptcha_verify_url, data=data)
        body = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("reCAPTCHA verification error for token %s: %s", _preview(token), exc)
        return False

    if not isinstance(body, dict) or body.get("success") is not True:
        error_codes = body.get("error-codes") if isinstance(body, dict) else None
        logger.info("reCAPTCHA rejected token %s: %s", _preview(token), error_codes)
        return False
    return True
