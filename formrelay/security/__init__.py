"""Security helpers for the owner API and the public intake endpoint."""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Request

from ..config import settings


def _extract_token(request: Request) -> str:
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return request.headers.get("x-api-key", "").strip()


def require_api_key(request: Request) -> None:
    """Enforce admin key auth on owner endpoints when configured."""
    expected = settings.admin_api_key.strip()
    if not expected:
        if settings.security_fail_closed:
            raise HTTPException(status_code=503, detail="Owner API key not configured")
        return

    provided = _extract_token(request)
    if not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=401, detail="Invalid API key")


def client_ip(request: Request) -> str:
    """Submitter IP: socket peer, or first X-Forwarded-For hop when trusted."""
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
