"""FastAPI dependencies for per-IP API request budgets."""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, Response

from ..config import settings
from ..services.spam_svc import SpamEvaluator, get_spam_evaluator
from . import client_ip

logger = logging.getLogger(__name__)


def request_rate_limit(scope: str, limit_setting: str, window_setting: str):
    """Build a dependency that spends one unit of ``scope``'s budget per request.

    Budgets are read from settings on every call; a limit of 0 turns the
    check off. Allowed requests get X-RateLimit-* headers, exhausted ones a
    429 with Retry-After.
    """

    async def dependency(
        request: Request,
        response: Response,
        spam_evaluator: SpamEvaluator = Depends(get_spam_evaluator),
    ) -> None:
        limit = getattr(settings, limit_setting)
        if limit <= 0:
            return
        ip = client_ip(request)
        decision = await spam_evaluator.rate_limiter.consume(
            f"api:{scope}:{ip}", limit, getattr(settings, window_setting)
        )
        if not decision.allowed:
            logger.warning("API rate limit hit for %s on %s", ip, scope)
            raise HTTPException(
                status_code=429, detail="Too many requests", headers=decision.headers()
            )
        response.headers.update(decision.headers())

    return dependency


owner_api_rate_limit = request_rate_limit(
    "owner", "api_rate_limit", "api_rate_limit_window_minutes"
)
public_api_rate_limit = request_rate_limit(
    "public", "public_api_rate_limit", "public_api_rate_limit_window_minutes"
)
