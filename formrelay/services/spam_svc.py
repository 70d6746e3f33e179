"""Layered spam checks for public submissions.

Checks run cheapest first and stop at the first failure: honeypot, per-IP
budget, per-form budget, combined IP+form budget, then reCAPTCHA.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..config import settings
from ..schemas.form import FormSettings
from ..security.rate_limit import (
    RateLimitDecision,
    SlidingWindowRateLimiter,
    create_counter_store,
)
from .captcha_svc import verify_recaptcha

logger = logging.getLogger(__name__)

CaptchaVerifier = Callable[[str, str, Optional[str]], Awaitable[bool]]

CAPTCHA_TOKEN_KEYS = ("recaptcha_token", "g-recaptcha-response")


class SpamReason:
    HONEYPOT = "honeypot"
    IP_RATE_LIMIT = "ip_rate_limit"
    FORM_RATE_LIMIT = "form_rate_limit"
    IP_FORM_RATE_LIMIT = "ip_form_rate_limit"
    CAPTCHA_MISSING = "captcha_missing"
    CAPTCHA_FAILED = "captcha_failed"


RATE_LIMIT_REASONS = frozenset(
    {SpamReason.IP_RATE_LIMIT, SpamReason.FORM_RATE_LIMIT, SpamReason.IP_FORM_RATE_LIMIT}
)

REASON_MESSAGES = {
    SpamReason.HONEYPOT: "Honeypot field filled - likely spam",
    SpamReason.IP_RATE_LIMIT: "IP rate limit exceeded",
    SpamReason.FORM_RATE_LIMIT: "Form rate limit exceeded",
    SpamReason.IP_FORM_RATE_LIMIT: "IP + Form rate limit exceeded",
    SpamReason.CAPTCHA_MISSING: "reCAPTCHA token required",
    SpamReason.CAPTCHA_FAILED: "reCAPTCHA verification failed",
}


@dataclass
class SpamConfig:
    honeypot_field: str | None = None
    enable_recaptcha: bool = False
    recaptcha_secret: str | None = None
    rate_limit_per_ip: int | None = None
    rate_limit_per_form: int | None = None
    rate_limit_window: float = 60  # minutes
    fallback_per_ip: int = 10
    fallback_per_form: int = 50
    fallback_ip_form: int = 5

    @property
    def ip_form_limit(self) -> int:
        return (
            min(
                self.rate_limit_per_ip or self.fallback_per_ip,
                self.rate_limit_per_form or self.fallback_per_form,
            )
            or self.fallback_ip_form
        )


@dataclass(frozen=True)
class SpamCheckResult:
    valid: bool
    reason: str | None = None
    code: str | None = None
    rate_limit: RateLimitDecision | None = None

    @property
    def is_rate_limited(self) -> bool:
        return self.code in RATE_LIMIT_REASONS

    @classmethod
    def ok(cls) -> SpamCheckResult:
        return cls(valid=True)

    @classmethod
    def reject(cls, code: str, rate_limit: RateLimitDecision | None = None) -> SpamCheckResult:
        return cls(valid=False, reason=REASON_MESSAGES[code], code=code, rate_limit=rate_limit)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def build_spam_config(form_settings: FormSettings, app_settings=settings) -> SpamConfig:
    """Spam config for one form, defaults filled from process settings."""
    spam = form_settings.spam_protection
    honeypot_field = None
    if spam.honeypot:
        honeypot_field = spam.honeypot_field or app_settings.default_honeypot_field
    return SpamConfig(
        honeypot_field=honeypot_field,
        enable_recaptcha=spam.enable_recaptcha,
        recaptcha_secret=app_settings.recaptcha_secret_key or None,
        rate_limit_per_ip=spam.rate_limit,
        rate_limit_per_form=spam.rate_limit_per_form,
        rate_limit_window=spam.rate_limit_window or app_settings.default_rate_limit_window_minutes,
        fallback_per_ip=app_settings.default_rate_limit_per_ip,
        fallback_per_form=app_settings.default_rate_limit_per_form,
        fallback_ip_form=app_settings.default_ip_form_limit,
    )


class SpamEvaluator:
    def __init__(
        self,
        rate_limiter: SlidingWindowRateLimiter,
        captcha_verifier: CaptchaVerifier = verify_recaptcha,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.captcha_verifier = captcha_verifier

    async def evaluate(
        self,
        payload: Mapping[str, Any],
        ip: str,
        form_id: str,
        config: SpamConfig,
    ) -> SpamCheckResult:
        if config.honeypot_field and not _is_blank(payload.get(config.honeypot_field)):
            logger.warning("Honeypot triggered for form %s from %s", form_id, ip)
            return SpamCheckResult.reject(SpamReason.HONEYPOT)

        window = config.rate_limit_window
        checks = []
        if config.rate_limit_per_ip:
            checks.append((f"ip:{ip}", config.rate_limit_per_ip, SpamReason.IP_RATE_LIMIT))
        if config.rate_limit_per_form:
            checks.append((f"form:{form_id}", config.rate_limit_per_form, SpamReason.FORM_RATE_LIMIT))
        checks.append((f"ip_form:{ip}:{form_id}", config.ip_form_limit, SpamReason.IP_FORM_RATE_LIMIT))

        for key, limit, reason in checks:
            decision = await self.rate_limiter.consume(key, limit, window)
            if not decision.allowed:
                logger.warning("Rate limit hit on %s (limit %s per %s min)", key, limit, window)
                return SpamCheckResult.reject(reason, rate_limit=decision)

        if config.enable_recaptcha and config.recaptcha_secret:
            token = next(
                (payload.get(k) for k in CAPTCHA_TOKEN_KEYS if not _is_blank(payload.get(k))),
                None,
            )
            if token is None:
                return SpamCheckResult.reject(SpamReason.CAPTCHA_MISSING)
            if not await self.captcha_verifier(str(token), config.recaptcha_secret, ip):
                logger.warning("reCAPTCHA failed for form %s from %s", form_id, ip)
                return SpamCheckResult.reject(SpamReason.CAPTCHA_FAILED)

        return SpamCheckResult.ok()

    async def rate_limit_headers(self, ip: str, form_id: str, config: SpamConfig) -> dict[str, str]:
        """X-RateLimit-* headers for the combined IP+form budget."""
        limit = config.ip_form_limit
        status = await self.rate_limiter.status(
            f"ip_form:{ip}:{form_id}", limit, config.rate_limit_window
        )
        if status is None:
            return {}
        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(status.remaining),
        }
        if status.reset_at is not None:
            headers["X-RateLimit-Reset"] = str(math.ceil(status.reset_at))
        return headers


_evaluator: SpamEvaluator | None = None


def get_spam_evaluator() -> SpamEvaluator:
    """FastAPI dependency; the counter store is built on first use."""
    global _evaluator
    if _evaluator is None:
        store = create_counter_store(settings.redis_url, prefix=settings.rate_limit_key_prefix)
        _evaluator = SpamEvaluator(SlidingWindowRateLimiter(store))
    return _evaluator


async def close_spam_evaluator() -> None:
    global _evaluator
    if _evaluator is not None:
        await _evaluator.rate_limiter.store.close()
        _evaluator = None
