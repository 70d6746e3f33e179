"""Submission intake pipeline and owner-side submission queries."""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import DuplicateSubmission, FormInactive, FormNotFound, SpamRejected
from ..models.base import utcnow
from ..models.form import Form, Submission
from ..schemas.submission import SubmissionCreate
from . import form_svc, notification_svc
from .spam_svc import CAPTCHA_TOKEN_KEYS, SpamEvaluator, build_spam_config
from .validation import is_empty, validate_form_data

logger = logging.getLogger(__name__)


def _spam_payload(data: SubmissionCreate, honeypot_field: str | None) -> dict[str, Any]:
    """Values the spam checks look at: formData over top-level extras."""
    payload = {**data.extra_fields, **data.form_data}
    if honeypot_field and is_empty(payload.get(honeypot_field)) and data.honeypot:
        payload[honeypot_field] = data.honeypot
    return payload


def _stored_payload(form_data: dict[str, Any], honeypot_field: str | None) -> dict[str, Any]:
    dropped = set(CAPTCHA_TOKEN_KEYS)
    if honeypot_field:
        dropped.add(honeypot_field)
    return {k: v for k, v in form_data.items() if k not in dropped}


async def has_recent_submission(
    db: AsyncSession,
    ip: str,
    within_minutes: int,
    form_id: uuid.UUID | None = None,
) -> bool:
    since = utcnow() - timedelta(minutes=within_minutes)
    stmt = select(Submission.id).where(Submission.ip == ip, Submission.submitted_at >= since)
    if form_id is not None:
        stmt = stmt.where(Submission.form_id == form_id)
    result = await db.execute(stmt.limit(1))
    return result.first() is not None


async def submit_to_form(
    db: AsyncSession,
    slug: str,
    data: SubmissionCreate,
    ip: str,
    user_agent: str | None,
    spam_evaluator: SpamEvaluator,
) -> Submission:
    form = await form_svc.get_form_by_slug(db, slug)
    if not form:
        raise FormNotFound()
    if not form.is_active:
        raise FormInactive()

    form_settings = form.form_settings
    validate_form_data(form_settings.fields, data.form_data)

    spam_config = build_spam_config(form_settings)
    if form_settings.spam_protection.enabled:
        result = await spam_evaluator.evaluate(
            _spam_payload(data, spam_config.honeypot_field), ip, str(form.id), spam_config
        )
        if not result.valid:
            raise SpamRejected(result)

    if not form_settings.allow_multiple_submissions:
        scope = form.id if settings.duplicate_check_per_form else None
        if await has_recent_submission(db, ip, settings.duplicate_window_minutes, form_id=scope):
            logger.info("Duplicate submission from %s to form %s rejected", ip, form.endpoint_slug)
            raise DuplicateSubmission()

    submission = Submission(
        form_id=form.id,
        name=data.name,
        email=data.email,
        payload=_stored_payload(data.form_data, spam_config.honeypot_field),
        status="new",
        ip=ip,
        user_agent=user_agent,
        submitted_at=utcnow(),
    )
    db.add(submission)
    await db.commit()
    await db.refresh(submission)
    # Detached, so a rollback below cannot expire the committed row.
    db.expunge(submission)

    try:
        await notification_svc.schedule_submission_jobs(db, form, submission)
    except Exception:
        logger.exception("Failed to schedule notifications for submission %s", submission.id)
        try:
            await db.rollback()
        except Exception:
            logger.exception(
                "Rollback failed after scheduling error for submission %s", submission.id
            )

    return submission


async def get_submission(db: AsyncSession, submission_id: uuid.UUID) -> Submission | None:
    return await db.get(Submission, submission_id)


async def list_submissions(
    db: AsyncSession,
    form_id: uuid.UUID,
    *,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[Submission], int]:
    base = select(Submission).where(Submission.form_id == form_id)
    if status:
        base = base.where(Submission.status == status)

    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    stmt = base.order_by(Submission.submitted_at.desc()).offset(offset).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def update_submission(
    db: AsyncSession,
    submission_id: uuid.UUID,
    *,
    status: str | None = None,
    payload: dict | None = None,
) -> Submission | None:
    submission = await get_submission(db, submission_id)
    if not submission:
        return None
    if status is not None:
        submission.status = status
    if payload is not None:
        submission.payload = payload
    await db.commit()
    await db.refresh(submission)
    return submission


async def count_form_submissions(db: AsyncSession, form: Form) -> int:
    result = await db.execute(
        select(func.count(Submission.id)).where(Submission.form_id == form.id)
    )
    return result.scalar_one()
