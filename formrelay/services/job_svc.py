"""Durable notification job queue backed by the notification_job table."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Iterable

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models.base import utcnow
from ..models.job import NotificationJob

logger = logging.getLogger(__name__)

RETRY = "retry"
DEAD = "dead"
DROPPED = "dropped"


def backoff_delay(attempts: int) -> timedelta:
    """Delay before the next attempt: base ** attempts seconds."""
    return timedelta(seconds=settings.job_backoff_base_seconds ** attempts)


async def enqueue_job(
    db: AsyncSession,
    kind: str,
    payload: dict,
    *,
    submission_id: uuid.UUID | None = None,
    scheduled_for: datetime | None = None,
    max_attempts: int | None = None,
    commit: bool = True,
) -> NotificationJob:
    job = NotificationJob(
        kind=kind,
        status="pending",
        payload=payload,
        submission_id=submission_id,
        scheduled_for=scheduled_for or utcnow(),
        attempts=0,
        max_attempts=max_attempts or settings.job_max_attempts,
    )
    db.add(job)
    if commit:
        await db.commit()
        await db.refresh(job)
    return job


async def get_job(db: AsyncSession, job_id: uuid.UUID) -> NotificationJob | None:
    return await db.get(NotificationJob, job_id, populate_existing=True)


async def claim_next_job(
    db: AsyncSession,
    kinds: Iterable[str] | None = None,
    now: datetime | None = None,
    exclude_kinds: Iterable[str] | None = None,
) -> NotificationJob | None:
    """Claim the oldest eligible job.

    The claim is a conditional UPDATE on ``status = 'pending'``, so two
    workers racing for the same row cannot both win it.
    """
    now = now or utcnow()
    conditions = [
        NotificationJob.status == "pending",
        NotificationJob.scheduled_for <= now,
        NotificationJob.attempts < NotificationJob.max_attempts,
    ]
    if kinds is not None:
        conditions.append(NotificationJob.kind.in_(list(kinds)))
    if exclude_kinds is not None:
        conditions.append(NotificationJob.kind.not_in(list(exclude_kinds)))

    stmt = (
        select(NotificationJob.id)
        .where(and_(*conditions))
        .order_by(NotificationJob.scheduled_for.asc(), NotificationJob.created_at.asc())
        .limit(5)
    )
    candidates = list((await db.execute(stmt)).scalars().all())

    for job_id in candidates:
        claimed = await db.execute(
            update(NotificationJob)
            .where(NotificationJob.id == job_id, NotificationJob.status == "pending")
            .values(
                status="running",
                started_at=now,
                attempts=NotificationJob.attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if claimed.rowcount == 1:
            return await get_job(db, job_id)
    return None


async def complete_job(db: AsyncSession, job: NotificationJob) -> None:
    """Successful jobs leave the queue."""
    await db.delete(job)
    await db.commit()


async def _finish_terminal(db: AsyncSession, job: NotificationJob) -> str:
    logger.error(
        "Job %s (%s) failed permanently after %s attempts: %s",
        job.id, job.kind, job.attempts, job.last_error,
    )
    if settings.job_keep_dead_letters:
        job.status = "dead"
        job.started_at = None
        await db.commit()
        return DEAD
    await db.delete(job)
    await db.commit()
    return DROPPED


async def fail_job(
    db: AsyncSession,
    job: NotificationJob,
    error: str,
    now: datetime | None = None,
) -> str:
    """Schedule a retry with backoff, or finish the job when attempts run out."""
    now = now or utcnow()
    job.last_error = error[:2000]

    if job.attempts < job.max_attempts:
        job.status = "pending"
        job.started_at = None
        job.scheduled_for = now + backoff_delay(job.attempts)
        await db.commit()
        logger.warning(
            "Job %s (%s) attempt %s/%s failed, retrying at %s: %s",
            job.id, job.kind, job.attempts, job.max_attempts, job.scheduled_for, error,
        )
        return RETRY

    return await _finish_terminal(db, job)


async def requeue_stale_jobs(db: AsyncSession, now: datetime | None = None) -> int:
    """Return abandoned running jobs to the queue.

    A job still ``running`` after the claim timeout belongs to a worker that
    died mid-attempt. It is retried if it has attempts left, else finished.
    """
    now = now or utcnow()
    cutoff = now - timedelta(seconds=settings.job_claim_timeout_seconds)
    stmt = select(NotificationJob).where(
        NotificationJob.status == "running",
        NotificationJob.started_at < cutoff,
    )
    stale = list((await db.execute(stmt)).scalars().all())
    for job in stale:
        job.last_error = job.last_error or "claim expired"
        if job.attempts < job.max_attempts:
            job.status = "pending"
            job.started_at = None
            job.scheduled_for = now
            await db.commit()
            logger.warning("Requeued stale job %s (%s)", job.id, job.kind)
        else:
            await _finish_terminal(db, job)
    return len(stale)


async def list_jobs(
    db: AsyncSession,
    status: str | None = None,
    kind: str | None = None,
    limit: int = 50,
) -> list[NotificationJob]:
    stmt = select(NotificationJob).order_by(NotificationJob.created_at.desc()).limit(limit)
    if status:
        stmt = stmt.where(NotificationJob.status == status)
    if kind:
        stmt = stmt.where(NotificationJob.kind == kind)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def retry_job(db: AsyncSession, job_id: uuid.UUID) -> NotificationJob | None:
    """Put a dead-lettered job back in the queue with a fresh attempt budget."""
    job = await get_job(db, job_id)
    if not job or job.status != "dead":
        return None
    job.status = "pending"
    job.attempts = 0
    job.scheduled_for = utcnow()
    job.started_at = None
    await db.commit()
    await db.refresh(job)
    return job
