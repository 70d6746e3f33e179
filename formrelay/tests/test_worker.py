"""Tests for the background job worker."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from formrelay.config import settings
from formrelay.jobs import JobKind
from formrelay.models import Base
from formrelay.services import job_svc
from formrelay.worker import JobWorker

WEBHOOK = JobKind.WEBHOOK.value


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database; every lane gets its own connection."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    await eng.dispose()


def _worker(session_factory, handlers, **cfg_updates) -> JobWorker:
    cfg_updates.setdefault("job_poll_interval_seconds", 0.01)
    return JobWorker(
        handlers=handlers,
        session_factory=session_factory,
        cfg=settings.model_copy(update=cfg_updates),
    )


async def _wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_run_once_idle_queue(session_factory):
    worker = _worker(session_factory, {WEBHOOK: AsyncMock()})
    assert await worker.run_once() is False


@pytest.mark.asyncio
async def test_run_once_completes_and_removes_job(db, session_factory):
    handler = AsyncMock()
    job = await job_svc.enqueue_job(db, WEBHOOK, {"url": "https://example.com"})
    worker = _worker(session_factory, {WEBHOOK: handler})

    assert await worker.run_once() is True
    handler.assert_awaited_once_with({"url": "https://example.com"})
    assert await job_svc.get_job(db, job.id) is None


@pytest.mark.asyncio
async def test_handler_error_schedules_retry(db, session_factory):
    handler = AsyncMock(side_effect=RuntimeError("target down"))
    job = await job_svc.enqueue_job(db, WEBHOOK, {})
    worker = _worker(session_factory, {WEBHOOK: handler})

    await worker.run_once()
    stored = await job_svc.get_job(db, job.id)
    assert stored.status == "pending"
    assert stored.attempts == 1
    assert stored.last_error == "RuntimeError: target down"


@pytest.mark.asyncio
async def test_unknown_kind_is_failed(db, session_factory):
    job = await job_svc.enqueue_job(db, "mystery", {})
    worker = _worker(session_factory, {WEBHOOK: AsyncMock()})

    assert await worker.run_once() is True
    stored = await job_svc.get_job(db, job.id)
    assert stored.status == "pending"
    assert "No handler registered" in stored.last_error


@pytest.mark.asyncio
async def test_handler_timeout_counts_as_failure(db, session_factory):
    async def slow(payload):
        await asyncio.sleep(5)

    job = await job_svc.enqueue_job(db, WEBHOOK, {})
    worker = _worker(session_factory, {WEBHOOK: slow}, job_timeout_seconds=0.05)

    await worker.run_once()
    stored = await job_svc.get_job(db, job.id)
    assert stored.status == "pending"
    assert stored.last_error.startswith("Timed out")


@pytest.mark.asyncio
async def test_worker_disabled_does_not_start(session_factory):
    worker = _worker(session_factory, {}, job_worker_enabled=False)
    worker.start()
    assert not worker.running
    worker.start(force=True)
    assert worker.running
    await worker.stop()
    assert not worker.running


@pytest.mark.asyncio
async def test_parallel_lanes_process_jobs(file_session_factory):
    handler = AsyncMock()
    async with file_session_factory() as db:
        await job_svc.enqueue_job(db, WEBHOOK, {"n": 1})
    worker = _worker(file_session_factory, {WEBHOOK: handler}, job_parallel_kinds=True)

    worker.start()
    # One lane per kind plus the lane for unknown kinds.
    assert len(worker._tasks) == len(JobKind) + 1
    await _wait_for(lambda: handler.await_count == 1)
    await worker.stop()


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_job(db, session_factory):
    started = asyncio.Event()
    finished = []

    async def slow(payload):
        started.set()
        await asyncio.sleep(0.2)
        finished.append(payload["n"])

    job = await job_svc.enqueue_job(db, WEBHOOK, {"n": 1})
    worker = _worker(session_factory, {WEBHOOK: slow}, job_parallel_kinds=False)

    worker.start()
    await asyncio.wait_for(started.wait(), timeout=2)
    await worker.stop(timeout=5)

    assert finished == [1]
    assert await job_svc.get_job(db, job.id) is None
