"""Background worker for processing queued notification jobs."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from .config import FormRelaySettings, settings
from .database import async_session_factory
from .jobs import JobHandler, JobKind, build_job_handlers
from .models.job import NotificationJob
from .services.email_svc import create_email_sender
from .services.job_svc import claim_next_job, complete_job, fail_job, requeue_stale_jobs

logger = logging.getLogger(__name__)

STALE_SWEEP_INTERVAL_SECONDS = 30.0


class JobWorker:
    """Polls the job table and runs each claimed job through its handler.

    With ``job_parallel_kinds`` on, every job kind gets its own lane so a slow
    webhook target cannot hold up email delivery.
    """

    def __init__(
        self,
        handlers: dict[str, JobHandler] | None = None,
        session_factory=async_session_factory,
        cfg: FormRelaySettings = settings,
    ) -> None:
        self._handlers = handlers
        self._session_factory = session_factory
        self._cfg = cfg
        self._tasks: list[asyncio.Task] = []
        self._stop_event = asyncio.Event()
        self._last_sweep = 0.0

    @property
    def handlers(self) -> dict[str, JobHandler]:
        if self._handlers is None:
            self._handlers = build_job_handlers(create_email_sender(self._cfg))
        return self._handlers

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self, force: bool = False) -> None:
        """Start the lanes. ``force`` ignores job_worker_enabled (standalone worker)."""
        if self._tasks or not (force or self._cfg.job_worker_enabled):
            return
        self._stop_event.clear()
        known = [kind.value for kind in JobKind]
        if self._cfg.job_parallel_kinds:
            # One lane per kind, plus one that fails jobs of unknown kinds.
            lanes = [(kind, [kind], None) for kind in known]
            lanes.append(("other", None, known))
        else:
            lanes = [("all", None, None)]
        for name, kinds, exclude in lanes:
            self._tasks.append(
                asyncio.create_task(self._run_loop(kinds, exclude), name=f"job-worker-{name}")
            )
        logger.info("Job worker started with %s lane(s)", len(self._tasks))

    async def stop(self, timeout: float | None = None) -> None:
        """Stop polling, let in-flight jobs finish, then cancel stragglers."""
        if not self._tasks:
            return
        self._stop_event.set()
        timeout = self._cfg.job_shutdown_timeout_seconds if timeout is None else timeout
        _, pending = await asyncio.wait(self._tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %s job lane(s) still busy after %ss", len(pending), timeout)
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = []
        logger.info("Job worker stopped")

    async def _run_loop(
        self, kinds: Optional[list[str]], exclude: Optional[list[str]] = None
    ) -> None:
        while not self._stop_event.is_set():
            processed = False
            try:
                processed = await self.run_once(kinds, exclude)
            except asyncio.CancelledError:
                raise
            except Exception:  # pragma: no cover
                logger.exception("Job worker loop failed")

            if not processed:
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self._cfg.job_poll_interval_seconds
                    )
                except asyncio.TimeoutError:
                    pass

    async def run_once(
        self,
        kinds: Optional[list[str]] = None,
        exclude: Optional[list[str]] = None,
    ) -> bool:
        """Claim and run at most one job. Returns True if a job was run."""
        async with self._session_factory() as db:
            now = time.monotonic()
            if now - self._last_sweep >= STALE_SWEEP_INTERVAL_SECONDS:
                self._last_sweep = now
                await requeue_stale_jobs(db)

            job = await claim_next_job(db, kinds=kinds, exclude_kinds=exclude)
            if job is None:
                return False
            await self._execute(db, job)
            return True

    async def _execute(self, db, job: NotificationJob) -> None:
        handler = self.handlers.get(job.kind)
        if handler is None:
            await fail_job(db, job, f"No handler registered for job kind {job.kind!r}")
            return

        try:
            await asyncio.wait_for(handler(job.payload), timeout=self._cfg.job_timeout_seconds)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning("Job %s (%s) timed out", job.id, job.kind)
            await fail_job(db, job, f"Timed out after {self._cfg.job_timeout_seconds}s")
        except Exception as exc:
            logger.exception("Job %s (%s) failed", job.id, job.kind)
            await fail_job(db, job, f"{type(exc).__name__}: {exc}")
        else:
            job_id, kind, attempts = job.id, job.kind, job.attempts
            await complete_job(db, job)
            logger.info("Job %s (%s) completed on attempt %s", job_id, kind, attempts)


job_worker = JobWorker()
