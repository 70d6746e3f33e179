"""FastAPI application for FormRelay."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings
from .errors import SubmissionError
from .services.spam_svc import close_spam_evaluator
from .worker import job_worker


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Auto-create tables for SQLite (local dev)
    if "sqlite" in settings.database_url:
        from .database import engine
        from .models import Base
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    job_worker.start()
    yield
    await job_worker.stop()
    await close_spam_evaluator()


app = FastAPI(title=settings.app_title, lifespan=lifespan)


@app.exception_handler(SubmissionError)
async def submission_error_handler(request: Request, exc: SubmissionError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


# Import and register routers
from .routers import forms, health, submissions  # noqa: E402

app.include_router(submissions.router)
app.include_router(forms.router)
app.include_router(health.router)
