"""Health and readiness checks for the FormRelay service."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..worker import job_worker

router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "formrelay"}


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {
        "status": "ready",
        "service": "formrelay",
        "environment": settings.environment,
        "worker": job_worker.running,
    }
