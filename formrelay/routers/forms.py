"""Owner JSON API for forms and their submissions."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import SlugTaken
from ..models.form import Form, Submission
from ..schemas.form import FormCreate, FormUpdate
from ..schemas.submission import SubmissionStatus, SubmissionUpdate
from ..security import require_api_key
from ..security.deps import owner_api_rate_limit
from ..services import form_svc, submission_svc
from ..services.notification_svc import to_iso

router = APIRouter(
    prefix="/api",
    tags=["forms"],
    dependencies=[Depends(require_api_key), Depends(owner_api_rate_limit)],
)


def _form_out(form: Form) -> dict:
    return {
        "id": str(form.id),
        "ownerId": form.owner_id,
        "name": form.name,
        "description": form.description,
        "endpointSlug": form.endpoint_slug,
        "isActive": form.is_active,
        "settings": form.settings_json or {},
        "createdAt": to_iso(form.created_at),
        "updatedAt": to_iso(form.updated_at),
    }


def _submission_out(submission: Submission) -> dict:
    return {
        "id": str(submission.id),
        "formId": str(submission.form_id),
        "name": submission.name,
        "email": submission.email,
        "payload": submission.payload,
        "status": submission.status,
        "ip": submission.ip,
        "userAgent": submission.user_agent,
        "submittedAt": to_iso(submission.submitted_at),
        "updatedAt": to_iso(submission.updated_at),
    }


@router.post("/forms", status_code=201)
async def create_form(data: FormCreate, db: AsyncSession = Depends(get_db)):
    try:
        form = await form_svc.create_form(db, data)
    except SlugTaken:
        raise HTTPException(status_code=409, detail="Endpoint slug already in use")
    return _form_out(form)


@router.get("/forms")
async def list_forms(
    owner_id: str | None = Query(default=None, alias="ownerId"),
    db: AsyncSession = Depends(get_db),
):
    forms = await form_svc.list_forms(db, owner_id=owner_id)
    return [_form_out(f) for f in forms]


@router.get("/forms/{form_id}")
async def get_form(form_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    form = await form_svc.get_form(db, form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    out = _form_out(form)
    out["submissionCount"] = await submission_svc.count_form_submissions(db, form)
    return out


@router.patch("/forms/{form_id}")
async def update_form(form_id: uuid.UUID, data: FormUpdate, db: AsyncSession = Depends(get_db)):
    form = await form_svc.update_form(
        db,
        form_id,
        name=data.name,
        description=data.description,
        is_active=data.is_active,
        settings=data.settings,
    )
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    return _form_out(form)


@router.delete("/forms/{form_id}", status_code=204, response_class=Response)
async def delete_form(form_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    if not await form_svc.delete_form(db, form_id):
        raise HTTPException(status_code=404, detail="Form not found")


@router.get("/forms/{form_id}/submissions")
async def list_form_submissions(
    form_id: uuid.UUID,
    status: SubmissionStatus | None = None,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    if not await form_svc.get_form(db, form_id):
        raise HTTPException(status_code=404, detail="Form not found")
    items, total = await submission_svc.list_submissions(
        db, form_id, status=status, offset=offset, limit=limit
    )
    return {
        "items": [_submission_out(s) for s in items],
        "total": total,
        "offset": offset,
        "limit": limit,
    }


@router.get("/submissions/{submission_id}")
async def get_submission(submission_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    submission = await submission_svc.get_submission(db, submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    return _submission_out(submission)


@router.patch("/submissions/{submission_id}")
async def update_submission(
    submission_id: uuid.UUID,
    data: SubmissionUpdate,
    db: AsyncSession = Depends(get_db),
):
    submission = await submission_svc.update_submission(
        db, submission_id, status=data.status, payload=data.payload
    )
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    return _submission_out(submission)
