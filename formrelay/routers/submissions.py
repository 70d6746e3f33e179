"""Public endpoints: form lookup by slug and submission intake."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.form import Form
from ..schemas.form import SLUG_RE
from ..schemas.submission import SubmissionCreate
from ..security import client_ip
from ..security.deps import public_api_rate_limit
from ..services import form_svc
from ..services.notification_svc import to_iso
from ..services.spam_svc import SpamEvaluator, build_spam_config, get_spam_evaluator
from ..services.submission_svc import submit_to_form

router = APIRouter(prefix="/api", tags=["submissions"])

# Top-level keys of a form-encoded post; everything else is form data.
RESERVED_FORM_KEYS = ("name", "email", "honeypot")

# Owner-only settings never shown to the public lookup.
PRIVATE_SETTINGS_KEYS = ("notificationEmail", "webhookUrl", "webhookSecret")


def _bad_request(errors: list[dict]) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "code": "validation_error", "errors": errors},
    )


async def _read_body(request: Request) -> dict:
    content_type = request.headers.get("content-type", "").lower()
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        body: dict = {"formData": {}}
        for key in form.keys():
            values = [v for v in form.getlist(key) if isinstance(v, str)]
            if not values:
                continue
            value = values[0] if len(values) == 1 else values
            if key in RESERVED_FORM_KEYS:
                body[key] = value
            else:
                body["formData"][key] = value
        return body

    raw = await request.body()
    if not raw:
        return {}
    parsed = json.loads(raw.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("Body must be a JSON object")
    return parsed


def _public_form_out(form: Form) -> dict:
    document = {
        k: v for k, v in (form.settings_json or {}).items() if k not in PRIVATE_SETTINGS_KEYS
    }
    return {
        "name": form.name,
        "description": form.description,
        "endpointSlug": form.endpoint_slug,
        "settings": document,
    }


@router.get("/forms/slug/{endpoint_slug}", dependencies=[Depends(public_api_rate_limit)])
async def get_public_form(endpoint_slug: str, db: AsyncSession = Depends(get_db)):
    """What a frontend needs to render the form; inactive forms are hidden."""
    if not SLUG_RE.match(endpoint_slug):
        raise HTTPException(status_code=400, detail="Invalid endpoint slug format")
    form = await form_svc.get_form_by_slug(db, endpoint_slug)
    if not form or not form.is_active:
        raise HTTPException(status_code=404, detail="Form not found or inactive")
    return _public_form_out(form)


@router.post("/forms/{endpoint_slug}/submit", status_code=201)
async def submit_form(
    endpoint_slug: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    spam_evaluator: SpamEvaluator = Depends(get_spam_evaluator),
):
    try:
        body = await _read_body(request)
    except (ValueError, UnicodeDecodeError):
        return _bad_request([{"field": "body", "message": "Malformed request body"}])

    try:
        data = SubmissionCreate.model_validate(body)
    except ValidationError as exc:
        return _bad_request([
            {"field": ".".join(str(p) for p in err["loc"]) or "body", "message": err["msg"]}
            for err in exc.errors()
        ])

    ip = client_ip(request)
    submission = await submit_to_form(
        db,
        endpoint_slug,
        data,
        ip=ip,
        user_agent=request.headers.get("user-agent"),
        spam_evaluator=spam_evaluator,
    )

    headers: dict[str, str] = {}
    form = await form_svc.get_form(db, submission.form_id)
    if form and form.form_settings.spam_protection.enabled:
        config = build_spam_config(form.form_settings)
        headers = await spam_evaluator.rate_limit_headers(ip, str(form.id), config)

    return JSONResponse(
        status_code=201,
        content={
            "id": str(submission.id),
            "status": submission.status,
            "submittedAt": to_iso(submission.submitted_at),
        },
        headers=headers,
    )
