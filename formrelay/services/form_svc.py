"""Form CRUD service."""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import SlugTaken
from ..models.form import Form
from ..schemas.form import FormCreate, FormSettings


async def list_forms(db: AsyncSession, owner_id: str | None = None) -> list[Form]:
    stmt = select(Form).order_by(Form.created_at.desc())
    if owner_id:
        stmt = stmt.where(Form.owner_id == owner_id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_form(db: AsyncSession, form_id: uuid.UUID) -> Form | None:
    return await db.get(Form, form_id)


async def get_form_by_slug(db: AsyncSession, slug: str) -> Form | None:
    result = await db.execute(select(Form).where(Form.endpoint_slug == slug))
    return result.scalar_one_or_none()


async def create_form(db: AsyncSession, data: FormCreate) -> Form:
    if await get_form_by_slug(db, data.endpoint_slug):
        raise SlugTaken(data.endpoint_slug)

    form = Form(
        owner_id=data.owner_id,
        name=data.name,
        description=data.description,
        endpoint_slug=data.endpoint_slug,
        is_active=data.is_active,
        settings_json=data.settings.to_document(),
    )
    db.add(form)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise SlugTaken(data.endpoint_slug) from exc
    await db.refresh(form)
    return form


async def delete_form(db: AsyncSession, form_id: uuid.UUID) -> bool:
    """Remove a form together with its submissions. False if it does not exist."""
    form = await get_form(db, form_id)
    if not form:
        return False
    await db.delete(form)
    await db.commit()
    return True


async def update_form(
    db: AsyncSession,
    form_id: uuid.UUID,
    *,
    name: str | None = None,
    description: str | None = None,
    is_active: bool | None = None,
    settings: FormSettings | None = None,
) -> Form | None:
    """Apply owner edits. The endpoint slug is immutable and never touched."""
    form = await get_form(db, form_id)
    if not form:
        return None
    if name is not None:
        form.name = name
    if description is not None:
        form.description = description
    if is_active is not None:
        form.is_active = is_active
    if settings is not None:
        form.settings_json = settings.to_document()
    await db.commit()
    await db.refresh(form)
    return form
