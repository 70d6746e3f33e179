"""Tests for the owner forms API, API key auth and health endpoints."""

from __future__ import annotations

import uuid

import pytest

from formrelay.config import settings

FORM_BODY = {
    "ownerId": "owner-1",
    "name": "Contact",
    "description": "Get in touch",
    "endpointSlug": "Contact-Us",
    "settings": {
        "fields": [{"id": "message", "type": "textarea", "label": "Message", "required": True}],
        "allowMultipleSubmissions": True,
        "webhookUrl": "https://hooks.example.com/in",
        "webhookSecret": "whsec",
    },
}


@pytest.fixture(autouse=True)
def _open_owner_api(monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", "")
    monkeypatch.setattr(settings, "security_fail_closed", False)


async def _create(client, **overrides) -> dict:
    resp = await client.post("/api/forms", json={**FORM_BODY, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_create_form(client):
    form = await _create(client)
    assert form["endpointSlug"] == "contact-us"
    assert form["isActive"] is True
    assert form["settings"]["fields"][0]["label"] == "Message"
    assert form["settings"]["allowMultipleSubmissions"] is True
    assert form["createdAt"]


@pytest.mark.asyncio
async def test_duplicate_slug_conflict(client):
    await _create(client)
    resp = await client.post("/api/forms", json=FORM_BODY)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Endpoint slug already in use"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"endpointSlug": "no spaces"},
        {"name": ""},
        {"settings": {"webhookUrl": "ftp://example.com"}},
        {"settings": {"notificationEmail": "not-an-email"}},
        {"settings": {"fields": [{"id": "a", "label": "A"}, {"id": "a", "label": "B"}]}},
        {"settings": {"fields": [{"id": "a", "label": "A", "validation": {"pattern": "("}}]}},
    ],
)
async def test_invalid_form_rejected(client, overrides):
    resp = await client.post("/api/forms", json={**FORM_BODY, **overrides})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_list_forms_by_owner(client):
    await _create(client)
    await _create(client, ownerId="owner-2", endpointSlug="other")

    resp = await client.get("/api/forms", params={"ownerId": "owner-2"})
    assert resp.status_code == 200
    assert [f["endpointSlug"] for f in resp.json()] == ["other"]
    assert len((await client.get("/api/forms")).json()) == 2


@pytest.mark.asyncio
async def test_get_form_with_submission_count(client):
    form = await _create(client)
    await client.post(
        "/api/forms/contact-us/submit",
        json={"formData": {"message": "hi"}},
        headers={"X-Forwarded-For": "1.2.3.4"},
    )

    resp = await client.get(f"/api/forms/{form['id']}")
    assert resp.status_code == 200
    assert resp.json()["submissionCount"] == 1


@pytest.mark.asyncio
async def test_get_missing_form(client):
    resp = await client.get(f"/api/forms/{uuid.uuid4()}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_update_form_keeps_slug(client):
    form = await _create(client)
    resp = await client.patch(
        f"/api/forms/{form['id']}",
        json={"name": "Renamed", "isActive": False, "endpointSlug": "hijacked"},
    )
    assert resp.status_code == 200
    updated = resp.json()
    assert updated["name"] == "Renamed"
    assert updated["isActive"] is False
    assert updated["endpointSlug"] == "contact-us"

    submit = await client.post("/api/forms/contact-us/submit", json={"formData": {"message": "x"}})
    assert submit.status_code == 404


@pytest.mark.asyncio
async def test_list_and_update_submissions(client):
    form = await _create(client)
    ids = []
    for n in range(3):
        resp = await client.post(
            "/api/forms/contact-us/submit",
            json={"formData": {"message": f"m{n}"}},
            headers={"X-Forwarded-For": "1.2.3.4"},
        )
        ids.append(resp.json()["id"])

    page = (await client.get(f"/api/forms/{form['id']}/submissions", params={"limit": 2})).json()
    assert page["total"] == 3
    assert len(page["items"]) == 2
    assert page["offset"] == 0 and page["limit"] == 2

    resp = await client.patch(f"/api/submissions/{ids[0]}", json={"status": "read"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "read"

    page = (await client.get(
        f"/api/forms/{form['id']}/submissions", params={"status": "read"}
    )).json()
    assert page["total"] == 1
    assert page["items"][0]["id"] == ids[0]

    bad = await client.patch(f"/api/submissions/{ids[0]}", json={"status": "archived"})
    assert bad.status_code == 422


@pytest.mark.asyncio
async def test_missing_submission(client):
    resp = await client.get(f"/api/submissions/{uuid.uuid4()}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_form_removes_submissions(client):
    form = await _create(client)
    submit = await client.post(
        "/api/forms/contact-us/submit",
        json={"formData": {"message": "hi"}},
        headers={"X-Forwarded-For": "1.2.3.4"},
    )
    submission_id = submit.json()["id"]

    resp = await client.delete(f"/api/forms/{form['id']}")
    assert resp.status_code == 204
    assert resp.content == b""

    assert (await client.get(f"/api/forms/{form['id']}")).status_code == 404
    assert (await client.get(f"/api/submissions/{submission_id}")).status_code == 404
    assert (await client.delete(f"/api/forms/{form['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_delete_requires_api_key(client, monkeypatch):
    form = await _create(client)
    monkeypatch.setattr(settings, "admin_api_key", "owner-secret")
    assert (await client.delete(f"/api/forms/{form['id']}")).status_code == 401


# ---------------------------------------------------------------------------
# API key
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", "owner-secret")

    assert (await client.get("/api/forms")).status_code == 401
    wrong = await client.get("/api/forms", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid API key"

    bearer = await client.get("/api/forms", headers={"Authorization": "Bearer owner-secret"})
    assert bearer.status_code == 200
    header = await client.get("/api/forms", headers={"X-API-Key": "owner-secret"})
    assert header.status_code == 200


@pytest.mark.asyncio
async def test_fail_closed_without_key(client, monkeypatch):
    monkeypatch.setattr(settings, "security_fail_closed", True)
    resp = await client.get("/api/forms")
    assert resp.status_code == 503
    assert resp.json()["detail"] == "Owner API key not configured"


@pytest.mark.asyncio
async def test_public_submit_needs_no_key(client, make_form, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", "owner-secret")
    await make_form()
    resp = await client.post("/api/forms/contact/submit", json={"formData": {}})
    assert resp.status_code == 201


# ---------------------------------------------------------------------------
# Public form lookup
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_public_lookup_hides_owner_settings(client, monkeypatch):
    await _create(client, settings={
        **FORM_BODY["settings"],
        "notificationEmail": "owner@example.com",
        "requireEmailNotification": True,
    })
    monkeypatch.setattr(settings, "admin_api_key", "owner-secret")

    resp = await client.get("/api/forms/slug/contact-us")
    assert resp.status_code == 200
    form = resp.json()
    assert form["name"] == "Contact"
    assert form["description"] == "Get in touch"
    assert form["endpointSlug"] == "contact-us"
    assert form["settings"]["fields"][0]["id"] == "message"
    assert form["settings"]["requireEmailNotification"] is True
    for key in ("webhookUrl", "webhookSecret", "notificationEmail"):
        assert key not in form["settings"]
    assert "ownerId" not in form


@pytest.mark.asyncio
async def test_public_lookup_missing_inactive_and_malformed(client):
    form = await _create(client)
    assert (await client.get("/api/forms/slug/nope")).status_code == 404

    await client.patch(f"/api/forms/{form['id']}", json={"isActive": False})
    resp = await client.get("/api/forms/slug/contact-us")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Form not found or inactive"

    bad = await client.get("/api/forms/slug/Not_Lower")
    assert bad.status_code == 400


# ---------------------------------------------------------------------------
# API request budgets
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_owner_api_rate_limit(client, clock, monkeypatch):
    monkeypatch.setattr(settings, "api_rate_limit", 2)
    monkeypatch.setattr(settings, "api_rate_limit_window_minutes", 1)

    first = await client.get("/api/forms")
    second = await client.get("/api/forms")
    third = await client.get("/api/forms")

    assert first.status_code == 200
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert second.headers["X-RateLimit-Remaining"] == "0"
    assert third.status_code == 429
    assert third.json()["detail"] == "Too many requests"
    assert third.headers["Retry-After"] == "60"
    assert third.headers["X-RateLimit-Remaining"] == "0"

    other = await client.get("/api/forms", headers={"X-Forwarded-For": "7.7.7.7"})
    assert other.status_code == 200

    clock.advance(61)
    assert (await client.get("/api/forms")).status_code == 200


@pytest.mark.asyncio
async def test_owner_api_rate_limit_off(client, monkeypatch):
    monkeypatch.setattr(settings, "api_rate_limit", 0)
    resp = await client.get("/api/forms")
    assert resp.status_code == 200
    assert "X-RateLimit-Limit" not in resp.headers


@pytest.mark.asyncio
async def test_public_lookup_rate_limit_is_separate(client, monkeypatch):
    await _create(client)
    monkeypatch.setattr(settings, "public_api_rate_limit", 1)

    assert (await client.get("/api/forms/slug/contact-us")).status_code == 200
    assert (await client.get("/api/forms/slug/contact-us")).status_code == 429
    assert (await client.get("/api/forms")).status_code == 200


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "service": "formrelay"}


@pytest.mark.asyncio
async def test_ready(client):
    resp = await client.get("/ready")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ready"
    assert resp.json()["worker"] is False
    assert resp.json()["environment"] == settings.environment
