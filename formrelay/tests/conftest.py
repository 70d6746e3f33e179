"""Async test fixtures for FormRelay tests using SQLite."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from formrelay.config import settings
from formrelay.database import get_db
from formrelay.models import Base
from formrelay.schemas.form import FormCreate
from formrelay.security.rate_limit import MemoryCounterStore, SlidingWindowRateLimiter
from formrelay.services import form_svc
from formrelay.services.email_svc import EmailOutcome
from formrelay.services.spam_svc import SpamEvaluator, get_spam_evaluator


class FakeClock:
    """Manually advanced epoch clock for rate limiter tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingEmailSender:
    name = "recording"

    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send(self, to, subject, html, *, text=None, reply_to=None) -> EmailOutcome:
        self.sent.append(
            {"to": to, "subject": subject, "html": html, "text": text, "reply_to": reply_to}
        )
        return EmailOutcome(provider=self.name, message_id=f"msg-{len(self.sent)}")


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def counter_store() -> MemoryCounterStore:
    return MemoryCounterStore()


@pytest.fixture
def rate_limiter(counter_store, clock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(counter_store, clock=clock)


@pytest.fixture
def captcha_verifier() -> AsyncMock:
    return AsyncMock(return_value=True)


@pytest.fixture
def spam_evaluator(rate_limiter, captcha_verifier) -> SpamEvaluator:
    return SpamEvaluator(rate_limiter, captcha_verifier=captcha_verifier)


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def make_form(db: AsyncSession):
    """Create a form; keyword arguments become its settings document."""

    async def _make(slug: str = "contact", *, name: str = "Contact", is_active: bool = True, **form_settings):
        data = FormCreate.model_validate({
            "ownerId": "owner-1",
            "name": name,
            "description": f"{name} form",
            "endpointSlug": slug,
            "isActive": is_active,
            "settings": form_settings,
        })
        return await form_svc.create_form(db, data)

    return _make


@pytest_asyncio.fixture
async def client(session_factory, spam_evaluator, monkeypatch: pytest.MonkeyPatch):
    """HTTPX async test client against the FormRelay app."""
    from formrelay.app import app

    # Lets tests pick the submitter IP with X-Forwarded-For.
    monkeypatch.setattr(settings, "trust_forwarded_for", True)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_spam_evaluator] = lambda: spam_evaluator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
