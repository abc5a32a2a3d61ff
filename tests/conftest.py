"""
Pytest configuration and shared fixtures.

Environment variables are set here before any app import so the cached
settings (and the engine built from them) use the test database.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_contact_form.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from app.config import get_settings
get_settings.cache_clear()

from app import models  # noqa: E402,F401  registers tables on Base.metadata
from app.main import app  # noqa: E402
from app.storage import Base, SessionLocal, engine  # noqa: E402
from app.text_improver import ImprovementResult, get_text_improver  # noqa: E402


VALID_MESSAGE = (
    "Здравствуйте! Приложение закрывается, когда я нажимаю кнопку оплаты. "
    "Помогите, пожалуйста."
)


class FakeTextImprover:
    """Stand-in for the Gemini adapter: returns a canned result or raises."""

    def __init__(self, improved_message="Улучшенное сообщение.", tokens_used=42, error=None):
        self.improved_message = improved_message
        self.tokens_used = tokens_used
        self.error = error
        self.calls = []

    async def improve(self, message):
        self.calls.append(message)
        if self.error is not None:
            raise self.error
        return ImprovementResult(improved_message=self.improved_message, tokens_used=self.tokens_used)


@pytest.fixture(scope="function")
def db_tables():
    """Fresh schema for each test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_tables):
    """Create test client with fresh database for each test."""
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def db_session(db_tables):
    with SessionLocal() as session:
        yield session


@pytest.fixture
def fake_improver():
    """Install a FakeTextImprover as the improve endpoint's adapter."""
    improver = FakeTextImprover()
    app.dependency_overrides[get_text_improver] = lambda: improver
    yield improver
    app.dependency_overrides.pop(get_text_improver, None)


def submit(client, name="Ann", email="ann@x.com", subject="Общий запрос", message=VALID_MESSAGE):
    """Helper to post a contact form."""
    return client.post(
        "/api/submit",
        json={"name": name, "email": email, "subject": subject, "message": message},
    )
