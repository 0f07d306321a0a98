"""
ThemeSync Backend — Shared Test Fixtures

Provides mocked model responses, a fresh in-memory store per test and an
HTTP client bound to an app built around it. No real API requests.
"""

import json
import os
import sys
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Ensure themesync is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))


# -----------------------------------------------------------------------------
# Environment Setup (before importing themesync modules)
# -----------------------------------------------------------------------------

os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("LLM_PROVIDER", "claude")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CORS_ORIGINS", "http://localhost:3000")


# -----------------------------------------------------------------------------
# Mock Response Classes
# -----------------------------------------------------------------------------


@dataclass
class MockLLMMessage:
    """Mock message from LLM response."""
    content: str


@dataclass
class MockLLMChoice:
    """Mock choice from LLM response."""
    message: MockLLMMessage


@dataclass
class MockLLMUsage:
    """Mock usage stats from LLM response."""
    total_tokens: int = 100
    prompt_tokens: int = 50
    completion_tokens: int = 50


@dataclass
class MockLLMResponse:
    """Mock LLM completion response."""
    choices: list[MockLLMChoice]
    usage: Optional[MockLLMUsage] = None

    def __post_init__(self):
        if self.usage is None:
            self.usage = MockLLMUsage()


def create_mock_llm_response(content: str) -> MockLLMResponse:
    """Create a mock LLM response with given content."""
    return MockLLMResponse(
        choices=[MockLLMChoice(message=MockLLMMessage(content=content))]
    )


# -----------------------------------------------------------------------------
# Mock Data Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def two_themes_payload() -> dict:
    """Model output with one opportunity and one pain point."""
    return {
        "themes": [
            {
                "title": "Offline access matters",
                "description": "Field teams lose work without connectivity",
                "category": "opportunities",
                "hmwQuestions": ["How might we keep work available offline?"],
                "aiSuggestedSteps": ["Prototype an offline mode"],
                "quotes": [{"text": "I lose everything when the signal drops", "source": "Expert 1"}],
            },
            {
                "title": "Export is confusing",
                "description": "Nobody found the export button",
                "category": "pain_points",
                "hmwQuestions": ["How might we make export obvious?", "How might we skip export?"],
                "quotes": [{"text": "Where is export?", "source": "Expert 2"}],
            },
        ]
    }


@pytest.fixture
def sample_transcript_text() -> str:
    return (
        "Interviewer: How do you use the app in the field?\n"
        "Expert 1: I lose everything when the signal drops.\n"
        "Expert 2: Where is export? I never found it."
    )


# -----------------------------------------------------------------------------
# LLM Mocking Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_llm_with_response(monkeypatch):
    """
    Factory fixture to mock the model with a specific response.

    Accepts a dict (sent as JSON) or a raw string (sent verbatim).

    Usage:
        def test_example(mock_llm_with_response):
            mock = mock_llm_with_response({"themes": []})
    """
    def _create_mock(response_data):
        content = response_data if isinstance(response_data, str) else json.dumps(response_data)

        async def mock_acompletion(*args, **kwargs) -> MockLLMResponse:
            return create_mock_llm_response(content)

        mock = AsyncMock(side_effect=mock_acompletion)
        monkeypatch.setattr("litellm.acompletion", mock)
        return mock

    return _create_mock


@pytest.fixture
def mock_llm_failure(monkeypatch):
    """Mock the model call to fail."""
    async def mock_acompletion(*args, **kwargs):
        raise Exception("upstream overloaded")

    mock = AsyncMock(side_effect=mock_acompletion)
    monkeypatch.setattr("litellm.acompletion", mock)
    return mock


@pytest.fixture
def no_api_keys(monkeypatch):
    """Clear both model credentials on the settings singleton."""
    from themesync.config import settings

    monkeypatch.setattr(settings, "anthropic_api_key", "")
    monkeypatch.setattr(settings, "openai_api_key", "")


# -----------------------------------------------------------------------------
# Storage & HTTP Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def storage():
    """Fresh in-memory store with the default project seeded."""
    from themesync.storage import MemStorage

    return MemStorage()


@pytest.fixture
def app(storage):
    """FastAPI app wired to the test's store."""
    from themesync.main import create_app

    return create_app(storage=storage)


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_theme(storage):
    """
    Factory fixture: persist a theme in the default project.

    Usage:
        theme = await make_theme(title="A", position=0, hmw_questions=["q"])
    """
    from themesync.models import ThemeCreate

    async def _make(**fields):
        data = {"project_id": 1, "title": "Theme", "position": 0, **fields}
        return await storage.create_theme(ThemeCreate(**data))

    return _make


# -----------------------------------------------------------------------------
# Prompt Registry Reset Fixture
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_custom_templates():
    """Drop runtime-registered templates before and after each test."""
    from themesync import prompts

    prompts.clear_custom_templates()
    yield
    prompts.clear_custom_templates()


# -----------------------------------------------------------------------------
# Supabase Fake
# -----------------------------------------------------------------------------


class FakeSupabaseQuery:
    """Chainable stand-in for a postgrest request builder over in-memory rows."""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self.client = client
        self.table = table
        self.operation = "select"
        self.payload: Optional[dict] = None
        self.filters: list[tuple[str, str, object]] = []
        self.order_by: Optional[tuple[str, bool]] = None
        self.row_limit: Optional[int] = None

    def select(self, *columns):
        self.operation = "select"
        return self

    def insert(self, data: dict):
        self.operation, self.payload = "insert", dict(data)
        return self

    def update(self, data: dict):
        self.operation, self.payload = "update", dict(data)
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column: str, value):
        self.filters.append(("eq", column, value))
        return self

    def is_(self, column: str, value):
        self.filters.append(("is", column, value))
        return self

    def order(self, column: str, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, count: int):
        self.row_limit = count
        return self

    def _matches(self, row: dict) -> bool:
        for kind, column, value in self.filters:
            if kind == "eq" and row.get(column) != value:
                return False
            if kind == "is" and value == "null" and row.get(column) is not None:
                return False
        return True

    def execute(self):
        if self.client.error is not None:
            raise self.client.error
        self.client.calls.append(self)
        rows = self.client.tables.setdefault(self.table, [])

        if self.operation == "insert":
            self.client.next_id += 1
            row = {**self.payload, "id": self.client.next_id}
            rows.append(row)
            return SimpleNamespace(data=[dict(row)])

        matched = [row for row in rows if self._matches(row)]
        if self.operation == "update":
            for row in matched:
                row.update(self.payload)
        elif self.operation == "delete":
            self.client.tables[self.table] = [row for row in rows if row not in matched]
        else:
            if self.order_by:
                column, desc = self.order_by
                matched.sort(key=lambda r: r.get(column), reverse=desc)
            if self.row_limit is not None:
                matched = matched[: self.row_limit]
        return SimpleNamespace(data=[dict(row) for row in matched])


class FakeSupabaseClient:
    """
    Minimal supabase Client: `table(name)` returns a query builder over dict rows.

    Set `error` to make every request fail. Executed queries are kept in `calls`.
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[FakeSupabaseQuery] = []
        self.next_id = 0
        self.error: Optional[Exception] = None

    def table(self, name: str) -> FakeSupabaseQuery:
        return FakeSupabaseQuery(self, name)


@pytest.fixture
def supabase_client() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def supabase_storage(supabase_client):
    """SupabaseStorage wired to the in-memory fake client."""
    from themesync.db import SupabaseStorage

    return SupabaseStorage(client=supabase_client)
