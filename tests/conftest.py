"""Shared fixtures: a Gemini service with a stubbed model and a fresh repository."""

from types import SimpleNamespace
from typing import List, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from multimodal_chat.api.app import app, get_gemini_service, get_repository, get_settings
from multimodal_chat.config import Settings
from multimodal_chat.repositories.memory import InMemoryRepository
from multimodal_chat.services.llm import GeminiService


class StubModel:
    """Stands in for ``genai.GenerativeModel``; records the contents it was sent."""

    def __init__(self, reply: str = "", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[list] = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.error is not None:
            raise self.error
        parts = [SimpleNamespace(text=self.reply)] if self.reply else []
        return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


@pytest.fixture
def settings() -> Settings:
    return Settings(jwt_secret="test-secret", request_timeout=1.0)


@pytest.fixture
def stub_model() -> StubModel:
    return StubModel(reply="Energy: $E=mc^2$ is famous")


@pytest.fixture
def gemini(settings, stub_model) -> GeminiService:
    service = GeminiService(settings)
    service.model = stub_model
    return service


@pytest.fixture(autouse=True)
def api_overrides(settings, gemini):
    """Route every test request through fresh state and the stubbed model."""
    repository = InMemoryRepository()
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_gemini_service] = lambda: gemini
    app.dependency_overrides[get_settings] = lambda: settings
    yield repository
    app.dependency_overrides.clear()


def make_client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
