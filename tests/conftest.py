"""
Pytest configuration for the onboarding service tests.

API Key Safety:
- Every test starts with generation env vars removed, so nothing reaches
  OpenAI by accident. Tests that need a "configured" generator build
  Settings with a fake key and patch llm_client._chat_model.
"""

import asyncio
import sys
from pathlib import Path

import pytest
from langchain_core.messages import AIMessage

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import llm_client  # noqa: E402
from config import Settings, get_settings  # noqa: E402

ENV_VARS = (
    "OPENAI_API_KEY",
    "OPENAI_TIMEOUT_MS",
    "SIMULATE_AI_DELAY_MS",
    "OPENAI_MODEL_PROFILE",
    "OPENAI_MODEL_RECS",
    "FREE_MODE",
    "ENV",
    "DEBUG",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_settings():
    """Settings that ignore .env files; pass env-style names to override."""
    def _make(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)
    return _make


class FakeChatModel:
    """Stands in for the bound ChatOpenAI runnable."""

    def __init__(self, responses=None, delay_s: float = 0.0, exc: Exception = None):
        self.responses = list(responses or [])
        self.delay_s = delay_s
        self.exc = exc
        self.calls = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.exc is not None:
            raise self.exc
        content = self.responses.pop(0) if len(self.responses) > 1 else (self.responses or [""])[0]
        return AIMessage(content=content)


@pytest.fixture
def fake_llm(monkeypatch):
    """
    Install a FakeChatModel behind llm_client._chat_model.

    Usage: model = fake_llm(responses=['{"..."}'])
    """
    def _install(**kwargs) -> FakeChatModel:
        model = FakeChatModel(**kwargs)
        monkeypatch.setattr(llm_client, "_chat_model", lambda *a, **kw: model)
        return model
    return _install
