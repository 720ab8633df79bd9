"""Shared fixtures for groqchat tests.

No network: controller tests drive the in-memory transports from
tests.helpers, HTTP tests use httpx.MockTransport / ASGITransport.
"""

from __future__ import annotations

import pytest

from groqchat.catalog import DEFAULT_MODELS, ModeCatalog
from groqchat.config import Settings


@pytest.fixture
def catalog() -> ModeCatalog:
    return ModeCatalog.from_mapping(DEFAULT_MODELS)


@pytest.fixture
def settings(monkeypatch) -> Settings:
    """Settings isolated from the developer's env and .env file."""
    for var in ("GROQ_API_KEY", "GROQCHAT_MODELS", "GROQCHAT_DEFAULT_MODE"):
        monkeypatch.delenv(var, raising=False)
    return Settings(
        _env_file=None,
        GROQ_API_KEY="gsk-test-key",
        api_base_url="https://api.groq.test/openai",
        relay_url="http://relay.test",
        inactivity_timeout=0.2,
    )
