"""Integration test configuration and fixtures.

Provides streaming providers backed by real LLM services. Tests are
automatically skipped if the required provider is not configured.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from dotenv import load_dotenv

# Load .env file at import time so provider availability checks work
load_dotenv()

if TYPE_CHECKING:
    from branchchat.providers.langchain_provider import LangChainStreamingProvider


def _ollama_available() -> bool:
    """Check if Ollama is configured and reachable."""
    host = os.getenv("OLLAMA_HOST")
    if not host:
        return False

    try:
        import httpx

        response = httpx.get(f"{host}/api/tags", timeout=5.0)
        return response.status_code == 200
    except (httpx.ConnectError, httpx.TimeoutException, httpx.HTTPError, OSError):
        return False


def _openai_available() -> bool:
    """Check if OpenAI API key is configured."""
    return bool(os.getenv("OPENAI_API_KEY"))


requires_ollama = pytest.mark.skipif(
    not _ollama_available(),
    reason="OLLAMA_HOST not set or Ollama not reachable",
)

requires_any_provider = pytest.mark.skipif(
    not (_ollama_available() or _openai_available()),
    reason="No LLM provider configured (need OLLAMA_HOST or OPENAI_API_KEY)",
)


@pytest.fixture(params=["ollama", "openai"])
def live_provider(request: pytest.FixtureRequest) -> LangChainStreamingProvider:
    """Streaming provider for each configured service.

    Tests using this fixture run once per provider that is available.
    """
    from branchchat.providers.factory import create_streaming_provider

    if request.param == "ollama":
        if not _ollama_available():
            pytest.skip("OLLAMA_HOST not set or Ollama not reachable")
        return create_streaming_provider("ollama/qwen3:8b", temperature=0.0)

    if not _openai_available():
        pytest.skip("OPENAI_API_KEY not set")
    return create_streaming_provider("openai/gpt-4o-mini", temperature=0.0)
