"""Pytest configuration and shared fixtures."""

import os
from pathlib import Path

import pytest


@pytest.fixture(autouse=True, scope="session")
def disable_langsmith_tracing() -> None:
    """Disable LangSmith tracing during test runs.

    LangChain picks this up from the environment when a real chat model is
    built. Set LANGSMITH_TEST_TRACING=true to override for debugging.
    """
    if os.environ.get("LANGSMITH_TEST_TRACING", "").lower() != "true":
        os.environ["LANGSMITH_TRACING"] = "false"


@pytest.fixture(autouse=True)
def isolated_provider_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's BRANCHCHAT_* variables out of test runs."""
    monkeypatch.delenv("BRANCHCHAT_PROVIDER", raising=False)
    monkeypatch.delenv("BRANCHCHAT_CONFIG", raising=False)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent
