"""Base protocol and types for streaming text providers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, Protocol, TypedDict, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

# Request mode used by both first generation and regeneration
DEFAULT_MODE = "generate"


class Message(TypedDict):
    """A single turn in a conversation history.

    Attributes:
        role: "user" for user input, "assistant" for model output, "system"
            for a mode prompt prepended by the provider.
        content: Turn text.
    """

    role: Literal["system", "user", "assistant"]
    content: str


@runtime_checkable
class StreamingProvider(Protocol):
    """Protocol for the external generation service.

    A provider turns one ``(mode, history)`` request into an asynchronous
    stream of text chunks, produced in the order the model emits them.
    """

    @property
    def name(self) -> str:
        """Identifier used in logs (e.g. ``ollama/qwen3:8b``)."""
        ...

    def stream(
        self,
        messages: list[Message],
        *,
        mode: str = DEFAULT_MODE,
    ) -> AsyncIterator[str]:
        """Stream the reply to *messages* chunk by chunk.

        Raises:
            ProviderError: If the request fails before or during streaming.
        """
        ...


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderConnectionError(ProviderError):
    """Raised when connection to the provider fails."""

    pass


class ProviderRateLimitError(ProviderError):
    """Raised when rate limit is exceeded."""

    pass


class ProviderModelError(ProviderError):
    """Raised when the requested model is unavailable."""

    pass
