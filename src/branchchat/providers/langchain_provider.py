"""LangChain adapter for the StreamingProvider protocol."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from branchchat.providers.base import (
    DEFAULT_MODE,
    Message,
    ProviderConnectionError,
    ProviderError,
    ProviderModelError,
    ProviderRateLimitError,
)
from branchchat.providers.content import extract_chunk_text

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from langchain_core.language_models import BaseChatModel


class LangChainStreamingProvider:
    """Streams replies from any LangChain chat model.

    The request ``mode`` selects an optional system prompt that is
    prepended to the history before it is sent.

    Attributes:
        name: Provider identifier used in logs.
    """

    def __init__(
        self,
        model: BaseChatModel,
        name: str,
        system_prompts: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize with a LangChain chat model.

        Args:
            model: Configured LangChain chat model instance.
            name: Identifier such as ``ollama/qwen3:8b``.
            system_prompts: Mode -> system prompt text.
        """
        self._model = model
        self._name = name
        self._system_prompts = dict(system_prompts or {})

    @property
    def name(self) -> str:
        return self._name

    async def stream(
        self,
        messages: list[Message],
        *,
        mode: str = DEFAULT_MODE,
    ) -> AsyncIterator[str]:
        """Stream the model's reply to *messages*.

        Raises:
            ProviderError: If the model call fails at any point.
        """
        lc_messages = self._build_messages(messages, mode)
        try:
            async for chunk in self._model.astream(lc_messages):
                text = extract_chunk_text(chunk.content)
                if text:
                    yield text
        except ProviderError:
            raise
        except httpx.ConnectError as e:
            raise ProviderConnectionError(self._name, f"Failed to connect: {e}") from e
        except httpx.TimeoutException as e:
            raise ProviderConnectionError(self._name, f"Request timed out: {e}") from e
        except Exception as e:
            status = getattr(e, "status_code", None)
            if status == 429 or type(e).__name__ == "RateLimitError":
                raise ProviderRateLimitError(self._name, f"Rate limit exceeded: {e}") from e
            if status == 404 or type(e).__name__ == "NotFoundError":
                raise ProviderModelError(self._name, f"Model unavailable: {e}") from e
            raise ProviderError(self._name, f"Streaming failed: {e}") from e

    def _build_messages(self, messages: list[Message], mode: str) -> list[Any]:
        lc_messages: list[Any] = []
        system_prompt = self._system_prompts.get(mode)
        if system_prompt:
            lc_messages.append(SystemMessage(content=system_prompt))
        lc_messages.extend(self._to_langchain_message(m) for m in messages)
        return lc_messages

    def _to_langchain_message(self, msg: Message) -> Any:
        """Convert our Message to LangChain message."""
        role = msg["role"]
        content = msg["content"]

        if role == "system":
            return SystemMessage(content=content)
        elif role == "user":
            return HumanMessage(content=content)
        elif role == "assistant":
            return AIMessage(content=content)
        else:
            raise ValueError(f"Unknown role: {role}")
