"""Streaming text providers built on LangChain chat models."""

from branchchat.providers.base import (
    DEFAULT_MODE,
    Message,
    ProviderConnectionError,
    ProviderError,
    ProviderModelError,
    ProviderRateLimitError,
    StreamingProvider,
)
from branchchat.providers.factory import (
    create_chat_model,
    create_streaming_provider,
    get_default_model,
    parse_provider_string,
)
from branchchat.providers.langchain_provider import LangChainStreamingProvider

__all__ = [
    "DEFAULT_MODE",
    "LangChainStreamingProvider",
    "Message",
    "ProviderConnectionError",
    "ProviderError",
    "ProviderModelError",
    "ProviderRateLimitError",
    "StreamingProvider",
    "create_chat_model",
    "create_streaming_provider",
    "get_default_model",
    "parse_provider_string",
]
