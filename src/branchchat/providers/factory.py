"""Factory for creating streaming providers.

Uses LangChain's init_chat_model abstraction for unified chat model
instantiation. Provider-specific configuration (API keys, Ollama host and
context size) is resolved before the unified call.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from branchchat.observability.logging import get_logger
from branchchat.providers.base import ProviderError
from branchchat.providers.langchain_provider import LangChainStreamingProvider

if TYPE_CHECKING:
    from collections.abc import Mapping

    from langchain_core.language_models import BaseChatModel

log = get_logger(__name__)

# Provider default models - None means model must be explicitly specified
PROVIDER_DEFAULTS: dict[str, str | None] = {
    "ollama": None,
    "openai": "gpt-5-mini",
    "anthropic": "claude-sonnet-4-20250514",
    "google": "gemini-2.5-flash",
}

_KNOWN_PROVIDERS = frozenset(PROVIDER_DEFAULTS)

_MAX_TEMPERATURE: dict[str, float] = {
    "openai": 2.0,
    "anthropic": 1.0,
    "ollama": 2.0,
    "google": 2.0,
}

# API key environment variable per provider
_API_KEY_ENV: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
}


def get_default_model(provider_name: str) -> str | None:
    """Get default model for a provider, or None if it must be explicit."""
    return PROVIDER_DEFAULTS.get(_normalize_provider(provider_name))


def parse_provider_string(provider_string: str) -> tuple[str, str]:
    """Split ``"provider/model"`` into its parts.

    A bare provider name resolves to that provider's default model.

    Raises:
        ProviderError: If no model is given and the provider has no default.
    """
    if "/" in provider_string:
        provider, model = provider_string.split("/", 1)
        return _normalize_provider(provider), model

    provider = _normalize_provider(provider_string)
    model = get_default_model(provider)
    if model is None:
        raise ProviderError(provider, f"No default model; use '{provider}/<model>'")
    return provider, model


def create_chat_model(
    provider_name: str,
    model: str,
    **kwargs: Any,
) -> BaseChatModel:
    """Create a LangChain BaseChatModel.

    Args:
        provider_name: Provider identifier (ollama, openai, anthropic, google).
        model: Model name/identifier.
        **kwargs: Additional provider-specific options.

    Raises:
        ProviderError: If provider unavailable or misconfigured.
    """
    provider = _normalize_provider(provider_name)

    if provider not in _KNOWN_PROVIDERS:
        log.error("provider_unknown", provider=provider)
        raise ProviderError(provider, f"Unknown provider: {provider}")

    kwargs = _preprocess_provider_kwargs(provider, model, kwargs)

    try:
        chat_model = _init_chat_model_safe(_map_provider_for_init(provider), model, **kwargs)
    except ImportError as e:
        package = _get_package_for_provider(provider)
        log.error("provider_import_error", provider=provider, package=package)
        raise ProviderError(
            provider,
            f"{package} not installed. Run: pip install {package}",
        ) from e

    log.info("chat_model_created", provider=provider, model=model)
    return chat_model


def create_streaming_provider(
    provider_string: str,
    *,
    temperature: float | None = None,
    system_prompts: Mapping[str, str] | None = None,
    **kwargs: Any,
) -> LangChainStreamingProvider:
    """Create the default streaming provider from a ``provider/model`` string.

    Args:
        provider_string: e.g. ``"ollama/qwen3:8b"`` or ``"openai"``.
        temperature: Sampling temperature, clamped to the provider's range.
        system_prompts: Mode -> system prompt text.
        **kwargs: Passed through to the chat model constructor.
    """
    provider, model = parse_provider_string(provider_string)
    if temperature is not None:
        kwargs["temperature"] = _clamp_temperature(provider, temperature)
    chat_model = create_chat_model(provider, model, **kwargs)
    return LangChainStreamingProvider(
        chat_model,
        name=f"{provider}/{model}",
        system_prompts=system_prompts,
    )


def _init_chat_model_safe(provider: str, model: str, **kwargs: Any) -> BaseChatModel:
    """Call init_chat_model; ImportError means the provider package is missing."""
    from langchain.chat_models import init_chat_model

    result: BaseChatModel = init_chat_model(model=model, model_provider=provider, **kwargs)
    return result


def _preprocess_provider_kwargs(
    provider: str,
    model: str,
    kwargs: dict[str, Any],
) -> dict[str, Any]:
    """Apply provider-specific pre-processing to kwargs.

    Handles:
    - Ollama: OLLAMA_HOST env var, base_url mapping, num_ctx detection
    - OpenAI / Anthropic / Google: API key from the usual env var

    Raises:
        ProviderError: If required configuration is missing.
    """
    kwargs = dict(kwargs)

    if provider == "ollama":
        host = kwargs.pop("host", None) or os.getenv("OLLAMA_HOST")
        if not host:
            log.error("provider_config_error", provider="ollama", missing="OLLAMA_HOST")
            raise ProviderError(
                "ollama",
                "OLLAMA_HOST not configured. Set OLLAMA_HOST environment variable.",
            )
        kwargs["base_url"] = host

        if "num_ctx" not in kwargs:
            num_ctx = _query_ollama_num_ctx(host, model)
            kwargs["num_ctx"] = num_ctx if num_ctx else 32_768

    elif provider in _API_KEY_ENV:
        env_var = _API_KEY_ENV[provider]
        api_key = (
            kwargs.pop("google_api_key", None)
            or kwargs.get("api_key")
            or os.getenv(env_var)
        )
        if not api_key:
            log.error("provider_config_error", provider=provider, missing=env_var)
            raise ProviderError(provider, f"API key required. Set {env_var} environment variable.")
        kwargs["api_key"] = api_key

    return kwargs


def _clamp_temperature(provider: str, temperature: float) -> float:
    maximum = _MAX_TEMPERATURE.get(provider, 1.0)
    if temperature > maximum:
        log.warning("temperature_clamped", provider=provider, requested=temperature, used=maximum)
        return maximum
    return max(temperature, 0.0)


def _map_provider_for_init(provider: str) -> str:
    # init_chat_model expects 'google_genai' not 'google'
    if provider == "google":
        return "google_genai"
    return provider


def _get_package_for_provider(provider: str) -> str:
    packages = {
        "ollama": "langchain-ollama",
        "openai": "langchain-openai",
        "anthropic": "langchain-anthropic",
        "google": "langchain-google-genai",
    }
    return packages.get(provider, f"langchain-{provider}")


def _normalize_provider(provider_name: str) -> str:
    """Normalize provider name, resolving aliases ("gemini" -> "google")."""
    name = provider_name.lower()
    if name == "gemini":
        return "google"
    return name


def _query_ollama_num_ctx(host: str, model: str) -> int | None:
    """Query Ollama /api/show for the model's configured num_ctx.

    Returns:
        The num_ctx value, or None if the query fails or reports none.
    """
    import httpx

    try:
        with httpx.Client(timeout=10.0) as client:
            resp = client.post(f"{host}/api/show", json={"model": model})
            resp.raise_for_status()
            data = resp.json()
    except Exception as exc:
        log.warning("ollama_show_failed", model=model, error=str(exc))
        return None

    # 'parameters' is newline-separated "key  value" pairs
    for line in data.get("parameters", "").splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "num_ctx":
            try:
                return int(parts[-1])
            except ValueError:
                pass

    for key, value in data.get("model_info", {}).items():
        if key.endswith(".context_length") and isinstance(value, int):
            return value

    return None
