"""Chat configuration loading."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

from branchchat.providers.base import DEFAULT_MODE
from branchchat.regeneration.orchestrator import DEFAULT_RESPONSE_OFFSET

CONFIG_FILENAME = "branchchat.yaml"

# Default configuration values
DEFAULT_PROVIDER = "ollama/qwen3:8b"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_LOG_DIR = Path("logs")
DEFAULT_SYSTEM_PROMPTS: dict[str, str] = {
    DEFAULT_MODE: "You are a helpful assistant. Continue the conversation.",
}


@dataclass
class ChatConfig:
    """Configuration for a branchchat session.

    Resolution order for the provider:
    1. ``--provider`` on the command line (``provider_override``)
    2. Environment variable BRANCHCHAT_PROVIDER
    3. ``provider`` key in branchchat.yaml
    4. DEFAULT_PROVIDER

    Attributes:
        provider: Provider string (e.g., "ollama/qwen3:8b", "openai").
        temperature: Sampling temperature passed to the chat model.
        response_offset: Vertical offset for response nodes created under
            a user node.
        mode: Request mode used for generation and regeneration.
        system_prompts: Mode -> system prompt prepended to each request.
        log_dir: Directory for debug and generation logs (``--log``).
    """

    provider: str = DEFAULT_PROVIDER
    temperature: float = DEFAULT_TEMPERATURE
    response_offset: float = DEFAULT_RESPONSE_OFFSET
    mode: str = DEFAULT_MODE
    system_prompts: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SYSTEM_PROMPTS))
    log_dir: Path = DEFAULT_LOG_DIR

    def get_provider(self) -> str:
        """Effective provider string, honoring BRANCHCHAT_PROVIDER."""
        return os.getenv("BRANCHCHAT_PROVIDER") or self.provider

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatConfig:
        """Create config from dictionary.

        Unknown keys are ignored. ``system_prompts`` entries override the
        defaults per mode rather than replacing the whole mapping.
        """
        prompts = dict(DEFAULT_SYSTEM_PROMPTS)
        prompts.update({str(k): str(v) for k, v in (data.get("system_prompts") or {}).items()})

        return cls(
            provider=data.get("provider", DEFAULT_PROVIDER),
            temperature=float(data.get("temperature", DEFAULT_TEMPERATURE)),
            response_offset=float(data.get("response_offset", DEFAULT_RESPONSE_OFFSET)),
            mode=data.get("mode", DEFAULT_MODE),
            system_prompts=prompts,
            log_dir=Path(data.get("log_dir", DEFAULT_LOG_DIR)),
        )


class ConfigError(Exception):
    """Raised when configuration cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load config at {path}: {reason}")


def load_config(path: Path | None = None) -> ChatConfig:
    """Load configuration from a YAML file.

    Args:
        path: Config file or a directory containing branchchat.yaml. If None,
            the current directory is used. A missing file yields defaults.

    Returns:
        ChatConfig instance.

    Raises:
        ConfigError: If the file exists but cannot be parsed.
    """
    config_path = path if path is not None else Path()
    if config_path.is_dir():
        config_path = config_path / CONFIG_FILENAME

    if not config_path.exists():
        return ChatConfig()

    yaml = YAML(typ="safe")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            return ChatConfig()
        if not isinstance(data, dict):
            raise ConfigError(config_path, "Top level must be a mapping")

        return ChatConfig.from_dict(dict(data))
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(config_path, str(e)) from e
