"""Observability module: structured logging and generation call logs."""

from branchchat.observability.generation_logger import GenerationLogEntry, GenerationLogger
from branchchat.observability.logging import (
    bind_run_context,
    close_file_logging,
    configure_logging,
    get_logger,
    get_logs_dir,
)

__all__ = [
    "GenerationLogEntry",
    "GenerationLogger",
    "bind_run_context",
    "close_file_logging",
    "configure_logging",
    "get_logger",
    "get_logs_dir",
]
