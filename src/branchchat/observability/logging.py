"""Structured logging for branchchat.

Events go to two sinks:
- Console: rich handler on stderr, level picked by the -v count.
- File: every event as JSON lines in ``{log_dir}/debug.jsonl`` (``--log``).

Regeneration runs bind ``run_id`` and ``root`` through
:func:`bind_run_context`, so every event a run emits, including those from
its generation tasks, can be grouped back together in the JSONL file.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003 - Used at runtime for path operations
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from collections.abc import Iterator

    from structlog.typing import Processor

DEBUG_LOG_NAME = "debug.jsonl"

# Libraries whose DEBUG output drowns out the engine's own events
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "urllib3",
    "langchain",
    "langchain_core",
    "langsmith",
    "asyncio",
)

_configured = False
_file_handler: logging.FileHandler | None = None
_logs_dir: Path | None = None


class JSONLFileHandler(logging.FileHandler):
    """File handler writing one JSON object per record."""

    @staticmethod
    def to_entry(record: logging.LogRecord) -> dict[str, Any]:
        """Flatten a record, lifting structlog's event dict to top-level keys."""
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        if not isinstance(record.msg, dict):
            entry["message"] = record.getMessage()
            return entry

        fields = {k: v for k, v in record.msg.items() if k not in ("level", "timestamp")}
        entry["message"] = fields.pop("event", "")
        entry.update(fields)
        return entry

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = json.dumps(self.to_entry(record), default=str)
            if self.stream:
                self.stream.write(line + "\n")
                self.stream.flush()
        except Exception:
            self.handleError(record)


def _console_handler(verbosity: int) -> RichHandler:
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)
    return RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        markup=False,
        level=level,
    )


def _open_file_handler(log_dir: Path) -> JSONLFileHandler:
    global _file_handler, _logs_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    _logs_dir = log_dir
    _file_handler = JSONLFileHandler(str(log_dir / DEBUG_LOG_NAME), mode="a")
    _file_handler.setLevel(logging.DEBUG)
    return _file_handler


def configure_logging(
    verbosity: int = 0,
    log_to_file: bool = False,
    log_dir: Path | None = None,
) -> None:
    """Configure logging for branchchat.

    Safe to call repeatedly; a previously opened debug file is closed first.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG
        log_to_file: If True, also write every event to ``{log_dir}/debug.jsonl``.
        log_dir: Directory for file logs. Required if log_to_file=True.

    Raises:
        ValueError: If log_to_file=True but log_dir is not provided.
    """
    global _configured

    if log_to_file and log_dir is None:
        raise ValueError("log_dir is required when log_to_file=True")

    close_file_logging()

    handlers: list[logging.Handler] = [_console_handler(verbosity)]
    if log_to_file and log_dir is not None:
        handlers.append(_open_file_handler(log_dir))

    root_level = logging.DEBUG if (verbosity > 0 or log_to_file) else logging.WARNING
    logging.basicConfig(level=root_level, format="%(message)s", handlers=handlers, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a structured logger, configuring defaults on first use.

    Args:
        name: Logger name (typically __name__).
    """
    if not _configured:
        configure_logging()

    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


@contextmanager
def bind_run_context(**values: Any) -> Iterator[None]:
    """Attach *values* to every event logged inside the block.

    Context is copied into tasks started within the block, so generation
    pumps spawned by a run inherit it.
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logs_dir() -> Path | None:
    """Return the file logging directory, or None if file logging is off."""
    return _logs_dir


def close_file_logging() -> None:
    """Close the debug file handler, if one is open."""
    global _file_handler
    if _file_handler is not None:
        _file_handler.close()
        _file_handler = None
