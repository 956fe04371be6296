"""JSONL logger for generation calls.

Writes one structured entry per generation to ``generations.jsonl``.
Content is never truncated: the full history sent and the full text
received are preserved, including partial text from failed or cancelled
generations.

Only active when the CLI is run with ``--log``.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


@dataclass
class GenerationLogEntry:
    """Entry for generation call logging."""

    timestamp: str
    mode: str
    target_node_id: str

    # Request
    messages: list[dict[str, str]]

    # Response
    content: str
    chunk_count: int
    duration_seconds: float

    outcome: str = "ok"  # ok, failed, cancelled
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class GenerationLogger:
    """Logger for generation calls in JSONL format.

    Attributes:
        log_path: Path to the JSONL log file.
        enabled: Whether logging is enabled.
    """

    def __init__(self, log_dir: Path, enabled: bool = True) -> None:
        self.enabled = enabled
        self.log_path = log_dir / "generations.jsonl"
        if enabled:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, entry: GenerationLogEntry) -> None:
        """Append an entry to the JSONL log."""
        if not self.enabled:
            return

        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(entry)) + "\n")

    @staticmethod
    def create_entry(
        mode: str,
        target_node_id: str,
        messages: list[dict[str, str]],
        content: str,
        chunk_count: int,
        duration_seconds: float,
        outcome: str = "ok",
        error: str | None = None,
        **metadata: Any,
    ) -> GenerationLogEntry:
        """Create a log entry stamped with the current time."""
        return GenerationLogEntry(
            timestamp=datetime.now(UTC).isoformat(),
            mode=mode,
            target_node_id=target_node_id,
            messages=messages,
            content=content,
            chunk_count=chunk_count,
            duration_seconds=duration_seconds,
            outcome=outcome,
            error=error,
            metadata=dict(metadata),
        )

    def read_entries(self) -> list[GenerationLogEntry]:
        """Read all entries from the log file."""
        if not self.log_path.exists():
            return []

        entries = []
        with self.log_path.open(encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    entries.append(GenerationLogEntry(**json.loads(line)))
        return entries
