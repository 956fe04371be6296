"""Cascading regeneration over the conversation graph."""

from branchchat.regeneration.orchestrator import (
    DEFAULT_RESPONSE_OFFSET,
    RegenerationOrchestrator,
    RegenerationReport,
    RegenerationState,
)

__all__ = [
    "DEFAULT_RESPONSE_OFFSET",
    "RegenerationOrchestrator",
    "RegenerationReport",
    "RegenerationState",
]
