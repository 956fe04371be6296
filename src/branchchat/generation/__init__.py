"""Streaming generation: drive one provider call into a chunk callback."""

from branchchat.generation.cancellation import CancellationToken
from branchchat.generation.controller import (
    GenerationController,
    GenerationError,
    GenerationResult,
)

__all__ = [
    "CancellationToken",
    "GenerationController",
    "GenerationError",
    "GenerationResult",
]
