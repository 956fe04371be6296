"""Streaming generation controller.

Drives one request to a StreamingProvider and hands each text chunk to a
synchronous callback, in arrival order, until the stream ends, fails, or
is cancelled.

Failure policy: text already delivered is never rolled back. A failed
generation leaves its partial output in place so the user keeps it.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from branchchat.generation.cancellation import CancellationToken
from branchchat.observability.logging import get_logger
from branchchat.providers.base import DEFAULT_MODE

if TYPE_CHECKING:
    from collections.abc import Callable

    from branchchat.observability.generation_logger import GenerationLogger
    from branchchat.providers.base import Message, StreamingProvider

log = get_logger(__name__)


class GenerationError(Exception):
    """A generation call failed.

    Attributes:
        reason: Short description of the failure.
        cause: Underlying provider exception, if any.
    """

    def __init__(self, reason: str, cause: BaseException | None = None) -> None:
        self.reason = reason
        self.cause = cause
        super().__init__(reason)


@dataclass
class GenerationResult:
    """Outcome of one generation call.

    Attributes:
        text: Concatenation of every chunk delivered to the callback.
        chunk_count: Number of chunks delivered.
        duration_seconds: Wall time from request to resolution.
        cancelled: True if a cancellation token stopped the stream.
        error: Set when the generation failed.
    """

    text: str = ""
    chunk_count: int = 0
    duration_seconds: float = 0.0
    cancelled: bool = False
    error: GenerationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled

    @property
    def outcome(self) -> str:
        if self.error is not None:
            return "failed"
        if self.cancelled:
            return "cancelled"
        return "ok"


class GenerationController:
    """Runs streaming generations against one provider.

    Each ``generate`` call is independent; several may run concurrently as
    long as their callbacks write to different nodes.
    """

    def __init__(
        self,
        provider: StreamingProvider,
        generation_logger: GenerationLogger | None = None,
    ) -> None:
        self._provider = provider
        self._generation_logger = generation_logger

    @property
    def provider(self) -> StreamingProvider:
        return self._provider

    async def generate(
        self,
        history: list[Message],
        on_chunk: Callable[[str], object],
        *,
        mode: str = DEFAULT_MODE,
        cancel_token: CancellationToken | None = None,
        target_node_id: str = "",
    ) -> GenerationResult:
        """Stream one reply to *history* into *on_chunk*.

        Args:
            history: Conversation transcript to send. Empty means there is
                no context; nothing is sent and the result is a failure.
            on_chunk: Called synchronously once per chunk, in order.
            mode: Request mode forwarded to the provider.
            cancel_token: Stops chunk delivery once cancelled.
            target_node_id: Node receiving the text, for logs only.

        Returns:
            GenerationResult. Provider failures are reported through
            ``result.error`` rather than raised.
        """
        token = cancel_token or CancellationToken()
        result = GenerationResult()
        started = time.perf_counter()
        log.debug(
            "generation_started",
            provider=self._provider.name,
            mode=mode,
            target=target_node_id,
            history_len=len(history),
        )

        if not history:
            result.error = GenerationError("empty history: nothing to send")
            log.warning("generation_skipped", target=target_node_id, reason="empty_history")
            self._finish(result, started, history, mode, target_node_id)
            return result

        if token.cancelled:
            result.cancelled = True
            self._finish(result, started, history, mode, target_node_id)
            return result

        parts: list[str] = []

        async def pump() -> None:
            stream = self._provider.stream(list(history), mode=mode)
            try:
                async for chunk in stream:
                    if token.cancelled:
                        return
                    on_chunk(chunk)
                    parts.append(chunk)
                    result.chunk_count += 1
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

        pump_task = asyncio.ensure_future(pump())
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({pump_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_task.cancel()
            if not pump_task.done():
                pump_task.cancel()
            # Nothing may reach on_chunk once generate() has returned
            with contextlib.suppress(asyncio.CancelledError):
                await pump_task
            with contextlib.suppress(asyncio.CancelledError):
                await cancel_task

        result.text = "".join(parts)
        exc = None if pump_task.cancelled() else pump_task.exception()
        if token.cancelled:
            result.cancelled = True
        elif exc is not None:
            result.error = GenerationError(str(exc), cause=exc)

        self._finish(result, started, history, mode, target_node_id)
        return result

    def _finish(
        self,
        result: GenerationResult,
        started: float,
        history: list[Message],
        mode: str,
        target_node_id: str,
    ) -> None:
        result.duration_seconds = time.perf_counter() - started

        if result.error is not None:
            log.error(
                "generation_failed",
                target=target_node_id,
                error=result.error.reason,
                chunks_kept=result.chunk_count,
            )
        elif result.cancelled:
            log.info("generation_cancelled", target=target_node_id, chunks=result.chunk_count)
        else:
            log.info(
                "generation_completed",
                target=target_node_id,
                chunks=result.chunk_count,
                duration=round(result.duration_seconds, 3),
            )

        if self._generation_logger is not None:
            self._generation_logger.log(
                self._generation_logger.create_entry(
                    mode=mode,
                    target_node_id=target_node_id,
                    messages=[dict(m) for m in history],
                    content=result.text,
                    chunk_count=result.chunk_count,
                    duration_seconds=result.duration_seconds,
                    outcome=result.outcome,
                    error=result.error.reason if result.error else None,
                    provider=self._provider.name,
                )
            )
