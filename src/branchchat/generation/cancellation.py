"""Cooperative cancellation for in-flight generations."""

from __future__ import annotations

import asyncio


class CancellationToken:
    """One-shot flag that a superseded generation observes.

    Setting the token stops chunk delivery for every generation holding it;
    the generation resolves as cancelled and the target node keeps whatever
    text had already arrived.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation. Later calls keep the first reason."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    def __repr__(self) -> str:
        state = f"cancelled: {self._reason}" if self.cancelled else "active"
        return f"CancellationToken({state})"
