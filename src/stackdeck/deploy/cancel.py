"""Cooperative cancellation for rollouts."""

from __future__ import annotations

import asyncio

from stackdeck.lib.errors import RolloutCancelledError


class CancelToken:
    """Cancellation flag shared by the engine, the prober and the reconciler.

    ``cancel`` only records the request. Wait loops observe it between
    attempts; an external call that is already running always completes.
    Call ``cancel`` from the event loop thread (a coroutine, a callback or a
    handler installed with ``loop.add_signal_handler``).
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def cancel(self, reason: str = "Cancellation requested") -> None:
        """Request cancellation. Repeated calls keep the first reason."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise RolloutCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise RolloutCancelledError(self.reason or "Rollout cancelled")

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds, waking early on cancellation.

        Returns:
            True if the sleep was cut short by cancellation
        """
        if delay <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True
