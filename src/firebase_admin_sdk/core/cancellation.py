"""Caller-owned cancellation handle for SDK operations."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, TypeVar

from ..errors import OperationCancelledError

T = TypeVar("T")


class CancellationToken:
    """Signals that an in-flight SDK operation should stop.

    A token can be shared by several operations. Once cancelled it stays
    cancelled. Operations observe it before each HTTP attempt, while an
    attempt is on the wire, and during retry backoff.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Cancel every operation observing this token."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self._message())

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``, aborting it if the token is cancelled first."""
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        raise OperationCancelledError(self._message())

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds unless cancelled earlier."""
        self.raise_if_cancelled()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except TimeoutError:
            return
        raise OperationCancelledError(self._message())

    def _message(self) -> str:
        if self._reason:
            return f"operation cancelled: {self._reason}"
        return "operation cancelled"


async def run_cancellable(awaitable: Awaitable[T], cancel: CancellationToken | None) -> T:
    """Await ``awaitable`` under an optional cancellation token."""
    if cancel is None:
        return await awaitable
    return await cancel.run(awaitable)


async def sleep_cancellable(delay: float, cancel: CancellationToken | None) -> None:
    """Sleep under an optional cancellation token."""
    if cancel is None:
        if delay > 0:
            await asyncio.sleep(delay)
        return
    await cancel.sleep(delay)
