"""Cooperative cancellation tokens.

A :class:`CancelToken` is created by the top-level caller and passed as an
explicit argument through every call boundary.  Long-running awaits are
wrapped in :func:`cancellable` so that firing the token aborts them
promptly instead of waiting for the work to finish.

Typical usage::

    token = CancelToken()
    token.cancel_after(300)          # caller-side timeout
    result = await cancellable(client.post(...), token)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Optional, TypeVar

from backforge.errors import OperationCancelled

T = TypeVar("T")


class CancelToken:
    """A one-shot cancellation signal.

    Once cancelled a token stays cancelled.  The optional *reason* is
    reported by :class:`OperationCancelled` errors raised on its behalf.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Fire the token.  Subsequent calls are ignored."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def cancel_after(self, seconds: float) -> None:
        """Fire the token after *seconds* on the running event loop."""
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(
            seconds, self.cancel, f"timed out after {seconds:g}s"
        )

    async def wait(self) -> None:
        """Suspend until the token fires."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`OperationCancelled` if the token has fired."""
        if self._event.is_set():
            raise OperationCancelled(self._reason or "Operation cancelled")


async def cancellable(awaitable: Awaitable[T], token: Optional[CancelToken]) -> T:
    """Await *awaitable*, aborting it if *token* fires first.

    The wrapped work runs as its own task.  When the token wins the race the
    task is cancelled and reaped before :class:`OperationCancelled` is
    raised, so nothing keeps running in the background.  A token that fires
    in the same tick the work completes still counts as a cancellation.
    """
    if token is None:
        return await awaitable

    if token.cancelled:
        # Close coroutine objects we will never run to avoid "never awaited" warnings.
        close = getattr(awaitable, "close", None)
        if close is not None:
            close()
        token.raise_if_cancelled()

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not work.done():
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)

    if token.cancelled:
        if not work.cancelled():
            # Mark the outcome as retrieved; it is superseded by the cancellation.
            work.exception()
        token.raise_if_cancelled()
    return work.result()
