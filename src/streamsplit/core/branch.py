"""
BranchStream — the consumer-facing half of a split.

Usage::

    evens, odds = split(numbers(), lambda n: n % 2 == 0)

    async with evens, odds:
        async for n in evens:
            ...

``poll_next(waker)`` is the raw, non-blocking pull. ``__anext__`` wraps it:
on PENDING it parks on a future that the waker resolves through
``loop.call_soon_threadsafe``, then polls again.
"""

from __future__ import annotations

import asyncio
import sys
from functools import partial
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from types import TracebackType

    from streamsplit.core.driver import PollResult, SplitDriver, Waker
    from streamsplit.core.routing.classifier import Branch

T = TypeVar("T")


def _resolve(fut: asyncio.Future[None]) -> None:
    if not fut.done():
        fut.set_result(None)


def _wake_future(loop: asyncio.AbstractEventLoop, fut: asyncio.Future[None]) -> None:
    try:
        loop.call_soon_threadsafe(_resolve, fut)
    except RuntimeError:
        pass  # consumer's loop already closed; nobody is waiting


class BranchStream(Generic[T]):
    """Async iterator over the items routed to one branch."""

    def __init__(self, driver: SplitDriver, branch: Branch) -> None:
        self._driver = driver
        self._branch = branch
        self._closed = False

    @property
    def branch(self) -> Branch:
        return self._branch

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffered(self) -> int:
        """Items already pulled from the source and waiting for this branch."""
        return self._driver.buffered(self._branch)

    def poll_next(self, waker: Waker) -> PollResult:
        """Try to take the next item without suspending."""
        return self._driver.poll_next(self._branch, waker)

    # ------------------------------------------------------------------
    # Async iteration
    # ------------------------------------------------------------------

    def __aiter__(self) -> BranchStream[T]:
        return self

    async def __anext__(self) -> T:
        loop = asyncio.get_running_loop()
        while True:
            fut: asyncio.Future[None] = loop.create_future()
            result = self._driver.poll_next(self._branch, partial(_wake_future, loop, fut))
            if result.is_ready:
                return result.item
            if result.is_ended:
                raise StopAsyncIteration
            await fut

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Drop this branch; its items are discarded from now on."""
        if self._closed:
            return
        self._closed = True
        self._driver.close(self._branch)

    async def aclose(self) -> None:
        self.close()

    async def __aenter__(self) -> BranchStream[T]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __del__(self) -> None:
        # Partially constructed instances have no driver; at interpreter
        # shutdown the logging machinery may already be gone
        if sys.is_finalizing():
            return
        if getattr(self, "_driver", None) is not None and not self._closed:
            self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<BranchStream {self._branch.value} {state} buffered={self.buffered}>"

    async def collect(self) -> list[Any]:
        """Drain the branch into a list."""
        return [item async for item in self]
