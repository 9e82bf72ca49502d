"""
SourcePoller — non-blocking access to the upstream iterator.

The driver must be able to ask "is there an item yet?" without awaiting, so
that it never sits inside its exclusive region while the source is slow.

  Sync iterable   each poll() calls next() and is READY or EXHAUSTED at once.
  Async iterable  the first poll() starts one task running __anext__() and
                  reports PENDING; when that task finishes the driver's
                  ``on_ready`` callback fires, and the next poll() collects the
                  result. At most one step is in flight at any instant.

Exceptions raised by the source surface from poll(); the driver wraps them.
``asyncio.CancelledError`` raised by the source on the polling loop is
re-raised as is.

The step task belongs to whichever loop polled first. When consumers run
on separate threads, that loop may shut down while the step is in flight
(``asyncio.run`` cancels leftover tasks on exit). The step is then lost:
the next poll from another loop raises ``SourceLostError`` once and the
source reports EXHAUSTED from then on.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterator
from enum import StrEnum
from typing import Any, Final, NoReturn

import structlog

from streamsplit.core.exceptions import SourceLostError

logger = structlog.get_logger(__name__)


class _Exhausted:
    __slots__ = ()

    def __repr__(self) -> str:
        return "EXHAUSTED"


_EXHAUSTED: Final = _Exhausted()


class SourceState(StrEnum):
    READY = "ready"
    PENDING = "pending"
    EXHAUSTED = "exhausted"


class SourcePoll:
    """Outcome of one source poll."""

    __slots__ = ("state", "item")

    def __init__(self, state: SourceState, item: Any = None) -> None:
        self.state = state
        self.item = item

    def __repr__(self) -> str:
        return f"SourcePoll(state={self.state!r}, item={self.item!r})"


_PENDING = SourcePoll(SourceState.PENDING)
_DONE = SourcePoll(SourceState.EXHAUSTED)


async def _next_item(iterator: AsyncIterator[Any]) -> Any:
    try:
        return await anext(iterator)
    except StopAsyncIteration:
        return _EXHAUSTED


def _owned_by_running_loop(step: asyncio.Task[Any]) -> bool:
    owner = step.get_loop()
    if owner.is_closed():
        return False
    try:
        return owner is asyncio.get_running_loop()
    except RuntimeError:
        return False


class SourcePoller:
    """Wraps a sync or async iterable behind a poll() interface."""

    def __init__(self, source: Any, on_ready: Callable[[], None]) -> None:
        self._on_ready = on_ready
        self._aiter: AsyncIterator[Any] | None = None
        self._iter: Iterator[Any] | None = None
        if hasattr(source, "__aiter__"):
            self._aiter = aiter(source)
        elif hasattr(source, "__iter__"):
            self._iter = iter(source)
        else:
            raise TypeError(
                f"source must be an iterable or async iterable, got {type(source).__name__}"
            )
        self._step: asyncio.Task[Any] | None = None

    @property
    def in_flight(self) -> bool:
        """True while an async step has been started and not yet collected."""
        return self._step is not None

    def poll(self) -> SourcePoll:
        if self._iter is not None:
            try:
                return SourcePoll(SourceState.READY, next(self._iter))
            except StopIteration:
                return _DONE

        if self._aiter is None:
            return _DONE
        if self._step is None:
            self._step = asyncio.get_running_loop().create_task(_next_item(self._aiter))
            self._step.add_done_callback(self._step_done)
        if not self._step.done():
            if not self._step.get_loop().is_closed():
                return _PENDING
            self._lose("loop_closed")

        step, self._step = self._step, None
        if step.cancelled() and not _owned_by_running_loop(step):
            self._lose("cancelled_by_owner_loop")
        item = step.result()
        if item is _EXHAUSTED:
            return _DONE
        return SourcePoll(SourceState.READY, item)

    def cancel(self) -> None:
        """Abandon any in-flight step. The source is not polled again."""
        step, self._step = self._step, None
        self._iter = None
        self._aiter = None
        if step is None:
            return
        if not step.done():
            if not step.get_loop().is_closed():
                step.cancel()
                logger.debug("source_step_cancelled")
        elif not step.cancelled():
            # Nobody will collect it now; retrieve so asyncio doesn't report it
            step.exception()

    def _lose(self, reason: str) -> NoReturn:
        self._step = None
        self._iter = None
        self._aiter = None
        logger.warning("source_step_lost", reason=reason)
        raise SourceLostError(
            "async source step was abandoned by the event loop running it "
            f"({reason}); the source cannot be resumed"
        )

    def _step_done(self, step: asyncio.Task[Any]) -> None:
        # A cancelled step belongs to a poller nobody is polling any more
        if step is self._step:
            self._on_ready()
