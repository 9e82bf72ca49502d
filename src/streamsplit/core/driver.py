"""
SplitDriver — shared state behind both branches of a split.

One driver owns the source, the classifier, a SlotBuffer per branch, a
pending handoff cell per branch, one recorded waker per branch and the
liveness/exhaustion flags. Each branch pull runs one synchronous pass of the
state machine below inside the driver's exclusive region (S is the pulling
branch, T the other one):

    take from S's buffer ──────────────────────────────> READY
      │ empty
    source exhausted / S closed ───────────────────────> ENDED
      │
    T's handoff cell occupied (S still backpressured) ──> PENDING
      │
    poll source ── pending ────────────────────────────> PENDING
      │        ── exhausted: mark, wake T, loop
      │ item
    classify
      ├─ for S ────────────────────────────────────────> READY
      └─ for T: T closed      → discard, loop
                T has room    → push, wake T, loop
                T full        → park in T's handoff cell ──> PENDING

When T later pops from a full buffer, the parked item moves into the freed
slot and S's waker fires. Closing a branch drops its buffered and parked
items and, if that releases the sibling's backpressure, wakes the sibling.

Wakers are zero-argument callables. At most one is recorded per branch; a
new suspension overwrites the previous one and waking clears it.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from enum import StrEnum
from typing import Any

import structlog

from streamsplit.core.buffer import EMPTY, SlotBuffer
from streamsplit.core.config import SplitConfig
from streamsplit.core.exceptions import ClassifierError, HandoffError, SourceError
from streamsplit.core.routing.classifier import Branch, Classifier
from streamsplit.core.source import SourcePoller, SourceState

logger = structlog.get_logger(__name__)

Waker = Callable[[], None]


# ---------------------------------------------------------------------------
# Poll results
# ---------------------------------------------------------------------------


class PollState(StrEnum):
    READY = "ready"
    PENDING = "pending"
    ENDED = "ended"


class PollResult:
    """Outcome of one branch pull: an item, a suspension, or end of stream."""

    __slots__ = ("state", "item")

    def __init__(self, state: PollState, item: Any = None) -> None:
        self.state = state
        self.item = item

    @classmethod
    def ready(cls, item: Any) -> PollResult:
        return cls(PollState.READY, item)

    @property
    def is_ready(self) -> bool:
        return self.state is PollState.READY

    @property
    def is_pending(self) -> bool:
        return self.state is PollState.PENDING

    @property
    def is_ended(self) -> bool:
        return self.state is PollState.ENDED

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PollResult):
            return NotImplemented
        return self.state is other.state and self.item == other.item

    def __hash__(self) -> int:
        return hash(self.state)

    def __repr__(self) -> str:
        if self.state is PollState.READY:
            return f"PollResult.ready({self.item!r})"
        return f"PollResult({self.state.value})"


PENDING = PollResult(PollState.PENDING)
ENDED = PollResult(PollState.ENDED)


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


class SplitDriver:
    """
    Exclusive owner of the source and both branch buffers.

    Not used directly; ``split()`` and friends create one driver and hand out
    two BranchStream objects that reference it.
    """

    def __init__(self, source: Any, classifier: Classifier, config: SplitConfig) -> None:
        self._config = config
        self._classifier = classifier
        self._source = SourcePoller(source, self._on_source_ready)
        self._buffers = {b: SlotBuffer(config.capacity) for b in Branch}
        self._handoff: dict[Branch, Any] = {b: EMPTY for b in Branch}
        self._wakers: dict[Branch, Waker | None] = {b: None for b in Branch}
        self._closed = {b: False for b in Branch}
        self._exhausted = False
        self._discarded = 0

        # Non-reentrant; acquired without blocking by pulls and closes
        self._lock = threading.Lock()
        self._close_requests: set[Branch] = set()

        self._log = logger.bind(split=config.name) if config.name else logger

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def config(self) -> SplitConfig:
        return self._config

    @property
    def capacity(self) -> int:
        return self._config.capacity

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def discarded(self) -> int:
        """Items dropped because their branch was already closed."""
        return self._discarded

    def buffered(self, branch: Branch) -> int:
        return len(self._buffers[branch])

    def has_pending_handoff(self, branch: Branch) -> bool:
        return self._handoff[branch] is not EMPTY

    def is_closed(self, branch: Branch) -> bool:
        return self._closed[branch]

    def has_waker(self, branch: Branch) -> bool:
        return self._wakers[branch] is not None

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def poll_next(self, branch: Branch, waker: Waker) -> PollResult:
        """
        Run one pass of the state machine on behalf of *branch*.

        Never blocks. If another thread is mid-pass the caller is woken
        immediately and told to try again.
        """
        if not self._lock.acquire(blocking=False):
            waker()
            return PENDING
        try:
            return self._poll(branch, waker)
        finally:
            self._release()

    def _poll(self, branch: Branch, waker: Waker) -> PollResult:
        other = branch.other
        while True:
            item = self._take(branch)
            if item is not EMPTY:
                return PollResult.ready(item)

            if self._exhausted or self._closed[branch]:
                return ENDED

            if self._handoff[other] is not EMPTY:
                self._wakers[branch] = waker
                return PENDING

            try:
                polled = self._source.poll()
            except Exception as exc:
                self._log.warning("split_source_failed", branch=branch.value, error=repr(exc))
                raise SourceError(branch, exc) from exc

            if polled.state is SourceState.PENDING:
                self._wakers[branch] = waker
                return PENDING

            if polled.state is SourceState.EXHAUSTED:
                self._exhausted = True
                self._log.debug(
                    "split_source_exhausted",
                    branch=branch.value,
                    discarded=self._discarded,
                )
                self._wake(other)
                continue

            try:
                route = self._classifier.classify(polled.item)
            except Exception as exc:
                self._log.warning("split_classifier_failed", branch=branch.value, error=repr(exc))
                raise ClassifierError(branch, exc) from exc

            if route.branch is branch:
                return PollResult.ready(route.value)

            if self._closed[other]:
                self._discarded += 1
                continue

            if self._buffers[other].try_push(route.value):
                self._wake(other)
                continue

            self._park(other, route.value)
            self._wakers[branch] = waker
            self._log.debug("split_backpressure", branch=branch.value, target=other.value)
            return PENDING

    def _take(self, branch: Branch) -> Any:
        """Pop from *branch*'s buffer, refilling the freed slot from its handoff cell."""
        item = self._buffers[branch].pop_front()
        if item is EMPTY:
            return EMPTY
        parked = self._handoff[branch]
        if parked is not EMPTY:
            self._handoff[branch] = EMPTY
            self._buffers[branch].try_push(parked)
            self._wake(branch.other)
        return item

    def _park(self, branch: Branch, item: Any) -> None:
        if self._handoff[branch] is not EMPTY:
            raise HandoffError(f"pending handoff cell for {branch} branch is already occupied")
        self._handoff[branch] = item

    def _wake(self, branch: Branch) -> None:
        waker = self._wakers[branch]
        if waker is not None:
            self._wakers[branch] = None
            waker()

    def _on_source_ready(self) -> None:
        # Blocking on purpose: passes never await, so the wait is bounded by
        # one pass, and skipping would lose the wake-up for a parked branch
        self._lock.acquire()
        try:
            for b in Branch:
                self._wake(b)
        finally:
            self._release()

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    def close(self, branch: Branch) -> None:
        """
        Mark *branch* closed. Idempotent and never blocks.

        If a pass is running (another thread, or a finalizer firing
        mid-pass) the close is applied when that pass releases the region.
        """
        self._close_requests.add(branch)
        if self._lock.acquire(blocking=False):
            self._release()

    def _release(self) -> None:
        while True:
            while self._close_requests:
                self._close_locked(self._close_requests.pop())
            self._lock.release()
            if not self._close_requests or not self._lock.acquire(blocking=False):
                return

    def _close_locked(self, branch: Branch) -> None:
        if self._closed[branch]:
            return
        self._closed[branch] = True
        dropped = len(self._buffers[branch])
        self._buffers[branch].clear()
        released = self._handoff[branch] is not EMPTY
        if released:
            dropped += 1
        self._handoff[branch] = EMPTY
        self._wakers[branch] = None
        self._log.debug(
            "split_branch_closed",
            branch=branch.value,
            dropped=dropped,
            released_backpressure=released,
        )
        if released:
            self._wake(branch.other)

        if all(self._closed.values()):
            self._source.cancel()
            self._log.debug("split_closed", discarded=self._discarded)
