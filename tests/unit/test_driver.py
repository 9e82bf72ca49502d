"""Unit tests for SplitDriver — the shared polling state machine."""

from __future__ import annotations

import random
from unittest.mock import MagicMock

import pytest

from streamsplit.core.config import SplitConfig
from streamsplit.core.driver import ENDED, PENDING, PollResult, PollState, SplitDriver
from streamsplit.core.exceptions import ClassifierError, HandoffError, SourceError
from streamsplit.core.routing.classifier import (
    Branch,
    Left,
    MapClassifier,
    PredicateClassifier,
    Right,
)

LEFT = Branch.LEFT
RIGHT = Branch.RIGHT


def _odd(n: int) -> bool:
    return n % 2 == 1


def _make_driver(source, predicate=_odd, capacity: int = 1) -> SplitDriver:
    return SplitDriver(source, PredicateClassifier(predicate), SplitConfig(capacity=capacity))


class _FlakySource:
    """Iterator over *items* that raises once when reaching index *fail_at*."""

    def __init__(self, items: list[int], fail_at: int) -> None:
        self._items = items
        self._fail_at = fail_at
        self._index = 0
        self._failed = False

    def __iter__(self) -> _FlakySource:
        return self

    def __next__(self) -> int:
        if self._index == self._fail_at and not self._failed:
            self._failed = True
            raise OSError("connection reset")
        if self._index >= len(self._items):
            raise StopIteration
        item = self._items[self._index]
        self._index += 1
        return item


# ---------------------------------------------------------------------------
# Own-branch path
# ---------------------------------------------------------------------------


class TestDirectPath:
    def test_item_for_polling_branch_is_returned_immediately(self) -> None:
        driver = _make_driver([1, 3])
        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(1)
        assert driver.buffered(LEFT) == 0
        assert driver.buffered(RIGHT) == 0

    def test_items_for_other_branch_are_buffered(self) -> None:
        driver = _make_driver([2, 1])
        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(1)
        assert driver.buffered(RIGHT) == 1

    def test_buffered_item_is_served_without_touching_source(self) -> None:
        source = iter([2, 1, 4])
        driver = _make_driver(source)
        driver.poll_next(LEFT, MagicMock())
        assert driver.poll_next(RIGHT, MagicMock()) == PollResult.ready(2)
        # 4 is still in the source
        assert next(source) == 4

    def test_none_is_a_valid_item(self) -> None:
        driver = _make_driver([None, 1], predicate=lambda x: x is not None)
        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(1)
        assert driver.poll_next(RIGHT, MagicMock()) == PollResult.ready(None)

    def test_map_classifier_delivers_extracted_values(self) -> None:
        driver = SplitDriver(
            ["a1", "b2"],
            MapClassifier(lambda s: Left(s[1:]) if s[0] == "a" else Right(int(s[1:]))),
            SplitConfig(),
        )
        assert driver.poll_next(RIGHT, MagicMock()) == PollResult.ready(2)
        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready("1")


# ---------------------------------------------------------------------------
# Exhaustion
# ---------------------------------------------------------------------------


class TestExhaustion:
    def test_empty_source_ends_both_branches(self) -> None:
        driver = _make_driver([])
        assert driver.poll_next(LEFT, MagicMock()) is ENDED
        assert driver.exhausted
        assert driver.poll_next(RIGHT, MagicMock()) is ENDED

    def test_buffered_items_drain_before_end(self) -> None:
        driver = _make_driver([2])
        assert driver.poll_next(LEFT, MagicMock()) is ENDED
        assert driver.poll_next(RIGHT, MagicMock()) == PollResult.ready(2)
        assert driver.poll_next(RIGHT, MagicMock()) is ENDED

    def test_ended_is_sticky(self) -> None:
        driver = _make_driver([1])
        driver.poll_next(LEFT, MagicMock())
        assert driver.poll_next(LEFT, MagicMock()) is ENDED
        assert driver.poll_next(LEFT, MagicMock()) is ENDED


# ---------------------------------------------------------------------------
# Backpressure
# ---------------------------------------------------------------------------


class TestBackpressure:
    def test_full_buffer_suspends_the_driving_branch(self) -> None:
        driver = _make_driver([1, 3, 2])
        waker = MagicMock()
        assert driver.poll_next(RIGHT, waker).is_pending
        assert driver.buffered(LEFT) == 1
        assert driver.has_pending_handoff(LEFT)
        assert driver.has_waker(RIGHT)
        waker.assert_not_called()

    def test_backpressured_branch_does_not_poll_source_again(self) -> None:
        source = iter([1, 3, 2])
        driver = _make_driver(source)
        driver.poll_next(RIGHT, MagicMock())
        assert driver.poll_next(RIGHT, MagicMock()) is PENDING
        assert next(source) == 2

    def test_pop_moves_handoff_into_buffer_and_wakes_sibling(self) -> None:
        driver = _make_driver([1, 3, 2])
        waker = MagicMock()
        driver.poll_next(RIGHT, waker)

        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(1)
        assert driver.buffered(LEFT) == 1
        assert not driver.has_pending_handoff(LEFT)
        waker.assert_called_once()

        assert driver.poll_next(RIGHT, MagicMock()) == PollResult.ready(2)
        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(3)

    def test_only_latest_waker_is_honoured(self) -> None:
        driver = _make_driver([1, 3, 2])
        first, second = MagicMock(), MagicMock()
        driver.poll_next(RIGHT, first)
        driver.poll_next(RIGHT, second)

        driver.poll_next(LEFT, MagicMock())
        first.assert_not_called()
        second.assert_called_once()

    def test_waker_cleared_after_wake(self) -> None:
        driver = _make_driver([1, 3, 5, 2])
        waker = MagicMock()
        driver.poll_next(RIGHT, waker)
        driver.poll_next(LEFT, MagicMock())
        assert not driver.has_waker(RIGHT)
        # A second pop finds no recorded waker
        driver.poll_next(LEFT, MagicMock())
        waker.assert_called_once()

    def test_push_wakes_branch_waiting_for_data(self) -> None:
        driver = _make_driver([1, 3, 2], capacity=2)
        left_waker = MagicMock()
        driver._wakers[LEFT] = left_waker
        assert driver.poll_next(RIGHT, MagicMock()) == PollResult.ready(2)
        left_waker.assert_called_once()

    def test_capacity_is_honoured(self) -> None:
        driver = _make_driver([1, 3, 5, 7, 2], capacity=3)
        assert driver.poll_next(RIGHT, MagicMock()) is PENDING
        assert driver.buffered(LEFT) == 3
        assert driver.has_pending_handoff(LEFT)

    def test_parking_twice_is_an_invariant_violation(self) -> None:
        driver = _make_driver([1])
        driver._park(LEFT, 1)
        with pytest.raises(HandoffError):
            driver._park(LEFT, 3)


# ---------------------------------------------------------------------------
# Close
# ---------------------------------------------------------------------------


class TestClose:
    def test_items_for_closed_branch_are_discarded(self) -> None:
        driver = _make_driver([1, 3, 5, 2])
        driver.close(LEFT)
        assert driver.poll_next(RIGHT, MagicMock()) == PollResult.ready(2)
        assert driver.discarded == 3
        assert driver.buffered(LEFT) == 0

    def test_close_releases_backpressured_sibling(self) -> None:
        driver = _make_driver([1, 3, 2])
        waker = MagicMock()
        assert driver.poll_next(RIGHT, waker) is PENDING

        driver.close(LEFT)
        waker.assert_called_once()
        assert driver.buffered(LEFT) == 0
        assert not driver.has_pending_handoff(LEFT)
        assert driver.poll_next(RIGHT, MagicMock()) == PollResult.ready(2)
        assert driver.poll_next(RIGHT, MagicMock()) is ENDED

    def test_close_without_backpressure_does_not_wake_sibling(self) -> None:
        driver = _make_driver([2])
        waker = MagicMock()
        driver._wakers[RIGHT] = waker
        driver.close(LEFT)
        waker.assert_not_called()

    def test_closed_branch_polls_ended(self) -> None:
        driver = _make_driver([1, 2])
        driver.close(LEFT)
        assert driver.poll_next(LEFT, MagicMock()) is ENDED

    def test_close_is_idempotent(self) -> None:
        driver = _make_driver([1])
        driver.close(LEFT)
        driver.close(LEFT)
        assert driver.is_closed(LEFT)
        assert not driver.is_closed(RIGHT)

    def test_close_keeps_items_already_parked_for_sibling(self) -> None:
        driver = _make_driver([1, 3, 2])
        driver.poll_next(RIGHT, MagicMock())
        # RIGHT drove the source and parked 3 for LEFT; closing RIGHT keeps LEFT's data
        driver.close(RIGHT)
        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(1)
        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(3)
        assert driver.poll_next(LEFT, MagicMock()) is ENDED
        assert driver.discarded == 1

    def test_close_during_pass_is_deferred(self) -> None:
        driver = _make_driver([1])
        driver._lock.acquire()
        driver.close(LEFT)
        assert not driver.is_closed(LEFT)
        driver._release()
        assert driver.is_closed(LEFT)
        assert not driver._lock.locked()


# ---------------------------------------------------------------------------
# Exclusive region
# ---------------------------------------------------------------------------


class TestContention:
    def test_busy_region_wakes_caller_and_reports_pending(self) -> None:
        driver = _make_driver([1])
        waker = MagicMock()
        driver._lock.acquire()
        try:
            assert driver.poll_next(LEFT, waker) is PENDING
        finally:
            driver._lock.release()
        waker.assert_called_once()
        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(1)


# ---------------------------------------------------------------------------
# Faults
# ---------------------------------------------------------------------------


class TestFaults:
    def test_classifier_fault_drops_item_and_propagates(self) -> None:
        def pred(n: int) -> bool:
            if n == 2:
                raise ValueError("bad item")
            return n % 2 == 1

        driver = _make_driver([1, 2, 3], predicate=pred)
        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(1)
        with pytest.raises(ClassifierError) as excinfo:
            driver.poll_next(LEFT, MagicMock())
        assert excinfo.value.branch is LEFT
        assert isinstance(excinfo.value.original_error, ValueError)
        assert isinstance(excinfo.value.__cause__, ValueError)

        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(3)
        assert driver.poll_next(RIGHT, MagicMock()) is ENDED

    def test_bad_map_result_is_a_classifier_fault(self) -> None:
        driver = SplitDriver([1], MapClassifier(lambda n: n), SplitConfig())
        with pytest.raises(ClassifierError) as excinfo:
            driver.poll_next(RIGHT, MagicMock())
        assert isinstance(excinfo.value.original_error, TypeError)

    def test_source_fault_propagates_without_exhausting(self) -> None:
        driver = _make_driver(_FlakySource([1, 3], fail_at=1))
        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(1)
        with pytest.raises(SourceError) as excinfo:
            driver.poll_next(RIGHT, MagicMock())
        assert excinfo.value.branch is RIGHT
        assert isinstance(excinfo.value.original_error, OSError)
        assert not driver.exhausted

        assert driver.poll_next(LEFT, MagicMock()) == PollResult.ready(3)

    def test_fault_leaves_region_released(self) -> None:
        driver = _make_driver(_FlakySource([1], fail_at=0))
        with pytest.raises(SourceError):
            driver.poll_next(LEFT, MagicMock())
        assert not driver._lock.locked()


# ---------------------------------------------------------------------------
# Randomised interleavings
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("capacity", [1, 2, 5])
@pytest.mark.parametrize("seed", range(8))
def test_random_interleaving_preserves_order_and_bounds(capacity: int, seed: int) -> None:
    rng = random.Random(seed)
    items = [rng.randrange(1000) for _ in range(rng.randrange(0, 60))]
    pred = lambda n: n % 3 == 0  # noqa: E731
    driver = _make_driver(items, predicate=pred, capacity=capacity)

    seen: dict[Branch, list[int]] = {LEFT: [], RIGHT: []}
    live = [LEFT, RIGHT]
    while live:
        branch = rng.choice(live)
        result = driver.poll_next(branch, MagicMock())
        if result.state is PollState.READY:
            seen[branch].append(result.item)
        elif result.state is PollState.ENDED:
            live.remove(branch)
        assert driver.buffered(LEFT) <= capacity
        assert driver.buffered(RIGHT) <= capacity

    assert seen[LEFT] == [n for n in items if pred(n)]
    assert seen[RIGHT] == [n for n in items if not pred(n)]
