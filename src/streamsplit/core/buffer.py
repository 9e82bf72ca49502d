"""
SlotBuffer — fixed-capacity FIFO holding items for one branch.

Purely synchronous; the driver mutates it only inside its exclusive region.
``pop_front()`` returns the ``EMPTY`` sentinel rather than ``None`` so that
``None`` remains a valid stream item.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Final


class _Empty:
    __slots__ = ()

    def __repr__(self) -> str:
        return "EMPTY"

    def __bool__(self) -> bool:
        return False


EMPTY: Final = _Empty()


class SlotBuffer:
    """Bounded FIFO. ``len(buffer) <= capacity`` at all times."""

    __slots__ = ("_capacity", "_items")

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("SlotBuffer capacity must be at least 1")
        self._capacity = capacity
        self._items: deque[Any] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._items)

    def remaining(self) -> int:
        return self._capacity - len(self._items)

    def is_full(self) -> bool:
        return len(self._items) >= self._capacity

    def try_push(self, item: Any) -> bool:
        """Append *item*; return False (item not stored) when full."""
        if self.is_full():
            return False
        self._items.append(item)
        return True

    def pop_front(self) -> Any:
        """Remove and return the oldest item, or ``EMPTY``."""
        if not self._items:
            return EMPTY
        return self._items.popleft()

    def clear(self) -> None:
        self._items.clear()

    def __repr__(self) -> str:
        return f"SlotBuffer(len={len(self._items)}, capacity={self._capacity})"
