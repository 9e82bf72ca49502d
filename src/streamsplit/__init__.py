"""
streamsplit — split one async stream into two, with bounded buffering.

    from streamsplit import split

    evens, odds = split(numbers(), lambda n: n % 2 == 0)

Each branch is an async iterator. Items keep their source order within a
branch; items pulled on behalf of the other branch wait in a small bounded
buffer, and when that buffer is full the pulling branch waits instead of
the buffer growing.

Package layout (src/streamsplit/):
  split.py         — split / split_map / *_buffered / partition aliases
  core/driver.py   — shared polling state machine
  core/branch.py   — BranchStream async iterator
  core/buffer.py   — bounded per-branch FIFO
  core/source.py   — non-blocking access to sync/async sources
  core/routing/    — Branch, Left/Right, classifiers
"""

from streamsplit.core.branch import BranchStream
from streamsplit.core.config import SplitConfig
from streamsplit.core.driver import PollResult, PollState
from streamsplit.core.exceptions import (
    ClassifierError,
    ConfigError,
    HandoffError,
    SourceError,
    SourceLostError,
    StreamSplitError,
)
from streamsplit.core.logging import configure_logging
from streamsplit.core.routing.classifier import Branch, Left, Right, Route
from streamsplit.split import (
    partition,
    partition_map,
    split,
    split_buffered,
    split_map,
    split_map_buffered,
)

__version__ = "0.1.0"
__all__ = [
    "Branch",
    "BranchStream",
    "ClassifierError",
    "ConfigError",
    "HandoffError",
    "Left",
    "PollResult",
    "PollState",
    "Right",
    "Route",
    "SourceError",
    "SourceLostError",
    "SplitConfig",
    "StreamSplitError",
    "__version__",
    "configure_logging",
    "partition",
    "partition_map",
    "split",
    "split_buffered",
    "split_map",
    "split_map_buffered",
]
