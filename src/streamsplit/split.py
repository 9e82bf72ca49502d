"""
Split combinators — turn one stream into two.

    split(source, pred)                       pred(item) -> bool
    split_map(source, fn)                     fn(item) -> Left(x) | Right(y)
    split_buffered(source, pred, capacity)
    split_map_buffered(source, fn, capacity)

The first stream returned gets the items the predicate accepts (or the
``Left`` values), the second gets the rest (or the ``Right`` values). Each
branch buffers at most ``capacity`` items pulled on its behalf by the other
branch; beyond that the pulling branch waits for the slow one to catch up.

``source`` may be any async iterable or plain iterable.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, Callable, Iterable
from typing import Any, TypeVar

import structlog

from streamsplit.core.branch import BranchStream
from streamsplit.core.config import DEFAULT_CAPACITY, SplitConfig, build_config
from streamsplit.core.driver import SplitDriver
from streamsplit.core.routing.classifier import (
    Branch,
    Classifier,
    Left,
    MapClassifier,
    PredicateClassifier,
    Right,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")
L = TypeVar("L")
R = TypeVar("R")

Source = AsyncIterable[T] | Iterable[T]


def _build(
    source: Any, classifier: Classifier, config: SplitConfig
) -> tuple[BranchStream[Any], BranchStream[Any]]:
    driver = SplitDriver(source, classifier, config)
    logger.debug(
        "split_created",
        split=config.name or None,
        capacity=config.capacity,
        classifier=type(classifier).__name__,
    )
    return BranchStream(driver, Branch.LEFT), BranchStream(driver, Branch.RIGHT)


def split(
    source: Source[T],
    predicate: Callable[[T], bool],
    *,
    name: str = "",
) -> tuple[BranchStream[T], BranchStream[T]]:
    """Split *source* on *predicate*; one buffer slot per branch."""
    return split_buffered(source, predicate, DEFAULT_CAPACITY, name=name)


def split_map(
    source: Source[T],
    classifier: Callable[[T], Left[L] | Right[R]],
    *,
    name: str = "",
) -> tuple[BranchStream[L], BranchStream[R]]:
    """Split *source* with an extracting classifier; one buffer slot per branch."""
    return split_map_buffered(source, classifier, DEFAULT_CAPACITY, name=name)


def split_buffered(
    source: Source[T],
    predicate: Callable[[T], bool],
    capacity: int,
    *,
    name: str = "",
) -> tuple[BranchStream[T], BranchStream[T]]:
    """
    Split *source* on *predicate* with *capacity* buffer slots per branch.

    Raises:
        ConfigError: capacity is not an integer >= 1.
        TypeError: predicate is not callable or source is not iterable.
    """
    config = build_config(capacity, name)
    return _build(source, PredicateClassifier(predicate), config)


def split_map_buffered(
    source: Source[T],
    classifier: Callable[[T], Left[L] | Right[R]],
    capacity: int,
    *,
    name: str = "",
) -> tuple[BranchStream[L], BranchStream[R]]:
    """
    Split *source* with an extracting classifier and *capacity* slots per branch.

    Raises:
        ConfigError: capacity is not an integer >= 1.
        TypeError: classifier is not callable or source is not iterable.
    """
    config = build_config(capacity, name)
    return _build(source, MapClassifier(classifier), config)


# Earlier names for the unbuffered combinators
partition = split
partition_map = split_map
