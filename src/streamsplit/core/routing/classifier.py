"""
Classifier contract — decides which branch receives each source item.

Two forms are supported:

    PredicateClassifier(pred)   pred(item) -> bool
        True  -> LEFT  (first stream returned by split)
        False -> RIGHT (second stream), item delivered unchanged

    MapClassifier(fn)           fn(item) -> Left(value) | Right(value)
        the wrapped value is what the branch consumer receives

A classifier runs synchronously inside the driver's exclusive region, exactly
once per item, at the moment the item is pulled from the source.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, Protocol, TypeVar

L = TypeVar("L")
R = TypeVar("R")


# ---------------------------------------------------------------------------
# Branch identity
# ---------------------------------------------------------------------------


class Branch(StrEnum):
    """One of the two output sequences of a split."""

    LEFT = "left"
    RIGHT = "right"

    @property
    def other(self) -> Branch:
        return Branch.RIGHT if self is Branch.LEFT else Branch.LEFT


# ---------------------------------------------------------------------------
# Extracting-form results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Left(Generic[L]):
    """Route ``value`` to the left branch."""

    value: L


@dataclass(frozen=True)
class Right(Generic[R]):
    """Route ``value`` to the right branch."""

    value: R


class Route:
    """Destination branch plus the value that branch will deliver."""

    __slots__ = ("branch", "value")

    def __init__(self, branch: Branch, value: Any) -> None:
        self.branch = branch
        self.value = value

    def __repr__(self) -> str:
        return f"Route(branch={self.branch!r}, value={self.value!r})"


# ---------------------------------------------------------------------------
# Classifier protocol + implementations
# ---------------------------------------------------------------------------


class Classifier(Protocol):
    """Protocol for item classifiers."""

    def classify(self, item: Any) -> Route: ...


class PredicateClassifier:
    """Boolean form: a truthy predicate result routes left."""

    def __init__(self, predicate: Callable[[Any], bool]) -> None:
        if not callable(predicate):
            raise TypeError(f"predicate must be callable, got {type(predicate).__name__}")
        self._predicate = predicate

    def classify(self, item: Any) -> Route:
        if self._predicate(item):
            return Route(Branch.LEFT, item)
        return Route(Branch.RIGHT, item)


class MapClassifier:
    """Extracting form: the mapper returns ``Left(x)`` or ``Right(y)``."""

    def __init__(self, mapper: Callable[[Any], Left[Any] | Right[Any]]) -> None:
        if not callable(mapper):
            raise TypeError(f"classifier must be callable, got {type(mapper).__name__}")
        self._mapper = mapper

    def classify(self, item: Any) -> Route:
        result = self._mapper(item)
        if isinstance(result, Left):
            return Route(Branch.LEFT, result.value)
        if isinstance(result, Right):
            return Route(Branch.RIGHT, result.value)
        raise TypeError(f"classifier must return Left or Right, got {type(result).__name__}")
