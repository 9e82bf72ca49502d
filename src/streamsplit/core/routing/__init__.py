"""Routing subsystem — branch identity and item classification."""

from streamsplit.core.routing.classifier import (
    Branch,
    Classifier,
    Left,
    MapClassifier,
    PredicateClassifier,
    Right,
    Route,
)

__all__ = [
    "Branch",
    "Classifier",
    "Left",
    "MapClassifier",
    "PredicateClassifier",
    "Right",
    "Route",
]
