"""streamsplit exception hierarchy."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from streamsplit.core.routing.classifier import Branch


class StreamSplitError(Exception):
    """Base exception for all streamsplit errors."""


class ConfigError(StreamSplitError):
    """Raised when a split is constructed with an invalid configuration."""


class ClassifierError(StreamSplitError):
    """
    Raised when the classifier fails on a source item.

    The item that triggered the failure is dropped; the split stays usable.
    """

    def __init__(self, branch: Branch, original_error: Exception) -> None:
        self.branch = branch
        self.original_error = original_error
        super().__init__(f"Classifier failed while polling {branch} branch: {original_error!r}")


class SourceError(StreamSplitError):
    """
    Raised when the source iterator fails instead of yielding an item.

    The source is not marked exhausted, so a later pull polls it again.
    """

    def __init__(self, branch: Branch, original_error: Exception) -> None:
        self.branch = branch
        self.original_error = original_error
        super().__init__(f"Source failed while polling {branch} branch: {original_error!r}")


class SourceLostError(StreamSplitError):
    """
    Raised when an in-flight async source step died with the event loop
    that was running it.

    Surfaces wrapped in ``SourceError``. The source cannot be resumed from
    another loop, so it is treated as exhausted afterwards.
    """


class HandoffError(StreamSplitError):
    """Raised when a pending handoff cell would be overwritten."""
