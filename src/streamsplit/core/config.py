"""Split configuration: Pydantic model and validation."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from streamsplit.core.exceptions import ConfigError

DEFAULT_CAPACITY = 1
"""Buffer slots per branch for the unbuffered combinators."""


class SplitConfig(BaseModel):
    """Configuration for one split: per-branch buffer capacity and a log label."""

    model_config = ConfigDict(frozen=True)

    capacity: int = Field(default=DEFAULT_CAPACITY, strict=True)
    name: str = ""

    @field_validator("capacity")
    @classmethod
    def validate_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("capacity must be at least 1")
        return v


def build_config(capacity: int = DEFAULT_CAPACITY, name: str = "") -> SplitConfig:
    """Validate constructor arguments; raise ConfigError on bad input."""
    try:
        return SplitConfig(capacity=capacity, name=name)
    except ValidationError as exc:
        raise ConfigError(f"Invalid split configuration: {exc}") from exc
