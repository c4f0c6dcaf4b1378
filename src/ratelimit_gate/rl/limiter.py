"""Rate limiting policy and decision types."""

import math
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from .exceptions import RateLimitConfigurationError


def validate_max_requests(value: Any) -> int:
    """Fail fast on a negative or non-integer capacity."""
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        else:
            raise RateLimitConfigurationError(
                f"max_requests must be an integer, got {value!r}",
                config_field="max_requests",
                provided_value=value,
            )
    if value < 0:
        raise RateLimitConfigurationError(
            f"max_requests must be >= 0, got {value}",
            config_field="max_requests",
            provided_value=value,
        )
    return value


def validate_window_seconds(value: Any) -> float:
    """Fail fast on a non-positive window length."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RateLimitConfigurationError(
            f"window_seconds must be a number, got {value!r}",
            config_field="window_seconds",
            provided_value=value,
        )
    if not math.isfinite(value) or value <= 0:
        raise RateLimitConfigurationError(
            f"window_seconds must be > 0, got {value}",
            config_field="window_seconds",
            provided_value=value,
        )
    return value


@dataclass(frozen=True)
class RatePolicy:
    """Rate limiting policy: capacity per sliding window."""
    max_requests: int = 100
    window_seconds: float = 60

    def __post_init__(self):
        object.__setattr__(self, "max_requests", validate_max_requests(self.max_requests))
        object.__setattr__(self, "window_seconds", validate_window_seconds(self.window_seconds))

    @property
    def window_millis(self) -> float:
        return self.window_seconds * 1000


@dataclass(frozen=True)
class GroupPolicyOverride:
    """
    Partial policy for one group.

    Fields left as None fall back to the global policy. ``on_denied`` is an
    optional group-specific deny observer (see ``middleware.DenyObserver``).
    """
    max_requests: Optional[int] = None
    window_seconds: Optional[float] = None
    on_denied: Optional[Any] = None

    def __post_init__(self):
        if self.max_requests is not None:
            object.__setattr__(self, "max_requests", validate_max_requests(self.max_requests))
        if self.window_seconds is not None:
            object.__setattr__(self, "window_seconds", validate_window_seconds(self.window_seconds))

    def merged(self, patch: "GroupPolicyOverride") -> "GroupPolicyOverride":
        """Return a copy with every field the patch sets replaced; None never clobbers."""
        changes = {
            name: value
            for name, value in (
                ("max_requests", patch.max_requests),
                ("window_seconds", patch.window_seconds),
                ("on_denied", patch.on_denied),
            )
            if value is not None
        }
        return replace(self, **changes)

    def apply_to(self, policy: RatePolicy) -> RatePolicy:
        """Overlay the fields present here onto ``policy``."""
        return RatePolicy(
            max_requests=policy.max_requests if self.max_requests is None else self.max_requests,
            window_seconds=policy.window_seconds if self.window_seconds is None else self.window_seconds,
        )

    def is_empty(self) -> bool:
        return self.max_requests is None and self.window_seconds is None and self.on_denied is None


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one admission check."""
    allowed: bool
    remaining: int
    reset_time_millis: int
    group: str
    limit: int = 0
    window_seconds: float = 0

    def retry_after_seconds(self, now_ms: float) -> int:
        """Whole seconds until reset, never negative."""
        return max(0, math.ceil((self.reset_time_millis - now_ms) / 1000))


Clock = Callable[[], float]
