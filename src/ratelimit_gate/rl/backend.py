"""Rate limiting store implementations."""

import time
import threading
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

from .limiter import Clock, RateLimitDecision, RatePolicy

logger = logging.getLogger(__name__)


def wall_clock_millis() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


@dataclass
class Bucket:
    """Per-group request log for the sliding window."""
    timestamps: Deque[float] = field(default_factory=deque)
    reset_time: float = 0.0


class RateLimitStore(ABC):
    """Abstract base class for rate limit stores."""

    def now(self) -> float:
        """Current time in epoch milliseconds."""
        return wall_clock_millis()

    @abstractmethod
    def try_consume(self, group: str, policy: RatePolicy) -> RateLimitDecision:
        """
        Admit or deny one request for ``group`` under ``policy``.
        A slot is consumed only when the decision is allowed.
        """
        pass

    @abstractmethod
    def peek_remaining(self, group: str, policy: RatePolicy) -> int:
        """Remaining capacity for ``group`` without consuming a slot."""
        pass

    @abstractmethod
    def peek_reset_time(self, group: str, policy: RatePolicy) -> Optional[int]:
        """Reset time (epoch ms) for ``group``, or None if never observed."""
        pass

    @abstractmethod
    def request_count(self, group: str, policy: RatePolicy) -> int:
        pass

    @abstractmethod
    def can_consume(self, group: str, policy: RatePolicy) -> bool:
        pass

    @abstractmethod
    def time_until_next_request(self, group: str, policy: RatePolicy) -> int:
        pass

    @abstractmethod
    def clear(self, group: str) -> None:
        pass

    @abstractmethod
    def clear_all(self) -> None:
        pass


class MemoryRateLimitStore(RateLimitStore):
    """
    Thread-safe in-memory sliding-window log.

    Every bucket keeps the timestamps of the requests admitted inside the
    current window. Each operation first drops timestamps older than the
    window; only ``try_consume`` appends. Cost per call is proportional to
    the number of timestamps inside the window.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._buckets: Dict[str, Bucket] = {}
        self._lock = threading.RLock()
        self._clock = clock or wall_clock_millis

    def now(self) -> float:
        return self._clock()

    def try_consume(self, group: str, policy: RatePolicy) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            bucket = self._cleanup(group, policy, now)
            if len(bucket.timestamps) >= policy.max_requests:
                return RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    reset_time_millis=int(bucket.reset_time),
                    group=group,
                    limit=policy.max_requests,
                    window_seconds=policy.window_seconds,
                )

            bucket.timestamps.append(now)
            return RateLimitDecision(
                allowed=True,
                remaining=policy.max_requests - len(bucket.timestamps),
                reset_time_millis=int(bucket.reset_time),
                group=group,
                limit=policy.max_requests,
                window_seconds=policy.window_seconds,
            )

    def peek_remaining(self, group: str, policy: RatePolicy) -> int:
        return max(0, policy.max_requests - self.request_count(group, policy))

    def peek_reset_time(self, group: str, policy: RatePolicy) -> Optional[int]:
        with self._lock:
            if group not in self._buckets:
                return None
            bucket = self._cleanup(group, policy, self._clock())
            return int(bucket.reset_time)

    def request_count(self, group: str, policy: RatePolicy) -> int:
        """Number of requests admitted inside the current window."""
        with self._lock:
            if group not in self._buckets:
                return 0
            return len(self._cleanup(group, policy, self._clock()).timestamps)

    def can_consume(self, group: str, policy: RatePolicy) -> bool:
        """Whether ``try_consume`` would currently admit a request."""
        return self.request_count(group, policy) < policy.max_requests

    def time_until_next_request(self, group: str, policy: RatePolicy) -> int:
        """Milliseconds until a slot frees up; 0 when one is available now."""
        with self._lock:
            if group not in self._buckets:
                return 0 if policy.max_requests > 0 else int(policy.window_millis)
            now = self._clock()
            bucket = self._cleanup(group, policy, now)
            if len(bucket.timestamps) < policy.max_requests:
                return 0
            if not bucket.timestamps:
                # max_requests == 0 never frees a slot; report the window.
                return int(policy.window_millis)
            # The slot that frees first belongs to the entry that pushes the
            # count below the limit once it leaves the window.
            index = len(bucket.timestamps) - policy.max_requests
            expires_at = bucket.timestamps[index] + policy.window_millis
            return max(0, int(expires_at - now))

    def clear(self, group: str) -> None:
        with self._lock:
            self._buckets.pop(group, None)

    def clear_all(self) -> None:
        with self._lock:
            self._buckets.clear()

    def groups(self) -> List[str]:
        """Snapshot of the groups observed so far."""
        with self._lock:
            return list(self._buckets)

    def _cleanup(self, group: str, policy: RatePolicy, now: float) -> Bucket:
        """Drop timestamps outside the window and refresh the reset time. Caller holds the lock."""
        bucket = self._buckets.get(group)
        if bucket is None:
            bucket = Bucket(reset_time=now + policy.window_millis)
            self._buckets[group] = bucket
            logger.debug("Created rate limit bucket", extra={"group": group})

        window_start = now - policy.window_millis
        timestamps = bucket.timestamps
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()

        if not timestamps:
            bucket.reset_time = now + policy.window_millis
        elif bucket.reset_time <= now:
            bucket.reset_time = timestamps[0] + policy.window_millis

        return bucket
