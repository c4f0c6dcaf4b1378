"""Rate limiter facade: admission checks, queries and policy configuration."""

import logging
from typing import Any, Mapping, Optional

from .backend import MemoryRateLimitStore, RateLimitStore
from .headers import HeadersLike, parse_negotiation_patch
from .keys import GroupingLike
from .limiter import Clock, GroupPolicyOverride, RateLimitDecision, RatePolicy
from .resolver import GroupResolver

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Grouped sliding-window rate limiter.

    Owns one bucket store and one group resolver; instances never share
    state unless the same store or resolver is passed to both.

    Usage:
        limiter = RateLimiter(RatePolicy(max_requests=2, window_seconds=1))

        if limiter.is_allowed("https://api.example.com/items"):
            ...
    """

    def __init__(
        self,
        policy: Optional[RatePolicy] = None,
        per_group: Optional[Mapping[str, GroupPolicyOverride]] = None,
        grouping: GroupingLike = None,
        store: Optional[RateLimitStore] = None,
        clock: Optional[Clock] = None,
    ):
        self._resolver = GroupResolver(policy or RatePolicy(), per_group, grouping)
        self._store = store or MemoryRateLimitStore(clock=clock)

    @property
    def store(self) -> RateLimitStore:
        return self._store

    @property
    def resolver(self) -> GroupResolver:
        return self._resolver

    @property
    def default_policy(self) -> RatePolicy:
        return self._resolver.default_policy

    def now(self) -> float:
        """Current time in epoch milliseconds, as seen by the store."""
        return self._store.now()

    def check(self, url: Any, method: Optional[str] = None) -> RateLimitDecision:
        """Count one attempt for the URL's group and return the decision."""
        group = self._resolver.resolve_group(url, method)
        policy = self._resolver.resolve_effective_policy(group)
        return self._store.try_consume(group, policy)

    def is_allowed(self, url: Any, method: Optional[str] = None) -> bool:
        """Count one attempt; True if it was admitted."""
        return self.check(url, method).allowed

    def group(self, url: Any, method: Optional[str] = None) -> str:
        return self._resolver.resolve_group(url, method)

    def remaining(self, url: Any, method: Optional[str] = None) -> int:
        group = self._resolver.resolve_group(url, method)
        return self._store.peek_remaining(group, self._resolver.resolve_effective_policy(group))

    def reset_time(self, url: Any, method: Optional[str] = None) -> Optional[int]:
        """Epoch milliseconds when the URL's group window resets, or None if unseen."""
        group = self._resolver.resolve_group(url, method)
        return self._store.peek_reset_time(group, self._resolver.resolve_effective_policy(group))

    def request_count(self, url: Any, method: Optional[str] = None) -> int:
        group = self._resolver.resolve_group(url, method)
        return self._store.request_count(group, self._resolver.resolve_effective_policy(group))

    def can_make_request(self, url: Any, method: Optional[str] = None) -> bool:
        """Whether a request would be admitted now, without counting it."""
        group = self._resolver.resolve_group(url, method)
        return self._store.can_consume(group, self._resolver.resolve_effective_policy(group))

    def time_until_next_request(self, url: Any, method: Optional[str] = None) -> int:
        """Milliseconds until the URL's group can admit another request."""
        group = self._resolver.resolve_group(url, method)
        return self._store.time_until_next_request(group, self._resolver.resolve_effective_policy(group))

    def get_policy(self, group: str) -> RatePolicy:
        """Effective policy for a group (global default merged with its override)."""
        return self._resolver.resolve_effective_policy(group)

    def get_group_override(self, group: str) -> Optional[GroupPolicyOverride]:
        return self._resolver.get_override(group)

    def set_policy(
        self,
        group: str,
        max_requests: Optional[int] = None,
        window_seconds: Optional[float] = None,
        on_denied: Optional[Any] = None,
    ) -> RatePolicy:
        """Merge the given fields into the group's override and return the effective policy."""
        self._resolver.upsert_override(
            group,
            max_requests=max_requests,
            window_seconds=window_seconds,
            on_denied=on_denied,
        )
        return self._resolver.resolve_effective_policy(group)

    def clear(self, group: str) -> None:
        """Forget the request history of one group; its policy is kept."""
        self._store.clear(group)

    def clear_all(self) -> None:
        self._store.clear_all()

    def update_from_headers(self, url: Any, headers: HeadersLike, method: Optional[str] = None) -> bool:
        """
        Negotiate the URL's group policy from upstream rate limit headers.

        Returns:
            True if at least one policy field was extracted and applied
        """
        patch = parse_negotiation_patch(headers, now_ms=self.now())
        if not patch:
            return False

        group = self._resolver.resolve_group(url, method)
        self._resolver.upsert_override(group, **patch)
        logger.info(
            "Rate limit policy negotiated from response headers",
            extra={"group": group, **patch}
        )
        return True
