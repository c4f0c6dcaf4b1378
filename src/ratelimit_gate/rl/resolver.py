"""Group resolution and per-group policy registry."""

import threading
import logging
from typing import Any, Dict, Mapping, Optional

from .keys import GroupingLike, GroupingStrategy, as_grouping_strategy
from .limiter import GroupPolicyOverride, RatePolicy

logger = logging.getLogger(__name__)


class GroupResolver:
    """
    Maps requests to groups and resolves each group's effective policy.

    The effective policy is the global default with the group's override
    fields laid on top, field by field. Overrides come from static
    configuration or from header negotiation and are never removed
    implicitly.
    """

    def __init__(
        self,
        default_policy: RatePolicy,
        per_group: Optional[Mapping[str, GroupPolicyOverride]] = None,
        grouping: GroupingLike = None,
    ):
        self._default_policy = default_policy
        self._grouping: GroupingStrategy = as_grouping_strategy(grouping)
        self._overrides: Dict[str, GroupPolicyOverride] = dict(per_group or {})
        self._lock = threading.Lock()

    @property
    def default_policy(self) -> RatePolicy:
        return self._default_policy

    @property
    def grouping(self) -> GroupingStrategy:
        return self._grouping

    def resolve_group(self, url: Any, method: Optional[str] = None) -> str:
        return self._grouping.group_for(str(url), method.upper() if method else None)

    def resolve_effective_policy(self, group: str) -> RatePolicy:
        with self._lock:
            override = self._overrides.get(group)
        if override is None:
            return self._default_policy
        return override.apply_to(self._default_policy)

    def get_override(self, group: str) -> Optional[GroupPolicyOverride]:
        with self._lock:
            return self._overrides.get(group)

    def overrides(self) -> Dict[str, GroupPolicyOverride]:
        """Point-in-time copy of the override registry."""
        with self._lock:
            return dict(self._overrides)

    def upsert_override(
        self,
        group: str,
        max_requests: Optional[int] = None,
        window_seconds: Optional[float] = None,
        on_denied: Optional[Any] = None,
    ) -> GroupPolicyOverride:
        """
        Merge the given fields into the group's override, creating it if absent.

        Fields passed as None leave the existing value untouched.

        Raises:
            RateLimitConfigurationError: If a provided value is invalid
        """
        patch = GroupPolicyOverride(
            max_requests=max_requests,
            window_seconds=window_seconds,
            on_denied=on_denied,
        )
        with self._lock:
            current = self._overrides.get(group, GroupPolicyOverride())
            updated = current.merged(patch)
            self._overrides[group] = updated

        logger.info(
            "Rate limit policy updated",
            extra={
                "group": group,
                "max_requests": updated.max_requests,
                "window_seconds": updated.window_seconds,
            }
        )
        return updated
