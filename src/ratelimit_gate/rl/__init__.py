"""Rate limiting module."""

from .keys import (
    GLOBAL_GROUP,
    GroupingStrategy,
    GlobalGrouping,
    HostnameGrouping,
    CallableGrouping,
    as_grouping_strategy,
)
from .limiter import RatePolicy, GroupPolicyOverride, RateLimitDecision
from .backend import RateLimitStore, MemoryRateLimitStore
from .resolver import GroupResolver
from .headers import (
    build_usage_header,
    build_policy_header,
    parse_usage_header,
    parse_policy_header,
    parse_negotiation_patch,
    build_rate_limit_headers,
)
from .gate import RateLimiter
from .middleware import (
    DenyObserver,
    NullDenyObserver,
    CallableDenyObserver,
    RateLimitMiddleware,
    get_rate_limiter,
)
from .transport import RateLimitTransport, AsyncRateLimitTransport
from .config import (
    RateLimitConfig,
    GroupPolicyConfig,
    get_rate_limit_config,
    load_rate_limit_config,
    create_rate_limiter,
    create_rate_limit_middleware,
    per_domain_config,
)
from .exceptions import (
    RateLimitError,
    RateLimitExceededError,
    RateLimitConfigurationError,
)

__all__ = [
    "GLOBAL_GROUP",
    "GroupingStrategy",
    "GlobalGrouping",
    "HostnameGrouping",
    "CallableGrouping",
    "as_grouping_strategy",
    "RatePolicy",
    "GroupPolicyOverride",
    "RateLimitDecision",
    "RateLimitStore",
    "MemoryRateLimitStore",
    "GroupResolver",
    "build_usage_header",
    "build_policy_header",
    "parse_usage_header",
    "parse_policy_header",
    "parse_negotiation_patch",
    "build_rate_limit_headers",
    "RateLimiter",
    "DenyObserver",
    "NullDenyObserver",
    "CallableDenyObserver",
    "RateLimitMiddleware",
    "get_rate_limiter",
    "RateLimitTransport",
    "AsyncRateLimitTransport",
    "RateLimitConfig",
    "GroupPolicyConfig",
    "get_rate_limit_config",
    "load_rate_limit_config",
    "create_rate_limiter",
    "create_rate_limit_middleware",
    "per_domain_config",
    "RateLimitError",
    "RateLimitExceededError",
    "RateLimitConfigurationError",
]
