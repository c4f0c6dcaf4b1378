"""Rate limiting configuration and factories."""

import logging
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ratelimit_gate.core.config import get_settings
from .exceptions import RateLimitConfigurationError
from .gate import RateLimiter
from .keys import GroupingStrategy, HostnameGrouping, grouping_by_name
from .limiter import (
    Clock,
    GroupPolicyOverride,
    RatePolicy,
    validate_max_requests,
    validate_window_seconds,
)
from .middleware import DenyObserver, RateLimitMiddleware

logger = logging.getLogger(__name__)


def _check_callable(value: Any, field_name: str, expected: type) -> Any:
    if value is None or isinstance(value, expected) or callable(value):
        return value
    raise RateLimitConfigurationError(
        f"{field_name} must be callable, got {type(value).__name__}",
        config_field=field_name,
        provided_value=value,
    )


class GroupPolicyConfig(BaseModel):
    """Per-group override; unset fields fall back to the global policy."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_requests: Optional[int] = Field(default=None, description="Requests per window for this group")
    window_seconds: Optional[float] = Field(default=None, description="Window length in seconds for this group")
    on_denied: Optional[Any] = Field(default=None, description="Group-specific deny observer")

    @field_validator("max_requests")
    @classmethod
    def check_max_requests(cls, v):
        return None if v is None else validate_max_requests(v)

    @field_validator("window_seconds")
    @classmethod
    def check_window_seconds(cls, v):
        return None if v is None else validate_window_seconds(v)

    @field_validator("on_denied")
    @classmethod
    def validate_on_denied(cls, v):
        return _check_callable(v, "on_denied", DenyObserver)

    def to_override(self) -> GroupPolicyOverride:
        return GroupPolicyOverride(
            max_requests=self.max_requests,
            window_seconds=self.window_seconds,
            on_denied=self.on_denied,
        )


class RateLimitConfig(BaseModel):
    """Rate limiting configuration model."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_requests: int = Field(default=100, description="Default requests per window")
    window_seconds: float = Field(default=60, description="Default window in seconds")
    group_fn: Optional[Any] = Field(default=None, description="Grouping strategy or url -> group callable")
    per_group: Dict[str, GroupPolicyConfig] = Field(default_factory=dict, description="Per-group overrides")
    on_denied: Optional[Any] = Field(default=None, description="Deny observer called with the reset time")
    throw_on_deny: bool = Field(default=True, description="Raise RateLimitExceededError instead of returning a 429")
    custom_deny_message: Optional[str] = Field(default=None, description="Message used for denials")
    auto_negotiate: bool = Field(default=True, description="Update policies from upstream rate limit headers")

    @field_validator("max_requests")
    @classmethod
    def check_max_requests(cls, v):
        return validate_max_requests(v)

    @field_validator("window_seconds")
    @classmethod
    def check_window_seconds(cls, v):
        return validate_window_seconds(v)

    @field_validator("group_fn")
    @classmethod
    def validate_group_fn(cls, v):
        return _check_callable(v, "group_fn", GroupingStrategy)

    @field_validator("on_denied")
    @classmethod
    def validate_on_denied(cls, v):
        return _check_callable(v, "on_denied", DenyObserver)

    @property
    def policy(self) -> RatePolicy:
        return RatePolicy(max_requests=self.max_requests, window_seconds=self.window_seconds)

    def overrides(self) -> Dict[str, GroupPolicyOverride]:
        return {group: cfg.to_override() for group, cfg in self.per_group.items()}


ConfigLike = Union[RateLimitConfig, Mapping[str, Any], None]


def get_rate_limit_config() -> RateLimitConfig:
    """Get rate limiting configuration from settings."""
    settings = get_settings()

    return RateLimitConfig(
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        group_fn=grouping_by_name(settings.RATE_LIMIT_GROUPING),
        throw_on_deny=settings.RATE_LIMIT_THROW_ON_DENY,
        auto_negotiate=settings.RATE_LIMIT_AUTO_NEGOTIATE,
    )


def load_rate_limit_config(config: ConfigLike = None) -> RateLimitConfig:
    """
    Normalize a config object or mapping.

    Raises:
        RateLimitConfigurationError: If the mapping does not validate
    """
    if config is None:
        return get_rate_limit_config()
    if isinstance(config, RateLimitConfig):
        return config
    try:
        return RateLimitConfig.model_validate(dict(config))
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        field_name = ".".join(str(part) for part in first.get("loc", ()))
        raise RateLimitConfigurationError(
            f"Invalid rate limit configuration: {first.get('msg', str(e))}",
            config_field=field_name or None,
            provided_value=first.get("input"),
        ) from e


def create_rate_limiter(config: ConfigLike = None, clock: Optional[Clock] = None) -> RateLimiter:
    """
    Create rate limiter instance based on configuration.

    Args:
        config: Rate limiting configuration (defaults to settings)
        clock: Optional epoch-milliseconds clock, mainly for tests

    Returns:
        RateLimiter instance with its own in-memory store
    """
    config = load_rate_limit_config(config)
    limiter = RateLimiter(
        policy=config.policy,
        per_group=config.overrides(),
        grouping=config.group_fn,
        clock=clock,
    )
    logger.debug(
        "Rate limiter created",
        extra={
            "max_requests": config.max_requests,
            "window_seconds": config.window_seconds,
            "groups": sorted(config.per_group),
        }
    )
    return limiter


def create_rate_limit_middleware(
    config: ConfigLike = None,
    limiter: Optional[RateLimiter] = None,
    clock: Optional[Clock] = None,
) -> RateLimitMiddleware:
    """Create the middleware and, unless one is given, its rate limiter."""
    config = load_rate_limit_config(config)
    return RateLimitMiddleware(
        limiter or create_rate_limiter(config, clock=clock),
        throw_on_deny=config.throw_on_deny,
        custom_deny_message=config.custom_deny_message,
        auto_negotiate=config.auto_negotiate,
        on_denied=config.on_denied,
    )


def per_domain_config(**kwargs: Any) -> RateLimitConfig:
    """Configuration preset that keeps a separate window per hostname."""
    kwargs.setdefault("group_fn", HostnameGrouping())
    return RateLimitConfig(**kwargs)
