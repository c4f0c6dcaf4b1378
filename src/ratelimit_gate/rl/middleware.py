"""Rate limiting middleware for outbound HTTP requests."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from ratelimit_gate.models.problem import (
    PROBLEM_JSON_MEDIA_TYPE,
    TOO_MANY_REQUESTS_TYPE,
    ProblemDetails,
)
from .exceptions import RateLimitExceededError, default_deny_message
from .gate import RateLimiter
from .headers import build_rate_limit_headers
from .limiter import RateLimitDecision

logger = logging.getLogger(__name__)

RATE_LIMITER_EXTENSION = "rate_limiter"
RATE_LIMITED_EXTENSION = "rate_limited"
TOO_MANY_REQUESTS_REASON = "Too Many Requests"


class DenyObserver(ABC):
    """Notified with the reset time (epoch ms) whenever a request is denied."""

    @abstractmethod
    def on_denied(self, reset_time_millis: int) -> None:
        pass

    def __call__(self, reset_time_millis: int) -> None:
        self.on_denied(reset_time_millis)


class NullDenyObserver(DenyObserver):
    def on_denied(self, reset_time_millis: int) -> None:
        return None


class CallableDenyObserver(DenyObserver):
    """Adapts a plain ``reset_time_millis -> None`` function."""

    def __init__(self, fn: Callable[[int], Any]):
        self._fn = fn

    def on_denied(self, reset_time_millis: int) -> None:
        self._fn(reset_time_millis)


DenyObserverLike = Union[DenyObserver, Callable[[int], Any], None]


def as_deny_observer(value: DenyObserverLike) -> DenyObserver:
    if value is None:
        return NullDenyObserver()
    if isinstance(value, DenyObserver):
        return value
    if callable(value):
        return CallableDenyObserver(value)
    raise TypeError(f"Deny observer must be a DenyObserver or callable, got {type(value).__name__}")


def get_rate_limiter(request: Any) -> Optional[RateLimiter]:
    """Rate limiter that admitted ``request``, if it went through the middleware."""
    extensions = getattr(request, "extensions", None)
    if not isinstance(extensions, dict):
        return None
    return extensions.get(RATE_LIMITER_EXTENSION)


class RateLimitMiddleware:
    """
    Admission gate placed in front of the rest of a request pipeline.

    On each request the URL's group is checked against its effective
    policy. Denied requests either raise ``RateLimitExceededError`` or get a
    synthesized 429 problem response; the rest of the pipeline is never
    called for them. Admitted requests are passed on, and with
    ``auto_negotiate`` the upstream response headers may tune the group's
    policy. Errors raised downstream pass through untouched.
    """

    def __init__(
        self,
        limiter: Optional[RateLimiter] = None,
        throw_on_deny: bool = True,
        custom_deny_message: Optional[str] = None,
        auto_negotiate: bool = True,
        on_denied: DenyObserverLike = None,
    ):
        self.limiter = limiter
        self.throw_on_deny = throw_on_deny
        self.custom_deny_message = custom_deny_message
        self.auto_negotiate = auto_negotiate
        self.on_denied = as_deny_observer(on_denied)

        # Without a limiter every request is passed through.
        if self.limiter is None:
            logger.info("Rate limiting middleware initialized but disabled (no limiter provided)")
        else:
            logger.info(
                "Rate limiting middleware initialized",
                extra={
                    "policy_limit": self.limiter.default_policy.max_requests,
                    "policy_window": self.limiter.default_policy.window_seconds,
                    "throw_on_deny": self.throw_on_deny,
                    "auto_negotiate": self.auto_negotiate,
                }
            )

    async def dispatch(
        self,
        request: Any,
        call_next: Callable[[Any], Awaitable[Any]],
    ) -> Any:
        """Gate ``request`` and, if admitted, await the rest of the pipeline."""
        denied = self.admit(request)
        if denied is not None:
            return denied

        response = await call_next(request)
        self.negotiate(request, response)
        return response

    def handle(self, request: Any, send: Callable[[Any], Any]) -> Any:
        """Synchronous counterpart of ``dispatch`` for threaded callers."""
        denied = self.admit(request)
        if denied is not None:
            return denied

        response = send(request)
        self.negotiate(request, response)
        return response

    def admit(self, request: Any) -> Optional[httpx.Response]:
        """
        Run the admission check for ``request``.

        Returns:
            None if the request may proceed, otherwise the synthesized 429 response

        Raises:
            RateLimitExceededError: If denied and ``throw_on_deny`` is set
        """
        if self.limiter is None:
            return None

        url = str(request.url)
        method = getattr(request, "method", None)
        decision = self.limiter.check(url, method)

        if decision.allowed:
            extensions = getattr(request, "extensions", None)
            if isinstance(extensions, dict):
                extensions[RATE_LIMITER_EXTENSION] = self.limiter
            return None

        logger.warning(
            "Rate limit exceeded",
            extra={
                "group": decision.group,
                "url": url,
                "method": method,
                "limit": decision.limit,
                "window_seconds": decision.window_seconds,
                "reset_time_millis": decision.reset_time_millis,
            }
        )
        self._observer_for(decision.group).on_denied(decision.reset_time_millis)

        if self.throw_on_deny:
            raise RateLimitExceededError(
                reset_time_millis=decision.reset_time_millis,
                remaining_requests=decision.remaining,
                group=decision.group,
                message=self.custom_deny_message,
            )
        return self.build_denied_response(request, decision)

    def negotiate(self, request: Any, response: Any) -> bool:
        """Feed response headers back into the group's policy when enabled."""
        if self.limiter is None or not self.auto_negotiate or response is None:
            return False
        headers = getattr(response, "headers", None)
        if headers is None:
            return False
        return self.limiter.update_from_headers(str(request.url), headers, getattr(request, "method", None))

    def build_denied_response(self, request: Any, decision: RateLimitDecision) -> httpx.Response:
        """Synthesize a 429 problem response for a denied request."""
        now_ms = self.limiter.now()
        problem = ProblemDetails(
            type=TOO_MANY_REQUESTS_TYPE,
            title=TOO_MANY_REQUESTS_REASON,
            status=429,
            detail=self.custom_deny_message or default_deny_message(decision.reset_time_millis),
            instance=str(request.url),
        )

        headers = {"Content-Type": PROBLEM_JSON_MEDIA_TYPE}
        headers.update(build_rate_limit_headers(decision, now_ms))

        return httpx.Response(
            status_code=429,
            headers=headers,
            content=problem.to_json().encode("utf-8"),
            request=request if isinstance(request, httpx.Request) else None,
            extensions={
                "reason_phrase": TOO_MANY_REQUESTS_REASON.encode("ascii"),
                RATE_LIMITED_EXTENSION: True,
            },
        )

    def _observer_for(self, group: str) -> DenyObserver:
        override = self.limiter.get_group_override(group)
        if override is not None and override.on_denied is not None:
            return as_deny_observer(override.on_denied)
        return self.on_denied
