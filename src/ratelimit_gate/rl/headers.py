"""
Rate limit header codec.

Builds and parses the IETF ``RateLimit`` / ``RateLimit-Policy`` header pair
and reads the legacy ``X-RateLimit-*`` / ``X-Rate-Limit-*`` families that
upstream servers commonly send. Parsing is tolerant: malformed fields are
left out of the result and nothing here raises on bad input.
"""

import math
import re
import time
import logging
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import httpx

from .limiter import RateLimitDecision

logger = logging.getLogger(__name__)

RATE_LIMIT_HEADER = "RateLimit"
RATE_LIMIT_POLICY_HEADER = "RateLimit-Policy"
RATE_LIMIT_LIMIT_HEADER = "RateLimit-Limit"
RATE_LIMIT_REMAINING_HEADER = "RateLimit-Remaining"
RATE_LIMIT_RESET_HEADER = "RateLimit-Reset"
RETRY_AFTER_HEADER = "Retry-After"

LEGACY_LIMIT_HEADERS = ("x-ratelimit-limit", "x-rate-limit-limit")
LEGACY_WINDOW_HEADERS = ("x-ratelimit-window", "x-rate-limit-window")
LEGACY_RESET_HEADERS = ("x-ratelimit-reset", "x-rate-limit-reset")

# Reset values below this are delta seconds rather than a unix timestamp.
EPOCH_THRESHOLD_SECONDS = 1_000_000_000

_POLICY_NAME_RE = re.compile(
    r'^\s*(?:"((?:[^"\\]|\\.)*)"|([A-Za-z0-9_.:/*+\-]+)(?=\s*(?:;|,|$)))'
)
_ESCAPED_CHAR_RE = re.compile(r"\\(.)")
_INTEGER_RE = re.compile(r"^\s*(\d+)\s*$")


def _param_re(name: str) -> "re.Pattern[str]":
    return re.compile(r"(?:^|;)\s*" + name + r"\s*=\s*(\d+)(?=\s*(?:;|,|$))")


_REMAINING_RE = _param_re("r")
_RESET_RE = _param_re("t")
_QUOTA_RE = _param_re("q")
_WINDOW_RE = _param_re("w")

HeadersLike = Union[httpx.Headers, Dict[str, str], Iterable, None]


def _quote(policy: str) -> str:
    escaped = str(policy).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _whole_seconds(seconds: Optional[float]) -> Optional[int]:
    """Floor to whole seconds; None unless the result is positive."""
    if seconds is None:
        return None
    whole = int(math.floor(seconds))
    return whole if whole > 0 else None


def build_usage_header(policy: str, remaining: int, reset_seconds: Optional[int] = None) -> str:
    """Build a ``RateLimit`` value, e.g. ``"default";r=50;t=30``."""
    value = f"{_quote(policy)};r={max(0, int(remaining))}"
    reset = _whole_seconds(reset_seconds)
    if reset is not None:
        value += f";t={reset}"
    return value


def build_policy_header(policy: str, limit: int, window_seconds: Optional[float] = None) -> str:
    """Build a ``RateLimit-Policy`` value, e.g. ``"default";q=100;w=60``."""
    value = f"{_quote(policy)};q={int(limit)}"
    window = _whole_seconds(window_seconds)
    if window is not None:
        value += f";w={window}"
    return value


def _split_policy_name(value: str) -> Tuple[Optional[str], str]:
    """Split off the leading policy name; parameters are read from the rest only."""
    match = _POLICY_NAME_RE.match(value)
    if not match:
        return None, value
    rest = value[match.end():]
    if match.group(1) is not None:
        return _ESCAPED_CHAR_RE.sub(r"\1", match.group(1)), rest
    return match.group(2), rest


def _int_param(pattern: "re.Pattern[str]", value: str) -> Optional[int]:
    match = pattern.search(value)
    return int(match.group(1)) if match else None


def parse_usage_header(value: Optional[str]) -> Dict[str, Any]:
    """
    Parse a ``RateLimit`` value into ``policy``, ``remaining`` and ``reset_seconds``.
    Fields that are missing or malformed are absent from the result.
    """
    result: Dict[str, Any] = {}
    if not isinstance(value, str) or not value.strip():
        return result

    policy, params = _split_policy_name(value)
    if policy is not None:
        result["policy"] = policy
    remaining = _int_param(_REMAINING_RE, params)
    if remaining is not None:
        result["remaining"] = remaining
    reset_seconds = _int_param(_RESET_RE, params)
    if reset_seconds is not None:
        result["reset_seconds"] = reset_seconds
    return result


def parse_policy_header(value: Optional[str]) -> Dict[str, Any]:
    """
    Parse a ``RateLimit-Policy`` value into ``policy``, ``limit`` and ``window_seconds``.
    Fields that are missing or malformed are absent from the result.
    """
    result: Dict[str, Any] = {}
    if not isinstance(value, str) or not value.strip():
        return result

    policy, params = _split_policy_name(value)
    if policy is not None:
        result["policy"] = policy
    limit = _int_param(_QUOTA_RE, params)
    if limit is not None:
        result["limit"] = limit
    window_seconds = _int_param(_WINDOW_RE, params)
    if window_seconds is not None:
        result["window_seconds"] = window_seconds
    return result


def _as_headers(headers: HeadersLike) -> httpx.Headers:
    if isinstance(headers, httpx.Headers):
        return headers
    if headers is None:
        return httpx.Headers()
    try:
        return httpx.Headers(headers)
    except (TypeError, ValueError) as e:
        logger.debug("Ignoring unreadable headers", extra={"error": str(e)})
        return httpx.Headers()


def _first_int(headers: httpx.Headers, names: Iterable[str], minimum: int = 0) -> Optional[int]:
    """First value among ``names`` that is an integer string of at least ``minimum``."""
    for name in names:
        raw = headers.get(name)
        if raw is None:
            continue
        match = _INTEGER_RE.match(raw)
        if not match:
            logger.debug("Ignoring malformed rate limit header", extra={"header": name, "value": raw})
            continue
        value = int(match.group(1))
        if value >= minimum:
            return value
    return None


def parse_negotiation_patch(headers: HeadersLike, now_ms: Optional[float] = None) -> Dict[str, Any]:
    """
    Extract a policy patch (``max_requests``, ``window_seconds``) from response headers.

    Standards-track values win per field; the legacy families are consulted
    only for fields the standards-track pair does not provide. Without an
    explicit window, a reset hint yields ``max(1, reset - now)`` seconds.
    Returns an empty dict when nothing usable is present.
    """
    h = _as_headers(headers)
    now_seconds = (time.time() * 1000 if now_ms is None else now_ms) / 1000

    policy = parse_policy_header(h.get(RATE_LIMIT_POLICY_HEADER))
    usage = parse_usage_header(h.get(RATE_LIMIT_HEADER))

    patch: Dict[str, Any] = {}

    max_requests = policy.get("limit")
    if max_requests is None:
        max_requests = _first_int(h, LEGACY_LIMIT_HEADERS)
    if max_requests is not None:
        patch["max_requests"] = max_requests

    # A zero window is treated as absent.
    window_seconds = policy.get("window_seconds") or None
    if window_seconds is None:
        window_seconds = _first_int(h, LEGACY_WINDOW_HEADERS, minimum=1)
    if window_seconds is None:
        reset_epoch = None
        if "reset_seconds" in usage:
            reset_epoch = now_seconds + usage["reset_seconds"]
        else:
            legacy_reset = _first_int(h, LEGACY_RESET_HEADERS)
            if legacy_reset is not None:
                if legacy_reset >= EPOCH_THRESHOLD_SECONDS:
                    reset_epoch = legacy_reset
                else:
                    reset_epoch = now_seconds + legacy_reset
        if reset_epoch is not None:
            window_seconds = max(1, int(math.ceil(reset_epoch - now_seconds)))
    if window_seconds is not None and window_seconds > 0:
        patch["window_seconds"] = window_seconds

    return patch


def build_rate_limit_headers(decision: RateLimitDecision, now_ms: float) -> Dict[str, str]:
    """Headers describing a denial: the standards pair plus legacy numeric headers."""
    reset_seconds = decision.retry_after_seconds(now_ms)
    return {
        RATE_LIMIT_HEADER: build_usage_header(decision.group, decision.remaining, reset_seconds),
        RATE_LIMIT_POLICY_HEADER: build_policy_header(
            decision.group, decision.limit, decision.window_seconds
        ),
        RATE_LIMIT_LIMIT_HEADER: str(decision.limit),
        RATE_LIMIT_REMAINING_HEADER: str(decision.remaining),
        RATE_LIMIT_RESET_HEADER: str(math.ceil(decision.reset_time_millis / 1000)),
        RETRY_AFTER_HEADER: str(reset_seconds),
    }
