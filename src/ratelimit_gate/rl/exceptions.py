"""Rate limiting exceptions."""

import math
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class RateLimitError(Exception):
    """Base exception for rate limiting errors."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "rate_limit_error"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and error payloads."""
        return {
            "error_type": self.__class__.__name__,
            "error": self.error_code,
            "message": self.message,
        }


def default_deny_message(reset_time_millis: float) -> str:
    """Message used when a request is denied and no custom message is set."""
    reset_at = datetime.fromtimestamp(reset_time_millis / 1000, tz=timezone.utc)
    return f"Rate limit exceeded. Try again after {reset_at.isoformat(timespec='milliseconds')}"


class RateLimitExceededError(RateLimitError):
    """
    Raised when a group has no remaining capacity in its current window.

    Attributes:
        reset_time_millis: Epoch milliseconds at which capacity is expected back
        remaining_requests: Remaining capacity at raise time (always 0)
        group: Group key the request was counted against
    """

    def __init__(
        self,
        reset_time_millis: float,
        remaining_requests: int = 0,
        group: Optional[str] = None,
        message: Optional[str] = None,
    ):
        super().__init__(message or default_deny_message(reset_time_millis), "rate_limit_exceeded")
        self.reset_time_millis = int(reset_time_millis)
        self.remaining_requests = remaining_requests
        self.group = group

    @property
    def retry_after(self) -> int:
        """Whole seconds until the reset time, never negative."""
        delta_ms = self.reset_time_millis - time.time() * 1000
        return max(0, math.ceil(delta_ms / 1000))

    def get_http_status_code(self) -> int:
        return 429

    def get_retry_after_header(self) -> str:
        return str(self.retry_after)

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            "group": self.group,
            "reset_time_millis": self.reset_time_millis,
            "remaining_requests": self.remaining_requests,
            "retry_after": self.retry_after,
        })
        return base_dict


class RateLimitConfigurationError(RateLimitError):
    """Exception raised when rate limiting configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_field: Optional[str] = None,
        provided_value: Optional[Any] = None,
    ):
        super().__init__(message, "rate_limit_configuration_error")
        self.config_field = config_field
        self.provided_value = provided_value

    def to_dict(self) -> Dict[str, Any]:
        base_dict = super().to_dict()
        base_dict.update({
            "config_field": self.config_field,
            "provided_value": self.provided_value,
        })
        return base_dict
