"""Rate limiting group key strategies."""

import inspect
from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

import httpx

GLOBAL_GROUP = "global"


class GroupingStrategy(ABC):
    """Maps a request URL (and optionally its HTTP method) to the group key
    its requests are counted under.

    Implementations must be deterministic for a given URL and method for the
    lifetime of the limiter that owns them.
    """

    @abstractmethod
    def group_for(self, url: str, method: Optional[str] = None) -> str:
        pass

    def __call__(self, url: str, method: Optional[str] = None) -> str:
        return self.group_for(url, method)


class GlobalGrouping(GroupingStrategy):
    """Every request shares one group."""

    def group_for(self, url: str, method: Optional[str] = None) -> str:
        return GLOBAL_GROUP


class HostnameGrouping(GroupingStrategy):
    """
    Group by URL hostname, ignoring scheme, port and method.
    URLs without a host fall back to the global group.
    """

    def group_for(self, url: str, method: Optional[str] = None) -> str:
        try:
            host = httpx.URL(str(url)).host
        except (httpx.InvalidURL, TypeError, ValueError):
            return GLOBAL_GROUP
        return host.lower() if host else GLOBAL_GROUP


def _accepts_method(fn: Callable) -> bool:
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return False
    positional = 0
    for param in params:
        if param.kind == param.VAR_POSITIONAL:
            return True
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            positional += 1
    return positional >= 2


class CallableGrouping(GroupingStrategy):
    """Adapts a plain ``url -> group`` or ``(url, method) -> group`` function."""

    def __init__(self, fn: Callable[..., str]):
        self._fn = fn
        self._pass_method = _accepts_method(fn)

    def group_for(self, url: str, method: Optional[str] = None) -> str:
        if self._pass_method:
            return str(self._fn(url, method))
        return str(self._fn(url))


GroupingLike = Union[GroupingStrategy, Callable[..., str], None]


def as_grouping_strategy(value: GroupingLike) -> GroupingStrategy:
    """Normalize None, a strategy or a callable into a strategy."""
    if value is None:
        return GlobalGrouping()
    if isinstance(value, GroupingStrategy):
        return value
    if callable(value):
        return CallableGrouping(value)
    raise TypeError(f"Grouping must be a GroupingStrategy or callable, got {type(value).__name__}")


def grouping_by_name(name: Optional[str]) -> GroupingStrategy:
    """Resolve a named built-in strategy (``global`` or ``hostname``)."""
    normalized = (name or GLOBAL_GROUP).strip().lower()
    if normalized == GLOBAL_GROUP:
        return GlobalGrouping()
    if normalized == "hostname":
        return HostnameGrouping()
    raise ValueError(f"Unknown grouping strategy: {name}")
