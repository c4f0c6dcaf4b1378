"""httpx transports that run the rate limiting middleware before each request."""

from typing import Optional, Union

import httpx

from .gate import RateLimiter
from .middleware import RateLimitMiddleware


def _as_middleware(gate: Union[RateLimiter, RateLimitMiddleware]) -> RateLimitMiddleware:
    if isinstance(gate, RateLimitMiddleware):
        return gate
    if isinstance(gate, RateLimiter):
        return RateLimitMiddleware(gate)
    raise TypeError(f"Expected RateLimiter or RateLimitMiddleware, got {type(gate).__name__}")


class RateLimitTransport(httpx.BaseTransport):
    """
    Synchronous transport wrapper.

    Usage:
        client = httpx.Client(transport=RateLimitTransport(limiter))
    """

    def __init__(
        self,
        gate: Union[RateLimiter, RateLimitMiddleware],
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.middleware = _as_middleware(gate)
        self._transport = transport or httpx.HTTPTransport()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return self.middleware.handle(request, self._transport.handle_request)

    def close(self) -> None:
        self._transport.close()


class AsyncRateLimitTransport(httpx.AsyncBaseTransport):
    """
    Asynchronous transport wrapper.

    Usage:
        client = httpx.AsyncClient(transport=AsyncRateLimitTransport(limiter))
    """

    def __init__(
        self,
        gate: Union[RateLimiter, RateLimitMiddleware],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.middleware = _as_middleware(gate)
        self._transport = transport or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self.middleware.dispatch(request, self._transport.handle_async_request)

    async def aclose(self) -> None:
        await self._transport.aclose()
