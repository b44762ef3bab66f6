"""Middleware protocol and Next type alias.

A middleware is any callable matching::

    async def my_mw(request: Request, next: Next) -> AnyResponse: ...

No base class required. Middleware runs around the dispatcher, so it
sees every request before the route tree is consulted, including
requests that end in 404 or 405.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol

from aviary.http.request import Request
from aviary.http.response import Response

type AnyResponse = Response

# The next handler in the middleware chain
type Next = Callable[[Request], Awaitable[AnyResponse]]


class Middleware(Protocol):
    """Protocol for aviary middleware.

    Accepts both functions and callable objects::

        async def timing(request: Request, next: Next) -> AnyResponse:
            start = time.monotonic()
            response = await next(request)
            return response.with_header("X-Time", f"{time.monotonic() - start:.3f}")
    """

    async def __call__(self, request: Request, next: Next) -> AnyResponse: ...
