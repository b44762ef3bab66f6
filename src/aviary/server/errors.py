"""Error handling pipeline.

Maps HTTPError exceptions and unexpected handler failures to Response
objects, using registered error handlers or plain defaults. Nothing
raised by a handler escapes this module: the worst case is a 500.
"""

import inspect
import logging
import traceback
from collections.abc import Callable
from typing import Any

from kida import Environment

from aviary.errors import HTTPError
from aviary.http.request import Request
from aviary.http.response import Response
from aviary.server.negotiation import negotiate

logger = logging.getLogger("aviary.server")


async def call_error_handler(
    handler: Callable[..., Any],
    request: Request,
    exc: Exception,
    kida_env: Environment | None,
) -> Response:
    """Invoke a user-registered error handler with introspected arguments.

    Error handlers may accept zero, one (request), or two (request, exc) args.
    Supports both sync and async error handlers.
    """
    params = list(inspect.signature(handler).parameters.values())

    if len(params) >= 2:
        result = handler(request, exc)
    elif len(params) == 1:
        result = handler(request)
    else:
        result = handler()

    if inspect.isawaitable(result):
        result = await result

    return negotiate(result, kida_env=kida_env)


async def handle_http_error(
    exc: HTTPError,
    request: Request,
    error_handlers: dict[int | type, Callable[..., Any]],
    kida_env: Environment | None,
    debug: bool,
) -> Response:
    """Map an HTTPError to a Response using registered error handlers."""
    logger.debug("%d %s %s - %s", exc.status, request.method, request.path, exc.detail)

    handler = error_handlers.get(type(exc)) or error_handlers.get(exc.status)
    if handler is not None:
        try:
            response = await call_error_handler(handler, request, exc, kida_env)
        except Exception as handler_exc:
            return await handle_internal_error(handler_exc, request, {}, kida_env, debug)
        # Keep the error's status unless the handler chose its own
        if response.status == 200:
            response = response.with_status(exc.status)
        for name, value in exc.headers:
            if response.header(name) is None:
                response = response.with_header(name, value)
        return response

    detail = exc.detail or f"Error {exc.status}"
    if debug and exc.detail:
        detail = f"{exc.status}: {exc.detail}"

    response = Response(body=detail, content_type="text/plain; charset=utf-8").with_status(
        exc.status
    )
    for name, value in exc.headers:
        response = response.with_header(name, value)
    return response


async def handle_internal_error(
    exc: Exception,
    request: Request,
    error_handlers: dict[int | type, Callable[..., Any]],
    kida_env: Environment | None,
    debug: bool,
) -> Response:
    """Handle unexpected exceptions as 500 errors."""
    logger.exception("500 %s %s", request.method, request.path)

    handler = error_handlers.get(type(exc)) or error_handlers.get(500)
    if handler is not None:
        try:
            response = await call_error_handler(handler, request, exc, kida_env)
        except Exception:
            logger.exception("error handler for %s failed", type(exc).__name__)
        else:
            return response

    if debug:
        body = "".join(traceback.format_exception(exc))
        return Response(body=body, status=500, content_type="text/plain; charset=utf-8")

    return Response(
        body="Internal Server Error", status=500, content_type="text/plain; charset=utf-8"
    )
