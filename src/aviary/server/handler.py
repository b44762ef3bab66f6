"""ASGI handler and dispatcher.

The only component that touches raw ASGI directly. Converts the scope
to a typed Request, runs it through middleware, resolves it against the
site's route tree, and sends the Response back through ASGI send().

Dispatch walks the tree with ``Bundle.resolve``: the site's own grammar
first, then each mount in declaration order. On a match the handler
context chain is rebuilt from the resolution (one context per mount
crossed, each fetching its state through the mount's accessor) and the
owning bundle's handler runs in the innermost context.
"""

import inspect
import logging
from collections.abc import Callable
from contextvars import Token
from typing import Any

import anyio
from kida import Environment

from aviary._internal.asgi import Receive, Scope, Send
from aviary._internal.invoke import invoke
from aviary.bundle import Bundle, Resolution
from aviary.context import HandlerContext, context_var, request_var
from aviary.errors import HTTPError
from aviary.http.request import Request
from aviary.http.response import Response
from aviary.middleware.protocol import AnyResponse, Next
from aviary.server.errors import handle_http_error, handle_internal_error
from aviary.server.negotiation import negotiate
from aviary.server.sender import send_response

logger = logging.getLogger("aviary.server")


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    root: Bundle,
    state: Any,
    middleware: tuple[Callable[..., Any], ...],
    error_handlers: dict[int | type, Callable[..., Any]],
    kida_env: Environment | None = None,
    debug: bool,
    providers: dict[type, Callable[..., Any]] | None = None,
    handler_timeout: float | None = None,
    max_content_length: int | None = None,
) -> None:
    """Process a single HTTP request through the full pipeline."""
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)
    token: Token[Request] = request_var.set(request)

    try:

        async def dispatch(req: Request) -> AnyResponse:
            if max_content_length is not None and (req.content_length or 0) > max_content_length:
                raise HTTPError(status=413, detail="Request body too large")
            resolution = root.resolve(req.raw_path, req.method)
            context = build_context(root, resolution, state, req, kida_env=kida_env)
            logger.debug(
                "%s %s -> %s.%s",
                req.method,
                req.path,
                resolution.bundle.name,
                resolution.pattern.name,
            )
            return await invoke_handler(
                resolution,
                context,
                kida_env=kida_env,
                providers=providers,
                timeout=handler_timeout,
            )

        # Wrap middleware around the dispatch
        handler: Next = dispatch
        for mw in reversed(middleware):

            async def make_next(req: Request, _mw: Any = mw, _next: Next = handler) -> AnyResponse:
                return await _mw(req, _next)

            handler = make_next

        response = await handler(request)

    except HTTPError as exc:
        response = await handle_http_error(exc, request, error_handlers, kida_env, debug)
    except Exception as exc:
        response = await handle_internal_error(exc, request, error_handlers, kida_env, debug)
    finally:
        request_var.reset(token)

    await send_response(response, send, head=request.method == "HEAD")


def build_context(
    root: Bundle,
    resolution: Resolution,
    state: Any,
    request: Request | None,
    *,
    kida_env: Environment | None = None,
) -> HandlerContext:
    """Rebuild the context chain for *resolution*, outermost first.

    The root context holds the site state; each mount crossed adds a
    context whose state comes from that mount's accessor. Returns the
    innermost context, the one the handler runs in.
    """
    values = resolution.values()
    context = HandlerContext(
        state=state,
        bundle=root,
        route=values[0],
        request=request,
        kida_env=kida_env,
    )
    for mount, value in zip(resolution.mounts, values[1:], strict=True):
        context = context.descend(mount, value)
    return context


async def invoke_handler(
    resolution: Resolution,
    context: HandlerContext,
    *,
    kida_env: Environment | None = None,
    providers: dict[type, Callable[..., Any]] | None = None,
    timeout: float | None = None,
) -> Response:
    """Call the matched handler in *context* and negotiate its result.

    With *timeout* set, the call runs under ``anyio.fail_after`` and an
    overrun becomes a 504.
    """
    handler = resolution.handler
    kwargs = build_handler_kwargs(
        handler, context, providers, variables=resolution.pattern.variables
    )

    token = context_var.set(context)
    try:
        if timeout is None:
            result = await invoke(handler, **kwargs)
        else:
            try:
                with anyio.fail_after(timeout):
                    result = await invoke(handler, **kwargs)
            except TimeoutError:
                detail = f"Handler {resolution.pattern.name} exceeded {timeout}s"
                raise HTTPError(status=504, detail=detail) from None
        return negotiate(result, kida_env=kida_env, context=context)
    finally:
        context_var.reset(token)


def build_handler_kwargs(
    handler: Callable[..., Any],
    context: HandlerContext,
    providers: dict[type, Callable[..., Any]] | None = None,
    *,
    variables: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Inspect the handler signature and build kwargs.

    Resolution order, per parameter:

    1. ``ctx`` / ``context`` (by name or ``HandlerContext`` annotation)
    2. ``request`` (by name or ``Request`` annotation)
    3. ``route`` (by name or the route class as annotation)
    4. ``state`` -> the bundle's own state
    5. A route field of the same name (already converted to its type)
    6. Service providers (by type annotation via ``app.provide()``)

    Parameters matching none of these keep their defaults.
    """
    route = context.route
    sig = inspect.signature(handler, eval_str=True)
    kwargs: dict[str, Any] = {}

    for name, param in sig.parameters.items():
        annotation = param.annotation
        if name in ("ctx", "context") or annotation is HandlerContext:
            kwargs[name] = context
        elif name == "request" or annotation is Request:
            kwargs[name] = context.request
        elif name == "route" or (route is not None and annotation is type(route)):
            kwargs[name] = route
        elif name == "state":
            kwargs[name] = context.state
        elif name in variables:
            kwargs[name] = getattr(route, name)
        elif providers and annotation is not inspect.Parameter.empty and annotation in providers:
            kwargs[name] = providers[annotation]()

    return kwargs
