"""Aviary application class — the embedding site.

``App`` is the root bundle of a site: it declares its own routes, mounts
bundles, and owns the process-wide application state that every mounted
bundle's state is reached from.

Mutable during setup (routes, mounts, middleware, error handlers).
Frozen at runtime when ``app.run()`` or ``__call__()`` is first invoked.
"""

import inspect
import logging
import threading
from collections.abc import Callable
from typing import Any

from kida import Environment

from aviary._internal.asgi import Receive, Scope, Send
from aviary._internal.types import ErrorHandler
from aviary.bundle import Bundle
from aviary.capabilities import check_requirements
from aviary.config import AppConfig
from aviary.middleware.protocol import Middleware
from aviary.server.handler import handle_request
from aviary.templating.integration import create_environment

logger = logging.getLogger("aviary.app")


class App(Bundle):
    """The aviary application.

    Usage::

        @dataclass
        class SiteState:
            wiki: WikiState

            def render_shell(self, content: str, /, **context: Any) -> str:
                return f"<html><body>{content}</body></html>"

        app = App(state=SiteState(wiki=WikiState()))

        @app.route("/", Home)
        def home(ctx: HandlerContext) -> str:
            return f'<a href="{ctx.url_for(Wiki(WikiHome()))}">wiki</a>'

        app.mount("/wiki", wiki, wrap=Wiki, accessor=lambda s: s.wiki)

    Thread safety:
        The setup phase is single-threaded (decorators at import time).
        The freeze transition uses a Lock + double-check so exactly one
        thread compiles the route tree, even if several workers receive
        their first request at once. After that, dispatch only reads
        shared structures.
    """

    __slots__ = (
        "_custom_kida_env",
        "_error_handlers",
        "_freeze_lock",
        "_kida_env",
        "_middleware",
        "_middleware_list",
        "_providers",
        "_shutdown_hooks",
        "_startup_hooks",
        "_template_filters",
        "_template_globals",
        "config",
        "state",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        state: Any = None,
        name: str = "app",
        kida_env: Environment | None = None,
    ) -> None:
        super().__init__(name)
        self.config: AppConfig = config or AppConfig()
        self.state: Any = state
        self._middleware_list: list[Middleware] = []
        self._error_handlers: dict[int | type, ErrorHandler] = {}
        self._template_filters: dict[str, Callable[..., Any]] = {}
        self._template_globals: dict[str, Any] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._providers: dict[type, Callable[..., Any]] = {}
        self._freeze_lock: threading.Lock = threading.Lock()
        self._custom_kida_env: Environment | None = kida_env

        # Compiled state: set during _freeze()
        self._middleware: tuple[Callable[..., Any], ...] = ()
        self._kida_env: Environment | None = None

    # -- Service injection --

    def provide(self, annotation: type, factory: Callable[..., Any]) -> None:
        """Register a provider factory for dependency injection.

        When a handler parameter's type annotation matches *annotation*
        (in the site or any mounted bundle), aviary calls *factory* with
        no arguments and injects the result::

            app.provide(Clock, SystemClock)

            @wiki.route("/{slug}", WikiPage)
            def page(slug: str, clock: Clock) -> str: ...
        """
        self._check_not_frozen()
        self._providers[annotation] = factory

    # -- Error handlers --

    def error(
        self,
        code_or_exception: int | type[Exception],
    ) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler via decorator.

        Keyed by status code (``404``, ``405``, ``500``) or exception type.
        Applies to the whole tree, mounted bundles included.
        """

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    # -- Middleware --

    def add_middleware(self, middleware: Middleware) -> None:
        """Add a middleware to the pipeline."""
        self._check_not_frozen()
        self._middleware_list.append(middleware)

    # -- Template integration --

    def template_filter(
        self,
        name: str | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register a kida template filter."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self._check_not_frozen()
            self._template_filters[name or func.__name__] = func
            return func

        return decorator

    def template_global(
        self,
        name: str | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register a kida template global."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self._check_not_frozen()
            self._template_globals[name or func.__name__] = func
            return func

        return decorator

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync startup hook via decorator.

        Hooks run in registration order during ASGI lifespan startup,
        after the route tree is frozen and validated.
        """
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync shutdown hook via decorator."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- Running --

    def run(self, host: str | None = None, port: int | None = None) -> None:
        """Freeze the app and serve it with the pounce dev server."""
        self._ensure_frozen()

        from aviary.server.dev import run_dev_server

        run_dev_server(
            self,
            host or self.config.host,
            port or self.config.port,
            reload=self.config.debug,
            log_level=self.config.log_level,
        )

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point.

        Handles lifespan scopes directly, then delegates HTTP scopes to
        the request pipeline.
        """
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        self._ensure_frozen()

        await handle_request(
            scope,
            receive,
            send,
            root=self,
            state=self.state,
            middleware=self._middleware,
            error_handlers=self._error_handlers,
            kida_env=self._kida_env,
            debug=self.config.debug,
            providers=self._providers or None,
            handler_timeout=self.config.handler_timeout,
            max_content_length=self.config.max_content_length,
        )

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Run the ASGI lifespan protocol.

        Freezes the app at startup (so configuration errors surface
        before the first request), then runs startup/shutdown hooks.
        """
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    self._ensure_frozen()
                    await self.startup()
                except Exception as exc:
                    logger.exception("startup failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                await self.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def startup(self) -> None:
        """Run startup hooks in registration order."""
        for hook in self._startup_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result

    async def shutdown(self) -> None:
        """Run shutdown hooks in registration order."""
        for hook in self._shutdown_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Compile the app into its frozen runtime state.

        MUST only be called while holding _freeze_lock (via
        ``_ensure_frozen``).
        """
        # 1. Validate capability requirements against the live state tree
        check_requirements(self, self.state)

        # 2. Capture middleware as an immutable tuple
        self._middleware = tuple(self._middleware_list)

        # 3. Initialize the kida environment
        if self._custom_kida_env is not None:
            self._kida_env = self._custom_kida_env
            if self._template_filters:
                self._kida_env.update_filters(self._template_filters)
            for name, value in self._template_globals.items():
                self._kida_env.add_global(name, value)
        else:
            self._kida_env = create_environment(
                self.config,
                self._template_filters,
                self._template_globals,
            )

        # 4. Compile every grammar in the tree; marks the app frozen
        Bundle._freeze(self)

        if logger.isEnabledFor(logging.DEBUG):
            for entry in self.walk():
                logger.debug(
                    "route %-8s %s -> %s.%s",
                    ",".join(sorted(entry.methods)),
                    entry.path,
                    entry.bundle,
                    entry.route_type.__name__,
                )
