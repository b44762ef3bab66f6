"""Per-request handler context and request-scoped context variables.

``HandlerContext`` is the two-level environment a handler runs in: its
own bundle's ``state``, plus ``parent``, a delegation handle to the
context of the bundle (or site) that mounted it. Contexts are created
fresh for each request and dropped with the response; they are never
shared between tasks.

Provides:
- ``HandlerContext``: the context object passed to handlers.
- ``request_var`` / ``get_request()``: the current ``Request``.
- ``context_var`` / ``get_context()``: the current ``HandlerContext``.

Thread safety:
    ``ContextVar`` is task-local under asyncio and thread-local under
    free-threading. No locks needed.
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from aviary.bundle import join_path
from aviary.capabilities import ShellRenderer, find_capability
from aviary.errors import UnknownRoute
from aviary.http.request import Request
from aviary.http.response import Redirect

if TYPE_CHECKING:
    from kida import Environment

    from aviary.bundle import Bundle, Mount


@dataclass(frozen=True, slots=True)
class HandlerContext:
    """The execution context of one handler invocation.

    Attributes:
        state: This bundle's state (the app state for site handlers).
        bundle: The bundle whose handler is running.
        route: The decoded route value, local to ``bundle``.
        request: The current request.
        parent: Context of the embedding bundle; ``None`` at the root.
        mount: The mount that embedded ``bundle``; ``None`` at the root.
        base_path: Absolute, percent-encoded path prefix of ``bundle``
            (``""`` at the root).
    """

    state: Any
    bundle: Bundle
    route: Any = None
    request: Request | None = None
    parent: HandlerContext | None = None
    mount: Mount | None = None
    base_path: str = ""
    kida_env: Environment | None = field(default=None, repr=False, compare=False)

    # -- Delegation --

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def embedding(self) -> Any:
        """The embedding site's state.

        For a root context the site is its own embedding, so this is
        ``state``.
        """
        return self.parent.state if self.parent is not None else self.state

    @property
    def root(self) -> HandlerContext:
        """The outermost (site-level) context."""
        node: HandlerContext = self
        while node.parent is not None:
            node = node.parent
        return node

    def lift(self) -> HandlerContext:
        """Step out to the embedding bundle's context.

        Raises ``LookupError`` at the root.
        """
        if self.parent is None:
            msg = f"{self.bundle.name!r} is the root; there is no embedding context."
            raise LookupError(msg)
        return self.parent

    def descend(self, mount: Mount, route: Any = None) -> HandlerContext:
        """Build the context for a bundle mounted below this one."""
        return HandlerContext(
            state=mount.accessor(self.state),
            bundle=mount.bundle,
            route=route,
            request=self.request,
            parent=self,
            mount=mount,
            base_path=self.base_path + mount.url_prefix,
            kida_env=self.kida_env,
        )

    # -- Capabilities --

    def capability[C](self, capability: type[C]) -> C:
        """Nearest embedding state implementing *capability*."""
        return find_capability(self, capability)

    def render_shell(self, content: Any, /, **context: Any) -> str:
        """Render *content* with the embedding site's shell.

        *content* may be an HTML string or a ``Template``,
        ``InlineTemplate``, or ``Fragment``.
        """
        from aviary.templating.integration import render_content

        html = render_content(self.kida_env, content)
        return self.capability(ShellRenderer).render_shell(html, **context)

    # -- Links --

    def url_for(self, route: Any) -> str:
        """Absolute path for *route*.

        Routes of this bundle (or wrapped for one of its mounts) are
        encoded here and prefixed with ``base_path``; anything else is
        handed to the embedding context.

        Raises ``UnknownRoute`` if no bundle up the chain declares it.
        """
        node: HandlerContext | None = self
        while node is not None:
            if node.bundle.knows(route):
                return join_path(node.base_path, node.bundle.encode(route))
            node = node.parent
        msg = f"{type(route).__name__} is not a route of {self.bundle.name!r} or any embedding site"
        raise UnknownRoute(msg)

    def url_for_parent(self, route: Any) -> str:
        """Absolute path for a route of the embedding bundle."""
        return self.lift().url_for(route)

    def redirect(self, route: Any, status: int = 302) -> Redirect:
        """A ``Redirect`` to *route*."""
        return Redirect(self.url_for(route), status=status)


# -- Request context --

request_var: ContextVar[Request] = ContextVar("aviary_request")
"""The current request. Set by the ASGI handler before dispatch."""

context_var: ContextVar[HandlerContext] = ContextVar("aviary_handler_context")
"""The current handler context. Set by the dispatcher around each handler call."""


def get_request() -> Request:
    """Return the current request.

    Raises ``LookupError`` if called outside a request.
    """
    return request_var.get()


def get_context() -> HandlerContext:
    """Return the current handler context.

    Raises ``LookupError`` if called outside a handler.
    """
    return context_var.get()
