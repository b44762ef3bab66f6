"""Capability contracts between an embedding site and its bundles.

A capability is a ``typing.Protocol``: any state object that provides
the listed methods satisfies it, with no inheritance relationship to the
bundle. A bundle declares what it needs with ``Bundle(requires=...)``;
the app verifies the live state tree against those declarations when it
freezes, so a missing capability fails at startup, not mid-request.

Handlers reach a capability through their ``HandlerContext``, which
searches the embedding states from the nearest outward::

    shell = ctx.capability(ShellRenderer)
    return shell.render_shell("<p>hi</p>", title="Greeting")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from kida import Environment
from kida.template import Markup

from aviary.errors import ConfigurationError, MissingCapability

if TYPE_CHECKING:
    from aviary.bundle import Bundle
    from aviary.context import HandlerContext

logger = logging.getLogger("aviary.app")


@runtime_checkable
class ShellRenderer(Protocol):
    """Renders a content fragment into the site's standard page shell."""

    def render_shell(self, content: str, /, **context: Any) -> str: ...


class TemplateShell:
    """A ``ShellRenderer`` backed by a kida layout template.

    The fragment is injected as markup under ``content``; any extra
    keyword context (``title``, navigation links, ...) is passed through
    to the template.

    Usage::

        shell = TemplateShell(source=\"\"\"
            <html><head><title>{{ title }}</title></head>
            <body>{{ content }}</body></html>
        \"\"\")

        @dataclass
        class SiteState:
            shell: TemplateShell

            def render_shell(self, content: str, /, **context: Any) -> str:
                return self.shell.render_shell(content, **context)

    Pass ``name=`` instead of ``source=`` to load the layout from an
    environment with a loader.
    """

    __slots__ = ("_env", "_name", "_source", "_template", "defaults")

    def __init__(
        self,
        name: str | None = None,
        *,
        source: str | None = None,
        env: Environment | None = None,
        **defaults: Any,
    ) -> None:
        if (name is None) == (source is None):
            msg = "TemplateShell needs exactly one of a template name or source."
            raise ConfigurationError(msg)
        self._env = env or Environment(autoescape=True)
        self._name = name
        self._source = source
        self._template: Any = None
        self.defaults: dict[str, Any] = defaults

    def _load(self) -> Any:
        if self._template is None:
            if self._source is not None:
                self._template = self._env.from_string(self._source)
            else:
                self._template = self._env.get_template(self._name)
        return self._template

    def render_shell(self, content: str, /, **context: Any) -> str:
        """Render *content* inside the layout."""
        return self._load().render({**self.defaults, **context, "content": Markup(content)})


def provides(state: Any, capability: type) -> bool:
    """True if *state* structurally satisfies *capability*.

    Raises ``ConfigurationError`` if *capability* is not a runtime
    checkable protocol or class.
    """
    try:
        return isinstance(state, capability)
    except TypeError as exc:
        msg = (
            f"{getattr(capability, '__name__', capability)!r} cannot be checked at runtime; "
            "decorate capability protocols with @typing.runtime_checkable."
        )
        raise ConfigurationError(msg) from exc


def check_requirements(bundle: Bundle, state: Any, ancestors: tuple[Any, ...] = ()) -> None:
    """Verify every mounted bundle's ``requires`` against the live state tree.

    For each mount below *bundle*, the bundle state is fetched through
    the accessor and every required capability must be provided by the
    embedding state or one of its ancestors.

    Raises ``MissingCapability`` naming the bundle and the capability.
    """
    chain = (state, *ancestors)
    for mount in bundle.mounts:
        for capability in mount.bundle.requires:
            if not any(provides(s, capability) for s in chain):
                msg = (
                    f"Bundle {mount.bundle.name!r} mounted at {mount.prefix or '/'!r} "
                    f"requires {capability.__name__}, but no embedding state "
                    f"({', '.join(type(s).__name__ for s in chain)}) provides it."
                )
                raise MissingCapability(msg)
        child_state = mount.accessor(state)
        logger.debug(
            "mount %s -> %s (state %s)",
            mount.prefix or "/",
            mount.bundle.name,
            type(child_state).__name__,
        )
        check_requirements(mount.bundle, child_state, chain)


def find_capability[C](ctx: HandlerContext, capability: type[C]) -> C:
    """Return the nearest embedding state of *ctx* providing *capability*.

    Bundle handlers search their ancestors only, never their own state.
    A root handler has no ancestors, so its own state is searched.

    Raises ``MissingCapability`` if no state in the chain provides it.
    """
    node = ctx.parent
    if node is None:
        if provides(ctx.state, capability):
            return ctx.state
    while node is not None:
        if provides(node.state, capability):
            return node.state
        node = node.parent
    msg = f"No embedding state of {ctx.bundle.name!r} provides {capability.__name__}."
    raise MissingCapability(msg)
