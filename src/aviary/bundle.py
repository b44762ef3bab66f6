"""Bundles and mounts — composing route grammars into a tree.

A ``Bundle`` is a self-contained set of typed routes and handlers. A
bundle can ``mount()`` other bundles under a literal path prefix; the
mounted grammar then appears, from the outside, as one sub-tree of the
parent's grammar. Route values cross the boundary through the mount's
``wrap`` class, so a parent refers to a child route as
``Wiki(WikiPage(slug="home"))`` and never as a string.

Mounting composes: the root ``App`` is itself a bundle, and a bundle
mounted into it may mount further bundles. Decoding walks the tree,
wrapping on the way out; encoding walks it the other way, unwrapping
and prepending prefixes.
"""

from __future__ import annotations

import dataclasses
import logging
import operator
from collections.abc import Callable, Iterator
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import quote, unquote

from aviary._internal.types import Accessor, Handler
from aviary.errors import ConfigurationError, MethodNotAllowed, NotFound, UnknownRoute
from aviary.routing.grammar import Grammar, split_path
from aviary.routing.pattern import RoutePattern, parse_path

logger = logging.getLogger("aviary.routing")


def join_path(prefix: str, path: str) -> str:
    """Join a mount prefix (``""`` or ``/a/b``) and a bundle-relative path."""
    if path == "/":
        return prefix or "/"
    return prefix + path


@dataclass(frozen=True, slots=True)
class Mount:
    """Binds a bundle into its parent's grammar.

    Attributes:
        prefix: Normalised literal prefix (``""`` for a root mount).
        bundle: The mounted bundle.
        wrap: Route class lifting a bundle route into a parent route.
        unwrap: Inverse of ``wrap``.
        accessor: Extracts the bundle's state from the parent's state.
    """

    prefix: str
    bundle: Bundle
    wrap: type
    unwrap: Callable[[Any], Any]
    accessor: Accessor

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(split_path(self.prefix))

    @property
    def url_prefix(self) -> str:
        """``prefix`` percent-encoded for use in URLs."""
        return "".join("/" + quote(seg, safe="") for seg in self.segments)

    def strip(self, parts: list[str]) -> list[str] | None:
        """Remove this mount's prefix from raw *parts*, or ``None`` if not under it."""
        segments = self.segments
        if tuple(unquote(p) for p in parts[: len(segments)]) != segments:
            return None
        return parts[len(segments) :]

    def overlaps(self, other: Mount) -> bool:
        """True if either prefix is a segment-wise prefix of the other."""
        mine, theirs = self.segments, other.segments
        shortest = min(len(mine), len(theirs))
        return mine[:shortest] == theirs[:shortest]

    def encode(self, value: Any) -> str:
        """Encode a wrapped route value to a path in the parent's space."""
        return join_path(self.url_prefix, self.bundle.encode(self.unwrap(value)))

    def decode(self, path: str, method: str) -> Any | None:
        """Decode a parent-space path, returning a wrapped route value."""
        rest = self.strip(split_path(path))
        if rest is None:
            return None
        resolution, _ = self.bundle.lookup(rest, method)
        if resolution is None:
            return None
        return self.wrap(resolution.value)


@dataclass(frozen=True, slots=True)
class Resolution:
    """A decoded request target.

    Attributes:
        value: The route value at the resolving bundle's level (wrapped
            once per mount crossed).
        pattern: The innermost matched pattern, which owns the handler.
        bundle: The bundle that declared ``pattern``.
        mounts: Mounts crossed, outermost first.
    """

    value: Any
    pattern: RoutePattern
    bundle: Bundle
    mounts: tuple[Mount, ...] = ()

    @property
    def handler(self) -> Handler:
        assert self.pattern.handler is not None
        return self.pattern.handler

    def lifted(self, mount: Mount) -> Resolution:
        """This resolution as seen from *mount*'s parent."""
        return replace(self, value=mount.wrap(self.value), mounts=(mount, *self.mounts))

    def values(self) -> list[Any]:
        """Route value at every level, outermost first."""
        levels = [self.value]
        for mount in self.mounts:
            levels.append(mount.unwrap(levels[-1]))
        return levels

    @property
    def route(self) -> Any:
        """The innermost, bundle-local route value."""
        return self.values()[-1]


@dataclass(frozen=True, slots=True)
class RouteEntry:
    """One row of a flattened route table (see ``Bundle.walk``)."""

    path: str
    methods: frozenset[str]
    route_type: type
    handler: Handler | None
    bundle: str
    depth: int


def _unwrapper_for(wrap: type) -> Callable[[Any], Any]:
    if dataclasses.is_dataclass(wrap):
        init_fields = [f for f in dataclasses.fields(wrap) if f.init]
        if len(init_fields) == 1:
            return operator.attrgetter(init_fields[0].name)
    msg = (
        f"Cannot derive unwrap for {wrap.__name__}: use a dataclass with exactly "
        "one field, or pass unwrap= explicitly."
    )
    raise ConfigurationError(msg)


class Bundle:
    """A reusable group of typed routes, handlers, and mounted bundles.

    Usage::

        @dataclass(frozen=True)
        class WikiHome: ...

        @dataclass(frozen=True)
        class WikiPage:
            slug: str

        wiki = Bundle("wiki", requires=(ShellRenderer,))

        @wiki.route("/", WikiHome)
        def home(ctx: HandlerContext) -> str:
            return ctx.render_shell("<h1>Wiki</h1>", title="Wiki")

        @wiki.route("/{slug}", WikiPage, methods=["GET", "POST"])
        def page(ctx: HandlerContext, slug: str) -> str: ...

    ``requires`` lists the capability protocols the embedding state (or
    one of its ancestors) must satisfy; the app checks them at startup.
    """

    __slots__ = ("_frozen", "_grammar", "_mounts", "name", "requires")

    def __init__(self, name: str | None = None, *, requires: tuple[type, ...] = ()) -> None:
        self.name: str = name or type(self).__name__.lower()
        self.requires: tuple[type, ...] = tuple(requires)
        self._grammar = Grammar()
        self._mounts: list[Mount] = []
        self._frozen = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} routes={len(self._grammar)} mounts={len(self._mounts)}>"

    # -- Route registration --

    def route(
        self,
        path: str,
        route_type: type,
        *,
        methods: list[str] | None = None,
        name: str | None = None,
    ) -> Callable[[Handler], Handler]:
        """Register a handler for *route_type* at *path* via decorator.

        Args:
            path: Path pattern. ``{var}`` segments must match the route
                class's fields one to one; ``{var:type}`` forces a
                converter, otherwise it is inferred from the annotation.
            route_type: The class whose instances represent this route.
            methods: HTTP methods. Defaults to ``["GET"]``.
            name: Display name for route listings. Defaults to the class name.
        """

        def decorator(func: Handler) -> Handler:
            self.add_route(path, route_type, func, methods=methods, name=name)
            return func

        return decorator

    def add_route(
        self,
        path: str,
        route_type: type,
        handler: Handler,
        *,
        methods: list[str] | None = None,
        name: str | None = None,
    ) -> RoutePattern:
        """Register a handler for *route_type* at *path*."""
        self._check_not_frozen()
        if any(m.wrap is route_type for m in self._mounts):
            msg = f"{route_type.__name__} is already used as a mount wrapper in {self.name!r}."
            raise ConfigurationError(msg)
        pattern = RoutePattern.compile(
            path,
            route_type,
            frozenset(m.upper() for m in (methods or ["GET"])),
            handler=handler,
            name=name,
        )
        self._grammar.add(pattern)
        return pattern

    # -- Mounting --

    def mount(
        self,
        prefix: str,
        bundle: Bundle,
        *,
        wrap: type,
        accessor: Accessor,
        unwrap: Callable[[Any], Any] | None = None,
    ) -> Mount:
        """Mount *bundle* under the literal *prefix*.

        Args:
            prefix: Literal path prefix such as ``"/wiki"``. Must not
                overlap another mount's prefix in this bundle.
            bundle: The bundle to embed. Each bundle instance may be
                mounted once per parent, and never into itself.
            wrap: Route class lifting bundle routes into this bundle's
                route space, e.g. ``Wiki`` for ``Wiki(WikiPage("home"))``.
            accessor: ``parent_state -> bundle_state``.
            unwrap: Inverse of ``wrap``. Derived automatically when
                ``wrap`` is a single-field dataclass.
        """
        self._check_not_frozen()

        segments = parse_path(prefix)
        if any(seg.is_param for seg in segments):
            msg = f"Mount prefix {prefix!r} must be literal; variables are not allowed."
            raise ConfigurationError(msg)
        if not isinstance(wrap, type):
            msg = f"Mount wrap for {prefix!r} must be a route class, got {wrap!r}."
            raise ConfigurationError(msg)
        if bundle is self or bundle.contains(self):
            msg = f"Mounting {bundle.name!r} into {self.name!r} would create a cycle."
            raise ConfigurationError(msg)
        if wrap in self._grammar:
            msg = f"{wrap.__name__} is already a route of {self.name!r}; it cannot also wrap a mount."
            raise ConfigurationError(msg)

        mount = Mount(
            prefix="".join(f"/{seg.value}" for seg in segments),
            bundle=bundle,
            wrap=wrap,
            unwrap=unwrap or _unwrapper_for(wrap),
            accessor=accessor,
        )
        for existing in self._mounts:
            if existing.bundle is bundle:
                msg = f"Bundle {bundle.name!r} is already mounted at {existing.prefix or '/'!r}."
                raise ConfigurationError(msg)
            if existing.wrap is wrap:
                msg = f"{wrap.__name__} already wraps the mount at {existing.prefix or '/'!r}."
                raise ConfigurationError(msg)
            if existing.overlaps(mount):
                msg = (
                    f"Mount prefix {mount.prefix or '/'!r} overlaps "
                    f"{existing.prefix or '/'!r} in {self.name!r}."
                )
                raise ConfigurationError(msg)

        self._mounts.append(mount)
        logger.debug("%s: mounted %s at %s", self.name, bundle.name, mount.prefix or "/")
        return mount

    @property
    def mounts(self) -> tuple[Mount, ...]:
        return tuple(self._mounts)

    @property
    def grammar(self) -> Grammar:
        return self._grammar

    def contains(self, bundle: Bundle) -> bool:
        """True if *bundle* is mounted anywhere below this bundle."""
        return any(m.bundle is bundle or m.bundle.contains(bundle) for m in self._mounts)

    # -- Codec --

    def lookup(self, parts: list[str], method: str) -> tuple[Resolution | None, frozenset[str]]:
        """Resolve pre-split segments against this bundle and its mounts.

        Own routes are tried first, then mounts in declaration order.
        Returns ``(resolution, frozenset())`` on success, otherwise
        ``(None, allowed)`` where *allowed* is every method that some
        matching shape would have accepted.
        """
        match = self._grammar.lookup(parts, method)
        if match.pattern is not None:
            return Resolution(value=match.value, pattern=match.pattern, bundle=self), frozenset()

        allowed = set(match.allowed)
        for mount in self._mounts:
            rest = mount.strip(parts)
            if rest is None:
                continue
            inner, inner_allowed = mount.bundle.lookup(rest, method)
            if inner is not None:
                return inner.lifted(mount), frozenset()
            allowed |= inner_allowed
        return None, frozenset(allowed)

    def resolve(self, path: str, method: str) -> Resolution:
        """Resolve *path* and *method*, raising the matching HTTP error.

        Raises ``NotFound`` if nothing in the tree matches the path.
        Raises ``MethodNotAllowed`` if the path matches but not for *method*.
        """
        resolution, allowed = self.lookup(split_path(path), method)
        if resolution is not None:
            return resolution
        if allowed:
            raise MethodNotAllowed(allowed)
        raise NotFound(f"No route matches {method} {path!r}")

    def decode(self, path: str, method: str) -> Any | None:
        """Decode *path* into a route value in this bundle's space, or ``None``."""
        resolution, _ = self.lookup(split_path(path), method)
        return resolution.value if resolution is not None else None

    def allowed_methods(self, path: str) -> frozenset[str]:
        """Every method some route in the tree accepts for *path*."""
        _, allowed = self.lookup(split_path(path), "")
        return allowed

    def encode(self, value: Any) -> str:
        """Encode a route value (own, or wrapped for a mount) as a path.

        Raises ``UnknownRoute`` if neither this bundle nor any mount
        declares the value's type.
        """
        if type(value) in self._grammar:
            return self._grammar.encode(value)
        for mount in self._mounts:
            if type(value) is mount.wrap:
                return mount.encode(value)
        msg = f"{type(value).__name__} is not a route of {self.name!r}"
        raise UnknownRoute(msg)

    url_for = encode

    def knows(self, value: Any) -> bool:
        """True if ``encode(value)`` would find a pattern for *value*'s type."""
        return type(value) in self._grammar or any(type(value) is m.wrap for m in self._mounts)

    # -- Introspection --

    def walk(self, prefix: str = "", depth: int = 0) -> Iterator[RouteEntry]:
        """Yield the flattened route table, own routes before mounted ones."""
        for pattern in self._grammar.patterns:
            yield RouteEntry(
                path=join_path(prefix, pattern.path.rstrip("/") or "/"),
                methods=pattern.methods,
                route_type=pattern.route_type,
                handler=pattern.handler,
                bundle=self.name,
                depth=depth,
            )
        for mount in self._mounts:
            yield from mount.bundle.walk(prefix + mount.prefix, depth + 1)

    # -- Freezing --

    def _freeze(self) -> None:
        """Compile this bundle's grammar and every mounted bundle's."""
        if self._frozen:
            return
        for mount in self._mounts:
            mount.bundle._freeze()
        self._grammar.compile()
        self._frozen = True

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                f"Cannot modify bundle {self.name!r} after it has started serving requests. "
                "Declare routes and mounts before the app handles its first request."
            )
            raise RuntimeError(msg)
