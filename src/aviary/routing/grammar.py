"""Route grammar — a typed route codec backed by a backtracking trie.

Patterns are added during setup and frozen by ``compile()``. After that
the grammar is read-only and safe to share between concurrent requests.

Resolution order at every trie node:

1. Literal child (exact segment match)
2. Parameter edges. When several edges match, their candidates are
   merged: the rest of the path still prefers literals, and the
   earlier declaration breaks any remaining tie
3. Catch-all (``path``) patterns, consuming the remaining segments

Within one terminal node, patterns are tried in definition order. A
segment that matches a converter's regex but fails to parse is a plain
non-match for that edge; matching continues with the next candidate.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote

from aviary.errors import ConfigurationError, UnknownRoute
from aviary.routing.params import CONVERTERS, Converter
from aviary.routing.pattern import RoutePattern


def split_path(path: str) -> list[str]:
    """Split a URL path into its non-empty raw segments.

    Leading, trailing, and repeated slashes are ignored, so ``/users/``
    and ``/users`` address the same route.
    """
    return [p for p in path.strip("/").split("/") if p]


@dataclass(frozen=True, slots=True)
class GrammarMatch:
    """Result of looking a path up in one grammar.

    ``value`` is the decoded route (``None`` when nothing fully matched).
    ``allowed`` is the union of methods of every pattern whose shape
    matched the path; it is only filled in when ``value`` is ``None``.
    """

    value: Any = None
    pattern: RoutePattern | None = None
    allowed: frozenset[str] = frozenset()

    @property
    def matched(self) -> bool:
        return self.pattern is not None


class _TrieNode:
    """A node in the route trie. Mutable during setup only."""

    __slots__ = ("catch_alls", "children", "param_edges", "patterns")

    def __init__(self) -> None:
        # Literal segment children: "users" -> node
        self.children: dict[str, _TrieNode] = {}
        # One edge per converter, in first-definition order
        self.param_edges: list[_ParamEdge] = []
        # Patterns ending in a catch-all at this depth
        self.catch_alls: list[RoutePattern] = []
        # Patterns terminating exactly at this node
        self.patterns: list[RoutePattern] = []


@dataclass(slots=True)
class _ParamEdge:
    """A parameter edge in the trie."""

    converter: Converter
    regex: re.Pattern[str]
    node: _TrieNode = field(default_factory=_TrieNode)


class Grammar:
    """A compiled set of route patterns for one site or bundle.

    Usage::

        grammar = Grammar()
        grammar.add(RoutePattern.compile("/", Home, frozenset({"GET"})))
        grammar.add(RoutePattern.compile("/posts/{id:int}", Post, frozenset({"GET"})))
        grammar.compile()

        grammar.decode("/posts/7", "GET")   # Post(id=7)
        grammar.encode(Post(id=7))          # "/posts/7"
    """

    __slots__ = ("_by_type", "_compiled", "_order", "_patterns", "_root")

    def __init__(self) -> None:
        self._root = _TrieNode()
        self._patterns: list[RoutePattern] = []
        self._by_type: dict[type, RoutePattern] = {}
        self._order: dict[type, int] = {}
        self._compiled = False

    # -- Declaration --

    def add(self, pattern: RoutePattern) -> None:
        """Add a pattern. Must be called before ``compile()``."""
        if self._compiled:
            msg = "Cannot add routes after compilation."
            raise RuntimeError(msg)

        if pattern.route_type in self._by_type:
            existing = self._by_type[pattern.route_type]
            msg = (
                f"Route type {pattern.route_type.__name__} is already declared "
                f"for {existing.path!r}; each route type needs exactly one pattern."
            )
            raise ConfigurationError(msg)

        for other in self._patterns:
            overlap = other.methods & pattern.methods
            if other.shape == pattern.shape and overlap:
                methods = ", ".join(sorted(overlap))
                msg = (
                    f"Ambiguous routes: {pattern.path!r} ({pattern.route_type.__name__}) "
                    f"and {other.path!r} ({other.route_type.__name__}) both match "
                    f"the same paths for {methods}."
                )
                raise ConfigurationError(msg)

        node = self._root
        for seg in pattern.segments:
            if seg.is_param:
                converter = CONVERTERS[seg.param_type or "str"]
                if converter.catch_all:
                    node.catch_alls.append(pattern)
                    break
                node = self._param_child(node, converter)
            else:
                node = node.children.setdefault(seg.value, _TrieNode())
        else:
            node.patterns.append(pattern)

        self._order[pattern.route_type] = len(self._patterns)
        self._patterns.append(pattern)
        self._by_type[pattern.route_type] = pattern

    @staticmethod
    def _param_child(node: _TrieNode, converter: Converter) -> _TrieNode:
        for edge in node.param_edges:
            if edge.converter.name == converter.name:
                return edge.node
        edge = _ParamEdge(converter=converter, regex=re.compile(converter.regex))
        node.param_edges.append(edge)
        return edge.node

    def compile(self) -> None:
        """Freeze the grammar. No more patterns can be added."""
        self._compiled = True

    @property
    def compiled(self) -> bool:
        return self._compiled

    # -- Introspection --

    @property
    def patterns(self) -> tuple[RoutePattern, ...]:
        """All patterns in definition order."""
        return tuple(self._patterns)

    @property
    def route_types(self) -> frozenset[type]:
        return frozenset(self._by_type)

    def pattern_for(self, route_type: type) -> RoutePattern | None:
        """Return the pattern declared for *route_type*, if any."""
        return self._by_type.get(route_type)

    def __contains__(self, route_type: object) -> bool:
        return route_type in self._by_type

    def __len__(self) -> int:
        return len(self._patterns)

    # -- Codec --

    def encode(self, value: Any) -> str:
        """Format a route value as a URL path.

        Raises ``UnknownRoute`` if the value's type has no pattern here.
        """
        pattern = self._by_type.get(type(value))
        if pattern is None:
            msg = f"No route declared for {type(value).__name__}"
            raise UnknownRoute(msg)
        return pattern.format(value)

    def decode(self, path: str, method: str) -> Any | None:
        """Decode a URL path into a route value.

        Returns ``None`` when no pattern matches the path, or when the
        path matches but not for *method* (see ``allowed_methods``).
        """
        return self.lookup(split_path(path), method).value

    def allowed_methods(self, path: str) -> frozenset[str]:
        """Methods accepted by any pattern whose shape matches *path*."""
        methods: set[str] = set()
        for pattern, _ in self._candidates(split_path(path)):
            methods |= pattern.methods
        return frozenset(methods)

    def lookup(self, parts: list[str], method: str) -> GrammarMatch:
        """Match pre-split path segments against the grammar.

        The first candidate (in resolution order) that allows *method*
        and builds successfully wins.
        """
        method = method.upper()
        allowed: set[str] = set()
        for pattern, values in self._candidates(parts):
            if method not in pattern.methods:
                allowed |= pattern.methods
                continue
            try:
                value = pattern.build(values)
            except (TypeError, ValueError):
                # Route classes may validate in __post_init__
                continue
            return GrammarMatch(value=value, pattern=pattern)
        return GrammarMatch(allowed=frozenset(allowed))

    def _rank(self, pattern: RoutePattern, start: int) -> tuple[tuple[int, ...], int]:
        """Sort key for candidates that tie up to segment *start*.

        Later segments compare literal < variable < catch-all, then the
        earlier declaration wins.
        """
        kinds = tuple(
            (2 if CONVERTERS[seg.param_type or "str"].catch_all else 1) if seg.is_param else 0
            for seg in pattern.segments[start:]
        )
        return kinds, self._order[pattern.route_type]

    def _candidates(self, parts: list[str]) -> Iterator[tuple[RoutePattern, list[Any]]]:
        yield from self._walk(self._root, parts, 0, [])

    def _walk(
        self,
        node: _TrieNode,
        parts: list[str],
        index: int,
        values: list[Any],
    ) -> Iterator[tuple[RoutePattern, list[Any]]]:
        """Yield every (pattern, converted values) pair matching *parts*."""
        if index == len(parts):
            for pattern in node.patterns:
                yield pattern, values
            return

        part = parts[index]

        # 1. Literal child
        child = node.children.get(unquote(part))
        if child is not None:
            yield from self._walk(child, parts, index + 1, values)

        # 2. Parameter edges, candidates from every matching edge ranked together
        matched: list[tuple[RoutePattern, list[Any]]] = []
        for edge in node.param_edges:
            if not edge.regex.fullmatch(part):
                continue
            try:
                value = edge.converter.parse(part)
            except ValueError:
                continue
            matched.extend(self._walk(edge.node, parts, index + 1, [*values, value]))
        if len(matched) > 1:
            matched.sort(key=lambda candidate: self._rank(candidate[0], index + 1))
        yield from matched

        # 3. Catch-all
        if node.catch_alls:
            rest = "/".join(parts[index:])
            for pattern in node.catch_alls:
                converter = CONVERTERS[pattern.segments[-1].param_type or "path"]
                try:
                    value = converter.parse(rest)
                except ValueError:
                    continue
                yield pattern, [*values, value]
