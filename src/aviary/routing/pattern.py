"""RoutePattern, PathSegment, and path-pattern parsing.

A pattern ties a path such as ``/posts/{year:int}/{slug}`` to a route
class. The class's init fields and the pattern's variables must agree
exactly, so every decoded path builds a complete route value and every
route value formats back into a path.
"""

import dataclasses
import inspect
import typing
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from aviary.errors import ConfigurationError
from aviary.routing.params import CONVERTERS, converter_for_annotation


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route path.

    Static:  ``/users``  (is_param=False)
    Param:   ``/{id}``   (is_param=True, param_name="id")
    Typed:   ``/{id:int}`` (is_param=True, param_name="id", param_type="int")
    """

    value: str
    is_param: bool = False
    param_name: str | None = None
    param_type: str | None = None


def parse_path(path: str) -> list[PathSegment]:
    """Parse a route path string into segments.

    Examples::

        "/users"             -> [PathSegment("users")]
        "/users/{id}"        -> [PathSegment("users"), PathSegment("{id}", is_param=True, ...)]
        "/users/{id:int}"    -> [..., PathSegment("{id:int}", is_param=True, param_type="int")]
        "/files/{rest:path}" -> [..., PathSegment("{rest:path}", is_param=True, param_type="path")]

    A param without ``:type`` keeps ``param_type=None`` so the type can be
    inferred from the route class later.
    """
    if not path.startswith("/"):
        msg = f"Route path {path!r} must start with '/'."
        raise ConfigurationError(msg)

    segments: list[PathSegment] = []
    seen: set[str] = set()
    parts = [p for p in path.strip("/").split("/") if p]
    for index, part in enumerate(parts):
        if part.startswith("<") and part.endswith(">"):
            msg = (
                f"Route path {path!r} uses <param> syntax. "
                "Aviary expects {param} or {param:type}."
            )
            raise ConfigurationError(msg)
        if not (part.startswith("{") and part.endswith("}")):
            if "{" in part or "}" in part:
                msg = f"Route path {path!r}: variables must span a whole segment ({part!r})."
                raise ConfigurationError(msg)
            segments.append(PathSegment(value=part))
            continue

        name, _, param_type = part[1:-1].partition(":")
        if not name.isidentifier():
            msg = f"Route path {path!r}: {name!r} is not a valid variable name."
            raise ConfigurationError(msg)
        if name in seen:
            msg = f"Route path {path!r} declares variable {name!r} twice."
            raise ConfigurationError(msg)
        if param_type and param_type not in CONVERTERS:
            known = ", ".join(sorted(CONVERTERS))
            msg = f"Route path {path!r}: unknown converter {param_type!r} (known: {known})."
            raise ConfigurationError(msg)
        if param_type == "path" and index != len(parts) - 1:
            msg = f"Route path {path!r}: a path variable must be the last segment."
            raise ConfigurationError(msg)
        seen.add(name)
        segments.append(
            PathSegment(
                value=part,
                is_param=True,
                param_name=name,
                param_type=param_type or None,
            )
        )
    return segments


def route_fields(route_type: type) -> dict[str, Any]:
    """Return the init fields of a route class mapped to their annotations."""
    if dataclasses.is_dataclass(route_type):
        try:
            hints = typing.get_type_hints(route_type)
        except (NameError, TypeError) as exc:
            msg = (
                f"Cannot resolve the field annotations of {route_type.__name__}: {exc}. "
                "Path converters are inferred from them."
            )
            raise ConfigurationError(msg) from exc
        return {
            f.name: hints.get(f.name, f.type)
            for f in dataclasses.fields(route_type)
            if f.init
        }

    try:
        params = list(inspect.signature(route_type, eval_str=True).parameters.values())
    except NameError as exc:
        msg = f"Cannot resolve the parameter annotations of {route_type.__name__}: {exc}."
        raise ConfigurationError(msg) from exc
    return {
        p.name: p.annotation
        for p in params
        if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)
    }


@dataclass(frozen=True, slots=True)
class RoutePattern:
    """A compiled route declaration.

    Created when a route is added to a grammar and immutable afterwards.
    ``segments`` carry resolved converter names; ``variables`` lists the
    param names in path order.
    """

    path: str
    route_type: type
    methods: frozenset[str]
    handler: Callable[..., Any] | None = None
    name: str | None = None
    segments: tuple[PathSegment, ...] = field(default=(), compare=False)

    @classmethod
    def compile(
        cls,
        path: str,
        route_type: type,
        methods: frozenset[str],
        handler: Callable[..., Any] | None = None,
        name: str | None = None,
    ) -> "RoutePattern":
        """Parse *path* and bind its variables to *route_type*'s fields."""
        if not isinstance(route_type, type):
            msg = f"Route for {path!r} must be declared with a class, got {route_type!r}."
            raise ConfigurationError(msg)

        fields = route_fields(route_type)
        segments: list[PathSegment] = []
        for seg in parse_path(path):
            if seg.is_param and seg.param_type is None:
                inferred = converter_for_annotation(fields.get(seg.param_name))
                seg = dataclasses.replace(seg, param_type=inferred)
            segments.append(seg)

        variables = {s.param_name for s in segments if s.is_param}
        if variables != set(fields):
            missing = sorted(set(fields) - variables)
            extra = sorted(variables - set(fields))
            msg = (
                f"Route {route_type.__name__} does not match {path!r}: "
                f"fields without a path variable {missing}, "
                f"path variables without a field {extra}."
            )
            raise ConfigurationError(msg)

        return cls(
            path=path,
            route_type=route_type,
            methods=methods,
            handler=handler,
            name=name or route_type.__name__,
            segments=tuple(segments),
        )

    @property
    def variables(self) -> tuple[str, ...]:
        """Variable names in path order."""
        return tuple(s.param_name for s in self.segments if s.is_param and s.param_name)

    @property
    def shape(self) -> tuple[str, ...]:
        """The pattern's matching shape: literals verbatim, variables by converter."""
        return tuple(
            f"{{:{s.param_type}}}" if s.is_param else s.value for s in self.segments
        )

    def build(self, values: list[Any]) -> Any:
        """Construct the route value from converted variables in path order."""
        return self.route_type(**dict(zip(self.variables, values, strict=True)))

    def format(self, value: Any) -> str:
        """Format a route value into its path.

        Raises ``ValueError`` when a field holds a value its converter
        cannot represent.
        """
        parts: list[str] = []
        for seg in self.segments:
            if not seg.is_param:
                parts.append(quote(seg.value, safe=""))
                continue
            converter = CONVERTERS[seg.param_type or "str"]
            parts.append(converter.format(getattr(value, seg.param_name or "")))
        return "/" + "/".join(parts)
