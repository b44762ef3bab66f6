"""Aviary exception hierarchy.

Shared across grammars, bundles, the app, and the request pipeline so
every module raises and catches the same types.
"""

from dataclasses import dataclass


class AviaryError(Exception):
    """Base for all aviary-specific errors."""


class ConfigurationError(AviaryError):
    """Raised when a route, mount, or app declaration is invalid.

    Declarations are validated eagerly: most of these surface while
    routes are being added, the rest during ``App._freeze()``.
    """


class MissingCapability(ConfigurationError):
    """A mounted bundle requires a capability no embedding state provides."""


class UnknownRoute(AviaryError, LookupError):
    """A route value was passed to link generation but is not declared."""


@dataclass(frozen=True, slots=True)
class HTTPError(AviaryError):
    """An error that maps directly to an HTTP status code.

    Raised by the dispatcher, middleware, or handlers. The ASGI handler
    catches these and dispatches to the matching ``@app.error()`` handler.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818 conventional name in web frameworks
    """404 — neither the site nor any mounted bundle owns the path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class MethodNotAllowed(HTTPError):  # noqa: N818 conventional name in web frameworks
    """405 — the path exists somewhere in the tree, but not for this method.

    Carries an ``Allow`` header with every method accepted by the
    patterns whose shape matched.
    """

    def __init__(self, allowed: frozenset[str], detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        default_detail = f"Method not allowed. Allowed methods: {allow_value}"
        super().__init__(
            status=405,
            detail=detail or default_detail,
            headers=(("Allow", allow_value),),
        )

    @property
    def allowed(self) -> frozenset[str]:
        """The methods listed in the ``Allow`` header."""
        value = dict(self.headers).get("Allow", "")
        return frozenset(m.strip() for m in value.split(",") if m.strip())
