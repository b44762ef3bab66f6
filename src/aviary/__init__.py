"""Aviary — compose a site from typed, independently developed bundles.

A bundle is a group of typed routes and handlers. A site (the ``App``)
mounts bundles under path prefixes, hands each one its slice of the
application state, and promises capabilities (such as a page shell)
that the bundle's handlers call back into.

Basic usage::

    from dataclasses import dataclass
    from aviary import App, Bundle, HandlerContext, ShellRenderer

    @dataclass(frozen=True)
    class Home: ...

    @dataclass(frozen=True)
    class Blog:
        route: object

    blog = Bundle("blog", requires=(ShellRenderer,))
    app = App(state=site_state)
    app.mount("/blog", blog, wrap=Blog, accessor=lambda s: s.blog)

    @app.route("/", Home)
    def home(ctx: HandlerContext) -> str:
        return ctx.render_shell("<h1>Home</h1>")
"""

__version__ = "0.1.0"
__all__ = [
    "App",
    "AppConfig",
    "AviaryError",
    "Bundle",
    "ConfigurationError",
    "Fragment",
    "HTTPError",
    "HandlerContext",
    "InlineTemplate",
    "MethodNotAllowed",
    "Middleware",
    "MissingCapability",
    "Mount",
    "Next",
    "NotFound",
    "Redirect",
    "Request",
    "Response",
    "Shell",
    "ShellRenderer",
    "Template",
    "TemplateShell",
    "UnknownRoute",
    "get_context",
    "get_request",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import aviary`` fast while providing a flat top-level API.
    """
    if name == "App":
        from aviary.app import App

        return App

    if name == "AppConfig":
        from aviary.config import AppConfig

        return AppConfig

    if name in ("Bundle", "Mount"):
        from aviary import bundle as _bundle

        return getattr(_bundle, name)

    if name in ("HandlerContext", "get_context", "get_request"):
        from aviary import context as _ctx

        return getattr(_ctx, name)

    if name in ("ShellRenderer", "TemplateShell"):
        from aviary import capabilities as _caps

        return getattr(_caps, name)

    if name == "Request":
        from aviary.http.request import Request

        return Request

    if name in ("Response", "Redirect"):
        from aviary.http import response as _resp

        return getattr(_resp, name)

    if name in ("Template", "InlineTemplate", "Fragment", "Shell"):
        from aviary.templating import returns as _tmpl

        return getattr(_tmpl, name)

    if name in ("Middleware", "Next"):
        from aviary.middleware import protocol as _mw

        return getattr(_mw, name)

    if name in (
        "AviaryError",
        "ConfigurationError",
        "HTTPError",
        "MethodNotAllowed",
        "MissingCapability",
        "NotFound",
        "UnknownRoute",
    ):
        from aviary import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
