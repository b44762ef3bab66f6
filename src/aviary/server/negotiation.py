"""Content negotiation — maps handler return values to Response objects.

isinstance-based dispatch, no magic, fully predictable.
"""

from __future__ import annotations

import json as json_module
from typing import TYPE_CHECKING, Any

from kida import Environment

from aviary.errors import ConfigurationError
from aviary.http.response import Redirect, Response
from aviary.templating.integration import render_content, render_inline
from aviary.templating.returns import Fragment, InlineTemplate, Shell, Template

if TYPE_CHECKING:
    from aviary.context import HandlerContext


def negotiate(
    value: Any,
    *,
    kida_env: Environment | None = None,
    context: HandlerContext | None = None,
) -> Response:
    """Convert a handler's return value to a Response.

    Dispatch order:

    1. ``Response``            -> pass through
    2. ``Redirect``            -> status + Location header
    3. ``Shell``               -> content wrapped by the site's ShellRenderer
    4. ``Template``/``Fragment`` -> render via kida
    5. ``InlineTemplate``      -> render from source via kida
    6. ``str``                 -> 200, text/html
    7. ``bytes``               -> 200, application/octet-stream
    8. ``dict`` / ``list``     -> 200, application/json
    9. ``(value, int)``        -> negotiate value, override status
    10. ``(value, int, dict)`` -> negotiate value, override status + headers
    """
    match value:
        case Response():
            return value
        case Redirect():
            return (
                Response(body="")
                .with_status(value.status)
                .with_header("Location", value.url)
                .with_headers(dict(value.headers))
            )
        case Shell():
            if context is None:
                msg = "Shell return values can only be negotiated inside a handler."
                raise ConfigurationError(msg)
            return Response(body=context.render_shell(value.content, **value.context))
        case Template() | Fragment():
            return Response(body=render_content(kida_env, value))
        case InlineTemplate():
            return Response(body=render_inline(kida_env, value))
        case str():
            return Response(body=value)
        case bytes():
            return Response(body=value, content_type="application/octet-stream")
        case dict() | list():
            return Response(
                body=json_module.dumps(value, default=str),
                content_type="application/json; charset=utf-8",
            )
        case (inner, int() as status):
            return negotiate(inner, kida_env=kida_env, context=context).with_status(status)
        case (inner, int() as status, dict() as headers):
            response = negotiate(inner, kida_env=kida_env, context=context)
            return response.with_status(status).with_headers(headers)
        case _:
            msg = (
                f"Cannot convert {type(value).__name__} to a response. "
                "Return str, dict, list, bytes, Template, InlineTemplate, Fragment, "
                "Shell, Response, or Redirect."
            )
            raise TypeError(msg)
