"""Template, InlineTemplate, Fragment, and Shell return types.

Frozen dataclasses that handlers return. The content negotiation layer
inspects these and dispatches to the kida renderer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Template:
    """Render a full kida template.

    Usage::

        return Template("page.html", title="Home", items=items)
    """

    name: str
    context: dict[str, Any] = field(default_factory=dict)

    def __init__(self, name: str, /, **context: Any) -> None:
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "context", context)

    @staticmethod
    def inline(source: str, /, **context: Any) -> InlineTemplate:
        """Create a template from a string.

        Usage::

            return Template.inline("<h1>{{ title }}</h1>", title="Hello")
        """
        return InlineTemplate(source, **context)


@dataclass(frozen=True, slots=True)
class InlineTemplate:
    """A template rendered from a string source.

    Works without a ``template_dir``, which makes it the usual choice
    for bundles that ship their markup alongside their handlers.
    """

    source: str
    context: dict[str, Any] = field(default_factory=dict)

    def __init__(self, source: str, /, **context: Any) -> None:
        object.__setattr__(self, "source", source)
        object.__setattr__(self, "context", context)


@dataclass(frozen=True, slots=True)
class Fragment:
    """Render a named block from a kida template.

    Usage::

        return Fragment("search.html", "results_list", results=results)
    """

    template_name: str
    block_name: str
    context: dict[str, Any] = field(default_factory=dict)

    def __init__(self, template_name: str, block_name: str, /, **context: Any) -> None:
        object.__setattr__(self, "template_name", template_name)
        object.__setattr__(self, "block_name", block_name)
        object.__setattr__(self, "context", context)


@dataclass(frozen=True, slots=True)
class Shell:
    """Render *content* inside the embedding site's page shell.

    The nearest ancestor state implementing ``ShellRenderer`` does the
    wrapping, so a bundle never needs to know what the site's layout
    looks like::

        @wiki.route("/{slug}", WikiPage)
        def page(slug: str) -> Shell:
            return Shell(Template.inline("<h1>{{ slug }}</h1>", slug=slug), title=slug)

    *content* may be a string of HTML or any template return type.
    """

    content: str | Template | InlineTemplate | Fragment
    context: dict[str, Any] = field(default_factory=dict)

    def __init__(self, content: str | Template | InlineTemplate | Fragment, /, **context: Any) -> None:
        object.__setattr__(self, "content", content)
        object.__setattr__(self, "context", context)
