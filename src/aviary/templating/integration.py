"""Kida environment setup and rendering helpers.

Creates a kida Environment from AppConfig and binds user-registered
filters and globals. The environment is created once during
``App._freeze()`` and passed through the request pipeline.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

from kida import Environment, FileSystemLoader

from aviary.config import AppConfig
from aviary.errors import ConfigurationError
from aviary.templating.returns import Fragment, InlineTemplate, Template


def create_environment(
    config: AppConfig,
    filters: dict[str, Callable[..., Any]],
    globals_: dict[str, Any],
) -> Environment:
    """Create a kida Environment from app configuration.

    Without an existing ``template_dir`` the environment has no loader;
    inline templates and shells built from source still render.
    """
    options: dict[str, Any] = {
        "autoescape": config.autoescape,
        "auto_reload": config.debug,
        "trim_blocks": config.trim_blocks,
        "lstrip_blocks": config.lstrip_blocks,
    }
    if config.template_dir is not None and Path(config.template_dir).is_dir():
        options["loader"] = FileSystemLoader(str(config.template_dir))
    env = Environment(**options)

    if filters:
        env.update_filters(filters)
    for name, value in globals_.items():
        env.add_global(name, value)
    return env


def render_template(env: Environment, tpl: Template) -> str:
    """Render a full template to string."""
    return env.get_template(tpl.name).render(tpl.context)


def render_inline(env: Environment | None, tpl: InlineTemplate) -> str:
    """Render a string-source template to string."""
    env = env or Environment(autoescape=True)
    return env.from_string(tpl.source).render(tpl.context)


def render_fragment(env: Environment, frag: Fragment) -> str:
    """Render a named block from a template to string."""
    return env.get_template(frag.template_name).render_block(frag.block_name, frag.context)


def render_content(env: Environment | None, content: Any) -> str:
    """Render HTML content of any template return type to a string.

    Plain strings are returned unchanged (they are assumed to be HTML).
    """
    match content:
        case str():
            return content
        case InlineTemplate():
            return render_inline(env, content)
        case Template() | Fragment() if env is None:
            msg = (
                f"{type(content).__name__} content requires kida integration. "
                "Ensure a template_dir is configured in AppConfig."
            )
            raise ConfigurationError(msg)
        case Template():
            return render_template(env, content)
        case Fragment():
            return render_fragment(env, content)
        case _:
            msg = f"Cannot render {type(content).__name__} as shell content."
            raise TypeError(msg)
