"""Tests for aviary.capabilities — shell contracts and requirement checks."""

from dataclasses import dataclass, field
from typing import Any, Protocol

import pytest

from aviary.bundle import Bundle
from aviary.capabilities import (
    ShellRenderer,
    TemplateShell,
    check_requirements,
    find_capability,
    provides,
)
from aviary.context import HandlerContext
from aviary.errors import ConfigurationError, MissingCapability


@dataclass(frozen=True)
class Inner:
    route: Any


@dataclass(frozen=True)
class Deeper:
    route: Any


@dataclass
class WikiState:
    pages: dict[str, str] = field(default_factory=dict)


@dataclass
class PlainSite:
    wiki: WikiState = field(default_factory=WikiState)


@dataclass
class ShellSite:
    wiki: WikiState = field(default_factory=WikiState)

    def render_shell(self, content: str, /, **context: Any) -> str:
        return f"<main data-title='{context.get('title', '')}'>{content}</main>"


class NotRuntime(Protocol):
    def ping(self) -> None: ...


class TestTemplateShell:
    def test_wraps_content_as_markup(self) -> None:
        shell = TemplateShell(source="<body><h1>{{ title }}</h1>{{ content }}</body>")
        html = shell.render_shell("<p>hi</p>", title="Home")
        assert "<p>hi</p>" in html
        assert "<h1>Home</h1>" in html

    def test_defaults_are_overridable(self) -> None:
        shell = TemplateShell(source="{{ title }}", title="Default")
        assert shell.render_shell("").strip() == "Default"
        assert shell.render_shell("", title="Custom").strip() == "Custom"

    def test_satisfies_protocol(self) -> None:
        assert isinstance(TemplateShell(source="{{ content }}"), ShellRenderer)

    def test_needs_exactly_one_source(self) -> None:
        with pytest.raises(ConfigurationError):
            TemplateShell()
        with pytest.raises(ConfigurationError):
            TemplateShell("layout.html", source="{{ content }}")


class TestProvides:
    def test_structural(self) -> None:
        assert provides(ShellSite(), ShellRenderer)
        assert not provides(PlainSite(), ShellRenderer)

    def test_non_runtime_protocol(self) -> None:
        with pytest.raises(ConfigurationError, match="runtime_checkable"):
            provides(object(), NotRuntime)


class TestCheckRequirements:
    def _site(self) -> Bundle:
        wiki = Bundle("wiki", requires=(ShellRenderer,))
        site = Bundle("site")
        site.mount("/wiki", wiki, wrap=Inner, accessor=lambda s: s.wiki)
        return site

    def test_satisfied(self) -> None:
        check_requirements(self._site(), ShellSite())

    def test_missing(self) -> None:
        with pytest.raises(MissingCapability, match="wiki") as exc_info:
            check_requirements(self._site(), PlainSite())
        assert "ShellRenderer" in str(exc_info.value)

    def test_missing_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            check_requirements(self._site(), PlainSite())

    def test_satisfied_by_distant_ancestor(self) -> None:
        leaf = Bundle("leaf", requires=(ShellRenderer,))
        middle = Bundle("middle")
        middle.mount("/leaf", leaf, wrap=Deeper, accessor=lambda s: s)
        site = Bundle("site")
        site.mount("/middle", middle, wrap=Inner, accessor=lambda s: s.wiki)
        check_requirements(site, ShellSite())

    def test_accessor_runs_against_live_state(self) -> None:
        site = Bundle("site")
        site.mount("/wiki", Bundle("wiki"), wrap=Inner, accessor=lambda s: s.missing)
        with pytest.raises(AttributeError):
            check_requirements(site, PlainSite())


class TestFindCapability:
    def test_bundle_finds_site_shell(self) -> None:
        site_state = ShellSite()
        site = Bundle("site")
        mount = site.mount("/wiki", Bundle("wiki"), wrap=Inner, accessor=lambda s: s.wiki)
        root = HandlerContext(state=site_state, bundle=site)
        ctx = root.descend(mount)
        assert find_capability(ctx, ShellRenderer) is site_state

    def test_nearest_ancestor_wins(self) -> None:
        outer_state = ShellSite(wiki=WikiState())
        site = Bundle("site")
        middle = Bundle("middle")
        leaf = Bundle("leaf")
        m1 = site.mount("/m", middle, wrap=Inner, accessor=lambda s: ShellSite())
        m2 = middle.mount("/l", leaf, wrap=Deeper, accessor=lambda s: s.wiki)
        ctx = HandlerContext(state=outer_state, bundle=site).descend(m1).descend(m2)
        assert find_capability(ctx, ShellRenderer) is ctx.parent.state

    def test_bundle_own_state_is_not_searched(self) -> None:
        site = Bundle("site")
        mount = site.mount("/w", Bundle("wiki"), wrap=Inner, accessor=lambda s: ShellSite())
        ctx = HandlerContext(state=PlainSite(), bundle=site).descend(mount)
        with pytest.raises(MissingCapability):
            find_capability(ctx, ShellRenderer)

    def test_root_searches_own_state(self) -> None:
        state = ShellSite()
        ctx = HandlerContext(state=state, bundle=Bundle("site"))
        assert find_capability(ctx, ShellRenderer) is state

    def test_missing_at_root(self) -> None:
        ctx = HandlerContext(state=PlainSite(), bundle=Bundle("site"))
        with pytest.raises(MissingCapability, match="ShellRenderer"):
            find_capability(ctx, ShellRenderer)
