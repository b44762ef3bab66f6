"""Tests for aviary.routing.grammar — the typed route codec."""

import math
import uuid
from dataclasses import dataclass

import pytest

from aviary.errors import ConfigurationError, UnknownRoute
from aviary.routing.grammar import Grammar, split_path
from aviary.routing.pattern import RoutePattern


@dataclass(frozen=True)
class Home:
    pass


@dataclass(frozen=True)
class NewPost:
    pass


@dataclass(frozen=True)
class PostById:
    id: int


@dataclass(frozen=True)
class PostBySlug:
    slug: str


@dataclass(frozen=True)
class PostByName:
    name: str


@dataclass(frozen=True)
class EditPost:
    id: int


@dataclass(frozen=True)
class Docs:
    rest: str


@dataclass(frozen=True)
class Measure:
    x: float


@dataclass(frozen=True)
class Ticket:
    key: uuid.UUID


@dataclass(frozen=True)
class ByNumber:
    a: int


@dataclass(frozen=True)
class QueueByName:
    b: str


@dataclass(frozen=True)
class QueueByNumber:
    c: int


@dataclass(frozen=True)
class NumberTail:
    n: int
    tail: str


@dataclass(frozen=True)
class NameEdit:
    name: str


@dataclass(frozen=True)
class Even:
    n: int

    def __post_init__(self) -> None:
        if self.n % 2:
            raise ValueError("odd")


def _grammar(*specs: tuple[str, type, set[str]]) -> Grammar:
    grammar = Grammar()
    for path, route_type, methods in specs:
        grammar.add(RoutePattern.compile(path, route_type, frozenset(methods)))
    grammar.compile()
    return grammar


class TestSplitPath:
    def test_root(self) -> None:
        assert split_path("/") == []

    def test_ignores_trailing_and_duplicate_slashes(self) -> None:
        assert split_path("//posts//7/") == ["posts", "7"]


class TestDecode:
    def test_root(self) -> None:
        grammar = _grammar(("/", Home, {"GET"}))
        assert grammar.decode("/", "GET") == Home()

    def test_no_match(self) -> None:
        grammar = _grammar(("/", Home, {"GET"}))
        assert grammar.decode("/missing", "GET") is None

    def test_typed_variable(self) -> None:
        grammar = _grammar(("/posts/{id}", PostById, {"GET"}))
        assert grammar.decode("/posts/7", "GET") == PostById(id=7)

    def test_literal_beats_variable(self) -> None:
        grammar = _grammar(
            ("/posts/{slug}", PostBySlug, {"GET"}),
            ("/posts/new", NewPost, {"GET"}),
        )
        assert grammar.decode("/posts/new", "GET") == NewPost()
        assert grammar.decode("/posts/other", "GET") == PostBySlug(slug="other")

    def test_parse_failure_falls_through(self) -> None:
        grammar = _grammar(
            ("/posts/{id}", PostById, {"GET"}),
            ("/posts/{slug}", PostBySlug, {"GET"}),
        )
        assert grammar.decode("/posts/12", "GET") == PostById(id=12)
        assert grammar.decode("/posts/hello", "GET") == PostBySlug(slug="hello")

    def test_backtracks_past_dead_end(self) -> None:
        grammar = _grammar(
            ("/posts/new", NewPost, {"GET"}),
            ("/posts/{id}/edit", EditPost, {"GET"}),
        )
        assert grammar.decode("/posts/5/edit", "GET") == EditPost(id=5)

    def test_post_init_rejection_falls_through(self) -> None:
        grammar = _grammar(
            ("/n/{n}", Even, {"GET"}),
            ("/n/{slug}", PostBySlug, {"GET"}),
        )
        assert grammar.decode("/n/4", "GET") == Even(n=4)
        assert grammar.decode("/n/3", "GET") == PostBySlug(slug="3")

    def test_catch_all(self) -> None:
        grammar = _grammar(("/docs/{rest:path}", Docs, {"GET"}))
        assert grammar.decode("/docs/guide/intro", "GET") == Docs(rest="guide/intro")
        assert grammar.decode("/docs", "GET") is None

    def test_percent_encoded_slash_stays_in_segment(self) -> None:
        grammar = _grammar(("/posts/{slug}", PostBySlug, {"GET"}))
        assert grammar.decode("/posts/a%2Fb", "GET") == PostBySlug(slug="a/b")

    def test_definition_order_breaks_ties_across_converters(self) -> None:
        grammar = _grammar(
            ("/{a:int}", ByNumber, {"GET"}),
            ("/{b:str}/q", QueueByName, {"GET"}),
            ("/{c:int}/q", QueueByNumber, {"GET"}),
        )
        assert grammar.decode("/5/q", "GET") == QueueByName(b="5")
        assert grammar.decode("/5", "GET") == ByNumber(a=5)
        assert grammar.decode("/x/q", "GET") == QueueByName(b="x")

    def test_literal_later_in_path_beats_earlier_declaration(self) -> None:
        grammar = _grammar(
            ("/{n:int}/{tail}", NumberTail, {"GET"}),
            ("/{name:str}/edit", NameEdit, {"GET"}),
        )
        assert grammar.decode("/5/edit", "GET") == NameEdit(name="5")
        assert grammar.decode("/5/view", "GET") == NumberTail(n=5, tail="view")

    def test_unicode_digits_are_not_ints(self) -> None:
        grammar = _grammar(("/posts/{id}", PostById, {"GET"}))
        assert grammar.decode("/posts/\u0661\u0662", "GET") is None
        assert grammar.decode("/posts/12", "GET") == PostById(id=12)

    def test_method_discrimination(self) -> None:
        grammar = _grammar(
            ("/posts/{id}", PostById, {"GET"}),
            ("/posts/{id}", EditPost, {"POST"}),
        )
        assert grammar.decode("/posts/1", "GET") == PostById(id=1)
        assert grammar.decode("/posts/1", "POST") == EditPost(id=1)
        assert grammar.decode("/posts/1", "DELETE") is None

    def test_method_is_case_insensitive(self) -> None:
        grammar = _grammar(("/", Home, {"GET"}))
        assert grammar.decode("/", "get") == Home()


class TestAllowedMethods:
    def test_union_of_matching_shapes(self) -> None:
        grammar = _grammar(
            ("/posts/{id}", PostById, {"GET"}),
            ("/posts/{id}", EditPost, {"POST", "PUT"}),
        )
        assert grammar.allowed_methods("/posts/1") == frozenset({"GET", "POST", "PUT"})

    def test_no_match_is_empty(self) -> None:
        grammar = _grammar(("/", Home, {"GET"}))
        assert grammar.allowed_methods("/nope") == frozenset()

    def test_lookup_reports_allowed_on_method_miss(self) -> None:
        grammar = _grammar(("/", Home, {"GET", "HEAD"}))
        match = grammar.lookup([], "POST")
        assert not match.matched
        assert match.allowed == frozenset({"GET", "HEAD"})


class TestEncode:
    @pytest.fixture
    def grammar(self) -> Grammar:
        return _grammar(
            ("/", Home, {"GET"}),
            ("/posts/new", NewPost, {"GET"}),
            ("/posts/{id}", PostById, {"GET"}),
            ("/p/{slug}", PostBySlug, {"GET"}),
            ("/docs/{rest:path}", Docs, {"GET"}),
            ("/m/{x}", Measure, {"GET"}),
            ("/t/{key}", Ticket, {"GET"}),
            ("/{a:int}", ByNumber, {"GET"}),
            ("/{b:str}/q", QueueByName, {"GET"}),
        )

    @pytest.mark.parametrize(
        "value",
        [
            Home(),
            NewPost(),
            PostById(id=0),
            PostById(id=-4),
            PostBySlug(slug="a/b c"),
            PostBySlug(slug="café"),
            PostBySlug(slug="%2F"),
            PostBySlug(slug="?#&"),
            PostBySlug(slug="new"),
            Docs(rest="x/y"),
            Docs(rest="a b/ü/%"),
            Docs(rest="single"),
            Measure(x=1.5),
            Measure(x=1e-05),
            Measure(x=-2e20),
            Ticket(key=uuid.UUID("12345678-1234-5678-1234-567812345678")),
            ByNumber(a=7),
            QueueByName(b="7"),
            QueueByName(b="seven"),
        ],
        ids=repr,
    )
    def test_round_trip(self, grammar: Grammar, value: object) -> None:
        assert grammar.decode(grammar.encode(value), "GET") == value

    def test_unknown_type(self) -> None:
        grammar = _grammar(("/", Home, {"GET"}))
        with pytest.raises(UnknownRoute):
            grammar.encode(NewPost())

    def test_unknown_route_is_lookup_error(self) -> None:
        grammar = _grammar(("/", Home, {"GET"}))
        with pytest.raises(LookupError):
            grammar.encode(NewPost())

    @pytest.mark.parametrize(
        "value",
        [
            PostBySlug(slug=""),
            PostBySlug(slug=7),  # type: ignore[arg-type]
            Docs(rest="guide/"),
            Docs(rest="/guide"),
            Docs(rest="a//b"),
            Docs(rest=["a"]),  # type: ignore[arg-type]
            PostById(id=True),
            PostById(id="7"),  # type: ignore[arg-type]
            Measure(x=math.nan),
            Measure(x="1.5"),  # type: ignore[arg-type]
        ],
        ids=repr,
    )
    def test_unrepresentable_value(self, grammar: Grammar, value: object) -> None:
        with pytest.raises(ValueError):
            grammar.encode(value)


class TestDeclaration:
    def test_duplicate_route_type(self) -> None:
        grammar = Grammar()
        grammar.add(RoutePattern.compile("/a", Home, frozenset({"GET"})))
        with pytest.raises(ConfigurationError, match="already declared"):
            grammar.add(RoutePattern.compile("/b", Home, frozenset({"GET"})))

    def test_ambiguous_shape(self) -> None:
        grammar = Grammar()
        grammar.add(RoutePattern.compile("/posts/{slug}", PostBySlug, frozenset({"GET"})))
        with pytest.raises(ConfigurationError, match="Ambiguous"):
            grammar.add(RoutePattern.compile("/posts/{name:str}", PostByName, frozenset({"GET"})))

    def test_same_shape_different_methods_is_fine(self) -> None:
        grammar = Grammar()
        grammar.add(RoutePattern.compile("/posts/{id}", PostById, frozenset({"GET"})))
        grammar.add(RoutePattern.compile("/posts/{id}", EditPost, frozenset({"POST"})))
        assert len(grammar) == 2

    def test_add_after_compile(self) -> None:
        grammar = _grammar(("/", Home, {"GET"}))
        with pytest.raises(RuntimeError):
            grammar.add(RoutePattern.compile("/new", NewPost, frozenset({"GET"})))

    def test_introspection(self) -> None:
        grammar = _grammar(("/", Home, {"GET"}), ("/posts/{id}", PostById, {"GET"}))
        assert PostById in grammar
        assert grammar.route_types == frozenset({Home, PostById})
        assert grammar.pattern_for(Home) is grammar.patterns[0]
        assert grammar.pattern_for(NewPost) is None
