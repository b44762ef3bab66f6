"""Immutable HTTP request.

Frozen metadata with async body access. Handlers inside a bundle see
the same request object as the site's own handlers; only the
``HandlerContext`` around it differs.
"""

from __future__ import annotations

import json as json_module
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from aviary._internal.asgi import Receive, Scope
from aviary.http.headers import Headers
from aviary.http.query import QueryParams


async def _empty_receive() -> dict[str, Any]:
    return {"type": "http.request", "body": b"", "more_body": False}


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    ``path`` is the percent-decoded path from the server; ``raw_path``
    is the path exactly as the client sent it. Routing decodes
    ``raw_path`` so that an encoded ``/`` inside a segment survives.
    """

    method: str
    path: str
    raw_path: str
    headers: Headers
    query: QueryParams
    http_version: str = "1.1"
    server: tuple[str, int] | None = None
    client: tuple[str, int] | None = None

    _receive: Receive = field(default=_empty_receive, repr=False, compare=False)
    # Mutable body cache (the dict is mutable even though the field is frozen)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def content_length(self) -> int | None:
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @property
    def url(self) -> str:
        """Path plus query string."""
        qs = self.query.raw
        if qs:
            return f"{self.path}?{qs.decode('latin-1')}"
        return self.path

    # -- Async body access --

    async def body(self) -> bytes:
        """Read the full request body. Cached after the first call."""
        if "_body" in self._cache:
            return self._cache["_body"]
        result = b"".join([chunk async for chunk in self.stream()])
        self._cache["_body"] = result
        return result

    async def stream(self) -> AsyncGenerator[bytes]:
        """Stream the request body in chunks."""
        while True:
            message = await self._receive()
            body = message.get("body", b"")
            if body:
                yield body
            if not message.get("more_body", False):
                break

    async def json(self) -> Any:
        return json_module.loads(await self.body())

    async def text(self) -> str:
        return (await self.body()).decode("utf-8")

    # -- Factory --

    @classmethod
    def from_asgi(cls, scope: Scope, receive: Receive) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        path = scope["path"]
        raw = scope.get("raw_path") or b""
        raw_path = raw.decode("latin-1").split("?", 1)[0] if raw else quote(path)
        server = scope.get("server")
        client = scope.get("client")
        return cls(
            method=scope["method"].upper(),
            path=path,
            raw_path=raw_path,
            headers=Headers(tuple(scope.get("headers", ()))),
            query=QueryParams(scope.get("query_string", b"")),
            http_version=scope.get("http_version", "1.1"),
            server=tuple(server) if server else None,
            client=tuple(client) if client else None,
            _receive=receive,
        )
