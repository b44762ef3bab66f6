"""Async test client for aviary applications.

Uses the same Request and Response types as production and drives the
app through its ASGI interface, so the full pipeline runs: middleware,
route resolution through every mount, handler contexts, and error
mapping.
"""

from __future__ import annotations

import json as json_module
from typing import Any
from urllib.parse import unquote

from aviary.app import App
from aviary.http.response import Response


class TestClient:
    __test__ = False  # Tell pytest this is not a test class
    """Async test client for aviary applications.

    Usage::

        async with TestClient(app) as client:
            response = await client.get("/wiki/home")
            assert response.status == 200
    """

    __slots__ = ("app",)

    def __init__(self, app: App) -> None:
        self.app = app

    async def __aenter__(self) -> TestClient:
        self.app._ensure_frozen()
        await self.app.startup()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.app.shutdown()

    async def get(self, path: str, *, headers: dict[str, str] | None = None) -> Response:
        """Send a GET request."""
        return await self.request("GET", path, headers=headers)

    async def head(self, path: str, *, headers: dict[str, str] | None = None) -> Response:
        """Send a HEAD request."""
        return await self.request("HEAD", path, headers=headers)

    async def post(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        json: Any = None,
    ) -> Response:
        """Send a POST request. ``json`` is serialised and sets the content type."""
        merged = dict(headers or {})
        if json is not None:
            body = json_module.dumps(json).encode("utf-8")
            merged.setdefault("content-type", "application/json")
        return await self.request("POST", path, headers=merged, body=body)

    async def put(
        self,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> Response:
        """Send a PUT request."""
        return await self.request("PUT", path, headers=headers, body=body)

    async def delete(self, path: str, *, headers: dict[str, str] | None = None) -> Response:
        """Send a DELETE request."""
        return await self.request("DELETE", path, headers=headers)

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> Response:
        """Send an arbitrary request and collect the response.

        *path* is sent as the raw (percent-encoded) path; the decoded
        form is derived the way a server would.
        """
        path_part, _, query_string = path.partition("?")
        request_body = body or b""

        raw_headers: list[tuple[bytes, bytes]] = [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in (headers or {}).items()
        ]
        if request_body:
            raw_headers.append((b"content-length", str(len(request_body)).encode("latin-1")))

        scope: dict[str, Any] = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": method.upper(),
            "path": unquote(path_part),
            "raw_path": path_part.encode("latin-1"),
            "query_string": query_string.encode("latin-1"),
            "root_path": "",
            "headers": raw_headers,
            "server": ("testserver", 80),
            "client": ("127.0.0.1", 0),
        }

        sent = False

        async def receive() -> dict[str, Any]:
            nonlocal sent
            if not sent:
                sent = True
                return {"type": "http.request", "body": request_body, "more_body": False}
            return {"type": "http.disconnect"}

        status = 200
        response_headers: list[tuple[str, str]] = []
        chunks: list[bytes] = []

        async def send(message: dict[str, Any]) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                response_headers.extend(
                    (name.decode("latin-1"), value.decode("latin-1"))
                    for name, value in message.get("headers", [])
                )
            elif message["type"] == "http.response.body":
                chunks.append(message.get("body", b""))

        await self.app(scope, receive, send)

        content_type = "text/html; charset=utf-8"
        extra: list[tuple[str, str]] = []
        for name, value in response_headers:
            if name == "content-type":
                content_type = value
            elif name != "content-length":
                extra.append((name, value))

        return Response(
            body=b"".join(chunks),
            status=status,
            content_type=content_type,
            headers=tuple(extra),
        )
