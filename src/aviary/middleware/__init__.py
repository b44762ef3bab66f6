"""Middleware — request/response wrappers around the dispatcher."""

from aviary.middleware.protocol import AnyResponse, Middleware, Next

__all__ = ["AnyResponse", "Middleware", "Next"]
