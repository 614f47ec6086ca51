"""WSGI middleware that resolves the tenant of each request and binds its context."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, MutableMapping, Sequence
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

from .context import TenantContext, bind, current_context, new_context
from .resolvers import (
    HeaderResolver,
    InvalidTenantError,
    Request,
    TenantNotFoundError,
)

__all__ = [
    "CONTEXT_KEY",
    "MiddlewareConfig",
    "TenantMiddleware",
    "default_error_handler",
    "request_from_environ",
    "get_tenant_context",
    "get_tenant_id",
    "must_get_tenant_id",
    "with_tenant_id",
]

CONTEXT_KEY = "tenantscope.tenant_context"

Environ = MutableMapping[str, Any]
StartResponse = Callable[..., Any]
WSGIApp = Callable[[Environ, StartResponse], Iterable[bytes]]
ErrorHandler = Callable[[Environ, StartResponse, Exception], Iterable[bytes]]


def default_error_handler(
    environ: Environ, start_response: StartResponse, error: Exception
) -> Iterable[bytes]:
    """Answer 400 Bad Request with a JSON body describing the failure."""
    body = json.dumps({"error": f"tenant resolution failed: {error}"}).encode("utf-8")
    status = HTTPStatus.BAD_REQUEST
    start_response(
        f"{status.value} {status.phrase}",
        [("Content-Type", "application/json"), ("Content-Length", str(len(body)))],
    )
    return [body]


@dataclass
class MiddlewareConfig:
    """Settings of :class:`TenantMiddleware`.

    ``skip_paths`` are compared exactly with the request path, or as prefixes
    when ``match_prefix`` is true.
    """

    resolver: Any = field(default_factory=HeaderResolver)
    error_handler: ErrorHandler = default_error_handler
    skip_paths: Sequence[str] = ()
    match_prefix: bool = False
    context_key: str = CONTEXT_KEY

    def skips(self, path: str) -> bool:
        if self.match_prefix:
            return any(path.startswith(skip) for skip in self.skip_paths)
        return path in self.skip_paths


def request_from_environ(environ: Environ) -> Request:
    """Build a :class:`Request` from a WSGI environ."""
    headers: dict[str, str] = {}
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            headers[key[5:].replace("_", "-").title()] = value
    for key in ("CONTENT_TYPE", "CONTENT_LENGTH"):
        if environ.get(key):
            headers[key.replace("_", "-").title()] = environ[key]

    params: dict[str, str] = {}
    routing_args = environ.get("wsgiorg.routing_args")
    if isinstance(routing_args, tuple) and len(routing_args) == 2:
        params = {name: str(value) for name, value in dict(routing_args[1]).items()}

    return Request(
        path=environ.get("PATH_INFO") or "/",
        query=environ.get("QUERY_STRING", ""),
        host=environ.get("HTTP_HOST") or environ.get("SERVER_NAME", ""),
        headers=headers,
        params=params,
        method=environ.get("REQUEST_METHOD", "GET"),
    )


class TenantMiddleware:
    """Resolve the tenant of each request before handing it to the wrapped app.

    The tenant context is stored in the environ under the configured key and
    bound as the current context while the wrapped app is called.
    """

    def __init__(self, app: WSGIApp, config: MiddlewareConfig | None = None) -> None:
        self.app = app
        self.config = config if config is not None else MiddlewareConfig()

    def __call__(self, environ: Environ, start_response: StartResponse) -> Iterable[bytes]:
        config = self.config
        request = request_from_environ(environ)
        if config.skips(request.path):
            return self.app(environ, start_response)

        try:
            tenant_id = config.resolver.resolve(request)
        except Exception as exc:  # any resolver failure is reported to the client
            return config.error_handler(environ, start_response, exc)

        if not tenant_id:
            return config.error_handler(
                environ, start_response, TenantNotFoundError("tenant ID not found")
            )

        try:
            tenant_ctx = new_context(tenant_id, "http-request", f"{tenant_id}-req")
        except ValueError as exc:
            return config.error_handler(
                environ,
                start_response,
                InvalidTenantError(f"failed to create tenant context: {exc}"),
            )

        environ[config.context_key] = tenant_ctx
        if config.context_key != CONTEXT_KEY:
            environ[CONTEXT_KEY] = tenant_ctx
        with bind(tenant_ctx):
            return self.app(environ, start_response)


def get_tenant_context(environ: Environ) -> TenantContext:
    """Return the tenant context of a request, falling back to the bound one.

    Raises ``LookupError`` if neither exists.
    """
    tenant_ctx = environ.get(CONTEXT_KEY)
    if isinstance(tenant_ctx, TenantContext):
        return tenant_ctx
    return current_context()


def get_tenant_id(environ: Environ) -> str:
    """Return the tenant ID of a request; raises ``LookupError`` if unknown."""
    return get_tenant_context(environ).tenant_id


def must_get_tenant_id(environ: Environ) -> str:
    """Return the tenant ID of a request where its presence is guaranteed."""
    try:
        return get_tenant_id(environ)
    except LookupError as exc:
        raise RuntimeError(f"tenant context not found: {exc}") from exc


def with_tenant_id(environ: Environ, tenant_id: str) -> Environ:
    """Store a tenant context for ``tenant_id`` in ``environ`` and return it."""
    environ[CONTEXT_KEY] = new_context(tenant_id, "http-request", f"{tenant_id}-test-req")
    return environ