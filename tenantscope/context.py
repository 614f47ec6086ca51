"""Tenant context values and the binding of one to the current execution flow."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass

__all__ = [
    "TenantContext",
    "new_context",
    "bind",
    "current_context",
    "get_tenant_id",
    "with_tenant_id",
]


@dataclass(frozen=True)
class TenantContext:
    """Who a unit of work runs for: the tenant, the acting user and the request."""

    tenant_id: str
    user_id: str
    request_id: str


_current: ContextVar[TenantContext | None] = ContextVar("tenant_context", default=None)


def new_context(tenant_id: str, user_id: str, request_id: str) -> TenantContext:
    """Build a tenant context, rejecting a blank tenant ID."""
    if not isinstance(tenant_id, str) or not tenant_id.strip():
        raise ValueError("tenant ID must not be empty")
    return TenantContext(tenant_id=tenant_id, user_id=user_id, request_id=request_id)


@contextmanager
def bind(tenant_ctx: TenantContext) -> Iterator[TenantContext]:
    """Make ``tenant_ctx`` the current context for the duration of the block."""
    token = _current.set(tenant_ctx)
    try:
        yield tenant_ctx
    finally:
        _current.reset(token)


def current_context() -> TenantContext:
    """Return the bound tenant context or raise ``LookupError`` if there is none."""
    tenant_ctx = _current.get()
    if tenant_ctx is None:
        raise LookupError("tenant context not found")
    return tenant_ctx


def get_tenant_id() -> str:
    """Return the tenant ID of the bound context."""
    return current_context().tenant_id


@contextmanager
def with_tenant_id(tenant_id: str) -> Iterator[TenantContext]:
    """Bind a system context for ``tenant_id``, as used by tests and background jobs."""
    tenant_ctx = new_context(tenant_id, "system", "background")
    with bind(tenant_ctx):
        yield tenant_ctx