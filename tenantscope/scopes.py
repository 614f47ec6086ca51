"""Statement scopes that widen, narrow or fix the tenant of a statement."""

from __future__ import annotations

from collections.abc import Callable

from .context import TenantContext, new_context
from .plugin import SKIP_SETTING, Statement

__all__ = ["skip_tenant", "with_tenant", "tenant_only", "all_tenants", "with_context"]

Scope = Callable[[Statement], Statement]

TENANT_ONLY_SETTING = "tenantkit:tenant_only"


def skip_tenant() -> Scope:
    """A scope that turns off tenant scoping, for system-level work across tenants."""

    def scope(statement: Statement) -> Statement:
        statement.settings[SKIP_SETTING] = True
        return statement

    return scope


def with_tenant(tenant_id: str) -> Scope:
    """A scope that runs a statement for ``tenant_id`` whatever context is bound.

    Applying it raises ``ValueError`` if the tenant ID is blank.
    """

    def scope(statement: Statement) -> Statement:
        tenant_ctx = new_context(tenant_id, "system", "explicit-scope")
        statement.context = tenant_ctx
        return statement.where("tenant_id = ?", tenant_ctx.tenant_id)

    return scope


def tenant_only() -> Scope:
    """A scope that marks a statement as tenant-scoped.

    The plugin already enforces tenant scoping; the scope records the intent
    in the statement's settings and returns the same statement.
    """

    def scope(statement: Statement) -> Statement:
        statement.settings[TENANT_ONLY_SETTING] = True
        return statement

    return scope


def all_tenants() -> Scope:
    """Same as :func:`skip_tenant`, named for queries across all tenants."""
    return skip_tenant()


def with_context(statement: Statement, tenant_ctx: TenantContext) -> Statement:
    """Attach a tenant context to a statement."""
    statement.context = tenant_ctx
    return statement