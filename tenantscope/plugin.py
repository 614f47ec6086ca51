"""Hooks that scope create, query, update and delete statements to one tenant."""

from __future__ import annotations

from collections.abc import Iterable, MutableMapping
from dataclasses import dataclass, field
from typing import Any

from .context import TenantContext, current_context

__all__ = [
    "SKIP_SETTING",
    "TenantContextError",
    "Statement",
    "PluginConfig",
    "TenantPlugin",
]

SKIP_SETTING = "tenantscope:skip"
DEFAULT_TENANT_COLUMN = "tenant_id"


class TenantContextError(LookupError):
    """A statement needs a tenant context and none is available."""


def _assign(target: Any, column: str, value: str) -> None:
    """Set ``column`` on a mapping or on an object that already has that attribute."""
    if isinstance(target, MutableMapping):
        target[column] = value
    elif hasattr(target, column):
        setattr(target, column, value)


@dataclass
class Statement:
    """A database statement about to run.

    ``model`` is the record (a mapping or an object) or a list of records it
    works on. ``conditions`` collects ``(clause, args)`` pairs for its WHERE
    part and ``columns`` the column values it sets.
    """

    table: str = ""
    model: Any = None
    context: TenantContext | None = None
    settings: dict[str, Any] = field(default_factory=dict)
    conditions: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    columns: dict[str, Any] = field(default_factory=dict)

    def where(self, clause: str, *args: Any) -> Statement:
        """Add a condition such as ``where("tenant_id = ?", "t1")``."""
        self.conditions.append((clause, args))
        return self

    def set_column(self, column: str, value: Any) -> Statement:
        """Set a column value on the statement and on its single record."""
        self.columns[column] = value
        if self.model is not None and not isinstance(self.model, (list, tuple)):
            _assign(self.model, column, value)
        return self


@dataclass
class PluginConfig:
    """Settings of :class:`TenantPlugin`.

    ``skip_tables`` names tables that are never tenant-scoped, such as
    migration or system tables.
    """

    tenant_column: str = DEFAULT_TENANT_COLUMN
    skip_tables: Iterable[str] = ()


class TenantPlugin:
    """Add the current tenant to every statement it is given."""

    def __init__(self, config: PluginConfig | None = None) -> None:
        config = config if config is not None else PluginConfig()
        self.tenant_column = config.tenant_column or DEFAULT_TENANT_COLUMN
        self.skip_tables = frozenset(config.skip_tables)

    def name(self) -> str:
        return "tenantkit:gorm"

    def should_skip(self, statement: Statement) -> bool:
        """Whether a statement is exempt from tenant scoping."""
        if statement.settings.get(SKIP_SETTING) is True:
            return True
        return statement.table in self.skip_tables

    def tenant_id_for(self, tenant_ctx: TenantContext | None) -> str:
        """Return the tenant ID of ``tenant_ctx``, or of the bound context if it is None."""
        if tenant_ctx is None:
            try:
                tenant_ctx = current_context()
            except LookupError as exc:
                raise TenantContextError(str(exc)) from exc
        return tenant_ctx.tenant_id

    def _require_tenant(self, statement: Statement, operation: str) -> str:
        try:
            return self.tenant_id_for(statement.context)
        except TenantContextError as exc:
            raise TenantContextError(
                f"tenant context required for {operation}: {exc}"
            ) from exc

    def before_create(self, statement: Statement) -> None:
        """Set the tenant column on the record or on every record of a batch."""
        if self.should_skip(statement):
            return
        tenant_id = self._require_tenant(statement, "create")
        model = statement.model
        if isinstance(model, (list, tuple)):
            for item in model:
                _assign(item, self.tenant_column, tenant_id)
        elif model is not None:
            statement.set_column(self.tenant_column, tenant_id)

    def _restrict(self, statement: Statement, operation: str) -> None:
        if self.should_skip(statement):
            return
        tenant_id = self._require_tenant(statement, operation)
        statement.where(f"{self.tenant_column} = ?", tenant_id)

    def before_query(self, statement: Statement) -> None:
        """Limit a query to rows of the current tenant."""
        self._restrict(statement, "query")

    def before_update(self, statement: Statement) -> None:
        """Limit an update to rows of the current tenant."""
        self._restrict(statement, "update")

    def before_delete(self, statement: Statement) -> None:
        """Limit a delete to rows of the current tenant."""
        self._restrict(statement, "delete")