"""Migration helpers that give tables a tenant column and an index on it."""

from __future__ import annotations

from typing import Any

__all__ = ["CallbackHelper", "clean_callback_name"]

DEFAULT_COLUMN_TYPE = "VARCHAR(255)"


def _table_name(model: Any) -> str:
    if isinstance(model, str) and model:
        return model
    table = getattr(model, "__tablename__", None)
    if isinstance(table, str) and table:
        return table
    raise ValueError(f"failed to parse model: {model!r} has no table name")


class CallbackHelper:
    """Schema helpers for tenant columns over a DB-API connection."""

    def __init__(self, tenant_column: str = "tenant_id") -> None:
        self.tenant_column = tenant_column or "tenant_id"

    def _columns(self, conn: Any, table_name: str) -> set[str]:
        cursor = conn.execute(f"SELECT * FROM {table_name} LIMIT 0")
        try:
            return {column[0] for column in cursor.description or ()}
        finally:
            cursor.close()

    def ensure_tenant_column(
        self, conn: Any, table_name: str, column_type: str | None = None
    ) -> None:
        """Add the tenant column to ``table_name`` unless it is already there."""
        column_type = column_type or DEFAULT_COLUMN_TYPE
        if self.tenant_column in self._columns(conn, table_name):
            return
        conn.execute(
            f"ALTER TABLE {table_name} ADD COLUMN {self.tenant_column} {column_type}"
        )

    def add_tenant_index(self, conn: Any, table_name: str) -> None:
        """Create an index on the tenant column if it does not exist yet."""
        index_name = f"idx_{table_name}_tenant_id"
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS {index_name} "
            f"ON {table_name}({self.tenant_column})"
        )

    def migrate_tenant_column(self, conn: Any, *args: Any) -> None:
        """Ensure every given table has an indexed, non-null tenant column.

        Each argument is a table name or a model with a ``__tablename__``.
        """
        for model in args:
            table_name = _table_name(model)
            try:
                self.ensure_tenant_column(conn, table_name, "VARCHAR(255) NOT NULL")
            except Exception as exc:
                raise RuntimeError(
                    f"failed to ensure tenant column for {table_name}: {exc}"
                ) from exc
            try:
                self.add_tenant_index(conn, table_name)
            except Exception as exc:
                raise RuntimeError(
                    f"failed to add tenant index for {table_name}: {exc}"
                ) from exc


def clean_callback_name(prefix: str, operation: str) -> str:
    """Return a hook name of the form ``prefix:operation``."""
    return f"{prefix}:{operation}"