"""Tenant resolution for WSGI applications and tenant scoping for SQL statements."""

__version__ = "1.0.0"

__all__ = ["callbacks", "context", "middleware", "plugin", "resolvers", "scopes"]