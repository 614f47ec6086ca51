# tenantscope

Tenant resolution for WSGI applications, and tenant scoping for SQL
statements built by your data layer.

A request comes in, a *resolver* works out which tenant it belongs to, and
the middleware stores a `TenantContext` for the request and binds it as the
current context while your application runs. Code further down reads the
tenant back, and the statement plugin adds the tenant to every create,
query, update and delete statement it is given.

The package has no dependencies beyond the standard library.

## Tenant context

`tenantscope.context` holds the `TenantContext` dataclass (`tenant_id`,
`user_id`, `request_id`) and keeps the current one in a context variable,
so background jobs and tests can use the same code paths as requests:

```python
from tenantscope.context import bind, current_context, get_tenant_id, new_context, with_tenant_id

with with_tenant_id("tenant-123"):
    assert get_tenant_id() == "tenant-123"

tenant_ctx = new_context("tenant-123", "user-1", "req-1")
with bind(tenant_ctx):
    assert current_context() is tenant_ctx
```

- `new_context(tenant_id, user_id, request_id)` raises `ValueError` for a
  blank tenant ID.
- `bind(tenant_ctx)` is a context manager that makes `tenant_ctx` current
  for the block.
- `current_context()` and `get_tenant_id()` raise `LookupError` when no
  context is bound.
- `with_tenant_id(tenant_id)` binds a context with user `system` and
  request `background`.

## Resolving the tenant

`tenantscope.resolvers` defines a `Request` (path, query string, host,
headers, route parameters, method) and resolvers that read one part of it.
Each returns the tenant ID or raises `TenantNotFoundError` (a `LookupError`).
Header names are matched case-insensitively; a query string may be given
inside `path`.

| Resolver             | Reads                                    | Default          |
|----------------------|------------------------------------------|------------------|
| `HeaderResolver`     | an HTTP header                           | `X-Tenant-ID`    |
| `SubdomainResolver`  | the host, minus an optional base domain  | first host label |
| `PathResolver`       | one segment of the path, after an optional prefix | index 0 |
| `ParamResolver`      | a route parameter                        | `tenantID`       |
| `QueryParamResolver` | a query-string parameter                 | `tenant`         |
| `StaticResolver`     | nothing: always the same tenant          |                  |
| `ChainResolver`      | tries the resolvers in order             |                  |

With a base domain of `example.com`, `SubdomainResolver` turns
`tenant1.example.com:8080` into `tenant1` and `app.tenant1.example.com`
into `app.tenant1`; a host outside the base domain, or the base domain
alone, is an error.

`PathResolver(index=0, prefix="/api/")` reads `tenant1` from
`/api/tenant1/users`; a path without the prefix, or an index out of range
(negative included), is an error.

`ChainResolver` returns the first non-empty tenant ID. With no resolvers
configured it raises at once; if every resolver fails it raises a
`TenantNotFoundError` listing each failure by position. A `StaticResolver`
with an empty tenant ID raises as well.

`InvalidTenantError` (a `ValueError`) is what the middleware reports when
a resolved tenant ID cannot form a context.

## The WSGI middleware

```python
from tenantscope.middleware import MiddlewareConfig, TenantMiddleware, get_tenant_id
from tenantscope.resolvers import ChainResolver, HeaderResolver, StaticResolver


def app(environ, start_response):
    tenant_id = get_tenant_id(environ)
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [tenant_id.encode()]


application = TenantMiddleware(
    app,
    MiddlewareConfig(
        resolver=ChainResolver([HeaderResolver(), StaticResolver("fallback")]),
        skip_paths=["/health", "/metrics"],
    ),
)
```

`MiddlewareConfig` options:

- `resolver` — defaults to `HeaderResolver()` (the `X-Tenant-ID` header);
- `error_handler(environ, start_response, error)` — defaults to
  `default_error_handler`, which answers `400 Bad Request` with a JSON body
  `{"error": "tenant resolution failed: ..."}`;
- `skip_paths` — paths that go straight through; compared exactly, or as
  prefixes when `match_prefix=True`;
- `context_key` — the environ key the context is stored under (it is also
  always stored under `CONTEXT_KEY`).

Route parameters for `ParamResolver` are taken from the
`wsgiorg.routing_args` environ entry.

Inside the application:

- `get_tenant_context(environ)` returns the request's `TenantContext`,
  falling back to the bound context, and raises `LookupError` if neither
  exists;
- `get_tenant_id(environ)` returns just the tenant ID;
- `must_get_tenant_id(environ)` raises `RuntimeError` instead, for handlers
  that cannot run without a tenant;
- `with_tenant_id(environ, tenant_id)` stores a context for `tenant_id` in
  the environ and returns it, which is handy in tests;
- `request_from_environ(environ)` builds the `Request` the resolvers read.

## Scoping SQL statements

`tenantscope.plugin` works on a `Statement`: a table name, a `model` (a
mapping, an object, or a list of them), an optional `context`, `settings`,
and the `conditions` and `columns` collected through `where(clause, *args)`
and `set_column(column, value)`.

`TenantPlugin` takes its tenant from the statement's `context`, or from the
bound context when that is `None`:

- `before_create` sets the tenant column on the record, or on every record
  of a list (mapping keys, or attributes the object already has);
- `before_query`, `before_update` and `before_delete` add the condition
  `<tenant column> = ?`;
- without any tenant context they raise `TenantContextError`;
- `should_skip(statement)` is true for tables in `skip_tables` and for
  statements whose settings turn scoping off.

```python
from tenantscope.plugin import PluginConfig, Statement, TenantPlugin
from tenantscope.context import with_tenant_id

plugin = TenantPlugin(PluginConfig(tenant_column="org_id", skip_tables=["migrations"]))

with with_tenant_id("tenant-123"):
    statement = Statement(table="users")
    plugin.before_query(statement)
    assert statement.conditions == [("org_id = ?", ("tenant-123",))]
```

Scopes in `tenantscope.scopes` are functions that take a statement and
return it:

- `skip_tenant()` / `all_tenants()` turn scoping off, for system work across
  all tenants;
- `with_tenant(tenant_id)` attaches a context for that tenant and adds
  `tenant_id = ?`, without touching the bound context; it raises
  `ValueError` for a blank tenant ID;
- `tenant_only()` leaves scoping as it is and records the intent in the
  statement's settings;
- `with_context(statement, tenant_ctx)` attaches a tenant context directly.

## Migrations

`CallbackHelper` in `tenantscope.callbacks` works on a DB-API connection
that has an `execute` method (such as `sqlite3.Connection`):

- `ensure_tenant_column(conn, table_name, column_type)` adds the tenant
  column (`VARCHAR(255)` by default) if the table lacks it;
- `add_tenant_index(conn, table_name)` creates `idx_<table>_tenant_id`
  if it does not exist;
- `migrate_tenant_column(conn, *tables)` does both for each table name or
  model with a `__tablename__`, adding the column as `NOT NULL`, and raises
  `RuntimeError` naming the table on failure.

`clean_callback_name(prefix, operation)` builds names such as
`tenantkit:before_create`.

## What the package does not do

It does not run your queries and is not tied to an ORM: the plugin and
scopes only change `Statement` objects, and your data layer must build
those and turn their conditions and columns into SQL. It ships no server
and no command; the middleware wraps any WSGI application you already have.