import json
from wsgiref.util import setup_testing_defaults

import pytest

from tenantscope import context
from tenantscope.middleware import (
    CONTEXT_KEY,
    MiddlewareConfig,
    TenantMiddleware,
    get_tenant_context,
    get_tenant_id,
    must_get_tenant_id,
    request_from_environ,
    with_tenant_id,
)
from tenantscope.resolvers import (
    ChainResolver,
    HeaderResolver,
    InvalidTenantError,
    ParamResolver,
    QueryParamResolver,
    StaticResolver,
    TenantNotFoundError,
)


def make_environ(path="/test", query="", headers=None, host=None, routing_args=None):
    environ = {"PATH_INFO": path, "QUERY_STRING": query, "REQUEST_METHOD": "GET"}
    for name, value in (headers or {}).items():
        environ["HTTP_" + name.upper().replace("-", "_")] = value
    if host is not None:
        environ["HTTP_HOST"] = host
    if routing_args is not None:
        environ["wsgiorg.routing_args"] = ((), routing_args)
    setup_testing_defaults(environ)
    return environ


def run(app, **kwargs):
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = int(status.split()[0])
        captured["headers"] = dict(headers)

    body = b"".join(app(make_environ(**kwargs), start_response)).decode("utf-8")
    return captured["status"], body


def tenant_app(environ, start_response):
    try:
        body = get_tenant_id(environ)
        status = "200 OK"
    except LookupError as exc:
        body = str(exc)
        status = "500 Internal Server Error"
    start_response(status, [("Content-Type", "text/plain")])
    return [body.encode("utf-8")]


def ok_app(environ, start_response):
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"ok"]


class MockResolver:
    def __init__(self, tenant_id="", error=None):
        self.tenant_id = tenant_id
        self.error = error

    def resolve(self, request):
        if self.error is not None:
            raise self.error
        return self.tenant_id


def test_header_resolver_passes_tenant_to_app():
    app = TenantMiddleware(tenant_app, MiddlewareConfig(resolver=HeaderResolver("X-Tenant-ID")))
    status, body = run(app, headers={"X-Tenant-ID": "tenant123"})
    assert status == 200
    assert body == "tenant123"


def test_default_config_uses_header():
    app = TenantMiddleware(tenant_app)
    status, body = run(app, headers={"X-Tenant-ID": "default-tenant"})
    assert (status, body) == (200, "default-tenant")


def test_missing_tenant_gives_400_json():
    app = TenantMiddleware(ok_app, MiddlewareConfig(resolver=HeaderResolver()))
    status, body = run(app)
    assert status == 400
    assert json.loads(body)["error"].startswith("tenant resolution failed:")


def test_custom_error_handler():
    errors = []

    def handler(environ, start_response, error):
        errors.append(error)
        start_response("401 Unauthorized", [("Content-Type", "text/plain")])
        return [b"custom error"]

    app = TenantMiddleware(ok_app, MiddlewareConfig(error_handler=handler))
    status, body = run(app)
    assert status == 401
    assert body == "custom error"
    assert len(errors) == 1
    assert isinstance(errors[0], TenantNotFoundError)


@pytest.mark.parametrize(
    "path, code",
    [("/health", 200), ("/metrics", 200), ("/metrics/prometheus", 400), ("/api", 400)],
)
def test_skip_paths_exact(path, code):
    app = TenantMiddleware(ok_app, MiddlewareConfig(skip_paths=("/health", "/metrics")))
    status, _ = run(app, path=path)
    assert status == code


@pytest.mark.parametrize(
    "path, code",
    [("/health", 200), ("/metrics/prometheus", 200), ("/api/users", 400)],
)
def test_skip_paths_prefix(path, code):
    config = MiddlewareConfig(skip_paths=("/health", "/metrics"), match_prefix=True)
    status, _ = run(TenantMiddleware(ok_app, config), path=path)
    assert status == code


def test_skipped_path_has_no_tenant():
    seen = []

    def health(environ, start_response):
        with pytest.raises(LookupError):
            get_tenant_id(environ)
        seen.append(environ["PATH_INFO"])
        start_response("200 OK", [])
        return [b"healthy"]

    app = TenantMiddleware(health, MiddlewareConfig(skip_paths=("/health",)))
    status, body = run(app, path="/health")
    assert (status, body) == (200, "healthy")
    assert seen == ["/health"]


@pytest.mark.parametrize(
    "resolver, kwargs, expected",
    [
        (HeaderResolver(), {"headers": {"X-Tenant-ID": "header-tenant"}}, "header-tenant"),
        (QueryParamResolver("tenant"), {"query": "tenant=query-tenant"}, "query-tenant"),
        (StaticResolver("static-tenant"), {}, "static-tenant"),
        (
            ChainResolver([HeaderResolver(), StaticResolver("fallback-tenant")]),
            {},
            "fallback-tenant",
        ),
        (ParamResolver("tenantID"), {"routing_args": {"tenantID": "test-tenant"}}, "test-tenant"),
    ],
)
def test_integration_resolvers(resolver, kwargs, expected):
    app = TenantMiddleware(tenant_app, MiddlewareConfig(resolver=resolver))
    status, body = run(app, **kwargs)
    assert (status, body) == (200, expected)


@pytest.mark.parametrize("tenant_id", ["tenant-123", "tenant-456"])
def test_different_tenants(tenant_id):
    app = TenantMiddleware(tenant_app)
    assert run(app, path="/api/users", headers={"X-Tenant-ID": tenant_id}) == (200, tenant_id)


@pytest.mark.parametrize(
    "resolver, code",
    [
        (MockResolver(tenant_id="mock"), 200),
        (MockResolver(error=ValueError("mock error")), 400),
        (MockResolver(tenant_id=""), 400),
    ],
)
def test_custom_resolver(resolver, code):
    status, _ = run(TenantMiddleware(ok_app, MiddlewareConfig(resolver=resolver)))
    assert status == code


def test_blank_tenant_reports_context_failure():
    errors = []

    def handler(environ, start_response, error):
        errors.append(error)
        start_response("400 Bad Request", [])
        return [b""]

    config = MiddlewareConfig(resolver=StaticResolver("   "), error_handler=handler)
    status, _ = run(TenantMiddleware(ok_app, config))
    assert status == 400
    assert isinstance(errors[0], InvalidTenantError)
    assert "failed to create tenant context" in str(errors[0])


def test_context_bound_during_call_and_reset_after():
    seen = []

    def app(environ, start_response):
        ctx = context.current_context()
        seen.append((ctx.tenant_id, ctx.user_id, ctx.request_id))
        start_response("200 OK", [])
        return [b""]

    status, _ = run(TenantMiddleware(app), headers={"X-Tenant-ID": "t1"})
    assert status == 200
    assert seen == [("t1", "http-request", "t1-req")]
    with pytest.raises(LookupError):
        context.current_context()


def test_custom_context_key_stores_context():
    seen = []

    def app(environ, start_response):
        seen.append(environ["my_tenant"].tenant_id)
        start_response("200 OK", [])
        return [b"stored"]

    status, body = run(
        TenantMiddleware(app, MiddlewareConfig(context_key="my_tenant")),
        headers={"X-Tenant-ID": "k1"},
    )
    assert (status, body) == (200, "stored")
    assert seen == ["k1"]


def test_get_tenant_context_from_environ():
    environ = {CONTEXT_KEY: context.new_context("tenant123", "user1", "req1")}
    assert get_tenant_context(environ).tenant_id == "tenant123"
    assert get_tenant_id(environ) == "tenant123"


def test_get_tenant_context_falls_back_to_bound_context():
    with context.bind(context.new_context("t123", "u456", "r789")):
        assert get_tenant_context({}).tenant_id == "t123"


def test_get_tenant_id_without_context_raises():
    with pytest.raises(LookupError):
        get_tenant_id({})


def test_with_tenant_id():
    environ = with_tenant_id({}, "tenant789")
    assert get_tenant_id(environ) == "tenant789"
    assert get_tenant_context(environ).request_id == "tenant789-test-req"


def test_with_tenant_id_rejects_empty():
    with pytest.raises(ValueError):
        with_tenant_id({}, "")


def test_must_get_tenant_id_raises_without_context():
    with pytest.raises(RuntimeError, match="tenant context not found"):
        must_get_tenant_id({})


def test_must_get_tenant_id_success():
    environ = with_tenant_id({}, "tenant999")
    assert must_get_tenant_id(environ) == "tenant999"


def test_request_from_environ():
    environ = make_environ(
        path="/tenants/a/users",
        query="tenant=q",
        headers={"X-Tenant-ID": "h"},
        host="t1.example.com:8080",
        routing_args={"tenantID": "p"},
    )
    request = request_from_environ(environ)
    assert request.path == "/tenants/a/users"
    assert request.query == "tenant=q"
    assert request.host == "t1.example.com:8080"
    assert request.headers["x-tenant-id"] == "h"
    assert request.params == {"tenantID": "p"}
    assert request.method == "GET"