"""Strategies that find the tenant ID of an incoming HTTP request."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import parse_qs

__all__ = [
    "Request",
    "TenantNotFoundError",
    "InvalidTenantError",
    "HeaderResolver",
    "SubdomainResolver",
    "PathResolver",
    "ParamResolver",
    "QueryParamResolver",
    "ChainResolver",
    "StaticResolver",
]

DEFAULT_HEADER = "X-Tenant-ID"
DEFAULT_PARAM = "tenantID"
DEFAULT_QUERY_PARAM = "tenant"


class TenantNotFoundError(LookupError):
    """The request carries no usable tenant ID."""


class InvalidTenantError(ValueError):
    """The request carries a tenant ID that is not acceptable."""


def _not_found(detail: str) -> TenantNotFoundError:
    return TenantNotFoundError(f"tenant ID not found: {detail}")


@dataclass
class Request:
    """The parts of an HTTP request that tenant resolution looks at.

    A query string may be given inside ``path`` (``/users?tenant=a``) or in
    ``query``. Header names are matched case-insensitively.
    """

    path: str = "/"
    query: str = ""
    host: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, str] = field(default_factory=dict)
    method: str = "GET"

    def __post_init__(self) -> None:
        if "?" in self.path:
            self.path, _, embedded = self.path.partition("?")
            if not self.query:
                self.query = embedded
        self.headers = {name.lower(): value for name, value in self.headers.items()}
        self.params = dict(self.params)


class _Resolver(Protocol):
    def resolve(self, request: Request) -> str: ...


@dataclass
class HeaderResolver:
    """Read the tenant ID from a request header."""

    header_name: str = DEFAULT_HEADER

    def resolve(self, request: Request) -> str:
        name = self.header_name or DEFAULT_HEADER
        tenant_id = request.headers.get(name.lower(), "")
        if not tenant_id:
            raise _not_found(f"header {name} is empty")
        return tenant_id


@dataclass
class SubdomainResolver:
    """Read the tenant ID from the host: ``tenant1.example.com`` gives ``tenant1``.

    Without a base domain the first label of the host is used.
    """

    base_domain: str = ""

    def resolve(self, request: Request) -> str:
        host = request.host.partition(":")[0]
        if self.base_domain:
            suffix = "." + self.base_domain
            if not host.endswith(suffix):
                raise _not_found(
                    f"host {host} does not end with base domain {self.base_domain}"
                )
            subdomain = host[: -len(suffix)]
            if not subdomain:
                raise _not_found(f"no subdomain found in host {host}")
            return subdomain
        first = host.split(".")[0]
        if not first:
            raise _not_found(f"cannot extract subdomain from host {host}")
        return first


@dataclass
class PathResolver:
    """Read the tenant ID from a zero-based path segment, after an optional prefix."""

    index: int = 0
    prefix: str = ""

    def resolve(self, request: Request) -> str:
        path = request.path
        if self.prefix:
            if not path.startswith(self.prefix):
                raise _not_found(f"path does not start with {self.prefix}")
            path = path[len(self.prefix):]
        segments = path.strip("/").split("/")
        if not 0 <= self.index < len(segments):
            raise _not_found(
                f"path index {self.index} out of range for path {request.path}"
            )
        tenant_id = segments[self.index]
        if not tenant_id:
            raise _not_found(f"path segment at index {self.index} is empty")
        return tenant_id


@dataclass
class ParamResolver:
    """Read the tenant ID from a route parameter such as ``/tenants/{tenantID}``."""

    param_name: str = DEFAULT_PARAM

    def resolve(self, request: Request) -> str:
        name = self.param_name or DEFAULT_PARAM
        tenant_id = request.params.get(name, "")
        if not tenant_id:
            raise _not_found(f"parameter {name} is empty")
        return tenant_id


@dataclass
class QueryParamResolver:
    """Read the tenant ID from a query parameter: ``?tenant=tenant1``."""

    param_name: str = DEFAULT_QUERY_PARAM

    def resolve(self, request: Request) -> str:
        name = self.param_name or DEFAULT_QUERY_PARAM
        values = parse_qs(request.query, keep_blank_values=True).get(name, [""])
        tenant_id = values[0]
        if not tenant_id:
            raise _not_found(f"query parameter {name} is empty")
        return tenant_id


@dataclass
class ChainResolver:
    """Try resolvers in order and return the first non-empty tenant ID."""

    resolvers: Sequence[_Resolver] = ()

    def resolve(self, request: Request) -> str:
        if not self.resolvers:
            raise _not_found("no resolvers configured")
        failures: list[str] = []
        last_error: Exception | None = None
        for position, resolver in enumerate(self.resolvers):
            try:
                tenant_id = resolver.resolve(request)
            except Exception as exc:  # any resolver failure moves on to the next
                failures.append(f"resolver {position}: {exc}")
                last_error = exc
                continue
            if tenant_id:
                return tenant_id
        if failures:
            raise _not_found(
                "all resolvers failed: " + "; ".join(failures)
            ) from last_error
        raise _not_found("no resolver found tenant ID")


@dataclass
class StaticResolver:
    """Always return the same tenant ID; for tests and single-tenant setups."""

    tenant_id: str = ""

    def resolve(self, request: Request) -> str:
        if not self.tenant_id:
            raise _not_found("static tenant ID is empty")
        return self.tenant_id