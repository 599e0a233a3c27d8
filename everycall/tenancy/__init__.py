"""Tenant ownership of phone numbers."""

from everycall.tenancy.resolver import (
    FileRoutingSource,
    RoutingSource,
    RoutingSourceError,
    TenantNumberResolver,
)

__all__ = [
    "FileRoutingSource",
    "RoutingSource",
    "RoutingSourceError",
    "TenantNumberResolver",
]
