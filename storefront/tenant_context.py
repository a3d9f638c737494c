"""
Per-operation tenant context.

The active tenant lives in a ContextVar, so each thread and each asyncio task
sees only the value set by its own operation. Operations enter a
``tenant_scope`` which restores the previous value on exit, including when the
operation raises.
"""
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterator, Optional

_current_tenant: ContextVar[Optional[str]] = ContextVar("current_tenant", default=None)


@dataclass(frozen=True)
class TenantContext:
    """Resolved tenant for one logical operation.

    Attributes:
        tenant_id: The tenant identifier.
        source: How it was resolved: 'header', 'subdomain', 'path' or 'default'.
    """

    tenant_id: str
    source: str


def set_current_tenant(tenant_id: Optional[str]) -> None:
    """Store tenant_id for the calling operation only"""
    _current_tenant.set(tenant_id)


def get_current_tenant() -> Optional[str]:
    """Return the calling operation's tenant, or None when unset"""
    return _current_tenant.get()


def clear() -> None:
    """Remove the calling operation's tenant"""
    _current_tenant.set(None)


@contextmanager
def tenant_scope(tenant_id: Optional[str]) -> Iterator[Optional[str]]:
    """Run a block with tenant_id as the current tenant"""
    token = _current_tenant.set(tenant_id)
    try:
        yield tenant_id
    finally:
        _current_tenant.reset(token)
