"""
Tenant context management.

The active tenant lives in a ContextVar, so a binding made by one thread or
asyncio task is never visible to another one, even when both work for the
same tenant. Everything that touches tenant-scoped rows reads it through
`require_tenant()` (see apps.tenants.managers), which is the single chokepoint
that keeps queries inside the bound tenant.
"""
import logging
from contextvars import ContextVar
from functools import wraps
from typing import Optional

from .exceptions import (
    TenantContextMissingError,
    TenantInactiveError,
    TenantNotFoundError,
)

logger = logging.getLogger(__name__)

_active_tenant: ContextVar = ContextVar('active_tenant', default=None)


def resolve_tenant(tenant_or_id):
    """
    Load the tenant from the store and check it may be used.

    Accepts a Tenant instance or its primary key. The status is always read
    fresh from the database, so a tenant suspended after the instance was
    loaded is still refused.
    """
    from django.core.exceptions import ValidationError
    from .models import Tenant

    tenant_id = getattr(tenant_or_id, 'pk', tenant_or_id)
    if tenant_id is None:
        raise TenantNotFoundError(tenant_id)

    try:
        tenant = Tenant.objects.select_related('plan').get(pk=tenant_id)
    except (Tenant.DoesNotExist, ValueError, TypeError, ValidationError):
        logger.warning(f"Tentativa de vincular tenant inexistente: {tenant_id}")
        raise TenantNotFoundError(tenant_id)

    if not tenant.is_active:
        logger.warning(f"Tentativa de vincular tenant {tenant.pk} com status {tenant.status}")
        raise TenantInactiveError(tenant.pk, tenant.status)

    return tenant


class ScopedContext:
    """
    Handle returned by `bind()`.

    The binding is active from `bind()` until `release()`; used as a context
    manager it is released on exit, restoring whatever tenant was bound
    before (or clearing the context when there was none).
    """

    def __init__(self, tenant):
        self.tenant = tenant
        self._token = _active_tenant.set(tenant)

    @property
    def tenant_id(self):
        return self.tenant.pk

    @property
    def active(self):
        return self._token is not None

    def release(self):
        if self._token is None:
            return
        token, self._token = self._token, None
        _active_tenant.reset(token)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

    def __repr__(self):
        return f'<ScopedContext tenant={self.tenant.pk} active={self.active}>'


def bind(tenant_or_id) -> ScopedContext:
    """Bind `tenant_or_id` as the active tenant for the calling unit of work."""
    return ScopedContext(resolve_tenant(tenant_or_id))


def current() -> Optional[int]:
    """Id of the bound tenant, or None."""
    tenant = _active_tenant.get()
    return tenant.pk if tenant is not None else None


def current_tenant():
    return _active_tenant.get()


def require_tenant():
    tenant = _active_tenant.get()
    if tenant is None:
        raise TenantContextMissingError()
    return tenant


def with_tenant(tenant_or_id, operation, *args, **kwargs):
    """
    Run `operation(*args, **kwargs)` with `tenant_or_id` bound.

    The previous binding is restored when `operation` returns and when it
    raises.
    """
    with bind(tenant_or_id):
        return operation(*args, **kwargs)


def tenant_required(func):
    """Decorator for functions that must only run with a tenant bound."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        require_tenant()
        return func(*args, **kwargs)
    return wrapper
