"""
Read replica of StockLevel rows for display.

Entries expire after INVENTORY_CACHE_TTL seconds and are dropped after every
commit that touches the pair. Write paths never read from here.
"""
from django.conf import settings
from django.core.cache import cache

from apps.tenants.context import require_tenant


class StockLevelCache:
    PREFIX = 'stock-level'

    @classmethod
    def key(cls, tenant_id, school_id, product_id):
        return f'{cls.PREFIX}:{tenant_id}:{school_id}:{product_id}'

    @classmethod
    def get(cls, school_id, product_id):
        return cache.get(cls.key(require_tenant().pk, school_id, product_id))

    @classmethod
    def set(cls, level):
        cache.set(
            cls.key(level.tenant_id, level.school_id, level.product_id),
            level,
            timeout=settings.INVENTORY_CACHE_TTL,
        )

    @classmethod
    def invalidate(cls, tenant_id, school_id, product_id):
        cache.delete(cls.key(tenant_id, school_id, product_id))
