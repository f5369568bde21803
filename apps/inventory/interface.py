"""
Entry points for the collaborators of the ledger (HTTP layer, batch jobs,
reporting).

Every function receives the pre-authenticated tenant identifier, binds it for
the duration of the call and restores the previous binding afterwards, also
when the call fails.
"""
from apps.tenants.context import with_tenant

from .services import StockService


def receive_stock(tenant_id, school_id, product_id, batch_label, quantity, expiration=None,
                  reason='', source_doc='', user=None, today=None):
    """Returns the received Lot."""
    return with_tenant(
        tenant_id, StockService.receive,
        school_id, product_id, batch_label, quantity, expiration,
        reason=reason, source_doc=source_doc, user=user, today=today,
    )


def consume_stock(tenant_id, school_id, product_id, quantity, reason='', source_doc='',
                  user=None, today=None):
    """
    Returns a ConsumeResult: `allocations` as (lot_id, quantity_taken) pairs
    and `new_aggregate`. Raises InsufficientStockError with the `shortfall`.
    """
    return with_tenant(
        tenant_id, StockService.consume,
        school_id, product_id, quantity,
        reason=reason, source_doc=source_doc, user=user, today=today,
    )


def adjust_stock(tenant_id, lot_id, delta, reason, source_doc='', user=None, today=None):
    return with_tenant(
        tenant_id, StockService.adjust,
        lot_id, delta, reason,
        source_doc=source_doc, user=user, today=today,
    )


def transfer_stock(tenant_id, source_school_id, destination_school_id, product_id, quantity,
                   reason='', source_doc='', user=None, today=None):
    return with_tenant(
        tenant_id, StockService.transfer,
        source_school_id, destination_school_id, product_id, quantity,
        reason=reason, source_doc=source_doc, user=user, today=today,
    )


def block_lot(tenant_id, lot_id, reason='Lote bloqueado', user=None):
    return with_tenant(tenant_id, StockService.block_lot, lot_id, reason=reason, user=user)


def unblock_lot(tenant_id, lot_id, reason='Lote desbloqueado', user=None):
    return with_tenant(tenant_id, StockService.unblock_lot, lot_id, reason=reason, user=user)


def set_thresholds(tenant_id, school_id, product_id, minimum=None, maximum=None):
    return with_tenant(
        tenant_id, StockService.set_thresholds,
        school_id, product_id, minimum=minimum, maximum=maximum,
    )


def get_aggregate(tenant_id, school_id, product_id, allow_stale=False):
    """
    StockLevel of the pair, or None before its first receipt. With
    `allow_stale` the answer may come from the time-bounded cache.
    """
    return with_tenant(
        tenant_id, StockService.get_stock_level,
        school_id, product_id, allow_stale=allow_stale,
    )


def list_school_stock(tenant_id, school_id):
    """
    One StockLevel per active product of the school, in category and name
    order. Products without any receipt show up with quantity 0 and status
    `out` (unsaved rows).
    """
    return with_tenant(tenant_id, StockService.list_school_stock, school_id)


def list_lots(tenant_id, school_id, product_id, include_expired=False, today=None):
    return with_tenant(
        tenant_id, StockService.list_lots,
        school_id, product_id, include_expired=include_expired, today=today,
    )


def get_history(tenant_id, school_id, product_id, start=None, end=None):
    """
    Lazy, newest-first movements. The tenant predicate is part of the
    returned queryset, so iterating it later stays inside the tenant.
    """
    return with_tenant(
        tenant_id, StockService.history,
        school_id, product_id, start=start, end=end,
    )
