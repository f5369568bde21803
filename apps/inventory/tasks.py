"""
Periodic inventory jobs (celery beat)

Both jobs walk the active tenants one at a time, each under its own binding.
"""
import logging

from celery import shared_task
from django.utils import timezone

from apps.tenants.context import bind
from apps.tenants.models import Tenant, TenantStatus

from .services.lots import LotStore
from .services.reconciliation import reconcile_tenant

logger = logging.getLogger(__name__)


def _active_tenants():
    return Tenant.objects.filter(status=TenantStatus.ACTIVE).order_by('id')


@shared_task
def flag_expired_lots():
    """Task diária: marca como vencidos os lotes ativos com validade expirada."""
    today = timezone.localdate()
    total = 0
    for tenant in _active_tenants():
        with bind(tenant):
            total += LotStore.flag_expired(today=today)

    logger.info(f"CELERY BEAT: {total} lote(s) marcados como vencidos em {today}.")
    return f"Flagged {total} expired lots."


@shared_task
def reconcile_stock_levels(repair=False):
    """
    Task noturna: confere estoques contra lotes e ledger.
    Divergências são registradas e sinalizadas, nunca lançadas.
    """
    drift_count = 0
    for tenant in _active_tenants():
        with bind(tenant):
            drifts = reconcile_tenant(repair=repair)
        if drifts:
            logger.error(f"CELERY BEAT: {len(drifts)} divergência(s) de estoque no tenant {tenant.pk}.")
        drift_count += len(drifts)

    return f"Checked stock levels, {drift_count} drift(s) found."
