"""
Transaction boundary shared by every stock write.

On PostgreSQL each transaction gets a bounded `lock_timeout` and publishes the
bound tenant as `app.current_tenant_id`, so row-level security policies see
the same tenant as the ORM filter.
"""
import logging
from contextlib import contextmanager

from django.conf import settings
from django.db import OperationalError, connection, transaction

from apps.tenants.context import require_tenant

from ..exceptions import ConcurrentUpdateError, LockTimeoutError

logger = logging.getLogger(__name__)

LOCK_NOT_AVAILABLE = '55P03'
CONFLICT_CODES = ('40001', '40P01')


def _sqlstate(error):
    cause = error.__cause__
    return getattr(cause, 'sqlstate', None) or getattr(cause, 'pgcode', None)


def is_lock_timeout(error):
    if _sqlstate(error) == LOCK_NOT_AVAILABLE:
        return True
    message = str(error).lower()
    return 'database is locked' in message or 'lock timeout' in message


def is_conflict(error):
    return _sqlstate(error) in CONFLICT_CODES


def _configure_session(tenant, timeout):
    if connection.vendor != 'postgresql':
        return
    with connection.cursor() as cursor:
        # set_config() instead of SET so the values can be parameterized
        cursor.execute("SELECT set_config('lock_timeout', %s, true)", [f'{int(timeout * 1000)}ms'])
        cursor.execute("SELECT set_config('app.current_tenant_id', %s::text, true)", [str(tenant.pk)])


@contextmanager
def stock_transaction():
    """
    Atomic block for one logical stock operation.

    Any exception, including cancellation of the caller, rolls back lots,
    stock levels and ledger rows together. Lock waits beyond
    INVENTORY_LOCK_TIMEOUT surface as LockTimeoutError.
    """
    tenant = require_tenant()
    timeout = settings.INVENTORY_LOCK_TIMEOUT
    try:
        with transaction.atomic():
            _configure_session(tenant, timeout)
            yield
    except OperationalError as e:
        if is_lock_timeout(e):
            logger.warning(f"Timeout de bloqueio ({timeout}s) no tenant {tenant.pk}: {e}")
            raise LockTimeoutError(timeout) from e
        if is_conflict(e):
            logger.warning(f"Conflito de transação no tenant {tenant.pk}: {e}")
            raise ConcurrentUpdateError(None) from e
        raise
