"""
Out-of-band integrity check of StockLevel against its lots and its ledger.

Drift is never raised to a writer: it is logged, the row is flagged with
`needs_reconciliation`, and optionally repaired.
"""
import logging

from ..exceptions import StockDriftError
from ..models import MovementType, StockLevel
from .ledger import MovementLedger
from .locking import stock_transaction
from .projector import StockProjector

logger = logging.getLogger(__name__)


def check_stock_level(level):
    """Return a StockDriftError describing `level`'s drift, or None when consistent."""
    lots_total = level.quantity + StockProjector.verify(level)
    ledger_total = MovementLedger.replay(level.school, level.product)
    breaks = MovementLedger.chain_breaks(level.school, level.product)
    if breaks:
        logger.warning(f"Movimentações fora de sequência no estoque {level.pk}: {breaks}")
    if lots_total == level.quantity and ledger_total == level.quantity:
        return None
    drift = StockDriftError(level.school_id, level.product_id, level.quantity, lots_total)
    drift.ledger_total = ledger_total
    drift.chain_breaks = breaks
    return drift


def repair_stock_level(level_id):
    """Recompute the level from its lots and append an `ajuste` so the ledger replays to it."""
    with stock_transaction():
        level = StockLevel.objects.select_for_update().select_related('school', 'product').get(pk=level_id)
        StockProjector.recompute(level)
        ledger_total = MovementLedger.replay(level.school, level.product)
        delta = level.quantity - ledger_total
        if delta:
            MovementLedger.append(
                level.school, level.product, MovementType.AJUSTE,
                before=ledger_total,
                delta=delta,
                reason='Reconciliação automática',
            )
        level.needs_reconciliation = False
        level.save(update_fields=['needs_reconciliation', 'updated_at'])
    return level


def reconcile_tenant(repair=False):
    """Check every stock level of the bound tenant. Returns the drifts found."""
    drifts = []
    for level in StockLevel.objects.select_related('school', 'product').order_by('id'):
        drift = check_stock_level(level)
        if drift is None:
            continue
        logger.error(
            f"{drift} Ledger: {drift.ledger_total}. Quebras de encadeamento: {drift.chain_breaks}"
        )
        drifts.append(drift)
        if repair:
            repair_stock_level(level.pk)
            logger.info(f"Estoque {level.pk} reconciliado a partir dos lotes.")
        else:
            StockLevel.objects.filter(pk=level.pk).update(needs_reconciliation=True)
    return drifts
