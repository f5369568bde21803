"""
Consistency Enforcer - the only write path for lots, stock levels and the
ledger.

Each public method is one logical operation running in a single stock
transaction: lots, the StockLevel row and the movement rows either all
change or none do. Lock order is always StockLevel first, then lots, so
concurrent writers of the same (school, product) queue on the StockLevel row.
"""
import logging
import uuid
from decimal import Decimal
from typing import NamedTuple, Optional

from django.db import transaction
from django.utils import timezone

from apps.products.models import Product
from apps.tenants.context import require_tenant
from apps.tenants.exceptions import CrossTenantAccessError

from ..exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    InventoryValidationError,
    NegativeRemainingError,
)
from ..models import MovementType, School, StockBand, StockLevel
from .allocation import AllocationEngine
from .cache import StockLevelCache
from .ledger import MovementLedger
from .locking import stock_transaction
from .lots import LotStore, to_quantity
from .operations import OperationKind, OperationState, StockOperation
from .projector import StockProjector

logger = logging.getLogger(__name__)


class ConsumeResult(NamedTuple):
    allocations: list
    new_aggregate: StockLevel
    movements: list


class TransferResult(NamedTuple):
    allocations: list
    source_aggregate: StockLevel
    destination_aggregate: StockLevel
    movements: list
    transfer_group: uuid.UUID


class StockService:

    # ------------------------------------------------------------------
    # Resolution (always through the tenant-scoped managers)
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve(model, value, label):
        tenant = require_tenant()
        if isinstance(value, model):
            if value.tenant_id != tenant.pk:
                raise CrossTenantAccessError(label, value.pk, tenant.pk)
            return value
        try:
            return model.objects.get(pk=value)
        except (model.DoesNotExist, ValueError, TypeError):
            raise CrossTenantAccessError(label, value, tenant.pk)

    @classmethod
    def get_school(cls, school):
        return cls._resolve(School, school, 'Escola')

    @classmethod
    def get_product(cls, product):
        return cls._resolve(Product, product, 'Produto')

    @staticmethod
    def _invalidate_cache_on_commit(*levels):
        tenant_id = require_tenant().pk
        for level in levels:
            transaction.on_commit(
                lambda level=level: StockLevelCache.invalidate(tenant_id, level.school_id, level.product_id)
            )

    @staticmethod
    def _check_consistency(level, expected):
        if level.quantity != expected:
            logger.error(
                f"Divergência entre ledger ({expected}) e lotes ({level.quantity}) "
                f"na escola {level.school_id}, produto {level.product_id}."
            )
            StockLevel.objects.filter(pk=level.pk).update(needs_reconciliation=True)

    # ------------------------------------------------------------------
    # Steps shared by the operations (caller holds the transaction)
    # ------------------------------------------------------------------

    @classmethod
    def _apply_receive(cls, school, product, batch_label, quantity, expiration, today,
                       movement_type, reason, source_doc, user, transfer_group=None, merge=False):
        level = StockProjector.lock(school, product)
        before = level.quantity
        lot = LotStore.receive(school, product, batch_label, quantity, expiration, today=today, merge=merge)
        StockProjector.recompute(level)
        movement = MovementLedger.append(
            school, product, movement_type,
            before=before,
            delta=level.quantity - before,
            lot=lot,
            reason=reason,
            source_doc=source_doc,
            user=user,
            transfer_group=transfer_group,
        )
        return lot, level, movement

    @classmethod
    def _apply_consume(cls, school, product, quantity, today, movement_type, reason,
                       source_doc, user, allow_expired=None, transfer_group=None):
        level = StockProjector.lock(school, product, create=False)
        if level is None:
            raise InsufficientStockError(quantity, 0)

        allocations = AllocationEngine.allocate(
            school, product, quantity, today=today, allow_expired=allow_expired
        )
        for allocation in allocations:
            LotStore.decrement(allocation.lot, allocation.quantity, today=today)

        running = level.quantity
        StockProjector.recompute(level)

        movements = []
        for allocation in allocations:
            movements.append(MovementLedger.append(
                school, product, movement_type,
                before=running,
                delta=-allocation.quantity,
                lot=allocation.lot,
                reason=reason,
                source_doc=source_doc,
                user=user,
                transfer_group=transfer_group,
            ))
            running -= allocation.quantity

        cls._check_consistency(level, running)
        return allocations, level, movements

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @classmethod
    def receive(cls, school, product, batch_label, quantity, expiration=None, reason='',
                source_doc='', user=None, today=None):
        """Receive a new lot: creates the Lot, raises the stock level, writes an `entrada`."""
        today = today or timezone.localdate()
        operation = StockOperation(OperationKind.RECEIVE, school=school, product=product, quantity=quantity)
        with operation.run():
            with stock_transaction():
                quantity = to_quantity(quantity)
                if quantity <= 0:
                    raise InvalidQuantityError(quantity)
                school = cls.get_school(school)
                product = cls.get_product(product)
                operation.advance(OperationState.VALIDATED)

                lot, level, _ = cls._apply_receive(
                    school, product, batch_label, quantity, expiration, today,
                    MovementType.ENTRADA, reason, source_doc, user,
                )
                operation.advance(OperationState.APPLIED)
                cls._invalidate_cache_on_commit(level)
            operation.advance(OperationState.COMMITTED)
        return lot

    @classmethod
    def consume(cls, school, product, quantity, reason='', source_doc='', user=None,
                today=None, allow_expired=None):
        """
        Withdraw `quantity` following expiration priority.

        Either every allocated lot is decremented and one `saida` row per lot
        is written, or (InsufficientStockError and any other failure) nothing
        changes.
        """
        today = today or timezone.localdate()
        operation = StockOperation(OperationKind.CONSUME, school=school, product=product, quantity=quantity)
        with operation.run():
            with stock_transaction():
                quantity = to_quantity(quantity)
                if quantity <= 0:
                    raise InvalidQuantityError(quantity)
                school = cls.get_school(school)
                product = cls.get_product(product)
                operation.advance(OperationState.VALIDATED)

                allocations, level, movements = cls._apply_consume(
                    school, product, quantity, today, MovementType.SAIDA,
                    reason, source_doc, user, allow_expired=allow_expired,
                )
                operation.advance(OperationState.APPLIED)
                cls._invalidate_cache_on_commit(level)
            operation.advance(OperationState.COMMITTED)
        return ConsumeResult([a.as_pair() for a in allocations], level, movements)

    @classmethod
    def adjust(cls, lot_id, delta, reason, source_doc='', user=None, today=None):
        """Signed correction of one lot (stock counts, losses), recorded as `ajuste`."""
        today = today or timezone.localdate()
        operation = StockOperation(OperationKind.ADJUST, lot=lot_id, delta=delta)
        with operation.run():
            with stock_transaction():
                delta = to_quantity(delta)
                if delta == 0:
                    raise InvalidQuantityError(delta)
                lot = LotStore.get(lot_id)
                level = StockProjector.lock(lot.school, lot.product)
                lot = LotStore.get(lot_id, for_update=True)
                if lot.remaining_quantity + delta < 0:
                    raise NegativeRemainingError(lot.pk, lot.remaining_quantity, delta)
                if not lot.is_blocked and level.quantity + delta < 0:
                    raise NegativeRemainingError(lot.pk, level.quantity, delta)
                operation.advance(OperationState.VALIDATED)

                before = level.quantity
                LotStore.adjust(lot, delta, today=today)
                StockProjector.recompute(level)
                operation.advance(OperationState.APPLIED)

                MovementLedger.append(
                    lot.school, lot.product, MovementType.AJUSTE,
                    before=before,
                    delta=level.quantity - before,
                    lot=lot,
                    reason=reason,
                    source_doc=source_doc,
                    user=user,
                )
                cls._invalidate_cache_on_commit(level)
            operation.advance(OperationState.COMMITTED)
        return lot

    @classmethod
    def transfer(cls, source, destination, product, quantity, reason='', source_doc='',
                 user=None, today=None, allow_expired=None):
        """
        Move stock between two schools: a consumption at `source` and a
        receipt of the same batches (label and expiration kept) at
        `destination`, in one transaction.
        """
        today = today or timezone.localdate()
        group = uuid.uuid4()
        operation = StockOperation(
            OperationKind.TRANSFER, source=source, destination=destination, product=product, quantity=quantity
        )
        with operation.run():
            with stock_transaction():
                quantity = to_quantity(quantity)
                if quantity <= 0:
                    raise InvalidQuantityError(quantity)
                source = cls.get_school(source)
                destination = cls.get_school(destination)
                product = cls.get_product(product)
                if source.pk == destination.pk:
                    raise InventoryValidationError("Escola de origem e destino devem ser diferentes.")
                operation.advance(OperationState.VALIDATED)

                # lock both stock levels in a fixed order so opposite transfers cannot deadlock
                for school in sorted((source, destination), key=lambda s: s.pk):
                    StockProjector.lock(school, product, create=school.pk == destination.pk)

                allocations, source_level, movements = cls._apply_consume(
                    source, product, quantity, today, MovementType.TRANSFERENCIA,
                    reason, source_doc, user, allow_expired=allow_expired, transfer_group=group,
                )
                destination_level = None
                for allocation in allocations:
                    _, destination_level, movement = cls._apply_receive(
                        destination, product,
                        allocation.lot.batch_label,
                        allocation.quantity,
                        allocation.lot.expiration_date,
                        today,
                        MovementType.TRANSFERENCIA,
                        reason, source_doc, user,
                        transfer_group=group,
                        merge=True,
                    )
                    movements.append(movement)
                operation.advance(OperationState.APPLIED)
                cls._invalidate_cache_on_commit(source_level, destination_level)
            operation.advance(OperationState.COMMITTED)
        return TransferResult(
            [a.as_pair() for a in allocations], source_level, destination_level, movements, group
        )

    @classmethod
    def _set_lot_blocked(cls, kind, lot_id, blocked, reason, user, today):
        today = today or timezone.localdate()
        operation = StockOperation(kind, lot=lot_id)
        with operation.run():
            with stock_transaction():
                lot = LotStore.get(lot_id)
                level = StockProjector.lock(lot.school, lot.product)
                lot = LotStore.get(lot_id, for_update=True)
                operation.advance(OperationState.VALIDATED)

                before = level.quantity
                if blocked:
                    LotStore.block(lot)
                else:
                    LotStore.unblock(lot, today=today)
                StockProjector.recompute(level)
                operation.advance(OperationState.APPLIED)

                MovementLedger.append(
                    lot.school, lot.product, MovementType.AJUSTE,
                    before=before,
                    delta=level.quantity - before,
                    lot=lot,
                    reason=reason,
                    user=user,
                )
                cls._invalidate_cache_on_commit(level)
            operation.advance(OperationState.COMMITTED)
        return lot

    @classmethod
    def block_lot(cls, lot_id, reason='Lote bloqueado', user=None, today=None):
        """Take a lot out of circulation; its remaining quantity leaves the stock level."""
        return cls._set_lot_blocked(OperationKind.BLOCK, lot_id, True, reason, user, today)

    @classmethod
    def unblock_lot(cls, lot_id, reason='Lote desbloqueado', user=None, today=None):
        return cls._set_lot_blocked(OperationKind.UNBLOCK, lot_id, False, reason, user, today)

    @classmethod
    def set_thresholds(cls, school, product, minimum=None, maximum=None):
        with stock_transaction():
            school = cls.get_school(school)
            product = cls.get_product(product)
            level = StockProjector.lock(school, product, create=False)
            if level is None:
                raise InventoryValidationError(
                    f"Produto {product.pk} ainda não tem estoque na escola {school.pk}. "
                    "Registre uma entrada antes de definir limites."
                )
            StockProjector.set_thresholds(level, minimum, maximum)
            cls._invalidate_cache_on_commit(level)
        return level

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @classmethod
    def get_stock_level(cls, school, product, allow_stale=False) -> Optional[StockLevel]:
        school = cls.get_school(school)
        product = cls.get_product(product)
        if allow_stale:
            cached = StockLevelCache.get(school.pk, product.pk)
            if cached is not None:
                return cached
        level = StockLevel.objects.filter(school=school, product=product).first()
        if level is not None and allow_stale:
            StockLevelCache.set(level)
        return level

    @classmethod
    def list_school_stock(cls, school):
        """
        Stock of every active product at an active school, by category and
        name. Products never received there come as unsaved zero levels with
        status `out`.
        """
        school = cls.get_school(school)
        if not school.is_active:
            return []
        levels = {level.product_id: level for level in StockLevel.objects.filter(school=school)}
        stock = []
        for product in Product.objects.filter(is_active=True).order_by('category', 'name'):
            level = levels.get(product.pk)
            if level is None:
                level = StockLevel(
                    tenant=school.tenant,
                    school=school,
                    product=product,
                    quantity=Decimal('0'),
                    status=StockBand.OUT,
                )
            else:
                level.product = product
            stock.append(level)
        return stock

    @classmethod
    def list_lots(cls, school, product, include_expired=False, today=None):
        school = cls.get_school(school)
        product = cls.get_product(product)
        return LotStore.list_active_lots(school, product, include_expired=include_expired, today=today)

    @classmethod
    def history(cls, school, product, start=None, end=None):
        school = cls.get_school(school)
        product = cls.get_product(product)
        return MovementLedger.history(school, product, start=start, end=end)
