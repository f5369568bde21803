"""
Lot Store - reads and writes of individual batches.

Lots are never deleted. Every write here happens inside a stock transaction
opened by StockService, which also takes care of the stock level and ledger.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.db.models import F
from django.utils import timezone

from apps.tenants.context import require_tenant
from apps.tenants.exceptions import CrossTenantAccessError

from ..exceptions import (
    ConcurrentUpdateError,
    InvalidLotError,
    InvalidQuantityError,
    NegativeRemainingError,
)
from ..models import QUANTITY, Lot, LotStatus

logger = logging.getLogger(__name__)

IMPLICIT_LOT_LABEL = 'UNICO'

ALLOCATION_ORDER = (F('expiration_date').asc(nulls_last=True), 'created_at', 'id')

# smallest step and exclusive upper bound storable in a QUANTITY column
QUANTUM = Decimal(1).scaleb(-QUANTITY['decimal_places'])
QUANTITY_LIMIT = Decimal(10) ** (QUANTITY['max_digits'] - QUANTITY['decimal_places'])


def to_quantity(value):
    """
    Parse `value` into a Decimal at the scale of the quantity columns.

    Anything that cannot be stored as-is (not a number, NaN, infinity, too
    many integer digits) raises InvalidQuantityError. Extra decimal places are
    rounded half-up, so callers must check the sign of the rounded value.
    """
    try:
        quantity = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidQuantityError(value)
    if not quantity.is_finite() or abs(quantity) >= QUANTITY_LIMIT:
        raise InvalidQuantityError(value)
    quantity = quantity.quantize(QUANTUM, rounding=ROUND_HALF_UP)
    if abs(quantity) >= QUANTITY_LIMIT:
        raise InvalidQuantityError(value)
    return quantity


class LotStore:

    @staticmethod
    def get(lot_id, for_update=False):
        queryset = Lot.objects.select_related('school', 'product')
        if for_update:
            queryset = queryset.select_for_update(of=('self',))
        try:
            return queryset.get(pk=lot_id)
        except (Lot.DoesNotExist, ValueError, TypeError):
            raise CrossTenantAccessError('Lote', lot_id, require_tenant().pk)

    @staticmethod
    def list_active_lots(school, product, include_expired=False, today=None, for_update=False):
        """
        Lots that still hold stock, in allocation order: expiration ascending
        (lots without expiration last), then creation order.
        """
        today = today or timezone.localdate()
        statuses = [LotStatus.ACTIVE]
        if include_expired:
            statuses.append(LotStatus.EXPIRED)

        queryset = Lot.objects.filter(
            school=school,
            product=product,
            status__in=statuses,
            remaining_quantity__gt=0,
        )
        if not include_expired:
            queryset = queryset.exclude(expiration_date__lt=today)
        if for_update:
            queryset = queryset.select_for_update()
        return list(queryset.order_by(*ALLOCATION_ORDER))

    @classmethod
    def receive(cls, school, product, batch_label, quantity, expiration=None, today=None, merge=False):
        """
        Create a lot with remaining == initial == quantity.

        Non-perishable products always land in their single implicit lot.
        With `merge`, an existing lot with the same label and expiration is
        topped up instead of being rejected (used by transfers).
        """
        today = today or timezone.localdate()
        quantity = to_quantity(quantity)
        if quantity <= 0:
            raise InvalidQuantityError(quantity)

        if product.is_perishable:
            if expiration is None:
                raise InvalidLotError(f"Produto perecível '{product.name}' exige data de validade.")
            batch_label = (batch_label or '').strip()
            if not batch_label:
                raise InvalidLotError("Informe o identificador do lote.")
        else:
            if expiration is not None:
                raise InvalidLotError(f"Produto não perecível '{product.name}' não aceita data de validade.")
            batch_label = IMPLICIT_LOT_LABEL
            merge = True

        existing = (
            Lot.objects.select_for_update()
            .filter(school=school, product=product, batch_label=batch_label)
            .first()
        )
        if existing is None:
            lot = Lot(
                school=school,
                product=product,
                batch_label=batch_label,
                initial_quantity=quantity,
                remaining_quantity=quantity,
                expiration_date=expiration,
            )
            lot.refresh_status(today)
            lot.save()
            return lot

        if not merge:
            raise InvalidLotError(f"Lote '{batch_label}' já existe para este produto nesta escola.")
        if existing.expiration_date != expiration:
            raise InvalidLotError(
                f"Lote '{batch_label}' já existe com validade {existing.expiration_date}."
            )
        if existing.is_blocked:
            raise InvalidLotError(f"Lote '{batch_label}' está bloqueado e não pode receber entradas.")

        if existing.initial_quantity + quantity >= QUANTITY_LIMIT:
            raise InvalidQuantityError(quantity)
        existing.initial_quantity += quantity
        existing.remaining_quantity += quantity
        existing.refresh_status(today)
        existing.save(update_fields=['initial_quantity', 'remaining_quantity', 'status', 'updated_at'])
        return existing

    @staticmethod
    def decrement(lot, quantity, today=None):
        """
        Take `quantity` from `lot`.

        The UPDATE only matches if `remaining_quantity` is still the value the
        allocation was computed from, so a concurrent writer that slipped past
        the row lock can never make two withdrawals read the same balance.
        """
        today = today or timezone.localdate()
        quantity = to_quantity(quantity)
        expected = lot.remaining_quantity
        if quantity <= 0 or quantity > expected:
            raise InvalidQuantityError(quantity)

        lot.remaining_quantity = expected - quantity
        lot.refresh_status(today)
        lot.updated_at = timezone.now()
        updated = Lot.objects.filter(pk=lot.pk, remaining_quantity=expected).update(
            remaining_quantity=lot.remaining_quantity,
            status=lot.status,
            updated_at=lot.updated_at,
        )
        if updated != 1:
            raise ConcurrentUpdateError(lot.pk)
        return lot

    @staticmethod
    def adjust(lot, delta, today=None):
        """
        Apply a signed correction directly to `lot`, bypassing allocation.

        A positive correction above the initial quantity raises the initial
        quantity with it.
        """
        today = today or timezone.localdate()
        delta = to_quantity(delta)
        if delta == 0:
            raise InvalidQuantityError(delta)

        new_remaining = lot.remaining_quantity + delta
        if new_remaining < 0:
            raise NegativeRemainingError(lot.pk, lot.remaining_quantity, delta)
        if new_remaining >= QUANTITY_LIMIT:
            raise InvalidQuantityError(delta)

        lot.remaining_quantity = new_remaining
        if new_remaining > lot.initial_quantity:
            lot.initial_quantity = new_remaining
        lot.refresh_status(today)
        lot.save(update_fields=['initial_quantity', 'remaining_quantity', 'status', 'updated_at'])
        return lot

    @staticmethod
    def block(lot):
        if lot.is_blocked:
            raise InvalidLotError(f"Lote '{lot.batch_label}' já está bloqueado.")
        lot.status = LotStatus.BLOCKED
        lot.save(update_fields=['status', 'updated_at'])
        return lot

    @staticmethod
    def unblock(lot, today=None):
        if not lot.is_blocked:
            raise InvalidLotError(f"Lote '{lot.batch_label}' não está bloqueado.")
        lot.status = LotStatus.ACTIVE
        lot.refresh_status(today or timezone.localdate())
        lot.save(update_fields=['status', 'updated_at'])
        return lot

    @staticmethod
    def flag_expired(today=None):
        """Mark active lots past their expiration as expired. Quantities are untouched."""
        today = today or timezone.localdate()
        count = Lot.objects.filter(
            status=LotStatus.ACTIVE,
            remaining_quantity__gt=0,
            expiration_date__lt=today,
        ).update(status=LotStatus.EXPIRED, updated_at=timezone.now())
        if count:
            logger.info(f"{count} lote(s) marcados como vencidos no tenant {require_tenant().pk}.")
        return count
