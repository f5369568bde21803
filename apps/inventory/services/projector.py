"""
Aggregate Stock Projector - keeps StockLevel equal to the sum of its lots.
"""
import logging
from decimal import Decimal

from django.conf import settings
from django.db.models import Sum

from ..exceptions import InvalidQuantityError
from ..models import Lot, LotStatus, StockLevel
from .lots import to_quantity

logger = logging.getLogger(__name__)


def _threshold(value):
    if value is None:
        return None
    value = to_quantity(value)
    if value < 0:
        raise InvalidQuantityError(value)
    return value


class StockProjector:

    @staticmethod
    def lock(school, product, create=True):
        """
        Lock the StockLevel row of (school, product) for the current
        transaction. Every writer of the pair goes through this row first,
        which serializes them.
        """
        queryset = StockLevel.objects.select_for_update()
        if not create:
            return queryset.filter(school=school, product=product).first()
        level, created = queryset.get_or_create(
            school=school,
            product=product,
            defaults={'minimum_quantity': Decimal(settings.INVENTORY_DEFAULT_MINIMUM)},
        )
        if created:
            logger.debug(f"Estoque criado para escola {school.pk}, produto {product.pk}")
        return level

    @staticmethod
    def compute(school, product):
        total = (
            Lot.objects.filter(school=school, product=product)
            .exclude(status=LotStatus.BLOCKED)
            .aggregate(total=Sum('remaining_quantity'))['total']
        )
        return total or Decimal('0')

    @classmethod
    def recompute(cls, level):
        level.quantity = cls.compute(level.school, level.product)
        level.refresh_status()
        level.save(update_fields=['quantity', 'status', 'updated_at'])
        return level

    @staticmethod
    def set_thresholds(level, minimum=None, maximum=None):
        minimum = _threshold(minimum)
        maximum = _threshold(maximum)
        if minimum is not None:
            level.minimum_quantity = minimum
        level.maximum_quantity = maximum
        level.refresh_status()
        level.save(update_fields=['minimum_quantity', 'maximum_quantity', 'status', 'updated_at'])
        return level

    @classmethod
    def verify(cls, level):
        """Difference between the lots and the recorded quantity (0 when consistent)."""
        return cls.compute(level.school, level.product) - level.quantity
