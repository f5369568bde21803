"""
Movement Ledger - append-only history of every quantity change.

The ledger is the reconstruction source for StockLevel: replaying the
movements of a (school, product) oldest-first from zero gives its current
quantity.
"""
from decimal import Decimal

from ..models import StockMovement

OLDEST_FIRST = ('created_at', 'id')
NEWEST_FIRST = ('-created_at', '-id')


class MovementLedger:

    @staticmethod
    def append(school, product, movement_type, before, delta, lot=None, reason='',
               source_doc='', user=None, transfer_group=None):
        return StockMovement.objects.create(
            school=school,
            product=product,
            lot=lot,
            type=movement_type,
            quantity_before=before,
            quantity_delta=delta,
            quantity_after=before + delta,
            reason=reason or '',
            source_doc=source_doc or '',
            user=user,
            transfer_group=transfer_group,
        )

    @staticmethod
    def history(school, product, start=None, end=None):
        """
        Movements of (school, product), newest first.

        Returns a queryset: nothing is read until it is iterated, and it can be
        iterated again from the start.
        """
        queryset = StockMovement.objects.filter(school=school, product=product)
        if start is not None:
            queryset = queryset.filter(created_at__gte=start)
        if end is not None:
            queryset = queryset.filter(created_at__lte=end)
        return queryset.select_related('lot').order_by(*NEWEST_FIRST)

    @staticmethod
    def replay(school, product):
        total = Decimal('0')
        movements = StockMovement.objects.filter(school=school, product=product).order_by(*OLDEST_FIRST)
        for delta in movements.values_list('quantity_delta', flat=True).iterator():
            total += delta
        return total

    @staticmethod
    def chain_breaks(school, product):
        """Ids of movements whose `quantity_before` differs from the previous `quantity_after`."""
        breaks = []
        previous_after = Decimal('0')
        movements = StockMovement.objects.filter(school=school, product=product).order_by(*OLDEST_FIRST)
        for pk, before, after in movements.values_list('id', 'quantity_before', 'quantity_after').iterator():
            if before != previous_after:
                breaks.append(pk)
            previous_after = after
        return breaks
