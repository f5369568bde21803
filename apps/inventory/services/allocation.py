"""
Allocation Engine - expiration-priority (FEFO) withdrawal planning.

Urgency is simply the order of the lots: the soonest expiration is drawn
first, lots without expiration last, and creation order breaks ties inside
an expiration date. Blocked lots are never drawn from; lots already past
their expiration only when INVENTORY_ALLOW_EXPIRED_ALLOCATION is on.
"""
from datetime import date
from decimal import Decimal
from typing import NamedTuple

from django.conf import settings
from django.utils import timezone

from ..exceptions import InsufficientStockError, InvalidQuantityError
from ..models import Lot, LotStatus
from .lots import LotStore, to_quantity


class Allocation(NamedTuple):
    lot: Lot
    quantity: Decimal

    @property
    def lot_id(self):
        return self.lot.pk

    def as_pair(self):
        return (self.lot.pk, self.quantity)


def allocation_key(lot):
    return (
        lot.expiration_date is None,
        lot.expiration_date or date.max,
        lot.created_at,
        lot.pk,
    )


class AllocationEngine:

    @staticmethod
    def is_eligible(lot, today, allow_expired=False):
        if lot.status == LotStatus.BLOCKED or lot.remaining_quantity <= 0:
            return False
        if lot.status == LotStatus.EXPIRED or lot.is_expired(today):
            return allow_expired
        return lot.status == LotStatus.ACTIVE

    @classmethod
    def plan(cls, lots, requested, today=None, allow_expired=False):
        """
        Pick (lot, quantity) pairs covering `requested`.

        Raises InsufficientStockError carrying the shortfall when the eligible
        lots cannot cover the request; nothing is returned in that case, so a
        partial plan can never be applied.
        """
        today = today or timezone.localdate()
        requested = to_quantity(requested)
        if requested <= 0:
            raise InvalidQuantityError(requested)

        eligible = sorted(
            (lot for lot in lots if cls.is_eligible(lot, today, allow_expired)),
            key=allocation_key,
        )

        allocations = []
        still_needed = requested
        for lot in eligible:
            if still_needed == 0:
                break
            taken = min(lot.remaining_quantity, still_needed)
            allocations.append(Allocation(lot, taken))
            still_needed -= taken

        if still_needed > 0:
            raise InsufficientStockError(requested, requested - still_needed)
        return allocations

    @classmethod
    def allocate(cls, school, product, requested, today=None, allow_expired=None):
        """Lock the candidate lots of (school, product) and plan the withdrawal."""
        today = today or timezone.localdate()
        if allow_expired is None:
            allow_expired = settings.INVENTORY_ALLOW_EXPIRED_ALLOCATION
        lots = LotStore.list_active_lots(
            school,
            product,
            include_expired=allow_expired,
            today=today,
            for_update=True,
        )
        return cls.plan(lots, requested, today=today, allow_expired=allow_expired)
