import threading
from datetime import date
from decimal import Decimal

import pytest
from django.db import connection

from apps.inventory.exceptions import ConcurrentUpdateError, InsufficientStockError
from apps.inventory.models import Lot
from apps.inventory.services import AllocationEngine, LotStore, StockService
from apps.tenants.context import bind
from tests.factories import ProductFactory, SchoolFactory

TODAY = date(2024, 1, 1)


@pytest.fixture
def single_lot(bound_tenant):
    school = SchoolFactory()
    product = ProductFactory()
    lot = StockService.receive(school, product, 'UNICO-10', 10, date(2024, 2, 1), today=TODAY)
    return school, product, lot


def assert_one_success(outcomes, lot):
    successes = [o for o in outcomes if not isinstance(o, Exception)]
    failures = [o for o in outcomes if isinstance(o, Exception)]

    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientStockError)
    assert failures[0].shortfall == Decimal(2)

    lot.refresh_from_db()
    assert lot.remaining_quantity == 4


@pytest.mark.django_db
class TestSerializedWithdrawals:
    def test_second_withdrawal_sees_first(self, single_lot):
        school, product, lot = single_lot
        outcomes = []
        for _ in range(2):
            try:
                outcomes.append(StockService.consume(school, product, 6, today=TODAY))
            except InsufficientStockError as e:
                outcomes.append(e)

        assert_one_success(outcomes, lot)

    def test_plan_from_stale_read_cannot_overdraw(self, single_lot):
        """
        Two planners read the same balance; only the first write lands, the
        second one is refused instead of overdrawing the lot.
        """
        school, product, lot = single_lot
        plan_a = AllocationEngine.plan([LotStore.get(lot.pk)], 6, today=TODAY)
        plan_b = AllocationEngine.plan([LotStore.get(lot.pk)], 6, today=TODAY)

        LotStore.decrement(plan_a[0].lot, plan_a[0].quantity, today=TODAY)
        with pytest.raises(ConcurrentUpdateError):
            LotStore.decrement(plan_b[0].lot, plan_b[0].quantity, today=TODAY)

        assert Lot.objects.get(pk=lot.pk).remaining_quantity == 4


@pytest.mark.django_db(transaction=True)
class TestConcurrentWithdrawals:
    def test_two_threads_same_lot(self, tenant, single_lot):
        school, product, lot = single_lot
        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def withdraw():
            try:
                with bind(tenant.pk):
                    barrier.wait(timeout=5)
                    try:
                        result = StockService.consume(school.pk, product.pk, 6, today=TODAY)
                    except InsufficientStockError as e:
                        result = e
                with lock:
                    outcomes.append(result)
            finally:
                connection.close()

        threads = [threading.Thread(target=withdraw) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert_one_success(outcomes, lot)
        with bind(tenant):
            assert StockService.get_stock_level(school, product).quantity == 4

    def test_sqlite_writers_lock_at_begin(self):
        if connection.vendor != 'sqlite':
            pytest.skip("row locks handle this on other backends")
        assert connection.settings_dict['OPTIONS']['transaction_mode'] == 'IMMEDIATE'
