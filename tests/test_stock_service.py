from datetime import date
from decimal import Decimal
from unittest import mock

import pytest
from django.db import OperationalError

from apps.inventory.exceptions import (
    InsufficientStockError,
    InvalidLotError,
    InvalidQuantityError,
    InventoryError,
    InventoryValidationError,
    LockTimeoutError,
    NegativeRemainingError,
)
from apps.inventory import interface
from apps.inventory.models import Lot, LotStatus, MovementType, School, StockBand, StockLevel, StockMovement
from apps.inventory.services import MovementLedger, StockProjector, StockService
from apps.inventory.services.locking import stock_transaction
from apps.inventory.services.operations import OperationKind, OperationState, StockOperation
from apps.tenants.exceptions import CrossTenantAccessError
from tests.factories import ProductFactory, SchoolFactory

TODAY = date(2024, 1, 1)


def assert_consistent(school, product):
    """Stock level equals its non-blocked lots and the ledger replays to it."""
    level = StockLevel.objects.get(school=school, product=product)
    assert level.quantity == StockProjector.compute(school, product)
    assert level.quantity == MovementLedger.replay(school, product)
    assert MovementLedger.chain_breaks(school, product) == []
    for lot in Lot.objects.filter(school=school, product=product):
        assert 0 <= lot.remaining_quantity <= lot.initial_quantity


@pytest.fixture
def school(bound_tenant):
    return SchoolFactory()

@pytest.fixture
def product(bound_tenant):
    return ProductFactory()


@pytest.mark.django_db
class TestReceive:
    def test_receive_creates_lot_level_and_movement(self, school, product, user):
        lot = StockService.receive(
            school.pk, product.pk, 'L-01', 10, date(2024, 2, 1),
            reason='Entrega PNAE', source_doc='NF-123', user=user, today=TODAY,
        )

        level = StockLevel.objects.get(school=school, product=product)
        assert level.quantity == 10
        assert level.status == StockBand.NORMAL

        movement = StockMovement.objects.get()
        assert movement.type == MovementType.ENTRADA
        assert movement.lot == lot
        assert (movement.quantity_before, movement.quantity_delta, movement.quantity_after) == (0, 10, 10)
        assert movement.source_doc == 'NF-123'
        assert movement.user == user
        assert_consistent(school, product)

    def test_second_receipt_accumulates(self, school, product):
        StockService.receive(school, product, 'L-01', 10, date(2024, 2, 1), today=TODAY)
        StockService.receive(school, product, 'L-02', '2.5', date(2024, 3, 1), today=TODAY)

        level = StockService.get_stock_level(school, product)
        assert level.quantity == Decimal('12.5')
        assert_consistent(school, product)

    def test_invalid_receipt_leaves_nothing_behind(self, school, product):
        with pytest.raises(InvalidQuantityError):
            StockService.receive(school, product, 'L-01', 0, date(2024, 2, 1), today=TODAY)
        with pytest.raises(InvalidLotError):
            StockService.receive(school, product, 'L-01', 5, None, today=TODAY)

        assert StockService.get_stock_level(school, product) is None
        assert not Lot.objects.exists()
        assert not StockMovement.objects.exists()

    def test_quantity_below_column_precision(self, school, product):
        """A receipt that would be stored as zero is refused"""
        with pytest.raises(InvalidQuantityError):
            StockService.receive(school, product, 'L-01', '0.00001', date(2024, 2, 1), today=TODAY)

        assert not Lot.objects.exists()
        assert not StockMovement.objects.exists()

    def test_extra_decimals_are_rounded(self, school, product):
        lot = StockService.receive(school, product, 'L-01', '1.00005', date(2024, 2, 1), today=TODAY)

        lot.refresh_from_db()
        assert lot.remaining_quantity == Decimal('1.0001')
        assert StockMovement.objects.get().quantity_delta == Decimal('1.0001')
        assert_consistent(school, product)


@pytest.mark.django_db
class TestConsume:
    def test_one_movement_per_allocated_lot(self, school, product, user):
        first = StockService.receive(school, product, 'A', 4, date(2024, 1, 20), today=TODAY)
        second = StockService.receive(school, product, 'B', 6, date(2024, 1, 25), today=TODAY)

        result = StockService.consume(school, product, 7, reason='Merenda', user=user, today=TODAY)

        assert result.allocations == [(first.pk, Decimal(4)), (second.pk, Decimal(3))]
        assert result.new_aggregate.quantity == 3
        saidas = [(m.lot_id, m.quantity_before, m.quantity_delta, m.quantity_after) for m in result.movements]
        assert saidas == [(first.pk, 10, -4, 6), (second.pk, 6, -3, 3)]
        assert all(m.type == MovementType.SAIDA for m in result.movements)
        assert all(m.reason == 'Merenda' for m in result.movements)
        assert_consistent(school, product)

    @pytest.mark.parametrize('quantity', ['abc', 'NaN', float('nan'), '0.00001', -1])
    def test_invalid_quantity(self, school, product, quantity):
        StockService.receive(school, product, 'A', 4, date(2024, 1, 20), today=TODAY)

        with pytest.raises(InvalidQuantityError):
            StockService.consume(school, product, quantity, today=TODAY)

        assert StockService.get_stock_level(school, product).quantity == 4
        assert StockMovement.objects.count() == 1

    def test_consume_without_any_receipt(self, school, product):
        with pytest.raises(InsufficientStockError) as exc:
            StockService.consume(school, product, 3, today=TODAY)
        assert exc.value.shortfall == 3

    def test_consume_everything(self, school, product):
        lot = StockService.receive(school, product, 'A', 4, date(2024, 1, 20), today=TODAY)
        result = StockService.consume(school, product, 4, today=TODAY)

        lot.refresh_from_db()
        assert lot.status == LotStatus.EXHAUSTED
        assert result.new_aggregate.status == StockBand.OUT

    def test_failure_after_decrement_rolls_back(self, school, product):
        """A crash between lot update and ledger write leaves no trace"""
        StockService.receive(school, product, 'A', 10, date(2024, 1, 20), today=TODAY)

        with mock.patch.object(MovementLedger, 'append', side_effect=RuntimeError("falha no ledger")):
            with pytest.raises(RuntimeError):
                StockService.consume(school, product, 4, today=TODAY)

        assert Lot.objects.get().remaining_quantity == 10
        assert StockService.get_stock_level(school, product).quantity == 10
        assert StockMovement.objects.count() == 1
        assert_consistent(school, product)


@pytest.mark.django_db
class TestAdjust:
    def test_negative_adjustment(self, school, product):
        lot = StockService.receive(school, product, 'A', 10, date(2024, 1, 20), today=TODAY)

        lot = StockService.adjust(lot.pk, '-2.5', 'Perda por avaria', today=TODAY)

        assert lot.remaining_quantity == Decimal('7.5')
        movement = StockService.history(school, product).first()
        assert movement.type == MovementType.AJUSTE
        assert movement.quantity_delta == Decimal('-2.5')
        assert movement.reason == 'Perda por avaria'
        assert_consistent(school, product)

    def test_positive_adjustment_above_initial(self, school, product):
        lot = StockService.receive(school, product, 'A', 10, date(2024, 1, 20), today=TODAY)
        lot = StockService.adjust(lot.pk, 3, 'Contagem física', today=TODAY)

        assert lot.remaining_quantity == 13
        assert lot.initial_quantity == 13
        assert_consistent(school, product)

    def test_adjustment_below_zero(self, school, product):
        lot = StockService.receive(school, product, 'A', 2, date(2024, 1, 20), today=TODAY)
        with pytest.raises(NegativeRemainingError):
            StockService.adjust(lot.pk, -3, 'Contagem física', today=TODAY)

        lot.refresh_from_db()
        assert lot.remaining_quantity == 2
        assert_consistent(school, product)

    def test_zero_adjustment(self, school, product):
        lot = StockService.receive(school, product, 'A', 2, date(2024, 1, 20), today=TODAY)
        with pytest.raises(InvalidQuantityError):
            StockService.adjust(lot.pk, 0, 'Nada', today=TODAY)
        with pytest.raises(InvalidQuantityError):
            StockService.adjust(lot.pk, '-0.00001', 'Nada', today=TODAY)


@pytest.mark.django_db
class TestTransfer:
    def test_transfer_keeps_batches(self, school, product):
        destination = SchoolFactory()
        jan = StockService.receive(school, product, 'JAN', 4, date(2024, 1, 20), today=TODAY)
        StockService.receive(school, product, 'FEB', 6, date(2024, 2, 20), today=TODAY)

        result = StockService.transfer(school, destination, product, 7, reason='Remanejamento', today=TODAY)

        assert result.allocations[0] == (jan.pk, Decimal(4))
        assert result.source_aggregate.quantity == 3
        assert result.destination_aggregate.quantity == 7

        received = {lot.batch_label: (lot.remaining_quantity, lot.expiration_date)
                    for lot in Lot.objects.filter(school=destination)}
        assert received == {'JAN': (4, date(2024, 1, 20)), 'FEB': (3, date(2024, 2, 20))}

        movements = StockMovement.objects.filter(transfer_group=result.transfer_group)
        assert movements.count() == 4
        assert all(m.type == MovementType.TRANSFERENCIA for m in movements)
        assert_consistent(school, product)
        assert_consistent(destination, product)

    def test_transfer_merges_into_existing_batch(self, school, product):
        destination = SchoolFactory()
        StockService.receive(school, product, 'JAN', 4, date(2024, 1, 20), today=TODAY)
        StockService.receive(destination, product, 'JAN', 1, date(2024, 1, 20), today=TODAY)

        StockService.transfer(school, destination, product, 2, today=TODAY)

        lot = Lot.objects.get(school=destination)
        assert lot.remaining_quantity == 3
        assert lot.initial_quantity == 3
        assert_consistent(destination, product)

    def test_transfer_shortfall_changes_nothing(self, school, product):
        destination = SchoolFactory()
        StockService.receive(school, product, 'JAN', 4, date(2024, 1, 20), today=TODAY)

        with pytest.raises(InsufficientStockError) as exc:
            StockService.transfer(school, destination, product, 5, today=TODAY)

        assert exc.value.shortfall == 1
        assert not Lot.objects.filter(school=destination).exists()
        assert StockService.get_stock_level(destination, product) is None
        assert StockService.get_stock_level(school, product).quantity == 4

    def test_transfer_to_same_school(self, school, product):
        with pytest.raises(InventoryValidationError):
            StockService.transfer(school, school, product, 1, today=TODAY)


@pytest.mark.django_db
class TestBlocking:
    def test_block_removes_lot_from_stock(self, school, product):
        blocked = StockService.receive(school, product, 'A', 4, date(2024, 1, 20), today=TODAY)
        StockService.receive(school, product, 'B', 6, date(2024, 2, 20), today=TODAY)

        StockService.block_lot(blocked.pk, reason='Recall da vigilância sanitária')

        level = StockService.get_stock_level(school, product)
        assert level.quantity == 6
        movement = StockService.history(school, product).first()
        assert (movement.type, movement.quantity_delta) == (MovementType.AJUSTE, -4)
        assert_consistent(school, product)

        result = StockService.consume(school, product, 2, today=TODAY)
        assert blocked.pk not in [lot_id for lot_id, _ in result.allocations]

        with pytest.raises(InsufficientStockError):
            StockService.consume(school, product, 5, today=TODAY)

    def test_unblock_restores_stock(self, school, product):
        lot = StockService.receive(school, product, 'A', 4, date(2024, 1, 20), today=TODAY)
        StockService.block_lot(lot.pk)
        lot = StockService.unblock_lot(lot.pk, today=TODAY)

        assert lot.status == LotStatus.ACTIVE
        assert StockService.get_stock_level(school, product).quantity == 4
        assert_consistent(school, product)


@pytest.mark.django_db
class TestThresholds:
    def test_bands(self, school, product):
        StockService.receive(school, product, 'A', 4, date(2024, 1, 20), today=TODAY)

        level = StockService.set_thresholds(school, product, minimum=5)
        assert level.status == StockBand.LOW

        level = StockService.set_thresholds(school, product, minimum=1, maximum=3)
        assert level.status == StockBand.HIGH

        level = StockService.set_thresholds(school, product, minimum=1, maximum=10)
        assert level.status == StockBand.NORMAL

    def test_thresholds_need_a_receipt(self, school, product):
        with pytest.raises(InventoryValidationError, match="Registre uma entrada"):
            StockService.set_thresholds(school, product, minimum=5)

        assert StockService.get_stock_level(school, product) is None

    @pytest.mark.parametrize('limits', [{'minimum': -1}, {'maximum': 'abc'}, {'maximum': '-0.5'}])
    def test_invalid_thresholds(self, school, product, limits):
        StockService.receive(school, product, 'A', 4, date(2024, 1, 20), today=TODAY)
        with pytest.raises(InvalidQuantityError):
            StockService.set_thresholds(school, product, **limits)

    def test_band_for(self):
        assert StockLevel.band_for(Decimal(0), Decimal(5)) == StockBand.OUT
        assert StockLevel.band_for(Decimal(5), Decimal(5)) == StockBand.LOW
        assert StockLevel.band_for(Decimal(6), Decimal(5)) == StockBand.NORMAL
        assert StockLevel.band_for(Decimal(11), Decimal(0), Decimal(10)) == StockBand.HIGH


@pytest.mark.django_db
class TestTransactionBoundary:
    def test_lock_timeout_is_translated(self, bound_tenant):
        with pytest.raises(LockTimeoutError) as exc:
            with stock_transaction():
                raise OperationalError("database is locked")
        assert exc.value.category == 'concurrency'

    def test_other_operational_errors_propagate(self, bound_tenant):
        with pytest.raises(OperationalError):
            with stock_transaction():
                raise OperationalError("disk I/O error")


class TestStockOperation:
    def test_happy_path(self):
        operation = StockOperation(OperationKind.RECEIVE)
        with operation.run():
            operation.advance(OperationState.VALIDATED)
            operation.advance(OperationState.APPLIED)
            operation.advance(OperationState.COMMITTED)
        assert operation.state == OperationState.COMMITTED
        assert operation.is_terminal

    def test_exception_aborts(self):
        operation = StockOperation(OperationKind.CONSUME)
        with pytest.raises(KeyboardInterrupt):
            with operation.run():
                operation.advance(OperationState.VALIDATED)
                raise KeyboardInterrupt()
        assert operation.state == OperationState.ABORTED
        assert isinstance(operation.error, KeyboardInterrupt)

    def test_leaving_without_commit(self):
        operation = StockOperation(OperationKind.ADJUST)
        with pytest.raises(InventoryError):
            with operation.run():
                operation.advance(OperationState.VALIDATED)
        assert operation.state == OperationState.ABORTED

    def test_steps_cannot_be_skipped(self):
        operation = StockOperation(OperationKind.TRANSFER)
        with pytest.raises(InventoryError):
            operation.advance(OperationState.COMMITTED)


@pytest.mark.django_db
class TestSchoolStock:
    def test_lists_every_active_product(self, school, bound_tenant):
        rice = ProductFactory(name='Arroz', category='Grãos')
        beans = ProductFactory(name='Feijão', category='Grãos')
        ProductFactory(name='Leite', category='Laticínios')
        ProductFactory(name='Fubá', category='Grãos', is_active=False)
        StockService.receive(school, beans, 'F1', 8, date(2024, 2, 1), today=TODAY)
        StockService.receive(SchoolFactory(), rice, 'R1', 3, date(2024, 2, 1), today=TODAY)

        stock = interface.list_school_stock(bound_tenant.pk, school.pk)

        assert [(level.product.name, level.quantity, level.status) for level in stock] == [
            ('Arroz', 0, StockBand.OUT),
            ('Feijão', 8, StockBand.NORMAL),
            ('Leite', 0, StockBand.OUT),
        ]
        assert stock[0].pk is None
        assert stock[1].pk is not None
        assert all(level.school_id == school.pk for level in stock)
        assert StockLevel.objects.filter(school=school).count() == 1

    def test_inactive_school(self, school):
        ProductFactory()
        School.objects.filter(pk=school.pk).update(is_active=False)

        assert StockService.list_school_stock(school.pk) == []

    def test_foreign_school(self, school, other_tenant):
        with pytest.raises(CrossTenantAccessError):
            interface.list_school_stock(other_tenant.pk, school.pk)
