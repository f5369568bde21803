"""
Inventory ledger errors, grouped by how a caller is expected to react.

- validation: bad input, retrying with the same input fails again
- business: legitimate refusal carrying data the caller can act on
- concurrency: transient, no partial work was done, safe to retry
- integrity: produced by reconciliation only, never by a write path
"""
from decimal import Decimal


class InventoryError(Exception):
    category = 'inventory'


class InventoryValidationError(InventoryError, ValueError):
    category = 'validation'


class InvalidQuantityError(InventoryValidationError):
    def __init__(self, quantity):
        self.quantity = quantity
        super().__init__(f"Quantidade inválida: {quantity}. Informe um valor maior que zero.")


class NegativeRemainingError(InventoryValidationError):
    def __init__(self, lot_id, remaining, delta):
        self.lot_id = lot_id
        self.remaining = remaining
        self.delta = delta
        super().__init__(
            f"Ajuste de {delta} deixaria o lote {lot_id} negativo (saldo atual: {remaining})."
        )


class InvalidLotError(InventoryValidationError):
    pass


class InsufficientStockError(InventoryError):
    category = 'business'

    def __init__(self, requested, available):
        self.requested = Decimal(requested)
        self.available = Decimal(available)
        self.shortfall = self.requested - self.available
        super().__init__(
            f"Estoque insuficiente. Solicitado: {self.requested}, disponível: {self.available}, "
            f"faltam: {self.shortfall}."
        )


class InventoryConcurrencyError(InventoryError):
    category = 'concurrency'


class LockTimeoutError(InventoryConcurrencyError):
    def __init__(self, timeout):
        self.timeout = timeout
        super().__init__(f"Não foi possível obter o bloqueio do estoque em {timeout}s.")


class ConcurrentUpdateError(InventoryConcurrencyError):
    def __init__(self, lot_id):
        self.lot_id = lot_id
        super().__init__(f"O lote {lot_id} foi alterado por outra operação. Tente novamente.")


class StockDriftError(InventoryError):
    category = 'integrity'

    def __init__(self, school_id, product_id, recorded, expected):
        self.school_id = school_id
        self.product_id = product_id
        self.recorded = recorded
        self.expected = expected
        super().__init__(
            f"Divergência no estoque da escola {school_id}, produto {product_id}: "
            f"registrado {recorded}, esperado {expected}."
        )
