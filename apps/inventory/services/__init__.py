from .allocation import Allocation, AllocationEngine
from .ledger import MovementLedger
from .lots import LotStore
from .projector import StockProjector
from .stock import ConsumeResult, StockService, TransferResult

__all__ = [
    'Allocation',
    'AllocationEngine',
    'ConsumeResult',
    'LotStore',
    'MovementLedger',
    'StockProjector',
    'StockService',
    'TransferResult',
]
