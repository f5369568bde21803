r"""
Lifecycle of one logical stock operation:

    Pending -> Validated -> Applied -> Committed
        \__________\___________\______> Aborted
"""
import logging
from contextlib import contextmanager

from django.db import models

from ..exceptions import InventoryError

logger = logging.getLogger(__name__)


class OperationKind(models.TextChoices):
    RECEIVE = 'receive', 'Entrada'
    CONSUME = 'consume', 'Saída'
    ADJUST = 'adjust', 'Ajuste'
    TRANSFER = 'transfer', 'Transferência'
    BLOCK = 'block', 'Bloqueio de Lote'
    UNBLOCK = 'unblock', 'Desbloqueio de Lote'


class OperationState(models.TextChoices):
    PENDING = 'pending', 'Pendente'
    VALIDATED = 'validated', 'Validada'
    APPLIED = 'applied', 'Aplicada'
    COMMITTED = 'committed', 'Confirmada'
    ABORTED = 'aborted', 'Abortada'


TRANSITIONS = {
    OperationState.PENDING: {OperationState.VALIDATED, OperationState.ABORTED},
    OperationState.VALIDATED: {OperationState.APPLIED, OperationState.ABORTED},
    OperationState.APPLIED: {OperationState.COMMITTED, OperationState.ABORTED},
    OperationState.COMMITTED: set(),
    OperationState.ABORTED: set(),
}


class StockOperation:

    def __init__(self, kind, **details):
        self.kind = kind
        self.details = details
        self.state = OperationState.PENDING
        self.error = None

    def __repr__(self):
        return f'<StockOperation {self.kind} {self.state}>'

    @property
    def is_terminal(self):
        return not TRANSITIONS[self.state]

    def advance(self, state):
        if state not in TRANSITIONS[self.state]:
            raise InventoryError(f"Transição inválida de {self.state} para {state} em {self.kind}.")
        self.state = state

    def abort(self, error):
        self.error = error
        if not self.is_terminal:
            self.state = OperationState.ABORTED

    @contextmanager
    def run(self):
        """
        Wrap the operation: any exception, cancellation included, leaves it
        Aborted and propagates. Leaving the block without reaching Committed
        is a programming error.
        """
        try:
            yield self
        except BaseException as e:
            self.abort(e)
            logger.warning(f"Operação {self.kind} abortada ({type(e).__name__}): {e} {self.details}")
            raise
        if self.state != OperationState.COMMITTED:
            self.abort(None)
            raise InventoryError(f"Operação {self.kind} encerrada sem confirmação.")
        logger.info(f"Operação {self.kind} confirmada: {self.details}")
