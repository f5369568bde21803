"""
Inventory App - Schools, Lots, Stock Levels and the Movement Ledger
"""
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q

from apps.products.models import Product
from apps.tenants.models import TenantMixin

from .exceptions import InventoryError

QUANTITY = dict(max_digits=12, decimal_places=4)

# ==========================================
# 1. Choices & Enums
# ==========================================

class LotStatus(models.TextChoices):
    ACTIVE = 'active', 'Ativo'
    EXHAUSTED = 'exhausted', 'Esgotado'
    EXPIRED = 'expired', 'Vencido'
    BLOCKED = 'blocked', 'Bloqueado'

class StockBand(models.TextChoices):
    OUT = 'out', 'Sem Estoque'
    LOW = 'low', 'Baixo'
    NORMAL = 'normal', 'Normal'
    HIGH = 'high', 'Alto'

class MovementType(models.TextChoices):
    ENTRADA = 'entrada', 'Entrada'
    SAIDA = 'saida', 'Saída'
    AJUSTE = 'ajuste', 'Ajuste'
    TRANSFERENCIA = 'transferencia', 'Transferência'

# ==========================================
# 2. Locations
# ==========================================

class School(TenantMixin):
    """Physical location (school) holding stock"""
    name = models.CharField(max_length=150, verbose_name='Nome')
    code = models.CharField(max_length=20, blank=True, verbose_name='Código', help_text='Ex: código INEP')
    address = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Escola'
        verbose_name_plural = 'Escolas'
        unique_together = ['tenant', 'name']
        ordering = ['name']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if self._state.adding:
            from apps.tenants.context import require_tenant
            require_tenant().check_limit('schools', School.objects.count())
        super().save(*args, **kwargs)

# ==========================================
# 3. Lots (batches)
# ==========================================

class Lot(TenantMixin):
    """
    Physical batch of a product at a school.

    Never deleted: a lot only moves between statuses so the ledger can always
    point at it.
    """
    school = models.ForeignKey(School, on_delete=models.PROTECT, related_name='lots')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='lots')
    batch_label = models.CharField(max_length=60, verbose_name='Lote')
    initial_quantity = models.DecimalField(**QUANTITY)
    remaining_quantity = models.DecimalField(**QUANTITY)
    expiration_date = models.DateField(null=True, blank=True, verbose_name='Validade')
    status = models.CharField(max_length=10, choices=LotStatus.choices, default=LotStatus.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Lote'
        verbose_name_plural = 'Lotes'
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'school', 'product', 'batch_label'],
                name='unique_lot_label_per_school_product',
            ),
            models.CheckConstraint(
                condition=Q(remaining_quantity__gte=0),
                name='lot_remaining_non_negative',
            ),
            models.CheckConstraint(
                condition=Q(remaining_quantity__lte=models.F('initial_quantity')),
                name='lot_remaining_within_initial',
            ),
        ]
        indexes = [
            models.Index(fields=['tenant', 'school', 'product', 'status'], name='lot_tnt_sch_prod_status_idx'),
            models.Index(fields=['expiration_date'], name='lot_expiration_idx'),
        ]

    def __str__(self):
        return f"{self.batch_label} - {self.remaining_quantity}/{self.initial_quantity}"

    @property
    def is_blocked(self):
        return self.status == LotStatus.BLOCKED

    def is_expired(self, today):
        return self.expiration_date is not None and self.expiration_date < today

    def days_to_expiration(self, today):
        if self.expiration_date is None:
            return None
        return (self.expiration_date - today).days

    def refresh_status(self, today):
        """Derive the status from quantity and expiration. Blocked lots stay blocked."""
        if self.status == LotStatus.BLOCKED:
            return self.status
        if self.remaining_quantity == 0:
            self.status = LotStatus.EXHAUSTED
        elif self.is_expired(today):
            self.status = LotStatus.EXPIRED
        else:
            self.status = LotStatus.ACTIVE
        return self.status

# ==========================================
# 4. Aggregate stock
# ==========================================

class StockLevel(TenantMixin):
    """
    Materialized sum of non-blocked lots for one (school, product).

    Written only by StockProjector inside the transaction that changed the
    lots.
    """
    school = models.ForeignKey(School, on_delete=models.PROTECT, related_name='stock_levels')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='stock_levels')
    quantity = models.DecimalField(default=0, **QUANTITY)
    minimum_quantity = models.DecimalField(default=0, **QUANTITY)
    maximum_quantity = models.DecimalField(null=True, blank=True, **QUANTITY)
    status = models.CharField(max_length=10, choices=StockBand.choices, default=StockBand.OUT)
    needs_reconciliation = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Estoque da Escola'
        verbose_name_plural = 'Estoques das Escolas'
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'school', 'product'],
                name='unique_stock_level_per_school_product',
            ),
        ]

    def __str__(self):
        return f"{self.school} / {self.product}: {self.quantity}"

    @staticmethod
    def band_for(quantity, minimum, maximum=None):
        if quantity <= 0:
            return StockBand.OUT
        if minimum and quantity <= minimum:
            return StockBand.LOW
        if maximum is not None and quantity > maximum:
            return StockBand.HIGH
        return StockBand.NORMAL

    def refresh_status(self):
        self.status = self.band_for(self.quantity, self.minimum_quantity, self.maximum_quantity)
        return self.status

# ==========================================
# 5. Movement ledger
# ==========================================

class StockMovement(TenantMixin):
    """Immutable record of one quantity change of a (school, product)"""
    school = models.ForeignKey(School, on_delete=models.PROTECT, related_name='movements')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='movements')
    lot = models.ForeignKey(Lot, on_delete=models.PROTECT, related_name='movements', null=True, blank=True)
    type = models.CharField(max_length=15, choices=MovementType.choices)
    quantity_before = models.DecimalField(**QUANTITY)
    quantity_delta = models.DecimalField(**QUANTITY)
    quantity_after = models.DecimalField(**QUANTITY)
    reason = models.CharField(max_length=255, blank=True)
    source_doc = models.CharField(max_length=100, blank=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    transfer_group = models.UUIDField(null=True, blank=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at', '-id']
        verbose_name = "Movimentação"
        verbose_name_plural = "Movimentações"
        indexes = [
            models.Index(fields=['tenant', 'school', 'product', 'created_at'], name='movement_tnt_sch_prod_dt_idx'),
        ]

    def __str__(self):
        return f"{self.get_type_display()} {self.quantity_delta} ({self.quantity_before} -> {self.quantity_after})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise InventoryError("Movimentações são imutáveis.")
        if self.quantity_before + self.quantity_delta != self.quantity_after:
            raise InventoryError(
                f"Movimentação inconsistente: {self.quantity_before} + {self.quantity_delta} != {self.quantity_after}"
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise InventoryError("Movimentações são imutáveis.")

    @property
    def quantity(self):
        return abs(self.quantity_delta or Decimal('0'))
