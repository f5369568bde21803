"""
Products App - Tenant product catalog
"""
from django.db import models

from apps.tenants.models import TenantMixin


class UnitOfMeasure(models.TextChoices):
    UNIT = 'UN', 'Unidade'
    KILOGRAM = 'KG', 'Quilograma'
    GRAM = 'G', 'Grama'
    LITER = 'L', 'Litro'
    MILLILITER = 'ML', 'Mililitro'
    PACKAGE = 'PCT', 'Pacote'
    BOX = 'CX', 'Caixa'


class Product(TenantMixin):
    """
    Produto do catálogo de um tenant.

    Produtos perecíveis são controlados por lotes com validade. Produtos não
    perecíveis têm no máximo um lote implícito, sem validade.
    """
    name = models.CharField(max_length=255, verbose_name="Nome do Produto")
    description = models.TextField(blank=True, verbose_name="Descrição")
    category = models.CharField(max_length=100, blank=True, verbose_name="Categoria")
    uom = models.CharField(max_length=10, choices=UnitOfMeasure.choices, default=UnitOfMeasure.UNIT, verbose_name="Unidade")
    is_perishable = models.BooleanField(default=True, verbose_name="Perecível")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Produto"
        verbose_name_plural = "Produtos"
        unique_together = ['tenant', 'name']
        ordering = ['name']

    def save(self, *args, **kwargs):
        if self._state.adding:
            from apps.tenants.context import require_tenant
            require_tenant().check_limit('products', Product.objects.count())
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.name} ({self.uom})"
