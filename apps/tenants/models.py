"""
Tenants App - Multi-tenancy and Plan Limits
"""
from django.db import models
from django.utils.text import slugify

from .exceptions import CrossTenantAccessError, TenantLimitError
from .managers import TenantManager


class Plan(models.Model):
    """Subscription plans with limits"""
    name = models.CharField(max_length=50, unique=True)
    display_name = models.CharField(max_length=100, default="Plano")
    max_schools = models.PositiveIntegerField(default=50, help_text="Limite de escolas cadastradas")
    max_products = models.PositiveIntegerField(default=500, help_text="Limite de produtos cadastrados")

    class Meta:
        verbose_name = "Plano"
        verbose_name_plural = "Planos"

    def __str__(self):
        return self.display_name


class TenantStatus(models.TextChoices):
    ACTIVE = 'active', 'Ativo'
    INACTIVE = 'inactive', 'Inativo'
    SUSPENDED = 'suspended', 'Suspenso'


class Tenant(models.Model):
    """Organization owning its own partition of schools, products and stock"""
    name = models.CharField(max_length=100, verbose_name="Nome da Organização")
    slug = models.SlugField(max_length=100, unique=True, blank=True)
    plan = models.ForeignKey(Plan, on_delete=models.SET_NULL, null=True, blank=True, related_name='tenants')
    status = models.CharField(max_length=20, choices=TenantStatus.choices, default=TenantStatus.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Tenant (Organização)"
        verbose_name_plural = "Tenants (Organizações)"

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name

    @property
    def is_active(self):
        return self.status == TenantStatus.ACTIVE

    def check_limit(self, resource, current_count):
        """Raise TenantLimitError when adding one more `resource` exceeds the plan."""
        if not self.plan:
            return
        limit = getattr(self.plan, f'max_{resource}', None)
        if limit and current_count >= limit:
            raise TenantLimitError(resource, limit)


class TenantMixin(models.Model):
    """
    Abstract base model for tenant-scoped entities.

    `objects` only ever sees rows of the tenant bound in apps.tenants.context;
    `unscoped` is reserved for cross-tenant maintenance jobs, which must bind
    each tenant themselves before touching its rows through `objects`.
    """
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, verbose_name="Tenant", editable=False)

    objects = TenantManager()
    unscoped = models.Manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        from .context import require_tenant

        tenant = require_tenant()
        if self.tenant_id is None:
            self.tenant = tenant
        elif self.tenant_id != tenant.pk:
            raise CrossTenantAccessError(self._meta.verbose_name, self.pk, tenant.pk)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        from .context import require_tenant

        tenant = require_tenant()
        if self.tenant_id != tenant.pk:
            raise CrossTenantAccessError(self._meta.verbose_name, self.pk, tenant.pk)
        return super().delete(*args, **kwargs)
