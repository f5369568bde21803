from django.db import models


class TenantQuerySet(models.QuerySet):
    def for_current_tenant(self):
        from .context import require_tenant
        return self.filter(tenant_id=require_tenant().pk)


class TenantManager(models.Manager.from_queryset(TenantQuerySet)):
    """
    Default manager of every tenant-scoped model.

    Each queryset it hands out already carries the `tenant_id` predicate of
    the bound tenant; with nothing bound it raises instead of returning an
    unfiltered queryset.
    """

    def get_queryset(self):
        return super().get_queryset().for_current_tenant()
