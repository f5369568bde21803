from django.core.management.base import BaseCommand

from apps.tenants.context import bind
from apps.tenants.models import Tenant, TenantStatus
from apps.inventory.services.reconciliation import reconcile_tenant


class Command(BaseCommand):
    help = 'Confere os estoques agregados contra lotes e movimentações'

    def add_arguments(self, parser):
        parser.add_argument('--tenant', type=int, help='ID do tenant (padrão: todos os ativos)')
        parser.add_argument('--repair', action='store_true', help='Recalcula os estoques divergentes a partir dos lotes')

    def handle(self, *args, **options):
        tenants = Tenant.objects.filter(status=TenantStatus.ACTIVE)
        if options['tenant']:
            tenants = tenants.filter(pk=options['tenant'])

        total = 0
        for tenant in tenants.order_by('id'):
            with bind(tenant):
                drifts = reconcile_tenant(repair=options['repair'])
            for drift in drifts:
                self.stdout.write(self.style.WARNING(f'[{tenant.slug}] {drift}'))
            total += len(drifts)

        if total:
            action = 'reconciliadas' if options['repair'] else 'sinalizadas'
            self.stdout.write(self.style.WARNING(f'{total} divergência(s) {action}.'))
        else:
            self.stdout.write(self.style.SUCCESS('Nenhuma divergência encontrada.'))
