import json

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from apps.tenants.context import bind
from apps.tenants.exceptions import TenantError
from apps.inventory.models import Lot, School, StockLevel, StockMovement
from apps.inventory.serializers import (
    LotSerializer,
    SchoolSerializer,
    StockLevelSerializer,
    StockMovementSerializer,
)


class Command(BaseCommand):
    help = 'Exporta escolas, lotes, estoques e movimentações de um tenant em JSON (backup)'

    def add_arguments(self, parser):
        parser.add_argument('tenant', type=int, help='ID do tenant')
        parser.add_argument('--output', help='Arquivo de saída (padrão: stdout)')

    def handle(self, *args, **options):
        try:
            scope = bind(options['tenant'])
        except TenantError as e:
            raise CommandError(str(e))

        with scope:
            data = {
                'tenant': scope.tenant_id,
                'exported_at': timezone.now().isoformat(),
                'schools': SchoolSerializer(School.objects.order_by('id'), many=True).data,
                'lots': LotSerializer(Lot.objects.select_related('product').order_by('id'), many=True).data,
                'stock_levels': StockLevelSerializer(StockLevel.objects.order_by('id'), many=True).data,
                'movements': StockMovementSerializer(StockMovement.objects.order_by('created_at', 'id'), many=True).data,
            }

        payload = json.dumps(data, ensure_ascii=False, indent=2, default=str)
        if options['output']:
            with open(options['output'], 'w', encoding='utf-8') as f:
                f.write(payload)
            self.stdout.write(self.style.SUCCESS(
                f"Backup do tenant {scope.tenant_id} salvo em {options['output']} "
                f"({len(data['movements'])} movimentações)."
            ))
        else:
            self.stdout.write(payload)
