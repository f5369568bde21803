from django.core.management.base import BaseCommand

from apps.inventory.tasks import flag_expired_lots


class Command(BaseCommand):
    help = 'Marca como vencidos os lotes com validade expirada'

    def handle(self, *args, **options):
        result = flag_expired_lots()
        self.stdout.write(self.style.SUCCESS(result))
