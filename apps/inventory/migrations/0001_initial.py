import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('products', '0001_initial'),
        ('tenants', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='School',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=150, verbose_name='Nome')),
                ('code', models.CharField(blank=True, help_text='Ex: código INEP', max_length=20, verbose_name='Código')),
                ('address', models.TextField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('tenant', models.ForeignKey(
                    editable=False,
                    on_delete=django.db.models.deletion.CASCADE,
                    to='tenants.tenant',
                    verbose_name='Tenant',
                )),
            ],
            options={
                'verbose_name': 'Escola',
                'verbose_name_plural': 'Escolas',
                'ordering': ['name'],
                'unique_together': {('tenant', 'name')},
            },
        ),
        migrations.CreateModel(
            name='Lot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('batch_label', models.CharField(max_length=60, verbose_name='Lote')),
                ('initial_quantity', models.DecimalField(decimal_places=4, max_digits=12)),
                ('remaining_quantity', models.DecimalField(decimal_places=4, max_digits=12)),
                ('expiration_date', models.DateField(blank=True, null=True, verbose_name='Validade')),
                ('status', models.CharField(
                    choices=[
                        ('active', 'Ativo'),
                        ('exhausted', 'Esgotado'),
                        ('expired', 'Vencido'),
                        ('blocked', 'Bloqueado'),
                    ],
                    default='active',
                    max_length=10,
                )),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('product', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='lots', to='products.product',
                )),
                ('school', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='lots', to='inventory.school',
                )),
                ('tenant', models.ForeignKey(
                    editable=False,
                    on_delete=django.db.models.deletion.CASCADE,
                    to='tenants.tenant',
                    verbose_name='Tenant',
                )),
            ],
            options={
                'verbose_name': 'Lote',
                'verbose_name_plural': 'Lotes',
                'indexes': [
                    models.Index(fields=['tenant', 'school', 'product', 'status'], name='lot_tnt_sch_prod_status_idx'),
                    models.Index(fields=['expiration_date'], name='lot_expiration_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(
                        fields=('tenant', 'school', 'product', 'batch_label'),
                        name='unique_lot_label_per_school_product',
                    ),
                    models.CheckConstraint(
                        condition=models.Q(('remaining_quantity__gte', 0)),
                        name='lot_remaining_non_negative',
                    ),
                    models.CheckConstraint(
                        condition=models.Q(('remaining_quantity__lte', models.F('initial_quantity'))),
                        name='lot_remaining_within_initial',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockLevel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=4, default=0, max_digits=12)),
                ('minimum_quantity', models.DecimalField(decimal_places=4, default=0, max_digits=12)),
                ('maximum_quantity', models.DecimalField(blank=True, decimal_places=4, max_digits=12, null=True)),
                ('status', models.CharField(
                    choices=[('out', 'Sem Estoque'), ('low', 'Baixo'), ('normal', 'Normal'), ('high', 'Alto')],
                    default='out',
                    max_length=10,
                )),
                ('needs_reconciliation', models.BooleanField(default=False)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('product', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='stock_levels', to='products.product',
                )),
                ('school', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='stock_levels', to='inventory.school',
                )),
                ('tenant', models.ForeignKey(
                    editable=False,
                    on_delete=django.db.models.deletion.CASCADE,
                    to='tenants.tenant',
                    verbose_name='Tenant',
                )),
            ],
            options={
                'verbose_name': 'Estoque da Escola',
                'verbose_name_plural': 'Estoques das Escolas',
                'constraints': [
                    models.UniqueConstraint(
                        fields=('tenant', 'school', 'product'),
                        name='unique_stock_level_per_school_product',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockMovement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(
                    choices=[
                        ('entrada', 'Entrada'),
                        ('saida', 'Saída'),
                        ('ajuste', 'Ajuste'),
                        ('transferencia', 'Transferência'),
                    ],
                    max_length=15,
                )),
                ('quantity_before', models.DecimalField(decimal_places=4, max_digits=12)),
                ('quantity_delta', models.DecimalField(decimal_places=4, max_digits=12)),
                ('quantity_after', models.DecimalField(decimal_places=4, max_digits=12)),
                ('reason', models.CharField(blank=True, max_length=255)),
                ('source_doc', models.CharField(blank=True, max_length=100)),
                ('transfer_group', models.UUIDField(blank=True, db_index=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('lot', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='movements',
                    to='inventory.lot',
                )),
                ('product', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='products.product',
                )),
                ('school', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='inventory.school',
                )),
                ('tenant', models.ForeignKey(
                    editable=False,
                    on_delete=django.db.models.deletion.CASCADE,
                    to='tenants.tenant',
                    verbose_name='Tenant',
                )),
                ('user', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'verbose_name': 'Movimentação',
                'verbose_name_plural': 'Movimentações',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(
                        fields=['tenant', 'school', 'product', 'created_at'],
                        name='movement_tnt_sch_prod_dt_idx',
                    ),
                ],
            },
        ),
    ]
