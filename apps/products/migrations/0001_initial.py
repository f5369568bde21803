import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('tenants', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255, verbose_name='Nome do Produto')),
                ('description', models.TextField(blank=True, verbose_name='Descrição')),
                ('category', models.CharField(blank=True, max_length=100, verbose_name='Categoria')),
                ('uom', models.CharField(
                    choices=[
                        ('UN', 'Unidade'),
                        ('KG', 'Quilograma'),
                        ('G', 'Grama'),
                        ('L', 'Litro'),
                        ('ML', 'Mililitro'),
                        ('PCT', 'Pacote'),
                        ('CX', 'Caixa'),
                    ],
                    default='UN',
                    max_length=10,
                    verbose_name='Unidade',
                )),
                ('is_perishable', models.BooleanField(default=True, verbose_name='Perecível')),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('tenant', models.ForeignKey(
                    editable=False,
                    on_delete=django.db.models.deletion.CASCADE,
                    to='tenants.tenant',
                    verbose_name='Tenant',
                )),
            ],
            options={
                'verbose_name': 'Produto',
                'verbose_name_plural': 'Produtos',
                'ordering': ['name'],
                'unique_together': {('tenant', 'name')},
            },
        ),
    ]
