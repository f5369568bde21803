import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Plan',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=50, unique=True)),
                ('display_name', models.CharField(default='Plano', max_length=100)),
                ('max_schools', models.PositiveIntegerField(default=50, help_text='Limite de escolas cadastradas')),
                ('max_products', models.PositiveIntegerField(default=500, help_text='Limite de produtos cadastrados')),
            ],
            options={
                'verbose_name': 'Plano',
                'verbose_name_plural': 'Planos',
            },
        ),
        migrations.CreateModel(
            name='Tenant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, verbose_name='Nome da Organização')),
                ('slug', models.SlugField(blank=True, max_length=100, unique=True)),
                ('status', models.CharField(
                    choices=[('active', 'Ativo'), ('inactive', 'Inativo'), ('suspended', 'Suspenso')],
                    default='active',
                    max_length=20,
                )),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('plan', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='tenants',
                    to='tenants.plan',
                )),
            ],
            options={
                'verbose_name': 'Tenant (Organização)',
                'verbose_name_plural': 'Tenants (Organizações)',
            },
        ),
    ]
