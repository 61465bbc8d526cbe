# Initial migration for medicines app - dual-unit stock

from decimal import Decimal
import uuid
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('core', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Medicine',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255, verbose_name='Name')),
                ('generic_name', models.CharField(blank=True, max_length=255, verbose_name='Generic Name')),
                ('manufacturer', models.CharField(blank=True, max_length=255, verbose_name='Manufacturer')),
                ('category', models.CharField(blank=True, max_length=100, verbose_name='Category')),
                ('has_strips', models.BooleanField(default=True, verbose_name='Sold by Strip')),
                ('has_individual', models.BooleanField(default=True, verbose_name='Sold Individually')),
                ('units_per_strip', models.PositiveIntegerField(default=10, help_text='Conversion ratio between strip and individual units', validators=[django.core.validators.MinValueValidator(1)], verbose_name='Units per Strip')),
                ('strip_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, verbose_name='Strip Price')),
                ('individual_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, verbose_name='Individual Price')),
                ('strip_stock', models.PositiveIntegerField(default=0, verbose_name='Strip Stock')),
                ('individual_stock', models.PositiveIntegerField(default=0, verbose_name='Individual Stock')),
                ('expiry_date', models.DateField(blank=True, null=True, verbose_name='Expiry Date')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('store', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='medicines', to='core.store', verbose_name='Store')),
            ],
            options={
                'verbose_name': 'Medicine',
                'verbose_name_plural': 'Medicines',
                'db_table': 'medicines',
                'ordering': ['name'],
                'indexes': [models.Index(fields=['store', 'name'], name='idx_medicine_store_name')],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(units_per_strip__gte=1), name='medicine_units_per_strip_positive'),
                    models.CheckConstraint(condition=models.Q(strip_stock__gte=0) & models.Q(individual_stock__gte=0), name='medicine_stock_non_negative'),
                ],
            },
        ),
    ]
