# Initial migration for sales app - sales, lines and customers

from decimal import Decimal
import uuid
import django.core.validators
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('core', '0001_initial'),
        ('medicines', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Customer',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255, verbose_name='Name')),
                ('phone', models.CharField(blank=True, max_length=30, verbose_name='Phone')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('store', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='customers', to='core.store', verbose_name='Store')),
            ],
            options={
                'verbose_name': 'Customer',
                'verbose_name_plural': 'Customers',
                'db_table': 'customers',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Sale',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('sale_number', models.CharField(blank=True, help_text='Human-readable invoice number', max_length=50, null=True, unique=True, verbose_name='Sale Number')),
                ('status', models.CharField(choices=[('completed', 'Completed'), ('pending', 'Pending'), ('cancelled', 'Cancelled'), ('returned', 'Returned')], default='completed', max_length=20, verbose_name='Status')),
                ('is_returned', models.BooleanField(default=False, help_text='Set once every line has been returned in full', verbose_name='Fully Returned')),
                ('sale_date', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Sale Date')),
                ('subtotal', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Subtotal')),
                ('tax_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Tax')),
                ('discount_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Discount')),
                ('total_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Total')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='sales_created', to=settings.AUTH_USER_MODEL, verbose_name='Created By')),
                ('customer', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='sales', to='sales.customer', verbose_name='Customer')),
                ('store', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='sales', to='core.store', verbose_name='Store')),
            ],
            options={
                'verbose_name': 'Sale',
                'verbose_name_plural': 'Sales',
                'db_table': 'sales',
                'ordering': ['-sale_date'],
                'indexes': [
                    models.Index(fields=['store', '-sale_date'], name='idx_sale_store_date'),
                    models.Index(fields=['status', '-sale_date'], name='idx_sale_status_date'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(total_amount__gte=0), name='sale_total_non_negative'),
                    models.CheckConstraint(condition=models.Q(subtotal__gte=0), name='sale_subtotal_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SaleLine',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('quantity', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)], verbose_name='Quantity')),
                ('unit_type', models.CharField(choices=[('strip', 'Strip'), ('individual', 'Individual')], default='strip', max_length=20, verbose_name='Unit Type')),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='Unit Price')),
                ('total_price', models.DecimalField(blank=True, decimal_places=2, help_text='quantity * unit_price, computed on save when empty', max_digits=12, verbose_name='Total Price')),
                ('batch_number', models.CharField(blank=True, max_length=100, verbose_name='Batch Number')),
                ('batch_expiry_date', models.DateField(blank=True, null=True, verbose_name='Batch Expiry')),
                ('batch_manufacturing_date', models.DateField(blank=True, null=True, verbose_name='Batch Manufactured')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('medicine', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='sale_lines', to='medicines.medicine', verbose_name='Medicine')),
                ('sale', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lines', to='sales.sale', verbose_name='Sale')),
            ],
            options={
                'verbose_name': 'Sale Line',
                'verbose_name_plural': 'Sale Lines',
                'db_table': 'sale_lines',
                'ordering': ['created_at', 'id'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(quantity__gte=1), name='sale_line_quantity_positive'),
                    models.CheckConstraint(condition=models.Q(unit_price__gte=0), name='sale_line_unit_price_non_negative'),
                ],
            },
        ),
    ]
