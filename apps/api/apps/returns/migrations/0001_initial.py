# Initial migration for returns app - returns, return lines, per-store sequence

from decimal import Decimal
import uuid
import django.core.validators
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone

RETURN_REASONS = [
    ('defective_product', 'Defective product'),
    ('expired_medicine', 'Expired medicine'),
    ('wrong_medicine_dispensed', 'Wrong medicine dispensed'),
    ('customer_dissatisfaction', 'Customer dissatisfaction'),
    ('doctor_prescription_change', 'Doctor prescription change'),
    ('adverse_reaction', 'Adverse reaction'),
    ('duplicate_purchase', 'Duplicate purchase'),
    ('billing_error', 'Billing error'),
    ('quality_issue', 'Quality issue'),
    ('other', 'Other'),
]

UNIT_TYPES = [('strip', 'Strip'), ('individual', 'Individual')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('core', '0001_initial'),
        ('medicines', '0001_initial'),
        ('sales', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Return',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('return_number', models.CharField(help_text='RET-<store prefix>-<YYMM>-<sequence>, assigned once', max_length=40, unique=True, verbose_name='Return Number')),
                ('subtotal', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Subtotal')),
                ('tax_adjustment', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Tax Adjustment')),
                ('discount_adjustment', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Discount Adjustment')),
                ('total_return_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Total Return Amount')),
                ('return_reason', models.CharField(choices=RETURN_REASONS, max_length=40, verbose_name='Return Reason')),
                ('return_reason_details', models.TextField(blank=True, validators=[django.core.validators.MaxLengthValidator(500)], verbose_name='Reason Details')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('processed', 'Processed'), ('completed', 'Completed'), ('rejected', 'Rejected'), ('cancelled', 'Cancelled')], default='pending', max_length=20, verbose_name='Status')),
                ('approval_required', models.BooleanField(default=False, help_text='Set when the sale was older than the manager approval threshold', verbose_name='Manager Approval Required')),
                ('approved_at', models.DateTimeField(blank=True, null=True, verbose_name='Approved At')),
                ('rejection_reason', models.TextField(blank=True, verbose_name='Rejection Reason')),
                ('processed_at', models.DateTimeField(blank=True, null=True, verbose_name='Processed At')),
                ('completed_at', models.DateTimeField(blank=True, null=True, verbose_name='Completed At')),
                ('refund_method', models.CharField(choices=[('cash', 'Cash'), ('card', 'Card'), ('upi', 'UPI'), ('store_credit', 'Store Credit'), ('exchange', 'Exchange')], max_length=20, verbose_name='Refund Method')),
                ('refund_status', models.CharField(choices=[('pending', 'Pending'), ('processed', 'Processed'), ('completed', 'Completed'), ('failed', 'Failed')], default='pending', max_length=20, verbose_name='Refund Status')),
                ('refund_reference', models.CharField(blank=True, max_length=100, verbose_name='Refund Reference')),
                ('refund_processed_at', models.DateTimeField(blank=True, null=True, verbose_name='Refund Processed At')),
                ('restore_inventory', models.BooleanField(default=True, verbose_name='Restore Inventory')),
                ('inventory_restoration_status', models.CharField(choices=[('pending', 'Pending'), ('partial', 'Partial'), ('completed', 'Completed'), ('failed', 'Failed'), ('skipped', 'Skipped'), ('reversed', 'Reversed')], default='pending', max_length=20, verbose_name='Inventory Restoration Status')),
                ('notes', models.TextField(blank=True, validators=[django.core.validators.MaxLengthValidator(1000)], verbose_name='Notes')),
                ('return_date', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Return Date')),
                ('fiscal_year', models.CharField(blank=True, max_length=4, verbose_name='Fiscal Year')),
                ('quarter', models.CharField(blank=True, max_length=2, verbose_name='Quarter')),
                ('month', models.CharField(blank=True, max_length=12, verbose_name='Month')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('approved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='returns_approved', to=settings.AUTH_USER_MODEL, verbose_name='Approved By')),
                ('completed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='returns_completed', to=settings.AUTH_USER_MODEL, verbose_name='Completed By')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='returns_created', to=settings.AUTH_USER_MODEL, verbose_name='Created By')),
                ('customer', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='returns', to='sales.customer', verbose_name='Customer')),
                ('original_sale', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='returns', to='sales.sale', verbose_name='Original Sale')),
                ('processed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='returns_processed', to=settings.AUTH_USER_MODEL, verbose_name='Processed By')),
                ('store', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='returns', to='core.store', verbose_name='Store')),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='returns_updated', to=settings.AUTH_USER_MODEL, verbose_name='Updated By')),
            ],
            options={
                'verbose_name': 'Return',
                'verbose_name_plural': 'Returns',
                'db_table': 'returns',
                'ordering': ['-return_date'],
                'indexes': [
                    models.Index(fields=['store', '-return_date'], name='idx_return_store_date'),
                    models.Index(fields=['original_sale'], name='idx_return_sale'),
                    models.Index(fields=['store', 'status'], name='idx_return_store_status'),
                    models.Index(fields=['created_by', 'created_at'], name='idx_return_actor_created'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(subtotal__gte=0), name='return_subtotal_non_negative'),
                    models.CheckConstraint(condition=models.Q(('return_number', ''), _negated=True), name='return_number_not_empty'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReturnLine',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('return_quantity', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)], verbose_name='Return Quantity')),
                ('unit_type', models.CharField(choices=UNIT_TYPES, max_length=20, verbose_name='Unit Type')),
                ('original_quantity', models.PositiveIntegerField(verbose_name='Original Quantity')),
                ('original_unit_type', models.CharField(choices=UNIT_TYPES, max_length=20, verbose_name='Original Unit Type')),
                ('unit_price', models.DecimalField(decimal_places=2, help_text='Price per original unit type, copied from the sale line', max_digits=10, verbose_name='Original Unit Price')),
                ('return_amount', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Return Amount')),
                ('batch_number', models.CharField(blank=True, max_length=100, verbose_name='Batch Number')),
                ('batch_expiry_date', models.DateField(blank=True, null=True, verbose_name='Batch Expiry')),
                ('batch_manufacturing_date', models.DateField(blank=True, null=True, verbose_name='Batch Manufactured')),
                ('item_return_reason', models.CharField(choices=[('customer_request', 'Customer request')] + RETURN_REASONS, default='customer_request', max_length=40, verbose_name='Item Return Reason')),
                ('restore_to_inventory', models.BooleanField(default=True, verbose_name='Restore to Inventory')),
                ('inventory_restored', models.BooleanField(default=False, verbose_name='Inventory Restored')),
                ('restored_at', models.DateTimeField(blank=True, null=True, verbose_name='Restored At')),
                ('strip_quantity_restored', models.PositiveIntegerField(default=0)),
                ('individual_quantity_restored', models.PositiveIntegerField(default=0)),
                ('inventory_reversed', models.BooleanField(default=False, verbose_name='Inventory Reversed')),
                ('reversed_at', models.DateTimeField(blank=True, null=True, verbose_name='Reversed At')),
                ('strip_quantity_reversed', models.PositiveIntegerField(default=0)),
                ('individual_quantity_reversed', models.PositiveIntegerField(default=0)),
                ('reversal_reason', models.CharField(blank=True, max_length=255, verbose_name='Reversal Reason')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('medicine', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='return_lines', to='medicines.medicine', verbose_name='Medicine')),
                ('original_sale_line', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='return_lines', to='sales.saleline', verbose_name='Original Sale Line')),
                ('restored_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='return_lines_restored', to=settings.AUTH_USER_MODEL, verbose_name='Restored By')),
                ('return_record', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lines', to='returns.return', verbose_name='Return')),
                ('reversed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='return_lines_reversed', to=settings.AUTH_USER_MODEL, verbose_name='Reversed By')),
            ],
            options={
                'verbose_name': 'Return Line',
                'verbose_name_plural': 'Return Lines',
                'db_table': 'return_lines',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['original_sale_line'], name='idx_return_line_sale_line'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(return_quantity__gte=1), name='return_line_quantity_positive'),
                    models.CheckConstraint(condition=models.Q(inventory_restored=False) | models.Q(restored_at__isnull=False), name='return_line_restored_has_timestamp'),
                    models.CheckConstraint(condition=models.Q(inventory_reversed=False) | models.Q(reversed_at__isnull=False), name='return_line_reversed_has_timestamp'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ReturnSequence',
            fields=[
                ('store', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name='return_sequence', serialize=False, to='core.store')),
                ('last_value', models.PositiveIntegerField(default=0)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Return Sequence',
                'verbose_name_plural': 'Return Sequences',
                'db_table': 'return_sequences',
            },
        ),
    ]
