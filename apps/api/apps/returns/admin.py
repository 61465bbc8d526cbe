from django.contrib import admin
from .models import Return, ReturnLine, ReturnSequence


class ReturnLineInline(admin.TabularInline):
    """
    Read-only return lines.

    Lines are part of the audit record and are never edited by hand.
    """
    model = ReturnLine
    extra = 0
    can_delete = False
    fields = [
        'medicine', 'return_quantity', 'unit_type', 'original_quantity', 'original_unit_type',
        'return_amount', 'restore_to_inventory', 'inventory_restored', 'inventory_reversed'
    ]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Return)
class ReturnAdmin(admin.ModelAdmin):
    list_display = [
        'return_number', 'store', 'original_sale', 'status', 'total_return_amount',
        'inventory_restoration_status', 'return_date'
    ]
    list_filter = ['status', 'refund_status', 'inventory_restoration_status', 'return_reason', 'store']
    search_fields = ['return_number', 'original_sale__sale_number']
    readonly_fields = [
        'id', 'return_number', 'store', 'original_sale', 'customer', 'status',
        'approval_required', 'restore_inventory',
        'subtotal', 'tax_adjustment', 'discount_adjustment', 'total_return_amount',
        'inventory_restoration_status', 'fiscal_year', 'quarter', 'month',
        'approved_by', 'approved_at', 'processed_by', 'processed_at',
        'completed_by', 'completed_at', 'created_by', 'updated_by',
        'created_at', 'updated_at'
    ]
    inlines = [ReturnLineInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'return_number', 'store', 'original_sale', 'customer', 'status', 'approval_required')
        }),
        ('Financial', {
            'fields': ('subtotal', 'tax_adjustment', 'discount_adjustment', 'total_return_amount')
        }),
        ('Refund', {
            'fields': ('refund_method', 'refund_status', 'refund_reference', 'refund_processed_at')
        }),
        ('Reason', {
            'fields': ('return_reason', 'return_reason_details', 'rejection_reason', 'notes'),
            'classes': ('collapse',)
        }),
        ('Inventory', {
            'fields': ('restore_inventory', 'inventory_restoration_status')
        }),
        ('Audit', {
            'fields': (
                'return_date', 'fiscal_year', 'quarter', 'month',
                'approved_by', 'approved_at', 'processed_by', 'processed_at',
                'completed_by', 'completed_at', 'created_by', 'updated_by',
                'created_at', 'updated_at'
            ),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        """Returns are filed through the API so eligibility is always checked."""
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ReturnSequence)
class ReturnSequenceAdmin(admin.ModelAdmin):
    list_display = ['store', 'last_value', 'updated_at']
    readonly_fields = ['store', 'last_value', 'updated_at']

    def has_add_permission(self, request):
        return False
