from django.contrib import admin
from .models import Customer, Sale, SaleLine


class SaleLineInline(admin.TabularInline):
    """
    Inline admin for sale lines.

    Lines of a sale with returns are read-only: returns refer back to them.
    """
    model = SaleLine
    extra = 0
    fields = ['medicine', 'quantity', 'unit_type', 'unit_price', 'total_price', 'batch_number', 'batch_expiry_date']
    readonly_fields = ['total_price']

    def has_change_permission(self, request, obj=None):
        if obj and obj.returns.exists():
            return False
        return super().has_change_permission(request, obj)

    def has_delete_permission(self, request, obj=None):
        if obj and obj.returns.exists():
            return False
        return super().has_delete_permission(request, obj)


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = ['sale_number', 'store', 'status', 'is_returned', 'total_amount', 'sale_date']
    list_filter = ['status', 'is_returned', 'store']
    search_fields = ['sale_number', 'customer__name']
    readonly_fields = ['id', 'is_returned', 'created_at', 'updated_at']
    inlines = [SaleLineInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'store', 'sale_number', 'customer', 'status', 'is_returned', 'sale_date')
        }),
        ('Financial', {
            'fields': ('subtotal', 'tax_amount', 'discount_amount', 'total_amount')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def has_delete_permission(self, request, obj=None):
        """Sales referenced by returns are never deleted."""
        if obj and obj.returns.exists():
            return False
        return super().has_delete_permission(request, obj)

    def save_model(self, request, obj, form, change):
        """
        Enforce full_clean() validation.

        SECURITY: Prevents admin bypass of business rules.
        """
        obj.full_clean()
        super().save_model(request, obj, form, change)


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['name', 'store', 'created_at']
    list_filter = ['store']
    search_fields = ['name']
    readonly_fields = ['id', 'created_at']
