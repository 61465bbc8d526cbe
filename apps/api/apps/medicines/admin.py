from django.contrib import admin
from .models import Medicine


@admin.register(Medicine)
class MedicineAdmin(admin.ModelAdmin):
    list_display = [
        'name', 'store', 'units_per_strip', 'strip_stock', 'individual_stock',
        'expiry_date', 'is_active'
    ]
    list_filter = ['is_active', 'store', 'has_strips', 'has_individual']
    search_fields = ['name', 'generic_name', 'manufacturer']
    readonly_fields = ['id', 'created_at', 'updated_at']
