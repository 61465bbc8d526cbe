from django.contrib import admin
from .models import Store


@admin.register(Store)
class StoreAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'city', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'code', 'city']
    readonly_fields = ['id', 'created_at', 'updated_at']
