"""Sales serializers (read-only lookups for the returns desk)."""
from rest_framework import serializers
from .models import Customer, Sale, SaleLine


class SaleLineSerializer(serializers.ModelSerializer):
    medicine_name = serializers.CharField(source='medicine.name', read_only=True)
    units_per_strip = serializers.IntegerField(source='medicine.units_per_strip', read_only=True)

    class Meta:
        model = SaleLine
        fields = [
            'id', 'sale', 'medicine', 'medicine_name', 'units_per_strip',
            'quantity', 'unit_type', 'unit_price', 'total_price',
            'batch_number', 'batch_expiry_date', 'batch_manufacturing_date',
            'created_at'
        ]
        read_only_fields = fields


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = ['id', 'name']
        read_only_fields = fields


class SaleSerializer(serializers.ModelSerializer):
    """
    Sale with nested lines.

    The customer's phone is left out; returns staff only need the name.
    """
    lines = SaleLineSerializer(many=True, read_only=True)
    customer = CustomerSerializer(read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Sale
        fields = [
            'id', 'store', 'sale_number', 'customer', 'status', 'status_display',
            'is_returned', 'sale_date',
            'subtotal', 'tax_amount', 'discount_amount', 'total_amount',
            'created_at', 'updated_at',
            'lines'
        ]
        read_only_fields = fields
