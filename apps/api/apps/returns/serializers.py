"""Returns serializers."""
from decimal import Decimal

from rest_framework import serializers

from apps.medicines.models import UnitTypeChoices

from .models import (
    ItemReturnReasonChoices,
    RefundMethodChoices,
    RefundStatusChoices,
    Return,
    ReturnLine,
    ReturnReasonChoices,
    ReturnStatusChoices,
)


class ReturnLineRequestSerializer(serializers.Serializer):
    """One line of a return request."""
    sale_line_id = serializers.UUIDField(
        help_text='ID of the original sale line'
    )
    return_quantity = serializers.IntegerField(
        min_value=1,
        help_text='Quantity to return (positive integer, in unit_type)'
    )
    unit_type = serializers.ChoiceField(choices=UnitTypeChoices.choices)
    item_return_reason = serializers.ChoiceField(
        choices=ItemReturnReasonChoices.choices,
        required=False
    )
    restore_to_inventory = serializers.BooleanField(
        required=False,
        allow_null=True,
        default=None,
        help_text='Defaults to the return-level restore_inventory flag'
    )


class ReturnValidateSerializer(serializers.Serializer):
    """
    Eligibility dry-run payload.

    POST /api/returns/validate/
    {
        "sale_id": "uuid",
        "lines": [{"sale_line_id": "uuid", "return_quantity": 5, "unit_type": "individual"}]
    }
    """
    sale_id = serializers.UUIDField()
    lines = ReturnLineRequestSerializer(many=True)

    def validate_lines(self, lines):
        if not lines:
            raise serializers.ValidationError('At least one return line is required')
        return lines


class ReturnCreateSerializer(ReturnValidateSerializer):
    """
    Return creation payload.

    POST /api/returns/
    {
        "sale_id": "uuid",
        "return_reason": "defective_product",
        "refund_method": "cash",
        "restore_inventory": true,
        "lines": [...]
    }
    """
    return_reason = serializers.ChoiceField(choices=ReturnReasonChoices.choices)
    return_reason_details = serializers.CharField(
        required=False, allow_blank=True, max_length=500, default=''
    )
    refund_method = serializers.ChoiceField(choices=RefundMethodChoices.choices)
    restore_inventory = serializers.BooleanField(required=False, default=True)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000, default='')
    tax_adjustment = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0.00'),
        required=False, default=Decimal('0.00')
    )
    discount_adjustment = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0.00'),
        required=False, default=Decimal('0.00')
    )


class ReturnUpdateSerializer(serializers.Serializer):
    """
    Status change and refund/note updates.

    PATCH /api/returns/{id}/
    {"status": "rejected", "rejection_reason": "Seal broken"}
    """
    status = serializers.ChoiceField(choices=ReturnStatusChoices.choices, required=False)
    refund_method = serializers.ChoiceField(choices=RefundMethodChoices.choices, required=False)
    refund_status = serializers.ChoiceField(choices=RefundStatusChoices.choices, required=False)
    refund_reference = serializers.CharField(required=False, allow_blank=True, max_length=100)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)
    rejection_reason = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('Nothing to update')
        return attrs


class ReturnLineSerializer(serializers.ModelSerializer):
    medicine_name = serializers.CharField(source='medicine.name', read_only=True)
    restoration_details = serializers.DictField(read_only=True, allow_null=True)
    reversal_details = serializers.DictField(read_only=True, allow_null=True)

    class Meta:
        model = ReturnLine
        fields = [
            'id', 'original_sale_line', 'medicine', 'medicine_name',
            'return_quantity', 'unit_type', 'original_quantity', 'original_unit_type',
            'unit_price', 'return_amount',
            'batch_number', 'batch_expiry_date', 'batch_manufacturing_date',
            'item_return_reason', 'restore_to_inventory',
            'inventory_restored', 'inventory_reversed',
            'restoration_details', 'reversal_details',
            'created_at',
        ]
        read_only_fields = fields


class ReturnSerializer(serializers.ModelSerializer):
    """Read serializer for Return with nested lines."""
    lines = ReturnLineSerializer(many=True, read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    sale_number = serializers.CharField(source='original_sale.sale_number', read_only=True)
    total_items = serializers.IntegerField(read_only=True)
    return_age = serializers.IntegerField(read_only=True)
    pending_restoration_count = serializers.IntegerField(read_only=True)
    valid_transitions = serializers.SerializerMethodField()

    class Meta:
        model = Return
        fields = [
            'id', 'return_number', 'store', 'original_sale', 'sale_number', 'customer',
            'status', 'status_display', 'valid_transitions', 'approval_required',
            'subtotal', 'tax_adjustment', 'discount_adjustment', 'total_return_amount',
            'return_reason', 'return_reason_details',
            'refund_method', 'refund_status', 'refund_reference', 'refund_processed_at',
            'restore_inventory', 'inventory_restoration_status', 'pending_restoration_count',
            'rejection_reason', 'approved_by', 'approved_at', 'processed_by', 'processed_at',
            'completed_by', 'completed_at',
            'notes', 'return_date', 'fiscal_year', 'quarter', 'month',
            'total_items', 'return_age',
            'created_by', 'updated_by', 'created_at', 'updated_at',
            'lines',
        ]
        read_only_fields = fields

    def get_valid_transitions(self, obj):
        return [str(status) for status in obj.get_valid_transitions()]


class AvailableItemSerializer(serializers.Serializer):
    """Returnable quantities of one sale line."""
    sale_line_id = serializers.UUIDField(source='sale_line.id')
    medicine_id = serializers.UUIDField(source='sale_line.medicine_id')
    medicine_name = serializers.CharField(source='sale_line.medicine.name')
    original_quantity = serializers.IntegerField(source='sale_line.quantity')
    original_unit_type = serializers.CharField()
    alternate_unit_type = serializers.CharField()
    units_per_strip = serializers.IntegerField()
    unit_price = serializers.DecimalField(source='sale_line.unit_price', max_digits=10, decimal_places=2)
    available_by_unit = serializers.DictField(child=serializers.IntegerField())
    returned_by_unit = serializers.DictField(child=serializers.IntegerField())
    batch_number = serializers.CharField(source='sale_line.batch_number')
    batch_expiry_date = serializers.DateField(source='sale_line.batch_expiry_date', allow_null=True)


class SaleAvailabilitySerializer(serializers.Serializer):
    sale_id = serializers.UUIDField(source='sale.id')
    sale_number = serializers.CharField(source='sale.sale_number', allow_null=True)
    sale_date = serializers.DateTimeField(source='sale.sale_date')
    is_returned = serializers.BooleanField(source='sale.is_returned')
    items = AvailableItemSerializer(many=True)


class EligibilityReportSerializer(serializers.Serializer):
    """Response of the validate/ dry run."""
    eligible = serializers.SerializerMethodField()
    sale_id = serializers.UUIDField(source='eligibility.sale.id')
    sale_age_days = serializers.IntegerField(source='eligibility.sale_age_days')
    requires_manager_approval = serializers.BooleanField(source='eligibility.requires_manager_approval')
    warnings = serializers.ListField(source='eligibility.warnings', child=serializers.CharField())
    estimated_subtotal = serializers.DecimalField(max_digits=12, decimal_places=2)

    def get_eligible(self, obj):
        return True
