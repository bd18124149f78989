from rest_framework import serializers
from rest_framework.exceptions import ValidationError

from .models import Inventory
from .services import analyze_pack_options


class InventorySerializer(serializers.ModelSerializer):
    sku_code = serializers.CharField(source='variant.sku_code', read_only=True)
    product_name = serializers.CharField(source='variant.product.name', read_only=True)
    stock_status = serializers.CharField(read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Inventory
        fields = [
            'id', 'variant', 'sku_code', 'product_name', 'stock_quantity',
            'stock_status', 'is_low_stock', 'last_restock_date', 'last_sold_date',
            'min_stock_level', 'location', 'notes', 'is_active',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['last_restock_date', 'last_sold_date', 'created_at', 'updated_at']
        # Duplicates are answered with 409 by the view
        validators = []
        extra_kwargs = {
            'variant': {'validators': []},
        }

    def validate_variant(self, value):
        if self.instance and self.instance.variant_id != value.pk:
            raise ValidationError("Inventory cannot be moved to another variant.")
        if not analyze_pack_options(value)['is_base_unit']:
            raise ValidationError(
                "Inventory is tracked on the base-unit variant only; pack variants use its stock."
            )
        return value


class StockAdjustmentSerializer(serializers.Serializer):
    OPERATION_ADD = 'add'
    OPERATION_REMOVE = 'remove'
    OPERATION_SET = 'set'

    operation = serializers.ChoiceField(choices=[OPERATION_ADD, OPERATION_REMOVE, OPERATION_SET])
    quantity = serializers.IntegerField(min_value=0)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)

    def validate(self, data):
        if data['operation'] != self.OPERATION_SET and data['quantity'] < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})
        return data
