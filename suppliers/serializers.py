from decimal import Decimal

from rest_framework import serializers
from rest_framework.exceptions import ValidationError

from core.utils import money
from .models import Supplier, SupplierContactNumber, Purchase


class SupplierContactNumberSerializer(serializers.ModelSerializer):

    class Meta:
        model = SupplierContactNumber
        fields = [
            'id', 'supplier', 'contact_number', 'contact_name', 'is_primary',
            'description', 'is_active', 'created_at'
        ]
        read_only_fields = ['created_at']


class SupplierSerializer(serializers.ModelSerializer):
    contact_numbers = SupplierContactNumberSerializer(many=True, read_only=True)
    purchases_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Supplier
        fields = [
            'id', 'name', 'slug', 'description', 'logo_url', 'email', 'website',
            'street', 'city', 'state', 'zipcode', 'country', 'rating', 'status',
            'payment_terms', 'delivery_terms', 'notes', 'is_active',
            'contact_numbers', 'purchases_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['slug', 'created_at', 'updated_at']


class PurchaseSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    sku_code = serializers.CharField(source='variant.sku_code', read_only=True)
    landing_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    landing_price_per_unit = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Purchase
        fields = [
            'id', 'variant', 'sku_code', 'supplier', 'supplier_name',
            'purchase_order_number', 'purchase_date', 'expected_delivery_date',
            'received_date', 'quantity', 'unit_price_at_purchase', 'packaging_cost',
            'shipping_cost', 'landing_price', 'landing_price_per_unit', 'status',
            'notes', 'inventory_updated_on_completion', 'is_active',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['inventory_updated_on_completion', 'created_at', 'updated_at']
        extra_kwargs = {
            'purchase_order_number': {'required': False},
        }

    def validate_supplier(self, value):
        if not value.is_active:
            raise ValidationError("Supplier is inactive.")
        return value

    def validate(self, data):
        def current(field, default=None):
            return data.get(field, getattr(self.instance, field, default))

        purchase_date = current('purchase_date')
        expected = current('expected_delivery_date')
        if purchase_date and expected and expected < purchase_date:
            raise ValidationError({"expected_delivery_date": "Expected delivery cannot be before the purchase date."})

        quantity = current('quantity')
        unit_price = current('unit_price_at_purchase')
        if quantity is not None and unit_price is not None:
            expected_landing = money(
                Decimal(unit_price) * quantity
                + Decimal(current('packaging_cost', 0) or 0)
                + Decimal(current('shipping_cost', 0) or 0)
            )
            if 'landing_price' in data and data['landing_price'] is not None:
                if abs(Decimal(data['landing_price']) - expected_landing) > Decimal('0.01'):
                    raise ValidationError({
                        "landing_price": f"Landing price must equal unit price x quantity + packaging + shipping ({expected_landing})."
                    })
            else:
                data['landing_price'] = expected_landing

        return data
