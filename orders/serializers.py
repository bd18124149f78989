from rest_framework import serializers

from core.models import pincode_validator, phone_validator
from inventory.services import computed_stock
from .models import Cart, CartItem, Order, OrderItem


# ============================================================================
# CART
# ============================================================================

class CartItemSerializer(serializers.ModelSerializer):
    sku_code = serializers.CharField(source='variant.sku_code', read_only=True)
    product_name = serializers.CharField(source='variant.product.name', read_only=True)
    current_price = serializers.DecimalField(
        source='variant.effective_price', max_digits=10, decimal_places=2, read_only=True
    )
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    available_stock = serializers.SerializerMethodField()

    class Meta:
        model = CartItem
        fields = [
            'id', 'variant', 'sku_code', 'product_name', 'quantity',
            'price_at_addition', 'current_price', 'line_total', 'available_stock'
        ]

    def get_available_stock(self, obj):
        return computed_stock(obj.variant)


class CartSerializer(serializers.ModelSerializer):
    items = serializers.SerializerMethodField()
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    cart_total_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    total_quantity = serializers.IntegerField(read_only=True)

    class Meta:
        model = Cart
        fields = [
            'id', 'items', 'total_quantity', 'subtotal', 'applied_coupon_code',
            'coupon_discount_amount', 'cart_total_amount', 'updated_at'
        ]

    def get_items(self, obj):
        items = obj.items.select_related('variant__product').prefetch_related('variant__option_values')
        return CartItemSerializer(items, many=True).data


class AddCartItemSerializer(serializers.Serializer):
    variant = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1, default=1)


class UpdateCartItemSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=0)


class CouponCodeSerializer(serializers.Serializer):
    coupon_code = serializers.CharField(max_length=50)


# ============================================================================
# ORDER
# ============================================================================

class AddressSnapshotSerializer(serializers.Serializer):
    """Inline address given at checkout"""
    full_name = serializers.CharField(max_length=100)
    address_line1 = serializers.CharField(max_length=255)
    address_line2 = serializers.CharField(max_length=255, required=False, allow_blank=True)
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    pincode = serializers.CharField(max_length=6, validators=[pincode_validator])
    country = serializers.CharField(max_length=100, required=False, default='India')
    phone_number = serializers.CharField(max_length=20, validators=[phone_validator])


class OrderItemSerializer(serializers.ModelSerializer):

    class Meta:
        model = OrderItem
        fields = ['id', 'variant', 'sku_code', 'product_name', 'variant_options', 'quantity', 'price', 'subtotal']


class OrderListSerializer(serializers.ModelSerializer):
    items_count = serializers.IntegerField(source='items.count', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'order_status', 'payment_status', 'payment_gateway',
            'grand_total', 'items_count', 'placed_at'
        ]


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    user_email = serializers.EmailField(source='user.email', read_only=True)
    shipping_address = serializers.SerializerMethodField()
    billing_address = serializers.SerializerMethodField()
    can_be_cancelled = serializers.BooleanField(read_only=True)
    can_be_returned = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'user', 'user_email', 'shipping_address', 'billing_address',
            'payment_method', 'payment_status', 'payment_gateway', 'order_status',
            'subtotal', 'shipping_cost', 'tax_amount', 'discount_amount', 'grand_total',
            'refunded_amount', 'applied_coupon_code', 'tracking_number', 'shipping_carrier',
            'notes', 'items', 'can_be_cancelled', 'can_be_returned',
            'placed_at', 'shipped_at', 'delivered_at', 'cancelled_at'
        ]
        read_only_fields = fields

    def get_shipping_address(self, obj):
        return obj.shipping_snapshot()

    def get_billing_address(self, obj):
        return {
            field: getattr(obj, f'billing_{field}')
            for field in ('full_name', 'address_line1', 'address_line2', 'city',
                          'state', 'pincode', 'country', 'phone_number')
        }


class PlaceOrderSerializer(serializers.Serializer):
    # Address id or an inline address object
    shipping_address = serializers.JSONField()
    billing_address = serializers.JSONField(required=False, allow_null=True)
    payment_gateway = serializers.ChoiceField(choices=Order.GATEWAY_CHOICES, default=Order.GATEWAY_COD)
    payment_method = serializers.IntegerField(required=False, allow_null=True)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


class UpdateOrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.ORDER_STATUS_CHOICES)
    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    shipping_carrier = serializers.CharField(max_length=100, required=False, allow_blank=True)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True)


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)
    to_wallet = serializers.BooleanField(default=False)
