from django.contrib import admin
from django.utils.html import format_html

from .models import Cart, CartItem, Order, OrderItem


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    raw_id_fields = ['variant']


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ['user', 'applied_coupon_code', 'coupon_discount_amount', 'updated_at']
    search_fields = ['user__email']
    raw_id_fields = ['user', 'applied_coupon']
    inlines = [CartItemInline]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ['variant', 'sku_code', 'product_name', 'variant_options', 'quantity', 'price', 'subtotal']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        'order_number', 'user', 'grand_total', 'status_badge',
        'payment_status', 'payment_gateway', 'placed_at'
    ]
    list_filter = ['order_status', 'payment_status', 'payment_gateway', 'placed_at']
    search_fields = ['order_number', 'user__email', 'shipping_full_name', 'tracking_number']
    date_hierarchy = 'placed_at'
    raw_id_fields = ['user', 'payment_method', 'applied_coupon']
    inlines = [OrderItemInline]
    readonly_fields = [
        'order_number', 'subtotal', 'shipping_cost', 'tax_amount', 'discount_amount',
        'grand_total', 'refunded_amount', 'gateway_session_id', 'placed_at'
    ]

    fieldsets = (
        ('Order', {
            'fields': ('order_number', 'user', 'order_status', 'placed_at', 'notes')
        }),
        ('Payment', {
            'fields': (
                'payment_gateway', 'payment_method', 'payment_status', 'gateway_session_id',
                'subtotal', 'shipping_cost', 'tax_amount', 'discount_amount', 'grand_total',
                'refunded_amount', 'applied_coupon', 'applied_coupon_code'
            )
        }),
        ('Shipping', {
            'fields': (
                'shipping_full_name', 'shipping_address_line1', 'shipping_address_line2',
                'shipping_city', 'shipping_state', 'shipping_pincode', 'shipping_country',
                'shipping_phone_number', 'tracking_number', 'shipping_carrier',
                'shipped_at', 'delivered_at', 'cancelled_at'
            )
        }),
        ('Billing', {
            'fields': (
                'billing_full_name', 'billing_address_line1', 'billing_address_line2',
                'billing_city', 'billing_state', 'billing_pincode', 'billing_country',
                'billing_phone_number'
            ),
            'classes': ('collapse',)
        }),
    )

    STATUS_COLORS = {
        Order.STATUS_PENDING: '#f39c12',
        Order.STATUS_PROCESSING: '#3498db',
        Order.STATUS_SHIPPED: '#9b59b6',
        Order.STATUS_DELIVERED: '#27ae60',
        Order.STATUS_CANCELLED: '#e74c3c',
        Order.STATUS_RETURN_REQUESTED: '#e67e22',
        Order.STATUS_RETURNED: '#95a5a6',
    }

    def status_badge(self, obj):
        return format_html(
            '<span style="background: {}; color: white; padding: 2px 6px; border-radius: 3px;">{}</span>',
            self.STATUS_COLORS.get(obj.order_status, '#95a5a6'),
            obj.get_order_status_display()
        )
    status_badge.short_description = "Status"
