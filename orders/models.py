"""
Cart and Order Models
Orders are the source of truth for purchases; every amount is computed
server-side when the order is placed and never trusted from the client
"""
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from core.models import TimeStampedModel, pincode_validator
from core.utils import money


# ============================================================================
# CART
# ============================================================================

class Cart(TimeStampedModel):
    """One cart per user"""

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='cart')
    applied_coupon = models.ForeignKey(
        'coupons.UserCoupon',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='carts'
    )
    applied_coupon_code = models.CharField(max_length=50, blank=True)
    coupon_discount_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    def __str__(self):
        return f"Cart of {self.user.email}"

    @property
    def subtotal(self):
        return money(sum(
            (item.price_at_addition * item.quantity for item in self.items.all()),
            Decimal('0')
        ))

    @property
    def total_quantity(self):
        return sum(item.quantity for item in self.items.all())

    @property
    def cart_total_amount(self):
        return money(max(self.subtotal - self.coupon_discount_amount, Decimal('0')))

    def apply_coupon(self, coupon, discount):
        self.applied_coupon = coupon
        self.applied_coupon_code = coupon.coupon_code
        self.coupon_discount_amount = money(discount)
        self.save(update_fields=['applied_coupon', 'applied_coupon_code', 'coupon_discount_amount', 'updated_at'])

    def clear_coupon(self):
        self.applied_coupon = None
        self.applied_coupon_code = ''
        self.coupon_discount_amount = Decimal('0')
        self.save(update_fields=['applied_coupon', 'applied_coupon_code', 'coupon_discount_amount', 'updated_at'])


class CartItem(TimeStampedModel):
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name='items')
    variant = models.ForeignKey('catalog.ProductVariant', on_delete=models.CASCADE, related_name='cart_items')
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price_at_addition = models.DecimalField(max_digits=10, decimal_places=2)

    class Meta:
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['cart', 'variant'], name='unique_cart_variant')
        ]

    def __str__(self):
        return f"{self.quantity} x {self.variant.sku_code}"

    @property
    def line_total(self):
        return money(self.price_at_addition * self.quantity)


# ============================================================================
# ORDER
# ============================================================================

class Order(TimeStampedModel):
    """
    Placed order with address snapshots and backend-calculated totals
    """

    STATUS_PENDING = 'PENDING'
    STATUS_PROCESSING = 'PROCESSING'
    STATUS_SHIPPED = 'SHIPPED'
    STATUS_DELIVERED = 'DELIVERED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_RETURN_REQUESTED = 'RETURN_REQUESTED'
    STATUS_RETURNED = 'RETURNED'
    ORDER_STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_SHIPPED, 'Shipped'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_RETURN_REQUESTED, 'Return Requested'),
        (STATUS_RETURNED, 'Returned'),
    ]

    PAYMENT_PENDING = 'PENDING'
    PAYMENT_PAID = 'PAID'
    PAYMENT_FAILED = 'FAILED'
    PAYMENT_REFUNDED = 'REFUNDED'
    PAYMENT_PARTIALLY_REFUNDED = 'PARTIALLY_REFUNDED'
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, 'Pending'),
        (PAYMENT_PAID, 'Paid'),
        (PAYMENT_FAILED, 'Failed'),
        (PAYMENT_REFUNDED, 'Refunded'),
        (PAYMENT_PARTIALLY_REFUNDED, 'Partially Refunded'),
    ]

    GATEWAY_COD = 'COD'
    GATEWAY_RAZORPAY = 'RAZORPAY'
    GATEWAY_WALLET = 'WALLET'
    GATEWAY_UPI = 'UPI'
    GATEWAY_NETBANKING = 'NETBANKING'
    GATEWAY_CARD = 'CARD'
    GATEWAY_CHOICES = [
        (GATEWAY_COD, 'Cash on Delivery'),
        (GATEWAY_RAZORPAY, 'Razorpay'),
        (GATEWAY_WALLET, 'Wallet'),
        (GATEWAY_UPI, 'UPI'),
        (GATEWAY_NETBANKING, 'Net Banking'),
        (GATEWAY_CARD, 'Card'),
    ]
    # Paid up front through the card checkout
    ONLINE_GATEWAYS = (GATEWAY_CARD, GATEWAY_UPI, GATEWAY_NETBANKING)

    order_number = models.CharField(max_length=20, unique=True, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')

    # Shipping address snapshot
    shipping_full_name = models.CharField(max_length=100)
    shipping_address_line1 = models.CharField(max_length=255)
    shipping_address_line2 = models.CharField(max_length=255, blank=True)
    shipping_city = models.CharField(max_length=100)
    shipping_state = models.CharField(max_length=100)
    shipping_pincode = models.CharField(max_length=6, validators=[pincode_validator])
    shipping_country = models.CharField(max_length=100, default='India')
    shipping_phone_number = models.CharField(max_length=20)

    # Billing address snapshot
    billing_full_name = models.CharField(max_length=100)
    billing_address_line1 = models.CharField(max_length=255)
    billing_address_line2 = models.CharField(max_length=255, blank=True)
    billing_city = models.CharField(max_length=100)
    billing_state = models.CharField(max_length=100)
    billing_pincode = models.CharField(max_length=6, validators=[pincode_validator])
    billing_country = models.CharField(max_length=100, default='India')
    billing_phone_number = models.CharField(max_length=20)

    # Payment
    payment_method = models.ForeignKey(
        'payments.PaymentMethod',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders'
    )
    payment_status = models.CharField(
        max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING, db_index=True
    )
    payment_gateway = models.CharField(max_length=20, choices=GATEWAY_CHOICES, default=GATEWAY_COD)
    gateway_session_id = models.CharField(max_length=255, blank=True, db_index=True)

    order_status = models.CharField(
        max_length=20, choices=ORDER_STATUS_CHOICES, default=STATUS_PENDING, db_index=True
    )

    # Pricing (backend-calculated, immutable after creation)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    shipping_cost = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    grand_total = models.DecimalField(max_digits=12, decimal_places=2)
    refunded_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    applied_coupon = models.ForeignKey(
        'coupons.UserCoupon',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders'
    )
    applied_coupon_code = models.CharField(max_length=50, blank=True)

    # Fulfilment
    tracking_number = models.CharField(max_length=100, blank=True)
    shipping_carrier = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)

    placed_at = models.DateTimeField(default=timezone.now)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-placed_at']
        indexes = [
            models.Index(fields=['user', '-placed_at']),
            models.Index(fields=['order_status', 'payment_status']),
        ]

    def __str__(self):
        return f"Order {self.order_number}"

    def save(self, *args, **kwargs):
        if not self.order_number:
            self.order_number = self.generate_order_number()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_order_number():
        """YYYYMMDD + 6 upper-case hex"""
        while True:
            number = f"{timezone.now():%Y%m%d}{uuid.uuid4().hex[:6].upper()}"
            if not Order.objects.filter(order_number=number).exists():
                return number

    @staticmethod
    def calculate_grand_total(subtotal, shipping_cost, tax_amount, discount_amount):
        return money(max(subtotal + shipping_cost + tax_amount - discount_amount, Decimal('0')))

    @property
    def can_be_cancelled(self):
        return self.order_status in (self.STATUS_PENDING, self.STATUS_PROCESSING)

    @property
    def can_be_shipped(self):
        if self.order_status != self.STATUS_PROCESSING:
            return False
        return self.payment_status == self.PAYMENT_PAID or self.payment_gateway == self.GATEWAY_COD

    @property
    def can_be_delivered(self):
        return self.order_status == self.STATUS_SHIPPED

    @property
    def can_be_returned(self):
        return self.order_status == self.STATUS_DELIVERED

    @property
    def refundable_amount(self):
        return money(self.grand_total - self.refunded_amount)

    def append_note(self, note):
        self.notes = f"{self.notes}\n{note}".strip()

    def shipping_snapshot(self):
        return {
            field: getattr(self, f'shipping_{field}')
            for field in ('full_name', 'address_line1', 'address_line2', 'city',
                          'state', 'pincode', 'country', 'phone_number')
        }


class OrderItem(models.Model):
    """Snapshot of a purchased variant"""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    variant = models.ForeignKey(
        'catalog.ProductVariant',
        on_delete=models.SET_NULL,
        null=True,
        related_name='order_items'
    )
    sku_code = models.CharField(max_length=50)
    product_name = models.CharField(max_length=200)
    variant_options = models.JSONField(default=list, blank=True)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=10, decimal_places=2, help_text="Unit price at purchase")
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)

    def __str__(self):
        return f"{self.quantity} x {self.sku_code}"
