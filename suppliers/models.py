"""
Supplier Models - Suppliers, their contact numbers and purchase orders
"""
import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models, transaction
from django.utils import timezone

from core.models import TimeStampedModel, phone_validator
from core.utils import unique_slugify, money


# ============================================================================
# SUPPLIER
# ============================================================================

class Supplier(TimeStampedModel):

    STATUS_CHOICES = [
        ('Active', 'Active'),
        ('Inactive', 'Inactive'),
        ('On Hold', 'On Hold'),
        ('Pending Approval', 'Pending Approval'),
    ]

    name = models.CharField(max_length=150, unique=True)
    slug = models.SlugField(max_length=170, unique=True, blank=True)
    description = models.CharField(max_length=1000, blank=True)
    logo_url = models.URLField(blank=True)
    email = models.EmailField(blank=True)
    website = models.URLField(blank=True)

    # Address
    street = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=100, blank=True)
    zipcode = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=100, default='India')

    rating = models.DecimalField(
        max_digits=3,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(5)]
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='Active', db_index=True)
    payment_terms = models.CharField(max_length=255, blank=True)
    delivery_terms = models.CharField(max_length=255, blank=True)
    notes = models.TextField(max_length=2000, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slugify(self, self.name, max_length=170)
        super().save(*args, **kwargs)

    def soft_delete(self):
        self.is_active = False
        self.status = 'Inactive'
        self.save(update_fields=['is_active', 'status', 'updated_at'])

    @property
    def primary_contact(self):
        return self.contact_numbers.filter(is_primary=True, is_active=True).first()


class SupplierContactNumber(TimeStampedModel):
    supplier = models.ForeignKey(Supplier, on_delete=models.CASCADE, related_name='contact_numbers')
    contact_number = models.CharField(max_length=20, validators=[phone_validator])
    contact_name = models.CharField(max_length=100, blank=True)
    is_primary = models.BooleanField(default=False)
    description = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['-is_primary', 'contact_name']
        constraints = [
            models.UniqueConstraint(
                fields=['supplier'],
                condition=models.Q(is_primary=True),
                name='single_primary_contact_per_supplier'
            )
        ]

    def __str__(self):
        return f"{self.supplier.name}: {self.contact_number}"

    def save(self, *args, **kwargs):
        with transaction.atomic():
            if self.is_primary:
                SupplierContactNumber.objects.filter(
                    supplier=self.supplier, is_primary=True
                ).exclude(pk=self.pk).update(is_primary=False)
            super().save(*args, **kwargs)


# ============================================================================
# PURCHASE - Stock bought from a supplier
# ============================================================================

class Purchase(TimeStampedModel):
    """
    Purchase order for one variant.
    Completing it credits inventory exactly once (suppliers.services)
    """

    STATUS_PLANNED = 'Planned'
    STATUS_PENDING = 'Pending'
    STATUS_COMPLETED = 'Completed'
    STATUS_CANCELLED = 'Cancelled'
    STATUS_PARTIAL = 'Partially Received'
    STATUS_CHOICES = [
        (STATUS_PLANNED, 'Planned'),
        (STATUS_PENDING, 'Pending'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_PARTIAL, 'Partially Received'),
    ]

    variant = models.ForeignKey('catalog.ProductVariant', on_delete=models.PROTECT, related_name='purchases')
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='purchases')

    purchase_order_number = models.CharField(max_length=50, unique=True, blank=True)
    purchase_date = models.DateTimeField(default=timezone.now)
    expected_delivery_date = models.DateTimeField(null=True, blank=True)
    received_date = models.DateTimeField(null=True, blank=True)

    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price_at_purchase = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0'))]
    )
    packaging_cost = models.DecimalField(max_digits=10, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    shipping_cost = models.DecimalField(max_digits=10, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    landing_price = models.DecimalField(max_digits=12, decimal_places=2, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PLANNED, db_index=True)
    notes = models.TextField(max_length=2000, blank=True)
    inventory_updated_on_completion = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['-purchase_date']
        indexes = [
            models.Index(fields=['supplier', 'status']),
            models.Index(fields=['variant', 'status']),
        ]

    def __str__(self):
        return f"{self.purchase_order_number} ({self.status})"

    def clean(self):
        if self.expected_delivery_date and self.purchase_date and self.expected_delivery_date < self.purchase_date:
            raise ValidationError({'expected_delivery_date': 'Expected delivery cannot be before the purchase date.'})

    def save(self, *args, **kwargs):
        if not self.purchase_order_number:
            self.purchase_order_number = self.generate_po_number()
        if self.landing_price is None:
            self.landing_price = self.calculate_landing_price()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_po_number():
        """PO-YYYYMMDD-XXXXXX"""
        while True:
            number = f"PO-{timezone.now():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"
            if not Purchase.objects.filter(purchase_order_number=number).exists():
                return number

    def calculate_landing_price(self):
        return money(
            Decimal(self.unit_price_at_purchase) * self.quantity
            + Decimal(self.packaging_cost or 0)
            + Decimal(self.shipping_cost or 0)
        )

    @property
    def landing_price_per_unit(self):
        if not self.quantity:
            return Decimal('0.00')
        return money(Decimal(self.landing_price) / self.quantity)
