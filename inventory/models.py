"""
Inventory Models - Stock is tracked on base-unit variants only
Pack variants draw from their base unit (see inventory.services)
"""
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone

from core.exceptions import BadRequest
from core.models import TimeStampedModel


class Inventory(TimeStampedModel):
    """Stock level of one base-unit variant"""

    STATUS_OUT = 'Out of Stock'
    STATUS_LOW = 'Low Stock'
    STATUS_MEDIUM = 'Medium Stock'
    STATUS_HIGH = 'High Stock'

    variant = models.OneToOneField(
        'catalog.ProductVariant',
        on_delete=models.CASCADE,
        related_name='inventory'
    )
    stock_quantity = models.PositiveIntegerField(default=0)
    last_restock_date = models.DateTimeField(null=True, blank=True)
    last_sold_date = models.DateTimeField(null=True, blank=True)
    min_stock_level = models.PositiveIntegerField(
        default=10,
        validators=[MinValueValidator(0), MaxValueValidator(10000)]
    )
    location = models.CharField(max_length=100, blank=True)
    notes = models.CharField(max_length=500, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        verbose_name_plural = 'Inventories'
        ordering = ['stock_quantity']
        indexes = [
            models.Index(fields=['stock_quantity']),
            models.Index(fields=['is_active']),
        ]

    def __str__(self):
        return f"{self.variant.sku_code}: {self.stock_quantity}"

    @property
    def stock_status(self):
        if self.stock_quantity <= 0:
            return self.STATUS_OUT
        if self.stock_quantity <= self.min_stock_level:
            return self.STATUS_LOW
        if self.stock_quantity <= self.min_stock_level * 2:
            return self.STATUS_MEDIUM
        return self.STATUS_HIGH

    @property
    def is_low_stock(self):
        return self.min_stock_level > 0 and self.stock_quantity <= self.min_stock_level

    def add_stock(self, quantity):
        self.stock_quantity += quantity
        self.last_restock_date = timezone.now()
        self.save(update_fields=['stock_quantity', 'last_restock_date', 'updated_at'])

    def remove_stock(self, quantity):
        if quantity > self.stock_quantity:
            raise BadRequest('Insufficient stock available', code='insufficient_stock')
        self.stock_quantity -= quantity
        self.last_sold_date = timezone.now()
        self.save(update_fields=['stock_quantity', 'last_sold_date', 'updated_at'])

    def set_stock(self, quantity):
        self.stock_quantity = quantity
        self.save(update_fields=['stock_quantity', 'updated_at'])
