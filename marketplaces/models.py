"""
Marketplace Models - external sales platforms, their fees, and variant listings
"""
import json
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.models import TimeStampedModel
from core.utils import money, unique_slugify

PLATFORM_DATA_MAX_CHARS = 10000
SYNC_MAX_AGE = timedelta(days=1)


# ============================================================================
# PLATFORM - a marketplace the store sells through
# ============================================================================

class Platform(TimeStampedModel):
    name = models.CharField(max_length=100, unique=True)
    slug = models.SlugField(max_length=120, unique=True, blank=True)
    description = models.CharField(max_length=500, blank=True)
    base_url = models.URLField(blank=True)
    logo_url = models.URLField(blank=True)
    # Only a reference to where the credentials live, never the secret itself
    api_credentials_placeholder = models.CharField(max_length=200, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slugify(self, self.name, max_length=120)
        super().save(*args, **kwargs)

    @property
    def has_api_credentials(self):
        return bool(self.api_credentials_placeholder.strip())

    def soft_delete(self):
        self.is_active = False
        self.save(update_fields=['is_active', 'updated_at'])


# ============================================================================
# PLATFORM FEE - dated fee schedule per platform
# ============================================================================

class PlatformFeeQuerySet(models.QuerySet):

    def current(self, at=None):
        """Active fees whose [effective_date, end_date) window contains ``at``"""
        at = at or timezone.now()
        return self.filter(is_active=True, effective_date__lte=at).filter(
            Q(end_date__isnull=True) | Q(end_date__gt=at)
        )


class PlatformFee(TimeStampedModel):

    FEE_TYPES = [
        ('Commission Percentage', 'Commission Percentage'),
        ('Fixed Listing Fee', 'Fixed Listing Fee'),
        ('Payment Gateway Fee', 'Payment Gateway Fee'),
        ('Shipping Fee', 'Shipping Fee'),
        ('Storage Fee', 'Storage Fee'),
        ('Other', 'Other'),
    ]

    platform = models.ForeignKey(Platform, on_delete=models.CASCADE, related_name='fees')
    fee_type = models.CharField(max_length=30, choices=FEE_TYPES)
    description = models.CharField(max_length=500, blank=True)
    value = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    is_percentage = models.BooleanField(default=False)
    effective_date = models.DateTimeField(default=timezone.now)
    end_date = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    objects = PlatformFeeQuerySet.as_manager()

    class Meta:
        ordering = ['platform', 'fee_type', '-effective_date']
        indexes = [
            models.Index(fields=['platform', 'fee_type', 'is_active']),
            models.Index(fields=['effective_date', 'end_date']),
        ]

    def __str__(self):
        return f"{self.platform.name}: {self.fee_type} {self.formatted_value}"

    def clean(self):
        errors = {}
        if self.is_percentage and self.value is not None and self.value > 100:
            errors['value'] = 'Percentage value cannot exceed 100.'
        if self.end_date and self.effective_date and self.end_date <= self.effective_date:
            errors['end_date'] = 'End date must be after effective date.'
        if errors:
            raise ValidationError(errors)

    @property
    def formatted_value(self):
        if self.is_percentage:
            return f"{self.value}%"
        return f"{self.value} {settings.STORE['DEFAULT_CURRENCY']}"

    @property
    def is_currently_active(self):
        now = timezone.now()
        return bool(
            self.is_active
            and self.effective_date <= now
            and (self.end_date is None or self.end_date > now)
        )

    @property
    def is_expired(self):
        return self.end_date is not None and timezone.now() >= self.end_date

    @property
    def fee_summary(self):
        summary = f"{self.fee_type}: {self.formatted_value}"
        if self.description:
            summary += f" ({self.description})"
        return summary

    def soft_delete(self):
        self.is_active = False
        self.save(update_fields=['is_active', 'updated_at'])


# ============================================================================
# LISTING - a variant published on a platform
# ============================================================================

class ListingQuerySet(models.QuerySet):

    def needs_sync(self):
        """Active listings never synced, or synced over a day ago"""
        return self.filter(is_active_on_platform=True).filter(
            Q(last_synced_at__isnull=True) | Q(last_synced_at__lt=timezone.now() - SYNC_MAX_AGE)
        )


class Listing(TimeStampedModel):
    """
    One variant on one platform.
    last_synced_at moves whenever a field the platform mirrors changes.
    """
    STATUS_DRAFT = 'Draft'
    STATUS_PENDING_REVIEW = 'Pending Review'
    STATUS_LIVE = 'Live'
    STATUS_REJECTED = 'Rejected'
    STATUS_DEACTIVATED = 'Deactivated'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_PENDING_REVIEW, 'Pending Review'),
        (STATUS_LIVE, 'Live'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_DEACTIVATED, 'Deactivated'),
    ]

    SYNCED_FIELDS = ('platform_price', 'listing_status', 'platform_sku', 'platform_product_id')

    variant = models.ForeignKey('catalog.ProductVariant', on_delete=models.CASCADE, related_name='listings')
    platform = models.ForeignKey(Platform, on_delete=models.PROTECT, related_name='listings')

    platform_sku = models.CharField(max_length=100, blank=True)
    platform_product_id = models.CharField(max_length=150, blank=True)
    listing_status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)

    platform_price = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True,
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('1000000'))]
    )
    platform_commission_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))]
    )
    platform_fixed_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0'))]
    )
    platform_shipping_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0'))]
    )

    last_synced_at = models.DateTimeField(null=True, blank=True, db_index=True)
    platform_specific_data = models.JSONField(null=True, blank=True)
    is_active_on_platform = models.BooleanField(default=True)

    objects = ListingQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['variant', 'platform'], name='unique_listing_per_variant_platform')
        ]
        indexes = [
            models.Index(fields=['platform', 'listing_status']),
            models.Index(fields=['is_active_on_platform', 'last_synced_at']),
        ]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._synced_state = self._current_synced_state()

    def __str__(self):
        return f"{self.variant.sku_code} on {self.platform.name} ({self.listing_status})"

    def _current_synced_state(self):
        # __dict__ so deferred fields are not loaded from the database
        return tuple(self.__dict__.get(field) for field in self.SYNCED_FIELDS)

    def clean(self):
        errors = {}
        if self.listing_status == self.STATUS_LIVE and not (self.platform_price and self.platform_price > 0):
            errors['platform_price'] = 'Live listings must have a platform price above zero.'
        if self.platform_specific_data is not None:
            if len(json.dumps(self.platform_specific_data)) > PLATFORM_DATA_MAX_CHARS:
                errors['platform_specific_data'] = 'Platform data must be under 10KB.'
        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        update_fields = kwargs.get('update_fields')
        if self._state.adding or self._current_synced_state() != self._synced_state:
            self.last_synced_at = timezone.now()
            if update_fields is not None:
                kwargs['update_fields'] = set(update_fields) | {'last_synced_at'}
        super().save(*args, **kwargs)
        self._synced_state = self._current_synced_state()

    @property
    def total_platform_fees(self):
        price = self.platform_price or Decimal('0')
        commission = price * self.platform_commission_percentage / 100
        return money(self.platform_fixed_fee + self.platform_shipping_fee + commission)

    @property
    def estimated_net_revenue(self):
        if self.platform_price is None:
            return Decimal('0.00')
        return max(Decimal('0.00'), money(self.platform_price - self.total_platform_fees))

    @property
    def is_live_and_active(self):
        return self.listing_status == self.STATUS_LIVE and self.is_active_on_platform

    @property
    def needs_sync(self):
        if self.last_synced_at is None:
            return True
        return self.last_synced_at < timezone.now() - SYNC_MAX_AGE

    def mark_synced(self):
        self.last_synced_at = timezone.now()
        self.save(update_fields=['last_synced_at', 'updated_at'])

    def soft_delete(self):
        self.is_active_on_platform = False
        self.listing_status = self.STATUS_DEACTIVATED
        self.save(update_fields=['is_active_on_platform', 'listing_status', 'updated_at'])

    def activate(self):
        self.is_active_on_platform = True
        if self.listing_status == self.STATUS_DEACTIVATED:
            self.listing_status = self.STATUS_DRAFT
        self.save(update_fields=['is_active_on_platform', 'listing_status', 'updated_at'])
