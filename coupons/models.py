"""
Coupon Models - Campaigns and the per-user codes generated from them
"""
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MinLengthValidator, RegexValidator
from django.db import models, transaction
from django.db.models import F
from django.utils import timezone

from core.models import TimeStampedModel
from core.utils import unique_slugify, money


ELIGIBILITY_NEW_USER = 'NEW_USER'
ELIGIBILITY_REFERRAL = 'REFERRAL'
ELIGIBILITY_FIRST_ORDER = 'FIRST_ORDER'
ELIGIBILITY_USER_GROUP = 'SPECIFIC_USER_GROUP'
ELIGIBILITY_ALL_USERS = 'ALL_USERS'
ELIGIBILITY_NONE = 'NONE'

ELIGIBILITY_CHOICES = [
    ELIGIBILITY_NEW_USER,
    ELIGIBILITY_REFERRAL,
    ELIGIBILITY_FIRST_ORDER,
    ELIGIBILITY_USER_GROUP,
    ELIGIBILITY_ALL_USERS,
    ELIGIBILITY_NONE,
]


def default_eligibility():
    return [ELIGIBILITY_NONE]


def validate_eligibility(value):
    if not isinstance(value, list) or not value:
        raise ValidationError('Eligibility criteria must be a non-empty list.')
    unknown = [item for item in value if item not in ELIGIBILITY_CHOICES]
    if unknown:
        raise ValidationError(f"Unknown eligibility criteria: {', '.join(map(str, unknown))}")


coupon_code_validator = RegexValidator(
    regex=r'^[A-Z0-9-]+$',
    message='Coupon code may only contain uppercase letters, numbers and hyphens'
)


# ============================================================================
# COUPON CAMPAIGN
# ============================================================================

class CouponCampaign(TimeStampedModel):
    """Discount rules shared by every code generated for the campaign"""

    DISCOUNT_PERCENTAGE = 'PERCENTAGE'
    DISCOUNT_AMOUNT = 'AMOUNT'
    DISCOUNT_FREE_SHIPPING = 'FREE_SHIPPING'
    DISCOUNT_TYPES = [
        (DISCOUNT_PERCENTAGE, 'Percentage'),
        (DISCOUNT_AMOUNT, 'Fixed Amount'),
        (DISCOUNT_FREE_SHIPPING, 'Free Shipping'),
    ]

    name = models.CharField(max_length=150, unique=True)
    slug = models.SlugField(max_length=170, unique=True, blank=True)
    description = models.CharField(max_length=1000, blank=True)
    code_prefix = models.CharField(
        max_length=10,
        blank=True,
        validators=[RegexValidator(r'^[A-Z0-9-]*$', 'Prefix may only contain uppercase letters, numbers and hyphens')]
    )

    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPES)
    discount_value = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0'))]
    )
    min_purchase_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    max_coupon_discount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    valid_from = models.DateTimeField()
    valid_until = models.DateTimeField()

    max_global_usage = models.PositiveIntegerField(null=True, blank=True, help_text="Empty = unlimited")
    current_global_usage = models.PositiveIntegerField(default=0)
    max_usage_per_user = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    is_unique_per_user = models.BooleanField(default=True)

    eligibility_criteria = models.JSONField(default=default_eligibility, validators=[validate_eligibility])
    applicable_categories = models.ManyToManyField('catalog.Category', blank=True, related_name='coupon_campaigns')
    applicable_variants = models.ManyToManyField('catalog.ProductVariant', blank=True, related_name='coupon_campaigns')

    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['is_active', 'valid_from', 'valid_until']),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        if self.discount_type == self.DISCOUNT_PERCENTAGE and not (0 < self.discount_value <= 100):
            raise ValidationError({'discount_value': 'Percentage discount must be between 0 and 100.'})
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValidationError({'valid_until': 'End date must be after start date.'})

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slugify(self, self.name, max_length=170)
        self.code_prefix = (self.code_prefix or '').upper()
        super().save(*args, **kwargs)

    @property
    def can_generate_more_codes(self):
        return self.max_global_usage is None or self.current_global_usage < self.max_global_usage

    @property
    def is_valid(self):
        now = timezone.now()
        return (
            self.is_active
            and self.valid_from <= now <= self.valid_until
            and self.can_generate_more_codes
        )

    @property
    def has_restrictions(self):
        return self.applicable_categories.exists() or self.applicable_variants.exists()

    def calculate_discount(self, total, check_minimum=True):
        total = Decimal(total)
        if check_minimum and total < self.min_purchase_amount:
            return Decimal('0.00')

        if self.discount_type == self.DISCOUNT_PERCENTAGE:
            discount = total * self.discount_value / 100
            if self.max_coupon_discount is not None:
                discount = min(discount, self.max_coupon_discount)
        elif self.discount_type == self.DISCOUNT_AMOUNT:
            discount = min(self.discount_value, total)
        else:
            discount = self.discount_value

        return money(discount)

    @property
    def usage_stats(self):
        if self.max_global_usage:
            percentage = round(self.current_global_usage / self.max_global_usage * 100, 2)
            remaining = max(self.max_global_usage - self.current_global_usage, 0)
        else:
            percentage = 0
            remaining = None
        return {
            'current_usage': self.current_global_usage,
            'max_usage': self.max_global_usage,
            'usage_percentage': percentage,
            'remaining': remaining,
        }


# ============================================================================
# USER COUPON
# ============================================================================

class UserCoupon(TimeStampedModel):
    """A redeemable code belonging to one user"""

    STATUS_INACTIVE = 'INACTIVE'
    STATUS_REDEEMED = 'REDEEMED'
    STATUS_EXPIRED = 'EXPIRED'
    STATUS_ACTIVE = 'ACTIVE'

    campaign = models.ForeignKey(CouponCampaign, on_delete=models.CASCADE, related_name='user_coupons')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='coupons')
    coupon_code = models.CharField(
        max_length=50,
        unique=True,
        validators=[MinLengthValidator(4), coupon_code_validator]
    )
    current_usage_count = models.PositiveIntegerField(default=0)
    expires_at = models.DateTimeField(blank=True)
    is_redeemed = models.BooleanField(default=False)
    redeemed_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'is_active']),
            models.Index(fields=['expires_at']),
        ]

    def __str__(self):
        return f"{self.coupon_code} ({self.user.email})"

    def save(self, *args, **kwargs):
        self.coupon_code = self.coupon_code.strip().upper()
        if not self.expires_at:
            self.expires_at = self.campaign.valid_until
        super().save(*args, **kwargs)

    @property
    def is_valid(self):
        return self.is_active and not self.is_redeemed and timezone.now() <= self.expires_at

    def can_be_used(self):
        """(ok, reason)"""
        if not self.is_active:
            return False, 'Coupon is inactive'
        if self.is_redeemed:
            return False, 'Coupon has already been redeemed'
        if timezone.now() > self.expires_at:
            return False, 'Coupon has expired'
        if self.current_usage_count >= self.campaign.max_usage_per_user:
            return False, 'Coupon usage limit reached'
        return True, None

    @property
    def status(self):
        if not self.is_active:
            return self.STATUS_INACTIVE
        if self.is_redeemed:
            return self.STATUS_REDEEMED
        if timezone.now() > self.expires_at:
            return self.STATUS_EXPIRED
        return self.STATUS_ACTIVE

    @transaction.atomic
    def increment_usage(self):
        self.current_usage_count += 1
        update_fields = ['current_usage_count', 'updated_at']
        if self.current_usage_count >= self.campaign.max_usage_per_user:
            self.is_redeemed = True
            self.redeemed_at = timezone.now()
            update_fields += ['is_redeemed', 'redeemed_at']
        self.save(update_fields=update_fields)

        CouponCampaign.objects.filter(pk=self.campaign_id).update(
            current_global_usage=F('current_global_usage') + 1
        )
        self.campaign.refresh_from_db(fields=['current_global_usage'])

    @transaction.atomic
    def reverse_usage(self):
        self.current_usage_count = max(self.current_usage_count - 1, 0)
        self.is_redeemed = False
        self.redeemed_at = None
        self.save(update_fields=['current_usage_count', 'is_redeemed', 'redeemed_at', 'updated_at'])

        CouponCampaign.objects.filter(pk=self.campaign_id, current_global_usage__gt=0).update(
            current_global_usage=F('current_global_usage') - 1
        )
        self.campaign.refresh_from_db(fields=['current_global_usage'])
