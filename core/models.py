"""
Core Models - Users, addresses and shared base classes
"""
from django.contrib.auth.models import AbstractUser
from django.core.validators import RegexValidator, MinValueValidator, MaxValueValidator
from django.db import models, transaction


pincode_validator = RegexValidator(
    regex=r'^\d{6}$',
    message='Postal code must be exactly 6 digits'
)

phone_validator = RegexValidator(
    regex=r'^\+?[0-9\s\-()]{7,20}$',
    message='Enter a valid phone number'
)


class TimeStampedModel(models.Model):
    """
    Abstract base model with creation/update timestamps
    All app models inherit from this
    """
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================================
# USER - Customers and administrators
# ============================================================================

class User(AbstractUser):
    """Store user, logs in with email"""

    ROLE_CUSTOMER = 'customer'
    ROLE_ADMIN = 'admin'
    ROLE_CHOICES = [
        (ROLE_CUSTOMER, 'Customer'),
        (ROLE_ADMIN, 'Admin'),
    ]

    USER_GROUP_CHOICES = [
        ('REGULAR', 'Regular'),
        ('PREMIUM', 'Premium'),
        ('VIP', 'VIP'),
    ]

    email = models.EmailField(unique=True)
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_CUSTOMER)
    phone = models.CharField(max_length=20, blank=True, validators=[phone_validator])
    user_group = models.CharField(
        max_length=10,
        choices=USER_GROUP_CHOICES,
        default='REGULAR',
        help_text="Used by SPECIFIC_USER_GROUP coupon eligibility"
    )
    referred_by = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='referrals'
    )

    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    class Meta:
        ordering = ['-date_joined']
        indexes = [
            models.Index(fields=['role', 'is_active']),
        ]

    def __str__(self):
        return f'{self.email} ({self.get_role_display()})'

    @property
    def is_admin(self):
        return self.role == self.ROLE_ADMIN or self.is_superuser

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


# ============================================================================
# ADDRESS - Saved delivery/billing addresses
# ============================================================================

class Address(TimeStampedModel):
    """User address book entry, soft deleted"""

    ADDRESS_TYPES = [
        ('HOME', 'Home'),
        ('OFFICE', 'Office'),
        ('OTHER', 'Other'),
        ('BILLING', 'Billing'),
        ('SHIPPING', 'Shipping'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='addresses')
    title = models.CharField(max_length=50, help_text="e.g. 'Home', 'Mom's place'")
    address_type = models.CharField(max_length=10, choices=ADDRESS_TYPES, default='HOME')
    full_name = models.CharField(max_length=100)
    phone = models.CharField(max_length=20, validators=[phone_validator])
    address_line1 = models.CharField(max_length=200)
    address_line2 = models.CharField(max_length=200, blank=True)
    landmark = models.CharField(max_length=100, blank=True)
    city = models.CharField(max_length=50)
    state = models.CharField(max_length=50)
    postal_code = models.CharField(max_length=6, validators=[pincode_validator])
    country = models.CharField(max_length=50, default='India')

    latitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[MinValueValidator(-90), MaxValueValidator(90)]
    )
    longitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[MinValueValidator(-180), MaxValueValidator(180)]
    )

    is_default = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    delivery_instructions = models.CharField(max_length=500, blank=True)
    usage_count = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['-is_default', '-updated_at']
        indexes = [
            models.Index(fields=['user', 'is_default']),
            models.Index(fields=['user', 'is_active']),
        ]
        verbose_name_plural = 'Addresses'

    def __str__(self):
        return f"{self.title} - {self.city} ({self.user.email})"

    def save(self, *args, **kwargs):
        # Only one default address per user
        with transaction.atomic():
            if self.is_default and self.is_active:
                Address.objects.filter(
                    user=self.user,
                    is_default=True
                ).exclude(pk=self.pk).update(is_default=False)
            super().save(*args, **kwargs)

    def soft_delete(self):
        """Deactivate and hand the default flag to the newest remaining address"""
        was_default = self.is_default
        self.is_active = False
        self.is_default = False
        self.save(update_fields=['is_active', 'is_default', 'updated_at'])

        if was_default:
            replacement = Address.objects.filter(
                user=self.user,
                is_active=True
            ).order_by('-created_at').first()
            if replacement:
                replacement.is_default = True
                replacement.save(update_fields=['is_default', 'updated_at'])

    def as_snapshot(self):
        """Flat dict copied onto orders"""
        return {
            'full_name': self.full_name,
            'address_line1': self.address_line1,
            'address_line2': self.address_line2,
            'city': self.city,
            'state': self.state,
            'pincode': self.postal_code,
            'country': self.country,
            'phone_number': self.phone,
        }
