"""
Payment Models - Saved payment methods
Card details are stored as display data only (last 4 digits, brand, expiry)
"""
from django.conf import settings
from django.db import models, transaction

from core.models import TimeStampedModel


class PaymentMethod(TimeStampedModel):

    TYPE_CREDIT_CARD = 'CREDIT_CARD'
    TYPE_DEBIT_CARD = 'DEBIT_CARD'
    TYPE_UPI = 'UPI'
    TYPE_WALLET = 'WALLET'
    TYPE_NETBANKING = 'NETBANKING'
    TYPE_OTHER = 'OTHER'
    METHOD_TYPES = [
        (TYPE_CREDIT_CARD, 'Credit Card'),
        (TYPE_DEBIT_CARD, 'Debit Card'),
        (TYPE_UPI, 'UPI'),
        (TYPE_WALLET, 'Wallet'),
        (TYPE_NETBANKING, 'Net Banking'),
        (TYPE_OTHER, 'Other'),
    ]
    CARD_TYPES = (TYPE_CREDIT_CARD, TYPE_DEBIT_CARD)

    # details key that identifies a method of each type (duplicate detection)
    IDENTITY_KEYS = {
        TYPE_CREDIT_CARD: ('card_last4', 'card_brand', 'expiry_month', 'expiry_year'),
        TYPE_DEBIT_CARD: ('card_last4', 'card_brand', 'expiry_month', 'expiry_year'),
        TYPE_UPI: ('upi_id',),
        TYPE_WALLET: ('wallet_provider',),
        TYPE_NETBANKING: ('bank_name',),
    }

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='payment_methods')
    method_type = models.CharField(max_length=20, choices=METHOD_TYPES)
    alias = models.CharField(max_length=50, blank=True)
    is_default = models.BooleanField(default=False)
    details = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['-is_default', '-created_at']
        indexes = [
            models.Index(fields=['user', 'is_active']),
        ]

    def __str__(self):
        return f"{self.alias or self.get_method_type_display()} ({self.user.email})"

    def identity(self, details=None):
        details = self.details if details is None else details
        keys = self.IDENTITY_KEYS.get(self.method_type, ())
        return tuple(str(details.get(key, '')).lower() for key in keys)

    def save(self, *args, **kwargs):
        with transaction.atomic():
            siblings = PaymentMethod.objects.filter(user=self.user, is_active=True).exclude(pk=self.pk)
            if self.is_active and not siblings.filter(is_default=True).exists():
                self.is_default = True
            if self.is_default:
                siblings.filter(is_default=True).update(is_default=False)
            super().save(*args, **kwargs)

    def soft_delete(self):
        """Deactivate; the newest remaining method becomes default"""
        with transaction.atomic():
            was_default = self.is_default
            self.is_active = False
            self.is_default = False
            super().save(update_fields=['is_active', 'is_default', 'updated_at'])
            if was_default:
                replacement = (
                    PaymentMethod.objects.filter(user=self.user, is_active=True)
                    .order_by('-created_at')
                    .first()
                )
                if replacement:
                    PaymentMethod.objects.filter(pk=replacement.pk).update(is_default=True)
