"""
Wallet Models - Store credit balance and its transaction ledger
Balances change only through wallets.services, inside a locked transaction
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from core.models import TimeStampedModel


CURRENCY_CHOICES = [
    ('INR', 'Indian Rupee'),
    ('USD', 'US Dollar'),
    ('EUR', 'Euro'),
    ('GBP', 'British Pound'),
    ('AUD', 'Australian Dollar'),
    ('CAD', 'Canadian Dollar'),
]


class Wallet(TimeStampedModel):

    STATUS_ACTIVE = 'ACTIVE'
    STATUS_BLOCKED = 'BLOCKED'
    STATUS_INACTIVE = 'INACTIVE'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_BLOCKED, 'Blocked'),
        (STATUS_INACTIVE, 'Inactive'),
    ]

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='wallet')
    balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0'))]
    )
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default='INR')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    last_transaction_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=models.Q(balance__gte=0), name='wallet_balance_non_negative'),
        ]

    def __str__(self):
        return f"{self.user.email}: {self.balance} {self.currency}"

    @property
    def can_transact(self):
        return self.status == self.STATUS_ACTIVE


class WalletTransaction(TimeStampedModel):

    TYPE_CREDIT = 'CREDIT'
    TYPE_DEBIT = 'DEBIT'
    TYPE_CHOICES = [
        (TYPE_CREDIT, 'Credit'),
        (TYPE_DEBIT, 'Debit'),
    ]

    REF_ORDER = 'ORDER'
    REF_REFUND = 'REFUND'
    REF_PAYMENT_GATEWAY = 'PAYMENT_GATEWAY'
    REF_ADMIN_ADJUSTMENT = 'ADMIN_ADJUSTMENT'
    REF_WITHDRAWAL = 'WITHDRAWAL'
    REFERENCE_CHOICES = [
        (REF_ORDER, 'Order'),
        (REF_REFUND, 'Refund'),
        (REF_PAYMENT_GATEWAY, 'Payment Gateway'),
        (REF_ADMIN_ADJUSTMENT, 'Admin Adjustment'),
        (REF_WITHDRAWAL, 'Withdrawal'),
    ]

    STATUS_PENDING = 'PENDING'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_FAILED = 'FAILED'
    STATUS_ROLLED_BACK = 'ROLLED_BACK'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_ROLLED_BACK, 'Rolled Back'),
    ]
    FINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED, STATUS_ROLLED_BACK)

    ACTOR_USER = 'USER'
    ACTOR_ADMIN = 'ADMIN'
    ACTOR_SYSTEM = 'SYSTEM'
    ACTOR_CHOICES = [
        (ACTOR_USER, 'User'),
        (ACTOR_ADMIN, 'Admin'),
        (ACTOR_SYSTEM, 'System'),
    ]

    wallet = models.ForeignKey(Wallet, on_delete=models.PROTECT, related_name='transactions')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='wallet_transactions')
    transaction_type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default='INR')
    description = models.CharField(max_length=250, blank=True)

    reference_type = models.CharField(max_length=20, choices=REFERENCE_CHOICES)
    reference_id = models.CharField(max_length=100, blank=True)
    balance_after_transaction = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    initiated_by_actor = models.CharField(max_length=10, choices=ACTOR_CHOICES, default=ACTOR_USER)
    initiated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='initiated_wallet_transactions'
    )
    failure_reason = models.CharField(max_length=500, blank=True)

    payment_method = models.ForeignKey(
        'payments.PaymentMethod',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='wallet_transactions'
    )
    gateway_transaction_id = models.CharField(max_length=100, unique=True, null=True, blank=True)
    gateway_response = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', '-created_at']),
            models.Index(fields=['user', 'transaction_type', 'status']),
            models.Index(fields=['reference_type', 'reference_id']),
        ]

    def __str__(self):
        return f"{self.transaction_type} {self.amount} {self.currency} ({self.status})"
