"""
Notification Models - in-app notifications for users and admins
"""
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.models import TimeStampedModel


class NotificationQuerySet(models.QuerySet):

    def live(self):
        """Active, not deleted, not expired and already due"""
        now = timezone.now()
        return self.filter(
            is_active=True,
            deleted_at__isnull=True,
        ).filter(
            Q(expires_at__isnull=True) | Q(expires_at__gt=now)
        ).filter(
            Q(send_at__isnull=True) | Q(send_at__lte=now)
        )

    def visible_to(self, user):
        return self.live().filter(
            Q(recipient_user=user) |
            Q(is_broadcast=True, target_type__in=[Notification.TARGET_USER, Notification.TARGET_BOTH])
        )


class Notification(TimeStampedModel):

    NOTIFICATION_TYPES = [
        ('INFO', 'Info'),
        ('SUCCESS', 'Success'),
        ('WARNING', 'Warning'),
        ('ERROR', 'Error'),
        ('ORDER_UPDATE', 'Order Update'),
        ('PAYMENT_SUCCESS', 'Payment Success'),
        ('PAYMENT_FAILED', 'Payment Failed'),
        ('SHIPPING_UPDATE', 'Shipping Update'),
        ('DELIVERY_CONFIRMATION', 'Delivery Confirmation'),
        ('PROMOTION', 'Promotion'),
        ('SYSTEM_MAINTENANCE', 'System Maintenance'),
        ('SECURITY_ALERT', 'Security Alert'),
        ('ADMIN_ALERT', 'Admin Alert'),
        ('USER_ACTIVITY', 'User Activity'),
        ('INVENTORY_ALERT', 'Inventory Alert'),
    ]

    TARGET_USER = 'USER'
    TARGET_ADMIN = 'ADMIN'
    TARGET_BOTH = 'BOTH'
    TARGET_CHOICES = [
        (TARGET_USER, 'User'),
        (TARGET_ADMIN, 'Admin'),
        (TARGET_BOTH, 'Both'),
    ]

    PRIORITY_CHOICES = [
        ('LOW', 'Low'),
        ('MEDIUM', 'Medium'),
        ('HIGH', 'High'),
        ('URGENT', 'Urgent'),
    ]

    STATUS_PENDING = 'PENDING'
    STATUS_SENT = 'SENT'
    STATUS_DELIVERED = 'DELIVERED'
    STATUS_READ = 'READ'
    STATUS_FAILED = 'FAILED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SENT, 'Sent'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_READ, 'Read'),
        (STATUS_FAILED, 'Failed'),
    ]

    ACTION_NONE = 'NONE'
    ACTION_CHOICES = [
        (ACTION_NONE, 'None'),
        ('NAVIGATE', 'Navigate'),
        ('EXTERNAL_LINK', 'External Link'),
        ('MODAL', 'Modal'),
        ('API_CALL', 'API Call'),
    ]

    ENTITY_CHOICES = [
        ('ORDER', 'Order'),
        ('PAYMENT', 'Payment'),
        ('USER', 'User'),
        ('PRODUCT', 'Product'),
        ('COUPON', 'Coupon'),
        ('REVIEW', 'Review'),
        ('CART', 'Cart'),
    ]

    CHANNEL_IN_APP = 'IN_APP'
    CHANNEL_EMAIL = 'EMAIL'
    CHANNELS = [CHANNEL_IN_APP, CHANNEL_EMAIL, 'SMS', 'PUSH']

    SENDER_SYSTEM = 'SYSTEM'
    SENDER_ADMIN = 'ADMIN'
    SENDER_CHOICES = [
        (SENDER_SYSTEM, 'System'),
        (SENDER_ADMIN, 'Admin'),
        ('USER', 'User'),
    ]

    title = models.CharField(max_length=200)
    message = models.TextField(max_length=1000)
    notification_type = models.CharField(max_length=30, choices=NOTIFICATION_TYPES, default='INFO')
    target_type = models.CharField(max_length=10, choices=TARGET_CHOICES, default=TARGET_USER)

    recipient_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications'
    )
    recipient_admin = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='admin_notifications'
    )
    is_broadcast = models.BooleanField(default=False)

    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='MEDIUM')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)

    action_type = models.CharField(max_length=20, choices=ACTION_CHOICES, default=ACTION_NONE)
    action_url = models.CharField(max_length=500, blank=True)
    action_text = models.CharField(max_length=50, blank=True)

    related_entity_type = models.CharField(max_length=20, choices=ENTITY_CHOICES, blank=True)
    related_entity_id = models.CharField(max_length=50, blank=True)

    channels = models.JSONField(default=list, blank=True)
    sender_type = models.CharField(max_length=10, choices=SENDER_CHOICES, default=SENDER_SYSTEM)
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sent_notifications'
    )

    send_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    delivery_attempts = models.PositiveIntegerField(default=0)
    last_delivery_attempt = models.DateTimeField(null=True, blank=True)
    delivery_error = models.TextField(blank=True)

    is_active = models.BooleanField(default=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = NotificationQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['recipient_user', 'is_read']),
            models.Index(fields=['is_broadcast', 'target_type']),
            models.Index(fields=['notification_type']),
        ]

    def __str__(self):
        return f"{self.notification_type}: {self.title}"

    def clean(self):
        if (
            self.target_type == self.TARGET_USER
            and not self.is_broadcast
            and not self.recipient_user_id
        ):
            raise ValidationError({'recipient_user': 'A user notification needs a recipient unless it is a broadcast.'})
        if self.action_type != self.ACTION_NONE and not self.action_url:
            raise ValidationError({'action_url': 'Required when an action is set.'})
        for channel in self.channels or []:
            if channel not in self.CHANNELS:
                raise ValidationError({'channels': f"Unknown channel '{channel}'."})

    @property
    def is_expired(self):
        return bool(self.expires_at and self.expires_at <= timezone.now())

    def mark_read(self):
        if self.is_read:
            return
        self.is_read = True
        self.status = self.STATUS_READ
        self.read_at = timezone.now()
        self.save(update_fields=['is_read', 'status', 'read_at', 'updated_at'])

    def soft_delete(self):
        self.deleted_at = timezone.now()
        self.save(update_fields=['deleted_at', 'updated_at'])
