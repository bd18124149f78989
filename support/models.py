"""
Support Models - customer tickets and their message threads
"""
from datetime import timedelta

from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone

from core.models import TimeStampedModel


# (response hours, resolution hours) by priority
SLA_HOURS = {
    'URGENT': (1, 4),
    'HIGH': (4, 24),
    'MEDIUM': (24, 72),
    'LOW': (24, 72),
}


def _minutes_since(start, end):
    return int((end - start).total_seconds() // 60)


class SupportTicket(TimeStampedModel):

    CATEGORY_CHOICES = [
        ('ORDER_ISSUE', 'Order Issue'),
        ('PAYMENT_PROBLEM', 'Payment Problem'),
        ('PRODUCT_INQUIRY', 'Product Inquiry'),
        ('SHIPPING_DELIVERY', 'Shipping & Delivery'),
        ('RETURNS_REFUNDS', 'Returns & Refunds'),
        ('ACCOUNT_ACCESS', 'Account Access'),
        ('TECHNICAL_SUPPORT', 'Technical Support'),
        ('BILLING_INQUIRY', 'Billing Inquiry'),
        ('PRODUCT_DEFECT', 'Product Defect'),
        ('WEBSITE_BUG', 'Website Bug'),
        ('FEATURE_REQUEST', 'Feature Request'),
        ('COMPLAINT', 'Complaint'),
        ('OTHER', 'Other'),
    ]

    PRIORITY_LOW = 'LOW'
    PRIORITY_MEDIUM = 'MEDIUM'
    PRIORITY_HIGH = 'HIGH'
    PRIORITY_URGENT = 'URGENT'
    PRIORITIES = [PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH, PRIORITY_URGENT]
    PRIORITY_CHOICES = [(p, p.title()) for p in PRIORITIES]

    STATUS_OPEN = 'OPEN'
    STATUS_IN_PROGRESS = 'IN_PROGRESS'
    STATUS_PENDING_USER = 'PENDING_USER'
    STATUS_RESOLVED = 'RESOLVED'
    STATUS_CLOSED = 'CLOSED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_OPEN, 'Open'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_PENDING_USER, 'Pending User'),
        (STATUS_RESOLVED, 'Resolved'),
        (STATUS_CLOSED, 'Closed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    FINISHED_STATUSES = (STATUS_RESOLVED, STATUS_CLOSED, STATUS_CANCELLED)

    RESOLUTION_CHOICES = [
        ('SOLVED', 'Solved'),
        ('WORKAROUND', 'Workaround'),
        ('DUPLICATE', 'Duplicate'),
        ('INVALID', 'Invalid'),
        ('WONT_FIX', "Won't Fix"),
        ('USER_ERROR', 'User Error'),
    ]

    ticket_number = models.CharField(max_length=20, unique=True, editable=False)
    subject = models.CharField(max_length=200)
    description = models.TextField(max_length=5000)
    category = models.CharField(max_length=30, choices=CATEGORY_CHOICES)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default=PRIORITY_MEDIUM)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OPEN)

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='support_tickets')
    related_order = models.ForeignKey(
        'orders.Order', on_delete=models.SET_NULL, null=True, blank=True, related_name='support_tickets'
    )
    related_product = models.ForeignKey(
        'catalog.Product', on_delete=models.SET_NULL, null=True, blank=True, related_name='support_tickets'
    )

    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_tickets'
    )
    assigned_at = models.DateTimeField(null=True, blank=True)

    # Resolution
    resolution_type = models.CharField(max_length=20, choices=RESOLUTION_CHOICES, blank=True)
    resolution_summary = models.TextField(max_length=2000, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    satisfaction_rating = models.PositiveSmallIntegerField(
        null=True, blank=True, validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    satisfaction_feedback = models.TextField(max_length=1000, blank=True)

    # SLA
    response_due = models.DateTimeField(null=True, blank=True)
    resolution_due = models.DateTimeField(null=True, blank=True)
    first_response_at = models.DateTimeField(null=True, blank=True)
    response_time_minutes = models.PositiveIntegerField(null=True, blank=True)
    resolution_time_minutes = models.PositiveIntegerField(null=True, blank=True)
    is_sla_breached = models.BooleanField(default=False)

    # Escalation
    is_escalated = models.BooleanField(default=False)
    escalated_at = models.DateTimeField(null=True, blank=True)
    escalated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='escalated_tickets'
    )
    escalation_reason = models.TextField(max_length=1000, blank=True)
    escalation_level = models.PositiveSmallIntegerField(default=0)

    tags = models.JSONField(default=list, blank=True)
    last_activity_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'status']),
            models.Index(fields=['assigned_to', 'status']),
            models.Index(fields=['status', 'priority']),
            models.Index(fields=['response_due', 'status']),
            models.Index(fields=['resolution_due', 'status']),
        ]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._loaded_status = self.status

    def __str__(self):
        return f"{self.ticket_number}: {self.subject}"

    @classmethod
    def next_ticket_number(cls, year=None):
        """TKT-YYYY-NNNNNN, sequential within the year"""
        year = year or timezone.now().year
        prefix = f"TKT-{year}-"
        last = (
            cls.objects.filter(ticket_number__startswith=prefix)
            .order_by('-ticket_number')
            .values_list('ticket_number', flat=True)
            .first()
        )
        sequence = int(last[len(prefix):]) + 1 if last else 1
        return f"{prefix}{sequence:06d}"

    def set_sla_targets(self, start=None):
        start = start or timezone.now()
        response_hours, resolution_hours = SLA_HOURS.get(self.priority, SLA_HOURS['MEDIUM'])
        self.response_due = start + timedelta(hours=response_hours)
        self.resolution_due = start + timedelta(hours=resolution_hours)

    def _apply_status_timestamps(self, now):
        created = self.created_at or now
        if self.status == self.STATUS_IN_PROGRESS and not self.first_response_at:
            self.first_response_at = now
            self.response_time_minutes = _minutes_since(created, now)
        if self.status in (self.STATUS_RESOLVED, self.STATUS_CLOSED) and not self.resolved_at:
            self.resolved_at = now
            self.resolution_time_minutes = _minutes_since(created, now)
        if self.status == self.STATUS_CLOSED:
            self.closed_at = now

    def save(self, *args, **kwargs):
        now = timezone.now()
        if self._state.adding:
            if not self.ticket_number:
                self.ticket_number = self.next_ticket_number(now.year)
            if not self.response_due:
                self.set_sla_targets(now)
        if self._state.adding or self.status != self._loaded_status:
            self._apply_status_timestamps(now)

        self.last_activity_at = now
        if 'update_fields' in kwargs and kwargs['update_fields'] is not None:
            kwargs['update_fields'] = list(set(kwargs['update_fields']) | {
                'last_activity_at', 'updated_at', 'first_response_at', 'response_time_minutes',
                'resolved_at', 'resolution_time_minutes', 'closed_at'
            })
        super().save(*args, **kwargs)
        self._loaded_status = self.status

    @property
    def is_open(self):
        return self.status not in self.FINISHED_STATUSES

    @property
    def is_overdue(self):
        if not self.is_open:
            return False
        now = timezone.now()
        return bool(
            (self.response_due and not self.first_response_at and now > self.response_due)
            or (self.resolution_due and now > self.resolution_due)
        )

    @property
    def age_in_hours(self):
        return int((timezone.now() - self.created_at).total_seconds() // 3600)

    def bump_priority(self):
        index = self.PRIORITIES.index(self.priority)
        if index < len(self.PRIORITIES) - 1:
            self.priority = self.PRIORITIES[index + 1]


class TicketMessage(TimeStampedModel):

    ROLE_USER = 'user'
    ROLE_ADMIN = 'admin'
    ROLE_SYSTEM = 'system'
    ROLE_CHOICES = [
        (ROLE_USER, 'User'),
        (ROLE_ADMIN, 'Admin'),
        (ROLE_SYSTEM, 'System'),
    ]

    TYPE_MESSAGE = 'MESSAGE'
    TYPE_STATUS_UPDATE = 'STATUS_UPDATE'
    TYPE_ASSIGNMENT = 'ASSIGNMENT'
    TYPE_INTERNAL_NOTE = 'INTERNAL_NOTE'
    TYPE_RESOLUTION = 'RESOLUTION'
    TYPE_CHOICES = [
        (TYPE_MESSAGE, 'Message'),
        (TYPE_STATUS_UPDATE, 'Status Update'),
        (TYPE_ASSIGNMENT, 'Assignment'),
        (TYPE_INTERNAL_NOTE, 'Internal Note'),
        (TYPE_RESOLUTION, 'Resolution'),
    ]

    ticket = models.ForeignKey(SupportTicket, on_delete=models.CASCADE, related_name='messages')
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='ticket_messages'
    )
    sender_role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_USER)
    message = models.TextField(max_length=5000)
    message_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_MESSAGE)
    is_internal = models.BooleanField(default=False)
    attachments = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ['created_at']

    def __str__(self):
        return f"{self.ticket.ticket_number} [{self.message_type}]"
