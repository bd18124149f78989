"""
Mailing Models - admin-composed emails and reusable templates
Placeholders are written {{name}} in subjects and bodies
"""
import re

from django.conf import settings
from django.db import models
from django.db.models import F
from django.utils import timezone
from django.utils.html import strip_tags

from core.models import TimeStampedModel

PLACEHOLDER_PATTERN = re.compile(r'\{\{\s*(\w+)\s*\}\}')

EMAIL_CATEGORIES = [
    ('PROMOTIONAL', 'Promotional'),
    ('TRANSACTIONAL', 'Transactional'),
    ('NEWSLETTER', 'Newsletter'),
    ('WELCOME', 'Welcome'),
    ('ABANDONED_CART', 'Abandoned cart'),
    ('ORDER_CONFIRMATION', 'Order confirmation'),
    ('SHIPPING_UPDATE', 'Shipping update'),
    ('SYSTEM_NOTIFICATION', 'System notification'),
    ('SURVEY', 'Survey'),
    ('ANNOUNCEMENT', 'Announcement'),
    ('REMINDER', 'Reminder'),
    ('FEEDBACK_REQUEST', 'Feedback request'),
    ('CUSTOM', 'Custom'),
]


def fill_placeholders(text, values):
    """Replace {{name}} with values[name]; unknown placeholders are left as written"""
    def replace(match):
        value = values.get(match.group(1))
        return match.group(0) if value is None else str(value)
    return PLACEHOLDER_PATTERN.sub(replace, text or '')


# ============================================================================
# EMAIL TEMPLATE
# ============================================================================

class EmailTemplate(TimeStampedModel):
    """
    Reusable subject/body with declared variables.
    ``variables`` is a list of {name, description, type, required, default_value}
    """
    STATUS_ACTIVE = 'ACTIVE'
    STATUS_INACTIVE = 'INACTIVE'
    STATUS_ARCHIVED = 'ARCHIVED'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
        (STATUS_ARCHIVED, 'Archived'),
    ]

    VISIBILITY_PUBLIC = 'PUBLIC'
    VISIBILITY_PRIVATE = 'PRIVATE'
    VISIBILITY_SHARED = 'SHARED'
    VISIBILITY_CHOICES = [
        (VISIBILITY_PUBLIC, 'Public'),
        (VISIBILITY_PRIVATE, 'Private'),
        (VISIBILITY_SHARED, 'Shared'),
    ]

    VARIABLE_TYPES = ['text', 'number', 'date', 'url', 'email', 'boolean']

    name = models.CharField(max_length=100, unique=True)
    description = models.CharField(max_length=500, blank=True)
    subject_template = models.CharField(max_length=200)
    html_template = models.TextField()
    text_template = models.TextField(blank=True)
    category = models.CharField(max_length=30, choices=EMAIL_CATEGORIES, default='CUSTOM', db_index=True)
    variables = models.JSONField(default=list, blank=True)
    tags = models.JSONField(default=list, blank=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    visibility = models.CharField(max_length=10, choices=VISIBILITY_CHOICES, default=VISIBILITY_PUBLIC)

    version = models.PositiveIntegerField(default=1)
    parent_template = models.ForeignKey(
        'self', on_delete=models.SET_NULL, null=True, blank=True, related_name='clones'
    )

    total_uses = models.PositiveIntegerField(default=0)
    last_used_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='email_templates'
    )

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.text_template.strip():
            self.text_template = strip_tags(self.html_template).strip()
        super().save(*args, **kwargs)

    @property
    def defined_variables(self):
        return {var['name']: var for var in self.variables or [] if var.get('name')}

    def used_variables(self):
        found = set()
        for text in (self.subject_template, self.html_template, self.text_template):
            found.update(PLACEHOLDER_PATTERN.findall(text or ''))
        return found

    def validate_template(self):
        """{'is_valid', 'errors', 'warnings'} for the current content"""
        used = self.used_variables()
        defined = set(self.defined_variables)
        errors = [f"Variable '{name}' is used but not defined." for name in sorted(used - defined)]
        warnings = [f"Variable '{name}' is defined but never used." for name in sorted(defined - used)]
        html = self.html_template.lower()
        if '<html' not in html and '<body' not in html:
            warnings.append('HTML template has no <html> or <body> element.')
        return {'is_valid': not errors, 'errors': errors, 'warnings': warnings}

    def resolve_values(self, values):
        """Values merged over declared defaults; returns (resolved, missing_required)"""
        values = values or {}
        resolved = dict(values)
        missing = []
        for name, var in self.defined_variables.items():
            if values.get(name) not in (None, ''):
                continue
            default = var.get('default_value')
            if default not in (None, ''):
                resolved[name] = default
            elif var.get('required'):
                missing.append(name)
        return resolved, missing

    def render(self, values=None):
        resolved, _ = self.resolve_values(values)
        return {
            'subject': fill_placeholders(self.subject_template, resolved),
            'html': fill_placeholders(self.html_template, resolved),
            'text': fill_placeholders(self.text_template, resolved),
        }

    def record_use(self):
        EmailTemplate.objects.filter(pk=self.pk).update(total_uses=F('total_uses') + 1, last_used_at=timezone.now())


# ============================================================================
# EMAIL - one admin-composed message and its recipients
# ============================================================================

class Email(TimeStampedModel):

    RECIPIENTS_INDIVIDUAL = 'INDIVIDUAL'
    RECIPIENTS_BROADCAST = 'BROADCAST'
    RECIPIENT_TYPES = [
        (RECIPIENTS_INDIVIDUAL, 'Individual'),
        (RECIPIENTS_BROADCAST, 'Broadcast'),
    ]

    SEND_IMMEDIATE = 'IMMEDIATE'
    SEND_SCHEDULED = 'SCHEDULED'
    SEND_TYPES = [
        (SEND_IMMEDIATE, 'Immediate'),
        (SEND_SCHEDULED, 'Scheduled'),
    ]

    PRIORITY_CHOICES = [
        ('LOW', 'Low'),
        ('MEDIUM', 'Medium'),
        ('HIGH', 'High'),
        ('URGENT', 'Urgent'),
    ]

    STATUS_DRAFT = 'DRAFT'
    STATUS_SCHEDULED = 'SCHEDULED'
    STATUS_SENDING = 'SENDING'
    STATUS_SENT = 'SENT'
    STATUS_FAILED = 'FAILED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_SENDING, 'Sending'),
        (STATUS_SENT, 'Sent'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    EDITABLE_STATUSES = (STATUS_DRAFT, STATUS_SCHEDULED)

    subject = models.CharField(max_length=200)
    html_content = models.TextField(blank=True)
    text_content = models.TextField(blank=True)
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='sent_emails'
    )

    recipient_type = models.CharField(max_length=12, choices=RECIPIENT_TYPES, default=RECIPIENTS_INDIVIDUAL)
    # user_roles, registered_after, registered_before, last_login_after, has_orders
    broadcast_criteria = models.JSONField(default=dict, blank=True)

    template = models.ForeignKey(
        EmailTemplate, on_delete=models.SET_NULL, null=True, blank=True, related_name='emails'
    )
    template_variables = models.JSONField(default=dict, blank=True)

    email_type = models.CharField(max_length=30, choices=EMAIL_CATEGORIES, default='CUSTOM', db_index=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='MEDIUM')
    allow_unsubscribe = models.BooleanField(default=True)

    send_type = models.CharField(max_length=10, choices=SEND_TYPES, default=SEND_IMMEDIATE)
    scheduled_at = models.DateTimeField(null=True, blank=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'scheduled_at']),
        ]

    def __str__(self):
        return f"{self.subject} ({self.status})"

    @property
    def can_edit(self):
        return self.status in self.EDITABLE_STATUSES

    @property
    def can_send(self):
        if not self.can_edit:
            return False
        if self.recipient_type == self.RECIPIENTS_BROADCAST:
            return True
        return self.recipients.exists()

    def stats(self):
        counts = {value: 0 for value, _ in EmailRecipient.STATUS_CHOICES}
        for row in self.recipients.values('status').annotate(count=models.Count('id')):
            counts[row['status']] = row['count']
        total = sum(counts.values())
        delivered = counts[EmailRecipient.STATUS_SENT]
        return {
            'total_recipients': total,
            'sent_count': delivered,
            'failed_count': counts[EmailRecipient.STATUS_FAILED],
            'pending_count': counts[EmailRecipient.STATUS_PENDING],
            'delivery_rate': round(delivered / total * 100, 2) if total else 0,
        }


class EmailRecipient(TimeStampedModel):
    STATUS_PENDING = 'PENDING'
    STATUS_SENT = 'SENT'
    STATUS_FAILED = 'FAILED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SENT, 'Sent'),
        (STATUS_FAILED, 'Failed'),
    ]

    email = models.ForeignKey(Email, on_delete=models.CASCADE, related_name='recipients')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='received_emails'
    )
    address = models.EmailField()
    name = models.CharField(max_length=150, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    sent_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.CharField(max_length=500, blank=True)

    class Meta:
        ordering = ['address']
        constraints = [
            models.UniqueConstraint(fields=['email', 'address'], name='unique_recipient_per_email')
        ]

    def __str__(self):
        return f"{self.address} ({self.status})"
