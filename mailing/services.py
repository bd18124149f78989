"""
Admin email delivery
Each recipient is mailed separately so one bad address never blocks the rest
"""
import logging
from datetime import timedelta
from urllib.parse import urlencode

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from django.utils.html import strip_tags

from core.exceptions import BadRequest, Conflict
from .models import Email, EmailRecipient, EmailTemplate, fill_placeholders

logger = logging.getLogger(__name__)
User = get_user_model()

# Filled in for every recipient at send time
RECIPIENT_VARIABLES = ('name', 'email')


# ============================================================================
# RECIPIENTS
# ============================================================================

def resolve_broadcast_users(criteria):
    """Active users matching every criterion that is set"""
    criteria = criteria or {}
    queryset = User.objects.filter(is_active=True).exclude(email='')

    if criteria.get('user_roles'):
        queryset = queryset.filter(role__in=criteria['user_roles'])
    if criteria.get('registered_after'):
        queryset = queryset.filter(date_joined__gte=criteria['registered_after'])
    if criteria.get('registered_before'):
        queryset = queryset.filter(date_joined__lte=criteria['registered_before'])
    if criteria.get('last_login_after'):
        queryset = queryset.filter(last_login__gte=criteria['last_login_after'])
    if criteria.get('has_orders') is True:
        queryset = queryset.filter(orders__isnull=False)
    elif criteria.get('has_orders') is False:
        queryset = queryset.filter(orders__isnull=True)

    return queryset.distinct().order_by('pk')


def set_individual_recipients(email, user_ids=(), addresses=()):
    """Replace the recipient list with the given users and raw addresses"""
    users = list(User.objects.filter(pk__in=user_ids, is_active=True))
    missing = sorted(set(user_ids) - {user.pk for user in users})

    rows = {}
    for user in users:
        rows[user.email.lower()] = EmailRecipient(email=email, user=user, address=user.email, name=user.full_name)
    for address in addresses:
        rows.setdefault(address.lower(), EmailRecipient(email=email, address=address))

    email.recipients.all().delete()
    EmailRecipient.objects.bulk_create(rows.values())
    return missing


def _materialize_broadcast(email):
    users = resolve_broadcast_users(email.broadcast_criteria)
    email.recipients.all().delete()
    EmailRecipient.objects.bulk_create([
        EmailRecipient(email=email, user=user, address=user.email, name=user.full_name)
        for user in users
    ])


# ============================================================================
# RENDERING
# ============================================================================

def unsubscribe_url(email, address):
    return f"{settings.FRONTEND_URL}/unsubscribe?{urlencode({'email': address, 'id': email.pk})}"


def render_for_recipient(email, recipient):
    """(subject, html, text) personalised for one recipient"""
    values = {'name': recipient.name or recipient.address.split('@')[0], 'email': recipient.address}

    if email.template_id:
        rendered = email.template.render({**values, **(email.template_variables or {})})
        subject, html, text = rendered['subject'], rendered['html'], rendered['text']
    else:
        subject = fill_placeholders(email.subject, values)
        html = fill_placeholders(email.html_content, values)
        text = fill_placeholders(email.text_content, values) or strip_tags(html).strip()

    if email.allow_unsubscribe:
        link = unsubscribe_url(email, recipient.address)
        html += f'<p style="font-size:12px;color:#888"><a href="{link}">Unsubscribe</a></p>'
        text += f"\n\nUnsubscribe: {link}"
    return subject, html, text


def check_template_values(template, values):
    """Required variables must have a value, except the per-recipient name and email"""
    _, missing = template.resolve_values(values)
    missing = [name for name in missing if name not in RECIPIENT_VARIABLES]
    if missing:
        raise BadRequest(
            'Required template variables are missing.',
            code='missing_variables',
            extra={'missing_variables': missing},
        )


# ============================================================================
# SENDING
# ============================================================================

def send_email(email):
    """
    Deliver to every pending recipient.
    The email ends FAILED only when no recipient could be mailed.
    """
    with transaction.atomic():
        email = Email.objects.select_for_update().get(pk=email.pk)
        if not email.can_send:
            raise Conflict(
                'Email cannot be sent in its current state.',
                code='cannot_send',
                extra={'current_status': email.status},
            )
        if email.recipient_type == Email.RECIPIENTS_BROADCAST:
            _materialize_broadcast(email)
            if not email.recipients.exists():
                raise BadRequest('No users match the broadcast criteria.', code='no_recipients')
        if email.template_id:
            check_template_values(email.template, email.template_variables)
        email.status = Email.STATUS_SENDING
        email.sent_at = timezone.now()
        email.save(update_fields=['status', 'sent_at', 'updated_at'])

    recipients = list(email.recipients.filter(status=EmailRecipient.STATUS_PENDING))
    sent = 0
    for recipient in recipients:
        subject, html, text = render_for_recipient(email, recipient)
        try:
            send_mail(subject, text, settings.DEFAULT_FROM_EMAIL, [recipient.address], html_message=html)
        except Exception as e:
            logger.error(f"Email {email.pk} to {recipient.address} failed: {str(e)}")
            recipient.status = EmailRecipient.STATUS_FAILED
            recipient.failure_reason = str(e)[:500]
        else:
            recipient.status = EmailRecipient.STATUS_SENT
            recipient.sent_at = timezone.now()
            sent += 1
        recipient.save(update_fields=['status', 'sent_at', 'failure_reason', 'updated_at'])

    email.status = Email.STATUS_SENT if sent else Email.STATUS_FAILED
    email.completed_at = timezone.now()
    email.save(update_fields=['status', 'completed_at', 'updated_at'])
    if email.template_id:
        email.template.record_use()

    logger.info(f"Email {email.pk} '{email.subject}': {sent}/{len(recipients)} delivered")
    return email


def dispatch(email):
    """Send now, or park as SCHEDULED until send_due_emails picks it up"""
    if email.send_type == Email.SEND_SCHEDULED and email.scheduled_at and email.scheduled_at > timezone.now():
        if not email.can_send:
            raise Conflict('Email cannot be sent in its current state.', code='cannot_send',
                           extra={'current_status': email.status})
        email.status = Email.STATUS_SCHEDULED
        email.save(update_fields=['status', 'updated_at'])
        return email
    return send_email(email)


def send_due_emails(now=None):
    """Send every SCHEDULED email whose time has come; returns how many were processed"""
    now = now or timezone.now()
    due = list(Email.objects.filter(status=Email.STATUS_SCHEDULED, scheduled_at__lte=now))
    for email in due:
        send_email(email)
    return len(due)


# ============================================================================
# ANALYTICS
# ============================================================================

def email_analytics(days=30):
    since = timezone.now() - timedelta(days=days)
    emails = Email.objects.filter(created_at__gte=since)
    outgoing = emails.exclude(status__in=[Email.STATUS_DRAFT, Email.STATUS_CANCELLED])
    recipients = EmailRecipient.objects.filter(email__in=outgoing)

    recipient_counts = recipients.aggregate(
        total=Count('id'),
        sent=Count('id', filter=Q(status=EmailRecipient.STATUS_SENT)),
        failed=Count('id', filter=Q(status=EmailRecipient.STATUS_FAILED)),
    )
    total = recipient_counts['total']

    top = (
        outgoing.filter(status=Email.STATUS_SENT)
        .annotate(delivered=Count('recipients', filter=Q(recipients__status=EmailRecipient.STATUS_SENT)))
        .order_by('-delivered', '-created_at')[:5]
    )
    return {
        'period_days': days,
        'total_emails': emails.count(),
        'by_status': {row['status']: row['count'] for row in emails.values('status').annotate(count=Count('id'))},
        'by_type': {
            row['email_type']: row['count']
            for row in outgoing.values('email_type').annotate(count=Count('id'))
        },
        'recipients': {
            **recipient_counts,
            'delivery_rate': round(recipient_counts['sent'] / total * 100, 2) if total else 0,
        },
        'top_emails': [
            {'id': email.pk, 'subject': email.subject, 'delivered': email.delivered}
            for email in top
        ],
    }


def template_analytics():
    templates = EmailTemplate.objects.all()
    return {
        'total': templates.count(),
        'by_status': {row['status']: row['count'] for row in templates.values('status').annotate(count=Count('id'))},
        'by_category': {
            row['category']: row['count']
            for row in templates.values('category').annotate(count=Count('id'))
        },
        'most_used': list(
            templates.filter(total_uses__gt=0).order_by('-total_uses').values('id', 'name', 'total_uses')[:5]
        ),
    }


def clone_template(template, user, name=None, description=None):
    name = name or f"{template.name} (Copy)"
    if EmailTemplate.objects.filter(name=name).exists():
        raise Conflict('A template with this name already exists.', code='duplicate_name')
    return EmailTemplate.objects.create(
        name=name,
        description=description or f"Cloned from {template.name}",
        subject_template=template.subject_template,
        html_template=template.html_template,
        text_template=template.text_template,
        category=template.category,
        variables=template.variables,
        tags=list(template.tags or []) + ['cloned'],
        visibility=EmailTemplate.VISIBILITY_PRIVATE,
        version=template.version + 1,
        parent_template=template,
        created_by=user,
    )
