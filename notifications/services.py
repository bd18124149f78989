"""
Notification delivery
In-app rows are always written; the EMAIL channel goes through send_mail
"""
import logging

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from .models import Notification

logger = logging.getLogger(__name__)


def deliver(notification, email_to=None):
    """
    Mark a notification sent, mailing it first when EMAIL is a channel.
    A mail failure marks the row FAILED with the error but never raises.
    """
    notification.delivery_attempts += 1
    notification.last_delivery_attempt = timezone.now()

    if Notification.CHANNEL_EMAIL in (notification.channels or []) and email_to:
        try:
            send_mail(
                notification.title,
                notification.message,
                settings.DEFAULT_FROM_EMAIL,
                [email_to],
            )
        except Exception as e:
            logger.error(f"Email delivery failed for notification {notification.pk}: {str(e)}")
            notification.status = Notification.STATUS_FAILED
            notification.delivery_error = str(e)
            notification.save(update_fields=[
                'delivery_attempts', 'last_delivery_attempt', 'status', 'delivery_error', 'updated_at'
            ])
            return notification

    notification.status = Notification.STATUS_SENT
    notification.save(update_fields=['delivery_attempts', 'last_delivery_attempt', 'status', 'updated_at'])
    return notification


def notify_user(user, title, message, notification_type='INFO', related_entity_type=None,
                related_entity_id=None, priority='MEDIUM', channels=None,
                action_type=Notification.ACTION_NONE, action_url='', sender=None):
    """Create and deliver a notification for one user"""
    notification = Notification.objects.create(
        title=title[:200],
        message=message[:1000],
        notification_type=notification_type,
        target_type=Notification.TARGET_USER,
        recipient_user=user,
        priority=priority,
        related_entity_type=related_entity_type or '',
        related_entity_id=str(related_entity_id) if related_entity_id is not None else '',
        channels=channels or [Notification.CHANNEL_IN_APP],
        action_type=action_type,
        action_url=action_url,
        sender_type=Notification.SENDER_ADMIN if sender else Notification.SENDER_SYSTEM,
        sender=sender,
    )
    logger.info(f"Notification {notification.pk} ({notification_type}) for {user.email}")
    return deliver(notification, email_to=user.email)


def broadcast(title, message, sender=None, **fields):
    """One notification visible to every user targeted by ``target_type``"""
    fields.setdefault('target_type', Notification.TARGET_USER)
    notification = Notification.objects.create(
        title=title,
        message=message,
        is_broadcast=True,
        sender_type=Notification.SENDER_ADMIN if sender else Notification.SENDER_SYSTEM,
        sender=sender,
        status=Notification.STATUS_SENT,
        **fields,
    )
    logger.info(f"Broadcast notification {notification.pk} sent to {notification.target_type}")
    return notification


def send_to_users(users, title, message, sender=None, **fields):
    """One notification per user"""
    fields.pop('target_type', None)
    fields.pop('is_broadcast', None)
    return [
        notify_user(user, title, message, sender=sender, **fields)
        for user in users
    ]


def mark_all_read(user):
    """Marks the user's own notifications; broadcasts are left alone"""
    now = timezone.now()
    return (
        Notification.objects.live()
        .filter(recipient_user=user, is_read=False)
        .update(is_read=True, status=Notification.STATUS_READ, read_at=now, updated_at=now)
    )
