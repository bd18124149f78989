"""
Support ticket workflow
Every state change writes a TicketMessage so the thread is the ticket's history
"""
import logging

from django.db import transaction
from django.db.models import Avg, Count, Q
from django.utils import timezone

from core.audit import log_admin_action, log_user_activity
from core.exceptions import BadRequest
from notifications.services import notify_user
from .models import SupportTicket, TicketMessage

logger = logging.getLogger(__name__)


def _role_of(user):
    return TicketMessage.ROLE_ADMIN if user.is_admin else TicketMessage.ROLE_USER


def add_message(ticket, sender, message, message_type=TicketMessage.TYPE_MESSAGE,
                is_internal=False, attachments=None, sender_role=None):
    """Append to the thread and touch the ticket"""
    if ticket.status in (SupportTicket.STATUS_CLOSED, SupportTicket.STATUS_CANCELLED) \
            and message_type == TicketMessage.TYPE_MESSAGE:
        raise BadRequest(f'Cannot add messages to a {ticket.status.lower()} ticket.')

    entry = TicketMessage.objects.create(
        ticket=ticket,
        sender=sender,
        sender_role=sender_role or (_role_of(sender) if sender else TicketMessage.ROLE_SYSTEM),
        message=message,
        message_type=message_type,
        is_internal=is_internal,
        attachments=attachments or [],
    )
    return entry


@transaction.atomic
def create_ticket(user, **data):
    ticket = SupportTicket.objects.create(user=user, **data)
    log_user_activity(user, 'CREATE_TICKET', 'SupportTicket', ticket.pk,
                      {'ticket_number': ticket.ticket_number, 'priority': ticket.priority})
    logger.info(f"Ticket {ticket.ticket_number} opened by {user.email}")
    return ticket


@transaction.atomic
def user_reply(ticket, user, message, attachments=None):
    entry = add_message(ticket, user, message, attachments=attachments)
    if ticket.status == SupportTicket.STATUS_PENDING_USER:
        ticket.status = SupportTicket.STATUS_IN_PROGRESS
    ticket.save()
    return entry


@transaction.atomic
def admin_reply(ticket, admin, message, attachments=None):
    entry = add_message(ticket, admin, message, attachments=attachments)
    ticket.save()
    notify_user(
        ticket.user,
        f"New reply on {ticket.ticket_number}",
        message[:200],
        notification_type='INFO',
    )
    return entry


@transaction.atomic
def assign(ticket, admin, assignee):
    if not assignee.is_admin:
        raise BadRequest('Tickets can only be assigned to admin users.')

    ticket.assigned_to = assignee
    ticket.assigned_at = timezone.now()
    ticket.save()
    add_message(
        ticket, admin, f"Ticket assigned to {assignee.get_full_name() or assignee.email}",
        message_type=TicketMessage.TYPE_ASSIGNMENT, is_internal=True,
    )
    log_admin_action(admin, 'ASSIGN_TICKET', 'SupportTicket', ticket.pk, {'assigned_to': assignee.pk})
    return ticket


@transaction.atomic
def update_status(ticket, admin, new_status, note=''):
    old_status = ticket.status
    if new_status == old_status:
        raise BadRequest(f'Ticket is already {old_status}.')

    ticket.status = new_status
    ticket.save()

    text = f"Status changed from {old_status} to {new_status}"
    if note:
        text += f". Note: {note}"
    add_message(ticket, admin, text, message_type=TicketMessage.TYPE_STATUS_UPDATE)

    log_admin_action(admin, 'UPDATE_TICKET_STATUS', 'SupportTicket', ticket.pk,
                     {'from': old_status, 'to': new_status})
    notify_user(ticket.user, f"Ticket {ticket.ticket_number} updated", text, notification_type='INFO')
    return ticket


@transaction.atomic
def resolve(ticket, admin, resolution_type, summary):
    if ticket.status in (SupportTicket.STATUS_CLOSED, SupportTicket.STATUS_CANCELLED):
        raise BadRequest(f'Cannot resolve a {ticket.status.lower()} ticket.')

    ticket.status = SupportTicket.STATUS_RESOLVED
    ticket.resolution_type = resolution_type
    ticket.resolution_summary = summary
    ticket.save()
    add_message(ticket, admin, summary, message_type=TicketMessage.TYPE_RESOLUTION)

    log_admin_action(admin, 'RESOLVE_TICKET', 'SupportTicket', ticket.pk, {'resolution_type': resolution_type})
    notify_user(
        ticket.user,
        f"Ticket {ticket.ticket_number} resolved",
        summary[:1000],
        notification_type='SUCCESS',
    )
    return ticket


@transaction.atomic
def escalate(ticket, admin, reason):
    if not reason or not reason.strip():
        raise BadRequest('An escalation reason is required.')
    if not ticket.is_open:
        raise BadRequest(f'Cannot escalate a {ticket.status.lower()} ticket.')

    ticket.is_escalated = True
    ticket.escalated_at = timezone.now()
    ticket.escalated_by = admin
    ticket.escalation_reason = reason
    ticket.escalation_level += 1
    ticket.bump_priority()
    ticket.save()

    add_message(ticket, admin, f"Ticket escalated (level {ticket.escalation_level}): {reason}",
                message_type=TicketMessage.TYPE_INTERNAL_NOTE, is_internal=True)
    log_admin_action(admin, 'ESCALATE_TICKET', 'SupportTicket', ticket.pk,
                     {'level': ticket.escalation_level, 'priority': ticket.priority})
    return ticket


def add_internal_note(ticket, admin, note):
    entry = add_message(ticket, admin, note, message_type=TicketMessage.TYPE_INTERNAL_NOTE, is_internal=True)
    ticket.save()
    return entry


@transaction.atomic
def close(ticket, user):
    if ticket.status != SupportTicket.STATUS_RESOLVED:
        raise BadRequest('Only resolved tickets can be closed.')
    ticket.status = SupportTicket.STATUS_CLOSED
    ticket.save()
    add_message(ticket, user, 'Ticket closed by user', message_type=TicketMessage.TYPE_STATUS_UPDATE)
    log_user_activity(user, 'CLOSE_TICKET', 'SupportTicket', ticket.pk)
    return ticket


def rate(ticket, user, rating, feedback=''):
    if ticket.status not in (SupportTicket.STATUS_RESOLVED, SupportTicket.STATUS_CLOSED):
        raise BadRequest('Only resolved or closed tickets can be rated.')
    if not 1 <= rating <= 5:
        raise BadRequest('Rating must be between 1 and 5.')
    ticket.satisfaction_rating = rating
    ticket.satisfaction_feedback = feedback
    ticket.save()
    log_user_activity(user, 'RATE_TICKET', 'SupportTicket', ticket.pk, {'rating': rating})
    return ticket


@transaction.atomic
def cancel(ticket, user):
    if ticket.status != SupportTicket.STATUS_OPEN:
        raise BadRequest('Only open tickets can be cancelled.')
    ticket.status = SupportTicket.STATUS_CANCELLED
    ticket.save()
    add_message(ticket, user, 'Ticket cancelled by user', message_type=TicketMessage.TYPE_STATUS_UPDATE)
    log_user_activity(user, 'CANCEL_TICKET', 'SupportTicket', ticket.pk)
    return ticket


# ============================================================================
# SLA & ANALYTICS
# ============================================================================

def overdue_tickets():
    now = timezone.now()
    return SupportTicket.objects.exclude(
        status__in=SupportTicket.FINISHED_STATUSES
    ).filter(
        Q(response_due__lt=now, first_response_at__isnull=True) | Q(resolution_due__lt=now)
    )


def check_sla_breaches():
    """Flag overdue open tickets; returns the number newly flagged"""
    flagged = overdue_tickets().filter(is_sla_breached=False).update(is_sla_breached=True)
    if flagged:
        logger.warning(f"{flagged} support tickets breached their SLA")
    return flagged


def ticket_analytics(queryset=None):
    queryset = SupportTicket.objects.all() if queryset is None else queryset

    def grouped(field):
        return {row[field]: row['count'] for row in queryset.values(field).annotate(count=Count('id'))}

    avg = queryset.filter(resolution_time_minutes__isnull=False).aggregate(
        avg_resolution=Avg('resolution_time_minutes'),
        avg_response=Avg('response_time_minutes'),
        avg_rating=Avg('satisfaction_rating'),
    )
    return {
        'total_tickets': queryset.count(),
        'by_status': grouped('status'),
        'by_priority': grouped('priority'),
        'by_category': grouped('category'),
        'avg_resolution_minutes': round(avg['avg_resolution'], 1) if avg['avg_resolution'] is not None else None,
        'avg_response_minutes': round(avg['avg_response'], 1) if avg['avg_response'] is not None else None,
        'avg_satisfaction': round(avg['avg_rating'], 2) if avg['avg_rating'] is not None else None,
        'overdue_count': overdue_tickets().filter(pk__in=queryset.values('pk')).count(),
        'escalated_count': queryset.filter(is_escalated=True).count(),
        'unassigned_count': queryset.filter(assigned_to__isnull=True).exclude(
            status__in=SupportTicket.FINISHED_STATUSES).count(),
    }
