from datetime import timedelta

import pytest
from django.utils import timezone

from support import services
from support.models import SupportTicket, TicketMessage

pytestmark = pytest.mark.django_db

TICKET = {
    'subject': 'Parcel arrived damaged',
    'description': 'The box was crushed and two jars were broken.',
    'category': 'PRODUCT_DEFECT',
}


@pytest.fixture
def ticket(user):
    return services.create_ticket(user, **TICKET)


def _close_to(delta, expected):
    return abs(delta - expected) < timedelta(seconds=5)


class TestTicketModel:

    @pytest.mark.parametrize('priority,response_hours,resolution_hours', [
        ('URGENT', 1, 4),
        ('HIGH', 4, 24),
        ('MEDIUM', 24, 72),
        ('LOW', 24, 72),
    ])
    def test_sla_targets(self, user, priority, response_hours, resolution_hours):
        ticket = services.create_ticket(user, priority=priority, **TICKET)

        assert _close_to(ticket.response_due - ticket.created_at, timedelta(hours=response_hours))
        assert _close_to(ticket.resolution_due - ticket.created_at, timedelta(hours=resolution_hours))

    def test_ticket_numbers_are_sequential(self, user):
        year = timezone.now().year

        first = services.create_ticket(user, **TICKET)
        second = services.create_ticket(user, **TICKET)

        assert first.ticket_number == f'TKT-{year}-000001'
        assert second.ticket_number == f'TKT-{year}-000002'

    def test_status_timestamps(self, ticket, admin_user):
        services.update_status(ticket, admin_user, SupportTicket.STATUS_IN_PROGRESS)
        assert ticket.first_response_at is not None
        assert ticket.response_time_minutes == 0
        first_response = ticket.first_response_at

        services.update_status(ticket, admin_user, SupportTicket.STATUS_PENDING_USER)
        services.update_status(ticket, admin_user, SupportTicket.STATUS_IN_PROGRESS)
        assert ticket.first_response_at == first_response

        services.resolve(ticket, admin_user, 'SOLVED', 'Replacement shipped.')
        assert ticket.resolved_at is not None
        assert ticket.resolution_time_minutes == 0

        services.close(ticket, ticket.user)
        ticket.refresh_from_db()
        assert ticket.closed_at is not None

    def test_overdue(self, ticket):
        assert not ticket.is_overdue

        ticket.response_due = timezone.now() - timedelta(minutes=1)
        assert ticket.is_overdue

        ticket.first_response_at = timezone.now()
        assert not ticket.is_overdue

        ticket.resolution_due = timezone.now() - timedelta(minutes=1)
        assert ticket.is_overdue

        ticket.status = SupportTicket.STATUS_RESOLVED
        assert not ticket.is_overdue

    def test_bump_priority_stops_at_urgent(self, ticket):
        ticket.priority = SupportTicket.PRIORITY_URGENT

        ticket.bump_priority()

        assert ticket.priority == SupportTicket.PRIORITY_URGENT


class TestUserTickets:

    def test_create(self, auth_client, user):
        response = auth_client.post('/api/support/tickets/', TICKET, format='json')

        assert response.status_code == 201
        assert response.data['status'] == SupportTicket.STATUS_OPEN
        assert response.data['priority'] == SupportTicket.PRIORITY_MEDIUM
        assert response.data['user'] == user.pk

    def test_foreign_order_rejected(self, auth_client, other_user, variant):
        from core.models import Address
        from orders import services as order_services

        address = Address.objects.create(
            user=other_user, title='Home', full_name='Other', phone='+91 90000 00000',
            address_line1='1 Road', city='Pune', state='MH', postal_code='411001'
        )
        order_services.add_cart_item(other_user, variant.pk, 1)
        order = order_services.place_order(other_user, shipping_address=address.pk)

        response = auth_client.post('/api/support/tickets/', {**TICKET, 'related_order': order.pk}, format='json')

        assert response.status_code == 400
        assert 'related_order' in response.data

    def test_only_own_tickets(self, other_client, ticket):
        assert other_client.get('/api/support/tickets/').data['count'] == 0
        assert other_client.get(f'/api/support/tickets/{ticket.pk}/').status_code == 404

    def test_list_shows_ticket_age(self, auth_client, ticket):
        SupportTicket.objects.filter(pk=ticket.pk).update(created_at=timezone.now() - timedelta(hours=5, minutes=10))

        row = auth_client.get('/api/support/tickets/').data['results'][0]

        assert row['age_in_hours'] == 5

    def test_reply_reopens_pending_ticket(self, auth_client, admin_user, ticket):
        services.update_status(ticket, admin_user, SupportTicket.STATUS_PENDING_USER)

        response = auth_client.post(
            f'/api/support/tickets/{ticket.pk}/add_message/', {'message': 'Photos attached.'}, format='json'
        )

        assert response.status_code == 201
        assert response.data['sender_role'] == TicketMessage.ROLE_USER
        ticket.refresh_from_db()
        assert ticket.status == SupportTicket.STATUS_IN_PROGRESS

    def test_close_only_when_resolved(self, auth_client, admin_user, ticket):
        assert auth_client.post(f'/api/support/tickets/{ticket.pk}/close/').status_code == 400

        services.resolve(ticket, admin_user, 'SOLVED', 'Refund issued.')
        response = auth_client.post(f'/api/support/tickets/{ticket.pk}/close/')

        assert response.status_code == 200
        assert response.data['status'] == SupportTicket.STATUS_CLOSED

    def test_no_messages_on_closed_ticket(self, auth_client, admin_user, ticket):
        services.resolve(ticket, admin_user, 'SOLVED', 'Refund issued.')
        services.close(ticket, ticket.user)

        response = auth_client.post(
            f'/api/support/tickets/{ticket.pk}/add_message/', {'message': 'One more thing'}, format='json'
        )

        assert response.status_code == 400

    def test_rate(self, auth_client, admin_user, ticket):
        assert auth_client.post(
            f'/api/support/tickets/{ticket.pk}/rate/', {'rating': 5}, format='json'
        ).status_code == 400

        services.resolve(ticket, admin_user, 'SOLVED', 'Refund issued.')
        response = auth_client.post(
            f'/api/support/tickets/{ticket.pk}/rate/', {'rating': 5, 'feedback': 'Quick help'}, format='json'
        )

        assert response.status_code == 200
        assert response.data['satisfaction_rating'] == 5

    def test_rating_out_of_range(self, auth_client, ticket):
        response = auth_client.post(f'/api/support/tickets/{ticket.pk}/rate/', {'rating': 6}, format='json')

        assert response.status_code == 400
        assert 'rating' in response.data

    def test_cancel_only_open(self, auth_client, admin_user, ticket, user):
        other = services.create_ticket(user, **TICKET)
        services.update_status(other, admin_user, SupportTicket.STATUS_IN_PROGRESS)

        assert auth_client.post(f'/api/support/tickets/{ticket.pk}/cancel/').data['status'] == 'CANCELLED'
        assert auth_client.post(f'/api/support/tickets/{other.pk}/cancel/').status_code == 400

    def test_internal_messages_hidden_from_user(self, auth_client, admin_client, admin_user, ticket):
        services.add_internal_note(ticket, admin_user, 'Customer has a history of damaged parcels')
        services.admin_reply(ticket, admin_user, 'Sorry about that, a replacement is on its way.')

        user_view = auth_client.get(f'/api/support/tickets/{ticket.pk}/').data['messages']
        admin_view = admin_client.get(f'/api/admin/support/tickets/{ticket.pk}/').data['messages']

        assert [m['message_type'] for m in user_view] == ['MESSAGE']
        assert len(admin_view) == 2


class TestAdminDesk:

    def test_customer_forbidden(self, auth_client):
        assert auth_client.get('/api/admin/support/tickets/').status_code == 403

    def test_assign(self, admin_client, admin_user, ticket):
        response = admin_client.post(
            f'/api/admin/support/tickets/{ticket.pk}/assign/', {'assigned_to': admin_user.pk}, format='json'
        )

        assert response.status_code == 200
        assert response.data['assigned_to'] == admin_user.pk
        assert response.data['messages'][-1]['message_type'] == TicketMessage.TYPE_ASSIGNMENT

    def test_assign_to_customer_rejected(self, admin_client, user, ticket):
        response = admin_client.post(
            f'/api/admin/support/tickets/{ticket.pk}/assign/', {'assigned_to': user.pk}, format='json'
        )

        assert response.status_code == 400

    def test_update_status_notifies_user(self, admin_client, user, ticket):
        response = admin_client.post(
            f'/api/admin/support/tickets/{ticket.pk}/update_status/',
            {'status': 'IN_PROGRESS', 'note': 'Looking into it'},
            format='json'
        )

        assert response.data['status'] == SupportTicket.STATUS_IN_PROGRESS
        assert response.data['messages'][-1]['message'] == (
            'Status changed from OPEN to IN_PROGRESS. Note: Looking into it'
        )
        assert user.notifications.filter(title=f'Ticket {ticket.ticket_number} updated').exists()

    def test_same_status_rejected(self, admin_client, ticket):
        response = admin_client.post(
            f'/api/admin/support/tickets/{ticket.pk}/update_status/', {'status': 'OPEN'}, format='json'
        )

        assert response.status_code == 400

    def test_escalate(self, admin_client, ticket):
        response = admin_client.post(
            f'/api/admin/support/tickets/{ticket.pk}/escalate/', {'reason': 'VIP customer'}, format='json'
        )

        assert response.data['is_escalated'] is True
        assert response.data['escalation_level'] == 1
        assert response.data['priority'] == SupportTicket.PRIORITY_HIGH
        assert response.data['messages'][-1]['is_internal'] is True

    def test_cannot_escalate_finished_ticket(self, admin_user, ticket):
        from core.exceptions import BadRequest

        services.resolve(ticket, admin_user, 'SOLVED', 'Done.')

        with pytest.raises(BadRequest):
            services.escalate(ticket, admin_user, 'Too late')

    def test_check_sla(self, admin_client, user, ticket):
        fresh = services.create_ticket(user, **TICKET)
        SupportTicket.objects.filter(pk=ticket.pk).update(response_due=timezone.now() - timedelta(hours=1))

        first = admin_client.post('/api/admin/support/tickets/check_sla/')
        second = admin_client.post('/api/admin/support/tickets/check_sla/')

        assert first.data == {'flagged': 1, 'overdue': 1}
        assert second.data['flagged'] == 0
        assert SupportTicket.objects.get(pk=ticket.pk).is_sla_breached
        assert not SupportTicket.objects.get(pk=fresh.pk).is_sla_breached

    def test_overdue_filter(self, admin_client, user, ticket):
        services.create_ticket(user, **TICKET)
        SupportTicket.objects.filter(pk=ticket.pk).update(resolution_due=timezone.now() - timedelta(hours=1))

        response = admin_client.get('/api/admin/support/tickets/', {'overdue_only': 'true'})

        assert [row['id'] for row in response.data['results']] == [ticket.pk]

    def test_analytics(self, admin_client, admin_user, user, ticket):
        urgent = services.create_ticket(user, priority='URGENT', **TICKET)
        services.resolve(urgent, admin_user, 'SOLVED', 'Fixed.')
        services.rate(urgent, user, 4)

        response = admin_client.get('/api/admin/support/tickets/analytics/')

        assert response.data['total_tickets'] == 2
        assert response.data['by_status'] == {'OPEN': 1, 'RESOLVED': 1}
        assert response.data['by_priority'] == {'MEDIUM': 1, 'URGENT': 1}
        assert response.data['avg_satisfaction'] == 4
        assert response.data['unassigned_count'] == 1
