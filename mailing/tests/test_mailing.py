from datetime import timedelta
from unittest.mock import patch

import pytest
from django.core import mail
from django.core.management import call_command
from django.utils import timezone

from mailing import services
from mailing.models import Email, EmailRecipient, EmailTemplate

pytestmark = pytest.mark.django_db

WELCOME_HTML = '<html><body><p>Hi {{name}}, use {{code}} before {{expiry}}.</p></body></html>'


@pytest.fixture
def template(admin_user):
    return EmailTemplate.objects.create(
        name='Welcome',
        subject_template='Welcome {{name}}',
        html_template=WELCOME_HTML,
        category='WELCOME',
        variables=[
            {'name': 'name', 'type': 'text', 'required': True, 'default_value': ''},
            {'name': 'code', 'type': 'text', 'required': True, 'default_value': ''},
            {'name': 'expiry', 'type': 'date', 'required': False, 'default_value': 'month end'},
        ],
        created_by=admin_user,
    )


def _compose(client, **fields):
    payload = {
        'subject': 'Hello {{name}}',
        'html_content': '<p>Dear {{name}}, your address is {{email}}.</p>',
        'email_type': 'ANNOUNCEMENT',
        **fields,
    }
    return client.post('/api/admin/emails/', payload, format='json')


class TestTemplates:

    def test_undefined_variable_rejected(self, admin_client):
        response = admin_client.post('/api/admin/email-templates/', {
            'name': 'Broken', 'subject_template': 'Hi {{name}}', 'html_template': '<html>{{name}}</html>',
        }, format='json')

        assert response.status_code == 400
        assert "Variable 'name' is used but not defined." in response.data['variables']

    def test_create_reports_warnings_and_derives_text(self, admin_client):
        response = admin_client.post('/api/admin/email-templates/', {
            'name': 'Plain',
            'subject_template': 'News',
            'html_template': '<p>Big <b>sale</b></p>',
            'variables': [{'name': 'unused'}],
        }, format='json')

        assert response.status_code == 201
        assert response.data['text_template'] == 'Big sale'
        assert response.data['validation']['is_valid'] is True
        assert response.data['validation']['warnings'] == [
            "Variable 'unused' is defined but never used.",
            'HTML template has no <html> or <body> element.',
        ]

    def test_preview_uses_defaults(self, admin_client, template):
        response = admin_client.post(
            f'/api/admin/email-templates/{template.pk}/preview/', {'variables': {'name': 'Asha'}}, format='json'
        )

        assert response.status_code == 200
        assert response.data['subject'] == 'Welcome Asha'
        assert 'before month end' in response.data['html']
        assert response.data['missing_variables'] == ['code']

    def test_clone(self, admin_client, template):
        first = admin_client.post(f'/api/admin/email-templates/{template.pk}/clone/', {}, format='json')
        second = admin_client.post(f'/api/admin/email-templates/{template.pk}/clone/', {}, format='json')

        assert first.status_code == 201
        assert first.data['name'] == 'Welcome (Copy)'
        assert first.data['version'] == 2
        assert first.data['visibility'] == 'PRIVATE'
        assert first.data['parent_template'] == template.pk
        assert 'cloned' in first.data['tags']
        assert second.status_code == 409

    def test_delete_archives_and_permanent_delete_guarded(self, admin_client, admin_user, template):
        Email.objects.create(subject='Draft', sender=admin_user, template=template)

        archived = admin_client.delete(f'/api/admin/email-templates/{template.pk}/')
        blocked = admin_client.delete(f'/api/admin/email-templates/{template.pk}/?permanent=true')

        assert archived.data == {'status': 'ARCHIVED', 'emails_affected': 1}
        assert blocked.status_code == 409
        assert blocked.data['emails_affected'] == 1
        assert EmailTemplate.objects.filter(pk=template.pk).exists()

    def test_customers_forbidden(self, auth_client):
        assert auth_client.get('/api/admin/email-templates/').status_code == 403


class TestSending:

    def test_individual_email_personalised(self, admin_client, user):
        email_id = _compose(admin_client, user_ids=[user.pk], addresses=['guest@example.com']).data['id']

        response = admin_client.post(f'/api/admin/emails/{email_id}/send/', {}, format='json')

        assert response.status_code == 200
        assert response.data['status'] == 'SENT'
        assert response.data['stats']['sent_count'] == 2
        assert len(mail.outbox) == 2
        to_user = next(message for message in mail.outbox if message.to == [user.email])
        assert to_user.subject == 'Hello Asha Rao'
        assert 'your address is customer@example.com' in to_user.alternatives[0][0]
        assert '/unsubscribe?email=customer%40example.com' in to_user.body

    def test_one_failed_recipient_does_not_fail_email(self, admin_client, user):
        email_id = _compose(admin_client, user_ids=[user.pk], addresses=['bounce@example.com']).data['id']

        def flaky(subject, message, from_email, recipient_list, **kwargs):
            if recipient_list == ['bounce@example.com']:
                raise ConnectionError('mailbox unavailable')
            return 1

        with patch('mailing.services.send_mail', side_effect=flaky):
            response = admin_client.post(f'/api/admin/emails/{email_id}/send/', {}, format='json')

        assert response.data['status'] == 'SENT'
        failed = EmailRecipient.objects.get(address='bounce@example.com')
        assert failed.status == EmailRecipient.STATUS_FAILED
        assert failed.failure_reason == 'mailbox unavailable'

    def test_all_recipients_failed(self, admin_client):
        email_id = _compose(admin_client, addresses=['bounce@example.com']).data['id']

        with patch('mailing.services.send_mail', side_effect=ConnectionError('down')):
            response = admin_client.post(f'/api/admin/emails/{email_id}/send/', {}, format='json')

        assert response.data['status'] == 'FAILED'

    def test_sent_email_is_locked(self, admin_client):
        email_id = _compose(admin_client, addresses=['guest@example.com']).data['id']
        admin_client.post(f'/api/admin/emails/{email_id}/send/', {}, format='json')

        edit = admin_client.patch(f'/api/admin/emails/{email_id}/', {'subject': 'Changed'}, format='json')
        resend = admin_client.post(f'/api/admin/emails/{email_id}/send/', {}, format='json')

        assert edit.status_code == 409
        assert resend.status_code == 409
        assert len(mail.outbox) == 1

    def test_recipients_required(self, admin_client):
        response = _compose(admin_client)

        assert response.status_code == 400
        assert 'user_ids' in response.data

    def test_scheduled_email_waits(self, admin_client):
        scheduled_at = timezone.now() + timedelta(hours=2)
        email_id = _compose(
            admin_client, addresses=['guest@example.com'],
            send_type='SCHEDULED', scheduled_at=scheduled_at.isoformat(),
        ).data['id']

        response = admin_client.post(f'/api/admin/emails/{email_id}/send/', {}, format='json')
        assert response.data['status'] == 'SCHEDULED'
        assert mail.outbox == []

        assert services.send_due_emails(now=timezone.now()) == 0
        assert services.send_due_emails(now=scheduled_at + timedelta(minutes=1)) == 1
        assert Email.objects.get(pk=email_id).status == Email.STATUS_SENT
        assert len(mail.outbox) == 1

    def test_send_scheduled_command(self, admin_user, capsys):
        email = Email.objects.create(
            subject='Due', html_content='<p>Due</p>', sender=admin_user, allow_unsubscribe=False,
            send_type=Email.SEND_SCHEDULED, scheduled_at=timezone.now() - timedelta(minutes=5),
            status=Email.STATUS_SCHEDULED,
        )
        EmailRecipient.objects.create(email=email, address='guest@example.com')

        call_command('send_scheduled_emails')

        assert 'Processed 1 scheduled emails' in capsys.readouterr().out
        assert mail.outbox[0].body == 'Due'

    def test_cancel(self, admin_client):
        email_id = _compose(admin_client, addresses=['guest@example.com']).data['id']

        response = admin_client.delete(f'/api/admin/emails/{email_id}/')

        assert response.data['status'] == 'CANCELLED'
        assert admin_client.post(f'/api/admin/emails/{email_id}/send/', {}, format='json').status_code == 409


class TestTemplatedAndBroadcast:

    def test_missing_required_variable_blocks_send(self, admin_client, user, template):
        email_id = _compose(
            admin_client, user_ids=[user.pk], template=template.pk, html_content='',
        ).data['id']

        response = admin_client.post(f'/api/admin/emails/{email_id}/send/', {}, format='json')

        assert response.status_code == 400
        assert response.data['missing_variables'] == ['code']
        assert Email.objects.get(pk=email_id).status == Email.STATUS_DRAFT

    def test_templated_send_counts_use(self, admin_client, user, template):
        email_id = _compose(
            admin_client, user_ids=[user.pk], template=template.pk,
            template_variables={'code': 'HELLO10'}, allow_unsubscribe=False,
        ).data['id']

        admin_client.post(f'/api/admin/emails/{email_id}/send/', {}, format='json')

        assert mail.outbox[0].subject == 'Welcome Asha Rao'
        assert mail.outbox[0].body == 'Hi Asha Rao, use HELLO10 before month end.'
        template.refresh_from_db()
        assert template.total_uses == 1
        assert template.last_used_at is not None

    def test_archived_template_rejected(self, admin_client, user, template):
        template.status = EmailTemplate.STATUS_ARCHIVED
        template.save()

        response = _compose(admin_client, user_ids=[user.pk], template=template.pk)

        assert response.status_code == 400
        assert 'template' in response.data

    def test_broadcast_by_role(self, admin_client, admin_user, user, other_user):
        response = admin_client.post('/api/admin/emails/broadcast/', {
            'subject': 'Staff meeting',
            'html_content': '<p>Team call at 5.</p>',
            'broadcast_criteria': {'user_roles': ['admin']},
        }, format='json')

        assert response.status_code == 201
        assert response.data['status'] == 'SENT'
        assert [r['address'] for r in response.data['recipients']] == [admin_user.email]
        assert [message.to for message in mail.outbox] == [[admin_user.email]]

    def test_broadcast_without_orders(self, user):
        assert list(services.resolve_broadcast_users({'has_orders': False})) == [user]
        assert list(services.resolve_broadcast_users({'has_orders': True})) == []

    def test_broadcast_with_no_match(self, admin_client, user):
        response = admin_client.post('/api/admin/emails/broadcast/', {
            'subject': 'Nobody',
            'html_content': '<p>x</p>',
            'broadcast_criteria': {'has_orders': True},
        }, format='json')

        assert response.status_code == 400
        assert response.data['code'] == 'no_recipients'
        assert not Email.objects.exists()

    def test_analytics(self, admin_client):
        email_id = _compose(admin_client, addresses=['a@example.com', 'b@example.com']).data['id']
        admin_client.post(f'/api/admin/emails/{email_id}/send/', {}, format='json')
        _compose(admin_client, addresses=['c@example.com'])

        response = admin_client.get('/api/admin/emails/analytics/')

        assert response.data['total_emails'] == 2
        assert response.data['by_status'] == {'SENT': 1, 'DRAFT': 1}
        assert response.data['recipients']['sent'] == 2
        assert response.data['recipients']['delivery_rate'] == 100.0
        assert response.data['top_emails'][0]['id'] == email_id
