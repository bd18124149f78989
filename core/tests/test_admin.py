import pytest
from django.core.management import call_command

pytestmark = pytest.mark.django_db


def test_admin_endpoints_reject_customers(auth_client):
    assert auth_client.get('/api/admin/users/').status_code == 403
    assert auth_client.get('/api/admin/dashboard/').status_code == 403


def test_list_users_filtered_by_role(admin_client, user, admin_user):
    response = admin_client.get('/api/admin/users/', {'role': 'customer'})

    assert response.status_code == 200
    emails = [row['email'] for row in response.data['results']]
    assert user.email in emails
    assert admin_user.email not in emails


def test_toggle_active(admin_client, user):
    response = admin_client.post(f'/api/admin/users/{user.pk}/toggle_active/')

    assert response.status_code == 200
    user.refresh_from_db()
    assert user.is_active is False


def test_admin_cannot_deactivate_self(admin_client, admin_user):
    response = admin_client.post(f'/api/admin/users/{admin_user.pk}/toggle_active/')

    assert response.status_code == 400


def test_change_role_validates(admin_client, user):
    bad = admin_client.post(f'/api/admin/users/{user.pk}/change_role/', {'role': 'owner'}, format='json')
    good = admin_client.post(f'/api/admin/users/{user.pk}/change_role/', {'role': 'admin'}, format='json')

    assert bad.status_code == 400
    assert good.status_code == 200
    user.refresh_from_db()
    assert user.is_admin


def test_dashboard_shape(admin_client, variant):
    response = admin_client.get('/api/admin/dashboard/')

    assert response.status_code == 200
    assert set(response.data) >= {'users', 'orders', 'inventory', 'support', 'coupons'}
    assert response.data['orders']['revenue'] == 0


def test_health_check(api_client):
    response = api_client.get('/health/')

    assert response.status_code == 200


def test_store_stats_health_command(capsys):
    call_command('store_stats', '--health')

    output = capsys.readouterr().out
    assert 'Database: Connected' in output
    assert 'System is healthy' in output


def test_store_stats_detailed_command(capsys, variant):
    call_command('store_stats', '--detailed')

    output = capsys.readouterr().out
    assert 'STORE STATISTICS' in output
    assert 'Orders by status' in output
