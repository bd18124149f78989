from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from orders import services as order_services
from orders.models import Order
from payments.models import PaymentMethod
from payments.services import KIND_ORDER, KIND_WALLET_TOPUP, to_minor_units
from wallets.models import WalletTransaction
from wallets.services import get_or_create_wallet, initiate_topup

pytestmark = pytest.mark.django_db

CARD = {
    'method_type': 'CREDIT_CARD',
    'alias': 'Work card',
    'details': {'card_last4': '4242', 'card_brand': 'Visa', 'expiry_month': 12, 'expiry_year': 2099},
}
UPI = {'method_type': 'UPI', 'details': {'upi_id': 'asha@okbank'}}

FAKE_SESSION = SimpleNamespace(id='cs_test_123', url='https://checkout.stripe.com/c/pay/cs_test_123')


@pytest.fixture
def card_order(user, variant, address):
    method = PaymentMethod.objects.create(user=user, method_type='UPI', details={'upi_id': 'asha@okbank'})
    order_services.add_cart_item(user, variant.pk, 2)
    return order_services.place_order(
        user, shipping_address=address.pk, payment_gateway=Order.GATEWAY_CARD, payment_method_id=method.pk
    )


def _post_event(api_client, event):
    with patch('payments.views.stripe.Webhook.construct_event', return_value=event):
        return api_client.post(
            '/api/payments/webhook/', {'id': 'evt_test'}, format='json', HTTP_STRIPE_SIGNATURE='t=1,v1=abc'
        )


def _session_completed(metadata):
    return {
        'type': 'checkout.session.completed',
        'data': {'object': {'id': 'cs_test_123', 'payment_intent': 'pi_test_123', 'metadata': metadata}},
    }


class TestPaymentMethods:

    def test_first_method_is_default(self, auth_client):
        response = auth_client.post('/api/payment-methods/', CARD, format='json')

        assert response.status_code == 201
        assert response.data['is_default'] is True

    def test_duplicate_conflict(self, auth_client):
        auth_client.post('/api/payment-methods/', CARD, format='json')

        response = auth_client.post('/api/payment-methods/', {**CARD, 'alias': 'Again'}, format='json')

        assert response.status_code == 409

    def test_same_card_for_other_user_allowed(self, auth_client, other_client):
        auth_client.post('/api/payment-methods/', CARD, format='json')

        assert other_client.post('/api/payment-methods/', CARD, format='json').status_code == 201

    @pytest.mark.parametrize('details,field', [
        ({'card_last4': '42', 'card_brand': 'Visa', 'expiry_month': 12, 'expiry_year': 2099}, 'card_last4'),
        ({'card_last4': '4242', 'card_brand': 'Visa', 'expiry_month': 1, 'expiry_year': 2001}, 'expiry_year'),
        ({'card_last4': '4242', 'card_brand': 'Visa', 'expiry_month': 13, 'expiry_year': 2099}, 'expiry_month'),
    ])
    def test_invalid_card(self, auth_client, details, field):
        response = auth_client.post(
            '/api/payment-methods/', {'method_type': 'DEBIT_CARD', 'details': details}, format='json'
        )

        assert response.status_code == 400
        assert field in response.data['details']

    def test_invalid_upi(self, auth_client):
        response = auth_client.post(
            '/api/payment-methods/', {'method_type': 'UPI', 'details': {'upi_id': 'not-an-id'}}, format='json'
        )

        assert response.status_code == 400

    def test_set_default(self, auth_client):
        first = auth_client.post('/api/payment-methods/', CARD, format='json').data
        second = auth_client.post('/api/payment-methods/', UPI, format='json').data

        response = auth_client.post(f"/api/payment-methods/{second['id']}/set_default/")

        assert response.data['is_default'] is True
        assert PaymentMethod.objects.get(pk=first['id']).is_default is False

    def test_soft_delete_promotes_newest(self, auth_client):
        first = auth_client.post('/api/payment-methods/', CARD, format='json').data
        second = auth_client.post('/api/payment-methods/', UPI, format='json').data
        auth_client.post(f"/api/payment-methods/{first['id']}/set_default/")

        response = auth_client.delete(f"/api/payment-methods/{first['id']}/")

        assert response.status_code == 204
        assert PaymentMethod.objects.get(pk=first['id']).is_active is False
        assert PaymentMethod.objects.get(pk=second['id']).is_default is True
        assert auth_client.get('/api/payment-methods/').data['count'] == 1

    def test_admin_listing(self, auth_client, admin_client):
        auth_client.post('/api/payment-methods/', CARD, format='json')

        assert auth_client.get('/api/admin/payment-methods/').status_code == 403
        assert admin_client.get('/api/admin/payment-methods/').data['count'] == 1


class TestCheckout:

    def test_minor_units(self):
        assert to_minor_units(Decimal('640.00')) == 64000
        assert to_minor_units('19.99') == 1999

    def test_order_checkout(self, auth_client, card_order):
        with patch('payments.services.stripe.checkout.Session.create', return_value=FAKE_SESSION) as create:
            response = auth_client.post('/api/payments/checkout/order/', {'order': card_order.pk}, format='json')

        assert response.status_code == 201
        assert response.data['checkout_url'] == FAKE_SESSION.url
        kwargs = create.call_args.kwargs
        assert kwargs['line_items'][0]['price_data']['unit_amount'] == 64000
        assert kwargs['metadata'] == {'kind': KIND_ORDER, 'order_id': str(card_order.pk)}
        card_order.refresh_from_db()
        assert card_order.gateway_session_id == 'cs_test_123'

    def test_cod_order_rejected(self, auth_client, user, variant, address):
        order_services.add_cart_item(user, variant.pk, 1)
        order = order_services.place_order(user, shipping_address=address.pk)

        response = auth_client.post('/api/payments/checkout/order/', {'order': order.pk}, format='json')

        assert response.status_code == 400

    def test_other_users_order(self, other_client, card_order):
        response = other_client.post('/api/payments/checkout/order/', {'order': card_order.pk}, format='json')

        assert response.status_code == 404

    def test_stripe_error_is_bad_gateway(self, auth_client, card_order):
        error = stripe.StripeError('card network down')
        with patch('payments.services.stripe.checkout.Session.create', side_effect=error):
            response = auth_client.post('/api/payments/checkout/order/', {'order': card_order.pk}, format='json')

        assert response.status_code == 502
        assert response.data['code'] == 'payment_gateway_error'

    def test_topup_checkout(self, auth_client, user):
        topup = initiate_topup(user, Decimal('500.00'))

        with patch('payments.services.stripe.checkout.Session.create', return_value=FAKE_SESSION) as create:
            response = auth_client.post(
                '/api/payments/checkout/topup/',
                {'gateway_transaction_id': topup['gateway_transaction_id']},
                format='json'
            )

        assert response.status_code == 201
        assert create.call_args.kwargs['metadata']['kind'] == KIND_WALLET_TOPUP
        assert create.call_args.kwargs['line_items'][0]['price_data']['currency'] == 'inr'


class TestWebhook:

    def test_bad_signature(self, api_client):
        error = stripe.SignatureVerificationError('bad signature', 't=1,v1=abc')
        with patch('payments.views.stripe.Webhook.construct_event', side_effect=error):
            response = api_client.post('/api/payments/webhook/', {}, format='json')

        assert response.status_code == 400
        assert response.data['code'] == 'invalid_signature'

    def test_order_paid(self, api_client, user, card_order):
        event = _session_completed({'kind': KIND_ORDER, 'order_id': str(card_order.pk)})

        first = _post_event(api_client, event)
        _post_event(api_client, event)

        assert first.status_code == 200
        card_order.refresh_from_db()
        assert card_order.payment_status == Order.PAYMENT_PAID
        assert card_order.order_status == Order.STATUS_PROCESSING
        assert user.notifications.filter(title='Payment received').count() == 1

    def test_wallet_topup_completed(self, api_client, user):
        topup = initiate_topup(user, Decimal('750.00'))
        event = _session_completed({
            'kind': KIND_WALLET_TOPUP, 'gateway_transaction_id': topup['gateway_transaction_id']
        })

        _post_event(api_client, event)
        _post_event(api_client, event)

        assert get_or_create_wallet(user).balance == Decimal('750.00')

    def test_payment_failed(self, api_client, card_order):
        event = {
            'type': 'payment_intent.payment_failed',
            'data': {'object': {
                'id': 'pi_test_123',
                'metadata': {'kind': KIND_ORDER, 'order_id': str(card_order.pk)},
                'last_payment_error': {'message': 'Card declined'},
            }},
        }

        _post_event(api_client, event)

        card_order.refresh_from_db()
        assert card_order.payment_status == Order.PAYMENT_FAILED

    def test_topup_payment_failed(self, api_client, user):
        topup = initiate_topup(user, Decimal('200.00'))
        event = {
            'type': 'payment_intent.payment_failed',
            'data': {'object': {
                'id': 'pi_test_456',
                'metadata': {'kind': KIND_WALLET_TOPUP, 'gateway_transaction_id': topup['gateway_transaction_id']},
                'last_payment_error': {'message': 'Insufficient funds'},
            }},
        }

        _post_event(api_client, event)

        txn = WalletTransaction.objects.get(gateway_transaction_id=topup['gateway_transaction_id'])
        assert txn.status == WalletTransaction.STATUS_FAILED
        assert txn.failure_reason == 'Insufficient funds'
        assert get_or_create_wallet(user).balance == Decimal('0.00')

    def test_topup_failure_after_completion_is_ignored(self, api_client, user):
        topup = initiate_topup(user, Decimal('300.00'))
        gateway_id = topup['gateway_transaction_id']
        _post_event(api_client, _session_completed({'kind': KIND_WALLET_TOPUP, 'gateway_transaction_id': gateway_id}))

        _post_event(api_client, {
            'type': 'payment_intent.payment_failed',
            'data': {'object': {
                'id': 'pi_test_789',
                'metadata': {'kind': KIND_WALLET_TOPUP, 'gateway_transaction_id': gateway_id},
                'last_payment_error': {'message': 'Late decline'},
            }},
        })

        txn = WalletTransaction.objects.get(gateway_transaction_id=gateway_id)
        assert txn.status == WalletTransaction.STATUS_COMPLETED
        assert get_or_create_wallet(user).balance == Decimal('300.00')
