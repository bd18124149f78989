from decimal import Decimal

import pytest

from core.exceptions import NotFound, PreconditionFailed
from inventory.models import Inventory
from notifications.models import Notification
from orders import services
from orders.models import Cart, Order
from wallets.models import WalletTransaction
from wallets.services import get_or_create_wallet, perform_atomic_wallet_transaction

pytestmark = pytest.mark.django_db

INLINE_ADDRESS = {
    'full_name': 'Asha Rao',
    'address_line1': '12 MG Road',
    'city': 'Bengaluru',
    'state': 'Karnataka',
    'pincode': '560001',
    'phone_number': '+91 98765 43210',
}


def _stock(variant):
    return Inventory.objects.get(variant=variant).stock_quantity


def _fund_wallet(user, amount):
    perform_atomic_wallet_transaction(
        user, Decimal(amount), WalletTransaction.TYPE_CREDIT, WalletTransaction.REF_ADMIN_ADJUSTMENT
    )


@pytest.fixture
def placed_order(user, variant, address):
    services.add_cart_item(user, variant.pk, 2)
    return services.place_order(user, shipping_address=address.pk)


class TestPlaceOrder:

    def test_place_from_cart(self, auth_client, user, variant, address):
        auth_client.post('/api/cart/items/', {'variant': variant.pk, 'quantity': 2}, format='json')

        response = auth_client.post('/api/orders/place/', {'shipping_address': address.pk}, format='json')

        assert response.status_code == 201
        data = response.data
        assert data['order_status'] == 'PENDING'
        assert data['payment_status'] == 'PENDING'
        assert Decimal(data['subtotal']) == Decimal('500.00')
        assert Decimal(data['grand_total']) == Decimal('640.00')
        assert data['items'][0]['sku_code'] == variant.sku_code
        assert data['shipping_address']['pincode'] == '560001'
        assert data['billing_address'] == data['shipping_address']
        assert len(data['order_number']) == 14

        assert _stock(variant) == 38
        assert not Cart.objects.get(user=user).items.exists()
        assert Notification.objects.filter(recipient_user=user, title='Order placed').exists()

    def test_inline_address(self, user, variant):
        services.add_cart_item(user, variant.pk, 1)

        order = services.place_order(user, shipping_address=INLINE_ADDRESS)

        assert order.shipping_city == 'Bengaluru'
        assert order.shipping_country == 'India'

    def test_invalid_inline_address(self, auth_client, user, variant):
        services.add_cart_item(user, variant.pk, 1)

        response = auth_client.post(
            '/api/orders/place/', {'shipping_address': {**INLINE_ADDRESS, 'pincode': '12'}}, format='json'
        )

        assert response.status_code == 400
        assert response.data['code'] == 'invalid_address'
        assert 'pincode' in response.data['errors']

    def test_other_users_address(self, user, other_user, variant):
        from core.models import Address

        foreign = Address.objects.create(
            user=other_user, title='Home', full_name='X', phone='+91 90000 00000',
            address_line1='1 Road', city='Pune', state='MH', postal_code='411001'
        )
        services.add_cart_item(user, variant.pk, 1)

        with pytest.raises(NotFound):
            services.place_order(user, shipping_address=foreign.pk)

    def test_empty_cart(self, auth_client, address):
        response = auth_client.post('/api/orders/place/', {'shipping_address': address.pk}, format='json')

        assert response.status_code == 400

    def test_stock_changed_since_adding(self, auth_client, user, variant, address):
        services.add_cart_item(user, variant.pk, 5)
        Inventory.objects.filter(variant=variant).update(stock_quantity=3)

        response = auth_client.post('/api/orders/place/', {'shipping_address': address.pk}, format='json')

        assert response.status_code == 412
        assert response.data['code'] == 'insufficient_stock'
        assert _stock(variant) == 3
        assert Cart.objects.get(user=user).items.count() == 1
        assert not Order.objects.exists()

    def test_pack_and_base_share_stock(self, user, address, make_product, make_variant, make_option):
        product = make_product()
        base = make_variant(product=product, price='10.00', stock=20)
        six_pack = make_variant(product=product, price='55.00', stock=None, options=[make_option('pack', 6)])
        services.add_cart_item(user, base.pk, 2)
        services.add_cart_item(user, six_pack.pk, 3)

        services.place_order(user, shipping_address=address.pk)

        assert _stock(base) == 0

    def test_combined_lines_exceed_base_stock(self, user, address, make_product, make_variant, make_option):
        product = make_product()
        base = make_variant(product=product, price='10.00', stock=20)
        six_pack = make_variant(product=product, price='55.00', stock=None, options=[make_option('pack', 6)])
        services.add_cart_item(user, base.pk, 5)
        services.add_cart_item(user, six_pack.pk, 3)

        with pytest.raises(PreconditionFailed):
            services.place_order(user, shipping_address=address.pk)

        assert _stock(base) == 20

    def test_coupon_applied_and_counted(self, user, variant, address, make_coupon):
        coupon = make_coupon(user)
        services.add_cart_item(user, variant.pk, 2)
        services.apply_cart_coupon(user, coupon.coupon_code)

        order = services.place_order(user, shipping_address=address.pk)

        coupon.refresh_from_db()
        assert order.discount_amount == Decimal('50.00')
        assert order.grand_total == Decimal('590.00')
        assert order.applied_coupon_code == coupon.coupon_code
        assert coupon.is_redeemed

    def test_wallet_payment(self, user, variant, address):
        _fund_wallet(user, '1000.00')
        services.add_cart_item(user, variant.pk, 2)

        order = services.place_order(user, shipping_address=address.pk, payment_gateway=Order.GATEWAY_WALLET)

        assert order.payment_status == Order.PAYMENT_PAID
        assert order.order_status == Order.STATUS_PENDING
        assert get_or_create_wallet(user).balance == Decimal('360.00')

    def test_wallet_payment_insufficient_balance_rolls_back(self, auth_client, user, variant, address):
        _fund_wallet(user, '100.00')
        services.add_cart_item(user, variant.pk, 2)

        response = auth_client.post('/api/orders/place/', {
            'shipping_address': address.pk, 'payment_gateway': 'WALLET'
        }, format='json')

        assert response.status_code == 400
        assert response.data['code'] == 'insufficient_balance'
        assert _stock(variant) == 40
        assert not Order.objects.exists()

    def test_card_gateway_needs_payment_method(self, auth_client, user, variant, address):
        services.add_cart_item(user, variant.pk, 1)

        response = auth_client.post('/api/orders/place/', {
            'shipping_address': address.pk, 'payment_gateway': 'CARD'
        }, format='json')

        assert response.status_code == 400


class TestUserOrders:

    def test_list_only_own(self, auth_client, other_client, placed_order):
        assert auth_client.get('/api/orders/').data['count'] == 1
        assert other_client.get('/api/orders/').data['count'] == 0
        assert other_client.get(f'/api/orders/{placed_order.pk}/').status_code == 404

    def test_cancel_restores_stock(self, auth_client, variant, placed_order):
        response = auth_client.post(f'/api/orders/{placed_order.pk}/cancel/', {'reason': 'Changed mind'}, format='json')

        assert response.status_code == 200
        assert response.data['order_status'] == 'CANCELLED'
        assert 'Changed mind' in response.data['notes']
        assert _stock(variant) == 40

    def test_cancel_reverses_coupon(self, user, variant, address, make_coupon):
        coupon = make_coupon(user)
        services.add_cart_item(user, variant.pk, 2)
        services.apply_cart_coupon(user, coupon.coupon_code)
        order = services.place_order(user, shipping_address=address.pk)

        services.cancel_order(order)

        coupon.refresh_from_db()
        assert not coupon.is_redeemed
        assert coupon.current_usage_count == 0

    def test_cancel_wallet_order_refunds(self, user, variant, address):
        _fund_wallet(user, '1000.00')
        services.add_cart_item(user, variant.pk, 2)
        order = services.place_order(user, shipping_address=address.pk, payment_gateway=Order.GATEWAY_WALLET)

        order = services.cancel_order(order)

        assert order.payment_status == Order.PAYMENT_REFUNDED
        assert get_or_create_wallet(user).balance == Decimal('1000.00')

    def test_cannot_cancel_shipped(self, auth_client, placed_order):
        Order.objects.filter(pk=placed_order.pk).update(order_status=Order.STATUS_SHIPPED)

        response = auth_client.post(f'/api/orders/{placed_order.pk}/cancel/', {}, format='json')

        assert response.status_code == 400

    def test_request_return_only_when_delivered(self, auth_client, placed_order):
        early = auth_client.post(f'/api/orders/{placed_order.pk}/request_return/', {}, format='json')
        Order.objects.filter(pk=placed_order.pk).update(order_status=Order.STATUS_DELIVERED)
        ok = auth_client.post(f'/api/orders/{placed_order.pk}/request_return/', {'reason': 'Damaged'}, format='json')

        assert early.status_code == 400
        assert ok.data['order_status'] == 'RETURN_REQUESTED'


class TestAdminOrders:

    def _status(self, client, order, new_status, **extra):
        return client.post(
            f'/api/admin/orders/{order.pk}/update_status/', {'status': new_status, **extra}, format='json'
        )

    def test_cod_lifecycle(self, admin_client, placed_order):
        assert self._status(admin_client, placed_order, 'PROCESSING').status_code == 200
        shipped = self._status(admin_client, placed_order, 'SHIPPED', tracking_number='AWB123')
        delivered = self._status(admin_client, placed_order, 'DELIVERED')

        assert shipped.data['tracking_number'] == 'AWB123'
        assert shipped.data['shipped_at'] is not None
        assert delivered.data['order_status'] == 'DELIVERED'
        assert delivered.data['payment_status'] == 'PAID'

    def test_invalid_transition(self, admin_client, placed_order):
        response = self._status(admin_client, placed_order, 'DELIVERED')

        assert response.status_code == 400

    def test_unpaid_online_order_cannot_ship(self, admin_client, placed_order):
        Order.objects.filter(pk=placed_order.pk).update(
            payment_gateway=Order.GATEWAY_CARD, order_status=Order.STATUS_PROCESSING
        )

        response = self._status(admin_client, placed_order, 'SHIPPED')

        assert response.status_code == 400

    def test_returned_restores_stock(self, admin_client, variant, placed_order):
        Order.objects.filter(pk=placed_order.pk).update(order_status=Order.STATUS_RETURN_REQUESTED)

        self._status(admin_client, placed_order, 'RETURNED')

        assert _stock(variant) == 40

    def test_admin_cancel(self, admin_client, variant, placed_order):
        response = self._status(admin_client, placed_order, 'CANCELLED', notes='Fraud check')

        assert response.data['order_status'] == 'CANCELLED'
        assert _stock(variant) == 40

    def test_partial_then_full_refund(self, admin_client, placed_order):
        Order.objects.filter(pk=placed_order.pk).update(payment_status=Order.PAYMENT_PAID)

        partial = admin_client.post(
            f'/api/admin/orders/{placed_order.pk}/refund/', {'amount': '100.00'}, format='json'
        )
        too_much = admin_client.post(
            f'/api/admin/orders/{placed_order.pk}/refund/', {'amount': '600.00'}, format='json'
        )
        rest = admin_client.post(f'/api/admin/orders/{placed_order.pk}/refund/', {}, format='json')

        assert partial.data['payment_status'] == 'PARTIALLY_REFUNDED'
        assert too_much.status_code == 400
        assert too_much.data['refundable_amount'] == '540.00'
        assert rest.data['payment_status'] == 'REFUNDED'
        assert Decimal(rest.data['refunded_amount']) == Decimal('640.00')

    def test_refund_to_wallet(self, admin_client, user, placed_order):
        Order.objects.filter(pk=placed_order.pk).update(payment_status=Order.PAYMENT_PAID)

        admin_client.post(
            f'/api/admin/orders/{placed_order.pk}/refund/', {'amount': '40.00', 'to_wallet': True}, format='json'
        )

        assert get_or_create_wallet(user).balance == Decimal('40.00')

    def test_unpaid_order_cannot_be_refunded(self, admin_client, placed_order):
        response = admin_client.post(f'/api/admin/orders/{placed_order.pk}/refund/', {}, format='json')

        assert response.status_code == 400

    def test_stats(self, admin_client, placed_order):
        response = admin_client.get('/api/admin/orders/stats/')

        assert response.data['total_orders'] == 1
        assert response.data['by_status'] == {'PENDING': 1}
