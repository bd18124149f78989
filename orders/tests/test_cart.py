from decimal import Decimal

import pytest

from orders.models import CartItem

pytestmark = pytest.mark.django_db


def test_cart_created_lazily(auth_client):
    response = auth_client.get('/api/cart/')

    assert response.status_code == 200
    assert response.data['items'] == []
    assert response.data['totals']['grand_total'] == Decimal('0.00')


def test_add_item_snapshots_price(auth_client, variant):
    response = auth_client.post('/api/cart/items/', {'variant': variant.pk, 'quantity': 2}, format='json')

    assert response.status_code == 201
    item = response.data['items'][0]
    assert item['quantity'] == 2
    assert Decimal(item['price_at_addition']) == Decimal('250.00')
    assert item['available_stock'] == 40

    variant.price = Decimal('300.00')
    variant.save()
    cart = auth_client.get('/api/cart/').data
    assert Decimal(cart['items'][0]['price_at_addition']) == Decimal('250.00')


def test_adding_same_variant_merges_lines(auth_client, variant):
    auth_client.post('/api/cart/items/', {'variant': variant.pk, 'quantity': 2}, format='json')
    response = auth_client.post('/api/cart/items/', {'variant': variant.pk, 'quantity': 3}, format='json')

    assert len(response.data['items']) == 1
    assert response.data['total_quantity'] == 5


def test_add_beyond_stock(auth_client, variant):
    response = auth_client.post('/api/cart/items/', {'variant': variant.pk, 'quantity': 41}, format='json')

    assert response.status_code == 412
    assert response.data['code'] == 'insufficient_stock'
    assert response.data['available_stock'] == 40


def test_pack_stock_limits_cart(auth_client, make_product, make_variant, make_option):
    product = make_product()
    make_variant(product=product, stock=10)
    six_pack = make_variant(product=product, stock=None, options=[make_option('pack', 6)])

    ok = auth_client.post('/api/cart/items/', {'variant': six_pack.pk, 'quantity': 1}, format='json')
    too_many = auth_client.post('/api/cart/items/', {'variant': six_pack.pk, 'quantity': 1}, format='json')

    assert ok.status_code == 201
    assert too_many.status_code == 412


def test_inactive_variant_not_found(auth_client, make_variant):
    variant = make_variant(is_active=False)

    response = auth_client.post('/api/cart/items/', {'variant': variant.pk, 'quantity': 1}, format='json')

    assert response.status_code == 404


def test_update_to_zero_removes_line(auth_client, variant):
    item_id = auth_client.post(
        '/api/cart/items/', {'variant': variant.pk, 'quantity': 2}, format='json'
    ).data['items'][0]['id']

    response = auth_client.patch(f'/api/cart/items/{item_id}/', {'quantity': 0}, format='json')

    assert response.status_code == 200
    assert not CartItem.objects.filter(pk=item_id).exists()


def test_cannot_touch_other_users_items(auth_client, other_client, variant):
    item_id = auth_client.post(
        '/api/cart/items/', {'variant': variant.pk, 'quantity': 1}, format='json'
    ).data['items'][0]['id']

    assert other_client.delete(f'/api/cart/items/{item_id}/').status_code == 404


def test_totals(auth_client, variant):
    auth_client.post('/api/cart/items/', {'variant': variant.pk, 'quantity': 2}, format='json')

    totals = auth_client.get('/api/cart/').data['totals']

    assert totals['subtotal'] == Decimal('500.00')
    assert totals['shipping_cost'] == Decimal('50.00')
    assert totals['tax_amount'] == Decimal('90.00')
    assert totals['grand_total'] == Decimal('640.00')


def test_free_shipping_from_five_units(auth_client, variant):
    auth_client.post('/api/cart/items/', {'variant': variant.pk, 'quantity': 5}, format='json')

    assert auth_client.get('/api/cart/').data['totals']['shipping_cost'] == Decimal('0.00')


class TestCartCoupon:

    def test_apply_and_remove(self, auth_client, user, variant, make_coupon):
        coupon = make_coupon(user)
        auth_client.post('/api/cart/items/', {'variant': variant.pk, 'quantity': 2}, format='json')

        applied = auth_client.post('/api/cart/coupon/', {'coupon_code': coupon.coupon_code}, format='json')
        removed = auth_client.delete('/api/cart/coupon/')

        assert applied.status_code == 200
        assert Decimal(applied.data['coupon_discount_amount']) == Decimal('50.00')
        assert Decimal(applied.data['cart_total_amount']) == Decimal('450.00')
        assert removed.data['applied_coupon_code'] == ''

    def test_empty_cart(self, auth_client, user, make_coupon):
        coupon = make_coupon(user)

        response = auth_client.post('/api/cart/coupon/', {'coupon_code': coupon.coupon_code}, format='json')

        assert response.status_code == 400

    def test_coupon_dropped_when_minimum_no_longer_met(self, auth_client, user, variant, make_coupon):
        coupon = make_coupon(user, min_purchase_amount=Decimal('400'))
        item_id = auth_client.post(
            '/api/cart/items/', {'variant': variant.pk, 'quantity': 2}, format='json'
        ).data['items'][0]['id']
        auth_client.post('/api/cart/coupon/', {'coupon_code': coupon.coupon_code}, format='json')

        response = auth_client.patch(f'/api/cart/items/{item_id}/', {'quantity': 1}, format='json')

        assert response.data['applied_coupon_code'] == ''
        assert Decimal(response.data['coupon_discount_amount']) == Decimal('0.00')

    def test_discount_recomputed_when_cart_grows(self, auth_client, user, variant, make_coupon):
        coupon = make_coupon(user)
        auth_client.post('/api/cart/items/', {'variant': variant.pk, 'quantity': 1}, format='json')
        auth_client.post('/api/cart/coupon/', {'coupon_code': coupon.coupon_code}, format='json')

        response = auth_client.post('/api/cart/items/', {'variant': variant.pk, 'quantity': 1}, format='json')

        assert Decimal(response.data['coupon_discount_amount']) == Decimal('50.00')
