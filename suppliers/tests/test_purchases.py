from decimal import Decimal

import pytest

from core.exceptions import BadRequest
from inventory.models import Inventory
from suppliers.models import Purchase, Supplier, SupplierContactNumber
from suppliers.services import apply_purchase_completion

pytestmark = pytest.mark.django_db


@pytest.fixture
def supplier():
    return Supplier.objects.create(name='Nilgiri Traders', email='sales@nilgiri.example.com')


def _purchase_payload(variant, supplier, **overrides):
    payload = {
        'variant': variant.pk,
        'supplier': supplier.pk,
        'quantity': 10,
        'unit_price_at_purchase': '20.00',
        'packaging_cost': '5.00',
        'shipping_cost': '15.00',
    }
    payload.update(overrides)
    return payload


class TestPurchaseApi:

    def test_landing_price_computed(self, admin_client, variant, supplier):
        response = admin_client.post('/api/purchases/', _purchase_payload(variant, supplier), format='json')

        assert response.status_code == 201
        assert Decimal(response.data['landing_price']) == Decimal('220.00')
        assert Decimal(response.data['landing_price_per_unit']) == Decimal('22.00')
        assert response.data['purchase_order_number'].startswith('PO-')

    def test_wrong_landing_price_rejected(self, admin_client, variant, supplier):
        response = admin_client.post(
            '/api/purchases/', _purchase_payload(variant, supplier, landing_price='100.00'), format='json'
        )

        assert response.status_code == 400
        assert 'landing_price' in response.data

    def test_completed_on_create_credits_stock(self, admin_client, variant, supplier):
        admin_client.post(
            '/api/purchases/', _purchase_payload(variant, supplier, status='Completed'), format='json'
        )

        assert Inventory.objects.get(variant=variant).stock_quantity == 50

    def test_mark_received_is_idempotent(self, admin_client, variant, supplier):
        purchase_id = admin_client.post(
            '/api/purchases/', _purchase_payload(variant, supplier), format='json'
        ).data['id']

        first = admin_client.post(f'/api/purchases/{purchase_id}/mark_received/')
        admin_client.post(f'/api/purchases/{purchase_id}/mark_received/')

        assert first.data['inventory_updated_on_completion'] is True
        assert first.data['received_date'] is not None
        assert Inventory.objects.get(variant=variant).stock_quantity == 50

    def test_cancelled_purchase_cannot_be_received(self, admin_client, variant, supplier):
        purchase_id = admin_client.post(
            '/api/purchases/', _purchase_payload(variant, supplier, status='Cancelled'), format='json'
        ).data['id']

        response = admin_client.post(f'/api/purchases/{purchase_id}/mark_received/')

        assert response.status_code == 400

    def test_quantity_locked_after_receipt(self, admin_client, variant, supplier):
        purchase_id = admin_client.post(
            '/api/purchases/', _purchase_payload(variant, supplier, status='Completed'), format='json'
        ).data['id']

        response = admin_client.patch(f'/api/purchases/{purchase_id}/', {'quantity': 12}, format='json')

        assert response.status_code == 400

    def test_inactive_supplier_rejected(self, admin_client, variant, supplier):
        supplier.soft_delete()

        response = admin_client.post('/api/purchases/', _purchase_payload(variant, supplier), format='json')

        assert response.status_code == 400
        assert 'supplier' in response.data


class TestPackPurchases:

    def test_pack_purchase_converted_to_base_units(self, make_product, make_variant, make_option, supplier):
        product = make_product()
        base = make_variant(product=product, stock=4)
        six_pack = make_variant(product=product, stock=None, options=[make_option('pack', 6)])
        purchase = Purchase.objects.create(
            variant=six_pack,
            supplier=supplier,
            quantity=3,
            unit_price_at_purchase=Decimal('90.00'),
            status=Purchase.STATUS_COMPLETED,
        )

        assert apply_purchase_completion(purchase) == 18
        assert Inventory.objects.get(variant=base).stock_quantity == 22

    def test_missing_inventory_row_is_created(self, make_variant, supplier):
        variant = make_variant(stock=None)
        purchase = Purchase.objects.create(
            variant=variant,
            supplier=supplier,
            quantity=5,
            unit_price_at_purchase=Decimal('10.00'),
            status=Purchase.STATUS_COMPLETED,
        )

        apply_purchase_completion(purchase)

        assert Inventory.objects.get(variant=variant).stock_quantity == 5

    def test_pack_without_base_variant_fails(self, make_variant, make_option, supplier):
        lonely = make_variant(stock=None, options=[make_option('pack', 6)])
        purchase = Purchase.objects.create(
            variant=lonely,
            supplier=supplier,
            quantity=1,
            unit_price_at_purchase=Decimal('10.00'),
            status=Purchase.STATUS_COMPLETED,
        )

        with pytest.raises(BadRequest) as excinfo:
            apply_purchase_completion(purchase)

        assert excinfo.value.get_codes() == 'no_base_variant'

    def test_failed_receipt_on_create_saves_nothing(self, admin_client, make_variant, make_option, supplier):
        lonely = make_variant(stock=None, options=[make_option('pack', 6)])

        response = admin_client.post(
            '/api/purchases/', _purchase_payload(lonely, supplier, status='Completed'), format='json'
        )

        assert response.status_code == 400
        assert response.data['code'] == 'no_base_variant'
        assert not Purchase.objects.filter(variant=lonely).exists()

    def test_failed_mark_received_keeps_status(self, admin_client, make_variant, make_option, supplier):
        lonely = make_variant(stock=None, options=[make_option('pack', 6)])
        purchase_id = admin_client.post(
            '/api/purchases/', _purchase_payload(lonely, supplier), format='json'
        ).data['id']

        response = admin_client.post(f'/api/purchases/{purchase_id}/mark_received/')

        assert response.status_code == 400
        purchase = Purchase.objects.get(pk=purchase_id)
        assert purchase.status == Purchase.STATUS_PLANNED
        assert purchase.inventory_updated_on_completion is False


def test_single_primary_contact(supplier):
    first = SupplierContactNumber.objects.create(supplier=supplier, contact_number='+91 80 1234 5678', is_primary=True)
    SupplierContactNumber.objects.create(supplier=supplier, contact_number='+91 80 8765 4321', is_primary=True)

    first.refresh_from_db()
    assert first.is_primary is False
    assert supplier.primary_contact.contact_number == '+91 80 8765 4321'


def test_supplier_soft_delete(admin_client, supplier):
    response = admin_client.delete(f'/api/suppliers/{supplier.pk}/')

    assert response.status_code == 204
    supplier.refresh_from_db()
    assert supplier.is_active is False
    assert supplier.status == 'Inactive'
