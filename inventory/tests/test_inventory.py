import json

import pytest
from django.core.management import call_command

from inventory.models import Inventory
from inventory.services import (
    analyze_pack_options,
    computed_stock,
    find_base_unit_variant,
    get_base_inventory,
)

pytestmark = pytest.mark.django_db


@pytest.fixture
def pack_family(make_product, make_variant, make_option):
    """Base unit with 25 in stock, a 6-pack and a 12-pack drawing from it"""
    product = make_product(name='Sparkling Water')
    flavour = make_option('flavour', 'Lime')
    base = make_variant(product=product, stock=25, options=[flavour])
    six = make_variant(product=product, stock=None, options=[flavour, make_option('pack', 6)])
    twelve = make_variant(product=product, stock=None, options=[flavour, make_option('pack', 12)])
    return base, six, twelve


class TestPackLogic:

    def test_analyze_pack(self, pack_family):
        _, six, _ = pack_family
        analysis = analyze_pack_options(six)

        assert analysis['is_pack'] is True
        assert analysis['pack_multiplier'] == 6
        assert analysis['is_base_unit'] is False

    def test_base_unit_found_by_matching_options(self, pack_family):
        base, six, twelve = pack_family

        assert find_base_unit_variant(six) == base
        assert find_base_unit_variant(twelve) == base
        assert find_base_unit_variant(base) == base
        assert get_base_inventory(twelve) == base.inventory

    def test_computed_stock_floors(self, pack_family):
        base, six, twelve = pack_family

        assert computed_stock(base) == 25
        assert computed_stock(six) == 4
        assert computed_stock(twelve) == 2

    def test_pack_without_base_has_no_stock(self, make_variant, make_option):
        lonely = make_variant(stock=None, options=[make_option('pack', 3)])

        assert find_base_unit_variant(lonely) is None
        assert computed_stock(lonely) == 0

    def test_pack_of_one_is_base_unit(self, make_variant, make_option):
        single = make_variant(stock=7, options=[make_option('pack', 1)])

        assert analyze_pack_options(single)['is_base_unit'] is True
        assert computed_stock(single) == 7

    def test_public_variant_stock_endpoint(self, api_client, pack_family):
        base, six, _ = pack_family

        response = api_client.get(f'/api/inventory/variant/{six.pk}/')

        assert response.status_code == 200
        assert response.data['available_stock'] == 4
        assert response.data['base_unit_variant'] == base.pk


class TestInventoryApi:

    def test_admin_only(self, auth_client):
        assert auth_client.get('/api/inventory/').status_code == 403

    def test_cannot_track_pack_variant(self, admin_client, pack_family):
        _, six, _ = pack_family

        response = admin_client.post('/api/inventory/', {'variant': six.pk, 'stock_quantity': 5}, format='json')

        assert response.status_code == 400
        assert 'variant' in response.data

    def test_duplicate_inventory_conflict(self, admin_client, variant):
        response = admin_client.post('/api/inventory/', {'variant': variant.pk, 'stock_quantity': 5}, format='json')

        assert response.status_code == 409

    @pytest.mark.parametrize('operation,quantity,expected', [
        ('add', 10, 50),
        ('remove', 15, 25),
        ('set', 0, 0),
    ])
    def test_adjust(self, admin_client, variant, operation, quantity, expected):
        inventory = variant.inventory

        response = admin_client.post(
            f'/api/inventory/{inventory.pk}/adjust/',
            {'operation': operation, 'quantity': quantity},
            format='json'
        )

        assert response.status_code == 200
        assert response.data['stock_quantity'] == expected

    def test_remove_more_than_available(self, admin_client, variant):
        response = admin_client.post(
            f'/api/inventory/{variant.inventory.pk}/adjust/',
            {'operation': 'remove', 'quantity': 41},
            format='json'
        )

        assert response.status_code == 400
        assert response.data['code'] == 'insufficient_stock'

    def test_low_stock_and_stats(self, admin_client, make_variant):
        make_variant(stock=3)
        make_variant(stock=0)
        make_variant(stock=100)

        low = admin_client.get('/api/inventory/low_stock/')
        stats = admin_client.get('/api/inventory/stats/')

        assert low.data['count'] == 2
        assert stats.data['total_units'] == 103
        assert stats.data['by_status'][Inventory.STATUS_OUT] == 1
        assert stats.data['by_status'][Inventory.STATUS_HIGH] == 1


class TestStockStatus:

    @pytest.mark.parametrize('stock,status', [
        (0, Inventory.STATUS_OUT),
        (10, Inventory.STATUS_LOW),
        (20, Inventory.STATUS_MEDIUM),
        (21, Inventory.STATUS_HIGH),
    ])
    def test_thresholds(self, make_variant, stock, status):
        assert make_variant(stock=stock).inventory.stock_status == status


def test_low_stock_report_json(capsys, make_variant):
    low = make_variant(stock=2)
    make_variant(stock=80)

    call_command('low_stock_report', '--format', 'json')

    rows = json.loads(capsys.readouterr().out)
    assert [row['sku_code'] for row in rows] == [low.sku_code]


def test_low_stock_report_empty(capsys, make_variant):
    make_variant(stock=80)

    call_command('low_stock_report')

    assert 'No low stock items' in capsys.readouterr().out
