"""
Shared pytest fixtures
"""
import itertools
from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

_sequence = itertools.count(1)


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


def _bearer_client(user):
    from core.authentication import generate_token_pair

    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {generate_token_pair(user)['access']}")
    return client


@pytest.fixture
def make_user(db, django_user_model):
    def factory(role='customer', **fields):
        n = next(_sequence)
        fields.setdefault('email', f'user{n}@example.com')
        fields.setdefault('username', f'user{n}')
        password = fields.pop('password', 'Str0ng-pass!')
        return django_user_model.objects.create_user(password=password, role=role, **fields)
    return factory


@pytest.fixture
def user(make_user):
    return make_user(email='customer@example.com', first_name='Asha', last_name='Rao')


@pytest.fixture
def other_user(make_user):
    return make_user(email='other@example.com')


@pytest.fixture
def admin_user(make_user):
    return make_user(role='admin', email='admin@example.com', is_staff=True)


@pytest.fixture
def auth_client(user):
    return _bearer_client(user)


@pytest.fixture
def other_client(other_user):
    return _bearer_client(other_user)


@pytest.fixture
def admin_client(admin_user):
    return _bearer_client(admin_user)


@pytest.fixture
def client_for():
    """Bearer-authenticated APIClient for any user"""
    return _bearer_client


# ============================================================================
# CATALOG FACTORIES
# ============================================================================

@pytest.fixture
def make_category(db):
    from catalog.models import Category

    def factory(**fields):
        fields.setdefault('name', f'Category {next(_sequence)}')
        return Category.objects.create(**fields)
    return factory


@pytest.fixture
def make_product(db, make_category):
    from catalog.models import Product

    def factory(**fields):
        if 'category' not in fields:
            fields['category'] = make_category()
        fields.setdefault('name', f'Product {next(_sequence)}')
        fields.setdefault('description', 'A very good product.')
        return Product.objects.create(**fields)
    return factory


@pytest.fixture
def make_option(db):
    from catalog.models import Option

    def factory(option_type, option_value):
        option, _ = Option.objects.get_or_create(option_type=option_type, option_value=str(option_value))
        return option
    return factory


@pytest.fixture
def make_variant(db, make_product):
    """
    Variant with an Inventory row holding ``stock`` units.
    Pass stock=None to skip the inventory row (pack variants).
    """
    from catalog.models import ProductVariant
    from inventory.models import Inventory

    def factory(product=None, price='100.00', stock=50, options=(), **fields):
        product = product or make_product()
        fields.setdefault('sku_code', f'SKU-{next(_sequence):05d}')
        variant = ProductVariant.objects.create(product=product, price=Decimal(price), **fields)
        if options:
            variant.option_values.set(options)
        if stock is not None:
            Inventory.objects.create(variant=variant, stock_quantity=stock)
        return variant
    return factory


@pytest.fixture
def variant(make_variant):
    return make_variant(price='250.00', stock=40)


@pytest.fixture
def address(user):
    from core.models import Address

    return Address.objects.create(
        user=user,
        title='Home',
        full_name='Asha Rao',
        phone='+91 98765 43210',
        address_line1='12 MG Road',
        city='Bengaluru',
        state='Karnataka',
        postal_code='560001',
    )


# ============================================================================
# COUPON FACTORIES
# ============================================================================

@pytest.fixture
def make_campaign(db):
    from datetime import timedelta

    from django.utils import timezone

    from coupons.models import CouponCampaign

    def factory(**fields):
        now = timezone.now()
        fields.setdefault('name', f'Campaign {next(_sequence)}')
        fields.setdefault('discount_type', CouponCampaign.DISCOUNT_PERCENTAGE)
        fields.setdefault('discount_value', Decimal('10'))
        fields.setdefault('valid_from', now - timedelta(days=1))
        fields.setdefault('valid_until', now + timedelta(days=30))
        fields.setdefault('eligibility_criteria', ['ALL_USERS'])
        return CouponCampaign.objects.create(**fields)
    return factory


@pytest.fixture
def make_coupon(make_campaign):
    """UserCoupon for ``user``; extra kwargs go to the campaign"""
    from coupons.models import UserCoupon

    def factory(user, campaign=None, **campaign_fields):
        campaign = campaign or make_campaign(**campaign_fields)
        return UserCoupon.objects.create(
            campaign=campaign,
            user=user,
            coupon_code=f'SAVE-{next(_sequence):05d}',
        )
    return factory
