from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.management import call_command
from django.utils import timezone

from coupons.models import CouponCampaign, UserCoupon
from coupons.services import check_eligibility, expire_coupons, generate_user_coupons
from orders import services as order_services

pytestmark = pytest.mark.django_db


def _fill_cart(user, variant, quantity=2):
    return order_services.add_cart_item(user, variant.pk, quantity)


class TestCampaignRules:

    def test_percentage_capped(self, make_campaign):
        campaign = make_campaign(discount_value=Decimal('50'), max_coupon_discount=Decimal('100'))

        assert campaign.calculate_discount(Decimal('500')) == Decimal('100.00')

    def test_amount_never_exceeds_total(self, make_campaign):
        campaign = make_campaign(discount_type=CouponCampaign.DISCOUNT_AMOUNT, discount_value=Decimal('300'))

        assert campaign.calculate_discount(Decimal('120')) == Decimal('120.00')

    def test_minimum_purchase(self, make_campaign):
        campaign = make_campaign(min_purchase_amount=Decimal('1000'))

        assert campaign.calculate_discount(Decimal('500')) == Decimal('0.00')
        assert campaign.calculate_discount(Decimal('500'), check_minimum=False) == Decimal('50.00')

    def test_percentage_over_100_rejected(self, admin_client):
        now = timezone.now()
        response = admin_client.post('/api/coupon-campaigns/', {
            'name': 'Too generous',
            'discount_type': 'PERCENTAGE',
            'discount_value': '150',
            'valid_from': now.isoformat(),
            'valid_until': (now + timedelta(days=1)).isoformat(),
        }, format='json')

        assert response.status_code == 400
        assert 'discount_value' in response.data

    def test_end_before_start_rejected(self, admin_client):
        now = timezone.now()
        response = admin_client.post('/api/coupon-campaigns/', {
            'name': 'Backwards',
            'discount_type': 'AMOUNT',
            'discount_value': '50',
            'valid_from': now.isoformat(),
            'valid_until': (now - timedelta(days=1)).isoformat(),
        }, format='json')

        assert response.status_code == 400
        assert 'valid_until' in response.data


class TestGeneration:

    def test_unique_per_user(self, make_campaign, user, other_user):
        campaign = make_campaign(code_prefix='DIWALI-')

        first = generate_user_coupons(campaign, [user.pk, other_user.pk], number_of_codes=3)
        second = generate_user_coupons(campaign, [user.pk])

        assert first['total_generated'] == 2
        assert all(c.coupon_code.startswith('DIWALI-') for c in first['generated_coupons'])
        assert second['total_generated'] == 0
        assert second['errors'][0]['error'] == 'User already has a coupon for this campaign'

    def test_multiple_codes_when_not_unique(self, make_campaign, user):
        campaign = make_campaign(is_unique_per_user=False)

        result = generate_user_coupons(campaign, [user.pk], number_of_codes=3)

        assert result['total_generated'] == 3
        assert result['generated_coupons'][0].expires_at == campaign.valid_until

    def test_unknown_user_reported(self, admin_client, make_campaign, user):
        campaign = make_campaign()

        response = admin_client.post(
            f'/api/coupon-campaigns/{campaign.pk}/generate/',
            {'user_ids': [user.pk, 987654]},
            format='json'
        )

        assert response.status_code == 201
        assert response.data['total_generated'] == 1
        assert response.data['errors'] == [{'user_id': 987654, 'error': 'User not found'}]

    def test_inactive_campaign(self, admin_client, make_campaign, user):
        campaign = make_campaign(is_active=False)

        response = admin_client.post(
            f'/api/coupon-campaigns/{campaign.pk}/generate/', {'user_ids': [user.pk]}, format='json'
        )

        assert response.status_code == 400


class TestEligibility:

    def test_new_user(self, make_campaign, user):
        campaign = make_campaign(eligibility_criteria=['NEW_USER'])
        assert check_eligibility(user, campaign)

        user.date_joined = timezone.now() - timedelta(days=90)
        assert not check_eligibility(user, campaign)

    def test_referral(self, make_campaign, user, other_user):
        campaign = make_campaign(eligibility_criteria=['REFERRAL'])
        assert not check_eligibility(user, campaign)

        user.referred_by = other_user
        assert check_eligibility(user, campaign)

    def test_user_group(self, make_campaign, user):
        campaign = make_campaign(eligibility_criteria=['SPECIFIC_USER_GROUP'])
        assert not check_eligibility(user, campaign)

        user.user_group = 'VIP'
        assert check_eligibility(user, campaign)

    def test_any_criterion_passes(self, make_campaign, user):
        user.date_joined = timezone.now() - timedelta(days=90)
        campaign = make_campaign(eligibility_criteria=['NEW_USER', 'FIRST_ORDER'])

        assert check_eligibility(user, campaign)


class TestValidateEndpoint:

    def test_discount_against_cart(self, auth_client, user, variant, make_coupon):
        coupon = make_coupon(user)
        _fill_cart(user, variant)

        response = auth_client.post('/api/coupons/validate/', {'coupon_code': coupon.coupon_code.lower()}, format='json')

        assert response.status_code == 200
        assert response.data['discount_amount'] == Decimal('50.00')
        assert response.data['applicable_items'] == 1

    def test_empty_cart(self, auth_client, user, make_coupon):
        coupon = make_coupon(user)

        response = auth_client.post('/api/coupons/validate/', {'coupon_code': coupon.coupon_code}, format='json')

        assert response.status_code == 400

    def test_other_users_coupon_not_found(self, auth_client, user, other_user, variant, make_coupon):
        coupon = make_coupon(other_user)
        _fill_cart(user, variant)

        response = auth_client.post('/api/coupons/validate/', {'coupon_code': coupon.coupon_code}, format='json')

        assert response.status_code == 404
        assert response.data['code'] == 'coupon_not_found'

    def test_minimum_not_met(self, auth_client, user, variant, make_coupon):
        coupon = make_coupon(user, min_purchase_amount=Decimal('5000'))
        _fill_cart(user, variant)

        response = auth_client.post('/api/coupons/validate/', {'coupon_code': coupon.coupon_code}, format='json')

        assert response.status_code == 400
        assert response.data['code'] == 'minimum_not_met'
        assert response.data['min_purchase_amount'] == '5000.00'

    def test_restricted_to_other_category(self, auth_client, user, variant, make_coupon, make_category):
        coupon = make_coupon(user)
        coupon.campaign.applicable_categories.add(make_category())
        _fill_cart(user, variant)

        response = auth_client.post('/api/coupons/validate/', {'coupon_code': coupon.coupon_code}, format='json')

        assert response.status_code == 400
        assert response.data['code'] == 'not_applicable'

    def test_discount_only_on_applicable_lines(self, user, make_variant, make_coupon):
        included = make_variant(price='200.00')
        excluded = make_variant(price='300.00')
        coupon = make_coupon(user)
        coupon.campaign.applicable_variants.add(included)
        order_services.add_cart_item(user, included.pk, 1)
        order_services.add_cart_item(user, excluded.pk, 1)

        cart = order_services.apply_cart_coupon(user, coupon.coupon_code)

        assert cart.coupon_discount_amount == Decimal('20.00')

    def test_campaign_reports_restrictions(self, admin_client, variant, make_campaign):
        open_campaign = make_campaign()
        restricted = make_campaign()
        restricted.applicable_variants.add(variant)

        assert admin_client.get(f'/api/coupon-campaigns/{open_campaign.pk}/').data['has_restrictions'] is False
        assert admin_client.get(f'/api/coupon-campaigns/{restricted.pk}/').data['has_restrictions'] is True

    def test_not_eligible(self, auth_client, user, variant, make_coupon):
        coupon = make_coupon(user, eligibility_criteria=['REFERRAL'])
        _fill_cart(user, variant)

        response = auth_client.post('/api/coupons/validate/', {'coupon_code': coupon.coupon_code}, format='json')

        assert response.status_code == 403
        assert response.data['code'] == 'not_eligible'

    def test_redeemed_coupon(self, auth_client, user, variant, make_coupon):
        coupon = make_coupon(user)
        coupon.increment_usage()
        _fill_cart(user, variant)

        response = auth_client.post('/api/coupons/validate/', {'coupon_code': coupon.coupon_code}, format='json')

        assert response.status_code == 400
        assert response.data['code'] == 'coupon_unusable'


class TestUsage:

    def test_increment_and_reverse(self, user, make_coupon):
        coupon = make_coupon(user)

        coupon.increment_usage()
        assert coupon.is_redeemed
        assert coupon.campaign.current_global_usage == 1

        coupon.reverse_usage()
        assert not coupon.is_redeemed
        assert coupon.campaign.current_global_usage == 0

    def test_status_filter(self, auth_client, user, make_coupon):
        active = make_coupon(user)
        redeemed = make_coupon(user)
        redeemed.increment_usage()

        response = auth_client.get('/api/coupons/', {'status': 'active'})

        assert [row['id'] for row in response.data['results']] == [active.pk]

    def test_admin_deactivate(self, admin_client, user, make_coupon):
        coupon = make_coupon(user)

        response = admin_client.post(f'/api/coupons/{coupon.pk}/deactivate/')

        assert response.status_code == 200
        assert response.data['status'] == UserCoupon.STATUS_INACTIVE


class TestExpiry:

    def test_expire_coupons(self, user, make_coupon):
        coupon = make_coupon(user)
        UserCoupon.objects.filter(pk=coupon.pk).update(expires_at=timezone.now() - timedelta(hours=1))
        CouponCampaign.objects.filter(pk=coupon.campaign_id).update(valid_until=timezone.now() - timedelta(hours=1))

        assert expire_coupons(dry_run=True) == {'coupons': 1, 'campaigns': 1}
        coupon.refresh_from_db()
        assert coupon.is_active

        expire_coupons()
        coupon.refresh_from_db()
        assert not coupon.is_active

    def test_command_output(self, capsys):
        call_command('expire_coupons', '--dry-run')

        assert 'Would deactivate 0 user coupons and 0 campaigns' in capsys.readouterr().out
