"""
Coupon services - code generation, eligibility and cart validation
"""
import logging
import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from core.exceptions import BadRequest, Forbidden, NotFound
from core.utils import money
from .models import (
    CouponCampaign, UserCoupon,
    ELIGIBILITY_NEW_USER, ELIGIBILITY_REFERRAL, ELIGIBILITY_FIRST_ORDER,
    ELIGIBILITY_USER_GROUP, ELIGIBILITY_ALL_USERS, ELIGIBILITY_NONE,
)

logger = logging.getLogger(__name__)

PRIVILEGED_GROUPS = ('PREMIUM', 'VIP')


# ============================================================================
# CODE GENERATION
# ============================================================================

def _generate_code(campaign):
    prefix = campaign.code_prefix or 'COUPON-'
    for _ in range(settings.STORE['COUPON_CODE_ATTEMPTS']):
        code = f"{prefix}{uuid.uuid4().hex[:8]}".upper()
        if not UserCoupon.objects.filter(coupon_code=code).exists():
            return code
    return None


def generate_user_coupons(campaign, user_ids, number_of_codes=1):
    """
    Create ``number_of_codes`` coupons for each user.
    Per-user failures are reported in ``errors`` instead of aborting the batch.
    """
    if not campaign.is_active:
        raise BadRequest('Campaign is not active.')
    if not campaign.can_generate_more_codes:
        raise BadRequest('Campaign has reached its global usage limit.')

    User = get_user_model()
    users = User.objects.in_bulk(user_ids)
    generated = []
    errors = []

    for user_id in user_ids:
        user = users.get(user_id)
        if user is None:
            errors.append({'user_id': user_id, 'error': 'User not found'})
            continue

        if campaign.is_unique_per_user and UserCoupon.objects.filter(campaign=campaign, user=user).exists():
            errors.append({'user_id': user_id, 'error': 'User already has a coupon for this campaign'})
            continue

        count = 1 if campaign.is_unique_per_user else number_of_codes
        for _ in range(count):
            code = _generate_code(campaign)
            if code is None:
                errors.append({'user_id': user_id, 'error': 'Could not generate a unique code'})
                break
            coupon = UserCoupon.objects.create(
                campaign=campaign,
                user=user,
                coupon_code=code,
                expires_at=campaign.valid_until,
            )
            generated.append(coupon)

    logger.info(f"Generated {len(generated)} coupons for campaign '{campaign.name}' ({len(errors)} errors)")
    return {
        'generated_coupons': generated,
        'total_generated': len(generated),
        'total_requested': len(user_ids) * number_of_codes,
        'errors': errors,
    }


# ============================================================================
# ELIGIBILITY
# ============================================================================

def check_eligibility(user, campaign):
    """True when any listed criterion passes"""
    from orders.models import Order

    criteria = campaign.eligibility_criteria or [ELIGIBILITY_NONE]

    for criterion in criteria:
        if criterion in (ELIGIBILITY_ALL_USERS, ELIGIBILITY_NONE):
            return True
        if criterion == ELIGIBILITY_NEW_USER:
            window = timedelta(days=settings.STORE['NEW_USER_DAYS'])
            if user.date_joined >= timezone.now() - window:
                return True
        elif criterion == ELIGIBILITY_FIRST_ORDER:
            if not Order.objects.filter(user=user, order_status=Order.STATUS_DELIVERED).exists():
                return True
        elif criterion == ELIGIBILITY_REFERRAL:
            if user.referred_by_id:
                return True
        elif criterion == ELIGIBILITY_USER_GROUP:
            if user.user_group in PRIVILEGED_GROUPS:
                return True

    return False


# ============================================================================
# CART VALIDATION
# ============================================================================

def applicable_amount_for_items(campaign, items):
    """
    (applicable_amount, applicable_items) over cart/order lines.
    Each line needs .variant, .quantity and .price_at_addition
    """
    variant_ids = set(campaign.applicable_variants.values_list('pk', flat=True))
    category_ids = set(campaign.applicable_categories.values_list('pk', flat=True))
    restricted = bool(variant_ids or category_ids)

    amount = Decimal('0')
    count = 0
    for item in items:
        if restricted and item.variant_id not in variant_ids and item.variant.product.category_id not in category_ids:
            continue
        amount += item.price_at_addition * item.quantity
        count += 1
    return money(amount), count


def validate_coupon_for_cart(user, code, cart):
    """
    Returns {'coupon', 'campaign', 'discount', 'applicable_amount', 'applicable_items'}
    or raises a ServiceError describing why the coupon cannot be used.
    """
    code = (code or '').strip().upper()
    if not code:
        raise BadRequest('Coupon code is required.')

    coupon = (
        UserCoupon.objects.select_related('campaign')
        .filter(coupon_code=code, user=user)
        .first()
    )
    if coupon is None:
        raise NotFound('Coupon not found.', code='coupon_not_found')

    usable, reason = coupon.can_be_used()
    if not usable:
        raise BadRequest(reason, code='coupon_unusable')

    campaign = coupon.campaign
    if not campaign.is_valid:
        raise BadRequest('Coupon campaign is not currently valid.', code='campaign_invalid')

    items = list(cart.items.select_related('variant__product'))
    subtotal = money(sum((item.price_at_addition * item.quantity for item in items), Decimal('0')))
    if subtotal < campaign.min_purchase_amount:
        raise BadRequest(
            f"Minimum purchase of {campaign.min_purchase_amount} required for this coupon.",
            code='minimum_not_met',
            extra={'min_purchase_amount': str(campaign.min_purchase_amount)}
        )

    applicable_amount, applicable_items = applicable_amount_for_items(campaign, items)
    if applicable_items == 0:
        raise BadRequest('This coupon is not applicable to any items in your cart.', code='not_applicable')

    if not check_eligibility(user, campaign):
        raise Forbidden('You are not eligible for this coupon.', code='not_eligible')

    discount = min(campaign.calculate_discount(applicable_amount, check_minimum=False), subtotal)

    return {
        'coupon': coupon,
        'campaign': campaign,
        'discount': money(discount),
        'applicable_amount': applicable_amount,
        'applicable_items': applicable_items,
    }


@transaction.atomic
def expire_coupons(dry_run=False):
    """Deactivate expired user coupons and campaigns past valid_until"""
    now = timezone.now()
    coupons = UserCoupon.objects.filter(is_active=True, is_redeemed=False, expires_at__lt=now)
    campaigns = CouponCampaign.objects.filter(is_active=True, valid_until__lt=now)

    result = {'coupons': coupons.count(), 'campaigns': campaigns.count()}
    if not dry_run:
        coupons.update(is_active=False, updated_at=now)
        campaigns.update(is_active=False, updated_at=now)
        logger.info(f"Expired {result['coupons']} coupons and {result['campaigns']} campaigns")
    return result
