"""
Order services - cart maintenance, pricing, placement and the order lifecycle

Stock is reserved against base-unit inventory: a line of N packs of size M
needs N x M base units.
"""
import logging
from collections import defaultdict
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from catalog.models import ProductVariant
from core.audit import log_user_activity, log_admin_action
from core.exceptions import BadRequest, NotFound, PreconditionFailed, ServiceError
from core.models import Address
from core.utils import money
from coupons.services import validate_coupon_for_cart
from inventory.models import Inventory
from inventory.services import get_variant_pack_details, computed_stock
from notifications.services import notify_user
from wallets.services import process_order_payment, process_order_refund
from .models import Cart, CartItem, Order, OrderItem

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = (
    'full_name', 'address_line1', 'address_line2', 'city',
    'state', 'pincode', 'country', 'phone_number'
)


# ============================================================================
# PRICING
# ============================================================================

def calculate_shipping(total_quantity):
    store = settings.STORE
    if total_quantity >= store['FREE_SHIPPING_MIN_QUANTITY']:
        return Decimal('0.00')
    return money(store['SHIPPING_FEE'])


def calculate_tax(subtotal):
    return money(Decimal(subtotal) * Decimal(str(settings.STORE['TAX_RATE'])))


def price_cart(cart):
    """Totals the order would have if placed now"""
    items = list(cart.items.all())
    subtotal = money(sum((item.price_at_addition * item.quantity for item in items), Decimal('0')))
    total_quantity = sum(item.quantity for item in items)
    shipping = calculate_shipping(total_quantity) if items else Decimal('0.00')
    tax = calculate_tax(subtotal)
    discount = money(cart.coupon_discount_amount or 0)
    return {
        'subtotal': subtotal,
        'shipping_cost': shipping,
        'tax_amount': tax,
        'discount_amount': discount,
        'grand_total': Order.calculate_grand_total(subtotal, shipping, tax, discount),
        'total_quantity': total_quantity,
    }


# ============================================================================
# CART
# ============================================================================

def get_or_create_cart(user):
    cart, _ = Cart.objects.get_or_create(user=user)
    return cart


def refresh_cart_coupon(cart):
    """Re-validate the applied coupon after the cart changed"""
    if not cart.applied_coupon_code:
        return
    if not cart.items.exists():
        cart.clear_coupon()
        return
    try:
        result = validate_coupon_for_cart(cart.user, cart.applied_coupon_code, cart)
    except ServiceError as exc:
        logger.info(f"Dropping coupon {cart.applied_coupon_code} from cart {cart.pk}: {exc.detail}")
        cart.clear_coupon()
        return
    cart.apply_coupon(result['coupon'], result['discount'])


def _active_variant(variant_id):
    variant = (
        ProductVariant.objects.select_related('product')
        .prefetch_related('option_values')
        .filter(pk=variant_id, is_active=True, product__is_active=True)
        .first()
    )
    if variant is None:
        raise NotFound('Product variant not found or unavailable.')
    return variant


def _check_stock(variant, quantity):
    available = computed_stock(variant)
    if quantity > available:
        raise PreconditionFailed(
            f"Only {available} units of {variant.product.name} available.",
            code='insufficient_stock',
            extra={'available_stock': available, 'requested': quantity}
        )


@transaction.atomic
def add_cart_item(user, variant_id, quantity):
    if quantity < 1:
        raise BadRequest('Quantity must be at least 1.')
    cart = get_or_create_cart(user)
    variant = _active_variant(variant_id)

    item = cart.items.filter(variant=variant).first()
    new_quantity = quantity + (item.quantity if item else 0)
    _check_stock(variant, new_quantity)

    if item:
        item.quantity = new_quantity
        item.save(update_fields=['quantity', 'updated_at'])
    else:
        CartItem.objects.create(
            cart=cart,
            variant=variant,
            quantity=quantity,
            price_at_addition=variant.effective_price
        )

    refresh_cart_coupon(cart)
    log_user_activity(user, 'CART_ITEM_ADDED', 'Cart', cart.pk, {'variant': variant.pk, 'quantity': quantity})
    return cart


@transaction.atomic
def update_cart_item(user, item_id, quantity):
    """Quantity 0 removes the line"""
    cart = get_or_create_cart(user)
    item = cart.items.select_related('variant__product').filter(pk=item_id).first()
    if item is None:
        raise NotFound('Cart item not found.')

    if quantity <= 0:
        item.delete()
    else:
        _check_stock(item.variant, quantity)
        item.quantity = quantity
        item.save(update_fields=['quantity', 'updated_at'])

    refresh_cart_coupon(cart)
    return cart


@transaction.atomic
def remove_cart_item(user, item_id):
    cart = get_or_create_cart(user)
    deleted, _ = cart.items.filter(pk=item_id).delete()
    if not deleted:
        raise NotFound('Cart item not found.')
    refresh_cart_coupon(cart)
    return cart


@transaction.atomic
def clear_cart(cart):
    cart.items.all().delete()
    cart.clear_coupon()
    return cart


@transaction.atomic
def apply_cart_coupon(user, code):
    cart = get_or_create_cart(user)
    if not cart.items.exists():
        raise BadRequest('Cannot apply coupon to empty cart.')

    result = validate_coupon_for_cart(user, code, cart)
    cart.apply_coupon(result['coupon'], result['discount'])
    log_user_activity(
        user, 'COUPON_APPLIED_TO_CART', 'Cart', cart.pk,
        {'coupon_code': cart.applied_coupon_code, 'discount_amount': str(result['discount'])}
    )
    return cart


def remove_cart_coupon(user):
    cart = get_or_create_cart(user)
    removed = cart.applied_coupon_code
    cart.clear_coupon()
    if removed:
        log_user_activity(user, 'COUPON_REMOVED_FROM_CART', 'Cart', cart.pk, {'coupon_code': removed})
    return cart


# ============================================================================
# INVENTORY HELPERS
# ============================================================================

def _base_requirement(variant, quantity):
    """(base_variant, base_units) for ``quantity`` of ``variant``"""
    details = get_variant_pack_details(variant)
    return details['base_unit_variant'], quantity * details['pack_multiplier']


def restore_inventory(order):
    """Put the order's base units back into stock"""
    for item in order.items.select_related('variant'):
        if item.variant is None:
            logger.warning(f"Order {order.order_number}: variant for {item.sku_code} no longer exists")
            continue
        base, units = _base_requirement(item.variant, item.quantity)
        if base is None:
            logger.warning(f"Order {order.order_number}: no base unit for {item.sku_code}, stock not restored")
            continue
        inventory, _ = Inventory.objects.select_for_update().get_or_create(variant=base)
        inventory.add_stock(units)


# ============================================================================
# PLACEMENT
# ============================================================================

def _resolve_address(user, value, label):
    """Address id owned by ``user`` or an inline address dict -> snapshot dict"""
    from .serializers import AddressSnapshotSerializer

    if value in (None, '', {}):
        raise BadRequest(f'{label} address is required.')

    if isinstance(value, dict):
        serializer = AddressSnapshotSerializer(data=value)
        if not serializer.is_valid():
            raise BadRequest(
                f'Invalid {label.lower()} address.',
                code='invalid_address',
                extra={'errors': serializer.errors}
            )
        snapshot = dict(serializer.validated_data)
        snapshot.setdefault('address_line2', '')
        snapshot.setdefault('country', 'India')
        return snapshot

    try:
        address_id = int(value)
    except (TypeError, ValueError):
        raise BadRequest(f'{label} address must be an address id or an address object.')

    address = Address.objects.filter(pk=address_id, user=user, is_active=True).first()
    if address is None:
        raise NotFound(f'{label} address not found.')
    Address.objects.filter(pk=address.pk).update(usage_count=address.usage_count + 1)
    return address.as_snapshot()


def _resolve_payment_method(user, payment_gateway, payment_method_id):
    from payments.models import PaymentMethod

    if payment_gateway in (Order.GATEWAY_COD, Order.GATEWAY_WALLET) and not payment_method_id:
        return None
    if not payment_method_id:
        raise BadRequest('A payment method is required for this payment gateway.')
    method = PaymentMethod.objects.filter(pk=payment_method_id, user=user, is_active=True).first()
    if method is None:
        raise NotFound('Payment method not found.')
    return method


@transaction.atomic
def place_order(user, shipping_address, billing_address=None, payment_gateway=Order.GATEWAY_COD,
                payment_method_id=None, notes=''):
    """
    Turn the user's cart into an order.
    Everything happens in one transaction; any failure leaves cart and stock untouched.
    """
    shipping = _resolve_address(user, shipping_address, 'Shipping')
    billing = _resolve_address(user, billing_address, 'Billing') if billing_address else dict(shipping)
    payment_method = _resolve_payment_method(user, payment_gateway, payment_method_id)

    cart = Cart.objects.select_for_update().filter(user=user).first()
    items = list(cart.items.select_related('variant__product').prefetch_related('variant__option_values')) if cart else []
    if not items:
        raise BadRequest('Cart is empty.')

    # Coupon
    coupon_result = None
    if cart.applied_coupon_code:
        coupon_result = validate_coupon_for_cart(user, cart.applied_coupon_code, cart)

    # Stock: lock base inventory rows in a stable order, then check requirements
    requirements = []
    needed = defaultdict(int)
    for item in items:
        if not item.variant.is_active:
            raise BadRequest(f'{item.variant.product.name} is no longer available.')
        base, units = _base_requirement(item.variant, item.quantity)
        requirements.append((item, base, units))
        if base is not None:
            needed[base.pk] += units

    inventories = {
        inventory.variant_id: inventory
        for inventory in Inventory.objects.select_for_update().filter(variant_id__in=needed).order_by('pk')
    }
    reserved = defaultdict(int)
    for item, base, units in requirements:
        inventory = inventories.get(base.pk) if base else None
        available = (inventory.stock_quantity if inventory else 0) - reserved[base.pk if base else None]
        if units > available:
            raise PreconditionFailed(
                f"Insufficient stock for {item.variant.product.name}. "
                f"Available: {max(available, 0)}, Required: {units}",
                code='insufficient_stock'
            )
        reserved[base.pk] += units

    # Totals
    subtotal = money(sum((item.price_at_addition * item.quantity for item in items), Decimal('0')))
    shipping_cost = calculate_shipping(sum(item.quantity for item in items))
    tax_amount = calculate_tax(subtotal)
    discount = coupon_result['discount'] if coupon_result else Decimal('0.00')

    order = Order(
        user=user,
        payment_method=payment_method,
        payment_gateway=payment_gateway,
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        tax_amount=tax_amount,
        discount_amount=discount,
        grand_total=Order.calculate_grand_total(subtotal, shipping_cost, tax_amount, discount),
        applied_coupon=coupon_result['coupon'] if coupon_result else None,
        applied_coupon_code=coupon_result['coupon'].coupon_code if coupon_result else '',
        notes=notes or '',
    )
    for field in ADDRESS_FIELDS:
        setattr(order, f'shipping_{field}', shipping.get(field, ''))
        setattr(order, f'billing_{field}', billing.get(field, ''))
    order.save()

    OrderItem.objects.bulk_create([
        OrderItem(
            order=order,
            variant=item.variant,
            sku_code=item.variant.sku_code,
            product_name=item.variant.product.name,
            variant_options=item.variant.option_summary,
            quantity=item.quantity,
            price=item.price_at_addition,
            subtotal=money(item.price_at_addition * item.quantity),
        )
        for item in items
    ])

    for base_id, units in reserved.items():
        if base_id is not None:
            inventories[base_id].remove_stock(units)

    if coupon_result:
        coupon_result['coupon'].increment_usage()

    if payment_gateway == Order.GATEWAY_WALLET:
        process_order_payment(user, order, order.grand_total)
        order.payment_status = Order.PAYMENT_PAID
        order.save(update_fields=['payment_status', 'updated_at'])

    clear_cart(cart)

    logger.info(f"Order {order.order_number} placed by {user.email}: {order.grand_total}")
    log_user_activity(
        user, 'ORDER_PLACED', 'Order', order.pk,
        {'order_number': order.order_number, 'grand_total': str(order.grand_total), 'gateway': payment_gateway}
    )
    notify_user(
        user,
        'Order placed',
        f"Your order {order.order_number} has been placed.",
        notification_type='ORDER_UPDATE',
        related_entity_type='ORDER',
        related_entity_id=order.pk,
    )
    return order


# ============================================================================
# LIFECYCLE
# ============================================================================

@transaction.atomic
def cancel_order(order, reason='', actor=None):
    order = Order.objects.select_for_update().get(pk=order.pk)
    if not order.can_be_cancelled:
        raise BadRequest(f'Order cannot be cancelled in status {order.order_status}.')

    restore_inventory(order)

    if order.applied_coupon_id:
        order.applied_coupon.reverse_usage()

    order.order_status = Order.STATUS_CANCELLED
    order.cancelled_at = timezone.now()
    order.append_note(f"Cancelled: {reason or 'No reason given'}")

    if order.payment_gateway == Order.GATEWAY_WALLET and order.payment_status == Order.PAYMENT_PAID:
        amount = order.refundable_amount
        if amount > 0:
            process_order_refund(order.user, order, amount)
        order.refunded_amount = order.grand_total
        order.payment_status = Order.PAYMENT_REFUNDED

    order.save()

    logger.info(f"Order {order.order_number} cancelled by {getattr(actor, 'email', 'system')}")
    notify_user(
        order.user,
        'Order cancelled',
        f"Your order {order.order_number} has been cancelled.",
        notification_type='ORDER_UPDATE',
        related_entity_type='ORDER',
        related_entity_id=order.pk,
    )
    return order


@transaction.atomic
def request_return(order, reason=''):
    order = Order.objects.select_for_update().get(pk=order.pk)
    if not order.can_be_returned:
        raise BadRequest('Only delivered orders can be returned.')
    order.order_status = Order.STATUS_RETURN_REQUESTED
    order.append_note(f"Return requested: {reason or 'No reason given'}")
    order.save(update_fields=['order_status', 'notes', 'updated_at'])
    log_user_activity(order.user, 'RETURN_REQUESTED', 'Order', order.pk, {'reason': reason})
    return order


ALLOWED_TRANSITIONS = {
    Order.STATUS_PENDING: {Order.STATUS_PROCESSING, Order.STATUS_CANCELLED},
    Order.STATUS_PROCESSING: {Order.STATUS_SHIPPED, Order.STATUS_CANCELLED},
    Order.STATUS_SHIPPED: {Order.STATUS_DELIVERED},
    Order.STATUS_DELIVERED: {Order.STATUS_RETURN_REQUESTED},
    Order.STATUS_RETURN_REQUESTED: {Order.STATUS_RETURNED},
}


@transaction.atomic
def update_status(order, new_status, admin=None, tracking_number='', shipping_carrier='', notes=''):
    """Admin status transition"""
    if new_status == Order.STATUS_CANCELLED:
        order = cancel_order(order, notes, admin)
        log_admin_action(admin, 'UPDATE_ORDER_STATUS', 'Order', order.pk, {'status': new_status})
        return order

    order = Order.objects.select_for_update().get(pk=order.pk)
    old_status = order.order_status
    if new_status not in ALLOWED_TRANSITIONS.get(old_status, set()):
        raise BadRequest(f'Cannot change order status from {old_status} to {new_status}.')

    now = timezone.now()
    if new_status == Order.STATUS_SHIPPED:
        if not order.can_be_shipped:
            raise BadRequest('Order must be paid (or cash on delivery) before shipping.')
        order.tracking_number = tracking_number or order.tracking_number
        order.shipping_carrier = shipping_carrier or order.shipping_carrier
        order.shipped_at = now
    elif new_status == Order.STATUS_DELIVERED:
        order.delivered_at = now
        if order.payment_gateway == Order.GATEWAY_COD:
            order.payment_status = Order.PAYMENT_PAID
    elif new_status == Order.STATUS_RETURNED:
        restore_inventory(order)

    order.order_status = new_status
    if notes:
        order.append_note(notes)
    order.save()

    log_admin_action(admin, 'UPDATE_ORDER_STATUS', 'Order', order.pk, {'from': old_status, 'to': new_status})
    notify_user(
        order.user,
        'Order update',
        f"Your order {order.order_number} is now {order.get_order_status_display()}.",
        notification_type='SHIPPING_UPDATE' if new_status == Order.STATUS_SHIPPED else 'ORDER_UPDATE',
        related_entity_type='ORDER',
        related_entity_id=order.pk,
    )
    return order


@transaction.atomic
def process_refund(order, amount=None, reason='', to_wallet=False, admin=None):
    order = Order.objects.select_for_update().get(pk=order.pk)
    if order.payment_status not in (Order.PAYMENT_PAID, Order.PAYMENT_PARTIALLY_REFUNDED):
        raise BadRequest('Only paid orders can be refunded.')

    remaining = order.refundable_amount
    amount = remaining if amount is None else money(amount)
    if amount <= 0 or amount > remaining:
        raise BadRequest(
            f'Refund amount must be between 0 and {remaining}.',
            code='invalid_refund_amount',
            extra={'refundable_amount': str(remaining)}
        )

    order.refunded_amount = money(order.refunded_amount + amount)
    order.payment_status = (
        Order.PAYMENT_REFUNDED if order.refunded_amount >= order.grand_total
        else Order.PAYMENT_PARTIALLY_REFUNDED
    )
    destination = 'wallet' if to_wallet else 'original payment method'
    order.append_note(f"Refunded {amount} to {destination}: {reason or 'No reason given'}")
    order.save(update_fields=['refunded_amount', 'payment_status', 'notes', 'updated_at'])

    if to_wallet:
        process_order_refund(order.user, order, amount)

    log_admin_action(admin, 'REFUND_ORDER', 'Order', order.pk, {'amount': str(amount), 'to_wallet': to_wallet})
    notify_user(
        order.user,
        'Refund processed',
        f"A refund of {amount} for order {order.order_number} has been processed.",
        notification_type='PAYMENT_SUCCESS',
        related_entity_type='ORDER',
        related_entity_id=order.pk,
    )
    return order
