"""
Stripe integration
Backend is the source of truth for every amount sent to Stripe
"""
import logging
from decimal import Decimal

import stripe
from django.conf import settings
from django.db import transaction

from core.exceptions import BadGateway, BadRequest, NotFound
from orders.models import Order

logger = logging.getLogger(__name__)

# Initialize Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY

KIND_ORDER = 'order'
KIND_WALLET_TOPUP = 'wallet_topup'


def to_minor_units(amount):
    """Rupees -> paise"""
    return int((Decimal(amount) * 100).to_integral_value())


def _create_session(name, amount, currency, customer_email, metadata):
    try:
        return stripe.checkout.Session.create(
            payment_method_types=['card'],
            line_items=[{
                'price_data': {
                    'currency': currency.lower(),
                    'product_data': {'name': name},
                    'unit_amount': to_minor_units(amount),
                },
                'quantity': 1,
            }],
            mode='payment',
            success_url=settings.STRIPE_SUCCESS_URL + '?session_id={CHECKOUT_SESSION_ID}',
            cancel_url=settings.STRIPE_CANCEL_URL,
            customer_email=customer_email,
            metadata=metadata,
            payment_intent_data={'metadata': metadata},
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe error: {str(e)}")
        raise BadGateway('Payment processing error. Please try again.', code='payment_gateway_error')


def create_order_checkout(user, order_id):
    order = Order.objects.filter(pk=order_id, user=user).first()
    if order is None:
        raise NotFound('Order not found.')
    if order.payment_status != Order.PAYMENT_PENDING:
        raise BadRequest('Order is not awaiting payment.')
    if order.payment_gateway not in Order.ONLINE_GATEWAYS:
        raise BadRequest(f'Orders paid by {order.payment_gateway} do not use card checkout.')

    session = _create_session(
        f"Order {order.order_number}",
        order.grand_total,
        settings.STORE['DEFAULT_CURRENCY'],
        user.email,
        {'kind': KIND_ORDER, 'order_id': str(order.pk)},
    )
    order.gateway_session_id = session.id
    order.save(update_fields=['gateway_session_id', 'updated_at'])

    logger.info(f"Created checkout session for order {order.order_number}: {session.id}")
    return {'checkout_url': session.url, 'session_id': session.id, 'order': order.pk}


def create_topup_checkout(user, gateway_transaction_id):
    from wallets.models import WalletTransaction

    txn = WalletTransaction.objects.filter(
        gateway_transaction_id=gateway_transaction_id,
        user=user,
        status=WalletTransaction.STATUS_PENDING,
    ).first()
    if txn is None:
        raise NotFound('Pending top-up not found.')

    session = _create_session(
        'Wallet top-up',
        txn.amount,
        txn.currency,
        user.email,
        {'kind': KIND_WALLET_TOPUP, 'gateway_transaction_id': gateway_transaction_id},
    )
    logger.info(f"Created checkout session for top-up {gateway_transaction_id}: {session.id}")
    return {'checkout_url': session.url, 'session_id': session.id}


# ============================================================================
# WEBHOOK HANDLERS
# ============================================================================

@transaction.atomic
def handle_checkout_session_completed(session):
    from notifications.services import notify_user
    from wallets.services import process_topup_completion

    metadata = session.get('metadata') or {}
    kind = metadata.get('kind')

    if kind == KIND_WALLET_TOPUP:
        process_topup_completion(
            metadata.get('gateway_transaction_id'),
            {'session_id': session.get('id'), 'payment_intent': session.get('payment_intent')},
            success=True,
        )
        return

    if kind != KIND_ORDER:
        logger.warning(f"Checkout session {session.get('id')} has unknown kind '{kind}'")
        return

    order = Order.objects.select_for_update().filter(pk=metadata.get('order_id')).first()
    if order is None:
        logger.error(f"Order not found for checkout session {session.get('id')}")
        return
    if order.payment_status == Order.PAYMENT_PAID:
        return

    order.payment_status = Order.PAYMENT_PAID
    if order.order_status == Order.STATUS_PENDING:
        order.order_status = Order.STATUS_PROCESSING
    order.gateway_session_id = session.get('id') or order.gateway_session_id
    order.save(update_fields=['payment_status', 'order_status', 'gateway_session_id', 'updated_at'])

    logger.info(f"Order {order.order_number} marked as PAID")
    notify_user(
        order.user,
        'Payment received',
        f"Payment for order {order.order_number} was successful.",
        notification_type='PAYMENT_SUCCESS',
        related_entity_type='ORDER',
        related_entity_id=order.pk,
    )


@transaction.atomic
def handle_payment_failed(payment_intent):
    from notifications.services import notify_user
    from wallets.services import process_topup_completion

    metadata = payment_intent.get('metadata') or {}
    error = (payment_intent.get('last_payment_error') or {}).get('message', 'Payment failed')

    if metadata.get('kind') == KIND_WALLET_TOPUP:
        process_topup_completion(metadata.get('gateway_transaction_id'), {'reason': error}, success=False)
        return

    order = Order.objects.filter(pk=metadata.get('order_id')).first()
    if order is None or order.payment_status != Order.PAYMENT_PENDING:
        return

    order.payment_status = Order.PAYMENT_FAILED
    order.save(update_fields=['payment_status', 'updated_at'])
    logger.info(f"Order {order.order_number} marked as FAILED")
    notify_user(
        order.user,
        'Payment failed',
        f"Payment for order {order.order_number} failed: {error}",
        notification_type='PAYMENT_FAILED',
        related_entity_type='ORDER',
        related_entity_id=order.pk,
    )
