"""
Wallet services

Every balance change goes through perform_atomic_wallet_transaction, which
locks the wallet row, writes the ledger entry and moves the balance in one
database transaction.
"""
import hashlib
import hmac
import logging
import random
import string
import time
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import transaction
from django.db.models import Sum, Count, Q
from django.utils import timezone

from core.audit import log_user_activity, log_admin_action
from core.exceptions import BadRequest, NotFound
from core.utils import money
from .models import Wallet, WalletTransaction

logger = logging.getLogger(__name__)

BASE36 = string.digits + string.ascii_lowercase


def get_or_create_wallet(user):
    wallet, created = Wallet.objects.get_or_create(
        user=user,
        defaults={'currency': settings.STORE['DEFAULT_CURRENCY']}
    )
    if created:
        logger.info(f"Created wallet for {user.email}")
    return wallet


# ============================================================================
# VALIDATION
# ============================================================================

def validate_transaction_amount(amount, currency='INR'):
    """Normalised Decimal amount, or BadRequest"""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        raise BadRequest('Amount must be a number.', code='invalid_amount')

    if not value.is_finite():
        raise BadRequest('Amount must be a number.', code='invalid_amount')
    if value.as_tuple().exponent < -2:
        raise BadRequest('Amount cannot have more than 2 decimal places.', code='invalid_amount')

    limits = settings.STORE['WALLET_AMOUNT_LIMITS']
    minimum, maximum = limits.get(currency, limits['DEFAULT'])
    minimum, maximum = Decimal(str(minimum)), Decimal(str(maximum))
    if value < minimum or value > maximum:
        raise BadRequest(
            f'Amount must be between {minimum} and {maximum} {currency}.',
            code='amount_out_of_range',
            extra={'min_amount': str(minimum), 'max_amount': str(maximum)}
        )
    return money(value)


def check_transaction_limits(user, amount, transaction_type):
    """Today's COMPLETED total of this type plus ``amount`` must stay within the daily limit"""
    daily_limit = Decimal(str(settings.STORE['WALLET_DAILY_LIMITS'][transaction_type]))
    start_of_day = timezone.localtime().replace(hour=0, minute=0, second=0, microsecond=0)

    today_total = WalletTransaction.objects.filter(
        user=user,
        transaction_type=transaction_type,
        status=WalletTransaction.STATUS_COMPLETED,
        created_at__gte=start_of_day,
    ).aggregate(total=Sum('amount'))['total'] or Decimal('0')

    if today_total + Decimal(amount) > daily_limit:
        raise BadRequest(
            f'Daily {transaction_type.lower()} limit exceeded.',
            code='daily_limit_exceeded',
            extra={
                'daily_limit': str(daily_limit),
                'today_total': str(money(today_total)),
                'remaining_limit': str(money(max(daily_limit - today_total, Decimal('0')))),
            }
        )


# ============================================================================
# CORE TRANSACTION
# ============================================================================

@transaction.atomic
def perform_atomic_wallet_transaction(user, amount, transaction_type, reference_type, reference_id='',
                                      description='', actor=WalletTransaction.ACTOR_USER, initiated_by=None,
                                      payment_method=None, metadata=None):
    wallet = Wallet.objects.select_for_update().filter(user=user).first()
    if wallet is None:
        get_or_create_wallet(user)
        wallet = Wallet.objects.select_for_update().get(user=user)

    if not wallet.can_transact:
        raise BadRequest(f'Wallet is {wallet.status.lower()}.', code='wallet_unavailable')

    amount = money(amount)
    if transaction_type == WalletTransaction.TYPE_DEBIT and wallet.balance < amount:
        raise BadRequest(
            'Insufficient wallet balance',
            code='insufficient_balance',
            extra={'balance': str(wallet.balance), 'required': str(amount)}
        )

    txn = WalletTransaction.objects.create(
        wallet=wallet,
        user=user,
        transaction_type=transaction_type,
        amount=amount,
        currency=wallet.currency,
        description=description[:250],
        reference_type=reference_type,
        reference_id=str(reference_id),
        initiated_by_actor=actor,
        initiated_by=initiated_by,
        payment_method=payment_method,
        metadata=metadata or {},
    )

    _apply_to_wallet(wallet, txn)
    return txn


def _apply_to_wallet(wallet, txn):
    """Move the locked wallet's balance and complete ``txn``"""
    now = timezone.now()
    if txn.transaction_type == WalletTransaction.TYPE_CREDIT:
        wallet.balance = money(wallet.balance + txn.amount)
    else:
        wallet.balance = money(wallet.balance - txn.amount)
    wallet.version += 1
    wallet.last_transaction_at = now
    wallet.save(update_fields=['balance', 'version', 'last_transaction_at', 'updated_at'])

    txn.status = WalletTransaction.STATUS_COMPLETED
    txn.balance_after_transaction = wallet.balance
    txn.completed_at = now
    txn.save(update_fields=['status', 'balance_after_transaction', 'completed_at', 'updated_at'])

    logger.info(
        f"Wallet {wallet.pk} {txn.transaction_type} {txn.amount} ({txn.reference_type}) "
        f"-> balance {wallet.balance}"
    )


# ============================================================================
# ORDER HELPERS
# ============================================================================

def process_order_payment(user, order, amount):
    return perform_atomic_wallet_transaction(
        user, amount,
        WalletTransaction.TYPE_DEBIT,
        WalletTransaction.REF_ORDER,
        reference_id=order.pk,
        description=f"Payment for order {order.order_number}",
        actor=WalletTransaction.ACTOR_USER,
        initiated_by=user,
    )


def process_order_refund(user, order, amount):
    return perform_atomic_wallet_transaction(
        user, amount,
        WalletTransaction.TYPE_CREDIT,
        WalletTransaction.REF_REFUND,
        reference_id=order.pk,
        description=f"Refund for order {order.order_number}",
        actor=WalletTransaction.ACTOR_SYSTEM,
    )


def process_admin_adjustment(user, amount, transaction_type, description, admin):
    wallet = get_or_create_wallet(user)
    amount = validate_transaction_amount(amount, wallet.currency)
    txn = perform_atomic_wallet_transaction(
        user, amount,
        transaction_type,
        WalletTransaction.REF_ADMIN_ADJUSTMENT,
        reference_id=f"admin-{admin.pk}",
        description=f"Admin Adjustment: {description}",
        actor=WalletTransaction.ACTOR_ADMIN,
        initiated_by=admin,
    )
    log_admin_action(
        admin, 'WALLET_ADJUSTMENT', 'Wallet', txn.wallet_id,
        {'user_id': user.pk, 'type': transaction_type, 'amount': str(amount), 'description': description}
    )
    return txn


# ============================================================================
# TOP-UP
# ============================================================================

def generate_gateway_transaction_id():
    """TXN_{epoch_ms}_{9 random base36 chars}"""
    suffix = ''.join(random.choices(BASE36, k=9))
    return f"TXN_{int(time.time() * 1000)}_{suffix}"


def initiate_topup(user, amount, payment_method=None):
    wallet = get_or_create_wallet(user)
    if not wallet.can_transact:
        raise BadRequest(f'Wallet is {wallet.status.lower()}.', code='wallet_unavailable')

    amount = validate_transaction_amount(amount, wallet.currency)
    check_transaction_limits(user, amount, WalletTransaction.TYPE_CREDIT)

    gateway_id = generate_gateway_transaction_id()
    expires_at = timezone.now() + timedelta(minutes=settings.STORE['TOPUP_EXPIRY_MINUTES'])
    txn = WalletTransaction.objects.create(
        wallet=wallet,
        user=user,
        transaction_type=WalletTransaction.TYPE_CREDIT,
        amount=amount,
        currency=wallet.currency,
        description='Wallet top-up',
        reference_type=WalletTransaction.REF_PAYMENT_GATEWAY,
        reference_id=gateway_id,
        status=WalletTransaction.STATUS_PENDING,
        initiated_by_actor=WalletTransaction.ACTOR_USER,
        initiated_by=user,
        payment_method=payment_method,
        gateway_transaction_id=gateway_id,
        metadata={'expires_at': expires_at.isoformat()},
    )

    log_user_activity(user, 'WALLET_TOPUP_INITIATED', 'WalletTransaction', txn.pk, {'amount': str(amount)})
    return {
        'transaction': txn,
        'gateway_transaction_id': gateway_id,
        'payment_url': f"{settings.FRONTEND_URL}/wallet/topup/pay?txn={gateway_id}",
        'expires_at': expires_at,
    }


def sign_callback_payload(payload):
    """Hex HMAC-SHA256 of the raw callback body"""
    return hmac.new(settings.WALLET_CALLBACK_SECRET.encode(), payload, hashlib.sha256).hexdigest()


def verify_callback_signature(payload, signature):
    if not settings.WALLET_CALLBACK_SECRET or not signature:
        return False
    return hmac.compare_digest(sign_callback_payload(payload), signature)


@transaction.atomic
def process_topup_completion(gateway_transaction_id, gateway_response=None, success=True):
    """Idempotent: a transaction that is already final is returned unchanged"""
    from notifications.services import notify_user

    txn = (
        WalletTransaction.objects.select_for_update()
        .filter(gateway_transaction_id=gateway_transaction_id)
        .first()
    )
    if txn is None:
        raise NotFound('Transaction not found.')
    if txn.status in WalletTransaction.FINAL_STATUSES:
        return txn

    txn.gateway_response = gateway_response or {}
    if not success:
        txn.status = WalletTransaction.STATUS_FAILED
        txn.failed_at = timezone.now()
        txn.failure_reason = str((gateway_response or {}).get('reason', 'Payment failed'))[:500]
        txn.save(update_fields=['gateway_response', 'status', 'failed_at', 'failure_reason', 'updated_at'])
        logger.warning(f"Top-up {gateway_transaction_id} failed: {txn.failure_reason}")
        return txn

    txn.save(update_fields=['gateway_response', 'updated_at'])
    wallet = Wallet.objects.select_for_update().get(pk=txn.wallet_id)
    _apply_to_wallet(wallet, txn)

    log_user_activity(txn.user, 'WALLET_TOPUP_COMPLETED', 'WalletTransaction', txn.pk, {'amount': str(txn.amount)})
    notify_user(
        txn.user,
        'Wallet topped up',
        f"{txn.amount} {txn.currency} has been added to your wallet.",
        notification_type='PAYMENT_SUCCESS',
        related_entity_type='PAYMENT',
        related_entity_id=txn.pk,
    )
    return txn


# ============================================================================
# REPORTING
# ============================================================================

def get_transaction_summary(user, start=None, end=None):
    queryset = WalletTransaction.objects.filter(user=user, status=WalletTransaction.STATUS_COMPLETED)
    if start:
        queryset = queryset.filter(created_at__gte=start)
    if end:
        queryset = queryset.filter(created_at__lte=end)

    totals = queryset.aggregate(
        credits=Sum('amount', filter=Q(transaction_type=WalletTransaction.TYPE_CREDIT)),
        debits=Sum('amount', filter=Q(transaction_type=WalletTransaction.TYPE_DEBIT)),
        count=Count('id'),
    )
    credits = totals['credits'] or Decimal('0.00')
    debits = totals['debits'] or Decimal('0.00')
    return {
        'total_credits': money(credits),
        'total_debits': money(debits),
        'net_change': money(credits - debits),
        'transaction_count': totals['count'],
    }
