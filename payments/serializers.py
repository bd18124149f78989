"""
Payment Serializers
Validates saved payment method details per type
"""
import re

from django.utils import timezone
from rest_framework import serializers
from rest_framework.exceptions import ValidationError

from .models import PaymentMethod

UPI_PATTERN = re.compile(r'^[\w.\-]{2,256}@[a-zA-Z]{2,64}$')


def _validate_card(details):
    errors = {}
    last4 = str(details.get('card_last4', ''))
    if not re.fullmatch(r'\d{4}', last4):
        errors['card_last4'] = 'Must be exactly 4 digits.'
    if not details.get('card_brand'):
        errors['card_brand'] = 'Card brand is required.'

    try:
        month = int(details.get('expiry_month'))
        year = int(details.get('expiry_year'))
    except (TypeError, ValueError):
        errors['expiry'] = 'Expiry month and year are required.'
        return errors

    if not 1 <= month <= 12:
        errors['expiry_month'] = 'Must be between 1 and 12.'
    today = timezone.now().date()
    if year < today.year or (year == today.year and month < today.month):
        errors['expiry_year'] = 'Card has expired.'
    return errors


def validate_method_details(method_type, details):
    if not isinstance(details, dict):
        raise ValidationError({"details": "Must be an object."})

    if method_type in PaymentMethod.CARD_TYPES:
        errors = _validate_card(details)
    elif method_type == PaymentMethod.TYPE_UPI:
        errors = {} if UPI_PATTERN.match(str(details.get('upi_id', ''))) else {'upi_id': 'Enter a valid UPI id (name@handle).'}
    elif method_type == PaymentMethod.TYPE_WALLET:
        errors = {} if details.get('wallet_provider') else {'wallet_provider': 'Wallet provider is required.'}
    elif method_type == PaymentMethod.TYPE_NETBANKING:
        errors = {} if details.get('bank_name') else {'bank_name': 'Bank name is required.'}
    else:
        errors = {}

    if errors:
        raise ValidationError({"details": errors})


class PaymentMethodSerializer(serializers.ModelSerializer):
    user_email = serializers.EmailField(source='user.email', read_only=True)

    class Meta:
        model = PaymentMethod
        fields = [
            'id', 'user', 'user_email', 'method_type', 'alias', 'is_default',
            'details', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['user', 'is_active', 'created_at', 'updated_at']

    def validate(self, data):
        method_type = data.get('method_type', getattr(self.instance, 'method_type', None))
        details = data.get('details', getattr(self.instance, 'details', {}))
        validate_method_details(method_type, details)
        return data


class CheckoutSerializer(serializers.Serializer):
    order = serializers.IntegerField()


class TopupCheckoutSerializer(serializers.Serializer):
    gateway_transaction_id = serializers.CharField(max_length=100)
