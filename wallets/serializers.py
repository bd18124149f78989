from rest_framework import serializers

from .models import Wallet, WalletTransaction


class WalletSerializer(serializers.ModelSerializer):
    user_email = serializers.EmailField(source='user.email', read_only=True)
    can_transact = serializers.BooleanField(read_only=True)

    class Meta:
        model = Wallet
        fields = [
            'id', 'user', 'user_email', 'balance', 'currency', 'status',
            'can_transact', 'last_transaction_at', 'version', 'created_at'
        ]
        read_only_fields = fields


class WalletTransactionSerializer(serializers.ModelSerializer):

    class Meta:
        model = WalletTransaction
        fields = [
            'id', 'transaction_type', 'amount', 'currency', 'description',
            'reference_type', 'reference_id', 'balance_after_transaction', 'status',
            'initiated_by_actor', 'failure_reason', 'gateway_transaction_id',
            'created_at', 'completed_at', 'failed_at'
        ]
        read_only_fields = fields


class TopupInitiateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_method = serializers.IntegerField(required=False, allow_null=True)


class TopupCallbackSerializer(serializers.Serializer):
    SUCCESS_STATUSES = ('SUCCESS', 'COMPLETED')

    gateway_transaction_id = serializers.CharField(max_length=100)
    status = serializers.CharField(max_length=20)
    gateway_response = serializers.DictField(required=False, default=dict)

    @property
    def is_success(self):
        return self.validated_data['status'].upper() in self.SUCCESS_STATUSES


class AdminAdjustmentSerializer(serializers.Serializer):
    user = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    transaction_type = serializers.ChoiceField(choices=WalletTransaction.TYPE_CHOICES)
    description = serializers.CharField(max_length=200)


class WalletStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Wallet.STATUS_CHOICES)
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)
