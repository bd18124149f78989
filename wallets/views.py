"""
Wallet Views - balance, ledger and top-ups for users; adjustments for admins
"""
import logging
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.db.models import Count, Sum
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, filters, mixins, status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from core.audit import log_admin_action
from core.exceptions import BadRequest, NotFound
from core.permissions import IsAdmin
from .models import Wallet, WalletTransaction
from .serializers import (
    WalletSerializer,
    WalletTransactionSerializer,
    TopupInitiateSerializer,
    TopupCallbackSerializer,
    AdminAdjustmentSerializer,
    WalletStatusSerializer,
)
from . import services

logger = logging.getLogger(__name__)
User = get_user_model()


class WalletViewSet(viewsets.GenericViewSet):
    """
    The current user's wallet
    """
    permission_classes = [IsAuthenticated]
    serializer_class = WalletTransactionSerializer
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['transaction_type', 'status', 'reference_type']
    ordering_fields = ['created_at', 'amount']

    def get_permissions(self):
        if self.action == 'topup_callback':
            return [AllowAny()]
        return super().get_permissions()

    def get_queryset(self):
        return WalletTransaction.objects.filter(user=self.request.user)

    @action(detail=False, methods=['get'])
    def balance(self, request):
        """GET /api/wallet/balance/"""
        wallet = services.get_or_create_wallet(request.user)
        return Response(WalletSerializer(wallet).data)

    @action(detail=False, methods=['get'])
    def transactions(self, request):
        """GET /api/wallet/transactions/?transaction_type=CREDIT&status=COMPLETED"""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=False, methods=['get'])
    def summary(self, request):
        """GET /api/wallet/summary/?days=30"""
        try:
            days = max(1, min(int(request.query_params.get('days', 30)), 365))
        except ValueError:
            raise BadRequest('days must be a number.')
        end = timezone.now()
        start = end - timedelta(days=days)
        summary = services.get_transaction_summary(request.user, start, end)
        summary.update({'days': days, 'start_date': start, 'end_date': end})
        return Response(summary)

    @action(detail=False, methods=['post'], url_path='topup/initiate')
    def topup_initiate(self, request):
        """POST /api/wallet/topup/initiate/ {"amount": "500.00"}"""
        from payments.models import PaymentMethod

        serializer = TopupInitiateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payment_method = None
        payment_method_id = serializer.validated_data.get('payment_method')
        if payment_method_id:
            payment_method = PaymentMethod.objects.filter(
                pk=payment_method_id, user=request.user, is_active=True
            ).first()
            if payment_method is None:
                raise NotFound('Payment method not found.')

        result = services.initiate_topup(request.user, serializer.validated_data['amount'], payment_method)
        return Response({
            'transaction': WalletTransactionSerializer(result['transaction']).data,
            'gateway_transaction_id': result['gateway_transaction_id'],
            'payment_url': result['payment_url'],
            'expires_at': result['expires_at'],
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='topup/callback')
    def topup_callback(self, request):
        """
        POST /api/wallet/topup/callback/ {"gateway_transaction_id": "...", "status": "SUCCESS"}
        Header X-Wallet-Signature: hex HMAC-SHA256 of the raw body
        """
        signature = request.META.get('HTTP_X_WALLET_SIGNATURE', '')
        if not services.verify_callback_signature(request.body, signature):
            logger.warning(f"Rejected unsigned top-up callback from {request.META.get('REMOTE_ADDR')}")
            raise BadRequest('Invalid callback signature.', code='invalid_signature')

        serializer = TopupCallbackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = services.process_topup_completion(
            serializer.validated_data['gateway_transaction_id'],
            serializer.validated_data.get('gateway_response'),
            success=serializer.is_success,
        )
        return Response(WalletTransactionSerializer(txn).data)


class AdminWalletViewSet(mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         viewsets.GenericViewSet):
    """
    Wallet administration
    """
    serializer_class = WalletSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'currency']
    search_fields = ['user__email']
    ordering_fields = ['balance', 'last_transaction_at', 'created_at']

    def get_queryset(self):
        return Wallet.objects.select_related('user')

    @action(detail=False, methods=['post'])
    def adjust(self, request):
        """POST /api/admin/wallets/adjust/ {"user": id, "amount": "100", "transaction_type": "CREDIT", "description": ""}"""
        serializer = AdminAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        user = User.objects.filter(pk=data['user']).first()
        if user is None:
            raise NotFound('User not found.')

        txn = services.process_admin_adjustment(
            user, data['amount'], data['transaction_type'], data['description'], request.user
        )
        return Response({
            'transaction': WalletTransactionSerializer(txn).data,
            'wallet': WalletSerializer(txn.wallet).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def update_status(self, request, pk=None):
        """POST /api/admin/wallets/{id}/update_status/ {"status": "BLOCKED", "reason": ""}"""
        wallet = self.get_object()
        serializer = WalletStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        old_status = wallet.status
        wallet.status = serializer.validated_data['status']
        wallet.save(update_fields=['status', 'updated_at'])
        log_admin_action(
            request.user, 'UPDATE_WALLET_STATUS', 'Wallet', wallet.pk,
            {'from': old_status, 'to': wallet.status, 'reason': serializer.validated_data.get('reason', '')}
        )
        return Response(self.get_serializer(wallet).data)

    @action(detail=True, methods=['get'])
    def transactions(self, request, pk=None):
        """GET /api/admin/wallets/{id}/transactions/"""
        wallet = self.get_object()
        queryset = wallet.transactions.all()
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(WalletTransactionSerializer(page, many=True).data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """GET /api/admin/wallets/stats/"""
        wallets = Wallet.objects.all()
        completed = WalletTransaction.objects.filter(status=WalletTransaction.STATUS_COMPLETED)
        return Response({
            'total_wallets': wallets.count(),
            'by_status': {
                row['status']: row['count']
                for row in wallets.values('status').annotate(count=Count('id'))
            },
            'total_balance': wallets.aggregate(total=Sum('balance'))['total'] or 0,
            'completed_transactions': completed.count(),
            'total_credits': completed.filter(
                transaction_type=WalletTransaction.TYPE_CREDIT).aggregate(total=Sum('amount'))['total'] or 0,
            'total_debits': completed.filter(
                transaction_type=WalletTransaction.TYPE_DEBIT).aggregate(total=Sum('amount'))['total'] or 0,
            'pending_topups': WalletTransaction.objects.filter(
                status=WalletTransaction.STATUS_PENDING,
                reference_type=WalletTransaction.REF_PAYMENT_GATEWAY
            ).count(),
        })
