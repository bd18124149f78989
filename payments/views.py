"""
Payment Views - Saved payment methods and Stripe checkout
"""
import logging

import stripe
from django.conf import settings
from django.views.decorators.csrf import csrf_exempt
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status, filters, mixins
from rest_framework.decorators import action, api_view, permission_classes, authentication_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from core.exceptions import Conflict
from core.permissions import IsAdmin
from .models import PaymentMethod
from .serializers import PaymentMethodSerializer, CheckoutSerializer, TopupCheckoutSerializer
from . import services

logger = logging.getLogger(__name__)


class PaymentMethodViewSet(viewsets.ModelViewSet):
    """
    Saved payment methods of the current user
    """
    serializer_class = PaymentMethodSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return PaymentMethod.objects.filter(user=self.request.user, is_active=True)

    def _check_duplicate(self, serializer):
        method_type = serializer.validated_data.get('method_type', getattr(serializer.instance, 'method_type', None))
        details = serializer.validated_data.get('details', getattr(serializer.instance, 'details', {}))
        candidate = PaymentMethod(method_type=method_type)
        identity = candidate.identity(details)
        if not any(identity):
            return

        others = self.get_queryset().filter(method_type=method_type)
        if serializer.instance:
            others = others.exclude(pk=serializer.instance.pk)
        for other in others:
            if other.identity() == identity:
                raise Conflict('This payment method is already saved.')

    def perform_create(self, serializer):
        self._check_duplicate(serializer)
        method = serializer.save(user=self.request.user)
        logger.info(f"Payment method {method.pk} ({method.method_type}) added by {self.request.user.email}")

    def perform_update(self, serializer):
        self._check_duplicate(serializer)
        serializer.save()

    def perform_destroy(self, instance):
        instance.soft_delete()

    @action(detail=True, methods=['post'])
    def set_default(self, request, pk=None):
        """POST /api/payment-methods/{id}/set_default/"""
        method = self.get_object()
        method.is_default = True
        method.save()
        return Response(self.get_serializer(method).data)


class AdminPaymentMethodViewSet(mixins.ListModelMixin,
                                mixins.RetrieveModelMixin,
                                viewsets.GenericViewSet):
    serializer_class = PaymentMethodSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ['method_type', 'is_active', 'is_default', 'user']
    search_fields = ['user__email', 'alias']

    def get_queryset(self):
        return PaymentMethod.objects.select_related('user')


class CheckoutViewSet(viewsets.GenericViewSet):
    """
    Stripe Checkout Sessions for orders and wallet top-ups
    """
    permission_classes = [IsAuthenticated]

    @action(detail=False, methods=['post'])
    def order(self, request):
        """POST /api/payments/checkout/order/ {"order": id}"""
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.create_order_checkout(request.user, serializer.validated_data['order'])
        return Response(result, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'])
    def topup(self, request):
        """POST /api/payments/checkout/topup/ {"gateway_transaction_id": "TXN_..."}"""
        serializer = TopupCheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.create_topup_checkout(request.user, serializer.validated_data['gateway_transaction_id'])
        return Response(result, status=status.HTTP_201_CREATED)


@csrf_exempt
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def stripe_webhook(request):
    """
    POST /api/payments/webhook/

    Stripe Webhook Handler
    Receives payment confirmations from Stripe and updates order / top-up status
    """
    payload = request.body
    sig_header = request.META.get('HTTP_STRIPE_SIGNATURE')

    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, settings.STRIPE_WEBHOOK_SECRET
        )
    except ValueError:
        logger.error("Invalid webhook payload")
        return Response({'detail': 'Invalid payload', 'code': 'invalid_payload'}, status=400)
    except stripe.SignatureVerificationError:
        logger.error("Invalid webhook signature")
        return Response({'detail': 'Invalid signature', 'code': 'invalid_signature'}, status=400)

    # Handle the event
    if event['type'] == 'checkout.session.completed':
        services.handle_checkout_session_completed(event['data']['object'])

    elif event['type'] == 'payment_intent.succeeded':
        logger.info(f"Payment succeeded: {event['data']['object']['id']}")

    elif event['type'] == 'payment_intent.payment_failed':
        services.handle_payment_failed(event['data']['object'])

    return Response({'status': 'success'}, status=200)
