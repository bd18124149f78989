"""
Payment URLs
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import PaymentMethodViewSet, AdminPaymentMethodViewSet, CheckoutViewSet, stripe_webhook

router = DefaultRouter()
router.register(r'payment-methods', PaymentMethodViewSet, basename='payment-method')
router.register(r'admin/payment-methods', AdminPaymentMethodViewSet, basename='admin-payment-method')
router.register(r'payments/checkout', CheckoutViewSet, basename='checkout')

urlpatterns = [
    path('payments/webhook/', stripe_webhook, name='stripe-webhook'),
    path('', include(router.urls)),
]

# Available Endpoints:
# GET/POST       /api/payment-methods/
# PATCH/DELETE   /api/payment-methods/{id}/
# POST           /api/payment-methods/{id}/set_default/
# GET            /api/admin/payment-methods/                 - Admin
# POST           /api/payments/checkout/order/               - {"order": id} -> Stripe checkout_url
# POST           /api/payments/checkout/topup/               - {"gateway_transaction_id": "..."}
# POST           /api/payments/webhook/                      - Stripe events
