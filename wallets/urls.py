from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import WalletViewSet, AdminWalletViewSet

router = DefaultRouter()
router.register(r'wallet', WalletViewSet, basename='wallet')
router.register(r'admin/wallets', AdminWalletViewSet, basename='admin-wallet')

urlpatterns = [
    path('', include(router.urls)),
]

# Available Endpoints:
#
# USER:
# GET  /api/wallet/balance/
# GET  /api/wallet/transactions/?transaction_type=&status=&reference_type=
# GET  /api/wallet/summary/?days=30
# POST /api/wallet/topup/initiate/      - {"amount": "500.00"}
# POST /api/wallet/topup/callback/      - Signed gateway callback (X-Wallet-Signature)
#
# ADMIN:
# GET  /api/admin/wallets/              /api/admin/wallets/stats/
# POST /api/admin/wallets/adjust/
# POST /api/admin/wallets/{id}/update_status/
# GET  /api/admin/wallets/{id}/transactions/
