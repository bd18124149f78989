from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import SupplierViewSet, SupplierContactNumberViewSet, PurchaseViewSet

router = DefaultRouter()
router.register(r'suppliers', SupplierViewSet, basename='supplier')
router.register(r'supplier-contacts', SupplierContactNumberViewSet, basename='supplier-contact')
router.register(r'purchases', PurchaseViewSet, basename='purchase')

urlpatterns = [
    path('', include(router.urls)),
]

# Available Endpoints (admin):
# /api/suppliers/                     /api/suppliers/{id}/purchases/
# /api/supplier-contacts/
# /api/purchases/                     /api/purchases/stats/
# POST /api/purchases/{id}/mark_received/  - Completes and credits inventory
