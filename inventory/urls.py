from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import InventoryViewSet

router = DefaultRouter()
router.register(r'inventory', InventoryViewSet, basename='inventory')

urlpatterns = [
    path('', include(router.urls)),
]

# Available Endpoints:
# GET/POST       /api/inventory/                        - Admin
# GET/PATCH/DEL  /api/inventory/{id}/                   - Admin
# POST           /api/inventory/{id}/adjust/            - {"operation": "add|remove|set", "quantity": n}
# GET            /api/inventory/low_stock/
# GET            /api/inventory/stats/
# GET            /api/inventory/variant/{variant_id}/   - Public, pack-aware stock
