from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    CartView,
    CartItemsView,
    CartItemDetailView,
    CartCouponView,
    OrderViewSet,
    AdminOrderViewSet,
)

router = DefaultRouter()
router.register(r'orders', OrderViewSet, basename='order')
router.register(r'admin/orders', AdminOrderViewSet, basename='admin-order')

urlpatterns = [
    path('cart/', CartView.as_view(), name='cart'),
    path('cart/items/', CartItemsView.as_view(), name='cart-items'),
    path('cart/items/<int:item_id>/', CartItemDetailView.as_view(), name='cart-item-detail'),
    path('cart/coupon/', CartCouponView.as_view(), name='cart-coupon'),
    path('', include(router.urls)),
]

# Available Endpoints:
#
# CART:
# GET    /api/cart/                  - Cart with lines, stock and totals
# DELETE /api/cart/                  - Clear cart and coupon
# POST   /api/cart/items/            - {"variant": id, "quantity": n}
# PATCH  /api/cart/items/{id}/       - {"quantity": n} (0 removes)
# DELETE /api/cart/items/{id}/
# POST   /api/cart/coupon/           - {"coupon_code": "..."}
# DELETE /api/cart/coupon/
#
# ORDERS:
# GET    /api/orders/                /api/orders/{id}/
# POST   /api/orders/place/
# POST   /api/orders/{id}/cancel/
# POST   /api/orders/{id}/request_return/
#
# ADMIN:
# GET    /api/admin/orders/          /api/admin/orders/stats/
# POST   /api/admin/orders/{id}/update_status/
# POST   /api/admin/orders/{id}/refund/
