from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import PlatformViewSet, PlatformFeeViewSet, ListingViewSet

router = DefaultRouter()
router.register(r'admin/platforms', PlatformViewSet, basename='admin-platform')
router.register(r'admin/platform-fees', PlatformFeeViewSet, basename='admin-platform-fee')
router.register(r'admin/listings', ListingViewSet, basename='admin-listing')

urlpatterns = [
    path('', include(router.urls)),
]

# Available Endpoints (admin only):
#
# /api/admin/platforms/                      - DELETE deactivates
# GET  /api/admin/platforms/{id|slug}/
# GET  /api/admin/platforms/{id|slug}/fees/  - Fees in effect now
#
# /api/admin/platform-fees/?platform=<id>&current=true
#
# /api/admin/listings/?platform=<id>&listing_status=Live&needs_sync=true
# POST /api/admin/listings/{id}/activate/
# POST /api/admin/listings/{id}/mark_synced/
# GET  /api/admin/listings/stats/
