from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import CouponCampaignViewSet, UserCouponViewSet

router = DefaultRouter()
router.register(r'coupon-campaigns', CouponCampaignViewSet, basename='coupon-campaign')
router.register(r'coupons', UserCouponViewSet, basename='coupon')

urlpatterns = [
    path('', include(router.urls)),
]

# Available Endpoints:
#
# CAMPAIGNS (admin):
# /api/coupon-campaigns/
# POST /api/coupon-campaigns/{id}/generate/       - {"user_ids": [...], "number_of_codes": 1}
# GET  /api/coupon-campaigns/{id}/usage_stats/
# POST /api/coupon-campaigns/{id}/toggle_active/
#
# USER COUPONS:
# GET  /api/coupons/?status=ACTIVE|REDEEMED|EXPIRED|INACTIVE
# POST /api/coupons/validate/                     - {"coupon_code": "..."} against own cart
# POST /api/coupons/{id}/deactivate/              - Admin
