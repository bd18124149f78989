"""
Catalog API URL Configuration
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    CategoryViewSet,
    BrandViewSet,
    OptionViewSet,
    ProductViewSet,
    ProductVariantViewSet,
    ProductReviewViewSet,
    ReviewReportViewSet,
    FavoriteViewSet,
)

router = DefaultRouter()
router.register(r'categories', CategoryViewSet, basename='category')
router.register(r'brands', BrandViewSet, basename='brand')
router.register(r'options', OptionViewSet, basename='option')
router.register(r'products', ProductViewSet, basename='product')
router.register(r'variants', ProductVariantViewSet, basename='variant')
router.register(r'reviews', ProductReviewViewSet, basename='review')
router.register(r'favorites', FavoriteViewSet, basename='favorite')
router.register(r'admin/review-reports', ReviewReportViewSet, basename='admin-review-report')

urlpatterns = [
    path('', include(router.urls)),
]

# Available Endpoints:
#
# CATALOG (public read, admin write):
# /api/categories/            /api/categories/tree/       /api/categories/stats/
# /api/brands/                /api/options/               /api/options/types/
# /api/products/              /api/products/{id}/variants/
# /api/variants/              /api/variants/on_sale/
#
# REVIEWS:
# GET    /api/reviews/?variant=<id>        - Approved reviews
# POST   /api/reviews/                     - Create (pending approval)
# POST   /api/reviews/{id}/vote/           - {"helpful": true|false}
# POST   /api/reviews/{id}/report/          - {"reason": "SPAM"}, 409 on a repeat report
# POST   /api/reviews/{id}/moderate/       - Admin
# GET    /api/reviews/rating_summary/?variant=<id>
#
# REVIEW REPORTS (admin):
# GET    /api/admin/review-reports/?status=PENDING
# POST   /api/admin/review-reports/{id}/update_status/   - RESOLVED | REJECTED_REPORT
# POST   /api/admin/review-reports/bulk_update/
# GET    /api/admin/review-reports/stats/
#
# FAVORITES:
# GET/POST /api/favorites/   DELETE /api/favorites/{id}/
# GET    /api/favorites/check/?variant=<id>
# POST   /api/favorites/bulk_add/
# GET    /api/favorites/most_favorited/
# GET    /api/favorites/stats/             - Admin
