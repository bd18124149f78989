"""
Main URL Configuration - E-Commerce Back-Office API
"""
from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from core.views import HealthCheckView, RateLimitExceededView

urlpatterns = [
    # ============================================================================
    # 1. ADMIN INTERFACE
    # ============================================================================
    path(settings.ADMIN_URL, admin.site.urls),

    # ============================================================================
    # 2. API ENDPOINTS
    # ============================================================================
    path('api/', include('core.urls')),
    path('api/', include('catalog.urls')),
    path('api/', include('inventory.urls')),
    path('api/', include('suppliers.urls')),
    path('api/', include('coupons.urls')),
    path('api/', include('orders.urls')),
    path('api/', include('payments.urls')),
    path('api/', include('wallets.urls')),
    path('api/', include('support.urls')),
    path('api/', include('notifications.urls')),
    path('api/', include('content.urls')),
    path('api/', include('marketplaces.urls')),
    path('api/', include('mailing.urls')),

    # ============================================================================
    # 3. HEALTH & MONITORING
    # ============================================================================
    path('health/', HealthCheckView.as_view(), name='health_check'),
    path('health/ready/', HealthCheckView.as_view(), name='health_ready'),
    path('health/live/', HealthCheckView.as_view(), name='health_live'),

    # ============================================================================
    # 4. ERROR HANDLERS
    # ============================================================================
    path('rate-limit-exceeded/', RateLimitExceededView.as_view(), name='rate_limit_exceeded'),
]

# ============================================================================
# ERROR HANDLING (Django will use these automatically)
# ============================================================================
handler400 = 'core.views.bad_request_view'
handler403 = 'core.views.permission_denied_view'
handler404 = 'core.views.page_not_found_view'
handler500 = 'core.views.server_error_view'

# ============================================================================
# DEVELOPMENT ONLY
# ============================================================================
if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
