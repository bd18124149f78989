from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import EmailTemplateViewSet, EmailViewSet

router = DefaultRouter()
router.register(r'admin/email-templates', EmailTemplateViewSet, basename='admin-email-template')
router.register(r'admin/emails', EmailViewSet, basename='admin-email')

urlpatterns = [
    path('', include(router.urls)),
]

# Available Endpoints (admin only):
#
# TEMPLATES:
# /api/admin/email-templates/                    - DELETE archives, ?permanent=true removes
# POST /api/admin/email-templates/{id}/preview/  - {"variables": {...}}
# POST /api/admin/email-templates/{id}/clone/
# GET  /api/admin/email-templates/analytics/
#
# EMAILS:
# /api/admin/emails/                             - DELETE cancels, ?permanent=true removes
# POST /api/admin/emails/{id}/send/              - {"send_immediately": false}
# POST /api/admin/emails/broadcast/
# GET  /api/admin/emails/analytics/?days=30
