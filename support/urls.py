from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import SupportTicketViewSet, AdminSupportTicketViewSet

router = DefaultRouter()
router.register(r'support/tickets', SupportTicketViewSet, basename='support-ticket')
router.register(r'admin/support/tickets', AdminSupportTicketViewSet, basename='admin-support-ticket')

urlpatterns = [
    path('', include(router.urls)),
]
