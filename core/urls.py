"""
Core API URL Configuration - auth, addresses, admin users and dashboard
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    RegisterView,
    LoginView,
    RefreshView,
    MeView,
    ChangePasswordView,
    ForgotPasswordView,
    ResetPasswordView,
    AddressViewSet,
    AdminUserViewSet,
    AdminDashboardView,
)

router = DefaultRouter()
router.register(r'addresses', AddressViewSet, basename='address')
router.register(r'admin/users', AdminUserViewSet, basename='admin-user')

urlpatterns = [
    path('auth/register/', RegisterView.as_view(), name='auth-register'),
    path('auth/login/', LoginView.as_view(), name='auth-login'),
    path('auth/refresh/', RefreshView.as_view(), name='auth-refresh'),
    path('auth/me/', MeView.as_view(), name='auth-me'),
    path('auth/change-password/', ChangePasswordView.as_view(), name='auth-change-password'),
    path('auth/forgot-password/', ForgotPasswordView.as_view(), name='auth-forgot-password'),
    path('auth/reset-password/', ResetPasswordView.as_view(), name='auth-reset-password'),
    path('admin/dashboard/', AdminDashboardView.as_view(), name='admin-dashboard'),
    path('', include(router.urls)),
]

# Available Endpoints:
#
# AUTH:
# POST   /api/auth/register/               - Create customer account
# POST   /api/auth/login/                  - Email/password login (rate limited)
# POST   /api/auth/refresh/                - New access token from refresh token
# GET    /api/auth/me/                     - Current profile
# PATCH  /api/auth/me/                     - Update profile
# POST   /api/auth/change-password/
# POST   /api/auth/forgot-password/        - Email reset link (rate limited)
# POST   /api/auth/reset-password/         - uid + token + new_password
#
# ADDRESSES:
# GET    /api/addresses/                   - Own active addresses
# POST   /api/addresses/{id}/set_default/
# GET    /api/addresses/default/
#
# ADMIN:
# GET    /api/admin/users/                 - ?role=&is_active=&search=
# POST   /api/admin/users/{id}/toggle_active/
# POST   /api/admin/users/{id}/change_role/
# GET    /api/admin/dashboard/
