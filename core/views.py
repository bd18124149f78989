"""
Core Views - Health checks, error handling, authentication, addresses
and the admin dashboard
"""
import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.tokens import default_token_generator
from django.core.cache import cache
from django.core.mail import send_mail
from django.db import connection
from django.db.models import Count, Sum, F
from django.http import JsonResponse
from django.utils import timezone
from django.utils.decorators import method_decorator
from django.utils.encoding import force_bytes, force_str
from django.utils.http import urlsafe_base64_encode, urlsafe_base64_decode
from django.views import View
from django_filters.rest_framework import DjangoFilterBackend
from django_ratelimit.decorators import ratelimit
from rest_framework import viewsets, status, filters, mixins
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .audit import log_admin_action, log_user_activity
from .authentication import (
    REFRESH, generate_token, generate_token_pair, decode_token, get_user_from_payload
)
from .exceptions import BadRequest, NotFound
from .models import Address
from .permissions import IsAdmin
from .serializers import (
    UserSerializer,
    AdminUserSerializer,
    RegisterSerializer,
    LoginSerializer,
    RefreshSerializer,
    ChangePasswordSerializer,
    ForgotPasswordSerializer,
    ResetPasswordSerializer,
    AddressSerializer,
)

logger = logging.getLogger(__name__)
User = get_user_model()


class HealthCheckView(View):
    """
    Comprehensive health check endpoint
    """

    def get(self, request):
        """Check system health"""
        checks = {}

        # Database check
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
            checks['database'] = {'status': 'healthy'}
        except Exception as e:
            checks['database'] = {'status': 'unhealthy', 'error': str(e)}

        # Cache check
        try:
            cache.set('health_check', 'ok', 1)
            if cache.get('health_check') == 'ok':
                checks['cache'] = {'status': 'healthy'}
            else:
                checks['cache'] = {'status': 'unhealthy', 'error': 'Cache not working'}
        except Exception as e:
            checks['cache'] = {'status': 'unhealthy', 'error': str(e)}

        # Overall status
        all_healthy = all(check['status'] == 'healthy' for check in checks.values())

        response = {
            'status': 'healthy' if all_healthy else 'unhealthy',
            'timestamp': timezone.now().isoformat(),
            'checks': checks
        }

        status_code = 200 if all_healthy else 503
        return JsonResponse(response, status=status_code)


class RateLimitExceededView(View):
    """
    Custom view for rate limit exceeded errors
    """

    def dispatch(self, request, *args, **kwargs):
        return JsonResponse(
            {
                "detail": "Rate limit exceeded. Please try again later.",
                "code": "rate_limit_exceeded"
            },
            status=429
        )


# ============================================================================
# ERROR HANDLERS (Called automatically by Django)
# ============================================================================

def bad_request_view(request, exception=None):
    """400 Bad Request"""
    return JsonResponse({"detail": "Bad request.", "code": "bad_request"}, status=400)


def permission_denied_view(request, exception=None):
    """403 Forbidden"""
    return JsonResponse({"detail": "Permission denied.", "code": "permission_denied"}, status=403)


def page_not_found_view(request, exception=None):
    """404 Not Found"""
    return JsonResponse(
        {
            "detail": "Resource not found.",
            "code": "not_found",
            "path": request.path
        },
        status=404
    )


def server_error_view(request, exception=None):
    """500 Internal Server Error"""
    logger.error(f"Server error on {request.method} {request.path}")
    return JsonResponse(
        {
            "detail": "Internal server error",
            "code": "server_error"
        },
        status=500
    )


def csrf_failure(request, reason=""):
    """Custom JSON response for CSRF failures"""
    return JsonResponse(
        {
            "detail": "CSRF verification failed. Request aborted.",
            "code": "csrf_failure",
            "reason": reason,
        },
        status=403
    )


# ============================================================================
# AUTHENTICATION
# ============================================================================

class RegisterView(APIView):
    """POST /api/auth/register/"""
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()

        log_user_activity(user, 'REGISTER', 'User', user.pk)

        return Response({
            'user': UserSerializer(user).data,
            'tokens': generate_token_pair(user),
        }, status=status.HTTP_201_CREATED)


@method_decorator(ratelimit(key='ip', rate=settings.LOGIN_RATE_LIMIT), name='post')
class LoginView(APIView):
    """POST /api/auth/login/"""
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data['user']

        user.last_login = timezone.now()
        user.save(update_fields=['last_login'])
        log_user_activity(user, 'LOGIN', 'User', user.pk)

        return Response({
            'user': UserSerializer(user).data,
            'tokens': generate_token_pair(user),
        })


class RefreshView(APIView):
    """POST /api/auth/refresh/ - Exchange refresh token for a new access token"""
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = RefreshSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payload = decode_token(serializer.validated_data['refresh'], REFRESH)
        user = get_user_from_payload(payload)

        return Response({
            'access': generate_token(user),
            'expires_in': settings.JWT_EXPIRATION_DELTA,
        })


class MeView(APIView):
    """GET/PATCH /api/auth/me/"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserSerializer(request.user).data)

    def patch(self, request):
        serializer = UserSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)


class ChangePasswordView(APIView):
    """POST /api/auth/change-password/"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = ChangePasswordSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)

        request.user.set_password(serializer.validated_data['new_password'])
        request.user.save(update_fields=['password'])
        log_user_activity(request.user, 'CHANGE_PASSWORD', 'User', request.user.pk)

        return Response({'detail': 'Password updated successfully.'})


@method_decorator(ratelimit(key='ip', rate=settings.PASSWORD_RESET_RATE_LIMIT), name='post')
class ForgotPasswordView(APIView):
    """
    POST /api/auth/forgot-password/
    Always answers 200 so the endpoint cannot be used to discover registered emails
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = ForgotPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = User.objects.filter(
            email__iexact=serializer.validated_data['email'],
            is_active=True
        ).first()

        if user:
            uid = urlsafe_base64_encode(force_bytes(user.pk))
            token = default_token_generator.make_token(user)
            reset_url = f"{settings.FRONTEND_URL}/reset-password?uid={uid}&token={token}"
            try:
                send_mail(
                    subject="Reset your password",
                    message=f"Use the link below to reset your password:\n\n{reset_url}\n",
                    from_email=settings.DEFAULT_FROM_EMAIL,
                    recipient_list=[user.email],
                    fail_silently=False,
                )
                logger.info(f"Password reset email sent to {user.email}")
            except Exception as e:
                logger.error(f"Failed to send password reset email to {user.email}: {e}")

        return Response({'detail': 'If the email exists, a reset link has been sent.'})


class ResetPasswordView(APIView):
    """POST /api/auth/reset-password/"""
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = ResetPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            user_id = force_str(urlsafe_base64_decode(data['uid']))
            user = User.objects.get(pk=user_id)
        except (TypeError, ValueError, OverflowError, User.DoesNotExist):
            raise BadRequest('Invalid reset link.', code='invalid_reset_link')

        if not default_token_generator.check_token(user, data['token']):
            raise BadRequest('Reset link is invalid or has expired.', code='invalid_reset_link')

        user.set_password(data['new_password'])
        user.save(update_fields=['password'])
        log_user_activity(user, 'RESET_PASSWORD', 'User', user.pk)

        return Response({'detail': 'Password has been reset.'})


# ============================================================================
# ADDRESSES
# ============================================================================

class AddressViewSet(viewsets.ModelViewSet):
    """
    User address book
    Delete is soft; the default flag moves to the newest remaining address
    """
    serializer_class = AddressSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['address_type', 'city', 'is_default']
    ordering_fields = ['created_at', 'updated_at', 'usage_count']

    def get_queryset(self):
        return Address.objects.filter(user=self.request.user, is_active=True)

    def perform_destroy(self, instance):
        instance.soft_delete()

    @action(detail=True, methods=['post'])
    def set_default(self, request, pk=None):
        """POST /api/addresses/{id}/set_default/"""
        address = self.get_object()
        address.is_default = True
        address.save()
        return Response(self.get_serializer(address).data)

    @action(detail=False, methods=['get'])
    def default(self, request):
        """GET /api/addresses/default/"""
        address = self.get_queryset().filter(is_default=True).first()
        if not address:
            raise NotFound('No default address set.')
        return Response(self.get_serializer(address).data)


# ============================================================================
# ADMIN: USERS & DASHBOARD
# ============================================================================

class AdminUserViewSet(mixins.ListModelMixin,
                       mixins.RetrieveModelMixin,
                       viewsets.GenericViewSet):
    """User management for admins"""
    serializer_class = AdminUserSerializer
    permission_classes = [IsAdmin]
    queryset = User.objects.all().select_related('referred_by')
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['role', 'is_active', 'user_group']
    search_fields = ['email', 'first_name', 'last_name', 'phone']
    ordering_fields = ['date_joined', 'email', 'last_login']

    @action(detail=True, methods=['post'])
    def toggle_active(self, request, pk=None):
        """POST /api/admin/users/{id}/toggle_active/"""
        user = self.get_object()
        if user.pk == request.user.pk:
            raise BadRequest('You cannot deactivate your own account.')

        user.is_active = not user.is_active
        user.save(update_fields=['is_active'])
        log_admin_action(request.user, 'TOGGLE_USER_ACTIVE', 'User', user.pk, {'is_active': user.is_active})
        return Response(self.get_serializer(user).data)

    @action(detail=True, methods=['post'])
    def change_role(self, request, pk=None):
        """POST /api/admin/users/{id}/change_role/ {"role": "admin"}"""
        user = self.get_object()
        role = request.data.get('role')
        if role not in dict(User.ROLE_CHOICES):
            raise BadRequest(f"Role must be one of: {', '.join(dict(User.ROLE_CHOICES))}")

        old_role = user.role
        user.role = role
        user.save(update_fields=['role'])
        log_admin_action(request.user, 'CHANGE_USER_ROLE', 'User', user.pk, {'old_role': old_role, 'new_role': role})
        return Response(self.get_serializer(user).data)


class AdminDashboardView(APIView):
    """GET /api/admin/dashboard/ - Store overview"""
    permission_classes = [IsAdmin]

    def get(self, request):
        from catalog.models import Product
        from coupons.models import CouponCampaign
        from inventory.models import Inventory
        from orders.models import Order
        from support.models import SupportTicket

        orders_by_status = {
            row['order_status']: row['count']
            for row in Order.objects.values('order_status').annotate(count=Count('id'))
        }
        revenue = Order.objects.filter(payment_status='PAID').aggregate(
            total=Sum('grand_total')
        )['total'] or 0

        now = timezone.now()
        data = {
            'users': {
                'total': User.objects.count(),
                'active': User.objects.filter(is_active=True).count(),
                'new_last_30_days': User.objects.filter(
                    date_joined__gte=now - timezone.timedelta(days=30)
                ).count(),
            },
            'products': {
                'total': Product.objects.count(),
                'active': Product.objects.filter(is_active=True).count(),
            },
            'orders': {
                'total': sum(orders_by_status.values()),
                'by_status': orders_by_status,
                'revenue': revenue,
            },
            'inventory': {
                'low_stock': Inventory.objects.filter(
                    is_active=True,
                    min_stock_level__gt=0,
                    stock_quantity__lte=F('min_stock_level')
                ).count(),
                'out_of_stock': Inventory.objects.filter(is_active=True, stock_quantity__lte=0).count(),
            },
            'support': {
                'open_tickets': SupportTicket.objects.filter(
                    status__in=['OPEN', 'IN_PROGRESS', 'PENDING_USER']
                ).count(),
            },
            'coupons': {
                'active_campaigns': CouponCampaign.objects.filter(
                    is_active=True,
                    valid_from__lte=now,
                    valid_until__gte=now
                ).count(),
            },
        }

        log_admin_action(request.user, 'DASHBOARD_ACCESSED', 'Dashboard', None)
        return Response(data)
