import logging

from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, filters, mixins, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.audit import log_admin_action, log_user_activity
from core.exceptions import BadRequest
from core.permissions import IsAdmin
from .models import CouponCampaign, UserCoupon
from .serializers import (
    CouponCampaignSerializer,
    UserCouponSerializer,
    GenerateCouponsSerializer,
    ValidateCouponSerializer,
)
from .services import generate_user_coupons, validate_coupon_for_cart

logger = logging.getLogger(__name__)


class CouponCampaignViewSet(viewsets.ModelViewSet):
    """Coupon campaigns (admin)"""
    serializer_class = CouponCampaignSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['discount_type', 'is_active', 'is_unique_per_user']
    search_fields = ['name', 'description', 'code_prefix']
    ordering_fields = ['created_at', 'valid_from', 'valid_until', 'current_global_usage']

    def get_queryset(self):
        return CouponCampaign.objects.prefetch_related('applicable_categories', 'applicable_variants')

    def perform_create(self, serializer):
        campaign = serializer.save()
        log_admin_action(self.request.user, 'CREATE_CAMPAIGN', 'CouponCampaign', campaign.pk, {'name': campaign.name})

    def perform_update(self, serializer):
        campaign = serializer.save()
        log_admin_action(self.request.user, 'UPDATE_CAMPAIGN', 'CouponCampaign', campaign.pk)

    def perform_destroy(self, instance):
        instance.is_active = False
        instance.save(update_fields=['is_active', 'updated_at'])
        log_admin_action(self.request.user, 'DEACTIVATE_CAMPAIGN', 'CouponCampaign', instance.pk)

    @action(detail=True, methods=['post'])
    def generate(self, request, pk=None):
        """POST /api/coupon-campaigns/{id}/generate/ {"user_ids": [..], "number_of_codes": 1}"""
        campaign = self.get_object()
        serializer = GenerateCouponsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = generate_user_coupons(
            campaign,
            serializer.validated_data['user_ids'],
            serializer.validated_data['number_of_codes']
        )
        log_admin_action(
            request.user, 'GENERATE_COUPONS', 'CouponCampaign', campaign.pk,
            {'generated': result['total_generated'], 'errors': len(result['errors'])}
        )
        return Response({
            'generated_coupons': UserCouponSerializer(result['generated_coupons'], many=True).data,
            'total_generated': result['total_generated'],
            'total_requested': result['total_requested'],
            'errors': result['errors'],
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'])
    def usage_stats(self, request, pk=None):
        """GET /api/coupon-campaigns/{id}/usage_stats/"""
        campaign = self.get_object()
        coupons = campaign.user_coupons.all()
        stats = campaign.usage_stats
        stats.update({
            'coupons_issued': coupons.count(),
            'coupons_redeemed': coupons.filter(is_redeemed=True).count(),
            'coupons_active': coupons.filter(
                is_active=True, is_redeemed=False, expires_at__gte=timezone.now()
            ).count(),
        })
        return Response(stats)

    @action(detail=True, methods=['post'])
    def toggle_active(self, request, pk=None):
        """POST /api/coupon-campaigns/{id}/toggle_active/"""
        campaign = self.get_object()
        campaign.is_active = not campaign.is_active
        campaign.save(update_fields=['is_active', 'updated_at'])
        log_admin_action(
            request.user, 'TOGGLE_CAMPAIGN', 'CouponCampaign', campaign.pk, {'is_active': campaign.is_active}
        )
        return Response({'id': campaign.pk, 'is_active': campaign.is_active})


class UserCouponViewSet(mixins.ListModelMixin,
                        mixins.RetrieveModelMixin,
                        viewsets.GenericViewSet):
    """
    Users see their own coupons, admins see everything
    """
    serializer_class = UserCouponSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['campaign', 'is_redeemed', 'is_active']
    search_fields = ['coupon_code', 'user__email']
    ordering_fields = ['created_at', 'expires_at']

    def get_permissions(self):
        if self.action == 'deactivate':
            return [IsAdmin()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = UserCoupon.objects.select_related('campaign', 'user')
        if not self.request.user.is_admin:
            queryset = queryset.filter(user=self.request.user)

        status_filter = self.request.query_params.get('status', '').upper()
        now = timezone.now()
        if status_filter == UserCoupon.STATUS_ACTIVE:
            queryset = queryset.filter(is_active=True, is_redeemed=False, expires_at__gte=now)
        elif status_filter == UserCoupon.STATUS_REDEEMED:
            queryset = queryset.filter(is_active=True, is_redeemed=True)
        elif status_filter == UserCoupon.STATUS_EXPIRED:
            queryset = queryset.filter(is_active=True, is_redeemed=False, expires_at__lt=now)
        elif status_filter == UserCoupon.STATUS_INACTIVE:
            queryset = queryset.filter(is_active=False)
        return queryset

    @action(detail=False, methods=['post'])
    def validate(self, request):
        """POST /api/coupons/validate/ {"coupon_code": "..."} against the user's cart"""
        from orders.models import Cart

        serializer = ValidateCouponSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        cart = Cart.objects.filter(user=request.user).first()
        if cart is None or not cart.items.exists():
            raise BadRequest('Your cart is empty.')

        result = validate_coupon_for_cart(request.user, serializer.validated_data['coupon_code'], cart)
        log_user_activity(
            request.user, 'COUPON_VALIDATED', 'UserCoupon', result['coupon'].pk,
            {'discount': str(result['discount'])}
        )
        return Response({
            'valid': True,
            'coupon': UserCouponSerializer(result['coupon']).data,
            'discount_amount': result['discount'],
            'applicable_amount': result['applicable_amount'],
            'applicable_items': result['applicable_items'],
            'cart_subtotal': cart.subtotal,
        })

    @action(detail=True, methods=['post'])
    def deactivate(self, request, pk=None):
        """POST /api/coupons/{id}/deactivate/ (admin)"""
        coupon = self.get_object()
        coupon.is_active = False
        coupon.save(update_fields=['is_active', 'updated_at'])
        log_admin_action(request.user, 'DEACTIVATE_COUPON', 'UserCoupon', coupon.pk, {'code': coupon.coupon_code})
        return Response(self.get_serializer(coupon).data)
