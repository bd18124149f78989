"""
Marketplace Views - admin-only management of platforms, fees and listings
"""
import logging

from django.db.models import Count, Q
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, filters
from rest_framework.decorators import action
from rest_framework.generics import get_object_or_404
from rest_framework.response import Response

from core.audit import log_admin_action
from core.exceptions import Conflict
from core.permissions import IsAdmin
from .models import Platform, PlatformFee, Listing
from .serializers import PlatformSerializer, PlatformFeeSerializer, ListingSerializer

logger = logging.getLogger(__name__)


def _flag(request, name):
    return request.query_params.get(name, '').lower() == 'true'


class PlatformViewSet(viewsets.ModelViewSet):
    """
    Platforms are addressed by id or slug
    """
    serializer_class = PlatformSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['is_active']
    search_fields = ['name', 'description']
    ordering_fields = ['name', 'created_at']

    def get_queryset(self):
        return Platform.objects.annotate(
            listings_count=Count('listings', filter=Q(listings__is_active_on_platform=True))
        )

    def get_object(self):
        lookup = self.kwargs[self.lookup_field]
        queryset = self.filter_queryset(self.get_queryset())
        field = 'pk' if lookup.isdigit() else 'slug'
        platform = get_object_or_404(queryset, **{field: lookup})
        self.check_object_permissions(self.request, platform)
        return platform

    def perform_create(self, serializer):
        platform = serializer.save()
        log_admin_action(self.request.user, 'CREATE_PLATFORM', 'Platform', platform.pk, {'name': platform.name})

    def perform_update(self, serializer):
        platform = serializer.save()
        log_admin_action(self.request.user, 'UPDATE_PLATFORM', 'Platform', platform.pk)

    def perform_destroy(self, instance):
        if not instance.is_active:
            raise Conflict('Platform is already inactive.', code='already_inactive')
        instance.soft_delete()
        log_admin_action(self.request.user, 'DEACTIVATE_PLATFORM', 'Platform', instance.pk)

    @action(detail=True, methods=['get'])
    def fees(self, request, pk=None):
        """GET /api/admin/platforms/{id|slug}/fees/ - fees in effect now"""
        platform = self.get_object()
        fees = PlatformFee.objects.current().filter(platform=platform)
        return Response(PlatformFeeSerializer(fees, many=True).data)


class PlatformFeeViewSet(viewsets.ModelViewSet):
    serializer_class = PlatformFeeSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['platform', 'fee_type', 'is_active', 'is_percentage']
    ordering_fields = ['effective_date', 'value', 'created_at']

    def get_queryset(self):
        queryset = PlatformFee.objects.select_related('platform')
        if _flag(self.request, 'current'):
            queryset = queryset.current()
        return queryset

    def perform_create(self, serializer):
        fee = serializer.save()
        log_admin_action(self.request.user, 'CREATE_PLATFORM_FEE', 'PlatformFee', fee.pk, {
            'platform': fee.platform_id, 'fee_type': fee.fee_type, 'value': str(fee.value),
        })

    def perform_update(self, serializer):
        fee = serializer.save()
        log_admin_action(self.request.user, 'UPDATE_PLATFORM_FEE', 'PlatformFee', fee.pk)

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_admin_action(self.request.user, 'DEACTIVATE_PLATFORM_FEE', 'PlatformFee', instance.pk)


class ListingViewSet(viewsets.ModelViewSet):
    """
    Variant listings on external platforms
    ?needs_sync=true narrows to active listings not synced in the last day
    """
    serializer_class = ListingSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['platform', 'variant', 'listing_status', 'is_active_on_platform']
    search_fields = ['platform_sku', 'platform_product_id', 'variant__sku_code']
    ordering_fields = ['created_at', 'platform_price', 'last_synced_at']

    def get_queryset(self):
        queryset = Listing.objects.select_related('variant', 'platform')
        if _flag(self.request, 'needs_sync'):
            queryset = queryset.needs_sync()
        return queryset

    def perform_create(self, serializer):
        listing = serializer.save()
        log_admin_action(self.request.user, 'CREATE_LISTING', 'Listing', listing.pk, {
            'variant': listing.variant_id,
            'platform': listing.platform_id,
            'listing_status': listing.listing_status,
            'platform_price': str(listing.platform_price),
        })

    def perform_update(self, serializer):
        listing = serializer.save()
        log_admin_action(self.request.user, 'UPDATE_LISTING', 'Listing', listing.pk,
                         {'listing_status': listing.listing_status})

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_admin_action(self.request.user, 'DEACTIVATE_LISTING', 'Listing', instance.pk)

    @action(detail=True, methods=['post'])
    def activate(self, request, pk=None):
        """POST /api/admin/listings/{id}/activate/"""
        listing = self.get_object()
        listing.activate()
        log_admin_action(request.user, 'ACTIVATE_LISTING', 'Listing', listing.pk)
        return Response(self.get_serializer(listing).data)

    @action(detail=True, methods=['post'])
    def mark_synced(self, request, pk=None):
        """POST /api/admin/listings/{id}/mark_synced/"""
        listing = self.get_object()
        listing.mark_synced()
        logger.info(f"Listing {listing.pk} marked synced with {listing.platform.name}")
        return Response(self.get_serializer(listing).data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """GET /api/admin/listings/stats/"""
        queryset = Listing.objects.all()
        return Response({
            'total': queryset.count(),
            'live': queryset.filter(listing_status=Listing.STATUS_LIVE, is_active_on_platform=True).count(),
            'needs_sync': queryset.needs_sync().count(),
            'by_status': {
                row['listing_status']: row['count']
                for row in queryset.values('listing_status').annotate(count=Count('id'))
            },
            'by_platform': {
                row['platform__name']: row['count']
                for row in queryset.values('platform__name').annotate(count=Count('id'))
            },
        })