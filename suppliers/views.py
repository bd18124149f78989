import logging

from django.db import transaction
from django.db.models import Count, Sum
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, filters
from rest_framework.decorators import action
from rest_framework.response import Response

from core.audit import log_admin_action
from core.exceptions import BadRequest
from core.permissions import IsAdmin
from .models import Supplier, SupplierContactNumber, Purchase
from .serializers import SupplierSerializer, SupplierContactNumberSerializer, PurchaseSerializer
from .services import apply_purchase_completion

logger = logging.getLogger(__name__)


class SupplierViewSet(viewsets.ModelViewSet):
    """Supplier management (admin)"""
    serializer_class = SupplierSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'is_active', 'city', 'country']
    search_fields = ['name', 'email', 'city']
    ordering_fields = ['name', 'rating', 'created_at']

    def get_queryset(self):
        return Supplier.objects.prefetch_related('contact_numbers').annotate(
            purchases_count=Count('purchases')
        )

    def perform_create(self, serializer):
        supplier = serializer.save()
        log_admin_action(self.request.user, 'CREATE_SUPPLIER', 'Supplier', supplier.pk, {'name': supplier.name})

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_admin_action(self.request.user, 'DELETE_SUPPLIER', 'Supplier', instance.pk)

    @action(detail=True, methods=['get'])
    def purchases(self, request, pk=None):
        """GET /api/suppliers/{id}/purchases/"""
        supplier = self.get_object()
        queryset = supplier.purchases.select_related('variant').order_by('-purchase_date')
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(PurchaseSerializer(page, many=True).data)


class SupplierContactNumberViewSet(viewsets.ModelViewSet):
    serializer_class = SupplierContactNumberSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['supplier', 'is_primary', 'is_active']

    def get_queryset(self):
        return SupplierContactNumber.objects.select_related('supplier')


class PurchaseViewSet(viewsets.ModelViewSet):
    """
    Purchase orders (admin)
    Moving a purchase to Completed credits inventory once
    """
    serializer_class = PurchaseSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'supplier', 'variant', 'is_active']
    search_fields = ['purchase_order_number', 'variant__sku_code', 'supplier__name']
    ordering_fields = ['purchase_date', 'landing_price', 'created_at']

    def get_queryset(self):
        return Purchase.objects.select_related('variant', 'supplier')

    def perform_create(self, serializer):
        # A failed stock credit must not leave a Completed row behind
        with transaction.atomic():
            purchase = serializer.save()
            apply_purchase_completion(purchase)
        log_admin_action(
            self.request.user, 'CREATE_PURCHASE', 'Purchase', purchase.pk,
            {'po': purchase.purchase_order_number, 'status': purchase.status}
        )

    def perform_update(self, serializer):
        if serializer.instance.inventory_updated_on_completion and 'quantity' in serializer.validated_data:
            if serializer.validated_data['quantity'] != serializer.instance.quantity:
                raise BadRequest('Quantity cannot change after stock has been received.')
        with transaction.atomic():
            purchase = serializer.save()
            apply_purchase_completion(purchase)
        log_admin_action(self.request.user, 'UPDATE_PURCHASE', 'Purchase', purchase.pk, {'status': purchase.status})

    def perform_destroy(self, instance):
        instance.is_active = False
        instance.save(update_fields=['is_active', 'updated_at'])

    @action(detail=True, methods=['post'])
    def mark_received(self, request, pk=None):
        """POST /api/purchases/{id}/mark_received/"""
        purchase = self.get_object()
        if purchase.status == Purchase.STATUS_CANCELLED:
            raise BadRequest('A cancelled purchase cannot be received.')

        with transaction.atomic():
            purchase.status = Purchase.STATUS_COMPLETED
            purchase.save(update_fields=['status', 'updated_at'])
            units = apply_purchase_completion(purchase)
        purchase.refresh_from_db()

        log_admin_action(request.user, 'RECEIVE_PURCHASE', 'Purchase', purchase.pk, {'base_units': units})
        return Response(self.get_serializer(purchase).data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """GET /api/purchases/stats/"""
        queryset = Purchase.objects.filter(is_active=True)
        rows = queryset.values('status').annotate(count=Count('id'), spend=Sum('landing_price'))
        return Response({
            'total': queryset.count(),
            'by_status': {row['status']: {'count': row['count'], 'spend': row['spend']} for row in rows},
            'total_spend': queryset.filter(status=Purchase.STATUS_COMPLETED).aggregate(
                total=Sum('landing_price'))['total'] or 0,
        })
