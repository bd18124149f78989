import logging

from django.shortcuts import get_object_or_404
from django.db.models import F, Sum
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, filters
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from catalog.models import ProductVariant
from core.audit import log_admin_action
from core.exceptions import Conflict
from core.permissions import IsAdmin
from .models import Inventory
from .serializers import InventorySerializer, StockAdjustmentSerializer
from .services import get_variant_pack_details, computed_stock

logger = logging.getLogger(__name__)


class InventoryViewSet(viewsets.ModelViewSet):
    """
    Inventory management (admin)
    Stock lives on base-unit variants; pack variants are computed
    """
    serializer_class = InventorySerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['is_active', 'location', 'variant__product']
    search_fields = ['variant__sku_code', 'variant__product__name', 'location']
    ordering_fields = ['stock_quantity', 'min_stock_level', 'updated_at']

    def get_permissions(self):
        if self.action == 'variant_stock':
            return [AllowAny()]
        return super().get_permissions()

    def get_queryset(self):
        return Inventory.objects.select_related('variant__product')

    def perform_create(self, serializer):
        variant = serializer.validated_data['variant']
        if Inventory.objects.filter(variant=variant).exists():
            raise Conflict('Inventory already exists for this variant.')
        inventory = serializer.save()
        log_admin_action(
            self.request.user, 'CREATE_INVENTORY', 'Inventory', inventory.pk,
            {'sku': variant.sku_code, 'stock': inventory.stock_quantity}
        )

    def perform_update(self, serializer):
        inventory = serializer.save()
        log_admin_action(self.request.user, 'UPDATE_INVENTORY', 'Inventory', inventory.pk)

    def perform_destroy(self, instance):
        log_admin_action(self.request.user, 'DELETE_INVENTORY', 'Inventory', instance.pk)
        instance.delete()

    @action(detail=True, methods=['post'])
    def adjust(self, request, pk=None):
        """POST /api/inventory/{id}/adjust/ {"operation": "add|remove|set", "quantity": 5}"""
        inventory = self.get_object()
        serializer = StockAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        operation = serializer.validated_data['operation']
        quantity = serializer.validated_data['quantity']
        before = inventory.stock_quantity

        if operation == StockAdjustmentSerializer.OPERATION_ADD:
            inventory.add_stock(quantity)
        elif operation == StockAdjustmentSerializer.OPERATION_REMOVE:
            inventory.remove_stock(quantity)
        else:
            inventory.set_stock(quantity)

        logger.info(f"Stock {operation} {quantity} on {inventory.variant.sku_code}: {before} -> {inventory.stock_quantity}")
        log_admin_action(
            request.user, 'ADJUST_STOCK', 'Inventory', inventory.pk,
            {'operation': operation, 'quantity': quantity, 'before': before, 'after': inventory.stock_quantity}
        )
        return Response(self.get_serializer(inventory).data)

    @action(detail=False, methods=['get'])
    def low_stock(self, request):
        """GET /api/inventory/low_stock/"""
        queryset = self.get_queryset().filter(
            is_active=True,
            min_stock_level__gt=0,
            stock_quantity__lte=F('min_stock_level')
        ).order_by('stock_quantity')
        page = self.paginate_queryset(queryset)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """GET /api/inventory/stats/"""
        queryset = Inventory.objects.filter(is_active=True)
        by_status = {
            Inventory.STATUS_OUT: 0,
            Inventory.STATUS_LOW: 0,
            Inventory.STATUS_MEDIUM: 0,
            Inventory.STATUS_HIGH: 0,
        }
        for inventory in queryset.only('stock_quantity', 'min_stock_level'):
            by_status[inventory.stock_status] += 1

        return Response({
            'total_items': queryset.count(),
            'total_units': queryset.aggregate(total=Sum('stock_quantity'))['total'] or 0,
            'low_stock_items': queryset.filter(
                min_stock_level__gt=0, stock_quantity__lte=F('min_stock_level')
            ).count(),
            'by_status': by_status,
        })

    @action(detail=False, methods=['get'], url_path=r'variant/(?P<variant_id>\d+)')
    def variant_stock(self, request, variant_id=None):
        """GET /api/inventory/variant/{variant_id}/ - sellable stock incl. packs"""
        variant = get_object_or_404(
            ProductVariant.objects.prefetch_related('option_values'),
            pk=variant_id,
            is_active=True
        )
        details = get_variant_pack_details(variant)
        base = details['base_unit_variant']
        return Response({
            'variant': variant.pk,
            'sku_code': variant.sku_code,
            'is_pack': details['is_pack'],
            'pack_multiplier': details['pack_multiplier'],
            'is_base_unit': details['is_base_unit'],
            'base_unit_variant': base.pk if base else None,
            'available_stock': computed_stock(variant, details),
        })
