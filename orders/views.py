"""
Cart and Order Views
"""
import logging

from django.db.models import Count, Sum, Q
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status, filters, mixins
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.audit import log_user_activity
from core.permissions import IsAdmin
from . import services
from .models import Order
from .serializers import (
    CartSerializer,
    AddCartItemSerializer,
    UpdateCartItemSerializer,
    CouponCodeSerializer,
    OrderSerializer,
    OrderListSerializer,
    PlaceOrderSerializer,
    ReasonSerializer,
    UpdateOrderStatusSerializer,
    RefundSerializer,
)

logger = logging.getLogger(__name__)


# ============================================================================
# CART
# ============================================================================

class CartView(APIView):
    """GET /api/cart/ - current cart (created lazily); DELETE clears it"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        cart = services.get_or_create_cart(request.user)
        totals = services.price_cart(cart)
        data = CartSerializer(cart).data
        data['totals'] = totals
        return Response(data)

    def delete(self, request):
        cart = services.clear_cart(services.get_or_create_cart(request.user))
        return Response(CartSerializer(cart).data)


class CartItemsView(APIView):
    """POST /api/cart/items/ {"variant": id, "quantity": n}"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = AddCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = services.add_cart_item(
            request.user,
            serializer.validated_data['variant'],
            serializer.validated_data['quantity']
        )
        return Response(CartSerializer(cart).data, status=status.HTTP_201_CREATED)


class CartItemDetailView(APIView):
    """PATCH/DELETE /api/cart/items/{id}/"""
    permission_classes = [IsAuthenticated]

    def patch(self, request, item_id):
        serializer = UpdateCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = services.update_cart_item(request.user, item_id, serializer.validated_data['quantity'])
        return Response(CartSerializer(cart).data)

    def delete(self, request, item_id):
        cart = services.remove_cart_item(request.user, item_id)
        return Response(CartSerializer(cart).data)


class CartCouponView(APIView):
    """POST /api/cart/coupon/ applies a coupon, DELETE removes it"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CouponCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = services.apply_cart_coupon(request.user, serializer.validated_data['coupon_code'])
        return Response(CartSerializer(cart).data)

    def delete(self, request):
        cart = services.remove_cart_coupon(request.user)
        return Response(CartSerializer(cart).data)


# ============================================================================
# USER ORDERS
# ============================================================================

class OrderViewSet(mixins.ListModelMixin,
                   mixins.RetrieveModelMixin,
                   viewsets.GenericViewSet):
    """
    Orders of the current user
    """
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['order_status', 'payment_status']
    ordering_fields = ['placed_at', 'grand_total']

    def get_queryset(self):
        return Order.objects.filter(user=self.request.user).prefetch_related('items')

    def get_serializer_class(self):
        if self.action == 'list':
            return OrderListSerializer
        return OrderSerializer

    @action(detail=False, methods=['post'])
    def place(self, request):
        """POST /api/orders/place/"""
        serializer = PlaceOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = services.place_order(
            request.user,
            shipping_address=data['shipping_address'],
            billing_address=data.get('billing_address'),
            payment_gateway=data['payment_gateway'],
            payment_method_id=data.get('payment_method'),
            notes=data.get('notes', ''),
        )
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """POST /api/orders/{id}/cancel/ {"reason": "..."}"""
        order = self.get_object()
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.cancel_order(order, serializer.validated_data.get('reason', ''), request.user)
        log_user_activity(request.user, 'ORDER_CANCELLED', 'Order', order.pk)
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=['post'])
    def request_return(self, request, pk=None):
        """POST /api/orders/{id}/request_return/ {"reason": "..."}"""
        order = self.get_object()
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.request_return(order, serializer.validated_data.get('reason', ''))
        return Response(OrderSerializer(order).data)


# ============================================================================
# ADMIN ORDERS
# ============================================================================

class AdminOrderViewSet(mixins.ListModelMixin,
                        mixins.RetrieveModelMixin,
                        viewsets.GenericViewSet):
    """
    Order management for administrators
    """
    serializer_class = OrderSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['order_status', 'payment_status', 'payment_gateway', 'user']
    search_fields = ['order_number', 'user__email', 'shipping_full_name', 'tracking_number']
    ordering_fields = ['placed_at', 'grand_total']

    def get_queryset(self):
        return Order.objects.select_related('user').prefetch_related('items')

    @action(detail=True, methods=['post'])
    def update_status(self, request, pk=None):
        """POST /api/admin/orders/{id}/update_status/"""
        order = self.get_object()
        serializer = UpdateOrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = services.update_status(
            order,
            data['status'],
            admin=request.user,
            tracking_number=data.get('tracking_number', ''),
            shipping_carrier=data.get('shipping_carrier', ''),
            notes=data.get('notes', ''),
        )
        return Response(self.get_serializer(order).data)

    @action(detail=True, methods=['post'])
    def refund(self, request, pk=None):
        """POST /api/admin/orders/{id}/refund/ {"amount": "100.00", "reason": "", "to_wallet": false}"""
        order = self.get_object()
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = services.process_refund(
            order,
            amount=data.get('amount'),
            reason=data.get('reason', ''),
            to_wallet=data['to_wallet'],
            admin=request.user,
        )
        return Response(self.get_serializer(order).data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """GET /api/admin/orders/stats/"""
        queryset = Order.objects.all()
        paid = Q(payment_status__in=[Order.PAYMENT_PAID, Order.PAYMENT_PARTIALLY_REFUNDED])
        totals = queryset.aggregate(
            revenue=Sum('grand_total', filter=paid),
            refunded=Sum('refunded_amount'),
        )
        return Response({
            'total_orders': queryset.count(),
            'by_status': {
                row['order_status']: row['count']
                for row in queryset.values('order_status').annotate(count=Count('id'))
            },
            'by_payment_status': {
                row['payment_status']: row['count']
                for row in queryset.values('payment_status').annotate(count=Count('id'))
            },
            'revenue': totals['revenue'] or 0,
            'refunded': totals['refunded'] or 0,
        })
