import logging

from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status, filters, mixins
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from core.audit import log_admin_action, log_user_activity
from core.exceptions import BadRequest, Conflict, Forbidden
from core.permissions import IsAdmin, IsAdminOrReadOnly, IsOwner
from orders.models import OrderItem
from .models import (
    Category, Brand, Option, Product, ProductVariant, ProductReview, ReviewReport, Favorite
)
from .serializers import (
    CategorySerializer,
    BrandSerializer,
    OptionSerializer,
    ProductListSerializer,
    ProductDetailSerializer,
    ProductVariantSerializer,
    ProductReviewSerializer,
    ModerateReviewSerializer,
    ReportReviewSerializer,
    ReviewReportSerializer,
    ReportStatusSerializer,
    BulkReportStatusSerializer,
    FavoriteSerializer,
)

logger = logging.getLogger(__name__)


def _is_admin(request):
    return request.user.is_authenticated and request.user.is_admin


def _variant_param(request):
    """Integer ?variant=<id>, or BadRequest"""
    try:
        return int(request.query_params.get('variant', ''))
    except ValueError:
        raise BadRequest('variant query parameter must be a variant id.')


class CategoryViewSet(viewsets.ModelViewSet):
    """
    Category API - public read, admin write
    """
    serializer_class = CategorySerializer
    permission_classes = [IsAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['is_active', 'parent_category']
    search_fields = ['name', 'description']
    ordering_fields = ['name', 'created_at']

    def get_queryset(self):
        queryset = Category.objects.select_related('parent_category')
        if not _is_admin(self.request):
            queryset = queryset.filter(is_active=True)
        return queryset

    def perform_destroy(self, instance):
        if instance.products.filter(is_active=True).exists():
            raise Conflict('Category still has active products.')
        instance.is_active = False
        instance.save(update_fields=['is_active', 'updated_at'])
        log_admin_action(self.request.user, 'DEACTIVATE_CATEGORY', 'Category', instance.pk)

    @action(detail=False, methods=['get'])
    def tree(self, request):
        """GET /api/categories/tree/"""
        return Response(Category.get_tree())

    @action(detail=False, methods=['get'], permission_classes=[IsAdmin])
    def stats(self, request):
        """GET /api/categories/stats/"""
        queryset = Category.objects.all()
        return Response({
            'total': queryset.count(),
            'active': queryset.filter(is_active=True).count(),
            'root': queryset.filter(parent_category__isnull=True).count(),
            'with_products': queryset.filter(products__isnull=False).distinct().count(),
        })


class BrandViewSet(viewsets.ModelViewSet):
    serializer_class = BrandSerializer
    permission_classes = [IsAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['is_active']
    search_fields = ['name', 'description']
    ordering_fields = ['name', 'created_at']

    def get_queryset(self):
        queryset = Brand.objects.annotate(
            products_count=Count('products', filter=Q(products__is_active=True))
        )
        if not _is_admin(self.request):
            queryset = queryset.filter(is_active=True)
        return queryset

    def perform_destroy(self, instance):
        instance.is_active = False
        instance.save(update_fields=['is_active', 'updated_at'])


class OptionViewSet(viewsets.ModelViewSet):
    serializer_class = OptionSerializer
    permission_classes = [IsAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['option_type', 'is_active']
    search_fields = ['option_value', 'name']
    ordering_fields = ['option_type', 'sort_order', 'option_value']

    def get_queryset(self):
        queryset = Option.objects.all()
        if not _is_admin(self.request):
            queryset = queryset.filter(is_active=True)
        return queryset

    def perform_destroy(self, instance):
        if instance.variants.filter(is_active=True).exists():
            raise Conflict('Option is in use by active variants.')
        instance.delete()

    @action(detail=False, methods=['get'])
    def types(self, request):
        """GET /api/options/types/ - distinct option types with counts"""
        rows = self.get_queryset().values('option_type').annotate(count=Count('id')).order_by('option_type')
        return Response(list(rows))


class ProductViewSet(viewsets.ModelViewSet):
    """
    Complete Product API with filtering, search, and custom endpoints
    """
    permission_classes = [IsAdminOrReadOnly]

    # Filtering & Search
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['is_active', 'category', 'brand']
    search_fields = ['name', 'description', 'short_description']
    ordering_fields = ['name', 'created_at', 'score', 'average_rating']
    ordering = ['-created_at']

    def get_queryset(self):
        queryset = Product.objects.select_related('category', 'brand')

        # Public users only see active products
        if not _is_admin(self.request):
            queryset = queryset.filter(is_active=True)

        min_rating = self.request.query_params.get('min_rating')
        if min_rating:
            queryset = queryset.filter(average_rating__gte=min_rating)

        return queryset

    def get_serializer_class(self):
        """Use different serializers for list vs detail"""
        if self.action == 'list':
            return ProductListSerializer
        return ProductDetailSerializer

    def perform_create(self, serializer):
        product = serializer.save()
        log_admin_action(self.request.user, 'CREATE_PRODUCT', 'Product', product.pk, {'name': product.name})

    def perform_update(self, serializer):
        product = serializer.save()
        log_admin_action(self.request.user, 'UPDATE_PRODUCT', 'Product', product.pk)

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_admin_action(self.request.user, 'DELETE_PRODUCT', 'Product', instance.pk)

    @action(detail=True, methods=['get'])
    def variants(self, request, pk=None):
        """GET /api/products/{id}/variants/"""
        product = self.get_object()
        variants = product.variants.filter(is_active=True).prefetch_related('option_values')
        return Response(ProductVariantSerializer(variants, many=True).data)


class ProductVariantViewSet(viewsets.ModelViewSet):
    """
    Variant API - public read, admin write
    """
    serializer_class = ProductVariantSerializer
    permission_classes = [IsAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['product', 'is_on_sale', 'is_active']
    search_fields = ['sku_code', 'product__name']
    ordering_fields = ['price', 'sort_order', 'created_at']

    def get_queryset(self):
        queryset = ProductVariant.objects.select_related('product').prefetch_related('option_values')
        if not _is_admin(self.request):
            queryset = queryset.filter(is_active=True, product__is_active=True)
        return queryset

    def perform_create(self, serializer):
        variant = serializer.save()
        log_admin_action(self.request.user, 'CREATE_VARIANT', 'ProductVariant', variant.pk, {'sku': variant.sku_code})

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_admin_action(self.request.user, 'DELETE_VARIANT', 'ProductVariant', instance.pk)

    @action(detail=False, methods=['get'])
    def on_sale(self, request):
        """GET /api/variants/on_sale/"""
        variants = [v for v in self.get_queryset().filter(is_on_sale=True) if v.effective_price < v.price]
        page = self.paginate_queryset(variants)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)


class ProductReviewViewSet(viewsets.ModelViewSet):
    """
    Product Reviews API
    Public sees approved reviews, authors edit their own, admins moderate
    """
    serializer_class = ProductReviewSerializer
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['variant', 'rating', 'status']
    ordering_fields = ['created_at', 'rating', 'helpful_votes']

    def get_permissions(self):
        if self.action in ['list', 'retrieve', 'rating_summary']:
            return [AllowAny()]
        if self.action == 'moderate':
            return [IsAdmin()]
        if self.action in ['update', 'partial_update']:
            return [IsAuthenticated(), IsOwner()]
        return [IsAuthenticated()]

    def get_queryset(self):
        queryset = ProductReview.objects.select_related('user', 'variant')
        if _is_admin(self.request):
            return queryset
        if self.action in ['update', 'partial_update', 'destroy']:
            return queryset.filter(user=self.request.user)
        if self.request.user.is_authenticated:
            return queryset.filter(
                Q(status=ProductReview.STATUS_APPROVED) | Q(user=self.request.user)
            )
        return queryset.filter(status=ProductReview.STATUS_APPROVED)

    def perform_create(self, serializer):
        variant = serializer.validated_data['variant']
        is_verified = OrderItem.objects.filter(
            order__user=self.request.user,
            order__order_status='DELIVERED',
            variant=variant
        ).exists()
        try:
            serializer.save(user=self.request.user, is_verified_buyer=is_verified)
        except IntegrityError:
            raise Conflict('You have already reviewed this variant.')

    def perform_update(self, serializer):
        review = serializer.instance
        was_approved = review.status == ProductReview.STATUS_APPROVED
        # Edited reviews go back through moderation
        review = serializer.save(status=ProductReview.STATUS_PENDING)
        if was_approved:
            review.variant.refresh_rating_summary()

    def perform_destroy(self, instance):
        variant = instance.variant
        was_approved = instance.status == ProductReview.STATUS_APPROVED
        instance.delete()
        if was_approved:
            variant.refresh_rating_summary()

    @action(detail=True, methods=['post'])
    def vote(self, request, pk=None):
        """POST /api/reviews/{id}/vote/ {"helpful": true}"""
        review = self.get_object()
        if review.user_id == request.user.pk:
            raise Forbidden('You cannot vote on your own review.')
        review.record_vote(bool(request.data.get('helpful', True)))
        return Response({
            'helpful_votes': review.helpful_votes,
            'unhelpful_votes': review.unhelpful_votes,
        })

    @action(detail=True, methods=['post'])
    def report(self, request, pk=None):
        """POST /api/reviews/{id}/report/ {"reason": "SPAM", "custom_reason": ""}"""
        review = self.get_object()
        if review.user_id == request.user.pk:
            raise BadRequest('You cannot report your own review.')
        serializer = ReportReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            with transaction.atomic():
                report = review.report(
                    request.user,
                    serializer.validated_data['reason'],
                    serializer.validated_data.get('custom_reason', '')
                )
        except IntegrityError:
            raise Conflict('You have already reported this review.', code='already_reported')

        logger.info(f"Review {review.pk} reported ({review.reported_count} pending reports)")
        log_user_activity(request.user, 'REPORT_REVIEW', 'ProductReview', review.pk, {'reason': report.reason})
        return Response(
            {'report_id': report.pk, 'reported_count': review.reported_count, 'status': review.status},
            status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['post'])
    def moderate(self, request, pk=None):
        """POST /api/reviews/{id}/moderate/ {"status": "APPROVED", "note": ""}"""
        review = self.get_object()
        serializer = ModerateReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        review.moderate(
            serializer.validated_data['status'],
            request.user,
            serializer.validated_data.get('note', '')
        )
        log_admin_action(request.user, 'MODERATE_REVIEW', 'ProductReview', review.pk, {'status': review.status})
        return Response(self.get_serializer(review).data)

    @action(detail=False, methods=['get'])
    def rating_summary(self, request):
        """GET /api/reviews/rating_summary/?variant=<id>"""
        variant_id = _variant_param(request)

        approved = ProductReview.objects.filter(variant_id=variant_id, status=ProductReview.STATUS_APPROVED)
        distribution = {str(star): 0 for star in range(1, 6)}
        total = 0
        rating_sum = 0
        for row in approved.values('rating').annotate(count=Count('id')):
            distribution[str(row['rating'])] = row['count']
            total += row['count']
            rating_sum += row['rating'] * row['count']

        return Response({
            'variant': variant_id,
            'average_rating': round(rating_sum / total, 2) if total else 0,
            'total_reviews': total,
            'distribution': distribution,
        })


class ReviewReportViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    """
    Admin queue of review reports
    Closing a report drops the review's pending count, it never un-flags the review
    """
    serializer_class = ReviewReportSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['status', 'reason', 'review']
    ordering_fields = ['created_at', 'status']

    def get_queryset(self):
        return ReviewReport.objects.select_related('review', 'reporter', 'resolved_by')

    def perform_destroy(self, instance):
        report_id, review_id = instance.pk, instance.review_id
        instance.delete()
        log_admin_action(self.request.user, 'DELETE_REVIEW_REPORT', 'ReviewReport', report_id, {'review': review_id})

    @action(detail=True, methods=['post'])
    def update_status(self, request, pk=None):
        """POST /api/admin/review-reports/{id}/update_status/ {"status": "RESOLVED"}"""
        report = self.get_object()
        serializer = ReportStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        if not report.is_pending:
            raise BadRequest('Report has already been closed.', code='report_closed')

        report.close(
            serializer.validated_data['status'],
            request.user,
            serializer.validated_data.get('resolution_notes', '')
        )
        log_admin_action(request.user, 'UPDATE_REVIEW_REPORT', 'ReviewReport', report.pk, {'status': report.status})
        return Response(self.get_serializer(report).data)

    @action(detail=False, methods=['post'])
    def bulk_update(self, request):
        """POST /api/admin/review-reports/bulk_update/ {"report_ids": [..], "status": "REJECTED_REPORT"}"""
        serializer = BulkReportStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        reports = {r.pk: r for r in self.get_queryset().filter(pk__in=data['report_ids'])}
        updated, skipped = [], []
        for report_id in data['report_ids']:
            report = reports.get(report_id)
            if report is None:
                skipped.append({'id': report_id, 'reason': 'Not found'})
            elif not report.is_pending:
                skipped.append({'id': report_id, 'reason': 'Already closed'})
            else:
                with transaction.atomic():
                    report.close(data['status'], request.user, data.get('resolution_notes', ''))
                updated.append(report_id)

        log_admin_action(request.user, 'BULK_UPDATE_REVIEW_REPORTS', 'ReviewReport', None, {
            'status': data['status'], 'updated': updated,
        })
        return Response({'updated': updated, 'skipped': skipped})

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """GET /api/admin/review-reports/stats/"""
        queryset = ReviewReport.objects.all()
        counts = {value: 0 for value, _ in ReviewReport.STATUS_CHOICES}
        for row in queryset.values('status').annotate(count=Count('id')):
            counts[row['status']] = row['count']
        by_reason = {
            row['reason']: row['count']
            for row in queryset.values('reason').annotate(count=Count('id')).order_by('reason')
        }
        return Response({**counts, 'total': sum(counts.values()), 'by_reason': by_reason})


class FavoriteViewSet(mixins.ListModelMixin,
                      mixins.CreateModelMixin,
                      mixins.DestroyModelMixin,
                      viewsets.GenericViewSet):
    """
    User favorites (wishlist)
    """
    serializer_class = FavoriteSerializer
    permission_classes = [IsAuthenticated]

    def get_permissions(self):
        if self.action == 'most_favorited':
            return [AllowAny()]
        if self.action == 'stats':
            return [IsAdmin()]
        return super().get_permissions()

    def get_queryset(self):
        return Favorite.objects.filter(
            user=self.request.user,
            is_active=True
        ).select_related('variant__product')

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        variant = serializer.validated_data['variant']

        favorite, created = Favorite.objects.get_or_create(
            user=request.user,
            variant=variant,
            defaults={'user_notes': serializer.validated_data.get('user_notes', '')}
        )
        if not created:
            if favorite.is_active:
                raise Conflict('Variant is already in favorites.')
            favorite.is_active = True
            favorite.user_notes = serializer.validated_data.get('user_notes', favorite.user_notes)
            favorite.save(update_fields=['is_active', 'user_notes', 'updated_at'])

        return Response(self.get_serializer(favorite).data, status=status.HTTP_201_CREATED)

    def perform_destroy(self, instance):
        instance.is_active = False
        instance.save(update_fields=['is_active', 'updated_at'])

    @action(detail=False, methods=['get'])
    def check(self, request):
        """GET /api/favorites/check/?variant=<id>"""
        variant_id = _variant_param(request)
        return Response({
            'variant': variant_id,
            'is_favorite': self.get_queryset().filter(variant_id=variant_id).exists(),
        })

    @action(detail=False, methods=['post'])
    def bulk_add(self, request):
        """POST /api/favorites/bulk_add/ {"variant_ids": [1, 2, 3]}"""
        variant_ids = request.data.get('variant_ids')
        if not isinstance(variant_ids, list) or not variant_ids:
            raise BadRequest('variant_ids must be a non-empty list.')

        variants = {
            v.pk: v for v in ProductVariant.objects.filter(pk__in=variant_ids, is_active=True)
        }
        added, skipped = [], []
        for variant_id in variant_ids:
            variant = variants.get(variant_id)
            if not variant:
                skipped.append({'variant': variant_id, 'reason': 'Variant not found'})
                continue
            favorite, created = Favorite.objects.get_or_create(user=request.user, variant=variant)
            if created or not favorite.is_active:
                if not favorite.is_active:
                    favorite.is_active = True
                    favorite.save(update_fields=['is_active', 'updated_at'])
                added.append(variant_id)
            else:
                skipped.append({'variant': variant_id, 'reason': 'Already in favorites'})

        return Response({'added': added, 'skipped': skipped}, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def most_favorited(self, request):
        """GET /api/favorites/most_favorited/?limit=10"""
        try:
            limit = min(int(request.query_params.get('limit', 10)), 50)
        except ValueError:
            limit = 10

        rows = (
            Favorite.objects.filter(is_active=True, variant__is_active=True)
            .values('variant', 'variant__sku_code', 'variant__product__name')
            .annotate(favorites=Count('id'))
            .order_by('-favorites')[:limit]
        )
        return Response([
            {
                'variant': row['variant'],
                'sku_code': row['variant__sku_code'],
                'product_name': row['variant__product__name'],
                'favorites': row['favorites'],
            }
            for row in rows
        ])

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """GET /api/favorites/stats/ (admin)"""
        active = Favorite.objects.filter(is_active=True)
        return Response({
            'total_active': active.count(),
            'total_removed': Favorite.objects.filter(is_active=False).count(),
            'users_with_favorites': active.values('user').distinct().count(),
            'distinct_variants': active.values('variant').distinct().count(),
        })
