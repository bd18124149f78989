"""
Content Views - blog and storefront content blocks
"""
import logging

from django.conf import settings
from django.core.cache import cache
from django.db.models import Count
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, filters, mixins
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from core.audit import log_admin_action
from core.permissions import IsAdmin
from .models import BlogPost, DynamicContent, dynamic_content_cache_key
from .serializers import (
    BlogPostListSerializer,
    BlogPostSerializer,
    BlogStatusSerializer,
    DynamicContentPublicSerializer,
    DynamicContentSerializer,
)

logger = logging.getLogger(__name__)


# ============================================================================
# BLOG
# ============================================================================

class BlogPostViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Published posts, looked up by slug
    GET /api/blog/?search=...&category=...&tag=...&featured=true
    """
    permission_classes = [AllowAny]
    lookup_field = 'slug'
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['category', 'is_featured']
    search_fields = ['title', 'excerpt', 'content']
    ordering_fields = ['published_at', 'views_count']

    def get_queryset(self):
        queryset = BlogPost.objects.published().select_related('author')
        params = self.request.query_params

        tag = params.get('tag')
        if tag:
            queryset = queryset.filter(tags__icontains=f'"{tag.strip().lower()}"')
        if params.get('featured', '').lower() == 'true':
            queryset = queryset.filter(is_featured=True)
        return queryset

    def get_serializer_class(self):
        if self.action == 'list':
            return BlogPostListSerializer
        return BlogPostSerializer

    def retrieve(self, request, *args, **kwargs):
        post = self.get_object()
        post.increment_views()
        return Response(self.get_serializer(post).data)

    @action(detail=False, methods=['get'])
    def popular_tags(self, request):
        """GET /api/blog/popular_tags/?limit=20"""
        try:
            limit = max(1, min(int(request.query_params.get('limit', 20)), 100))
        except ValueError:
            limit = 20
        return Response(BlogPost.popular_tags(limit))


class AdminBlogPostViewSet(viewsets.ModelViewSet):
    serializer_class = BlogPostSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'category', 'is_featured', 'author']
    search_fields = ['title', 'content']
    ordering_fields = ['created_at', 'published_at', 'views_count']

    def get_queryset(self):
        return BlogPost.objects.alive().select_related('author')

    def perform_create(self, serializer):
        post = serializer.save(author=self.request.user)
        log_admin_action(self.request.user, 'CREATE_BLOG_POST', 'BlogPost', post.pk, {'status': post.status})

    def perform_update(self, serializer):
        post = serializer.save()
        log_admin_action(self.request.user, 'UPDATE_BLOG_POST', 'BlogPost', post.pk)

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_admin_action(self.request.user, 'DELETE_BLOG_POST', 'BlogPost', instance.pk)

    @action(detail=True, methods=['post'])
    def update_status(self, request, pk=None):
        """POST /api/admin/blog/{id}/update_status/ {"status": "PUBLISHED"}"""
        post = self.get_object()
        serializer = BlogStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        old_status = post.status
        post.status = serializer.validated_data['status']
        post.save()
        log_admin_action(request.user, 'UPDATE_BLOG_STATUS', 'BlogPost', post.pk,
                         {'from': old_status, 'to': post.status})
        return Response(self.get_serializer(post).data)


# ============================================================================
# DYNAMIC CONTENT
# ============================================================================

class DynamicContentViewSet(viewsets.GenericViewSet):
    """
    Public content blocks
    """
    permission_classes = [AllowAny]
    serializer_class = DynamicContentPublicSerializer

    @action(detail=False, methods=['get'], url_path=r'location/(?P<location_key>[a-z0-9_-]+)')
    def active_for_location(self, request, location_key=None):
        """GET /api/content/location/{location_key}/ - cached until content there changes"""
        cache_key = dynamic_content_cache_key(location_key)
        data = cache.get(cache_key)
        if data is None:
            items = DynamicContent.live().filter(location_key=location_key).order_by('content_order', 'created_at')
            data = self.get_serializer(items, many=True).data
            cache.set(cache_key, data, settings.CATALOG_CACHE_TIMEOUT)
        return Response({'location_key': location_key, 'count': len(data), 'results': data})

    @action(detail=False, methods=['get'])
    def locations(self, request):
        """GET /api/content/locations/"""
        rows = (
            DynamicContent.live()
            .values('location_key')
            .annotate(count=Count('id'))
            .order_by('location_key')
        )
        return Response(list(rows))


class AdminDynamicContentViewSet(viewsets.ModelViewSet):
    serializer_class = DynamicContentSerializer
    permission_classes = [IsAdmin]
    queryset = DynamicContent.objects.all()
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['content_type', 'location_key', 'is_active']
    search_fields = ['name', 'caption', 'main_text_content']
    ordering_fields = ['content_order', 'created_at']

    def perform_create(self, serializer):
        item = serializer.save(created_by=self.request.user)
        log_admin_action(self.request.user, 'CREATE_DYNAMIC_CONTENT', 'DynamicContent', item.pk)

    def perform_destroy(self, instance):
        log_admin_action(self.request.user, 'DELETE_DYNAMIC_CONTENT', 'DynamicContent', instance.pk)
        instance.delete()

    @action(detail=True, methods=['post'])
    def toggle_active(self, request, pk=None):
        item = self.get_object()
        item.is_active = not item.is_active
        item.save()
        log_admin_action(request.user, 'TOGGLE_DYNAMIC_CONTENT', 'DynamicContent', item.pk,
                         {'is_active': item.is_active})
        return Response(self.get_serializer(item).data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        queryset = DynamicContent.objects.all()
        return Response({
            'total': queryset.count(),
            'active': queryset.filter(is_active=True).count(),
            'currently_live': DynamicContent.live().count(),
            'by_type': {
                row['content_type']: row['count']
                for row in queryset.values('content_type').annotate(count=Count('id'))
            },
            'locations': queryset.values('location_key').distinct().count(),
        })
