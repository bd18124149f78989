from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import BlogPostViewSet, AdminBlogPostViewSet, DynamicContentViewSet, AdminDynamicContentViewSet

router = DefaultRouter()
router.register(r'blog', BlogPostViewSet, basename='blog')
router.register(r'admin/blog', AdminBlogPostViewSet, basename='admin-blog')
router.register(r'content', DynamicContentViewSet, basename='content')
router.register(r'admin/content', AdminDynamicContentViewSet, basename='admin-content')

urlpatterns = [
    path('', include(router.urls)),
]
