from django.contrib import admin

from .models import BlogPost, DynamicContent


@admin.register(BlogPost)
class BlogPostAdmin(admin.ModelAdmin):
    list_display = ['title', 'author', 'status', 'category', 'is_featured', 'views_count', 'published_at']
    list_filter = ['status', 'is_featured', 'category']
    search_fields = ['title', 'content']
    readonly_fields = ['slug', 'read_time_minutes', 'views_count', 'published_at']
    raw_id_fields = ['author']


@admin.register(DynamicContent)
class DynamicContentAdmin(admin.ModelAdmin):
    list_display = ['name', 'content_type', 'location_key', 'content_order', 'is_active',
                    'display_start_date', 'display_end_date']
    list_filter = ['content_type', 'is_active', 'location_key']
    search_fields = ['name', 'caption']
    list_editable = ['content_order', 'is_active']
