"""
Catalog Admin Configuration
"""
from django.contrib import admin
from django.db.models import Count
from django.urls import reverse
from django.utils.html import format_html

from .models import Category, Brand, Option, Product, ProductVariant, ProductReview, ReviewReport, Favorite


# ============================================================================
# 1. Inline Models (Edit inside Product page)
# ============================================================================

class ProductVariantInline(admin.TabularInline):
    """Inline for managing product variants"""
    model = ProductVariant
    extra = 0
    fields = ['sku_code', 'price', 'discount_price', 'is_on_sale', 'is_active', 'sort_order']
    show_change_link = True
    ordering = ['sort_order']


# ============================================================================
# 2. Product Admin
# ============================================================================

@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = [
        'product_image', 'name', 'category', 'brand',
        'average_rating', 'status_badge', 'variant_count_display'
    ]
    list_display_links = ['product_image', 'name']
    list_filter = ['is_active', 'category', 'brand', 'created_at']
    search_fields = ['name', 'description']
    list_per_page = 50
    list_select_related = ['category', 'brand']
    actions = ['activate_products', 'deactivate_products']
    date_hierarchy = 'created_at'
    save_on_top = True

    prepopulated_fields = {'slug': ('name',)}
    readonly_fields = ['created_at', 'updated_at', 'average_rating', 'reviews_count', 'rating_distribution']
    inlines = [ProductVariantInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('name', 'slug', 'short_description', 'description')
        }),
        ('Classification', {
            'fields': ('category', 'brand', 'score')
        }),
        ('Media', {
            'fields': ('images',),
        }),
        ('Status', {
            'fields': ('is_active',)
        }),
        ('SEO', {
            'fields': ('meta_title', 'meta_description'),
            'classes': ('collapse',)
        }),
        ('Ratings', {
            'fields': ('average_rating', 'reviews_count', 'rating_distribution'),
            'classes': ('collapse',)
        }),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).annotate(
            variant_count=Count('variants', distinct=True),
        )

    def product_image(self, obj):
        if obj.primary_image:
            return format_html(
                '<img src="{}" style="width: 50px; height: 50px; object-fit: cover; border-radius: 4px;" />',
                obj.primary_image
            )
        return "🖼️"
    product_image.short_description = "Image"

    def status_badge(self, obj):
        if obj.is_active:
            return format_html('<span style="background: #27ae60; color: white; padding: 2px 6px; border-radius: 3px;">Active</span>')
        return format_html('<span style="background: #95a5a6; color: white; padding: 2px 6px; border-radius: 3px;">Inactive</span>')
    status_badge.short_description = "Status"

    def variant_count_display(self, obj):
        return obj.variant_count
    variant_count_display.short_description = "Variants"
    variant_count_display.admin_order_field = 'variant_count'

    def activate_products(self, request, queryset):
        updated = queryset.update(is_active=True)
        self.message_user(request, f'{updated} products activated.')

    def deactivate_products(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f'{updated} products deactivated.')


# ============================================================================
# 3. Product Variant Admin
# ============================================================================

@admin.register(ProductVariant)
class ProductVariantAdmin(admin.ModelAdmin):
    list_display = ['sku_code', 'product_link', 'price_display', 'is_on_sale', 'is_active']
    list_filter = ['is_active', 'is_on_sale', 'created_at']
    search_fields = ['sku_code', 'product__name']
    list_select_related = ['product']
    filter_horizontal = ['option_values']
    readonly_fields = ['slug', 'average_rating', 'reviews_count', 'created_at', 'updated_at']

    def product_link(self, obj):
        url = reverse('admin:catalog_product_change', args=[obj.product.id])
        return format_html('<a href="{}">{}</a>', url, obj.product.name)
    product_link.short_description = "Product"

    def price_display(self, obj):
        if obj.effective_price < obj.price:
            return format_html(
                '<s style="color: #999;">₹{}</s> <strong>₹{}</strong>',
                obj.price, obj.effective_price
            )
        return f"₹{obj.price}"
    price_display.short_description = "Price"


# ============================================================================
# 4. Review Admin
# ============================================================================

@admin.register(ProductReview)
class ProductReviewAdmin(admin.ModelAdmin):
    list_display = ['rating_stars', 'variant', 'user', 'status', 'reported_count', 'created_at']
    list_filter = ['status', 'rating', 'is_verified_buyer', 'created_at']
    search_fields = ['title', 'review_text', 'variant__sku_code', 'user__email']
    actions = ['approve_reviews', 'reject_reviews']
    raw_id_fields = ['user', 'variant', 'moderated_by']
    readonly_fields = ['helpful_votes', 'unhelpful_votes', 'reported_count', 'created_at', 'updated_at']

    def rating_stars(self, obj):
        return format_html('<span style="color: #f39c12;">{}</span>', '★' * obj.rating)
    rating_stars.short_description = "Rating"

    def approve_reviews(self, request, queryset):
        for review in queryset:
            review.moderate(ProductReview.STATUS_APPROVED, request.user)
        self.message_user(request, "Reviews approved.")

    def reject_reviews(self, request, queryset):
        for review in queryset:
            review.moderate(ProductReview.STATUS_REJECTED, request.user)
        self.message_user(request, "Reviews rejected.")


@admin.register(ReviewReport)
class ReviewReportAdmin(admin.ModelAdmin):
    list_display = ['review', 'reporter', 'reason', 'status', 'created_at']
    list_filter = ['status', 'reason', 'created_at']
    search_fields = ['reporter__email', 'custom_reason']
    raw_id_fields = ['review', 'reporter', 'resolved_by']
    readonly_fields = ['resolved_at', 'created_at', 'updated_at']


# ============================================================================
# 5. Lookup tables
# ============================================================================

@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'parent_category', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name']
    prepopulated_fields = {'slug': ('name',)}


@admin.register(Brand)
class BrandAdmin(admin.ModelAdmin):
    list_display = ['name', 'website', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name']
    prepopulated_fields = {'slug': ('name',)}


@admin.register(Option)
class OptionAdmin(admin.ModelAdmin):
    list_display = ['option_type', 'option_value', 'name', 'sort_order', 'is_active']
    list_filter = ['option_type', 'is_active']
    search_fields = ['option_value', 'name']


@admin.register(Favorite)
class FavoriteAdmin(admin.ModelAdmin):
    list_display = ['user', 'variant', 'is_active', 'created_at']
    list_filter = ['is_active']
    raw_id_fields = ['user', 'variant']
