from django.contrib import admin

from .models import Platform, PlatformFee, Listing


class PlatformFeeInline(admin.TabularInline):
    model = PlatformFee
    extra = 0
    fields = ['fee_type', 'value', 'is_percentage', 'effective_date', 'end_date', 'is_active']


@admin.register(Platform)
class PlatformAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'base_url', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'description']
    readonly_fields = ['slug', 'created_at', 'updated_at']
    inlines = [PlatformFeeInline]


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    list_display = ['variant', 'platform', 'listing_status', 'platform_price', 'is_active_on_platform',
                    'last_synced_at']
    list_filter = ['platform', 'listing_status', 'is_active_on_platform']
    search_fields = ['platform_sku', 'platform_product_id', 'variant__sku_code']
    raw_id_fields = ['variant']
    readonly_fields = ['last_synced_at', 'created_at', 'updated_at']
