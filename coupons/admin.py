from django.contrib import admin
from django.utils.html import format_html

from .models import CouponCampaign, UserCoupon


@admin.register(CouponCampaign)
class CouponCampaignAdmin(admin.ModelAdmin):
    list_display = [
        'name', 'discount_display', 'valid_from', 'valid_until',
        'usage_display', 'is_active'
    ]
    list_filter = ['discount_type', 'is_active', 'is_unique_per_user']
    search_fields = ['name', 'code_prefix']
    prepopulated_fields = {'slug': ('name',)}
    filter_horizontal = ['applicable_categories', 'applicable_variants']
    readonly_fields = ['current_global_usage', 'created_at', 'updated_at']
    actions = ['activate_campaigns', 'deactivate_campaigns']

    fieldsets = (
        ('Campaign', {
            'fields': ('name', 'slug', 'description', 'code_prefix', 'is_active')
        }),
        ('Discount', {
            'fields': ('discount_type', 'discount_value', 'min_purchase_amount', 'max_coupon_discount')
        }),
        ('Validity & Usage', {
            'fields': (
                'valid_from', 'valid_until', 'max_global_usage', 'current_global_usage',
                'max_usage_per_user', 'is_unique_per_user'
            )
        }),
        ('Targeting', {
            'fields': ('eligibility_criteria', 'applicable_categories', 'applicable_variants'),
            'classes': ('collapse',)
        }),
    )

    def discount_display(self, obj):
        if obj.discount_type == CouponCampaign.DISCOUNT_PERCENTAGE:
            return f"{obj.discount_value}%"
        if obj.discount_type == CouponCampaign.DISCOUNT_FREE_SHIPPING:
            return "Free shipping"
        return f"₹{obj.discount_value}"
    discount_display.short_description = "Discount"

    def usage_display(self, obj):
        if obj.max_global_usage:
            return f"{obj.current_global_usage}/{obj.max_global_usage}"
        return f"{obj.current_global_usage}/∞"
    usage_display.short_description = "Usage"

    def activate_campaigns(self, request, queryset):
        updated = queryset.update(is_active=True)
        self.message_user(request, f'{updated} campaigns activated.')

    def deactivate_campaigns(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f'{updated} campaigns deactivated.')


@admin.register(UserCoupon)
class UserCouponAdmin(admin.ModelAdmin):
    list_display = ['coupon_code', 'user', 'campaign', 'current_usage_count', 'expires_at', 'status_badge']
    list_filter = ['is_active', 'is_redeemed', 'campaign']
    search_fields = ['coupon_code', 'user__email']
    raw_id_fields = ['user', 'campaign']
    readonly_fields = ['current_usage_count', 'redeemed_at', 'created_at']

    STATUS_COLORS = {
        UserCoupon.STATUS_ACTIVE: '#27ae60',
        UserCoupon.STATUS_REDEEMED: '#3498db',
        UserCoupon.STATUS_EXPIRED: '#e67e22',
        UserCoupon.STATUS_INACTIVE: '#95a5a6',
    }

    def status_badge(self, obj):
        return format_html(
            '<span style="background: {}; color: white; padding: 2px 6px; border-radius: 3px;">{}</span>',
            self.STATUS_COLORS[obj.status],
            obj.status
        )
    status_badge.short_description = "Status"
