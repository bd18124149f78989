from django.contrib import admin
from django.utils.html import format_html

from .models import Inventory


@admin.register(Inventory)
class InventoryAdmin(admin.ModelAdmin):
    list_display = ['variant', 'stock_quantity', 'min_stock_level', 'stock_badge', 'location', 'is_active']
    list_filter = ['is_active', 'location']
    search_fields = ['variant__sku_code', 'variant__product__name']
    list_select_related = ['variant__product']
    raw_id_fields = ['variant']
    readonly_fields = ['last_restock_date', 'last_sold_date', 'created_at', 'updated_at']

    STATUS_COLORS = {
        Inventory.STATUS_OUT: '#e74c3c',
        Inventory.STATUS_LOW: '#e67e22',
        Inventory.STATUS_MEDIUM: '#f1c40f',
        Inventory.STATUS_HIGH: '#27ae60',
    }

    def stock_badge(self, obj):
        return format_html(
            '<span style="background: {}; color: white; padding: 2px 6px; border-radius: 3px;">{}</span>',
            self.STATUS_COLORS[obj.stock_status],
            obj.stock_status
        )
    stock_badge.short_description = "Status"
