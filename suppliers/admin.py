from django.contrib import admin
from django.utils.html import format_html

from .models import Supplier, SupplierContactNumber, Purchase
from .services import apply_purchase_completion


class SupplierContactNumberInline(admin.TabularInline):
    model = SupplierContactNumber
    extra = 0
    fields = ['contact_number', 'contact_name', 'is_primary', 'is_active']


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'city', 'rating', 'status', 'is_active']
    list_filter = ['status', 'is_active', 'country']
    search_fields = ['name', 'email', 'city']
    prepopulated_fields = {'slug': ('name',)}
    inlines = [SupplierContactNumberInline]

    fieldsets = (
        ('Supplier', {
            'fields': ('name', 'slug', 'description', 'logo_url', 'email', 'website')
        }),
        ('Address', {
            'fields': ('street', 'city', 'state', 'zipcode', 'country')
        }),
        ('Terms', {
            'fields': ('rating', 'status', 'payment_terms', 'delivery_terms', 'notes', 'is_active')
        }),
    )


@admin.register(Purchase)
class PurchaseAdmin(admin.ModelAdmin):
    list_display = [
        'purchase_order_number', 'variant', 'supplier', 'quantity',
        'landing_price', 'status_badge', 'inventory_updated_on_completion'
    ]
    list_filter = ['status', 'supplier', 'purchase_date']
    search_fields = ['purchase_order_number', 'variant__sku_code', 'supplier__name']
    raw_id_fields = ['variant']
    readonly_fields = ['purchase_order_number', 'inventory_updated_on_completion', 'created_at', 'updated_at']
    date_hierarchy = 'purchase_date'
    actions = ['mark_received']

    STATUS_COLORS = {
        Purchase.STATUS_PLANNED: '#95a5a6',
        Purchase.STATUS_PENDING: '#f39c12',
        Purchase.STATUS_COMPLETED: '#27ae60',
        Purchase.STATUS_CANCELLED: '#e74c3c',
        Purchase.STATUS_PARTIAL: '#3498db',
    }

    def status_badge(self, obj):
        return format_html(
            '<span style="background: {}; color: white; padding: 2px 6px; border-radius: 3px;">{}</span>',
            self.STATUS_COLORS.get(obj.status, '#95a5a6'),
            obj.status
        )
    status_badge.short_description = "Status"

    def mark_received(self, request, queryset):
        received = 0
        for purchase in queryset.exclude(status=Purchase.STATUS_CANCELLED):
            purchase.status = Purchase.STATUS_COMPLETED
            purchase.save(update_fields=['status', 'updated_at'])
            apply_purchase_completion(purchase)
            received += 1
        self.message_user(request, f'{received} purchases received.')
    mark_received.short_description = "Mark as received (credit inventory)"
