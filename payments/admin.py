from django.contrib import admin

from .models import PaymentMethod


@admin.register(PaymentMethod)
class PaymentMethodAdmin(admin.ModelAdmin):
    list_display = ['user', 'method_type', 'alias', 'is_default', 'is_active', 'created_at']
    list_filter = ['method_type', 'is_default', 'is_active']
    search_fields = ['user__email', 'alias']
    raw_id_fields = ['user']
