"""
Core Admin - Users and addresses
"""
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User, Address


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Admin interface for store users
    """
    list_display = ['email', 'username', 'role', 'user_group', 'is_active', 'date_joined']
    list_filter = ['role', 'user_group', 'is_active', 'is_staff']
    search_fields = ['email', 'username', 'first_name', 'last_name', 'phone']
    ordering = ['-date_joined']
    raw_id_fields = ['referred_by']

    fieldsets = BaseUserAdmin.fieldsets + (
        ('Store Profile', {
            'fields': ('role', 'phone', 'user_group', 'referred_by')
        }),
    )


@admin.register(Address)
class AddressAdmin(admin.ModelAdmin):
    list_display = ['title', 'user', 'address_type', 'city', 'postal_code', 'is_default', 'is_active']
    list_filter = ['address_type', 'is_default', 'is_active', 'country']
    search_fields = ['user__email', 'full_name', 'city', 'postal_code']
    raw_id_fields = ['user']
    readonly_fields = ['usage_count', 'created_at', 'updated_at']
