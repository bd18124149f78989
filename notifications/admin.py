from django.contrib import admin

from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['title', 'notification_type', 'target_type', 'recipient_user', 'is_broadcast',
                    'status', 'is_read', 'created_at']
    list_filter = ['notification_type', 'target_type', 'status', 'is_broadcast', 'is_read']
    search_fields = ['title', 'message', 'recipient_user__email']
    raw_id_fields = ['recipient_user', 'recipient_admin', 'sender']
    readonly_fields = ['delivery_attempts', 'last_delivery_attempt', 'delivery_error', 'read_at']
