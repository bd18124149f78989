from django.contrib import admin

from .models import SupportTicket, TicketMessage


class TicketMessageInline(admin.TabularInline):
    model = TicketMessage
    extra = 0
    fields = ['sender', 'sender_role', 'message_type', 'is_internal', 'message', 'created_at']
    readonly_fields = ['created_at']
    raw_id_fields = ['sender']


@admin.register(SupportTicket)
class SupportTicketAdmin(admin.ModelAdmin):
    list_display = ['ticket_number', 'subject', 'user', 'category', 'priority', 'status',
                    'assigned_to', 'is_escalated', 'is_sla_breached', 'created_at']
    list_filter = ['status', 'priority', 'category', 'is_escalated', 'is_sla_breached']
    search_fields = ['ticket_number', 'subject', 'user__email']
    raw_id_fields = ['user', 'assigned_to', 'escalated_by', 'related_order', 'related_product']
    readonly_fields = ['ticket_number', 'first_response_at', 'response_time_minutes',
                       'resolved_at', 'resolution_time_minutes', 'closed_at', 'last_activity_at']
    inlines = [TicketMessageInline]
