from django.contrib import admin

from .models import Email, EmailRecipient, EmailTemplate


@admin.register(EmailTemplate)
class EmailTemplateAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'status', 'visibility', 'version', 'total_uses', 'last_used_at']
    list_filter = ['category', 'status', 'visibility']
    search_fields = ['name', 'description', 'subject_template']
    raw_id_fields = ['parent_template', 'created_by']
    readonly_fields = ['total_uses', 'last_used_at', 'created_at', 'updated_at']


class EmailRecipientInline(admin.TabularInline):
    model = EmailRecipient
    extra = 0
    fields = ['address', 'name', 'status', 'sent_at', 'failure_reason']
    readonly_fields = ['status', 'sent_at', 'failure_reason']


@admin.register(Email)
class EmailAdmin(admin.ModelAdmin):
    list_display = ['subject', 'recipient_type', 'email_type', 'status', 'scheduled_at', 'sent_at']
    list_filter = ['status', 'email_type', 'recipient_type', 'priority']
    search_fields = ['subject']
    raw_id_fields = ['sender', 'template']
    readonly_fields = ['sent_at', 'completed_at', 'created_at', 'updated_at']
    inlines = [EmailRecipientInline]
