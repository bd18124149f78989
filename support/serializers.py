"""
Support Serializers
"""
from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import SupportTicket, TicketMessage

User = get_user_model()


class TicketMessageSerializer(serializers.ModelSerializer):
    sender_email = serializers.EmailField(source='sender.email', read_only=True)

    class Meta:
        model = TicketMessage
        fields = [
            'id', 'sender', 'sender_email', 'sender_role', 'message',
            'message_type', 'is_internal', 'attachments', 'created_at'
        ]
        read_only_fields = fields


class SupportTicketListSerializer(serializers.ModelSerializer):
    is_overdue = serializers.BooleanField(read_only=True)
    age_in_hours = serializers.IntegerField(read_only=True)
    user_email = serializers.EmailField(source='user.email', read_only=True)

    class Meta:
        model = SupportTicket
        fields = [
            'id', 'ticket_number', 'subject', 'category', 'priority', 'status',
            'user_email', 'assigned_to', 'is_escalated', 'is_overdue', 'age_in_hours',
            'last_activity_at', 'created_at'
        ]


class SupportTicketSerializer(serializers.ModelSerializer):
    """
    Full ticket. Internal messages are only included for admins.
    """
    messages = serializers.SerializerMethodField()
    is_overdue = serializers.BooleanField(read_only=True)
    user_email = serializers.EmailField(source='user.email', read_only=True)

    class Meta:
        model = SupportTicket
        fields = [
            'id', 'ticket_number', 'subject', 'description', 'category',
            'priority', 'status', 'user', 'user_email',
            'related_order', 'related_product',
            'assigned_to', 'assigned_at',
            'resolution_type', 'resolution_summary', 'resolved_at', 'closed_at',
            'satisfaction_rating', 'satisfaction_feedback',
            'response_due', 'resolution_due', 'first_response_at',
            'response_time_minutes', 'resolution_time_minutes', 'is_sla_breached',
            'is_escalated', 'escalated_at', 'escalation_reason', 'escalation_level',
            'tags', 'is_overdue', 'messages', 'last_activity_at', 'created_at', 'updated_at'
        ]
        read_only_fields = [f for f in fields if f not in (
            'subject', 'description', 'category', 'priority',
            'related_order', 'related_product', 'tags'
        )]

    def get_messages(self, obj):
        request = self.context.get('request')
        messages = obj.messages.select_related('sender')
        if not (request and request.user.is_admin):
            messages = messages.filter(is_internal=False)
        return TicketMessageSerializer(messages, many=True).data

    def validate_related_order(self, value):
        request = self.context.get('request')
        owner_id = self.instance.user_id if self.instance else getattr(request, 'user', None) and request.user.pk
        if value and value.user_id != owner_id:
            raise serializers.ValidationError('Order not found.')
        return value

    def validate_tags(self, value):
        if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
            raise serializers.ValidationError('Tags must be a list of strings.')
        return [tag.strip().lower() for tag in value if tag.strip()][:10]


class MessageCreateSerializer(serializers.Serializer):
    message = serializers.CharField(max_length=5000)
    attachments = serializers.ListField(child=serializers.URLField(), required=False, default=list, max_length=10)


class AssignSerializer(serializers.Serializer):
    assigned_to = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True))


class TicketStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=SupportTicket.STATUS_CHOICES)
    note = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class ResolveSerializer(serializers.Serializer):
    resolution_type = serializers.ChoiceField(choices=SupportTicket.RESOLUTION_CHOICES)
    resolution_summary = serializers.CharField(max_length=2000)


class EscalateSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000)


class NoteSerializer(serializers.Serializer):
    note = serializers.CharField(max_length=5000)


class RateSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    feedback = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')
