"""
Notification Serializers
"""
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    """User-facing representation"""
    is_expired = serializers.BooleanField(read_only=True)

    class Meta:
        model = Notification
        fields = [
            'id', 'title', 'message', 'notification_type', 'priority',
            'status', 'is_read', 'read_at', 'is_broadcast',
            'action_type', 'action_url', 'action_text',
            'related_entity_type', 'related_entity_id',
            'send_at', 'expires_at', 'is_expired', 'created_at'
        ]
        read_only_fields = fields


class AdminNotificationSerializer(serializers.ModelSerializer):
    recipient_email = serializers.EmailField(source='recipient_user.email', read_only=True)

    class Meta:
        model = Notification
        fields = [
            'id', 'title', 'message', 'notification_type', 'target_type',
            'recipient_user', 'recipient_email', 'recipient_admin', 'is_broadcast',
            'priority', 'status', 'is_read', 'read_at',
            'action_type', 'action_url', 'action_text',
            'related_entity_type', 'related_entity_id', 'channels',
            'sender_type', 'sender', 'send_at', 'expires_at',
            'delivery_attempts', 'last_delivery_attempt', 'delivery_error',
            'is_active', 'deleted_at', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'sender_type', 'sender', 'is_read', 'read_at',
            'delivery_attempts', 'last_delivery_attempt', 'delivery_error',
            'deleted_at', 'created_at', 'updated_at'
        ]

    def validate(self, data):
        # Run model.clean() on the merged state, without touching self.instance
        instance = Notification()
        if self.instance is not None:
            for field in Notification._meta.concrete_fields:
                setattr(instance, field.attname, getattr(self.instance, field.attname))
        for key, value in data.items():
            setattr(instance, key, value)
        try:
            instance.clean()
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.message_dict)
        return data


class _OutgoingSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200)
    message = serializers.CharField(max_length=1000)
    notification_type = serializers.ChoiceField(choices=Notification.NOTIFICATION_TYPES, default='INFO')
    priority = serializers.ChoiceField(choices=Notification.PRIORITY_CHOICES, default='MEDIUM')
    action_type = serializers.ChoiceField(choices=Notification.ACTION_CHOICES, default=Notification.ACTION_NONE)
    action_url = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')

    def validate(self, data):
        if data['action_type'] != Notification.ACTION_NONE and not data.get('action_url'):
            raise serializers.ValidationError({'action_url': 'Required when an action is set.'})
        return data


class BroadcastSerializer(_OutgoingSerializer):
    target_type = serializers.ChoiceField(choices=Notification.TARGET_CHOICES, default=Notification.TARGET_USER)
    send_at = serializers.DateTimeField(required=False, allow_null=True)
    expires_at = serializers.DateTimeField(required=False, allow_null=True)


class SendToUsersSerializer(_OutgoingSerializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False, max_length=1000)
    channels = serializers.ListField(
        child=serializers.ChoiceField(choices=Notification.CHANNELS),
        required=False,
    )
