"""
Mailing Serializers
"""
import re

from django.utils import timezone
from rest_framework import serializers

from core.models import User
from . import services
from .models import Email, EmailRecipient, EmailTemplate

VARIABLE_NAME = re.compile(r'^\w+$')


class EmailTemplateSerializer(serializers.ModelSerializer):
    variables = serializers.ListField(child=serializers.DictField(), required=False)
    tags = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    validation = serializers.SerializerMethodField()
    created_by_email = serializers.EmailField(source='created_by.email', read_only=True)

    class Meta:
        model = EmailTemplate
        fields = [
            'id', 'name', 'description', 'subject_template', 'html_template', 'text_template',
            'category', 'variables', 'tags', 'status', 'visibility', 'version',
            'parent_template', 'total_uses', 'last_used_at', 'created_by', 'created_by_email',
            'validation', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'version', 'parent_template', 'total_uses', 'last_used_at', 'created_by',
            'created_at', 'updated_at'
        ]

    def get_validation(self, obj):
        return obj.validate_template()

    def validate_variables(self, value):
        names = set()
        for var in value:
            name = var.get('name', '')
            if not VARIABLE_NAME.match(str(name)):
                raise serializers.ValidationError(f"Invalid variable name: {name!r}.")
            if name in names:
                raise serializers.ValidationError(f"Variable '{name}' is declared twice.")
            if var.get('type', 'text') not in EmailTemplate.VARIABLE_TYPES:
                raise serializers.ValidationError(f"Variable '{name}' has an unknown type.")
            names.add(name)
        return [
            {
                'name': var['name'],
                'description': str(var.get('description', ''))[:200],
                'type': var.get('type', 'text'),
                'required': bool(var.get('required', False)),
                'default_value': var.get('default_value', ''),
            }
            for var in value
        ]

    def validate(self, data):
        candidate = EmailTemplate(
            subject_template=data.get('subject_template', getattr(self.instance, 'subject_template', '')),
            html_template=data.get('html_template', getattr(self.instance, 'html_template', '')),
            text_template=data.get('text_template', getattr(self.instance, 'text_template', '')),
            variables=data.get('variables', getattr(self.instance, 'variables', [])),
        )
        errors = candidate.validate_template()['errors']
        if errors:
            raise serializers.ValidationError({'variables': errors})
        return data


class TemplatePreviewSerializer(serializers.Serializer):
    variables = serializers.DictField(required=False, default=dict)


class TemplateCloneSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100, required=False)
    description = serializers.CharField(max_length=500, required=False)


class EmailRecipientSerializer(serializers.ModelSerializer):
    class Meta:
        model = EmailRecipient
        fields = ['id', 'user', 'address', 'name', 'status', 'sent_at', 'failure_reason']
        read_only_fields = fields


class BroadcastCriteriaSerializer(serializers.Serializer):
    user_roles = serializers.ListField(
        child=serializers.ChoiceField(choices=User.ROLE_CHOICES), required=False
    )
    registered_after = serializers.DateTimeField(required=False)
    registered_before = serializers.DateTimeField(required=False)
    last_login_after = serializers.DateTimeField(required=False)
    has_orders = serializers.BooleanField(required=False, allow_null=True, default=None)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        # Stored as JSON
        return {
            key: item.isoformat() if hasattr(item, 'isoformat') else item
            for key, item in value.items()
            if item is not None
        }


class EmailSerializer(serializers.ModelSerializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(), write_only=True, required=False)
    addresses = serializers.ListField(child=serializers.EmailField(), write_only=True, required=False)
    broadcast_criteria = serializers.JSONField(required=False)
    recipients = EmailRecipientSerializer(many=True, read_only=True)
    sender_email = serializers.EmailField(source='sender.email', read_only=True)
    stats = serializers.SerializerMethodField()
    can_edit = serializers.BooleanField(read_only=True)

    class Meta:
        model = Email
        fields = [
            'id', 'subject', 'html_content', 'text_content', 'sender', 'sender_email',
            'recipient_type', 'user_ids', 'addresses', 'broadcast_criteria', 'recipients',
            'template', 'template_variables', 'email_type', 'priority', 'allow_unsubscribe',
            'send_type', 'scheduled_at', 'status', 'sent_at', 'completed_at',
            'can_edit', 'stats', 'created_at', 'updated_at'
        ]
        read_only_fields = ['sender', 'status', 'sent_at', 'completed_at', 'created_at', 'updated_at']

    def get_stats(self, obj):
        return obj.stats()

    def validate_broadcast_criteria(self, value):
        criteria = BroadcastCriteriaSerializer(data=value)
        criteria.is_valid(raise_exception=True)
        return criteria.validated_data

    def validate_template(self, value):
        if value is not None and value.status != EmailTemplate.STATUS_ACTIVE:
            raise serializers.ValidationError("Template is not active.")
        return value

    def validate(self, data):
        def current(field, default=None):
            return data.get(field, getattr(self.instance, field, default))

        if not current('template') and not current('html_content', '').strip():
            raise serializers.ValidationError({'html_content': 'Content is required without a template.'})

        if current('send_type') == Email.SEND_SCHEDULED:
            scheduled_at = current('scheduled_at')
            if scheduled_at is None or scheduled_at <= timezone.now():
                raise serializers.ValidationError({'scheduled_at': 'Scheduled emails need a future send time.'})

        if self.instance is None and current('recipient_type') != Email.RECIPIENTS_BROADCAST:
            if not data.get('user_ids') and not data.get('addresses'):
                raise serializers.ValidationError({'user_ids': 'Give at least one user or address.'})
        return data

    def _save_recipients(self, email, user_ids, addresses):
        if email.recipient_type == Email.RECIPIENTS_BROADCAST:
            return
        if user_ids is not None or addresses is not None:
            services.set_individual_recipients(email, user_ids or [], addresses or [])

    def create(self, validated_data):
        user_ids = validated_data.pop('user_ids', None)
        addresses = validated_data.pop('addresses', None)
        email = super().create(validated_data)
        self._save_recipients(email, user_ids, addresses)
        return email

    def update(self, instance, validated_data):
        user_ids = validated_data.pop('user_ids', None)
        addresses = validated_data.pop('addresses', None)
        email = super().update(instance, validated_data)
        self._save_recipients(email, user_ids, addresses)
        return email


class SendEmailSerializer(serializers.Serializer):
    send_immediately = serializers.BooleanField(default=False)

