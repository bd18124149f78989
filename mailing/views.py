"""
Mailing Views - admin email composition and template library
"""
import logging

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.response import Response

from core.audit import log_admin_action
from core.exceptions import BadRequest, Conflict
from core.permissions import IsAdmin
from .models import Email, EmailTemplate
from .serializers import (
    EmailTemplateSerializer,
    TemplatePreviewSerializer,
    TemplateCloneSerializer,
    EmailSerializer,
    SendEmailSerializer,
)
from . import services

logger = logging.getLogger(__name__)


def _permanent(request):
    return request.query_params.get('permanent', '').lower() == 'true'


class EmailTemplateViewSet(viewsets.ModelViewSet):
    """
    Template library
    DELETE archives; ?permanent=true removes templates no live email uses
    """
    serializer_class = EmailTemplateSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['category', 'status', 'visibility']
    search_fields = ['name', 'description', 'subject_template']
    ordering_fields = ['name', 'total_uses', 'created_at']

    def get_queryset(self):
        return EmailTemplate.objects.select_related('created_by')

    def perform_create(self, serializer):
        template = serializer.save(created_by=self.request.user)
        log_admin_action(self.request.user, 'CREATE_EMAIL_TEMPLATE', 'EmailTemplate', template.pk,
                         {'name': template.name})

    def perform_update(self, serializer):
        template = serializer.save()
        log_admin_action(self.request.user, 'UPDATE_EMAIL_TEMPLATE', 'EmailTemplate', template.pk)

    def destroy(self, request, *args, **kwargs):
        template = self.get_object()
        in_use = template.emails.exclude(status__in=[Email.STATUS_CANCELLED, Email.STATUS_FAILED]).count()

        if _permanent(request):
            if in_use:
                raise Conflict(
                    f'{in_use} emails still use this template.',
                    code='template_in_use',
                    extra={'emails_affected': in_use},
                )
            template_id = template.pk
            template.delete()
            log_admin_action(request.user, 'DELETE_EMAIL_TEMPLATE', 'EmailTemplate', template_id)
            return Response(status=status.HTTP_204_NO_CONTENT)

        template.status = EmailTemplate.STATUS_ARCHIVED
        template.save(update_fields=['status', 'updated_at'])
        log_admin_action(request.user, 'ARCHIVE_EMAIL_TEMPLATE', 'EmailTemplate', template.pk)
        return Response({'status': template.status, 'emails_affected': in_use})

    @action(detail=True, methods=['post'])
    def preview(self, request, pk=None):
        """POST /api/admin/email-templates/{id}/preview/ {"variables": {"name": "Asha"}}"""
        template = self.get_object()
        serializer = TemplatePreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        values = serializer.validated_data['variables']
        _, missing = template.resolve_values(values)
        return Response({
            **template.render(values),
            'missing_variables': missing,
            'validation': template.validate_template(),
        })

    @action(detail=True, methods=['post'])
    def clone(self, request, pk=None):
        """POST /api/admin/email-templates/{id}/clone/ {"name": "..."}"""
        template = self.get_object()
        serializer = TemplateCloneSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        clone = services.clone_template(template, request.user, **serializer.validated_data)
        log_admin_action(request.user, 'CLONE_EMAIL_TEMPLATE', 'EmailTemplate', clone.pk, {'source': template.pk})
        return Response(self.get_serializer(clone).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def analytics(self, request):
        """GET /api/admin/email-templates/analytics/"""
        return Response(services.template_analytics())


class EmailViewSet(viewsets.ModelViewSet):
    """
    Admin-composed emails
    Only DRAFT and SCHEDULED emails can be edited or sent
    """
    serializer_class = EmailSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'email_type', 'priority', 'recipient_type']
    search_fields = ['subject']
    ordering_fields = ['created_at', 'scheduled_at', 'sent_at']

    def get_queryset(self):
        return Email.objects.select_related('sender', 'template').prefetch_related('recipients')

    def perform_create(self, serializer):
        email = serializer.save(sender=self.request.user)
        log_admin_action(self.request.user, 'CREATE_EMAIL', 'Email', email.pk, {
            'recipient_type': email.recipient_type, 'email_type': email.email_type,
        })

    def perform_update(self, serializer):
        if not serializer.instance.can_edit:
            raise Conflict('Email cannot be edited in its current status.', code='not_editable',
                           extra={'current_status': serializer.instance.status})
        email = serializer.save()
        log_admin_action(self.request.user, 'UPDATE_EMAIL', 'Email', email.pk)

    def destroy(self, request, *args, **kwargs):
        """DELETE cancels; ?permanent=true removes the row"""
        email = self.get_object()
        if email.status == Email.STATUS_SENDING:
            raise Conflict('Email is being sent.', code='sending')

        if _permanent(request):
            email_id = email.pk
            email.delete()
            log_admin_action(request.user, 'DELETE_EMAIL', 'Email', email_id)
            return Response(status=status.HTTP_204_NO_CONTENT)

        if not email.can_edit:
            raise Conflict('Only draft or scheduled emails can be cancelled.', code='not_cancellable',
                           extra={'current_status': email.status})
        email.status = Email.STATUS_CANCELLED
        email.save(update_fields=['status', 'updated_at'])
        log_admin_action(request.user, 'CANCEL_EMAIL', 'Email', email.pk)
        return Response({'status': email.status})

    @action(detail=True, methods=['post'])
    def send(self, request, pk=None):
        """POST /api/admin/emails/{id}/send/ {"send_immediately": false}"""
        email = self.get_object()
        serializer = SendEmailSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        if serializer.validated_data['send_immediately']:
            email = services.send_email(email)
        else:
            email = services.dispatch(email)

        log_admin_action(request.user, 'SEND_EMAIL', 'Email', email.pk, {'status': email.status})
        return Response(self.get_serializer(self.get_queryset().get(pk=email.pk)).data)

    @action(detail=False, methods=['post'])
    def broadcast(self, request):
        """POST /api/admin/emails/broadcast/ - create and dispatch in one step"""
        data = request.data.copy()
        data['recipient_type'] = Email.RECIPIENTS_BROADCAST
        serializer = self.get_serializer(data=data)
        serializer.is_valid(raise_exception=True)
        if not services.resolve_broadcast_users(serializer.validated_data.get('broadcast_criteria')).exists():
            raise BadRequest('No users match the broadcast criteria.', code='no_recipients')

        email = serializer.save(sender=request.user)
        email = services.dispatch(email)
        log_admin_action(request.user, 'BROADCAST_EMAIL', 'Email', email.pk, {'status': email.status})
        return Response(
            self.get_serializer(self.get_queryset().get(pk=email.pk)).data,
            status=status.HTTP_201_CREATED
        )

    @action(detail=False, methods=['get'])
    def analytics(self, request):
        """GET /api/admin/emails/analytics/?days=30"""
        try:
            days = max(1, min(int(request.query_params.get('days', 30)), 365))
        except ValueError:
            raise BadRequest('days must be a number.')
        return Response(services.email_analytics(days))
