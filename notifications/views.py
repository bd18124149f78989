"""
Notification Views
"""
import logging

from django.contrib.auth import get_user_model
from django.db.models import Count
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status, filters, mixins
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.audit import log_admin_action
from core.exceptions import BadRequest, Forbidden
from core.permissions import IsAdmin
from .models import Notification
from .serializers import (
    NotificationSerializer,
    AdminNotificationSerializer,
    BroadcastSerializer,
    SendToUsersSerializer,
)
from . import services

logger = logging.getLogger(__name__)
User = get_user_model()


class NotificationViewSet(mixins.ListModelMixin,
                          mixins.RetrieveModelMixin,
                          mixins.DestroyModelMixin,
                          viewsets.GenericViewSet):
    """
    Notifications visible to the current user
    """
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['notification_type', 'priority', 'is_read']
    ordering_fields = ['created_at', 'priority']

    def get_queryset(self):
        queryset = Notification.objects.visible_to(self.request.user)
        if self.request.query_params.get('unread_only', '').lower() == 'true':
            queryset = queryset.filter(is_read=False)
        return queryset

    def perform_destroy(self, instance):
        if instance.recipient_user_id != self.request.user.pk:
            raise Forbidden('Broadcast notifications cannot be deleted.')
        instance.soft_delete()

    @action(detail=False, methods=['get'])
    def unread_count(self, request):
        """GET /api/notifications/unread_count/"""
        count = Notification.objects.visible_to(request.user).filter(is_read=False).count()
        return Response({'unread_count': count})

    @action(detail=True, methods=['post'])
    def mark_read(self, request, pk=None):
        """POST /api/notifications/{id}/mark_read/"""
        notification = self.get_object()
        notification.mark_read()
        return Response(self.get_serializer(notification).data)

    @action(detail=False, methods=['post'])
    def mark_all_read(self, request):
        """POST /api/notifications/mark_all_read/"""
        updated = services.mark_all_read(request.user)
        return Response({'marked_read': updated})


class AdminNotificationViewSet(viewsets.ModelViewSet):
    """
    Notification administration
    """
    serializer_class = AdminNotificationSerializer
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['notification_type', 'target_type', 'status', 'priority', 'is_broadcast', 'is_active']
    search_fields = ['title', 'message', 'recipient_user__email']
    ordering_fields = ['created_at', 'priority', 'status']

    def get_queryset(self):
        return Notification.objects.filter(deleted_at__isnull=True).select_related('recipient_user')

    def perform_create(self, serializer):
        notification = serializer.save(sender=self.request.user, sender_type=Notification.SENDER_ADMIN)
        log_admin_action(self.request.user, 'CREATE_NOTIFICATION', 'Notification', notification.pk)

    def perform_destroy(self, instance):
        instance.soft_delete()
        log_admin_action(self.request.user, 'DELETE_NOTIFICATION', 'Notification', instance.pk)

    @action(detail=False, methods=['post'])
    def broadcast(self, request):
        """POST /api/admin/notifications/broadcast/"""
        serializer = BroadcastSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        notification = services.broadcast(data.pop('title'), data.pop('message'), sender=request.user, **data)
        log_admin_action(request.user, 'BROADCAST_NOTIFICATION', 'Notification', notification.pk,
                         {'target_type': notification.target_type})
        return Response(self.get_serializer(notification).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'])
    def send_to_users(self, request):
        """POST /api/admin/notifications/send_to_users/ {"user_ids": [1, 2], "title": "", "message": ""}"""
        serializer = SendToUsersSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        user_ids = set(data.pop('user_ids'))
        users = list(User.objects.filter(pk__in=user_ids, is_active=True))
        if not users:
            raise BadRequest('None of the given users exist.')

        notifications = services.send_to_users(
            users, data.pop('title'), data.pop('message'), sender=request.user, **data
        )
        missing = sorted(user_ids - {user.pk for user in users})
        log_admin_action(request.user, 'SEND_NOTIFICATIONS', 'Notification', None,
                         {'sent': len(notifications), 'missing_user_ids': missing})
        return Response({
            'sent': len(notifications),
            'missing_user_ids': missing,
            'notifications': self.get_serializer(notifications, many=True).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        """GET /api/admin/notifications/stats/"""
        queryset = self.get_queryset()
        total = queryset.count()
        read = queryset.filter(is_read=True).count()
        return Response({
            'total': total,
            'read': read,
            'unread': total - read,
            'read_rate': round(read / total * 100, 2) if total else 0,
            'broadcasts': queryset.filter(is_broadcast=True).count(),
            'by_type': {
                row['notification_type']: row['count']
                for row in queryset.values('notification_type').annotate(count=Count('id'))
            },
            'by_status': {
                row['status']: row['count']
                for row in queryset.values('status').annotate(count=Count('id'))
            },
        })
