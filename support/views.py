"""
Support Views - customers raise tickets, admins work them
"""
import logging

from django.db.models import Q
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status, filters, mixins
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.permissions import IsAdmin
from .models import SupportTicket
from .serializers import (
    SupportTicketSerializer,
    SupportTicketListSerializer,
    TicketMessageSerializer,
    MessageCreateSerializer,
    AssignSerializer,
    TicketStatusSerializer,
    ResolveSerializer,
    EscalateSerializer,
    NoteSerializer,
    RateSerializer,
)
from . import services

logger = logging.getLogger(__name__)


class SupportTicketViewSet(mixins.CreateModelMixin,
                           mixins.ListModelMixin,
                           mixins.RetrieveModelMixin,
                           viewsets.GenericViewSet):
    """
    The current user's tickets
    """
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'category', 'priority']
    search_fields = ['ticket_number', 'subject']
    ordering_fields = ['created_at', 'last_activity_at']

    def get_queryset(self):
        return SupportTicket.objects.filter(user=self.request.user)

    def get_serializer_class(self):
        if self.action == 'list':
            return SupportTicketListSerializer
        return SupportTicketSerializer

    def perform_create(self, serializer):
        serializer.instance = services.create_ticket(self.request.user, **serializer.validated_data)

    @action(detail=True, methods=['post'])
    def add_message(self, request, pk=None):
        """POST /api/support/tickets/{id}/add_message/ {"message": "..."}"""
        ticket = self.get_object()
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = services.user_reply(
            ticket, request.user, serializer.validated_data['message'],
            serializer.validated_data['attachments']
        )
        return Response(TicketMessageSerializer(entry).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def close(self, request, pk=None):
        ticket = services.close(self.get_object(), request.user)
        return Response(self.get_serializer(ticket).data)

    @action(detail=True, methods=['post'])
    def rate(self, request, pk=None):
        """POST /api/support/tickets/{id}/rate/ {"rating": 5, "feedback": ""}"""
        serializer = RateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket = services.rate(
            self.get_object(), request.user,
            serializer.validated_data['rating'], serializer.validated_data['feedback']
        )
        return Response(self.get_serializer(ticket).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        ticket = services.cancel(self.get_object(), request.user)
        return Response(self.get_serializer(ticket).data)


class AdminSupportTicketViewSet(mixins.ListModelMixin,
                                mixins.RetrieveModelMixin,
                                mixins.UpdateModelMixin,
                                viewsets.GenericViewSet):
    """
    Ticket desk for admins
    """
    permission_classes = [IsAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'category', 'priority', 'assigned_to', 'user', 'is_sla_breached']
    search_fields = ['ticket_number', 'subject', 'user__email']
    ordering_fields = ['created_at', 'last_activity_at', 'priority', 'resolution_due']

    def get_queryset(self):
        queryset = SupportTicket.objects.select_related('user', 'assigned_to')
        params = self.request.query_params

        if params.get('overdue_only', '').lower() == 'true':
            now = timezone.now()
            queryset = queryset.exclude(status__in=SupportTicket.FINISHED_STATUSES).filter(
                Q(response_due__lt=now, first_response_at__isnull=True) | Q(resolution_due__lt=now)
            )
        if params.get('escalated_only', '').lower() == 'true':
            queryset = queryset.filter(is_escalated=True)
        if params.get('unassigned_only', '').lower() == 'true':
            queryset = queryset.filter(assigned_to__isnull=True)
        return queryset

    def get_serializer_class(self):
        if self.action == 'list':
            return SupportTicketListSerializer
        return SupportTicketSerializer

    def _respond(self, ticket):
        return Response(SupportTicketSerializer(ticket, context=self.get_serializer_context()).data)

    @action(detail=True, methods=['post'])
    def assign(self, request, pk=None):
        """POST /api/admin/support/tickets/{id}/assign/ {"assigned_to": admin_id}"""
        serializer = AssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket = services.assign(self.get_object(), request.user, serializer.validated_data['assigned_to'])
        return self._respond(ticket)

    @action(detail=True, methods=['post'])
    def update_status(self, request, pk=None):
        """POST /api/admin/support/tickets/{id}/update_status/ {"status": "IN_PROGRESS", "note": ""}"""
        serializer = TicketStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket = services.update_status(
            self.get_object(), request.user,
            serializer.validated_data['status'], serializer.validated_data['note']
        )
        return self._respond(ticket)

    @action(detail=True, methods=['post'])
    def resolve(self, request, pk=None):
        serializer = ResolveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket = services.resolve(
            self.get_object(), request.user,
            serializer.validated_data['resolution_type'], serializer.validated_data['resolution_summary']
        )
        return self._respond(ticket)

    @action(detail=True, methods=['post'])
    def escalate(self, request, pk=None):
        serializer = EscalateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket = services.escalate(self.get_object(), request.user, serializer.validated_data['reason'])
        return self._respond(ticket)

    @action(detail=True, methods=['post'])
    def add_internal_note(self, request, pk=None):
        serializer = NoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = services.add_internal_note(self.get_object(), request.user, serializer.validated_data['note'])
        return Response(TicketMessageSerializer(entry).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def add_message(self, request, pk=None):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = services.admin_reply(
            self.get_object(), request.user,
            serializer.validated_data['message'], serializer.validated_data['attachments']
        )
        return Response(TicketMessageSerializer(entry).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def analytics(self, request):
        """GET /api/admin/support/tickets/analytics/"""
        return Response(services.ticket_analytics())

    @action(detail=False, methods=['post'])
    def check_sla(self, request):
        """POST /api/admin/support/tickets/check_sla/"""
        flagged = services.check_sla_breaches()
        return Response({'flagged': flagged, 'overdue': services.overdue_tickets().count()})
