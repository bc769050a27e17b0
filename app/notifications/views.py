"""
Views for notification API.

Endpoints:
    GET  /api/v1/notifications/            - List user's notifications (paginated)
    POST /api/v1/notifications/{id}/read/  - Mark single notification as read
    POST /api/v1/notifications/read-all/   - Mark all notifications as read
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from notifications.models import Notification
from notifications.serializers import NotificationSerializer
from notifications.services import NotificationService


class NotificationListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = NotificationSerializer

    def get_queryset(self):
        queryset = Notification.objects.filter(recipient=self.request.user)
        if self.request.query_params.get("unread") == "true":
            queryset = queryset.filter(is_read=False)
        return queryset

    @extend_schema(
        operation_id="notifications_list",
        summary="List notifications",
        tags=["Notifications"],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class NotificationReadView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="notifications_mark_read",
        summary="Mark notification as read",
        request=None,
        responses={
            200: NotificationSerializer,
            404: OpenApiResponse(description="Notification not found"),
        },
        tags=["Notifications"],
    )
    def post(self, request, pk):
        result = NotificationService.mark_as_read(request.user, pk)
        if not result.success:
            return Response(result.to_response(), status=status.HTTP_404_NOT_FOUND)
        return Response(NotificationSerializer(result.data).data)


class NotificationReadAllView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="notifications_mark_all_read",
        summary="Mark all notifications as read",
        request=None,
        responses={200: OpenApiResponse(description="Count of updated notifications")},
        tags=["Notifications"],
    )
    def post(self, request):
        result = NotificationService.mark_all_as_read(request.user)
        return Response({"updated": result.data})
