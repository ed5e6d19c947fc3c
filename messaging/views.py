"""
Views for the messaging app.

Expose RESTful endpoints for sending, listing and deleting 1:1 messages
and for the message retention policy. Authentication is required for
all endpoints; changing the retention configuration and sweeping every
conversation are limited to staff users.

Domain errors raised by the service are turned into HTTP responses by
``common.exceptions.api_exception_handler``.
"""
from __future__ import annotations

import logging

from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.generics import GenericAPIView
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response

from .serializers import (
    CommunicationDetailsSerializer,
    EnforcementResultSerializer,
    MessageSerializer,
    RetentionConfigSerializer,
    RetentionStatsSerializer,
    SendMediaMessageSerializer,
    SendMessageSerializer,
)
from . import services
from .services import MessageSpec

logger = logging.getLogger(__name__)


class MessageViewSet(viewsets.ViewSet):
    """Send, delete and list messages between the current user and another user."""

    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = r"\d+"

    @property
    def service(self):
        return services.get_messaging_service()

    def create(self, request):
        ser = SendMessageSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        message = self.service.send(
            request.user.id,
            MessageSpec(
                receiver_id=data["receiver_id"],
                message_type=data["message_type"],
                text_content=data.get("text_content") or None,
            ),
        )
        out = MessageSerializer(message, context={"request": request})
        return Response(out.data, status=status.HTTP_201_CREATED)

    @action(
        detail=False,
        methods=["post"],
        url_path="media",
        parser_classes=[MultiPartParser, FormParser],
    )
    def media(self, request):
        ser = SendMediaMessageSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        message = self.service.send_with_media(
            request.user.id,
            data["receiver_id"],
            data["message_type"],
            data["media_file"],
            text_content=data.get("text_content") or None,
        )
        out = MessageSerializer(message, context={"request": request})
        return Response(out.data, status=status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        self.service.delete_message(int(pk), request.user.id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ConversationView(GenericAPIView):
    """Messages with one other user, newest first, capped by the retention policy."""

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = MessageSerializer

    def get(self, request, other_user_id: int):
        messages = services.get_messaging_service().get_conversation(request.user.id, other_user_id)
        ser = MessageSerializer(messages, many=True, context={"request": request})
        return Response(ser.data)


class CommunicationDetailsView(GenericAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = CommunicationDetailsSerializer

    def get(self, request, other_user_id: int):
        details = services.get_messaging_service().communication_details(request.user.id, other_user_id)
        ser = CommunicationDetailsSerializer(details, context={"request": request})
        return Response(ser.data)


class RetentionViewSet(viewsets.ViewSet):
    """Read or change the retention policy, inspect and trigger cleanups."""

    permission_classes = [permissions.IsAuthenticated]

    def get_permissions(self):
        if self.action == "cleanup_all" or (
            self.action == "config" and self.request.method == "PUT"
        ):
            return [permissions.IsAdminUser()]
        return super().get_permissions()

    @property
    def service(self):
        return services.get_messaging_service()

    @action(detail=False, methods=["get", "put"], url_path="config")
    def config(self, request):
        if request.method == "PUT":
            ser = RetentionConfigSerializer(data=request.data)
            ser.is_valid(raise_exception=True)
            policy = self.service.update_retention_config(
                ser.validated_data["count"], ser.validated_data["enabled"]
            )
            logger.info("Retention configuration changed by user %s", request.user.id)
        else:
            policy = self.service.get_retention_config()
        return Response(RetentionConfigSerializer(policy).data)

    @action(detail=False, methods=["get"], url_path=r"stats/(?P<other_user_id>\d+)")
    def stats(self, request, other_user_id=None):
        stats = self.service.get_retention_stats(request.user.id, int(other_user_id))
        return Response(RetentionStatsSerializer(stats).data)

    @action(detail=False, methods=["post"], url_path=r"cleanup/(?P<other_user_id>\d+)")
    def cleanup(self, request, other_user_id=None):
        result = self.service.trigger_cleanup(request.user.id, int(other_user_id))
        return Response(EnforcementResultSerializer(result).data)

    @action(detail=False, methods=["post"], url_path="cleanup-all")
    def cleanup_all(self, request):
        report = self.service.trigger_cleanup_all()
        return Response(report.as_dict())
