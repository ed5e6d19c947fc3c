from __future__ import annotations

from django.conf import settings
from django.core.files.storage import default_storage
from rest_framework import serializers

from .models import Message


class MessageSerializer(serializers.ModelSerializer):
    sender_id = serializers.IntegerField(read_only=True)
    receiver_id = serializers.IntegerField(read_only=True)
    media_url = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = [
            "id",
            "sender_id",
            "receiver_id",
            "message_type",
            "text_content",
            "media_path",
            "media_url",
            "created_at",
        ]
        read_only_fields = fields

    def get_media_url(self, obj):
        if not obj.media_path:
            return None
        url = default_storage.url(obj.media_path)
        req = self.context.get("request")
        return req.build_absolute_uri(url) if req and url.startswith("/") else url


class SendMessageSerializer(serializers.Serializer):
    receiver_id = serializers.IntegerField(min_value=1)
    message_type = serializers.ChoiceField(choices=Message.Type.choices, default=Message.Type.TEXT)
    text_content = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class SendMediaMessageSerializer(serializers.Serializer):
    receiver_id = serializers.IntegerField(min_value=1)
    message_type = serializers.ChoiceField(
        choices=[(Message.Type.IMAGE, "Image"), (Message.Type.VOICE, "Voice")]
    )
    text_content = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    media_file = serializers.FileField()


class CommunicationDetailsSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    communication_id = serializers.IntegerField(allow_null=True)
    can_communicate = serializers.BooleanField()
    established_at = serializers.DateTimeField(allow_null=True)
    updated_at = serializers.DateTimeField(allow_null=True)
    last_message = MessageSerializer(allow_null=True)
    is_last_message_from_me = serializers.BooleanField(allow_null=True)


class RetentionConfigSerializer(serializers.Serializer):
    enabled = serializers.BooleanField()
    retention_count = serializers.IntegerField(
        source="count",
        min_value=1,
        max_value=settings.MESSAGE_RETENTION_MAX_COUNT,
        error_messages={
            "min_value": "Retention count must be between 1 and {max}.".format(
                max=settings.MESSAGE_RETENTION_MAX_COUNT
            ),
            "max_value": "Retention count must be between 1 and {max}.".format(
                max=settings.MESSAGE_RETENTION_MAX_COUNT
            ),
        },
    )


class RetentionStatsSerializer(serializers.Serializer):
    total_messages = serializers.IntegerField()
    retention_count = serializers.IntegerField()
    messages_to_delete = serializers.IntegerField()
    needs_cleanup = serializers.BooleanField()


class EnforcementResultSerializer(serializers.Serializer):
    deleted = serializers.IntegerField()
    remaining = serializers.IntegerField()
