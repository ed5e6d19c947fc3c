# messaging/models.py
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class Message(models.Model):
    """
    A 1:1 message. Immutable once created; removed either by its sender
    or by the retention policy.

    ``user_low`` / ``user_high`` hold the normalised pair so that (A, B)
    and (B, A) always hit the same rows.
    """

    class Type(models.TextChoices):
        TEXT = "TEXT", "Text"
        IMAGE = "IMAGE", "Image"
        VOICE = "VOICE", "Voice"

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="sent_messages"
    )
    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="received_messages"
    )
    user_low = models.BigIntegerField(editable=False)
    user_high = models.BigIntegerField(editable=False)

    message_type = models.CharField(max_length=8, choices=Type.choices, default=Type.TEXT)
    text_content = models.TextField(null=True, blank=True)
    media_path = models.CharField(max_length=512, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=~Q(sender=F("receiver")), name="message_no_self"
            ),
        ]
        indexes = [
            models.Index(
                fields=["user_low", "user_high", "created_at", "id"],
                name="message_pair_created_idx",
            ),
            models.Index(fields=["sender", "receiver"], name="message_direction_idx"),
        ]

    def clean(self):
        super().clean()
        if self.sender_id and self.sender_id == self.receiver_id:
            raise ValidationError("A message requires two distinct participants.")

    def save(self, *args, **kwargs):
        # keep the pair columns canonical (smaller id in user_low)
        a, b = self.sender_id, self.receiver_id
        self.user_low, self.user_high = (a, b) if a < b else (b, a)
        super().save(*args, **kwargs)

    @property
    def has_media(self) -> bool:
        return bool(self.media_path)

    def __str__(self):
        return f"Message({self.id}: {self.sender_id} → {self.receiver_id}, {self.message_type})"


class CommunicationRelation(models.Model):
    """
    Permission for two users to keep exchanging messages.
    Stored once per pair with the smaller id in ``user1``.
    """

    user1 = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="communication_as_user1",
        on_delete=models.CASCADE,
    )
    user2 = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="communication_as_user2",
        on_delete=models.CASCADE,
    )
    can_communicate = models.BooleanField(default=True)
    established_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=~Q(user1=F("user2")), name="communication_no_self"
            ),
            models.CheckConstraint(
                condition=Q(user1__lt=F("user2")), name="communication_user1_lt_user2"
            ),
            models.UniqueConstraint(
                fields=["user1", "user2"], name="uniq_communication_pair"
            ),
        ]

    def save(self, *args, **kwargs):
        # Normalize ordering so smaller id is always user1
        if self.user1_id and self.user2_id and self.user1_id > self.user2_id:
            self.user1_id, self.user2_id = self.user2_id, self.user1_id
        super().save(*args, **kwargs)

    def __str__(self):
        return f"CommunicationRelation({self.user1_id}, {self.user2_id}, {self.can_communicate})"
