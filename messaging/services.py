# messaging/services.py
"""
Messaging service: the single entry point the HTTP layer and the Celery
tasks use.

A send goes gate check → insert → establish relation → enforce
retention. Inserting the message and recording the relation commit
together, so a relation is never written for a send that did not
persist.
"""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction

from .exceptions import (
    CommunicationNotPermittedError,
    InvalidMessageError,
    InvalidPairError,
    MediaDeletionFailure,
    NotFoundError,
    StoreError,
    UnauthorizedError,
)
from .gate import CommunicationGate
from .models import Message
from .retention import RetentionConfig, RetentionPolicyEngine, purge_message
from .scheduler import RetentionScheduler
from .stores import MediaStore, MessageStore, RelationStore
from .types import ConversationKey, EnforcementResult, RetentionPolicy, RetentionStats, SweepReport

logger = logging.getLogger(__name__)

User = get_user_model()

MEDIA_TYPES = (Message.Type.IMAGE, Message.Type.VOICE)


@dataclass
class MessageSpec:
    receiver_id: int
    message_type: str = Message.Type.TEXT
    text_content: Optional[str] = None
    media_path: Optional[str] = None

    def validate(self, sender_id: int) -> None:
        if self.receiver_id == sender_id:
            raise InvalidPairError("You cannot send a message to yourself.")
        if self.message_type not in Message.Type.values:
            raise InvalidMessageError(f"Unknown message type {self.message_type!r}.")
        if self.message_type == Message.Type.TEXT:
            if not (self.text_content or "").strip():
                raise InvalidMessageError("Text messages require text content.")
            if self.media_path:
                raise InvalidMessageError("Text messages cannot carry a media file.")
        elif not self.media_path:
            raise InvalidMessageError(f"{self.message_type} messages require a media file.")


class MessagingService:
    def __init__(
        self,
        *,
        config: RetentionConfig,
        gate: CommunicationGate,
        engine: RetentionPolicyEngine,
        message_store: MessageStore,
        media_store: MediaStore,
        scheduler: Optional[RetentionScheduler] = None,
    ):
        self.config = config
        self.gate = gate
        self.engine = engine
        self.messages = message_store
        self.media = media_store
        self.scheduler = scheduler

    # ---------- sending ----------
    def send(self, sender_id: int, spec: MessageSpec) -> Message:
        message = self._persist(sender_id, spec)
        self._enforce_after_send(message)
        return message

    def _persist(self, sender_id: int, spec: MessageSpec) -> Message:
        """Validate, gate and store the message together with its relation."""
        spec.validate(sender_id)
        if not User.objects.filter(pk=spec.receiver_id).exists():
            raise NotFoundError("Receiver not found.")

        decision = self.gate.check_or_establish(sender_id, spec.receiver_id)
        if not decision.permitted:
            raise CommunicationNotPermittedError()

        with transaction.atomic():
            message = self.messages.insert(
                sender_id=sender_id,
                receiver_id=spec.receiver_id,
                message_type=spec.message_type,
                text_content=spec.text_content,
                media_path=spec.media_path,
            )
            self.gate.establish(sender_id, spec.receiver_id)
        return message

    def _enforce_after_send(self, message: Message) -> None:
        try:
            self.engine.enforce(message.sender_id, message.receiver_id)
        except StoreError:
            # the message is stored; the next scheduled sweep trims the pair
            logger.exception(
                "Retention enforcement after message %s failed for users %s and %s",
                message.id, message.sender_id, message.receiver_id,
            )

    def send_with_media(
        self,
        sender_id: int,
        receiver_id: int,
        message_type: str,
        upload,
        text_content: Optional[str] = None,
    ) -> Message:
        if message_type not in MEDIA_TYPES:
            raise InvalidMessageError("Invalid message type for media upload.")
        if upload is None:
            raise InvalidMessageError(f"{message_type} messages require a media file.")
        if receiver_id == sender_id:
            raise InvalidPairError("You cannot send a message to yourself.")

        media_path = self.media.save(upload, message_type)
        spec = MessageSpec(
            receiver_id=receiver_id,
            message_type=message_type,
            text_content=text_content,
            media_path=media_path,
        )
        try:
            message = self._persist(sender_id, spec)
        except Exception:
            # nothing references the file unless the insert committed
            self._discard_media(media_path)
            raise
        self._enforce_after_send(message)
        return message

    def _discard_media(self, path: str) -> None:
        try:
            self.media.delete(path)
        except MediaDeletionFailure as exc:
            logger.warning("Could not remove media of rejected message: %s", exc.detail)

    # ---------- reading / deleting ----------
    def get_conversation(self, user_id: int, other_user_id: int) -> list[Message]:
        return self.engine.visible_messages(user_id, other_user_id)

    def delete_message(self, message_id: int, requester_id: int) -> None:
        message = self.messages.find_by_id(message_id)
        if message is None:
            raise NotFoundError()
        # Only sender can delete the message
        if message.sender_id != requester_id:
            raise UnauthorizedError()
        purge_message(message, message_store=self.messages, media_store=self.media)

    def communication_details(self, user_id: int, other_user_id: int) -> dict:
        key = ConversationKey.of(user_id, other_user_id)
        relation = self.gate.relation_for(user_id, other_user_id)
        last = self.messages.find_last_between(key)
        return {
            "user_id": other_user_id,
            "communication_id": relation.id if relation else None,
            "can_communicate": bool(relation and relation.can_communicate),
            "established_at": relation.established_at if relation else None,
            "updated_at": relation.updated_at if relation else None,
            "last_message": last,
            "is_last_message_from_me": (last.sender_id == user_id) if last else None,
        }

    # ---------- retention ----------
    def get_retention_stats(self, user_a: int, user_b: int) -> RetentionStats:
        return self.engine.stats(user_a, user_b)

    def trigger_cleanup(self, user_a: int, user_b: int) -> EnforcementResult:
        return self.engine.enforce(user_a, user_b)

    def trigger_cleanup_all(self) -> SweepReport:
        return self.engine.sweep_all()

    def get_retention_config(self) -> RetentionPolicy:
        return self.config.get()

    def update_retention_config(self, count: int, enabled: bool) -> RetentionPolicy:
        return self.config.set(count, enabled)


def build_messaging_service(config: Optional[RetentionConfig] = None, media_store: Optional[MediaStore] = None) -> MessagingService:
    config = config or RetentionConfig.from_settings()
    messages = MessageStore()
    media = media_store or MediaStore()
    engine = RetentionPolicyEngine(config, messages, media)
    scheduler = RetentionScheduler(
        engine,
        messages,
        budgets=settings.MESSAGE_RETENTION_RUN_BUDGETS,
        orphan_grace_seconds=settings.MESSAGE_RETENTION_ORPHAN_GRACE_SECONDS,
    )
    return MessagingService(
        config=config,
        gate=CommunicationGate(RelationStore(), messages),
        engine=engine,
        message_store=messages,
        media_store=media,
        scheduler=scheduler,
    )


@functools.lru_cache(maxsize=None)
def get_messaging_service() -> MessagingService:
    """Process-wide service; the retention policy itself lives in the shared cache."""
    return build_messaging_service()
