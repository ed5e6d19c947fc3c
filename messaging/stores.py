# messaging/stores.py
"""
Persistence adapters used by the gate, the retention engine and the
messaging service.

Every pair lookup takes a ``ConversationKey`` so callers normalise once
at the boundary. Database failures surface as ``StoreTimeoutError`` or
``StoreUnavailableError``; media failures as ``MediaDeletionFailure``.
"""
from __future__ import annotations

import functools
import logging
import os
import uuid
from datetime import datetime
from typing import Optional

from django.core.files.storage import Storage, default_storage
from django.db import InterfaceError, OperationalError

from .exceptions import MediaDeletionFailure, StoreTimeoutError, StoreUnavailableError
from .models import CommunicationRelation, Message
from .types import ConversationKey

logger = logging.getLogger(__name__)

_TIMEOUT_MARKERS = (
    "statement timeout",
    "canceling statement",
    "lock timeout",
    "timed out",
    "database is locked",
)

_ORDERINGS = {
    "asc": ("created_at", "id"),
    "desc": ("-created_at", "-id"),
}


def _is_timeout(exc: Exception) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in _TIMEOUT_MARKERS)


def store_call(func):
    """Translate driver errors into the messaging store errors."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except OperationalError as exc:
            if _is_timeout(exc):
                raise StoreTimeoutError(str(exc)) from exc
            raise StoreUnavailableError(str(exc)) from exc
        except InterfaceError as exc:
            raise StoreUnavailableError(str(exc)) from exc

    return wrapper


def _ordering(order: str) -> tuple:
    try:
        return _ORDERINGS[order]
    except KeyError:
        raise ValueError(f"order must be 'asc' or 'desc', got {order!r}")


class MessageStore:
    """Ordered message storage keyed by sender, receiver and creation time."""

    def _pair(self, key: ConversationKey):
        return Message.objects.filter(user_low=key.low, user_high=key.high)

    @store_call
    def insert(
        self,
        *,
        sender_id: int,
        receiver_id: int,
        message_type: str,
        text_content: Optional[str] = None,
        media_path: Optional[str] = None,
    ) -> Message:
        return Message.objects.create(
            sender_id=sender_id,
            receiver_id=receiver_id,
            message_type=message_type,
            text_content=text_content,
            media_path=media_path,
        )

    @store_call
    def delete_by_id(self, message_id: int) -> bool:
        """Delete one message. Deleting a missing id is a no-op."""
        deleted, _ = Message.objects.filter(pk=message_id).delete()
        return deleted > 0

    @store_call
    def find_by_id(self, message_id: int) -> Optional[Message]:
        return Message.objects.filter(pk=message_id).first()

    @store_call
    def find_ids_between(self, key: ConversationKey, order: str = "asc") -> list[int]:
        return list(self._pair(key).order_by(*_ordering(order)).values_list("id", flat=True))

    @store_call
    def find_messages_between(
        self, key: ConversationKey, order: str = "desc", limit: Optional[int] = None
    ) -> list[Message]:
        qs = self._pair(key).select_related("sender", "receiver").order_by(*_ordering(order))
        if limit is not None:
            qs = qs[:limit]
        return list(qs)

    @store_call
    def count_between(self, key: ConversationKey) -> int:
        return self._pair(key).count()

    @store_call
    def find_last_between(self, key: ConversationKey) -> Optional[Message]:
        return self._pair(key).order_by(*_ordering("desc")).first()

    @store_call
    def count_from(self, sender_id: int, receiver_id: int) -> int:
        """Messages sent in one direction only."""
        return Message.objects.filter(sender_id=sender_id, receiver_id=receiver_id).count()

    @store_call
    def distinct_pairs(self) -> list[ConversationKey]:
        pairs = (
            Message.objects.order_by()
            .values_list("user_low", "user_high")
            .distinct()
        )
        return [ConversationKey(low, high) for low, high in pairs]

    @store_call
    def referenced_media_paths(self, paths) -> set[str]:
        return set(
            Message.objects.filter(media_path__in=list(paths)).values_list("media_path", flat=True)
        )


class RelationStore:
    """Storage for ``CommunicationRelation`` rows, one per normalised pair."""

    @store_call
    def find(self, key: ConversationKey) -> Optional[CommunicationRelation]:
        return CommunicationRelation.objects.filter(user1_id=key.low, user2_id=key.high).first()

    @store_call
    def upsert(self, key: ConversationKey) -> tuple[CommunicationRelation, bool]:
        """
        Insert a permitted relation for ``key`` unless one already exists.
        An existing row is returned untouched.
        """
        return CommunicationRelation.objects.get_or_create(
            user1_id=key.low,
            user2_id=key.high,
            defaults={"can_communicate": True},
        )


class MediaStore:
    """
    Path-addressed blob storage for message media, backed by a Django
    storage (local filesystem, S3 or GCS depending on settings).
    """

    DIRECTORIES = {
        Message.Type.IMAGE: "messages/images",
        Message.Type.VOICE: "messages/voice",
    }
    PREFIXES = {
        Message.Type.IMAGE: "image",
        Message.Type.VOICE: "voice",
    }

    def __init__(self, storage: Optional[Storage] = None):
        self._storage = storage

    @property
    def storage(self) -> Storage:
        return self._storage or default_storage

    def save(self, upload, message_type: str) -> str:
        directory = self.DIRECTORIES[message_type]
        extension = os.path.splitext(getattr(upload, "name", "") or "")[1].lower()
        name = f"{directory}/{self.PREFIXES[message_type]}_{uuid.uuid4().hex}{extension}"
        return self.storage.save(name, upload)

    def delete(self, path: str) -> bool:
        """
        Remove ``path``. Returns False when there was nothing to delete and
        raises ``MediaDeletionFailure`` when the backend refuses.
        """
        try:
            if not self.storage.exists(path):
                return False
            self.storage.delete(path)
        except Exception as exc:
            raise MediaDeletionFailure(path, f"Could not delete media file {path!r}: {exc}") from exc
        return True

    def exists(self, path: str) -> bool:
        return self.storage.exists(path)

    def list_paths(self) -> list[str]:
        paths = []
        for directory in self.DIRECTORIES.values():
            try:
                _, files = self.storage.listdir(directory)
            except FileNotFoundError:
                continue
            paths.extend(f"{directory}/{name}" for name in files)
        return paths

    def modified_at(self, path: str) -> datetime:
        return self.storage.get_modified_time(path)
