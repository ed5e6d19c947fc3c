# messaging/retention.py
"""
Message retention: keep the last N messages of every conversation.

``RetentionConfig`` is the switch (count + enabled) read by the send
path, the admin endpoints and the scheduler in every process.
``RetentionPolicyEngine`` applies it to one conversation or to every
conversation that has ever exchanged a message.
"""
from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Iterable, Optional

from django.conf import settings
from django.core.cache import cache as default_cache
from django.utils import timezone

from .exceptions import InvalidRetentionConfigError, MediaDeletionFailure
from .models import Message
from .stores import MediaStore, MessageStore
from .types import (
    ConversationKey,
    EnforcementResult,
    RetentionPolicy,
    RetentionStats,
    SweepReport,
)

logger = logging.getLogger(__name__)

REFERENCE_LOOKUP_CHUNK = 500


class RetentionConfig:
    """
    Retention policy shared by every web and Celery worker.

    The current ``RetentionPolicy`` lives under one cache key, so readers
    always get a whole snapshot and an update made in one process is seen
    by the next enforcement in any other. Until the first ``set()`` (or
    after the cache is flushed) the constructor values apply.
    """

    CACHE_KEY = "messaging:retention:policy"

    def __init__(self, count: int = 3, enabled: bool = True, max_count: int = 100, cache=None):
        self.max_count = max_count
        self._cache = cache or default_cache
        self._default = RetentionPolicy(self._validate(count), bool(enabled))

    @classmethod
    def from_settings(cls) -> "RetentionConfig":
        return cls(
            count=settings.MESSAGE_RETENTION_COUNT,
            enabled=settings.MESSAGE_RETENTION_ENABLED,
            max_count=settings.MESSAGE_RETENTION_MAX_COUNT,
        )

    def _validate(self, count) -> int:
        if isinstance(count, bool) or not isinstance(count, int):
            raise InvalidRetentionConfigError("Retention count must be an integer.")
        if not 1 <= count <= self.max_count:
            raise InvalidRetentionConfigError(
                f"Retention count must be between 1 and {self.max_count}."
            )
        return count

    def get(self) -> RetentionPolicy:
        stored = self._cache.get(self.CACHE_KEY)
        if stored is None:
            return self._default
        count, enabled = stored
        return RetentionPolicy(count, enabled)

    def set(self, count: int, enabled: bool) -> RetentionPolicy:
        policy = RetentionPolicy(self._validate(count), bool(enabled))
        # one value, so count and enabled change together; never expires
        self._cache.set(self.CACHE_KEY, (policy.count, policy.enabled), timeout=None)
        logger.info("Retention configuration updated: enabled=%s, count=%d", policy.enabled, policy.count)
        return policy

    @property
    def count(self) -> int:
        return self.get().count

    @property
    def enabled(self) -> bool:
        return self.get().enabled


def purge_message(message: Message, *, message_store: MessageStore, media_store: MediaStore) -> bool:
    """
    Delete a message and its media. Media removal is best effort and never
    blocks the record deletion. Returns False if the record was already gone.
    """
    if message.media_path:
        try:
            media_store.delete(message.media_path)
        except MediaDeletionFailure as exc:
            logger.warning("Keeping orphaned media for message %s: %s", message.id, exc.detail)
    return message_store.delete_by_id(message.id)


class RetentionPolicyEngine:
    def __init__(self, config: RetentionConfig, message_store: MessageStore, media_store: MediaStore):
        self.config = config
        self.messages = message_store
        self.media = media_store

    # ---------- single conversation ----------
    def enforce(self, user_a: int, user_b: int) -> EnforcementResult:
        return self.enforce_key(ConversationKey.of(user_a, user_b))

    def enforce_key(self, key: ConversationKey) -> EnforcementResult:
        policy = self.config.get()
        ids = self.messages.find_ids_between(key, order="asc")
        if not policy.enabled or len(ids) <= policy.count:
            return EnforcementResult(deleted=0, remaining=len(ids))

        excess = ids[: len(ids) - policy.count]
        deleted = 0
        failed = []
        for message_id in excess:
            try:
                if self._purge_id(message_id):
                    deleted += 1
            except Exception:
                logger.exception("Error deleting message %s in conversation %s", message_id, key)
                failed.append(message_id)

        result = EnforcementResult(
            deleted=deleted,
            remaining=self.messages.count_between(key),
            failed_ids=tuple(failed),
        )
        logger.info(
            "Retention enforced for %s: deleted=%d remaining=%d failed=%d",
            key, result.deleted, result.remaining, len(failed),
        )
        return result

    def _purge_id(self, message_id: int) -> bool:
        message = self.messages.find_by_id(message_id)
        if message is None:
            # removed by a concurrent enforcement or by its sender
            return False
        return purge_message(message, message_store=self.messages, media_store=self.media)

    def stats(self, user_a: int, user_b: int) -> RetentionStats:
        key = ConversationKey.of(user_a, user_b)
        total = len(self.messages.find_ids_between(key, order="asc"))
        count = self.config.get().count
        return RetentionStats(
            total_messages=total,
            retention_count=count,
            messages_to_delete=max(0, total - count),
        )

    def visible_messages(self, user_id: int, other_user_id: int) -> list[Message]:
        """Newest first; capped at the retention count while retention is on."""
        key = ConversationKey.of(user_id, other_user_id)
        policy = self.config.get()
        limit = policy.count if policy.enabled else None
        return self.messages.find_messages_between(key, order="desc", limit=limit)

    # ---------- many conversations ----------
    def sweep_all(self, deadline: Optional[float] = None) -> SweepReport:
        """
        Enforce every conversation that has ever exchanged a message.
        Per-pair failures are collected in the report; ``deadline`` is a
        ``time.monotonic()`` value after which the sweep stops early.
        """
        report = SweepReport()
        if not self.config.get().enabled:
            report.skipped = True
            return report

        pairs = self.messages.distinct_pairs()
        report.pairs = len(pairs)
        self.enforce_pairs(pairs, report, deadline=deadline)
        logger.info(
            "Retention sweep finished: pairs=%d enforced=%d deleted=%d failures=%d abandoned=%s",
            report.pairs, report.enforced, report.deleted, len(report.failures), report.abandoned,
        )
        return report

    def enforce_pairs(
        self,
        pairs: Iterable[ConversationKey],
        report: SweepReport,
        deadline: Optional[float] = None,
    ) -> SweepReport:
        for key in pairs:
            if deadline is not None and time.monotonic() > deadline:
                report.abandoned = True
                logger.warning(
                    "Retention sweep out of time after %d of %d conversations; leaving the rest for the next run",
                    report.enforced + len(report.failures), report.pairs,
                )
                break
            try:
                result = self.enforce_key(key)
            except Exception as exc:
                logger.exception("Error cleaning up messages for conversation %s", key)
                report.record_failure(key, exc)
                continue
            report.enforced += 1
            report.deleted += result.deleted
            if result.failed_ids:
                report.failures.append(
                    (key, f"{len(result.failed_ids)} message(s) could not be deleted")
                )
        return report

    def reap_orphaned_media(self, grace_seconds: int) -> int:
        """
        Delete media blobs no message points at. Files younger than the
        grace period are kept, since an upload is saved before its
        message row exists.
        """
        paths = self.media.list_paths()
        if not paths:
            return 0

        referenced = set()
        for start in range(0, len(paths), REFERENCE_LOOKUP_CHUNK):
            referenced |= self.messages.referenced_media_paths(paths[start:start + REFERENCE_LOOKUP_CHUNK])

        cutoff = timezone.now() - timedelta(seconds=grace_seconds)
        removed = 0
        for path in paths:
            if path in referenced:
                continue
            try:
                if self.media.modified_at(path) > cutoff:
                    continue
                if self.media.delete(path):
                    removed += 1
            except (MediaDeletionFailure, OSError) as exc:
                logger.warning("Could not reap orphaned media %s: %s", path, exc)
        if removed:
            logger.info("Removed %d orphaned media file(s)", removed)
        return removed
