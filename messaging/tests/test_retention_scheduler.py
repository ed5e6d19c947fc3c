"""
Tests for the scheduled retention sweeps and their run guards.
"""
import os
import time

import pytest
from django.core.files.base import ContentFile

from messaging import tasks
from messaging.models import Message
from messaging.retention import RetentionPolicyEngine
from messaging.scheduler import (
    ABANDONED,
    COMPLETED,
    DAILY,
    FAILED,
    HOURLY,
    SKIPPED_DISABLED,
    SKIPPED_OVERLAP,
    WEEKLY,
    RetentionScheduler,
    TriggerGuard,
)
from messaging.stores import MessageStore
from messaging.types import ConversationKey


def _fill(sender, receiver, n):
    store = MessageStore()
    for i in range(n):
        store.insert(sender_id=sender.id, receiver_id=receiver.id, message_type="TEXT", text_content=f"m{i}")


def _scheduler(engine, **kwargs):
    return RetentionScheduler(engine, engine.messages, **kwargs)


@pytest.fixture
def engine(db, retention_config, media_store):
    return RetentionPolicyEngine(retention_config, MessageStore(), media_store)


class BrokenPairEngine(RetentionPolicyEngine):
    """Engine whose lookups fail for one conversation."""

    broken = None

    def enforce_key(self, key):
        if key == self.broken:
            raise RuntimeError("lookup failed")
        return super().enforce_key(key)


@pytest.mark.django_db
def test_hourly_run_trims_every_conversation(engine, user, other_user, third_user):
    _fill(user, other_user, 5)
    _fill(third_user, user, 4)

    run = _scheduler(engine).run(HOURLY)

    assert run.status == COMPLETED
    assert run.report.pairs == 2
    assert run.report.deleted == 3
    assert Message.objects.count() == 6


@pytest.mark.django_db
def test_disabled_retention_skips_the_run(engine, retention_config, user, other_user):
    retention_config.set(count=3, enabled=False)
    _fill(user, other_user, 5)

    run = _scheduler(engine).run(DAILY)

    assert run.status == SKIPPED_DISABLED
    assert Message.objects.count() == 5


@pytest.mark.django_db
def test_overlapping_run_is_skipped(engine, user, other_user):
    scheduler = _scheduler(engine)
    held = scheduler.guard(HOURLY)
    assert held.acquire()
    _fill(user, other_user, 5)

    try:
        run = scheduler.run(HOURLY)
    finally:
        held.release()

    assert run.status == SKIPPED_OVERLAP
    assert Message.objects.count() == 5


@pytest.mark.django_db
def test_guard_only_blocks_its_own_trigger(engine):
    scheduler = _scheduler(engine)
    held = scheduler.guard(HOURLY)
    assert held.acquire()

    try:
        assert scheduler.run(DAILY).status == COMPLETED
    finally:
        held.release()


@pytest.mark.django_db
def test_run_over_budget_is_abandoned_and_releases_guard(engine, user, other_user):
    _fill(user, other_user, 5)
    scheduler = _scheduler(engine, budgets={DAILY: -1})

    run = scheduler.run(DAILY)

    assert run.status == ABANDONED
    assert run.report.abandoned
    assert Message.objects.count() == 5
    assert not scheduler.guard(DAILY).is_held()


@pytest.mark.django_db
def test_failing_conversation_does_not_stop_the_sweep(retention_config, media_store, user, other_user, third_user):
    engine = BrokenPairEngine(retention_config, MessageStore(), media_store)
    engine.broken = ConversationKey.of(user.id, third_user.id)
    _fill(user, other_user, 5)
    _fill(user, third_user, 5)
    _fill(other_user, third_user, 5)

    report = engine.sweep_all()

    assert report.pairs == 3
    assert report.enforced == 2
    assert report.deleted == 4
    assert len(report.failures) == 1
    assert report.failures[0][0] == engine.broken
    assert Message.objects.filter(receiver=third_user, sender=user).count() == 5


@pytest.mark.django_db
def test_unexpected_error_marks_run_failed(engine):
    class BrokenStore(MessageStore):
        def distinct_pairs(self):
            raise RuntimeError("connection reset")

    scheduler = RetentionScheduler(engine, BrokenStore())

    run = scheduler.run(HOURLY)

    assert run.status == FAILED
    assert "connection reset" in run.error
    assert not scheduler.guard(HOURLY).is_held()


def test_unknown_trigger_is_rejected(engine):
    with pytest.raises(ValueError):
        _scheduler(engine).run("monthly")


def test_guard_release_leaves_foreign_lock_alone():
    first = TriggerGuard("daily", ttl=60)
    second = TriggerGuard("daily", ttl=60)

    assert first.acquire()
    assert not second.acquire()
    second.release()
    assert first.is_held()
    first.release()
    assert not first.is_held()


@pytest.mark.django_db
def test_weekly_run_reaps_old_orphaned_media(engine, media_store, user, other_user):
    storage = media_store.storage
    referenced = storage.save("messages/images/image_kept.jpg", ContentFile(b"a"))
    orphan = storage.save("messages/voice/voice_orphan.ogg", ContentFile(b"b"))
    fresh = storage.save("messages/images/image_fresh.jpg", ContentFile(b"c"))
    two_hours_ago = time.time() - 7200
    for path in (referenced, orphan):
        os.utime(storage.path(path), (two_hours_ago, two_hours_ago))
    MessageStore().insert(
        sender_id=user.id, receiver_id=other_user.id, message_type="IMAGE", media_path=referenced
    )

    run = _scheduler(engine, orphan_grace_seconds=3600).run(WEEKLY)

    assert run.status == COMPLETED
    assert run.orphaned_media == 1
    assert not storage.exists(orphan)
    assert storage.exists(referenced)
    assert storage.exists(fresh)


@pytest.mark.django_db
def test_tasks_run_through_the_shared_service(messaging_service, user, other_user):
    _fill(user, other_user, 5)

    summary = tasks.enforce_retention_hourly()

    assert summary["trigger"] == HOURLY
    assert summary["status"] == COMPLETED
    assert summary["report"]["deleted"] == 2
    assert tasks.enforce_retention_weekly()["status"] == COMPLETED
