"""
Background retention sweeps.

Three triggers run on Celery beat timers (see ``CELERY_BEAT_SCHEDULE``):

- ``hourly``: lists every conversation and enforces each one,
- ``daily``: full ``sweep_all`` pass,
- ``weekly``: full pass followed by reaping of orphaned media files.

A trigger never overlaps with itself: each run holds a cache lock named
after the trigger. Runs stop at their wall-clock budget and report
``abandoned``; the lock is released so the next tick retries.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from celery.exceptions import SoftTimeLimitExceeded
from django.core.cache import cache as default_cache

from .retention import RetentionPolicyEngine
from .stores import MessageStore
from .types import SweepReport

logger = logging.getLogger(__name__)

HOURLY = "hourly"
DAILY = "daily"
WEEKLY = "weekly"

COMPLETED = "completed"
ABANDONED = "abandoned"
FAILED = "failed"
SKIPPED_DISABLED = "skipped_disabled"
SKIPPED_OVERLAP = "skipped_overlap"

DEFAULT_BUDGETS = {HOURLY: 600, DAILY: 1800, WEEKLY: 3600}

# extra lock lifetime past the budget, so a hard-killed worker frees it
GUARD_GRACE_SECONDS = 60


@dataclass
class TriggerRun:
    trigger: str
    status: str
    report: Optional[SweepReport] = None
    orphaned_media: int = 0
    error: str = ""

    def as_dict(self) -> dict:
        return {
            "trigger": self.trigger,
            "status": self.status,
            "report": self.report.as_dict() if self.report else None,
            "orphaned_media": self.orphaned_media,
            "error": self.error,
        }


class TriggerGuard:
    """Cross-process "running" flag for one trigger."""

    def __init__(self, name: str, ttl: int, cache=None):
        self.key = f"messaging:retention:{name}:running"
        self.ttl = ttl
        self._cache = cache or default_cache
        self._token = None

    def acquire(self) -> bool:
        token = uuid.uuid4().hex
        if self._cache.add(self.key, token, timeout=self.ttl):
            self._token = token
            return True
        return False

    def release(self) -> None:
        if self._token and self._cache.get(self.key) == self._token:
            self._cache.delete(self.key)
        self._token = None

    def is_held(self) -> bool:
        return self._cache.get(self.key) is not None


class RetentionScheduler:
    TRIGGERS = (HOURLY, DAILY, WEEKLY)

    def __init__(
        self,
        engine: RetentionPolicyEngine,
        message_store: MessageStore,
        *,
        budgets: Optional[dict] = None,
        orphan_grace_seconds: int = 3600,
        cache=None,
    ):
        self.engine = engine
        self.messages = message_store
        self.budgets = {**DEFAULT_BUDGETS, **(budgets or {})}
        self.orphan_grace_seconds = orphan_grace_seconds
        self._cache = cache
        self._runners = {
            HOURLY: self._run_hourly,
            DAILY: self._run_daily,
            WEEKLY: self._run_weekly,
        }

    def guard(self, trigger: str) -> TriggerGuard:
        return TriggerGuard(trigger, self.budgets[trigger] + GUARD_GRACE_SECONDS, cache=self._cache)

    def run(self, trigger: str) -> TriggerRun:
        """Run one trigger. Never raises for store or sweep failures."""
        if trigger not in self._runners:
            raise ValueError(f"Unknown retention trigger {trigger!r}")

        if not self.engine.config.get().enabled:
            logger.info("Retention %s sweep skipped: retention disabled", trigger)
            return TriggerRun(trigger, SKIPPED_DISABLED)

        guard = self.guard(trigger)
        if not guard.acquire():
            logger.info("Retention %s sweep skipped: previous run still in progress", trigger)
            return TriggerRun(trigger, SKIPPED_OVERLAP)

        deadline = time.monotonic() + self.budgets[trigger]
        try:
            run = self._runners[trigger](deadline)
        except SoftTimeLimitExceeded:
            logger.warning("Retention %s sweep abandoned: time limit exceeded", trigger)
            run = TriggerRun(trigger, ABANDONED)
        except Exception as exc:
            logger.exception("Error in scheduled %s message cleanup", trigger)
            run = TriggerRun(trigger, FAILED, error=str(exc))
        finally:
            guard.release()

        if run.status == ABANDONED and run.report is not None:
            logger.warning("Retention %s sweep abandoned for this cycle; retrying on next tick", trigger)
        return run

    def _finish(self, trigger: str, report: SweepReport, orphaned: int = 0) -> TriggerRun:
        status = ABANDONED if report.abandoned else COMPLETED
        return TriggerRun(trigger, status, report=report, orphaned_media=orphaned)

    def _run_hourly(self, deadline: float) -> TriggerRun:
        pairs = self.messages.distinct_pairs()
        report = SweepReport(pairs=len(pairs))
        self.engine.enforce_pairs(pairs, report, deadline=deadline)
        return self._finish(HOURLY, report)

    def _run_daily(self, deadline: float) -> TriggerRun:
        return self._finish(DAILY, self.engine.sweep_all(deadline=deadline))

    def _run_weekly(self, deadline: float) -> TriggerRun:
        report = self.engine.sweep_all(deadline=deadline)
        orphaned = 0
        if not report.abandoned:
            orphaned = self.engine.reap_orphaned_media(self.orphan_grace_seconds)
        return self._finish(WEEKLY, report, orphaned)
