"""
messaging/tasks.py

Retention sweeps driven by Celery Beat:
- hourly: enforce every conversation (light sweep)
- daily at 2:00 AM: full sweep
- weekly on Sunday at 3:00 AM: full sweep + orphaned media cleanup

Each task returns the run summary; failures are logged by the scheduler
and never raised to the worker.
"""
from celery import shared_task
from django.conf import settings

from .scheduler import DAILY, HOURLY, WEEKLY


def _run(trigger: str) -> dict:
    from .services import get_messaging_service  # local import

    return get_messaging_service().scheduler.run(trigger).as_dict()


@shared_task(soft_time_limit=settings.MESSAGE_RETENTION_RUN_BUDGETS[HOURLY])
def enforce_retention_hourly() -> dict:
    return _run(HOURLY)


@shared_task(soft_time_limit=settings.MESSAGE_RETENTION_RUN_BUDGETS[DAILY])
def enforce_retention_daily() -> dict:
    return _run(DAILY)


@shared_task(soft_time_limit=settings.MESSAGE_RETENTION_RUN_BUDGETS[WEEKLY])
def enforce_retention_weekly() -> dict:
    return _run(WEEKLY)

