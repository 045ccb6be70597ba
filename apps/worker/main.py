from __future__ import annotations

import logging

from celery.signals import worker_ready

from still_alive.services.scheduler import mia_scheduler
from still_alive.services.tasks import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.mia_sweep")
def mia_sweep():
    report = mia_scheduler.run_once()
    if report is None:
        return {"skipped": True}
    return report.as_dict()


@worker_ready.connect
def start_mia_scheduler(**_kwargs):
    # Beat only fires on the interval; the boot sweep is enqueued here.
    if not mia_scheduler.start(runner=mia_sweep.delay):
        logger.info("MIA scheduler already started in this process")
