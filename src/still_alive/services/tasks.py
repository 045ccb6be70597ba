from __future__ import annotations

from celery import Celery

from ..config import settings

celery_app = Celery(
    "still_alive",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)
celery_app.conf.enable_utc = True
celery_app.conf.timezone = "UTC"
celery_app.conf.beat_schedule = {
    "mia-sweep": {
        "task": "tasks.mia_sweep",
        "schedule": float(settings.mia_sweep_interval_seconds),
    },
}


class TaskProxy:
    def __init__(self, name: str):
        self.name = name

    def delay(self, *args, **kwargs):
        return celery_app.send_task(self.name, args=args, kwargs=kwargs)


mia_sweep = TaskProxy("tasks.mia_sweep")
