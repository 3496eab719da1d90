from celery import Celery

from app.config.settings import settings

celery_app = Celery(
    "plan_engine",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.workers.plan_queue"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
)
