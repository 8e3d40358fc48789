from celery import Celery

from scorecard.config import settings

celery_app = Celery(
    "scorecard",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["scorecard.tasks.scorecards"],
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
)
