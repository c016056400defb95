from celery import Celery
from kombu import Queue

from webanalyzer.platform.config import settings


def create_celery_app() -> Celery:
    """
    Celery runs housekeeping only; analyses themselves go through the
    analysis job queue and its worker.

    Queues:
    - maintenance: retention purge of recent results and old analyses
    """
    celery_app = Celery(
        "webanalyzer",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_time_limit=settings.CELERY_TASK_TIME_LIMIT,
        result_expires=3600,
        task_routes={
            "webanalyzer.features.analysis.workers.tasks.purge_expired_results": {"queue": "maintenance"},
        },
        task_queues=(
            Queue("default"),
            Queue("maintenance"),
        ),
        task_default_queue="default",
        worker_prefetch_multiplier=1,
        task_acks_late=True,
        beat_schedule={
            "purge-expired-results": {
                "task": "webanalyzer.features.analysis.workers.tasks.purge_expired_results",
                "schedule": 24 * 3600.0,  # daily
            },
        },
    )

    celery_app.autodiscover_tasks(["webanalyzer.features.analysis.workers"])

    return celery_app


celery_app = create_celery_app()
