from celery import Celery
from app.config import settings

celery_app = Celery(
    "domainpub",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.broker_connection_retry_on_startup = True

celery_app.conf.task_routes = {
    "app.tasks.*": {"queue": "celery"}
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # A lost worker must not drop a half-finished provisioning run
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    "poll-pending-domain-orders": {
        "task": "app.tasks.provisioning_tasks.poll_pending_orders",
        "schedule": float(settings.STATUS_POLL_INTERVAL_SECONDS),
    },
}

# Auto-discover tasks so that @celery_app.task decorators in app/tasks/ get registered
celery_app.autodiscover_tasks(['app.tasks'])

# Explicitly import tasks to ensure they are registered
import app.tasks.provisioning_tasks  # noqa: F401, E402
