"""
Celery Application Configuration

Optional out-of-process backend for trust score recalculation, selected
with DISPATCHER_BACKEND=celery:
- Redis as message broker and result backend
- Task autodiscovery from reputation.tasks module
- Single-attempt tasks (recalculation is idempotent; the next event or the
  nightly batch repairs a missed update)

Usage:
    # Start worker:
    celery -A reputation.celery worker --loglevel=info

    # Enqueue a task:
    from reputation.tasks.trust import recalculate_trust_score
    recalculate_trust_score.delay("user-123", "job_completed")
"""

from celery import Celery
from reputation.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "reputation",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Configure Celery
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Fair task distribution
    worker_concurrency=settings.dispatcher_max_concurrency,

    # Result settings
    result_expires=3600,  # Results expire after 1 hour
    task_track_started=True,

    task_acks_late=True,  # Acknowledge after completion
    task_reject_on_worker_lost=True,

    task_routes={
        "reputation.tasks.trust.recalculate_trust_score": {"queue": "trust"},
        "reputation.tasks.trust.recalculate_all_trust_scores": {"queue": "trust_batch"},
    },

    # Default queue
    task_default_queue="default",
)

# Autodiscover tasks
celery_app.autodiscover_tasks(["reputation.tasks"])
