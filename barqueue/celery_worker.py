"""
Celery Worker
Runs deferred redelivery of texts that failed during a request.

Run with:
    celery -A barqueue.celery_worker worker -Q redelivery --loglevel=info
"""

from celery import Celery

from barqueue.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    'barqueue_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['barqueue.tasks'],
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    enable_utc=True,

    # Redelivery has its own queue so a backlog never delays other work
    task_default_queue='redelivery',

    # A single provider call plus its retries must not hold a worker forever
    task_time_limit=int(settings.transport_timeout_seconds * 3),

    # Only the delivery summary is kept, briefly
    result_expires=600,

    # A text is acknowledged once sent; a lost worker puts it back
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    broker_connection_retry_on_startup=True,
)


if __name__ == '__main__':
    celery_app.start()
