"""
Celery Tasks
Deferred redelivery of customer and admin texts that failed inline.

Request handlers never retry a failed send themselves; the dispatcher hands
the message to :func:`schedule_redelivery` and the worker retries it with
backoff, outside any request.
"""

import asyncio
import logging
import time

from barqueue.celery_worker import celery_app
from barqueue.services.notifications import build_messaging_service

logger = logging.getLogger(__name__)


async def _send(channel: str, to: str, body: str):
    # Each run gets its own event loop, so the HTTP client cannot be shared
    transport = build_messaging_service(channel)
    try:
        return await transport.send_text(to, body)
    finally:
        await transport.close()


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def redeliver_message(self, channel: str, to: str, body: str) -> dict:
    """
    Send one text message again.

    Args:
        channel: "whatsapp" or "sms"
        to: Normalized phone number
        body: Message text

    Returns:
        dict: Delivery result
    """
    task_id = self.request.id
    logger.info(f"📨 Task {task_id}: redelivering {channel} message to {to} (attempt {self.request.retries + 1})")
    start_time = time.time()

    try:
        result = asyncio.run(_send(channel, to, body))
    except Exception as e:
        elapsed = round(time.time() - start_time, 3)
        logger.warning(f"❌ Task {task_id}: {channel} → {to} failed after {elapsed}s - {e}")
        # Celery will auto-retry based on configuration
        raise

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"✅ Task {task_id}: {channel} → {to} delivered in {elapsed}s")
    return {
        'success': result.success,
        'recipient': result.recipient,
        'message_id': result.message_id,
        'provider': result.provider,
        'task_id': task_id,
        'processing_time_seconds': elapsed,
    }


def schedule_redelivery(channel: str, to: str, body: str) -> None:
    """Dispatcher hook: queue a failed text for the worker."""
    redeliver_message.delay(channel, to, body)

