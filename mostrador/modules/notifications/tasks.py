"""
Tareas de Celery para publicar eventos a los locales vía Redis pub/sub.
"""
import json
import logging
from typing import Any, Dict

import redis

from mostrador.core.celery import celery_app
from mostrador.core.config import settings

logger = logging.getLogger(__name__)


def channel_for(location_id: str) -> str:
    return f"{settings.NOTIFICATION_CHANNEL_PREFIX}:{location_id}"


@celery_app.task(bind=True, max_retries=3)
def publish_location_event(self, location_id: str, payload: Dict[str, Any]):
    """
    Publica el evento en el canal del local. Los clientes conectados del
    local (pantallas de caja, depósito) lo reciben en tiempo real.
    """
    channel = channel_for(location_id)
    try:
        with redis.Redis.from_url(settings.redis_url) as client:
            receivers = client.publish(channel, json.dumps(payload))
        logger.info(f"Event {payload.get('type')} published to {channel} ({receivers} receivers)")
        return {"status": "published", "channel": channel, "receivers": receivers}

    except redis.RedisError as exc:
        logger.error(f"Publishing to {channel} failed: {str(exc)}")

        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=5 * (2 ** self.request.retries))

        return {"status": "failed", "error": str(exc), "channel": channel}
