"""
Celery para tareas en segundo plano

Hoy sólo corre la difusión de eventos por local (ventas remotas y alertas
de stock bajo). Son mensajes cortos y sin resultado útil, por eso no se
guardan resultados.
"""
from celery import Celery
from mostrador.core.config import settings

celery_app = Celery(
    "mostrador",
    broker=settings.redis_url,
    include=["mostrador.modules.notifications.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    task_acks_late=True,
    task_time_limit=60,
    task_soft_time_limit=45,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    task_routes={
        "mostrador.modules.notifications.tasks.*": {"queue": "notifications"},
    },
)

if __name__ == "__main__":
    celery_app.start()
