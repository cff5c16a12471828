"""
Canal de notificaciones hacia otros locales.

Los servicios de venta y stock reciben un Notifier por constructor. La
entrega es best-effort: un error al encolar se registra y nunca revierte la
operación que lo originó.
"""
import logging
from typing import Protocol, Union

from mostrador.core.config import settings
from mostrador.modules.notifications.events import RemoteSaleCreated, LowStockAlert

logger = logging.getLogger(__name__)

LocationEvent = Union[RemoteSaleCreated, LowStockAlert]


class Notifier(Protocol):
    def publish(self, event: LocationEvent) -> None:
        ...


class CeleryNotifier:
    """Encola el evento en Celery; el worker lo publica en Redis."""

    def publish(self, event: LocationEvent) -> None:
        # Import diferido: el worker importa este módulo a través de tasks
        from mostrador.modules.notifications.tasks import publish_location_event

        location_id = str(event.target_location_id)
        try:
            publish_location_event.delay(location_id, event.model_dump(mode="json"))
            logger.info(f"{event.type} queued for location {location_id}")
        except Exception as exc:
            logger.warning(f"Could not queue {event.type} for location {location_id}: {exc}")


class LoggingNotifier:
    """Notificaciones deshabilitadas: sólo deja registro."""

    def publish(self, event: LocationEvent) -> None:
        logger.info(f"Notifications disabled, {event.type} for {event.target_location_id} not sent")


def get_notifier() -> Notifier:
    if settings.NOTIFICATIONS_ENABLED:
        return CeleryNotifier()
    return LoggingNotifier()
