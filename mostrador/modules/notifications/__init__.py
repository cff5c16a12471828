"""
Módulo de notificaciones a locales (ventas remotas, alertas de stock bajo).
"""

from .events import RemoteSaleCreated, LowStockAlert
from .service import Notifier, CeleryNotifier, LoggingNotifier, get_notifier

__all__ = [
    "RemoteSaleCreated",
    "LowStockAlert",
    "Notifier",
    "CeleryNotifier",
    "LoggingNotifier",
    "get_notifier",
]
