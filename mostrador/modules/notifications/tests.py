"""
Tests para el canal de notificaciones a locales
"""

import json
from decimal import Decimal
from uuid import uuid4

from mostrador.modules.notifications import tasks
from mostrador.modules.notifications.events import RemoteSaleCreated, LowStockAlert
from mostrador.modules.notifications.service import CeleryNotifier, LoggingNotifier


def remote_sale_event():
    return RemoteSaleCreated(
        fulfilling_location_id=uuid4(),
        selling_location_id=uuid4(),
        sale_id=uuid4(),
        buyer_name="Marta",
        sale_total=Decimal("45.00")
    )


class TestEvents:
    def test_target_location(self):
        event = remote_sale_event()
        assert event.target_location_id == event.fulfilling_location_id

        alert = LowStockAlert(location_id=uuid4(), product_id=uuid4(), quantity=2, reorder_threshold=5)
        assert alert.target_location_id == alert.location_id

    def test_json_payload(self):
        payload = remote_sale_event().model_dump(mode="json")
        assert payload["type"] == "RemoteSaleCreated"
        assert payload["sale_total"] == "45.00"


class TestNotifiers:
    def test_celery_notifier_queues_task(self, monkeypatch):
        sent = []
        monkeypatch.setattr(tasks.publish_location_event, "delay", lambda *args: sent.append(args))
        event = remote_sale_event()

        CeleryNotifier().publish(event)

        assert sent == [(str(event.fulfilling_location_id), event.model_dump(mode="json"))]

    def test_celery_notifier_swallows_broker_errors(self, monkeypatch):
        def broken(*args):
            raise ConnectionError("broker caído")

        monkeypatch.setattr(tasks.publish_location_event, "delay", broken)
        CeleryNotifier().publish(remote_sale_event())

    def test_logging_notifier(self):
        LoggingNotifier().publish(remote_sale_event())

    def test_channel_name(self):
        location_id = str(uuid4())
        assert tasks.channel_for(location_id) == f"location:{location_id}"


class FakeRedis:
    def __init__(self):
        self.published = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True

    def publish(self, channel, message):
        self.published.append((channel, message))
        return 2


class TestPublishTask:
    def test_publishes_and_closes_client(self, monkeypatch):
        client = FakeRedis()
        monkeypatch.setattr(tasks.redis.Redis, "from_url", lambda url: client)
        event = remote_sale_event()
        payload = event.model_dump(mode="json")

        result = tasks.publish_location_event.apply(
            args=(str(event.fulfilling_location_id), payload)
        ).get()

        assert result["status"] == "published"
        assert result["receivers"] == 2
        assert client.published[0][0] == f"location:{event.fulfilling_location_id}"
        assert json.loads(client.published[0][1])["sale_total"] == "45.00"
        assert client.closed
