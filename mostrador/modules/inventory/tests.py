"""
Tests para el módulo de Inventario

Cubren descuento y reposición atómicos por producto y local, sugerencia de
locales con stock, alertas de stock bajo y los endpoints de stock.
"""

import pytest
import threading
from uuid import uuid4

from mostrador.common.exceptions import (
    ValidationError, InsufficientStock, ProductNotFound, LocationNotFound
)
from sqlalchemy.exc import OperationalError

from mostrador.modules.products.models import InventoryMovement, Product, StockEntry
from mostrador.modules.inventory.schemas import MovementType
from mostrador.modules.inventory.service import StockDispatcher
from mostrador.modules.pos.settlement import RemoteSaleRequest


def quantity_of(db, product_id, location_id):
    return db.query(StockEntry.quantity).filter(
        StockEntry.product_id == product_id,
        StockEntry.location_id == location_id
    ).scalar()


class TestStockDispatcher:
    """Tests del único escritor de stock"""

    def test_decrement_records_movement(self, db_session, location, make_product):
        product = make_product(stock={location.id: 10})
        dispatcher = StockDispatcher(db_session)

        remaining = dispatcher.decrement(product.id, location.id, 4, reference="VENTA-TEST")

        assert remaining == 6
        assert quantity_of(db_session, product.id, location.id) == 6
        movement = db_session.query(InventoryMovement).filter(
            InventoryMovement.product_id == product.id
        ).one()
        assert movement.quantity == -4
        assert movement.movement_type == MovementType.OUT.value
        assert movement.reference == "VENTA-TEST"

    def test_rejected_decrement_leaves_quantity(self, db_session, location, make_product):
        product = make_product(stock={location.id: 3}, name="Yerba 1kg")
        dispatcher = StockDispatcher(db_session)

        with pytest.raises(InsufficientStock) as exc_info:
            dispatcher.decrement(product.id, location.id, 4)

        assert "Yerba 1kg" in exc_info.value.message
        assert exc_info.value.details["available"] == 3
        assert exc_info.value.details["requested"] == 4
        assert quantity_of(db_session, product.id, location.id) == 3
        assert db_session.query(InventoryMovement).count() == 0

    def test_decrement_without_entry(self, db_session, location, make_product):
        product = make_product()
        with pytest.raises(InsufficientStock) as exc_info:
            StockDispatcher(db_session).decrement(product.id, location.id, 1)
        assert exc_info.value.details["available"] == 0

    def test_quantity_must_be_positive(self, db_session, location, make_product):
        product = make_product(stock={location.id: 3})
        dispatcher = StockDispatcher(db_session)
        with pytest.raises(ValidationError):
            dispatcher.decrement(product.id, location.id, 0)
        with pytest.raises(ValidationError):
            dispatcher.increment(product.id, location.id, -2)

    def test_sequence_never_goes_negative(self, db_session, location, make_product):
        product = make_product(stock={location.id: 5})
        dispatcher = StockDispatcher(db_session)
        operations = [("out", 3), ("out", 3), ("in", 2), ("out", 4), ("out", 1), ("in", 1), ("out", 2), ("out", 1)]

        for kind, quantity in operations:
            before = quantity_of(db_session, product.id, location.id)
            if kind == "in":
                dispatcher.increment(product.id, location.id, quantity)
                assert quantity_of(db_session, product.id, location.id) == before + quantity
            else:
                try:
                    dispatcher.decrement(product.id, location.id, quantity)
                    assert quantity_of(db_session, product.id, location.id) == before - quantity
                except InsufficientStock:
                    assert quantity_of(db_session, product.id, location.id) == before
            assert quantity_of(db_session, product.id, location.id) >= 0

        assert quantity_of(db_session, product.id, location.id) == 0

    def test_increment_creates_entry(self, db_session, location, make_product):
        product = make_product()
        remaining = StockDispatcher(db_session).increment(product.id, location.id, 12, reference="REPOSICION")

        assert remaining == 12
        assert quantity_of(db_session, product.id, location.id) == 12

    def test_increment_unknown_product_or_location(self, db_session, location, make_product):
        product = make_product()
        dispatcher = StockDispatcher(db_session)
        with pytest.raises(ProductNotFound):
            dispatcher.increment(uuid4(), location.id, 1)
        with pytest.raises(LocationNotFound):
            dispatcher.increment(product.id, uuid4(), 1)

    def test_concurrent_decrements(self, session_factory, location, make_product):
        """20 ventas concurrentes de 1 unidad sobre 12 en stock"""
        product = make_product(stock={location.id: 12})
        product_id, location_id = product.id, location.id
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(20)

        def sell():
            session = session_factory()
            try:
                barrier.wait()
                StockDispatcher(session).decrement(product_id, location_id, 1)
                outcome = "ok"
            except InsufficientStock:
                outcome = "rejected"
            finally:
                session.close()
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=sell) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count("ok") == 12
        assert results.count("rejected") == 8
        session = session_factory()
        try:
            assert quantity_of(session, product_id, location_id) == 0
        finally:
            session.close()

    def test_available_elsewhere(self, db_session, location, make_location, make_product):
        north = make_location("Sucursal Norte")
        south = make_location("Sucursal Sur")
        closed_branch = make_location("Sucursal Cerrada", is_active=False)
        product = make_product(stock={location.id: 1, north.id: 9, south.id: 2, closed_branch.id: 50})

        suggestions = StockDispatcher(db_session).available_elsewhere(product.id, location.id, 3)

        assert suggestions == [{"location_id": str(north.id), "location_name": "Sucursal Norte", "quantity": 9}]

    def test_resolve_fulfillment(self, db_session, location, make_location):
        warehouse = make_location("Depósito")
        dispatcher = StockDispatcher(db_session)

        assert dispatcher.resolve_fulfillment(location.id, None).fulfilling_location_id == location.id
        remote = dispatcher.resolve_fulfillment(location.id, RemoteSaleRequest(location.id, warehouse.id))
        assert remote.is_remote
        with pytest.raises(LocationNotFound):
            dispatcher.resolve_fulfillment(location.id, RemoteSaleRequest(location.id, uuid4()))

    def test_low_stock_alert(self, db_session, location, make_product, notifier):
        product = make_product(stock={location.id: 5}, reorder_threshold=3, name="Leche entera")
        dispatcher = StockDispatcher(db_session, notifier, low_stock_alerts=True)

        dispatcher.decrement(product.id, location.id, 1)
        assert notifier.events == []

        dispatcher.decrement(product.id, location.id, 1)
        alerts = notifier.of_type("LowStockAlert")
        assert len(alerts) == 1
        assert alerts[0].quantity == 3
        assert alerts[0].reorder_threshold == 3
        assert alerts[0].product_name == "Leche entera"
        assert alerts[0].target_location_id == location.id

    def test_low_stock_alert_disabled(self, db_session, location, make_product, notifier):
        product = make_product(stock={location.id: 2}, reorder_threshold=5)
        StockDispatcher(db_session, notifier, low_stock_alerts=False).decrement(product.id, location.id, 1)
        assert notifier.events == []

    def test_failing_alert_keeps_decrement(self, db_session, location, make_product, notifier):
        product = make_product(stock={location.id: 2}, reorder_threshold=5)
        notifier.fail = True
        remaining = StockDispatcher(db_session, notifier, low_stock_alerts=True).decrement(
            product.id, location.id, 1
        )
        assert remaining == 1
        assert quantity_of(db_session, product.id, location.id) == 1

    def test_failing_product_lookup_keeps_decrement(self, db_session, location, make_product, notifier,
                                                    monkeypatch):
        """Un error de base al armar la alerta no llega a quien descuenta"""
        product = make_product(stock={location.id: 3}, reorder_threshold=5)
        dispatcher = StockDispatcher(db_session, notifier, low_stock_alerts=True)
        original_query = db_session.query

        def locked_query(*entities, **kwargs):
            if entities and entities[0] is Product.name:
                raise OperationalError("SELECT products.name", {}, Exception("database is locked"))
            return original_query(*entities, **kwargs)

        monkeypatch.setattr(db_session, "query", locked_query)
        remaining = dispatcher.decrement(product.id, location.id, 1)
        monkeypatch.undo()

        assert remaining == 2
        assert quantity_of(db_session, product.id, location.id) == 2
        assert notifier.events == []

    def test_deferred_alert(self, db_session, location, make_product, notifier):
        product = make_product(stock={location.id: 4}, reorder_threshold=3)
        dispatcher = StockDispatcher(db_session, notifier, low_stock_alerts=True)

        dispatcher.decrement(product.id, location.id, 2, alert=False)
        assert notifier.events == []

        dispatcher.alert_if_low(product.id, location.id)
        alerts = notifier.of_type("LowStockAlert")
        assert len(alerts) == 1
        assert alerts[0].quantity == 2

    def test_alert_if_low_above_threshold(self, db_session, location, make_product, notifier):
        product = make_product(stock={location.id: 10}, reorder_threshold=3)
        StockDispatcher(db_session, notifier, low_stock_alerts=True).alert_if_low(product.id, location.id)
        assert notifier.events == []


class TestStockEndpoints:
    def test_replenish_and_query(self, client, cashier_headers, location, make_location, make_product):
        warehouse = make_location("Depósito Central")
        product = make_product(stock={location.id: 2})

        response = client.post(
            "/api/v1/stock/replenish",
            json={
                "product_id": str(product.id),
                "location_id": str(warehouse.id),
                "quantity": 10,
                "reorder_threshold": 4,
            },
            headers=cashier_headers
        )
        assert response.status_code == 201
        body = response.json()
        assert body["quantity"] == 10
        assert body["reorder_threshold"] == 4
        assert body["location_name"] == "Depósito Central"

        response = client.get(f"/api/v1/stock/{product.id}", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["total_quantity"] == 12
        assert len(response.json()["locations"]) == 2

    def test_replenish_unknown_product(self, client, cashier_headers, location):
        response = client.post(
            "/api/v1/stock/replenish",
            json={"product_id": str(uuid4()), "location_id": str(location.id), "quantity": 1},
            headers=cashier_headers
        )
        assert response.status_code == 404
        assert response.json()["code"] == "PRODUCT_NOT_FOUND"
