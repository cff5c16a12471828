"""
Fixtures compartidas para los tests de cada módulo (mostrador/**/tests.py).

Cada test usa su propia base SQLite en un archivo temporal, así los tests
con hilos concurrentes tienen conexiones reales e independientes.
"""

import os
import tempfile

# La configuración se lee al importar mostrador; debe quedar fijada antes.
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.gettempdir()}/mostrador_import.db")
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["NOTIFICATIONS_ENABLED"] = "false"

import pytest
from uuid import uuid4
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from mostrador.database.database import Base, build_engine, get_db
from mostrador.common.money import Money
from mostrador.modules.locations.models import Location
from mostrador.modules.products.models import Product, StockEntry
from mostrador.modules.customers.models import Customer
from mostrador.modules.pos.models import DrawerSession, DrawerState, utcnow
from mostrador.modules.notifications.service import get_notifier


class RecordingNotifier:
    """Notifier de prueba que guarda los eventos publicados."""

    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    def publish(self, event):
        if self.fail:
            raise ConnectionError("canal de notificaciones caído")
        self.events.append(event)

    def of_type(self, event_type: str):
        return [event for event in self.events if event.type == event_type]


# ===== BASE DE DATOS =====

@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path}/pos.db")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


# ===== DATOS DE EJEMPLO =====

@pytest.fixture
def make_location(db_session):
    def _make(name=None, is_active=True):
        location = Location(name=name or f"Local {uuid4().hex[:6]}", is_active=is_active)
        db_session.add(location)
        db_session.commit()
        db_session.refresh(location)
        return location
    return _make


@pytest.fixture
def location(make_location):
    return make_location("Sucursal Centro")


@pytest.fixture
def make_product(db_session):
    def _make(price="10.00", stock=None, name=None, reorder_threshold=0):
        """stock: dict {location_id: cantidad}"""
        product = Product(
            name=name or f"Producto {uuid4().hex[:6]}",
            sku=f"SKU-{uuid4().hex[:8]}",
            price=Money.of(price)
        )
        db_session.add(product)
        db_session.flush()
        for location_id, quantity in (stock or {}).items():
            db_session.add(StockEntry(
                product_id=product.id,
                location_id=location_id,
                quantity=quantity,
                reorder_threshold=reorder_threshold
            ))
        db_session.commit()
        db_session.refresh(product)
        return product
    return _make


@pytest.fixture
def make_customer(db_session):
    def _make(credit="0.00", name="Cliente Frecuente"):
        customer = Customer(
            name=name,
            document=uuid4().hex[:12],
            credit_balance=Money.of(credit)
        )
        db_session.add(customer)
        db_session.commit()
        db_session.refresh(customer)
        return customer
    return _make


@pytest.fixture
def cashier_id():
    return uuid4()


@pytest.fixture
def open_drawer(db_session, location, cashier_id):
    drawer = DrawerSession(
        cashier_id=cashier_id,
        location_id=location.id,
        state=DrawerState.OPEN,
        opening_float=Money.of("100.00"),
        opened_at=utcnow()
    )
    db_session.add(drawer)
    db_session.commit()
    db_session.refresh(drawer)
    return drawer


# ===== API =====

@pytest.fixture
def client(session_factory, notifier):
    from mostrador.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def cashier_headers(cashier_id, location):
    return {"X-Cashier-ID": str(cashier_id), "X-Location-ID": str(location.id)}
