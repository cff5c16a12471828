"""
Tests para el catálogo de productos
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from mostrador.common.money import Money
from mostrador.common.exceptions import ProductNotFound, ValidationError
from mostrador.modules.products.schemas import ProductCreate
from mostrador.modules.products.service import CatalogService


class TestCatalogService:
    def test_resolve_cart_fixes_current_price(self, db_session, make_product):
        rice = make_product(price="3.25")
        oil = make_product(price="11.90")

        cart = CatalogService(db_session).resolve_cart([(rice.id, 4), (oil.id, 1)])

        assert [item.product_id for item in cart.items] == [rice.id, oil.id]
        assert cart.items[0].unit_price == Money.of("3.25")
        assert cart.total == Money.of("24.90")

    def test_resolve_cart_rejects_unknown_or_inactive(self, db_session, make_product):
        product = make_product()
        product.is_active = False
        db_session.commit()
        catalog = CatalogService(db_session)

        with pytest.raises(ProductNotFound):
            catalog.resolve_cart([(product.id, 1)])
        with pytest.raises(ProductNotFound):
            catalog.resolve_cart([(uuid4(), 1)])

    def test_resolve_empty_cart(self, db_session):
        with pytest.raises(ValidationError):
            CatalogService(db_session).resolve_cart([])

    def test_duplicate_sku(self, db_session):
        catalog = CatalogService(db_session)
        catalog.create_product(ProductCreate(name="Fideos", sku="FID-500", price=Decimal("2.10")))
        with pytest.raises(ValidationError):
            catalog.create_product(ProductCreate(name="Fideos largos", sku="FID-500", price=Decimal("2.30")))


class TestProductEndpoints:
    def test_create_and_search(self, client, cashier_headers):
        response = client.post(
            "/api/v1/products/",
            json={"name": "Café molido", "sku": "CAF-250", "bar_code": "7790001", "price": "8.75"},
            headers=cashier_headers
        )
        assert response.status_code == 201
        assert Decimal(response.json()["price"]) == Decimal("8.75")

        response = client.get("/api/v1/products/", params={"search": "7790001"}, headers=cashier_headers)
        assert response.json()["total"] == 1

    def test_price_with_three_decimals(self, client, cashier_headers):
        response = client.post(
            "/api/v1/products/",
            json={"name": "Azúcar", "sku": "AZU-1", "price": "1.005"},
            headers=cashier_headers
        )
        assert response.status_code == 422
