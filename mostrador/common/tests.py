"""
Tests para el tipo Money y la jerarquía de errores del POS
"""

import inspect
import pytest
from decimal import Decimal

from mostrador.common.money import Money, money_sum
from mostrador.common.exceptions import (
    ValidationError, InvalidSettlement, InsufficientCredit, CustomerNotFound, NotFoundError
)


class TestMoney:
    """Tests de conversión y aritmética exacta"""

    def test_of_decimal_and_text(self):
        assert Money.of(Decimal("12.34")).cents == 1234
        assert Money.of("0.10").cents == 10
        assert Money.of(" 5 ").cents == 500
        assert Money.of(7).cents == 700

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            Money.of(0.1)

    def test_more_than_two_decimals_rejected(self):
        with pytest.raises(ValidationError):
            Money.of("1.005")

    def test_invalid_text_rejected(self):
        with pytest.raises(ValidationError):
            Money.of("diez")

    def test_arithmetic_is_exact(self):
        """0.10 sumado diez veces es exactamente 1.00"""
        total = money_sum(Money.of("0.10") for _ in range(10))
        assert total == Money.of("1.00")
        assert Money.of("2.50") * 3 == Money.of("7.50")
        assert 2 * Money.of("0.05") == Money.of("0.10")
        assert Money.of("1.00") - Money.of("1.01") == Money.from_cents(-1)

    def test_ordering_and_predicates(self):
        assert Money.of("3") > Money.of("2.99")
        assert min(Money.of("5"), Money.of("4")) == Money.of("4")
        assert Money.zero().is_zero()
        assert (-Money.of("1")).is_negative()
        assert Money.of("0.01").is_positive()

    def test_amount_and_str(self):
        assert Money.of("80").amount == Decimal("80.00")
        assert str(Money.from_cents(1999)) == "19.99"

    def test_cents_must_be_int(self):
        with pytest.raises(TypeError):
            Money(Decimal("1.5"))


class TestErrors:
    def test_to_dict_shape(self):
        error = InsufficientCredit(details={"available": "30.00"})
        assert error.to_dict() == {
            "code": "INSUFFICIENT_CREDIT",
            "message": "Crédito insuficiente",
            "details": {"available": "30.00"},
        }
        assert error.status_code == 409

    def test_hierarchy(self):
        assert issubclass(InvalidSettlement, ValidationError)
        assert issubclass(CustomerNotFound, NotFoundError)
        assert CustomerNotFound().status_code == 404


class TestMiddleware:
    def test_health_is_exempt_from_cashier_context(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_cashier_context_is_exposed_to_routes(self, client, cashier_headers):
        response = client.get("/api/v1/drawers/current", headers=cashier_headers)
        # Sin turno abierto el error viene del servicio, no del middleware
        assert response.json()["code"] == "DRAWER_NOT_FOUND"


class TestRoutes:
    def test_database_routes_run_in_threadpool(self):
        """Las rutas usan sesiones síncronas: deben ser def, no async def"""
        from fastapi.routing import APIRoute
        from mostrador.main import app

        api_routes = [route for route in app.routes
                      if isinstance(route, APIRoute) and route.path.startswith("/api/v1")]
        assert api_routes
        blocking = [route.path for route in api_routes if inspect.iscoroutinefunction(route.endpoint)]
        assert blocking == []
