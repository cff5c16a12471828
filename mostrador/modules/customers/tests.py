"""
Tests para el módulo de Clientes

Cubren:
- Débitos y créditos del ledger, con sus rechazos
- Conservación del saldo bajo débitos y créditos concurrentes
- Alta de clientes con crédito inicial y edición de datos
- Endpoints REST de clientes y crédito
"""

import pytest
import threading
from decimal import Decimal
from uuid import uuid4

from mostrador.common.money import Money
from mostrador.common.exceptions import (
    ValidationError, InsufficientCredit, CustomerNotFound
)
from mostrador.modules.customers.schemas import CustomerCreate, CustomerUpdate
from mostrador.modules.customers.service import CreditLedger, CustomerService


def run_concurrently(session_factory, operations):
    """
    Ejecuta cada operación en su propio hilo y su propia sesión.
    Devuelve la lista de resultados: None o la excepción lanzada.
    """
    results = [None] * len(operations)
    barrier = threading.Barrier(len(operations))

    def worker(index, operation):
        session = session_factory()
        try:
            barrier.wait()
            operation(CreditLedger(session))
        except Exception as exc:
            results[index] = exc
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(i, op)) for i, op in enumerate(operations)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results


class TestCreditLedger:
    """Tests del ledger de crédito"""

    def test_debit_and_credit(self, db_session, make_customer):
        customer = make_customer(credit="50.00")
        ledger = CreditLedger(db_session)

        ledger.debit(customer.id, Money.of("20.00"))
        assert ledger.get_available(customer.id) == Money.of("30.00")

        ledger.credit(customer.id, Money.of("5.50"))
        assert ledger.get_available(customer.id) == Money.of("35.50")

    def test_debit_exact_balance(self, db_session, make_customer):
        customer = make_customer(credit="12.34")
        ledger = CreditLedger(db_session)
        ledger.debit(customer.id, Money.of("12.34"))
        assert ledger.get_available(customer.id) == Money.zero()

    def test_insufficient_credit_leaves_balance(self, db_session, make_customer):
        customer = make_customer(credit="30.00")
        ledger = CreditLedger(db_session)

        with pytest.raises(InsufficientCredit) as exc_info:
            ledger.debit(customer.id, Money.of("30.01"))

        assert exc_info.value.details["available"] == "30.00"
        assert exc_info.value.details["requested"] == "30.01"
        assert ledger.get_available(customer.id) == Money.of("30.00")

    def test_unknown_customer(self, db_session):
        ledger = CreditLedger(db_session)
        with pytest.raises(CustomerNotFound):
            ledger.get_available(uuid4())
        with pytest.raises(CustomerNotFound):
            ledger.debit(uuid4(), Money.of("1.00"))
        with pytest.raises(CustomerNotFound):
            ledger.credit(uuid4(), Money.of("1.00"))

    def test_negative_amount_rejected(self, db_session, make_customer):
        customer = make_customer(credit="10.00")
        ledger = CreditLedger(db_session)
        with pytest.raises(ValidationError):
            ledger.debit(customer.id, Money.from_cents(-1))
        with pytest.raises(ValidationError):
            ledger.credit(customer.id, Money.from_cents(-1))

    def test_zero_amount_is_noop(self, db_session, make_customer):
        customer = make_customer(credit="10.00")
        ledger = CreditLedger(db_session)
        ledger.debit(customer.id, Money.zero())
        ledger.credit(customer.id, Money.zero())
        assert ledger.get_available(customer.id) == Money.of("10.00")

    def test_concurrent_debits_never_overdraw(self, session_factory, make_customer):
        """15 débitos de $10 contra un saldo de $100: exactamente 10 se aplican"""
        customer = make_customer(credit="100.00")
        customer_id = customer.id
        operations = [
            lambda ledger: ledger.debit(customer_id, Money.of("10.00"))
            for _ in range(15)
        ]

        results = run_concurrently(session_factory, operations)

        applied = [r for r in results if r is None]
        rejected = [r for r in results if isinstance(r, InsufficientCredit)]
        assert len(applied) == 10
        assert len(rejected) == 5

        session = session_factory()
        try:
            assert CreditLedger(session).get_available(customer_id) == Money.zero()
        finally:
            session.close()

    def test_concurrent_mixed_operations_conserve_balance(self, session_factory, make_customer):
        """Saldo final = saldo inicial + suma de los movimientos aplicados"""
        customer = make_customer(credit="40.00")
        customer_id = customer.id
        debit, credit = Money.of("7.00"), Money.of("3.00")
        operations = (
            [lambda ledger: ledger.debit(customer_id, debit)] * 8 +
            [lambda ledger: ledger.credit(customer_id, credit)] * 8
        )

        results = run_concurrently(session_factory, operations)

        for result in results:
            assert result is None or isinstance(result, InsufficientCredit)
        applied_debits = sum(1 for r in results[:8] if r is None)
        applied_credits = sum(1 for r in results[8:] if r is None)
        assert applied_credits == 8

        expected = Money.of("40.00") - debit * applied_debits + credit * applied_credits
        session = session_factory()
        try:
            balance = CreditLedger(session).get_available(customer_id)
        finally:
            session.close()
        assert balance == expected
        assert not balance.is_negative()

    def test_customers_do_not_interfere(self, session_factory, make_customer):
        first = make_customer(credit="10.00", name="Ana")
        second = make_customer(credit="10.00", name="Luis")
        first_id, second_id = first.id, second.id
        operations = (
            [lambda ledger: ledger.debit(first_id, Money.of("1.00"))] * 5 +
            [lambda ledger: ledger.debit(second_id, Money.of("2.00"))] * 5
        )

        results = run_concurrently(session_factory, operations)

        assert all(result is None for result in results)
        session = session_factory()
        try:
            ledger = CreditLedger(session)
            assert ledger.get_available(first_id) == Money.of("5.00")
            assert ledger.get_available(second_id) == Money.zero()
        finally:
            session.close()


class TestCustomerService:
    def test_create_with_initial_credit(self, db_session):
        service = CustomerService(db_session)
        customer = service.create_customer(CustomerCreate(
            name="Carla Gómez", document="30111222", initial_credit=Decimal("25.00")
        ))
        assert customer.credit_balance == Money.of("25.00")

    def test_duplicate_document(self, db_session):
        service = CustomerService(db_session)
        service.create_customer(CustomerCreate(name="Carla Gómez", document="30111222"))
        with pytest.raises(ValidationError):
            service.create_customer(CustomerCreate(name="Otra Carla", document="30111222"))

    def test_search_and_deposit(self, db_session, make_customer):
        customer = make_customer(credit="1.00", name="Ramón Díaz")
        make_customer(name="Sofía Paz")
        service = CustomerService(db_session)

        found = service.list_customers(search="Ramón")
        assert found["total"] == 1
        assert found["items"][0].id == customer.id

        assert service.deposit_credit(customer.id, Money.of("9.00")) == Money.of("10.00")

    def test_update_contact_data(self, db_session, make_customer):
        """Sólo cambian los campos enviados; el crédito queda igual"""
        customer = make_customer(credit="12.00", name="Ramón Díaz")
        service = CustomerService(db_session)

        updated = service.update_customer(customer.id, CustomerUpdate(email="ramon@example.com", phone="11-5555"))
        assert updated.name == "Ramón Díaz"
        assert updated.email == "ramon@example.com"
        assert updated.credit_balance == Money.of("12.00")

        updated = service.update_customer(customer.id, CustomerUpdate(email=""))
        assert updated.email is None
        assert updated.phone == "11-5555"

    def test_update_duplicate_document(self, db_session, make_customer):
        first = make_customer(name="Ana")
        second = make_customer(name="Beto")
        service = CustomerService(db_session)

        with pytest.raises(ValidationError):
            service.update_customer(second.id, CustomerUpdate(document=first.document))
        assert service.get_customer(second.id).document != first.document

    def test_update_unknown_customer(self, db_session):
        with pytest.raises(CustomerNotFound):
            CustomerService(db_session).update_customer(uuid4(), CustomerUpdate(name="Nadie"))


class TestCustomerEndpoints:
    def test_create_and_deposit(self, client, cashier_headers):
        response = client.post(
            "/api/v1/customers/",
            json={"name": "Julia Ríos", "document": "27999888", "initial_credit": "15.00"},
            headers=cashier_headers
        )
        assert response.status_code == 201
        customer_id = response.json()["id"]

        response = client.post(
            f"/api/v1/customers/{customer_id}/credit/deposit",
            json={"amount": "5.25"},
            headers=cashier_headers
        )
        assert response.status_code == 200
        assert Decimal(response.json()["available"]) == Decimal("20.25")

        response = client.get(f"/api/v1/customers/{customer_id}/credit", headers=cashier_headers)
        assert Decimal(response.json()["available"]) == Decimal("20.25")

    def test_unknown_customer_payload(self, client, cashier_headers):
        response = client.get(f"/api/v1/customers/{uuid4()}/credit", headers=cashier_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "CUSTOMER_NOT_FOUND"

    def test_deposit_must_be_positive(self, client, cashier_headers, make_customer):
        customer = make_customer()
        response = client.post(
            f"/api/v1/customers/{customer.id}/credit/deposit",
            json={"amount": "0"},
            headers=cashier_headers
        )
        assert response.status_code == 422

    def test_update_customer(self, client, cashier_headers, make_customer):
        customer = make_customer(credit="3.00", name="Julia Ríos")
        response = client.put(
            f"/api/v1/customers/{customer.id}",
            json={"name": "Julia Ríos de Paz", "phone": "351-444"},
            headers=cashier_headers
        )
        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Julia Ríos de Paz"
        assert body["phone"] == "351-444"
        assert Decimal(body["credit_balance"]) == Decimal("3.00")

    def test_update_rejects_credit_balance(self, client, cashier_headers, make_customer):
        customer = make_customer(credit="3.00")
        response = client.put(
            f"/api/v1/customers/{customer.id}",
            json={"credit_balance": "500.00"},
            headers=cashier_headers
        )
        assert response.status_code == 422
