"""
Tests para el módulo POS

Cubren:
- Cálculo del cobro (crédito, vuelto, pagos mixtos, sobrepagos)
- Turnos de caja: apertura, acumulación por método y arqueo
- Cobro todo-o-nada con reversión de crédito y stock
- Ventas remotas y notificación al local de origen
- Endpoints REST de cajas y ventas
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from mostrador.common.money import Money
from mostrador.common.exceptions import (
    ValidationError, InvalidSettlement, InsufficientCredit, InsufficientStock,
    OverpaymentNotAllowedWithFullCredit, DrawerAlreadyOpen, DrawerClosed, DrawerNotFound,
    LocationNotFound, PersistenceFailure, CompensationFailure
)
from mostrador.modules.customers.service import CreditLedger
from mostrador.modules.products.models import Product, StockEntry
from mostrador.modules.pos.models import DrawerSession, DrawerState, Sale
from mostrador.modules.pos.schemas import SaleCreate, SaleItemIn
from mostrador.modules.pos.services import DrawerService, SaleOrchestrator, CompensationJournal
from mostrador.modules.pos.settlement import (
    PaymentMethod, OverpaymentPolicy, Cart, CartItem, Fulfillment, RemoteSaleRequest,
    SettlementRequest, SettlementCalculator, calculate_settlement
)


def make_cart(*lines):
    """lines: (precio, cantidad)"""
    return Cart(items=tuple(CartItem(uuid4(), quantity, Money.of(price)) for price, quantity in lines))


def m(value):
    return Money.of(value)


def stock_of(db, product_id, location_id):
    return db.query(StockEntry.quantity).filter(
        StockEntry.product_id == product_id,
        StockEntry.location_id == location_id
    ).scalar()


def drawer_totals(db, session_id):
    return db.query(
        DrawerSession.sale_count, DrawerSession.sales_total,
        DrawerSession.cash_total, DrawerSession.credit_total
    ).filter(DrawerSession.id == session_id).one()


# ===== CÁLCULO DEL COBRO =====

class TestSettlementCalculator:
    """Tests del cálculo puro del cobro"""

    def test_cash_with_partial_credit(self):
        """Carrito $100, crédito $30, efectivo $70: sin vuelto"""
        request = SettlementRequest(
            cart=make_cart(("100.00", 1)),
            method=PaymentMethod.CASH,
            customer_id=uuid4(),
            use_credit=True,
            cash_tendered=m("70.00")
        )
        plan = calculate_settlement(request, available_credit=m("30.00"))

        assert plan.gross_total == m("100.00")
        assert plan.credit_applied == m("30.00")
        assert plan.net_due == m("70.00")
        assert plan.change_due == Money.zero()

    def test_cash_exact_and_with_change(self):
        cart = make_cart(("100.00", 1))
        exact = calculate_settlement(
            SettlementRequest(cart=cart, method=PaymentMethod.CASH, cash_tendered=m("100.00")), Money.zero()
        )
        assert exact.change_due == Money.zero()

        with_change = calculate_settlement(
            SettlementRequest(cart=cart, method=PaymentMethod.CASH, cash_tendered=m("120.00")), Money.zero()
        )
        assert with_change.change_due == m("20.00")
        assert with_change.cash_retained == m("100.00")

    def test_cash_short_is_rejected(self):
        request = SettlementRequest(cart=make_cart(("10.00", 1)), method=PaymentMethod.CASH,
                                    cash_tendered=m("9.99"))
        with pytest.raises(ValidationError):
            calculate_settlement(request, Money.zero())

    def test_mixed_below_total_is_rejected(self):
        """Pago mixto $20 + $20 sobre $50"""
        request = SettlementRequest(
            cart=make_cart(("50.00", 1)),
            method=PaymentMethod.MIXED,
            cash_tendered=m("20.00"),
            other_tendered=m("20.00")
        )
        with pytest.raises(ValidationError) as exc_info:
            calculate_settlement(request, Money.zero())
        assert "suma" in exc_info.value.message

    def test_mixed_change_comes_from_cash(self):
        cart = make_cart(("50.00", 1))
        plan = calculate_settlement(
            SettlementRequest(cart=cart, method=PaymentMethod.MIXED,
                              cash_tendered=m("30.00"), other_tendered=m("30.00")),
            Money.zero()
        )
        assert plan.change_due == m("10.00")
        assert plan.overpayment == Money.zero()

        plan = calculate_settlement(
            SettlementRequest(cart=cart, method=PaymentMethod.MIXED,
                              cash_tendered=m("5.00"), other_tendered=m("60.00")),
            Money.zero()
        )
        assert plan.change_due == m("5.00")
        assert plan.overpayment == m("10.00")

    def test_mixed_requires_both_amounts(self):
        request = SettlementRequest(cart=make_cart(("50.00", 1)), method=PaymentMethod.MIXED,
                                    cash_tendered=m("50.00"))
        with pytest.raises(ValidationError):
            calculate_settlement(request, Money.zero())

    def test_plan_consistency_over_many_amounts(self):
        """El crédito aplicado más el saldo es exactamente el total"""
        carts = [
            make_cart(("0.01", 1)),
            make_cart(("19.99", 3)),
            make_cart(("100.00", 1), ("0.10", 10)),
            make_cart(("1234.56", 2), ("0.07", 13)),
        ]
        credits = [m("0"), m("0.01"), m("50.00"), m("5000.00")]
        for cart in carts:
            for available in credits:
                credit = min(available, cart.total)
                net_due = cart.total - credit
                request = SettlementRequest(
                    cart=cart,
                    method=PaymentMethod.CASH,
                    customer_id=uuid4(),
                    use_credit=True,
                    cash_tendered=net_due if net_due.is_positive() else None
                )
                plan = calculate_settlement(request, available)
                assert plan.credit_applied + plan.net_due == plan.gross_total
                assert plan.credit_applied == credit

    def test_credit_requested_above_available(self):
        request = SettlementRequest(
            cart=make_cart(("100.00", 1)),
            method=PaymentMethod.CASH,
            customer_id=uuid4(),
            use_credit=True,
            credit_amount_requested=m("40.00"),
            cash_tendered=m("60.00")
        )
        with pytest.raises(InsufficientCredit) as exc_info:
            calculate_settlement(request, available_credit=m("30.00"))
        assert exc_info.value.details["available"] == "30.00"

    def test_credit_requires_customer(self):
        request = SettlementRequest(cart=make_cart(("10.00", 1)), method=PaymentMethod.CASH,
                                    use_credit=True, cash_tendered=m("10.00"))
        with pytest.raises(InvalidSettlement):
            calculate_settlement(request, m("50.00"))

    def test_credit_amount_without_use_credit(self):
        request = SettlementRequest(cart=make_cart(("10.00", 1)), method=PaymentMethod.CASH,
                                    customer_id=uuid4(), credit_amount_requested=m("5.00"),
                                    cash_tendered=m("10.00"))
        with pytest.raises(InvalidSettlement):
            calculate_settlement(request, m("50.00"))

    def test_credit_capped_at_total(self):
        request = SettlementRequest(cart=make_cart(("100.00", 1)), method=PaymentMethod.CASH,
                                    customer_id=uuid4(), use_credit=True)
        plan = calculate_settlement(request, m("150.00"))
        assert plan.credit_applied == m("100.00")
        assert plan.net_due == Money.zero()
        assert plan.tendered_cash == Money.zero()

    def test_tender_with_full_credit_is_rejected(self):
        request = SettlementRequest(cart=make_cart(("100.00", 1)), method=PaymentMethod.CASH,
                                    customer_id=uuid4(), use_credit=True, cash_tendered=m("10.00"))
        with pytest.raises(OverpaymentNotAllowedWithFullCredit):
            calculate_settlement(request, m("100.00"))

    def test_deposit_change_to_credit(self):
        request = SettlementRequest(cart=make_cart(("100.00", 1)), method=PaymentMethod.CASH,
                                    customer_id=uuid4(), cash_tendered=m("120.00"),
                                    deposit_change_to_credit=True)
        plan = calculate_settlement(request, Money.zero())
        assert plan.change_due == Money.zero()
        assert plan.credit_top_up == m("20.00")
        assert plan.cash_retained == m("120.00")

    def test_deposit_change_requires_customer(self):
        request = SettlementRequest(cart=make_cart(("100.00", 1)), method=PaymentMethod.CASH,
                                    cash_tendered=m("120.00"), deposit_change_to_credit=True)
        with pytest.raises(InvalidSettlement):
            calculate_settlement(request, Money.zero())

    def test_card_does_not_accept_cash(self):
        request = SettlementRequest(cart=make_cart(("10.00", 1)), method=PaymentMethod.CARD_DEBIT,
                                    cash_tendered=m("10.00"), other_tendered=m("10.00"))
        with pytest.raises(ValidationError):
            calculate_settlement(request, Money.zero())

    def test_non_cash_overpayment_policy(self):
        request = SettlementRequest(cart=make_cart(("10.00", 1)), method=PaymentMethod.QR,
                                    other_tendered=m("12.00"))

        plan = calculate_settlement(request, Money.zero(), OverpaymentPolicy.ACCEPT)
        assert plan.overpayment == m("2.00")
        assert plan.change_due == Money.zero()
        assert plan.credit_top_up == Money.zero()

        with pytest.raises(InvalidSettlement):
            calculate_settlement(request, Money.zero(), OverpaymentPolicy.REJECT)

    def test_credit_method_must_cover_total(self):
        cart = make_cart(("80.00", 1))
        customer_id = uuid4()
        plan = calculate_settlement(
            SettlementRequest(cart=cart, method=PaymentMethod.CREDIT, customer_id=customer_id, use_credit=True),
            m("100.00")
        )
        assert plan.credit_applied == m("80.00")
        assert plan.net_due == Money.zero()

        with pytest.raises(InsufficientCredit):
            calculate_settlement(
                SettlementRequest(cart=cart, method=PaymentMethod.CREDIT, customer_id=customer_id, use_credit=True),
                m("50.00")
            )

    def test_negative_amount_rejected(self):
        request = SettlementRequest(cart=make_cart(("10.00", 1)), method=PaymentMethod.CASH,
                                    cash_tendered=Money.from_cents(-100))
        with pytest.raises(ValidationError):
            SettlementCalculator().calculate(request, Money.zero())

    def test_cart_validation(self):
        with pytest.raises(ValidationError):
            Cart(items=())
        with pytest.raises(ValidationError):
            CartItem(uuid4(), 0, m("1.00"))

    def test_fulfillment_resolution(self):
        selling, fulfilling = uuid4(), uuid4()
        local = Fulfillment.resolve(selling, None)
        assert not local.is_remote
        assert local.fulfilling_location_id == selling

        remote = Fulfillment.resolve(selling, RemoteSaleRequest(selling, fulfilling, "Ana"))
        assert remote.is_remote
        assert remote.buyer_name == "Ana"

        with pytest.raises(InvalidSettlement):
            Fulfillment.resolve(selling, RemoteSaleRequest(uuid4(), fulfilling))


# ===== CAJA =====

def cash_plan(total, cash=None):
    request = SettlementRequest(cart=make_cart((total, 1)), method=PaymentMethod.CASH,
                                cash_tendered=m(cash or total))
    return calculate_settlement(request, Money.zero())


class TestDrawerService:
    """Tests de apertura, acumulación y cierre de caja"""

    def test_open_and_status(self, db_session, location, cashier_id):
        service = DrawerService(db_session)
        session = service.open(cashier_id, location.id, m("100.00"), notes="Turno mañana")

        assert session.state == DrawerState.OPEN
        assert session.opening_float == m("100.00")
        assert service.get_status(cashier_id).id == session.id

    def test_second_open_is_rejected(self, db_session, location, cashier_id):
        service = DrawerService(db_session)
        service.open(cashier_id, location.id, m("100.00"))
        with pytest.raises(DrawerAlreadyOpen):
            service.open(cashier_id, location.id, m("50.00"))

    def test_open_at_inactive_location(self, db_session, make_location, cashier_id):
        closed_branch = make_location("Sucursal Cerrada", is_active=False)
        with pytest.raises(LocationNotFound):
            DrawerService(db_session).open(cashier_id, closed_branch.id, m("100.00"))

    def test_close_with_variance(self, db_session, location, cashier_id):
        """Fondo $100, ventas en efectivo de $40 y $60, contado $195"""
        service = DrawerService(db_session)
        session = service.open(cashier_id, location.id, m("100.00"))
        service.accumulate(session.id, cash_plan("40.00"))
        service.accumulate(session.id, cash_plan("60.00", cash="100.00"))

        summary = service.close(session.id, m("195.00"))

        assert summary.expected_close == m("200.00")
        assert summary.variance == m("-5.00")
        assert summary.sale_count == 2
        assert summary.sales_total == m("100.00")
        assert summary.session.state == DrawerState.CLOSED

    def test_expected_cash_ignores_non_cash_methods(self, db_session, location, cashier_id):
        service = DrawerService(db_session)
        session = service.open(cashier_id, location.id, m("50.00"))

        service.accumulate(session.id, cash_plan("10.00"))
        card = calculate_settlement(
            SettlementRequest(cart=make_cart(("30.00", 1)), method=PaymentMethod.CARD_CREDIT,
                              other_tendered=m("30.00")),
            Money.zero()
        )
        service.accumulate(session.id, card)
        mixed = calculate_settlement(
            SettlementRequest(cart=make_cart(("20.00", 1)), method=PaymentMethod.MIXED,
                              cash_tendered=m("15.00"), other_tendered=m("10.00")),
            Money.zero()
        )
        service.accumulate(session.id, mixed)
        with_credit = calculate_settlement(
            SettlementRequest(cart=make_cart(("25.00", 1)), method=PaymentMethod.CASH, customer_id=uuid4(),
                              use_credit=True, cash_tendered=m("20.00")),
            m("5.00")
        )
        service.accumulate(session.id, with_credit)

        summary = service.close(session.id, m("85.00"))

        # 50 fondo + 10 + (15 - 5 vuelto) + 20
        assert summary.expected_close == m("90.00")
        assert summary.variance == m("-5.00")
        assert summary.totals_by_method[PaymentMethod.CARD_CREDIT] == m("30.00")
        assert summary.totals_by_method[PaymentMethod.MIXED] == m("10.00")
        assert summary.totals_by_method[PaymentMethod.CREDIT] == m("5.00")
        assert summary.sales_total == m("85.00")

    def test_closed_drawer_rejects_sales_and_second_close(self, db_session, location, cashier_id):
        service = DrawerService(db_session)
        session = service.open(cashier_id, location.id, m("100.00"))
        service.close(session.id, m("100.00"))

        with pytest.raises(DrawerClosed):
            service.accumulate(session.id, cash_plan("10.00"))
        with pytest.raises(DrawerClosed):
            service.close(session.id, m("100.00"))
        with pytest.raises(DrawerClosed):
            service.require_open(cashier_id, session.id)

    def test_reopen_after_close(self, db_session, location, cashier_id):
        service = DrawerService(db_session)
        first = service.open(cashier_id, location.id, m("100.00"))
        service.close(first.id, m("100.00"))

        second = service.open(cashier_id, location.id, m("80.00"))
        assert second.id != first.id
        history = service.list_sessions(cashier_id=cashier_id)
        assert history["total"] == 2

    def test_require_open_without_drawer(self, db_session, cashier_id):
        with pytest.raises(DrawerNotFound):
            DrawerService(db_session).require_open(cashier_id)

    def test_other_cashier_cannot_use_drawer(self, db_session, open_drawer):
        with pytest.raises(DrawerNotFound):
            DrawerService(db_session).require_open(uuid4(), open_drawer.id)


# ===== COBRO DE VENTAS =====

class TestSaleOrchestrator:
    """Tests del cobro todo-o-nada"""

    def _request(self, orchestrator, lines, **kwargs):
        cart = orchestrator.catalog.resolve_cart(lines)
        return SettlementRequest(cart=cart, **kwargs)

    def test_sale_with_credit_and_cash(self, db_session, location, open_drawer, cashier_id,
                                       make_product, make_customer, notifier):
        product = make_product(price="25.00", stock={location.id: 10})
        customer = make_customer(credit="30.00")
        orchestrator = SaleOrchestrator(db_session, notifier)

        request = self._request(
            orchestrator, [(product.id, 4)],
            method=PaymentMethod.CASH, customer_id=customer.id, use_credit=True,
            cash_tendered=m("70.00")
        )
        sale = orchestrator.settle(request, open_drawer.id, cashier_id)

        assert sale.total == m("100.00")
        assert sale.credit_applied == m("30.00")
        assert sale.change_due == Money.zero()
        assert len(sale.lines) == 1
        assert sale.lines[0].unit_price == m("25.00")
        assert CreditLedger(db_session).get_available(customer.id) == Money.zero()
        assert stock_of(db_session, product.id, location.id) == 6

        sale_count, sales_total, cash_total, credit_total = drawer_totals(db_session, open_drawer.id)
        assert sale_count == 1
        assert sales_total == m("100.00")
        assert cash_total == m("70.00")
        assert credit_total == m("30.00")
        assert notifier.events == []

    def test_change_deposited_as_credit(self, db_session, location, open_drawer, cashier_id,
                                        make_product, make_customer, notifier):
        product = make_product(price="100.00", stock={location.id: 1})
        customer = make_customer(credit="0.00")
        orchestrator = SaleOrchestrator(db_session, notifier)

        request = self._request(
            orchestrator, [(product.id, 1)],
            method=PaymentMethod.CASH, customer_id=customer.id, cash_tendered=m("120.00"),
            deposit_change_to_credit=True
        )
        sale = orchestrator.settle(request, open_drawer.id, cashier_id)

        assert sale.credit_top_up == m("20.00")
        assert CreditLedger(db_session).get_available(customer.id) == m("20.00")
        assert drawer_totals(db_session, open_drawer.id).cash_total == m("120.00")

    def test_stock_failure_reverts_everything(self, db_session, location, open_drawer, cashier_id,
                                              make_product, make_customer, notifier):
        """Si falta stock en la segunda línea no queda nada aplicado"""
        first = make_product(price="10.00", stock={location.id: 10})
        second = make_product(price="5.00", stock={location.id: 1})
        customer = make_customer(credit="50.00")
        orchestrator = SaleOrchestrator(db_session, notifier)

        request = self._request(
            orchestrator, [(first.id, 3), (second.id, 2)],
            method=PaymentMethod.CASH, customer_id=customer.id, use_credit=True,
            credit_amount_requested=m("20.00"), cash_tendered=m("20.00")
        )
        with pytest.raises(InsufficientStock):
            orchestrator.settle(request, open_drawer.id, cashier_id)

        assert CreditLedger(db_session).get_available(customer.id) == m("50.00")
        assert stock_of(db_session, first.id, location.id) == 10
        assert stock_of(db_session, second.id, location.id) == 1
        assert db_session.query(Sale).count() == 0
        assert drawer_totals(db_session, open_drawer.id).sale_count == 0

    def test_persistence_failure_reverts_everything(self, db_session, location, open_drawer, cashier_id,
                                                    make_product, make_customer, notifier, monkeypatch):
        product = make_product(price="10.00", stock={location.id: 5})
        customer = make_customer(credit="10.00")
        orchestrator = SaleOrchestrator(db_session, notifier)

        def broken_persist(*args, **kwargs):
            raise OperationalError("INSERT INTO sales", {}, Exception("database is locked"))

        monkeypatch.setattr(orchestrator, "_persist", broken_persist)
        request = self._request(
            orchestrator, [(product.id, 2)],
            method=PaymentMethod.CASH, customer_id=customer.id, use_credit=True, cash_tendered=m("10.00")
        )
        with pytest.raises(PersistenceFailure):
            orchestrator.settle(request, open_drawer.id, cashier_id)

        assert CreditLedger(db_session).get_available(customer.id) == m("10.00")
        assert stock_of(db_session, product.id, location.id) == 5
        assert drawer_totals(db_session, open_drawer.id).cash_total == Money.zero()

    def test_insufficient_credit_changes_nothing(self, db_session, location, open_drawer, cashier_id,
                                                 make_product, make_customer, notifier):
        product = make_product(price="10.00", stock={location.id: 5})
        customer = make_customer(credit="5.00")
        orchestrator = SaleOrchestrator(db_session, notifier)

        request = self._request(
            orchestrator, [(product.id, 1)],
            method=PaymentMethod.CREDIT, customer_id=customer.id, use_credit=True
        )
        with pytest.raises(InsufficientCredit):
            orchestrator.settle(request, open_drawer.id, cashier_id)

        assert CreditLedger(db_session).get_available(customer.id) == m("5.00")
        assert stock_of(db_session, product.id, location.id) == 5

    def test_failed_refund_raises_compensation_failure(self, db_session, location, open_drawer, cashier_id,
                                                       make_product, make_customer, notifier):
        product = make_product(price="10.00", stock={location.id: 1})
        customer = make_customer(credit="10.00")
        orchestrator = SaleOrchestrator(db_session, notifier)

        class RefundFailsLedger(CreditLedger):
            def credit(self, customer_id, amount):
                raise PersistenceFailure("ledger no disponible")

        orchestrator.ledger = RefundFailsLedger(db_session)
        request = self._request(
            orchestrator, [(product.id, 3)],
            method=PaymentMethod.CASH, customer_id=customer.id, use_credit=True, cash_tendered=m("20.00")
        )
        with pytest.raises(CompensationFailure) as exc_info:
            orchestrator.settle(request, open_drawer.id, cashier_id)

        details = exc_info.value.details
        assert details["cause"]["code"] == "INSUFFICIENT_STOCK"
        assert len(details["failed_steps"]) == 1
        assert details["reference"].startswith("VENTA-")

    def test_closed_drawer_rejects_sale(self, db_session, location, open_drawer, cashier_id,
                                        make_product, notifier):
        product = make_product(price="10.00", stock={location.id: 5})
        DrawerService(db_session).close(open_drawer.id, m("100.00"))
        orchestrator = SaleOrchestrator(db_session, notifier)

        request = self._request(orchestrator, [(product.id, 1)],
                                method=PaymentMethod.CASH, cash_tendered=m("10.00"))
        with pytest.raises(DrawerClosed):
            orchestrator.settle(request, open_drawer.id, cashier_id)
        assert stock_of(db_session, product.id, location.id) == 5

    def test_remote_sale_uses_fulfilling_location(self, db_session, location, make_location, open_drawer,
                                                  cashier_id, make_product, notifier):
        warehouse = make_location("Depósito Norte")
        product = make_product(price="15.00", stock={location.id: 0, warehouse.id: 8})
        orchestrator = SaleOrchestrator(db_session, notifier)

        request = self._request(
            orchestrator, [(product.id, 3)],
            method=PaymentMethod.TRANSFER, other_tendered=m("45.00"),
            remote=RemoteSaleRequest(location.id, warehouse.id, buyer_name="Marta")
        )
        sale = orchestrator.settle(request, open_drawer.id, cashier_id)

        assert sale.is_remote
        assert sale.location_id == location.id
        assert sale.fulfilling_location_id == warehouse.id
        assert stock_of(db_session, product.id, warehouse.id) == 5
        assert stock_of(db_session, product.id, location.id) == 0

        events = notifier.of_type("RemoteSaleCreated")
        assert len(events) == 1
        assert events[0].fulfilling_location_id == warehouse.id
        assert events[0].selling_location_id == location.id
        assert events[0].buyer_name == "Marta"
        assert events[0].sale_total == Decimal("45.00")

    def test_remote_sale_without_stock(self, db_session, location, make_location, open_drawer,
                                       cashier_id, make_product, make_customer, notifier):
        """Origen con 5 unidades y carrito de 7"""
        warehouse = make_location("Depósito Sur")
        product = make_product(price="10.00", stock={location.id: 20, warehouse.id: 5})
        customer = make_customer(credit="30.00")
        orchestrator = SaleOrchestrator(db_session, notifier)

        request = self._request(
            orchestrator, [(product.id, 7)],
            method=PaymentMethod.CASH, customer_id=customer.id, use_credit=True, cash_tendered=m("40.00"),
            remote=RemoteSaleRequest(location.id, warehouse.id)
        )
        with pytest.raises(InsufficientStock) as exc_info:
            orchestrator.settle(request, open_drawer.id, cashier_id)

        assert exc_info.value.details["available"] == 5
        elsewhere = exc_info.value.details["available_elsewhere"]
        assert [entry["location_id"] for entry in elsewhere] == [str(location.id)]
        assert stock_of(db_session, product.id, location.id) == 20
        assert stock_of(db_session, product.id, warehouse.id) == 5
        assert CreditLedger(db_session).get_available(customer.id) == m("30.00")
        assert notifier.events == []

    def test_remote_sale_to_inactive_location(self, db_session, location, make_location, open_drawer,
                                              cashier_id, make_product, notifier):
        closed_branch = make_location("Sucursal Vieja", is_active=False)
        product = make_product(price="10.00", stock={closed_branch.id: 5})
        orchestrator = SaleOrchestrator(db_session, notifier)

        request = self._request(
            orchestrator, [(product.id, 1)],
            method=PaymentMethod.CASH, cash_tendered=m("10.00"),
            remote=RemoteSaleRequest(location.id, closed_branch.id)
        )
        with pytest.raises(LocationNotFound):
            orchestrator.settle(request, open_drawer.id, cashier_id)

    def test_notification_failure_keeps_sale(self, db_session, location, make_location, open_drawer,
                                             cashier_id, make_product, notifier):
        warehouse = make_location("Depósito Este")
        product = make_product(price="10.00", stock={warehouse.id: 4})
        notifier.fail = True
        orchestrator = SaleOrchestrator(db_session, notifier)

        request = self._request(
            orchestrator, [(product.id, 1)],
            method=PaymentMethod.CASH, cash_tendered=m("10.00"),
            remote=RemoteSaleRequest(location.id, warehouse.id)
        )
        sale = orchestrator.settle(request, open_drawer.id, cashier_id)

        assert db_session.query(Sale).filter(Sale.id == sale.id).count() == 1
        assert stock_of(db_session, product.id, warehouse.id) == 3

    def test_low_stock_lookup_failure_keeps_sale(self, db_session, location, open_drawer, cashier_id,
                                                  make_product, notifier, monkeypatch):
        """Si falla la consulta de la alerta de stock bajo la venta igual queda confirmada"""
        product = make_product(price="10.00", stock={location.id: 3}, reorder_threshold=5)
        orchestrator = SaleOrchestrator(db_session, notifier)
        orchestrator.dispatcher.low_stock_alerts = True
        request = self._request(
            orchestrator, [(product.id, 1)], method=PaymentMethod.CASH, cash_tendered=m("10.00")
        )
        original_query = db_session.query

        def locked_query(*entities, **kwargs):
            if entities and entities[0] is Product.name:
                raise OperationalError("SELECT products.name", {}, Exception("database is locked"))
            return original_query(*entities, **kwargs)

        monkeypatch.setattr(db_session, "query", locked_query)
        sale = orchestrator.settle(request, open_drawer.id, cashier_id)
        monkeypatch.undo()

        assert db_session.query(Sale).filter(Sale.id == sale.id).count() == 1
        assert stock_of(db_session, product.id, location.id) == 2
        assert drawer_totals(db_session, open_drawer.id).sale_count == 1
        assert notifier.of_type("LowStockAlert") == []

    def test_low_stock_alert_after_sale_commits(self, db_session, location, open_drawer, cashier_id,
                                                make_product, notifier):
        product = make_product(price="10.00", stock={location.id: 3}, reorder_threshold=2)
        orchestrator = SaleOrchestrator(db_session, notifier)
        orchestrator.dispatcher.low_stock_alerts = True
        request = self._request(
            orchestrator, [(product.id, 1)], method=PaymentMethod.CASH, cash_tendered=m("10.00")
        )
        orchestrator.settle(request, open_drawer.id, cashier_id)

        alerts = notifier.of_type("LowStockAlert")
        assert len(alerts) == 1
        assert alerts[0].quantity == 2
        assert alerts[0].target_location_id == location.id

    def test_failed_sale_sends_no_low_stock_alert(self, db_session, location, open_drawer, cashier_id,
                                                  make_product, notifier):
        """El stock de la primera línea se repone, así que no hay aviso"""
        first = make_product(price="10.00", stock={location.id: 3}, reorder_threshold=2)
        second = make_product(price="5.00", stock={location.id: 0})
        orchestrator = SaleOrchestrator(db_session, notifier)
        orchestrator.dispatcher.low_stock_alerts = True
        request = self._request(
            orchestrator, [(first.id, 1), (second.id, 1)],
            method=PaymentMethod.CASH, cash_tendered=m("15.00")
        )
        with pytest.raises(InsufficientStock):
            orchestrator.settle(request, open_drawer.id, cashier_id)

        assert stock_of(db_session, first.id, location.id) == 3
        assert notifier.of_type("LowStockAlert") == []

    def test_create_sale_from_api_input(self, db_session, location, open_drawer, cashier_id,
                                        make_product, notifier):
        product = make_product(price="12.50", stock={location.id: 4})
        orchestrator = SaleOrchestrator(db_session, notifier)

        data = SaleCreate(
            items=[SaleItemIn(product_id=product.id, quantity=2)],
            method=PaymentMethod.CASH,
            cash_tendered=Decimal("30.00")
        )
        sale = orchestrator.create_sale(data, cashier_id)

        assert sale.drawer_session_id == open_drawer.id
        assert sale.change_due == m("5.00")
        assert orchestrator.get_sale(sale.id).id == sale.id
        assert orchestrator.list_sales(drawer_session_id=open_drawer.id)["total"] == 1

    def test_overpayment_policy_from_constructor(self, db_session, location, open_drawer, cashier_id,
                                                 make_product, notifier):
        product = make_product(price="10.00", stock={location.id: 4})
        orchestrator = SaleOrchestrator(db_session, notifier, overpayment_policy=OverpaymentPolicy.REJECT)

        request = self._request(orchestrator, [(product.id, 1)],
                                method=PaymentMethod.CARD_DEBIT, other_tendered=m("11.00"))
        with pytest.raises(InvalidSettlement):
            orchestrator.settle(request, open_drawer.id, cashier_id)
        assert stock_of(db_session, product.id, location.id) == 4


class TestCompensationJournal:
    def test_steps_undone_in_reverse_once(self):
        calls = []
        journal = CompensationJournal("VENTA-TEST")
        journal.record("primero", lambda: calls.append("primero"))
        journal.record("segundo", lambda: calls.append("segundo"))

        journal.compensate(ValidationError())
        journal.compensate(ValidationError())

        assert calls == ["segundo", "primero"]
        assert journal.pending == 0

    def test_failed_step_does_not_stop_others(self):
        calls = []

        def broken():
            raise RuntimeError("sin conexión")

        journal = CompensationJournal("VENTA-TEST")
        journal.record("primero", lambda: calls.append("primero"))
        journal.record("roto", broken)

        with pytest.raises(CompensationFailure) as exc_info:
            journal.compensate(InsufficientStock())

        assert calls == ["primero"]
        assert exc_info.value.details["failed_steps"][0]["step"] == "roto"


# ===== API =====

class TestPOSEndpoints:
    """Tests de los endpoints de caja y venta"""

    def test_missing_cashier_header(self, client):
        response = client.get("/api/v1/drawers/current")
        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_CASHIER_CONTEXT"

        response = client.get("/api/v1/drawers/current", headers={"X-Cashier-ID": "no-es-uuid"})
        assert response.status_code == 400

    def test_open_drawer_twice(self, client, cashier_headers):
        response = client.post("/api/v1/drawers/open", json={"opening_float": "100.00"}, headers=cashier_headers)
        assert response.status_code == 201
        assert Decimal(response.json()["opening_float"]) == Decimal("100.00")

        response = client.post("/api/v1/drawers/open", json={"opening_float": "100.00"}, headers=cashier_headers)
        assert response.status_code == 409
        assert response.json()["code"] == "DRAWER_ALREADY_OPEN"

    def test_float_amounts_rejected(self, client, cashier_headers):
        response = client.post("/api/v1/drawers/open", json={"opening_float": 100.5}, headers=cashier_headers)
        assert response.status_code == 422

    def test_sale_and_close_flow(self, client, cashier_headers, location, open_drawer, make_product):
        product = make_product(price="20.00", stock={location.id: 5})

        response = client.post(
            "/api/v1/sales/",
            json={
                "items": [{"product_id": str(product.id), "quantity": 2}],
                "method": "CASH",
                "cash_tendered": "50.00",
            },
            headers=cashier_headers
        )
        assert response.status_code == 201
        sale = response.json()
        assert Decimal(sale["total"]) == Decimal("40.00")
        assert Decimal(sale["change_due"]) == Decimal("10.00")
        assert sale["lines"][0]["quantity"] == 2

        response = client.get(f"/api/v1/sales/{sale['id']}", headers=cashier_headers)
        assert response.status_code == 200

        response = client.get("/api/v1/drawers/current", headers=cashier_headers)
        assert Decimal(response.json()["expected_cash"]) == Decimal("140.00")

        response = client.post(
            f"/api/v1/drawers/{open_drawer.id}/close",
            json={"counted_amount": "138.00"},
            headers=cashier_headers
        )
        assert response.status_code == 200
        summary = response.json()
        assert Decimal(summary["expected_close"]) == Decimal("140.00")
        assert Decimal(summary["variance"]) == Decimal("-2.00")
        assert summary["sale_count"] == 1

    def test_sale_error_payload(self, client, cashier_headers, location, open_drawer, make_product,
                                make_customer):
        product = make_product(price="20.00", stock={location.id: 5})
        customer = make_customer(credit="5.00")

        response = client.post(
            "/api/v1/sales/",
            json={
                "items": [{"product_id": str(product.id), "quantity": 1}],
                "method": "CASH",
                "customer_id": str(customer.id),
                "use_credit": True,
                "credit_amount": "10.00",
                "cash_tendered": "10.00",
            },
            headers=cashier_headers
        )
        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "INSUFFICIENT_CREDIT"
        assert body["details"]["available"] == "5.00"

    def test_sale_without_open_drawer(self, client, cashier_headers, location, make_product):
        product = make_product(price="20.00", stock={location.id: 5})
        response = client.post(
            "/api/v1/sales/",
            json={"items": [{"product_id": str(product.id), "quantity": 1}], "cash_tendered": "20.00"},
            headers=cashier_headers
        )
        assert response.status_code == 404
        assert response.json()["code"] == "DRAWER_NOT_FOUND"
