"""
Servicios de negocio para el módulo POS (Point of Sale)

Implementa:
- DrawerService: Apertura/cierre de caja, acumulación de ventas y arqueo
- SaleOrchestrator: Cobro de ventas todo-o-nada (crédito, stock, caja)
- CompensationJournal: Reversión ordenada de los pasos ya aplicados

Integración con otros módulos:
- Customers: CreditLedger para débito/depósito de crédito
- Inventory: StockDispatcher para descontar stock (local o remoto)
- Products: CatalogService para fijar precios del carrito
- Notifications: aviso al local de origen en ventas remotas
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Any
from uuid import UUID, uuid4

from sqlalchemy import update, desc, literal
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mostrador.core.config import settings
from mostrador.common.exceptions import (
    POSError, ValidationError, DrawerAlreadyOpen, DrawerClosed, DrawerNotFound,
    SaleNotFound, PersistenceFailure, CompensationFailure
)
from mostrador.common.money import Money, MoneyType
from mostrador.modules.pos.models import (
    DrawerSession, DrawerState, Sale, SaleLine, SaleState, METHOD_TOTAL_COLUMNS, utcnow
)
from mostrador.modules.pos.schemas import SaleCreate
from mostrador.modules.pos.settlement import (
    PaymentMethod, NON_CASH_METHODS, OverpaymentPolicy, SettlementCalculator,
    SettlementPlan, SettlementRequest, RemoteSaleRequest
)
from mostrador.modules.customers.service import CreditLedger
from mostrador.modules.inventory.service import StockDispatcher
from mostrador.modules.inventory.schemas import MovementType
from mostrador.modules.locations.service import get_location_by_id
from mostrador.modules.products.service import CatalogService
from mostrador.modules.notifications.events import RemoteSaleCreated
from mostrador.modules.notifications.service import Notifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrawerSummary:
    session: DrawerSession
    sale_count: int
    sales_total: Money
    expected_close: Money
    counted_close: Money
    variance: Money
    totals_by_method: Dict[PaymentMethod, Money]


class DrawerService:
    """Servicio para gestión de cajas por cajero"""

    def __init__(self, db: Session):
        self.db = db

    def open(self, cashier_id: UUID, location_id: UUID, opening_float: Money,
             notes: Optional[str] = None) -> DrawerSession:
        """Abrir caja. Un cajero no puede tener dos cajas abiertas."""
        if opening_float.is_negative():
            raise ValidationError("El fondo inicial no puede ser negativo",
                                  details={"opening_float": str(opening_float)})

        get_location_by_id(location_id, self.db, active_only=True)

        existing_open = self.get_status(cashier_id)
        if existing_open:
            raise DrawerAlreadyOpen(
                details={"cashier_id": str(cashier_id), "session_id": str(existing_open.id)}
            )

        session = DrawerSession(
            cashier_id=cashier_id,
            location_id=location_id,
            state=DrawerState.OPEN,
            opening_float=opening_float,
            opened_at=utcnow(),
            opening_notes=notes
        )
        try:
            self.db.add(session)
            self.db.commit()
        except IntegrityError:
            # Apertura concurrente: el índice único parcial la rechazó
            self.db.rollback()
            raise DrawerAlreadyOpen(details={"cashier_id": str(cashier_id)})
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceFailure(f"No se pudo abrir la caja: {exc}") from exc

        self.db.refresh(session)
        logger.info(f"Drawer {session.id} opened by cashier {cashier_id} with float {opening_float}")
        return session

    def get(self, session_id: UUID) -> DrawerSession:
        session = self.db.query(DrawerSession).filter(DrawerSession.id == session_id).first()
        if not session:
            raise DrawerNotFound(details={"session_id": str(session_id)})
        return session

    def get_status(self, cashier_id: UUID) -> Optional[DrawerSession]:
        """
        Caja abierta del cajero, con sus acumulados en curso.

        Retorna None si el cajero no tiene caja abierta.
        """
        return self.db.query(DrawerSession).filter(
            DrawerSession.cashier_id == cashier_id,
            DrawerSession.state == DrawerState.OPEN
        ).first()

    def require_open(self, cashier_id: UUID, session_id: Optional[UUID] = None) -> DrawerSession:
        """Caja en la que el cajero puede cobrar."""
        if session_id is None:
            session = self.get_status(cashier_id)
            if session is None:
                raise DrawerNotFound(
                    "No hay caja abierta. Debes abrir una caja para realizar ventas",
                    details={"cashier_id": str(cashier_id)}
                )
            return session

        session = self.get(session_id)
        if session.cashier_id != cashier_id:
            raise DrawerNotFound(details={"session_id": str(session_id)})
        if session.state != DrawerState.OPEN:
            raise DrawerClosed(details={"session_id": str(session_id)})
        return session

    def accumulate(self, session_id: UUID, plan: SettlementPlan, commit: bool = True) -> None:
        """
        Suma una venta a los totales de la caja en un único UPDATE condicionado
        a que la caja siga abierta.
        """
        increments = {
            "cash_total": plan.cash_retained,
            "credit_total": plan.credit_applied,
        }
        if plan.method in NON_CASH_METHODS or plan.method == PaymentMethod.MIXED:
            column = METHOD_TOTAL_COLUMNS[plan.method]
            increments[column] = increments.get(column, Money.zero()) + plan.tendered_other

        values = {
            column: getattr(DrawerSession, column) + amount
            for column, amount in increments.items()
            if not amount.is_zero()
        }
        values["sale_count"] = DrawerSession.sale_count + 1
        values["sales_total"] = DrawerSession.sales_total + plan.gross_total

        stmt = (
            update(DrawerSession)
            .where(DrawerSession.id == session_id, DrawerSession.state == DrawerState.OPEN)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount == 0:
            self.db.rollback()
            self.get(session_id)
            raise DrawerClosed(details={"session_id": str(session_id)})
        if commit:
            self.db.commit()

    def close(self, session_id: UUID, counted_amount: Money, notes: Optional[str] = None,
              cashier_id: Optional[UUID] = None) -> DrawerSummary:
        """
        Cerrar caja con arqueo.

        expected_close = fondo inicial + efectivo cobrado
        variance = contado - esperado

        La diferencia se informa; no se ajusta automáticamente.
        """
        if counted_amount.is_negative():
            raise ValidationError("El efectivo contado no puede ser negativo",
                                  details={"counted_amount": str(counted_amount)})

        session = self.get(session_id)
        if cashier_id is not None and session.cashier_id != cashier_id:
            raise DrawerNotFound(details={"session_id": str(session_id)})

        expected = DrawerSession.opening_float + DrawerSession.cash_total
        stmt = (
            update(DrawerSession)
            .where(DrawerSession.id == session_id, DrawerSession.state == DrawerState.OPEN)
            .values(
                state=DrawerState.CLOSED,
                closed_at=utcnow(),
                counted_close=counted_amount,
                expected_close=expected,
                variance=literal(counted_amount, MoneyType()) - expected,
                closing_notes=notes
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                self.db.rollback()
                raise DrawerClosed("La caja ya está cerrada", details={"session_id": str(session_id)})
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceFailure(f"No se pudo cerrar la caja: {exc}") from exc

        self.db.refresh(session)
        logger.info(
            f"Drawer {session_id} closed: expected {session.expected_close}, "
            f"counted {session.counted_close}, variance {session.variance}"
        )
        return DrawerSummary(
            session=session,
            sale_count=session.sale_count,
            sales_total=session.sales_total,
            expected_close=session.expected_close,
            counted_close=session.counted_close,
            variance=session.variance,
            totals_by_method=session.totals_by_method
        )

    def list_sessions(self, cashier_id: Optional[UUID] = None, location_id: Optional[UUID] = None,
                      state: Optional[DrawerState] = None, date_from: Optional[datetime] = None,
                      date_to: Optional[datetime] = None, limit: int = 20, offset: int = 0) -> Dict[str, Any]:
        """Historial de cajas"""
        query = self.db.query(DrawerSession)

        if cashier_id:
            query = query.filter(DrawerSession.cashier_id == cashier_id)
        if location_id:
            query = query.filter(DrawerSession.location_id == location_id)
        if state:
            query = query.filter(DrawerSession.state == state)
        if date_from:
            query = query.filter(DrawerSession.opened_at >= date_from)
        if date_to:
            query = query.filter(DrawerSession.opened_at <= date_to)

        total = query.count()
        sessions = query.order_by(desc(DrawerSession.opened_at)).offset(offset).limit(limit).all()
        return {"items": sessions, "total": total, "limit": limit, "offset": offset}


class CompensationJournal:
    """
    Registro de pasos aplicados durante un cobro y de cómo revertirlos.

    compensate() deshace en orden inverso, cada paso a lo sumo una vez. Si
    alguna reversión falla se intenta el resto y se lanza CompensationFailure.
    """

    def __init__(self, reference: str):
        self.reference = reference
        self._steps: List[Dict[str, Any]] = []

    def record(self, description: str, undo: Callable[[], Any]) -> None:
        self._steps.append({"description": description, "undo": undo, "undone": False})

    @property
    def pending(self) -> int:
        return sum(1 for step in self._steps if not step["undone"])

    def compensate(self, cause: Exception) -> None:
        failures = []
        for step in reversed(self._steps):
            if step["undone"]:
                continue
            step["undone"] = True
            try:
                step["undo"]()
            except Exception as exc:
                logger.critical(
                    f"Compensation step failed for {self.reference}: {step['description']}: {exc}"
                )
                failures.append({"step": step["description"], "error": str(exc)})

        if failures:
            raise CompensationFailure(
                details={
                    "reference": self.reference,
                    "cause": cause.to_dict() if isinstance(cause, POSError) else str(cause),
                    "failed_steps": failures,
                }
            ) from cause

        if self._steps:
            logger.warning(f"Sale {self.reference} aborted, {len(self._steps)} steps compensated: {cause}")


class SaleOrchestrator:
    """
    Cobro de ventas POS todo-o-nada.

    Orden de pasos: calcular el cobro, debitar crédito, descontar stock de
    cada línea, depositar el vuelto como crédito, y registrar la venta junto
    con la acumulación en caja en una misma transacción. Si un paso falla,
    los anteriores se revierten con el CompensationJournal.
    """

    def __init__(self, db: Session, notifier: Notifier,
                 overpayment_policy: Optional[OverpaymentPolicy] = None):
        self.db = db
        self.notifier = notifier
        if overpayment_policy is None:
            overpayment_policy = (
                OverpaymentPolicy.ACCEPT if settings.ALLOW_NON_CASH_OVERPAYMENT else OverpaymentPolicy.REJECT
            )
        self.calculator = SettlementCalculator(overpayment_policy)
        self.ledger = CreditLedger(db)
        self.dispatcher = StockDispatcher(db, notifier)
        self.catalog = CatalogService(db)
        self.drawers = DrawerService(db)

    def create_sale(self, data: SaleCreate, cashier_id: UUID) -> Sale:
        """Arma la solicitud de cobro desde el input de la API y cobra."""
        drawer = self.drawers.require_open(cashier_id, data.drawer_session_id)
        cart = self.catalog.resolve_cart((item.product_id, item.quantity) for item in data.items)

        remote = None
        if data.fulfilling_location_id is not None:
            remote = RemoteSaleRequest(
                selling_location_id=drawer.location_id,
                fulfilling_location_id=data.fulfilling_location_id,
                buyer_name=data.buyer_name
            )

        request = SettlementRequest(
            cart=cart,
            method=data.method,
            customer_id=data.customer_id,
            use_credit=data.use_credit,
            credit_amount_requested=_money_or_none(data.credit_amount),
            cash_tendered=_money_or_none(data.cash_tendered),
            other_tendered=_money_or_none(data.other_tendered),
            deposit_change_to_credit=data.deposit_change_to_credit,
            remote=remote
        )
        return self.settle(request, drawer.id, cashier_id)

    def settle(self, request: SettlementRequest, drawer_session_id: UUID, cashier_id: UUID) -> Sale:
        drawer = self.drawers.require_open(cashier_id, drawer_session_id)
        fulfillment = self.dispatcher.resolve_fulfillment(drawer.location_id, request.remote)

        available = Money.zero()
        if request.customer_id is not None:
            available = self.ledger.get_available(request.customer_id)
        plan = self.calculator.calculate(request, available)

        sale_id = uuid4()
        reference = f"VENTA-{str(sale_id)[:8].upper()}"
        journal = CompensationJournal(reference)

        try:
            if plan.credit_applied.is_positive():
                self.ledger.debit(request.customer_id, plan.credit_applied)
                journal.record(
                    f"refund credit {plan.credit_applied} to customer {request.customer_id}",
                    lambda: self.ledger.credit(request.customer_id, plan.credit_applied)
                )

            for item in request.cart.items:
                self.dispatcher.decrement(
                    item.product_id, fulfillment.fulfilling_location_id, item.quantity,
                    reference=reference, created_by=cashier_id, alert=False
                )
                journal.record(
                    f"restock {item.quantity} of product {item.product_id}",
                    self._restock(item.product_id, fulfillment.fulfilling_location_id, item.quantity, reference)
                )

            if plan.credit_top_up.is_positive():
                self.ledger.credit(request.customer_id, plan.credit_top_up)
                journal.record(
                    f"withdraw credit top-up {plan.credit_top_up} from customer {request.customer_id}",
                    lambda: self.ledger.debit(request.customer_id, plan.credit_top_up)
                )

            sale = self._persist(sale_id, request, plan, fulfillment, drawer, cashier_id)

        except Exception as exc:
            self.db.rollback()
            journal.compensate(exc)
            if isinstance(exc, SQLAlchemyError):
                raise PersistenceFailure(f"No se pudo registrar la venta: {exc}") from exc
            raise

        logger.info(
            f"Sale {sale.id} completed at location {sale.location_id}: total {plan.gross_total}, "
            f"method {plan.method.value}, credit {plan.credit_applied}, change {plan.change_due}"
        )

        for product_id in dict.fromkeys(item.product_id for item in request.cart.items):
            self.dispatcher.alert_if_low(product_id, fulfillment.fulfilling_location_id)

        if fulfillment.is_remote:
            self._notify_remote_sale(sale, plan, fulfillment)
        return sale

    def _restock(self, product_id: UUID, location_id: UUID, quantity: int, reference: str):
        def undo():
            self.dispatcher.increment(
                product_id, location_id, quantity,
                reference=f"REV-{reference}", movement_type=MovementType.ADJ,
                notes="Reversión de venta no confirmada"
            )
        return undo

    def _persist(self, sale_id, request: SettlementRequest, plan: SettlementPlan,
                 fulfillment, drawer: DrawerSession, cashier_id: UUID) -> Sale:
        """Venta y acumulación en caja en una única transacción."""
        sale = Sale(
            id=sale_id,
            location_id=fulfillment.selling_location_id,
            fulfilling_location_id=fulfillment.fulfilling_location_id if fulfillment.is_remote else None,
            is_remote=fulfillment.is_remote,
            buyer_name=fulfillment.buyer_name,
            cashier_id=cashier_id,
            customer_id=request.customer_id,
            drawer_session_id=drawer.id,
            method=plan.method,
            state=SaleState.COMPLETED,
            total=plan.gross_total,
            credit_applied=plan.credit_applied,
            net_due=plan.net_due,
            tendered_cash=plan.tendered_cash,
            tendered_other=plan.tendered_other,
            change_due=plan.change_due,
            credit_top_up=plan.credit_top_up,
            overpayment=plan.overpayment
        )
        for position, item in enumerate(request.cart.items):
            sale.lines.append(SaleLine(
                position=position,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=item.subtotal
            ))

        self.db.add(sale)
        self.db.flush()
        self.drawers.accumulate(drawer.id, plan, commit=False)
        self.db.commit()
        self.db.refresh(sale)
        return sale

    def _notify_remote_sale(self, sale: Sale, plan: SettlementPlan, fulfillment) -> None:
        event = RemoteSaleCreated(
            fulfilling_location_id=fulfillment.fulfilling_location_id,
            selling_location_id=fulfillment.selling_location_id,
            sale_id=sale.id,
            buyer_name=fulfillment.buyer_name,
            sale_total=plan.gross_total.amount
        )
        try:
            self.notifier.publish(event)
        except Exception as exc:
            logger.warning(f"Remote sale notification for {sale.id} failed: {exc}")

    def get_sale(self, sale_id: UUID, location_id: Optional[UUID] = None) -> Sale:
        query = self.db.query(Sale).options(selectinload(Sale.lines)).filter(Sale.id == sale_id)
        if location_id:
            query = query.filter(Sale.location_id == location_id)
        sale = query.first()
        if not sale:
            raise SaleNotFound(details={"sale_id": str(sale_id)})
        return sale

    def list_sales(self, location_id: Optional[UUID] = None, cashier_id: Optional[UUID] = None,
                   drawer_session_id: Optional[UUID] = None, customer_id: Optional[UUID] = None,
                   method: Optional[PaymentMethod] = None, is_remote: Optional[bool] = None,
                   date_from: Optional[datetime] = None, date_to: Optional[datetime] = None,
                   limit: int = 20, offset: int = 0) -> Dict[str, Any]:
        """Listado de ventas con filtros y paginación"""
        query = self.db.query(Sale).options(selectinload(Sale.lines))

        if location_id:
            query = query.filter(Sale.location_id == location_id)
        if cashier_id:
            query = query.filter(Sale.cashier_id == cashier_id)
        if drawer_session_id:
            query = query.filter(Sale.drawer_session_id == drawer_session_id)
        if customer_id:
            query = query.filter(Sale.customer_id == customer_id)
        if method:
            query = query.filter(Sale.method == method)
        if is_remote is not None:
            query = query.filter(Sale.is_remote == is_remote)
        if date_from:
            query = query.filter(Sale.created_at >= date_from)
        if date_to:
            query = query.filter(Sale.created_at <= date_to)

        total = query.count()
        sales = query.order_by(desc(Sale.created_at)).offset(offset).limit(limit).all()
        return {"items": sales, "total": total, "limit": limit, "offset": offset}


def _money_or_none(value) -> Optional[Money]:
    return None if value is None else Money.of(value)
