"""
Modelos SQLAlchemy para el módulo POS (Point of Sale)

Este módulo maneja las operaciones de punto de venta:
- DrawerSession: Turno de caja de un cajero, con apertura/cierre y arqueo
- Sale: Venta confirmada, con el desglose del cobro
- SaleLine: Líneas de la venta con el precio fijado al cobrar

Reglas:
- Un cajero tiene como máximo una caja abierta (índice único parcial)
- Las ventas referencian caja y cliente por id; la caja no conoce sus ventas
- Sólo el orquestador de ventas modifica los totales de la caja
"""

from mostrador.database.database import Base
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer, Enum, Text, Index, Uuid, text
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from uuid import uuid4
from typing import Dict
from mostrador.common.mixins import TimestampMixin
from mostrador.common.money import Money, MoneyType
from mostrador.modules.pos.settlement import PaymentMethod
import enum


def utcnow():
    return datetime.now(timezone.utc)


# ===== ENUMS =====

class DrawerState(str, enum.Enum):
    """Estados de la caja"""
    OPEN = "OPEN"       # Caja abierta
    CLOSED = "CLOSED"   # Caja cerrada


class SaleState(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Columna de totales de la caja por método de pago
METHOD_TOTAL_COLUMNS = {
    PaymentMethod.CASH: "cash_total",
    PaymentMethod.CREDIT: "credit_total",
    PaymentMethod.CARD_DEBIT: "card_debit_total",
    PaymentMethod.CARD_CREDIT: "card_credit_total",
    PaymentMethod.QR: "qr_total",
    PaymentMethod.TRANSFER: "transfer_total",
    PaymentMethod.MIXED: "mixed_total",
}


# ===== MODELOS =====

class DrawerSession(Base, TimestampMixin):
    """
    Turno de caja de un cajero

    Se abre con un fondo inicial, acumula las ventas por método de pago y se
    cierra con el efectivo contado. Al cerrar se guarda el efectivo esperado
    (fondo + efectivo cobrado) y la diferencia contra lo contado.
    """
    __tablename__ = "drawer_sessions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    cashier_id = Column(Uuid, nullable=False, index=True)
    location_id = Column(Uuid, ForeignKey("locations.id"), nullable=False, index=True)
    state = Column(Enum(DrawerState, name="drawer_state"), nullable=False, default=DrawerState.OPEN, index=True)

    # Apertura
    opening_float = Column(MoneyType, nullable=False, default=Money.zero())
    opened_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    opening_notes = Column(Text, nullable=True)

    # Cierre (solo se llenan al cerrar)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    counted_close = Column(MoneyType, nullable=True)
    expected_close = Column(MoneyType, nullable=True)
    variance = Column(MoneyType, nullable=True)
    closing_notes = Column(Text, nullable=True)

    # Acumulados del turno
    sale_count = Column(Integer, nullable=False, default=0)
    sales_total = Column(MoneyType, nullable=False, default=Money.zero())
    cash_total = Column(MoneyType, nullable=False, default=Money.zero())
    credit_total = Column(MoneyType, nullable=False, default=Money.zero())
    card_debit_total = Column(MoneyType, nullable=False, default=Money.zero())
    card_credit_total = Column(MoneyType, nullable=False, default=Money.zero())
    qr_total = Column(MoneyType, nullable=False, default=Money.zero())
    transfer_total = Column(MoneyType, nullable=False, default=Money.zero())
    mixed_total = Column(MoneyType, nullable=False, default=Money.zero())

    location = relationship("Location")

    __table_args__ = (
        Index(
            "uq_drawer_sessions_open_cashier",
            "cashier_id",
            unique=True,
            postgresql_where=text("state = 'OPEN'"),
            sqlite_where=text("state = 'OPEN'"),
        ),
    )

    @property
    def totals_by_method(self) -> Dict[PaymentMethod, Money]:
        return {method: getattr(self, column) for method, column in METHOD_TOTAL_COLUMNS.items()}

    @property
    def expected_cash(self) -> Money:
        """Efectivo que debería haber en la caja en este momento"""
        return self.opening_float + self.cash_total


class Sale(Base, TimestampMixin):
    """
    Venta confirmada

    Se crea únicamente cuando crédito, stock y caja quedaron aplicados; no se
    modifica después. En una venta remota location_id es el local de la caja
    y fulfilling_location_id el local del que salió la mercadería.
    """
    __tablename__ = "sales"

    id = Column(Uuid, primary_key=True, default=uuid4)
    location_id = Column(Uuid, ForeignKey("locations.id"), nullable=False, index=True)
    fulfilling_location_id = Column(Uuid, ForeignKey("locations.id"), nullable=True, index=True)
    is_remote = Column(Boolean, nullable=False, default=False)
    buyer_name = Column(String(150), nullable=True)

    cashier_id = Column(Uuid, nullable=False, index=True)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=True, index=True)
    drawer_session_id = Column(Uuid, ForeignKey("drawer_sessions.id"), nullable=False, index=True)

    method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False, index=True)
    state = Column(Enum(SaleState, name="sale_state"), nullable=False, default=SaleState.COMPLETED)

    # Desglose del cobro
    total = Column(MoneyType, nullable=False)
    credit_applied = Column(MoneyType, nullable=False, default=Money.zero())
    net_due = Column(MoneyType, nullable=False)
    tendered_cash = Column(MoneyType, nullable=False, default=Money.zero())
    tendered_other = Column(MoneyType, nullable=False, default=Money.zero())
    change_due = Column(MoneyType, nullable=False, default=Money.zero())
    credit_top_up = Column(MoneyType, nullable=False, default=Money.zero())
    overpayment = Column(MoneyType, nullable=False, default=Money.zero())

    lines = relationship("SaleLine", cascade="all, delete-orphan", order_by="SaleLine.position")

    @property
    def credit_consumed(self) -> Money:
        return self.credit_applied


class SaleLine(Base):
    __tablename__ = "sale_lines"

    id = Column(Uuid, primary_key=True, default=uuid4)
    sale_id = Column(Uuid, ForeignKey("sales.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MoneyType, nullable=False)
    subtotal = Column(MoneyType, nullable=False)
